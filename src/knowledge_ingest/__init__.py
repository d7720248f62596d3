"""Document ingestion core: parsing, chunking and versioned chunk persistence."""

__version__ = "0.1.0"
