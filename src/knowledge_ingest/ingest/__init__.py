"""Ingestion pipeline: parser registry, normalizer, chunkers and the coordinator."""
from __future__ import annotations

from .chunking import ChunkConfig, ChunkerRegistry, default_chunker_registry
from .errors import (
    ChunkError,
    IngestFileNotFoundError,
    IngestionCancelledError,
    IngestionError,
    InternalIngestionError,
    InvalidFormatError,
    ParseError,
    StorageError,
    UnknownStrategyError,
    UnsupportedFormatError,
    VersionConflictError,
)
from .format_detection import DocumentFormat, ParserRegistry, default_parser_registry
from .models import (
    Chunk,
    ChunkRecord,
    Document,
    DocumentStructure,
    DocumentVersion,
    FileMetadata,
    StoredFile,
    VersionStatus,
)
from .normalization import DocumentNormalizer, normalize_text
from .pipeline import IngestionContext, IngestionCoordinator, IngestOptions, ProcessResult
from .preview import ComparisonResult, PreviewResult, compare_strategies, preview_chunks
from .statistics import build_visualization, compute_statistics

__all__ = [
    "Chunk",
    "ChunkConfig",
    "ChunkError",
    "ChunkRecord",
    "ChunkerRegistry",
    "ComparisonResult",
    "Document",
    "DocumentFormat",
    "DocumentNormalizer",
    "DocumentStructure",
    "DocumentVersion",
    "FileMetadata",
    "IngestFileNotFoundError",
    "IngestOptions",
    "IngestionCancelledError",
    "IngestionContext",
    "IngestionCoordinator",
    "IngestionError",
    "InternalIngestionError",
    "InvalidFormatError",
    "ParseError",
    "ParserRegistry",
    "PreviewResult",
    "ProcessResult",
    "StorageError",
    "StoredFile",
    "UnknownStrategyError",
    "UnsupportedFormatError",
    "VersionConflictError",
    "VersionStatus",
    "build_visualization",
    "compare_strategies",
    "compute_statistics",
    "default_chunker_registry",
    "default_parser_registry",
    "normalize_text",
    "preview_chunks",
]
