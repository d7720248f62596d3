"""Typed errors raised by the ingestion core."""
from __future__ import annotations


class IngestionError(RuntimeError):
    """Base class for every failure surfaced by the ingestion pipeline."""

    kind = "InternalError"

    def __init__(self, message: str, *, cause: Exception | None = None) -> None:
        super().__init__(message)
        self.__cause__ = cause

    @property
    def reason(self) -> str:
        """Short reason stored on failed versions."""

        return f"{self.kind}: {self}"


class UnsupportedFormatError(IngestionError):
    """Raised when no parser is registered for a file extension."""

    kind = "UnsupportedFormat"


class ParseError(IngestionError):
    """Raised when a parser cannot turn the input bytes into a document."""

    kind = "ParseError"


class InvalidFormatError(ParseError):
    """Raised when the input does not carry the header of the expected format."""

    kind = "InvalidFormat"


class UnknownStrategyError(IngestionError):
    kind = "UnknownStrategy"


class ChunkError(IngestionError):
    kind = "ChunkError"


class IngestFileNotFoundError(IngestionError):
    kind = "FileNotFound"


class StorageError(IngestionError):
    """Raised by blob readers and chunk sinks."""

    kind = "StorageError"


class VersionConflictError(StorageError):
    """Raised when a version number is already taken for a file."""

    kind = "VersionConflict"


class IngestionCancelledError(IngestionError):
    kind = "Cancelled"


class InternalIngestionError(IngestionError):
    kind = "InternalError"


__all__ = [
    "ChunkError",
    "IngestFileNotFoundError",
    "IngestionCancelledError",
    "IngestionError",
    "InternalIngestionError",
    "InvalidFormatError",
    "ParseError",
    "StorageError",
    "UnknownStrategyError",
    "UnsupportedFormatError",
    "VersionConflictError",
]
