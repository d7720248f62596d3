"""Translation of ingestion errors into HTTP responses."""
from __future__ import annotations

from fastapi import HTTPException

from knowledge_ingest.ingest.errors import (
    ChunkError,
    IngestFileNotFoundError,
    IngestionError,
    ParseError,
    StorageError,
    UnknownStrategyError,
    UnsupportedFormatError,
)

_CLIENT_ERRORS = (UnsupportedFormatError, ParseError, UnknownStrategyError, ChunkError)


def status_for(error: IngestionError) -> int:
    if isinstance(error, _CLIENT_ERRORS):
        return 400
    if isinstance(error, IngestFileNotFoundError):
        return 404
    if isinstance(error, StorageError):
        return 503
    return 500


def to_http_exception(error: IngestionError) -> HTTPException:
    return HTTPException(status_code=status_for(error), detail=error.reason)
