"""Storage collaborators consumed by the ingestion coordinator."""
from __future__ import annotations

import logging
import os
from contextlib import AbstractContextManager
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import BinaryIO, List, Optional, Protocol, Sequence

from knowledge_ingest.ingest.models import ChunkRecord, DocumentVersion, StoredFile, VersionStatus

from .local import LocalBlobStore, PersistentIngestStore, sanitize_filename
from .memory import InMemoryBlobStore, InMemoryIngestStore

LOGGER = logging.getLogger(__name__)


class BlobReader(Protocol):
    def open(self, blob_ref: str) -> AbstractContextManager[BinaryIO]:
        ...


class BlobStore(BlobReader, Protocol):
    def put(self, data: bytes, *, filename: str = "") -> str:
        ...


class FileRepository(Protocol):
    def get_file(self, file_id: str) -> Optional[StoredFile]:
        ...

    def latest_version_no(self, file_id: str) -> int:
        ...


class ChunkSink(Protocol):
    def create_version(
        self,
        file_id: str,
        version_no: int,
        chunk_config_json: str,
        status: VersionStatus = VersionStatus.PROCESSING,
    ) -> str:
        ...

    def update_version(
        self,
        version_id: str,
        status: VersionStatus,
        chunk_count: int,
        error: Optional[str] = None,
    ) -> DocumentVersion:
        ...

    def write_chunks_batch(self, version_id: str, records: Sequence[ChunkRecord]) -> None:
        ...


class IngestStore(FileRepository, ChunkSink, Protocol):
    """Repository, sink and read model in one object, as the bundled stores provide."""

    def add_file(self, stored: StoredFile) -> StoredFile:
        ...

    def get_version(self, version_id: str) -> Optional[DocumentVersion]:
        ...

    def list_versions(self, file_id: str) -> List[DocumentVersion]:
        ...

    def get_chunks(self, version_id: str) -> List[ChunkRecord]:
        ...


@dataclass(slots=True)
class Storage:
    blobs: BlobStore
    store: IngestStore
    backend: str


@lru_cache()
def get_storage() -> Storage:
    """Return the storage backend selected by ``INGEST_STORAGE``."""

    backend = os.getenv("INGEST_STORAGE", "memory").strip().lower()
    if backend == "memory":
        return Storage(blobs=InMemoryBlobStore(), store=InMemoryIngestStore(), backend=backend)
    if backend == "local":
        data_dir = Path(os.getenv("INGEST_DATA_DIR", "data"))
        LOGGER.info("Using local ingestion storage under %s", data_dir)
        return Storage(blobs=LocalBlobStore(data_dir), store=PersistentIngestStore(data_dir), backend=backend)
    raise ValueError(f"Unsupported INGEST_STORAGE backend: {backend!r}")


def reset_storage_cache() -> None:
    """Clear the cached storage (primarily for testing)."""

    get_storage.cache_clear()


__all__ = [
    "BlobReader",
    "BlobStore",
    "ChunkSink",
    "FileRepository",
    "InMemoryBlobStore",
    "InMemoryIngestStore",
    "IngestStore",
    "LocalBlobStore",
    "PersistentIngestStore",
    "Storage",
    "get_storage",
    "reset_storage_cache",
    "sanitize_filename",
]
