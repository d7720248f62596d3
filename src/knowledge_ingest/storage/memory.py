"""Thread-safe in-memory blob store and ingestion state store."""
from __future__ import annotations

import io
import logging
import threading
import time
import uuid
from contextlib import contextmanager
from dataclasses import replace
from typing import BinaryIO, Dict, Iterator, List, Optional, Sequence, Tuple

from knowledge_ingest.ingest.errors import StorageError, VersionConflictError
from knowledge_ingest.ingest.models import ChunkRecord, DocumentVersion, StoredFile, VersionStatus

LOGGER = logging.getLogger(__name__)


class InMemoryBlobStore:
    """Keeps uploaded bytes in a dictionary keyed by an opaque reference."""

    def __init__(self) -> None:
        self._blobs: Dict[str, bytes] = {}
        self._lock = threading.Lock()

    def put(self, data: bytes, *, filename: str = "") -> str:
        blob_ref = f"mem://{uuid.uuid4().hex}"
        with self._lock:
            self._blobs[blob_ref] = bytes(data)
        LOGGER.debug("Stored %s bytes for %s under %s", len(data), filename or "<anonymous>", blob_ref)
        return blob_ref

    @contextmanager
    def open(self, blob_ref: str) -> Iterator[BinaryIO]:
        with self._lock:
            data = self._blobs.get(blob_ref)
        if data is None:
            raise StorageError(f"blob not found: {blob_ref}")
        stream = io.BytesIO(data)
        try:
            yield stream
        finally:
            stream.close()


class InMemoryIngestStore:
    """File repository, chunk sink and read model backed by dictionaries.

    Every mutation happens under one lock; :meth:`_persist` is called while
    the lock is held so subclasses can snapshot a consistent state.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._files: Dict[str, StoredFile] = {}
        self._versions: Dict[str, DocumentVersion] = {}
        self._version_numbers: Dict[Tuple[str, int], str] = {}
        self._chunks: Dict[str, List[ChunkRecord]] = {}

    # file repository -------------------------------------------------
    def add_file(self, stored: StoredFile) -> StoredFile:
        with self._lock:
            if not stored.created_at:
                stored = replace(stored, created_at=time.time())
            self._files[stored.file_id] = stored
            self._persist()
        return stored

    def get_file(self, file_id: str) -> Optional[StoredFile]:
        with self._lock:
            return self._files.get(file_id)

    def list_files(self) -> List[StoredFile]:
        with self._lock:
            return sorted(self._files.values(), key=lambda item: item.created_at)

    def latest_version_no(self, file_id: str) -> int:
        with self._lock:
            numbers = [version.version_no for version in self._versions.values() if version.file_id == file_id]
        return max(numbers, default=0)

    # chunk sink ------------------------------------------------------
    def create_version(
        self,
        file_id: str,
        version_no: int,
        chunk_config_json: str,
        status: VersionStatus = VersionStatus.PROCESSING,
    ) -> str:
        with self._lock:
            if (file_id, version_no) in self._version_numbers:
                raise VersionConflictError(f"version {version_no} already exists for file {file_id}")
            now = time.time()
            version = DocumentVersion(
                version_id=uuid.uuid4().hex,
                file_id=file_id,
                version_no=version_no,
                chunk_config=chunk_config_json,
                status=VersionStatus(status),
                created_at=now,
                updated_at=now,
            )
            self._versions[version.version_id] = version
            self._version_numbers[(file_id, version_no)] = version.version_id
            try:
                self._persist()
            except StorageError:
                del self._versions[version.version_id]
                del self._version_numbers[(file_id, version_no)]
                raise
        return version.version_id

    def update_version(
        self,
        version_id: str,
        status: VersionStatus,
        chunk_count: int,
        error: Optional[str] = None,
    ) -> DocumentVersion:
        with self._lock:
            version = self._versions.get(version_id)
            if version is None:
                raise StorageError(f"unknown version: {version_id}")
            if version.status.is_terminal:
                raise StorageError(f"version {version_id} is already {version.status.value}")
            previous = replace(version)
            version.status = VersionStatus(status)
            version.chunk_count = chunk_count
            version.error = error
            version.updated_at = time.time()
            try:
                self._persist()
            except StorageError:
                self._versions[version_id] = previous
                raise
            return replace(version)

    def write_chunks_batch(self, version_id: str, records: Sequence[ChunkRecord]) -> None:
        batch = [replace(record, metadata=dict(record.metadata)) for record in records]
        sequences = [record.sequence for record in batch]
        if sequences != list(range(1, len(batch) + 1)):
            raise StorageError("chunk records must carry consecutive sequences starting at 1")
        with self._lock:
            if version_id not in self._versions:
                raise StorageError(f"unknown version: {version_id}")
            if version_id in self._chunks:
                raise StorageError(f"chunks already written for version {version_id}")
            self._chunks[version_id] = batch
            try:
                self._persist()
            except StorageError:
                del self._chunks[version_id]
                raise

    # read model ------------------------------------------------------
    def get_version(self, version_id: str) -> Optional[DocumentVersion]:
        with self._lock:
            version = self._versions.get(version_id)
            return replace(version) if version is not None else None

    def list_versions(self, file_id: str) -> List[DocumentVersion]:
        with self._lock:
            versions = [replace(item) for item in self._versions.values() if item.file_id == file_id]
        return sorted(versions, key=lambda item: item.version_no)

    def get_chunks(self, version_id: str) -> List[ChunkRecord]:
        with self._lock:
            return list(self._chunks.get(version_id, []))

    def _persist(self) -> None:
        """Hook for durable subclasses; the in-memory store keeps nothing on disk."""
