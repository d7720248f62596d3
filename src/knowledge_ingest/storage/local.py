"""Disk-backed blob store and JSON-persisted ingestion state."""
from __future__ import annotations

import json
import logging
import re
from contextlib import contextmanager
from dataclasses import asdict
from pathlib import Path
from typing import Any, BinaryIO, Dict, Final, Iterator
from uuid import uuid4

from knowledge_ingest.ingest.errors import StorageError
from knowledge_ingest.ingest.models import ChunkRecord, DocumentVersion, StoredFile, VersionStatus

from .memory import InMemoryIngestStore

LOGGER = logging.getLogger(__name__)

_FILENAME_SAFE_CHARS_RE: Final[re.Pattern[str]] = re.compile(r"[^A-Za-z0-9._-]+")
STATE_FILENAME = "ingest_store.json"


def sanitize_filename(filename: str) -> str:
    """Return a filesystem-safe filename preserving the extension when possible."""

    sanitized = Path(filename or "upload").name
    sanitized = _FILENAME_SAFE_CHARS_RE.sub("_", sanitized)
    return sanitized.strip("._") or "upload"


class LocalBlobStore:
    """Stores uploads below ``<data_dir>/uploads`` and hands out relative references."""

    def __init__(self, data_dir: str | Path) -> None:
        self.root = Path(data_dir).resolve()
        self.uploads_dir = self.root / "uploads"
        self.uploads_dir.mkdir(parents=True, exist_ok=True)

    def put(self, data: bytes, *, filename: str = "") -> str:
        sanitized = sanitize_filename(filename)
        base = Path(sanitized).stem or "upload"
        suffix = Path(sanitized).suffix
        destination = self.uploads_dir / f"{base}-{uuid4().hex}{suffix}"
        try:
            destination.write_bytes(data)
        except OSError as exc:
            raise StorageError(f"failed to store upload {sanitized}: {exc}", cause=exc) from exc
        return destination.relative_to(self.root).as_posix()

    def _resolve(self, blob_ref: str) -> Path:
        path = (self.root / blob_ref).resolve()
        if self.root not in path.parents:
            raise StorageError(f"blob reference escapes the data directory: {blob_ref}")
        return path

    @contextmanager
    def open(self, blob_ref: str) -> Iterator[BinaryIO]:
        path = self._resolve(blob_ref)
        try:
            handle = path.open("rb")
        except OSError as exc:
            raise StorageError(f"failed to open blob {blob_ref}: {exc}", cause=exc) from exc
        with handle:
            yield handle


class PersistentIngestStore(InMemoryIngestStore):
    """Ingestion store that mirrors its state into a JSON file for reuse across restarts."""

    def __init__(self, data_dir: str | Path) -> None:
        super().__init__()
        self._data_dir = Path(data_dir)
        self._data_dir.mkdir(parents=True, exist_ok=True)
        self._data_path = self._data_dir / STATE_FILENAME
        self._load()

    @property
    def data_path(self) -> Path:
        return self._data_path

    def _load(self) -> None:
        if not self._data_path.exists():
            return
        try:
            payload = json.loads(self._data_path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            LOGGER.warning("Failed to load ingestion state from %s: %s", self._data_path, exc)
            return

        for record in payload.get("files", []):
            stored = StoredFile(**record)
            self._files[stored.file_id] = stored
        for record in payload.get("versions", []):
            version = DocumentVersion(**{**record, "status": VersionStatus(record["status"])})
            self._versions[version.version_id] = version
            self._version_numbers[(version.file_id, version.version_no)] = version.version_id
        for version_id, records in payload.get("chunks", {}).items():
            self._chunks[version_id] = [ChunkRecord(**record) for record in records]

        interrupted = [item for item in self._versions.values() if not item.status.is_terminal]
        for version in interrupted:
            LOGGER.warning("Marking interrupted version %s as failed", version.version_id)
            version.status = VersionStatus.FAILED
            version.error = "InternalError: ingestion interrupted by a restart"

    def _snapshot(self) -> Dict[str, Any]:
        return {
            "files": [asdict(item) for item in self._files.values()],
            "versions": [
                {**asdict(item), "status": item.status.value} for item in self._versions.values()
            ],
            "chunks": {
                version_id: [asdict(record) for record in records]
                for version_id, records in self._chunks.items()
            },
        }

    def _persist(self) -> None:
        tmp_path = self._data_path.with_suffix(".tmp")
        try:
            tmp_path.write_text(json.dumps(self._snapshot(), ensure_ascii=False), encoding="utf-8")
            tmp_path.replace(self._data_path)
        except (OSError, TypeError, ValueError) as exc:
            raise StorageError(f"failed to persist ingestion state: {exc}", cause=exc) from exc
