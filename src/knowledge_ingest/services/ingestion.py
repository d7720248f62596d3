from __future__ import annotations

import hashlib
import logging
import os
import uuid
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from fastapi import UploadFile

from knowledge_ingest.ingest.chunking import ChunkConfig, ChunkerRegistry, default_chunker_registry
from knowledge_ingest.ingest.chunking.templates import (
    ChunkConfigTemplate,
    Recommendation,
    RecommendationRequest,
    ValidationResult,
    default_templates,
    recommend_chunk_config,
    validate_chunk_config,
)
from knowledge_ingest.ingest.errors import IngestFileNotFoundError
from knowledge_ingest.ingest.format_detection import ParserRegistry
from knowledge_ingest.ingest.models import ChunkRecord, DocumentVersion, StoredFile
from knowledge_ingest.ingest.parsers import default_parsers, get_pdf_text_engine
from knowledge_ingest.ingest.pipeline import IngestionContext, IngestionCoordinator, IngestOptions, ProcessResult
from knowledge_ingest.ingest.preview import ComparisonResult, PreviewResult, compare_strategies, preview_chunks
from knowledge_ingest.ingest.statistics import ChunkStatistics, Visualization, build_visualization, compute_statistics
from knowledge_ingest.storage import Storage, get_storage
from knowledge_ingest.telemetry import emit_ingest_event

LOGGER = logging.getLogger(__name__)


def _int_from_env(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        LOGGER.warning("Invalid integer for %s: %s; using default %s", name, value, default)
        return default


def _float_from_env(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        LOGGER.warning("Invalid float for %s: %s; using default %s", name, value, default)
        return default


def _str_from_env(name: str, default: str) -> str:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return value.strip()


@dataclass(slots=True)
class IngestionSettings:
    """Tunables read from the environment when the service is created."""

    max_workers: int = 4
    deadline_seconds: float = 0.0
    preview_truncate_chars: int = 200
    pdf_text_engine: str = "content_stream"

    @classmethod
    def from_env(cls) -> "IngestionSettings":
        max_workers = _int_from_env("INGEST_MAX_WORKERS", 4)
        if max_workers < 1:
            LOGGER.warning("INGEST_MAX_WORKERS must be positive; using 1")
            max_workers = 1
        truncate_chars = _int_from_env("PREVIEW_TRUNCATE_CHARS", 200)
        if truncate_chars < 1:
            LOGGER.warning("PREVIEW_TRUNCATE_CHARS must be positive; using 200")
            truncate_chars = 200
        return cls(
            max_workers=max_workers,
            deadline_seconds=max(_float_from_env("INGEST_DEADLINE_SECONDS", 0.0), 0.0),
            preview_truncate_chars=truncate_chars,
            pdf_text_engine=_str_from_env("PDF_TEXT_ENGINE", "content_stream"),
        )


class IngestionService:
    """Facade used by the HTTP layer: uploads, versioned processing and chunk previews."""

    def __init__(
        self,
        *,
        storage: Storage | None = None,
        settings: IngestionSettings | None = None,
        parser_registry: ParserRegistry | None = None,
        chunker_registry: ChunkerRegistry | None = None,
        coordinator: IngestionCoordinator | None = None,
    ) -> None:
        self.settings = settings or IngestionSettings.from_env()
        self.storage = storage or get_storage()
        self._parsers = parser_registry or ParserRegistry(
            default_parsers(pdf_engine=get_pdf_text_engine(self.settings.pdf_text_engine))
        )
        self._chunkers = chunker_registry or default_chunker_registry()
        self.coordinator = coordinator or IngestionCoordinator(
            self.storage.store,
            self.storage.blobs,
            self.storage.store,
            parser_registry=self._parsers,
            chunker_registry=self._chunkers,
            max_workers=self.settings.max_workers,
            version_reader=self.storage.store,
        )

    # files -----------------------------------------------------------
    def upload(
        self,
        filename: str,
        data: bytes,
        *,
        content_type: str = "",
        extra: Optional[Dict[str, str]] = None,
    ) -> StoredFile:
        """Store raw bytes and register the file; unsupported formats are rejected up front."""

        display_name = Path(filename or "upload").name
        document_format = self._parsers.detect(display_name, content_type or None)

        blob_ref = self.storage.blobs.put(data, filename=display_name)
        stored = self.storage.store.add_file(
            StoredFile(
                file_id=uuid.uuid4().hex,
                filename=display_name,
                blob_ref=blob_ref,
                content_type=content_type,
                size=len(data),
                sha256=hashlib.sha256(data).hexdigest(),
                extra=dict(extra or {}),
            )
        )
        LOGGER.info(
            "Stored %s upload %s as %s (%s bytes)", document_format.value, display_name, stored.file_id, stored.size
        )
        emit_ingest_event("ingest.uploaded", file_name=display_name, file_id=stored.file_id, size_bytes=stored.size)
        return stored

    async def save_upload(self, upload: UploadFile) -> StoredFile:
        contents = await upload.read()
        return self.upload(upload.filename or "", contents, content_type=upload.content_type or "")

    def get_file(self, file_id: str) -> StoredFile:
        stored = self.storage.store.get_file(file_id)
        if stored is None:
            raise IngestFileNotFoundError(f"file not found: {file_id}")
        return stored

    def list_files(self) -> List[StoredFile]:
        return self.storage.store.list_files()

    # versions --------------------------------------------------------
    def process(
        self,
        file_id: str,
        chunk_config: ChunkConfig,
        options: IngestOptions | None = None,
    ) -> ProcessResult:
        context = IngestionContext.with_timeout(self.settings.deadline_seconds)
        return self.coordinator.process_document(file_id, chunk_config, options, context=context)

    def list_versions(self, file_id: str) -> List[DocumentVersion]:
        return self.coordinator.list_versions(file_id)

    def get_version(self, version_id: str) -> Optional[DocumentVersion]:
        return self.coordinator.get_version(version_id)

    def get_chunks(self, version_id: str) -> List[ChunkRecord]:
        return self.coordinator.get_chunks(version_id)

    def statistics(self, version_id: str) -> ChunkStatistics:
        return compute_statistics(self.get_chunks(version_id))

    def visualization(self, version_id: str) -> Visualization:
        return build_visualization(self.get_chunks(version_id))

    def cancel(self, version_id: str) -> bool:
        return self.coordinator.cancel(version_id)

    def shutdown(self, wait: bool = True) -> None:
        self.coordinator.shutdown(wait=wait)

    # previews and templates -----------------------------------------
    def preview(self, content: str, chunk_config: ChunkConfig) -> PreviewResult:
        return preview_chunks(
            content,
            chunk_config,
            registry=self._chunkers,
            truncate_chars=self.settings.preview_truncate_chars,
        )

    def compare(self, content: str, chunk_configs: Sequence[ChunkConfig]) -> ComparisonResult:
        return compare_strategies(content, chunk_configs, registry=self._chunkers)

    @staticmethod
    def templates() -> Dict[str, ChunkConfigTemplate]:
        return default_templates()

    @staticmethod
    def validate(chunk_config: ChunkConfig) -> ValidationResult:
        return validate_chunk_config(chunk_config)

    @staticmethod
    def recommend(request: RecommendationRequest) -> Recommendation:
        return recommend_chunk_config(request)


@lru_cache()
def get_ingestion_service() -> IngestionService:
    """FastAPI dependency returning the shared :class:`IngestionService` instance."""

    return IngestionService()


__all__ = [
    "IngestionService",
    "IngestionSettings",
    "get_ingestion_service",
]
