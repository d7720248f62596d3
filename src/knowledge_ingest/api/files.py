"""API router exposing uploads, versioned processing and persisted chunks."""
from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from pydantic import BaseModel, Field

from knowledge_ingest.ingest.chunking import ChunkConfig
from knowledge_ingest.ingest.errors import IngestionError
from knowledge_ingest.ingest.models import ChunkRecord, DocumentVersion, StoredFile
from knowledge_ingest.ingest.pipeline import IngestOptions
from knowledge_ingest.services.ingestion import IngestionService, get_ingestion_service

from .errors import to_http_exception

router = APIRouter(tags=["files"])


class ChunkConfigModel(BaseModel):
    """Chunking request; zero and null fields fall back to the strategy defaults."""

    strategy: str = Field("fixed_size", description="fixed_size, semantic, structure or code.")
    max_size: int = Field(0, description="Maximum chunk length in characters; 0 selects the default.")
    overlap: int = Field(0, description="Characters shared by consecutive chunks.")
    separators: list[str] | None = Field(None, description="Ordered fallback break points.")
    preserve_context: bool = Field(False, description="Snap fixed-size windows to sentence ends.")

    def to_config(self) -> ChunkConfig:
        return ChunkConfig(
            strategy=self.strategy,
            max_size=self.max_size,
            overlap=self.overlap,
            separators=list(self.separators) if self.separators is not None else None,
            preserve_context=self.preserve_context,
        )


class IngestOptionsModel(BaseModel):
    extract_images: bool = True
    extract_tables: bool = True
    extract_links: bool = True
    clean_content: bool = False

    def to_options(self) -> IngestOptions:
        return IngestOptions(
            extract_images=self.extract_images,
            extract_tables=self.extract_tables,
            extract_links=self.extract_links,
            clean_content=self.clean_content,
        )


class ProcessRequest(BaseModel):
    """Request body accepted by the process endpoint."""

    chunk_config: ChunkConfigModel = Field(default_factory=ChunkConfigModel)
    options: IngestOptionsModel = Field(default_factory=IngestOptionsModel)


class FileResponse(BaseModel):
    file_id: str
    filename: str
    content_type: str
    size: int
    sha256: str
    created_at: float


class ProcessResponse(BaseModel):
    version_id: str
    version_no: int
    status: str


class VersionResponse(BaseModel):
    version_id: str
    file_id: str
    version_no: int
    chunk_config: dict[str, Any]
    status: str
    chunk_count: int
    error: str | None
    created_at: float
    updated_at: float


class ChunkResponse(BaseModel):
    sequence: int
    content: str
    metadata: dict[str, Any]
    embedding_status: str


class CancelResponse(BaseModel):
    version_id: str
    cancelled: bool


def _serialise_file(stored: StoredFile) -> FileResponse:
    return FileResponse(
        file_id=stored.file_id,
        filename=stored.filename,
        content_type=stored.content_type,
        size=stored.size,
        sha256=stored.sha256,
        created_at=stored.created_at,
    )


def _serialise_version(version: DocumentVersion) -> VersionResponse:
    return VersionResponse(
        version_id=version.version_id,
        file_id=version.file_id,
        version_no=version.version_no,
        chunk_config=ChunkConfig.from_json(version.chunk_config).to_dict(),
        status=version.status.value,
        chunk_count=version.chunk_count,
        error=version.error,
        created_at=version.created_at,
        updated_at=version.updated_at,
    )


def _serialise_chunk(record: ChunkRecord) -> ChunkResponse:
    return ChunkResponse(
        sequence=record.sequence,
        content=record.content,
        metadata=dict(record.metadata),
        embedding_status=record.embedding_status,
    )


def _require_version(service: IngestionService, version_id: str) -> DocumentVersion:
    version = service.get_version(version_id)
    if version is None:
        raise HTTPException(status_code=404, detail=f"Version not found: {version_id}")
    return version


@router.post("/files", response_model=FileResponse, status_code=201)
async def upload_file(
    file: UploadFile = File(...),
    service: IngestionService = Depends(get_ingestion_service),
) -> FileResponse:
    """Store an uploaded document so it can be processed into chunks."""

    try:
        stored = await service.save_upload(file)
    except IngestionError as exc:
        raise to_http_exception(exc) from exc
    return _serialise_file(stored)


@router.get("/files", response_model=list[FileResponse])
def list_files(service: IngestionService = Depends(get_ingestion_service)) -> list[FileResponse]:
    return [_serialise_file(stored) for stored in service.list_files()]


@router.post("/files/{file_id}/process", response_model=ProcessResponse, status_code=200)
def process_file(
    file_id: str,
    request: ProcessRequest | None = None,
    service: IngestionService = Depends(get_ingestion_service),
) -> ProcessResponse:
    """Create a new version of the file and chunk it in the background."""

    request = request or ProcessRequest()
    try:
        result = service.process(file_id, request.chunk_config.to_config(), request.options.to_options())
    except IngestionError as exc:
        raise to_http_exception(exc) from exc
    return ProcessResponse(**result.to_dict())


@router.get("/files/{file_id}/versions", response_model=list[VersionResponse])
def list_versions(
    file_id: str,
    service: IngestionService = Depends(get_ingestion_service),
) -> list[VersionResponse]:
    try:
        versions = service.list_versions(file_id)
    except IngestionError as exc:
        raise to_http_exception(exc) from exc
    return [_serialise_version(version) for version in versions]


@router.get("/versions/{version_id}", response_model=VersionResponse)
def get_version(
    version_id: str,
    service: IngestionService = Depends(get_ingestion_service),
) -> VersionResponse:
    return _serialise_version(_require_version(service, version_id))


@router.get("/versions/{version_id}/chunks", response_model=list[ChunkResponse])
def get_chunks(
    version_id: str,
    service: IngestionService = Depends(get_ingestion_service),
) -> list[ChunkResponse]:
    _require_version(service, version_id)
    return [_serialise_chunk(record) for record in service.get_chunks(version_id)]


@router.get("/versions/{version_id}/statistics")
def get_statistics(
    version_id: str,
    service: IngestionService = Depends(get_ingestion_service),
) -> dict[str, Any]:
    """Summarise chunk lengths and token counts of a version."""

    _require_version(service, version_id)
    return service.statistics(version_id).to_dict()


@router.get("/versions/{version_id}/visualization")
def get_visualization(
    version_id: str,
    service: IngestionService = Depends(get_ingestion_service),
) -> dict[str, Any]:
    _require_version(service, version_id)
    return service.visualization(version_id).to_dict()


@router.post("/versions/{version_id}/cancel", response_model=CancelResponse)
def cancel_version(
    version_id: str,
    service: IngestionService = Depends(get_ingestion_service),
) -> CancelResponse:
    _require_version(service, version_id)
    return CancelResponse(version_id=version_id, cancelled=service.cancel(version_id))
