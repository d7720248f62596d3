"""API router for chunk previews, strategy comparison and configuration templates."""
from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from knowledge_ingest.ingest.chunking.templates import RecommendationRequest
from knowledge_ingest.ingest.errors import IngestionError
from knowledge_ingest.services.ingestion import IngestionService, get_ingestion_service

from .errors import to_http_exception
from .files import ChunkConfigModel

router = APIRouter(tags=["chunks"])


class PreviewRequest(BaseModel):
    content: str = Field(..., min_length=1, description="Text to chunk without persisting anything.")
    chunk_config: ChunkConfigModel = Field(default_factory=ChunkConfigModel)


class CompareRequest(BaseModel):
    content: str = Field(..., min_length=1, description="Text chunked once per configuration.")
    chunk_configs: list[ChunkConfigModel] = Field(..., min_length=1)


class RecommendRequest(BaseModel):
    """Document characteristics used to pick a chunking configuration."""

    document_type: str = Field("", description="pdf, docx, markdown, html, code or empty.")
    document_length: int = Field(0, ge=0)
    has_structure: bool = False
    language: str = ""
    purpose: str = ""


@router.post("/chunks/preview")
def preview_chunks(
    request: PreviewRequest,
    service: IngestionService = Depends(get_ingestion_service),
) -> dict[str, Any]:
    """Chunk the submitted text and return shortened chunks."""

    try:
        result = service.preview(request.content, request.chunk_config.to_config())
    except IngestionError as exc:
        raise to_http_exception(exc) from exc
    return result.to_dict()


@router.post("/chunks/compare")
def compare_strategies(
    request: CompareRequest,
    service: IngestionService = Depends(get_ingestion_service),
) -> dict[str, Any]:
    """Chunk the submitted text with every configuration and recommend the most efficient one."""

    configs = [item.to_config() for item in request.chunk_configs]
    return service.compare(request.content, configs).to_dict()


@router.get("/chunk-configs/defaults")
def default_configs(service: IngestionService = Depends(get_ingestion_service)) -> dict[str, Any]:
    return {name: template.to_dict() for name, template in service.templates().items()}


@router.post("/chunk-configs/validate")
def validate_config(
    request: ChunkConfigModel,
    service: IngestionService = Depends(get_ingestion_service),
) -> dict[str, Any]:
    return service.validate(request.to_config()).to_dict()


@router.post("/chunk-configs/recommend")
def recommend_config(
    request: RecommendRequest,
    service: IngestionService = Depends(get_ingestion_service),
) -> dict[str, Any]:
    recommendation = service.recommend(
        RecommendationRequest(
            document_type=request.document_type,
            document_length=request.document_length,
            has_structure=request.has_structure,
            language=request.language,
            purpose=request.purpose,
        )
    )
    return recommendation.to_dict()
