"""Service layer wiring storage, the coordinator and chunk previews together."""

from .ingestion import IngestionService, IngestionSettings, get_ingestion_service

__all__ = ["IngestionService", "IngestionSettings", "get_ingestion_service"]
