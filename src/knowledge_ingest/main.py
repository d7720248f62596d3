import logging

from fastapi import FastAPI
from fastapi.responses import PlainTextResponse

from knowledge_ingest.api import chunks_router, files_router
from knowledge_ingest.logging_config import configure_logging
from knowledge_ingest.services.ingestion import get_ingestion_service
from knowledge_ingest.telemetry import emit_app_startup_event, emit_env_versions

configure_logging()

LOGGER = logging.getLogger(__name__)

app = FastAPI(title="Knowledge Ingest API")
app.include_router(files_router)
app.include_router(chunks_router)


@app.on_event("startup")
async def _startup_events() -> None:
    """Record the runtime environment once the application boots."""

    emit_app_startup_event()
    emit_env_versions()


@app.on_event("shutdown")
async def _drain_ingestions() -> None:
    if get_ingestion_service.cache_info().currsize:
        LOGGER.info("Waiting for running ingestions to finish")
        get_ingestion_service().shutdown(wait=True)


@app.get("/", response_class=PlainTextResponse)
def read_root() -> str:
    """Healthcheck endpoint for the service."""
    return "ok"


@app.get("/healthz", response_class=PlainTextResponse)
def healthcheck() -> str:
    """Liveness probe used by container orchestrators."""
    return "ok"
