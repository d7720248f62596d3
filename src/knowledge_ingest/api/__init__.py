"""HTTP routers exposing the ingestion service."""

from .chunks import router as chunks_router
from .files import router as files_router

__all__ = ["chunks_router", "files_router"]
