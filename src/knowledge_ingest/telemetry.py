"""Centralised observability helpers for structured ingestion logging."""

from __future__ import annotations

import logging
import os
import platform
import socket
import sys
import time
import traceback
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, Optional

from .logging_config import get_ingest_audit_logger

LOGGER = logging.getLogger("knowledge_ingest.telemetry")

_ENV_KEYS_TO_LOG: tuple[str, ...] = (
    "INGEST_MAX_WORKERS",
    "INGEST_DEADLINE_SECONDS",
    "INGEST_STORAGE",
    "INGEST_DATA_DIR",
    "INGEST_AUDIT_LOG",
    "PDF_TEXT_ENGINE",
    "PREVIEW_TRUNCATE_CHARS",
    "LOG_LEVEL",
)


def _format_exception(error: BaseException) -> str:
    return "".join(traceback.format_exception(error.__class__, error, error.__traceback__))


def log_event(
    logger: Optional[logging.Logger],
    step: str,
    *,
    level: str = "info",
    req_id: str | None = None,
    file_id: str | None = None,
    version_id: str | None = None,
    duration_ms: float | None = None,
    exc: BaseException | str | None = None,
    details: dict[str, Any] | None = None,
    extra: dict[str, Any] | None = None,
    **payload: Any,
) -> None:
    """Emit a structured log event with the agreed-upon schema."""

    logger = logger or LOGGER
    event: dict[str, Any] = {"step": step, "module": logger.name}
    if req_id:
        event["req_id"] = req_id
    if file_id:
        event["file_id"] = file_id
    if version_id:
        event["version_id"] = version_id
    if duration_ms is not None:
        event["duration_ms"] = round(duration_ms, 3)
    if details is not None:
        event["details"] = details
    if extra:
        event.update(extra)
    event.update(payload)

    exc_info = None
    if exc is not None:
        if isinstance(exc, BaseException):
            event["exc"] = _format_exception(exc)
            exc_info = (exc.__class__, exc, exc.__traceback__)
        else:
            event["exc"] = str(exc)

    log_method = getattr(logger, level.lower(), logger.info)
    log_method(event, exc_info=exc_info)


def emit_app_startup_event() -> None:
    env_values = {key: os.getenv(key) for key in _ENV_KEYS_TO_LOG if os.getenv(key) is not None}
    details = {
        "env": env_values,
        "python": sys.version.split()[0],
        "platform": platform.platform(),
    }
    payload = {
        "pid": os.getpid(),
        "hostname": socket.gethostname(),
        "cwd": str(Path.cwd()),
    }
    log_event(LOGGER, "app.startup", details=details, extra=payload)


def emit_env_versions() -> None:
    from importlib import metadata

    packages = {
        "python": sys.version.split()[0],
        "fastapi": _package_version(metadata, "fastapi"),
        "pydantic": _package_version(metadata, "pydantic"),
        "PyPDF2": _package_version(metadata, "PyPDF2"),
        "python-docx": _package_version(metadata, "python-docx"),
        "PyYAML": _package_version(metadata, "PyYAML"),
    }
    log_event(LOGGER, "env.versions", details=packages)


def _package_version(metadata_module: Any, name: str) -> Optional[str]:
    try:
        return metadata_module.version(name)
    except metadata_module.PackageNotFoundError:  # type: ignore[attr-defined]
        return None


def emit_ingest_event(
    step: str,
    *,
    file_name: str,
    file_id: str | None = None,
    version_id: str | None = None,
    size_bytes: int | None = None,
    duration_ms: float | None = None,
    language: str | None = None,
    pages: int | None = None,
    strategy: str | None = None,
    chunks: int | None = None,
) -> None:
    details = {
        "file": file_name,
        "size_bytes": size_bytes,
        "duration_ms": duration_ms,
        "language": language,
        "pages": pages,
        "strategy": strategy,
        "chunks": chunks,
    }
    log_event(LOGGER, step, file_id=file_id, version_id=version_id, details=details)


def emit_version_audit(
    *,
    file_id: str,
    file_name: str,
    version_id: str,
    version_no: int,
    status: str,
    chunk_count: int,
    strategy: str,
    error: str | None = None,
) -> None:
    """Write one audit line for a terminal version transition."""

    get_ingest_audit_logger().info(
        {
            "event": "version.terminal",
            "file_id": file_id,
            "filename": file_name,
            "version_id": version_id,
            "version_no": version_no,
            "status": status,
            "chunks": chunk_count,
            "strategy": strategy,
            "error": error,
        }
    )


def emit_exception(
    *,
    module: str,
    error: BaseException,
    req_id: str | None = None,
    file_id: str | None = None,
    version_id: str | None = None,
    suggestion: str | None = None,
) -> None:
    details = {"module": module}
    if suggestion:
        details["suggestion"] = suggestion
    log_event(
        LOGGER,
        "exception",
        level="error",
        req_id=req_id,
        file_id=file_id,
        version_id=version_id,
        details=details,
        exc=error,
    )


@contextmanager
def traced_duration(step: str, *, logger: Optional[logging.Logger] = None, **fields: Any) -> Iterator[None]:
    start = time.perf_counter()
    log_event(logger or LOGGER, f"{step}.start", details=fields)
    try:
        yield
    except Exception as error:
        log_event(logger or LOGGER, f"{step}.error", level="error", details=fields, exc=error)
        raise
    finally:
        end = time.perf_counter()
        log_event(
            logger or LOGGER,
            f"{step}.complete",
            duration_ms=(end - start) * 1000.0,
            details=fields,
        )


__all__ = [
    "emit_app_startup_event",
    "emit_env_versions",
    "emit_exception",
    "emit_ingest_event",
    "emit_version_audit",
    "log_event",
    "traced_duration",
]
