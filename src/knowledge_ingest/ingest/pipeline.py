"""Ingestion coordinator: versioned, asynchronous parse -> chunk -> persist."""
from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import wait as wait_futures
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Tuple

from knowledge_ingest.telemetry import emit_exception, emit_ingest_event, emit_version_audit, traced_duration

from .chunking import ChunkConfig, ChunkerRegistry, default_chunker_registry
from .errors import (
    IngestFileNotFoundError,
    IngestionCancelledError,
    IngestionError,
    InternalIngestionError,
    StorageError,
    VersionConflictError,
)
from .format_detection import ParserRegistry, default_parser_registry
from .models import ChunkRecord, Document, DocumentVersion, StoredFile, VersionStatus, chunk_to_record
from .normalization import DocumentNormalizer, collapse_horizontal_whitespace, count_words

if TYPE_CHECKING:  # pragma: no cover - import for type checking only
    from knowledge_ingest.storage import BlobReader, ChunkSink, FileRepository, IngestStore

LOGGER = logging.getLogger(__name__)

MAX_VERSION_ATTEMPTS = 3
DEFAULT_MAX_WORKERS = 4


@dataclass(slots=True)
class IngestOptions:
    extract_images: bool = True
    extract_tables: bool = True
    extract_links: bool = True
    clean_content: bool = False

    @classmethod
    def from_mapping(cls, data: Optional[Dict[str, Any]]) -> "IngestOptions":
        data = data or {}
        return cls(
            extract_images=bool(data.get("extract_images", True)),
            extract_tables=bool(data.get("extract_tables", True)),
            extract_links=bool(data.get("extract_links", True)),
            clean_content=bool(data.get("clean_content", False)),
        )


@dataclass(slots=True)
class IngestionContext:
    """Cancellation flag and optional deadline carried by one ingestion.

    ``deadline`` is a :func:`time.monotonic` timestamp.
    """

    deadline: Optional[float] = None
    cancel_event: threading.Event = field(default_factory=threading.Event)

    @classmethod
    def with_timeout(cls, seconds: Optional[float]) -> "IngestionContext":
        if not seconds or seconds <= 0:
            return cls()
        return cls(deadline=time.monotonic() + seconds)

    def cancel(self) -> None:
        self.cancel_event.set()

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()

    def check(self, stage: str) -> None:
        if self.cancel_event.is_set():
            raise IngestionCancelledError(f"ingestion cancelled before {stage}")
        if self.deadline is not None and time.monotonic() >= self.deadline:
            raise IngestionCancelledError(f"deadline exceeded before {stage}")


@dataclass(slots=True)
class ProcessResult:
    version_id: str
    version_no: int
    status: VersionStatus = VersionStatus.PROCESSING

    def to_dict(self) -> Dict[str, Any]:
        return {"version_id": self.version_id, "version_no": self.version_no, "status": self.status.value}


def apply_ingest_options(document: Document, options: IngestOptions) -> Document:
    if not options.extract_images:
        document.images = []
    if not options.extract_tables:
        document.tables = []
    if not options.extract_links:
        document.links = []
    if options.clean_content:
        document.content = collapse_horizontal_whitespace(document.content)
        document.word_count = count_words(document.content)
    return document


class IngestionCoordinator:
    """Creates document versions and runs their ingestion on a worker pool.

    :meth:`process_document` returns as soon as the version row exists. The
    background task always finishes with exactly one terminal update of that
    version, whatever happens while parsing, chunking or persisting.
    """

    def __init__(
        self,
        file_repository: "FileRepository",
        blob_reader: "BlobReader",
        chunk_sink: "ChunkSink",
        *,
        parser_registry: Optional[ParserRegistry] = None,
        chunker_registry: Optional[ChunkerRegistry] = None,
        normalizer: Optional[DocumentNormalizer] = None,
        executor: Optional[ThreadPoolExecutor] = None,
        max_workers: int = DEFAULT_MAX_WORKERS,
        version_reader: Optional["IngestStore"] = None,
    ) -> None:
        self._files = file_repository
        self._blobs = blob_reader
        self._sink = chunk_sink
        self._reader = version_reader or chunk_sink
        self._parsers = parser_registry or default_parser_registry()
        self._chunkers = chunker_registry or default_chunker_registry()
        self._normalizer = normalizer or DocumentNormalizer()
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(
            max_workers=max(1, max_workers), thread_name_prefix="ingest"
        )
        self._allocation_lock = threading.Lock()
        self._tasks_lock = threading.Lock()
        self._tasks: Dict[str, Tuple[Future, IngestionContext]] = {}
        self._closed = False

    # submission ------------------------------------------------------
    def process_document(
        self,
        file_id: str,
        chunk_config: ChunkConfig,
        options: Optional[IngestOptions] = None,
        *,
        context: Optional[IngestionContext] = None,
    ) -> ProcessResult:
        if self._closed:
            raise InternalIngestionError("ingestion coordinator is shut down")
        stored = self._files.get_file(file_id)
        if stored is None:
            raise IngestFileNotFoundError(f"file not found: {file_id}")

        config = chunk_config.normalized()
        self._chunkers.resolve(config.strategy)
        options = options or IngestOptions()
        context = context or IngestionContext()

        version_id, version_no = self._allocate_version(file_id, config)
        LOGGER.info(
            "Queued ingestion of %s (%s) as version %s (%s)", stored.filename, file_id, version_no, version_id
        )
        emit_ingest_event(
            "ingest.queued",
            file_name=stored.filename,
            file_id=file_id,
            version_id=version_id,
            size_bytes=stored.size,
            strategy=config.strategy,
        )

        try:
            with self._tasks_lock:
                future = self._executor.submit(self._run, stored, version_id, version_no, config, options, context)
                self._tasks[version_id] = (future, context)
        except RuntimeError as exc:
            error = InternalIngestionError(f"could not schedule ingestion: {exc}", cause=exc)
            self._finish(stored, version_id, version_no, config, VersionStatus.FAILED, 0, error.reason)
            raise error from exc
        future.add_done_callback(lambda _: self._forget(version_id))
        return ProcessResult(version_id=version_id, version_no=version_no)

    def _allocate_version(self, file_id: str, config: ChunkConfig) -> Tuple[str, int]:
        last_error: Optional[VersionConflictError] = None
        with self._allocation_lock:
            for attempt in range(1, MAX_VERSION_ATTEMPTS + 1):
                version_no = self._files.latest_version_no(file_id) + 1
                try:
                    version_id = self._sink.create_version(
                        file_id, version_no, config.to_json(), VersionStatus.PROCESSING
                    )
                except VersionConflictError as exc:
                    LOGGER.warning(
                        "Version %s of %s already taken (attempt %s/%s)",
                        version_no,
                        file_id,
                        attempt,
                        MAX_VERSION_ATTEMPTS,
                    )
                    last_error = exc
                    continue
                return version_id, version_no
        raise StorageError(
            f"could not allocate a version for file {file_id} after {MAX_VERSION_ATTEMPTS} attempts",
            cause=last_error,
        )

    # background task -------------------------------------------------
    def _run(
        self,
        stored: StoredFile,
        version_id: str,
        version_no: int,
        config: ChunkConfig,
        options: IngestOptions,
        context: IngestionContext,
    ) -> None:
        status = VersionStatus.FAILED
        chunk_count = 0
        error: Optional[str] = InternalIngestionError("ingestion aborted").reason
        try:
            chunk_count = self._ingest(stored, version_id, config, options, context)
            status = VersionStatus.COMPLETED
            error = None
        except IngestionError as exc:
            error = exc.reason
            emit_exception(module=__name__, error=exc, file_id=stored.file_id, version_id=version_id)
        except Exception as exc:
            error = InternalIngestionError(str(exc) or exc.__class__.__name__, cause=exc).reason
            emit_exception(module=__name__, error=exc, file_id=stored.file_id, version_id=version_id)
        finally:
            if status is VersionStatus.FAILED:
                chunk_count = 0
            self._finish(stored, version_id, version_no, config, status, chunk_count, error)

    def _ingest(
        self,
        stored: StoredFile,
        version_id: str,
        config: ChunkConfig,
        options: IngestOptions,
        context: IngestionContext,
    ) -> int:
        started = time.perf_counter()
        context.check("blob read")
        data = self._read_blob(stored)
        context.check("parsing")

        with traced_duration("ingest.parse", logger=LOGGER, file_id=stored.file_id, version_id=version_id):
            parser = self._parsers.resolve(stored.filename, stored.content_type or None)
            document = parser.parse(data, stored.to_metadata())
            document = self._normalizer.normalize(document)
        apply_ingest_options(document, options)

        with traced_duration("ingest.chunk", logger=LOGGER, version_id=version_id, strategy=config.strategy):
            chunker = self._chunkers.resolve(config.strategy)
            chunks = chunker.chunk(document, config)

        context.check("persistence")
        records = [chunk_to_record(chunk, sequence) for sequence, chunk in enumerate(chunks, start=1)]
        self._write_batch(version_id, records)

        emit_ingest_event(
            "ingest.completed",
            file_name=stored.filename,
            file_id=stored.file_id,
            version_id=version_id,
            size_bytes=len(data),
            duration_ms=round((time.perf_counter() - started) * 1000.0, 3),
            language=document.language,
            pages=document.page_count,
            strategy=config.strategy,
            chunks=len(records),
        )
        return len(records)

    def _read_blob(self, stored: StoredFile) -> bytes:
        try:
            with self._blobs.open(stored.blob_ref) as stream:
                return stream.read()
        except IngestionError:
            raise
        except OSError as exc:
            raise StorageError(f"failed to read blob {stored.blob_ref}: {exc}", cause=exc) from exc

    def _write_batch(self, version_id: str, records: List[ChunkRecord]) -> None:
        try:
            self._sink.write_chunks_batch(version_id, records)
        except IngestionError:
            raise
        except Exception as exc:
            raise StorageError(f"failed to persist chunks: {exc}", cause=exc) from exc

    def _finish(
        self,
        stored: StoredFile,
        version_id: str,
        version_no: int,
        config: ChunkConfig,
        status: VersionStatus,
        chunk_count: int,
        error: Optional[str],
    ) -> None:
        try:
            self._sink.update_version(version_id, status, chunk_count, error=error)
        except Exception as exc:
            LOGGER.error("Failed to record terminal status %s for version %s", status.value, version_id)
            emit_exception(module=__name__, error=exc, file_id=stored.file_id, version_id=version_id)
            return

        LOGGER.info("Version %s of %s finished as %s (%s chunks)", version_no, stored.file_id, status.value, chunk_count)
        emit_version_audit(
            file_id=stored.file_id,
            file_name=stored.filename,
            version_id=version_id,
            version_no=version_no,
            status=status.value,
            chunk_count=chunk_count,
            strategy=config.strategy,
            error=error,
        )

    # task control ----------------------------------------------------
    def _forget(self, version_id: str) -> None:
        with self._tasks_lock:
            self._tasks.pop(version_id, None)

    def cancel(self, version_id: str) -> bool:
        """Request cancellation; returns ``False`` when the ingestion is no longer running."""

        with self._tasks_lock:
            task = self._tasks.get(version_id)
        if task is None:
            return False
        future, context = task
        context.cancel()
        LOGGER.info("Cancellation requested for version %s", version_id)
        return not future.done()

    def wait(self, version_id: str, timeout: Optional[float] = None) -> bool:
        """Block until the ingestion of ``version_id`` finished; ``False`` on timeout."""

        with self._tasks_lock:
            task = self._tasks.get(version_id)
        if task is None:
            return True
        done, _ = wait_futures([task[0]], timeout=timeout)
        return bool(done)

    def wait_all(self, timeout: Optional[float] = None) -> bool:
        with self._tasks_lock:
            futures = [future for future, _ in self._tasks.values()]
        _, pending = wait_futures(futures, timeout=timeout)
        return not pending

    def shutdown(self, wait: bool = True) -> None:
        with self._tasks_lock:
            self._closed = True
            contexts = [context for _, context in self._tasks.values()]
        if not wait:
            for context in contexts:
                context.cancel()
        if self._owns_executor:
            self._executor.shutdown(wait=wait)

    # read operations -------------------------------------------------
    def get_version(self, version_id: str) -> Optional[DocumentVersion]:
        return self._reader.get_version(version_id)  # type: ignore[union-attr]

    def list_versions(self, file_id: str) -> List[DocumentVersion]:
        if self._files.get_file(file_id) is None:
            raise IngestFileNotFoundError(f"file not found: {file_id}")
        return self._reader.list_versions(file_id)  # type: ignore[union-attr]

    def get_chunks(self, version_id: str) -> List[ChunkRecord]:
        return self._reader.get_chunks(version_id)  # type: ignore[union-attr]


__all__ = [
    "IngestOptions",
    "IngestionContext",
    "IngestionCoordinator",
    "ProcessResult",
    "apply_ingest_options",
]
