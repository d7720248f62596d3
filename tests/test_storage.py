from __future__ import annotations

import json

import pytest

from knowledge_ingest.ingest.errors import StorageError, VersionConflictError
from knowledge_ingest.ingest.models import ChunkRecord, StoredFile, VersionStatus
from knowledge_ingest.storage import (
    InMemoryBlobStore,
    InMemoryIngestStore,
    LocalBlobStore,
    PersistentIngestStore,
    get_storage,
    reset_storage_cache,
    sanitize_filename,
)


def _records(count: int) -> list[ChunkRecord]:
    return [ChunkRecord(sequence=index, content=f"chunk {index}", metadata={"type": "semantic"}) for index in range(1, count + 1)]


def test_memory_blob_round_trip() -> None:
    blobs = InMemoryBlobStore()
    ref = blobs.put(b"payload", filename="a.txt")

    with blobs.open(ref) as stream:
        assert stream.read() == b"payload"
    with pytest.raises(StorageError):
        with blobs.open("mem://unknown"):
            pass


def test_version_numbers_are_unique_per_file() -> None:
    store = InMemoryIngestStore()
    store.add_file(StoredFile(file_id="f1", filename="a.txt", blob_ref="mem://a"))

    first = store.create_version("f1", 1, "{}")
    assert store.latest_version_no("f1") == 1
    with pytest.raises(VersionConflictError):
        store.create_version("f1", 1, "{}")
    store.create_version("f2", 1, "{}")

    version = store.get_version(first)
    assert version.status is VersionStatus.PROCESSING
    assert version.created_at > 0


def test_terminal_update_happens_once() -> None:
    store = InMemoryIngestStore()
    version_id = store.create_version("f1", 1, "{}")

    updated = store.update_version(version_id, VersionStatus.COMPLETED, 2)
    assert updated.status is VersionStatus.COMPLETED
    assert updated.chunk_count == 2
    with pytest.raises(StorageError):
        store.update_version(version_id, VersionStatus.FAILED, 0, error="late")
    with pytest.raises(StorageError):
        store.update_version("unknown", VersionStatus.FAILED, 0)


def test_chunk_batches_are_validated() -> None:
    store = InMemoryIngestStore()
    version_id = store.create_version("f1", 1, "{}")

    with pytest.raises(StorageError):
        store.write_chunks_batch(version_id, [ChunkRecord(sequence=2, content="x", metadata={})])
    with pytest.raises(StorageError):
        store.write_chunks_batch("unknown", _records(1))

    store.write_chunks_batch(version_id, _records(3))
    assert [record.sequence for record in store.get_chunks(version_id)] == [1, 2, 3]
    with pytest.raises(StorageError):
        store.write_chunks_batch(version_id, _records(1))


def test_returned_versions_are_copies() -> None:
    store = InMemoryIngestStore()
    version_id = store.create_version("f1", 1, "{}")

    snapshot = store.get_version(version_id)
    snapshot.status = VersionStatus.COMPLETED
    assert store.get_version(version_id).status is VersionStatus.PROCESSING


def test_sanitize_filename() -> None:
    assert sanitize_filename("../../etc/passwd") == "passwd"
    assert sanitize_filename("my report (final).pdf") == "my_report_final_.pdf"
    assert sanitize_filename("") == "upload"


def test_local_blob_store_writes_under_uploads(tmp_path) -> None:
    blobs = LocalBlobStore(tmp_path)
    ref = blobs.put(b"disk bytes", filename="report final.pdf")

    assert ref.startswith("uploads/report_final-")
    assert ref.endswith(".pdf")
    with blobs.open(ref) as handle:
        assert handle.read() == b"disk bytes"
    with pytest.raises(StorageError):
        with blobs.open("../outside.txt"):
            pass
    with pytest.raises(StorageError):
        with blobs.open("uploads/missing.txt"):
            pass


def test_persistent_store_survives_restart(tmp_path) -> None:
    store = PersistentIngestStore(tmp_path)
    store.add_file(StoredFile(file_id="f1", filename="a.txt", blob_ref="uploads/a.txt", size=3))
    done = store.create_version("f1", 1, '{"strategy": "semantic"}')
    store.write_chunks_batch(done, _records(2))
    store.update_version(done, VersionStatus.COMPLETED, 2)
    running = store.create_version("f1", 2, "{}")

    payload = json.loads(store.data_path.read_text(encoding="utf-8"))
    assert {item["version_no"] for item in payload["versions"]} == {1, 2}

    reloaded = PersistentIngestStore(tmp_path)
    assert reloaded.get_file("f1").size == 3
    assert reloaded.get_version(done).status is VersionStatus.COMPLETED
    assert [record.content for record in reloaded.get_chunks(done)] == ["chunk 1", "chunk 2"]
    interrupted = reloaded.get_version(running)
    assert interrupted.status is VersionStatus.FAILED
    assert interrupted.error.startswith("InternalError:")
    assert reloaded.latest_version_no("f1") == 2


def test_persistent_store_rolls_back_when_writing_state_fails(monkeypatch, tmp_path) -> None:
    store = PersistentIngestStore(tmp_path)
    store.add_file(StoredFile(file_id="f1", filename="a.txt", blob_ref="uploads/a.txt"))
    first = store.create_version("f1", 1, "{}")

    monkeypatch.setattr(store, "_snapshot", lambda: {"unserializable": object()})
    with pytest.raises(StorageError):
        store.create_version("f1", 2, "{}")
    assert [version.version_no for version in store.list_versions("f1")] == [1]
    assert store.latest_version_no("f1") == 1

    with pytest.raises(StorageError):
        store.update_version(first, VersionStatus.COMPLETED, 0)
    assert store.get_version(first).status is VersionStatus.PROCESSING

    monkeypatch.undo()
    assert store.update_version(first, VersionStatus.FAILED, 0, error="Cancelled: stop").status is VersionStatus.FAILED
    assert store.create_version("f1", 2, "{}")
    reloaded = PersistentIngestStore(tmp_path)
    assert [version.version_no for version in reloaded.list_versions("f1")] == [1, 2]


def test_persistent_store_ignores_corrupt_state(tmp_path) -> None:
    (tmp_path / "ingest_store.json").write_text("{not json", encoding="utf-8")

    store = PersistentIngestStore(tmp_path)
    assert store.list_files() == []


def test_get_storage_selects_backend(monkeypatch, tmp_path) -> None:
    reset_storage_cache()
    monkeypatch.setenv("INGEST_STORAGE", "local")
    monkeypatch.setenv("INGEST_DATA_DIR", str(tmp_path))
    try:
        storage = get_storage()
        assert storage.backend == "local"
        assert isinstance(storage.blobs, LocalBlobStore)
        assert isinstance(storage.store, PersistentIngestStore)

        reset_storage_cache()
        monkeypatch.setenv("INGEST_STORAGE", "s3")
        with pytest.raises(ValueError):
            get_storage()
    finally:
        reset_storage_cache()
