from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from knowledge_ingest.main import app
from knowledge_ingest.services.ingestion import IngestionService, IngestionSettings, get_ingestion_service

MARKDOWN = b"# Title\n\npara1\n\n## Sub\n\npara2"


@pytest.fixture()
def service(memory_storage):
    instance = IngestionService(storage=memory_storage, settings=IngestionSettings(max_workers=2))
    app.dependency_overrides[get_ingestion_service] = lambda: instance
    try:
        yield instance
    finally:
        app.dependency_overrides.clear()
        instance.shutdown()


@pytest.fixture()
def client(service) -> TestClient:
    return TestClient(app)


def _upload(client: TestClient, filename: str, data: bytes, content_type: str = "application/octet-stream"):
    return client.post("/files", files={"file": (filename, data, content_type)})


def test_healthchecks(client: TestClient) -> None:
    assert client.get("/").text == "ok"
    assert client.get("/healthz").text == "ok"


def test_upload_process_and_read_back(client: TestClient, service: IngestionService) -> None:
    upload = _upload(client, "notes.md", MARKDOWN, "text/markdown")
    assert upload.status_code == 201
    stored = upload.json()
    assert stored["filename"] == "notes.md"
    assert stored["size"] == len(MARKDOWN)
    assert len(stored["sha256"]) == 64

    listed = client.get("/files")
    assert [item["file_id"] for item in listed.json()] == [stored["file_id"]]

    process = client.post(
        f"/files/{stored['file_id']}/process",
        json={"chunk_config": {"strategy": "structure"}, "options": {"clean_content": True}},
    )
    assert process.status_code == 200
    accepted = process.json()
    assert accepted["version_no"] == 1
    assert accepted["status"] == "processing"
    assert service.coordinator.wait(accepted["version_id"], timeout=10)

    version = client.get(f"/versions/{accepted['version_id']}").json()
    assert version["status"] == "completed"
    assert version["chunk_count"] == 2
    assert version["error"] is None
    assert version["chunk_config"]["strategy"] == "structure"
    assert version["chunk_config"]["max_size"] == 3000

    chunks = client.get(f"/versions/{accepted['version_id']}/chunks").json()
    assert [chunk["sequence"] for chunk in chunks] == [1, 2]
    assert chunks[0]["content"] == "# Title\n\npara1"
    assert chunks[0]["metadata"]["section_title"] == "Title"
    assert chunks[0]["embedding_status"] == "pending"

    statistics = client.get(f"/versions/{accepted['version_id']}/statistics").json()
    assert statistics["total_chunks"] == 2
    assert statistics["length_distribution"] == [{"range": "0-500", "count": 2}]

    visualization = client.get(f"/versions/{accepted['version_id']}/visualization").json()
    assert visualization["total_chunks"] == 2
    assert visualization["chunks"][0]["start_percent"] == 0.0

    versions = client.get(f"/files/{stored['file_id']}/versions").json()
    assert [item["version_id"] for item in versions] == [accepted["version_id"]]

    cancel = client.post(f"/versions/{accepted['version_id']}/cancel")
    assert cancel.json() == {"version_id": accepted["version_id"], "cancelled": False}


def test_process_without_body_uses_defaults(client: TestClient, service: IngestionService) -> None:
    stored = _upload(client, "notes.txt", b"plain words for a default run", "text/plain").json()

    process = client.post(f"/files/{stored['file_id']}/process")
    assert process.status_code == 200
    version_id = process.json()["version_id"]
    assert service.coordinator.wait(version_id, timeout=10)

    version = client.get(f"/versions/{version_id}").json()
    assert version["status"] == "completed"
    assert version["chunk_config"]["strategy"] == "fixed_size"
    assert version["chunk_config"]["max_size"] == 1500


def test_failed_versions_report_their_reason(client: TestClient, service: IngestionService) -> None:
    stored = _upload(client, "scan.pdf", b"definitely not a pdf", "application/pdf").json()

    version_id = client.post(f"/files/{stored['file_id']}/process").json()["version_id"]
    assert service.coordinator.wait(version_id, timeout=10)

    version = client.get(f"/versions/{version_id}").json()
    assert version["status"] == "failed"
    assert version["error"] == "InvalidFormat: invalid PDF header"
    assert client.get(f"/versions/{version_id}/chunks").json() == []


def test_error_status_codes(client: TestClient) -> None:
    unsupported = _upload(client, "tool.exe", b"MZ")
    assert unsupported.status_code == 400
    assert unsupported.json()["detail"].startswith("UnsupportedFormat:")
    assert _upload(client, "legacy.doc", b"\xd0\xcf\x11\xe0", "application/msword").status_code == 400

    assert client.post("/files/missing/process").status_code == 404
    assert client.get("/files/missing/versions").status_code == 404
    assert client.get("/versions/missing").status_code == 404
    assert client.get("/versions/missing/chunks").status_code == 404
    assert client.post("/versions/missing/cancel").status_code == 404

    stored = _upload(client, "notes.txt", b"text", "text/plain").json()
    unknown = client.post(f"/files/{stored['file_id']}/process", json={"chunk_config": {"strategy": "bogus"}})
    assert unknown.status_code == 400
    assert unknown.json()["detail"].startswith("UnknownStrategy:")


def test_preview_and_compare(client: TestClient) -> None:
    preview = client.post(
        "/chunks/preview",
        json={"content": "abcdefghij" * 30, "chunk_config": {"strategy": "fixed_size", "max_size": 50}},
    )
    assert preview.status_code == 200
    body = preview.json()
    assert body["count"] == 3
    assert body["total_size"] == 300

    assert client.post("/chunks/preview", json={"content": ""}).status_code == 422
    bad = client.post("/chunks/preview", json={"content": "text", "chunk_config": {"strategy": "bogus"}})
    assert bad.status_code == 400

    compare = client.post(
        "/chunks/compare",
        json={
            "content": "Alpha paragraph.\n\nBeta paragraph.",
            "chunk_configs": [{"strategy": "fixed_size"}, {"strategy": "semantic"}, {"strategy": "bogus"}],
        },
    )
    assert compare.status_code == 200
    assert compare.json()["recommended_strategy"] == "fixed_size"
    assert len(compare.json()["comparisons"]) == 2
    assert client.post("/chunks/compare", json={"content": "x", "chunk_configs": []}).status_code == 422


def test_chunk_config_endpoints(client: TestClient) -> None:
    defaults = client.get("/chunk-configs/defaults").json()
    assert defaults["semantic"]["max_size"] == 2000

    invalid = client.post("/chunk-configs/validate", json={"strategy": "fixed_size", "max_size": 50, "overlap": 0})
    assert invalid.json()["is_valid"] is False
    assert invalid.json()["errors"] == ["max_size must be at least 100 characters"]

    recommendation = client.post(
        "/chunk-configs/recommend",
        json={"document_type": "markdown", "document_length": 20000, "has_structure": True},
    ).json()
    assert recommendation["recommended_config"]["strategy"] == "structure"
    assert recommendation["confidence"] == 1.0
    assert len(recommendation["alternatives"]) == 3
