from __future__ import annotations

from io import BytesIO
from pathlib import Path
from uuid import uuid4

from fastapi.testclient import TestClient

from docqa.api.app import build_dependencies, create_app
from docqa.config import Settings


def make_settings(tmp_path: Path) -> Settings:
    return Settings(
        environment="test",
        data_dir=tmp_path / "data",
        chroma_persist_dir=tmp_path / "chroma",
        chroma_host=None,
        embedding_dim=32,
        index_name=f"e2e-{uuid4().hex[:12]}",
    )


def make_app(tmp_path: Path) -> TestClient:
    return TestClient(create_app(settings=make_settings(tmp_path)))


def test_build_dependencies_prepares_stores(tmp_path: Path):
    deps = build_dependencies(make_settings(tmp_path))
    assert (tmp_path / "data" / "status").is_dir()
    assert deps.statuses.list() == []
    assert deps.index.count() == 0


def test_health_and_unreadable_pdf_flow(tmp_path: Path):
    client = make_app(tmp_path)
    assert client.get("/healthz").status_code == 200
    ready = client.get("/healthz/ready").json()
    assert ready == {"status": "ready", "chunks": 0}

    files = {"file": ("broken.pdf", BytesIO(b"this is not a pdf"), "application/pdf")}
    response = client.post("/upload", files=files)
    assert response.status_code == 202, response.text
    document_id = response.json()["document_id"]

    record = client.get(f"/status/{document_id}").json()
    assert record["status"] == "failed"
    assert record["error_step"] == "text_extraction"
    assert (tmp_path / "data" / "blobs" / document_id / "broken.pdf").exists()

    deleted = client.delete(f"/documents/{document_id}").json()
    assert deleted["overall_success"] is True
    assert not (tmp_path / "data" / "blobs" / document_id).exists()
