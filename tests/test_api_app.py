"""Tests for the FastAPI application."""

from __future__ import annotations

from io import BytesIO
from pathlib import Path
from typing import Sequence
from uuid import uuid4

import chromadb
from fastapi.testclient import TestClient

from docqa.api.app import AppDependencies, create_app
from docqa.config import Settings
from docqa.embeddings.index import ChromaSearchIndex, build_index_schema
from docqa.embeddings.service import EmbeddingConfig, EmbeddingGateway, HashEmbeddings
from docqa.errors import ExtractionError, SynthesisError
from docqa.ingestion import IngestionPipeline, TextChunker
from docqa.models import PageText
from docqa.retrieval import RetrievalEngine
from docqa.services.deletion import DocumentDeletionService
from docqa.services.generation import TemplateGenerator
from docqa.services.query import QueryService
from docqa.services.synthesis import AnswerSynthesizer
from docqa.storage import FileStatusStore, LocalBlobStore

DIM = 16


class StubExtractor:
    def __init__(self, error: Exception | None = None) -> None:
        self.error = error

    async def extract(self, data: bytes, *, file_name: str = "document.pdf") -> Sequence[PageText]:
        if self.error is not None:
            raise self.error
        return [
            PageText(1, "The warranty period is two years from purchase."),
            PageText(2, "Repairs are free during the warranty period."),
        ]


class FailingQueryService:
    async def ask(self, question, document_ids=None, *, max_chunks=None):
        raise SynthesisError("model unavailable")


def create_test_client(tmp_path: Path, *, extractor=None, query_service=None, **overrides) -> TestClient:
    settings = Settings(
        environment="test",
        data_dir=tmp_path,
        embedding_dim=DIM,
        index_name=f"api-{uuid4().hex[:12]}",
        **overrides,
    )
    index = ChromaSearchIndex(build_index_schema(settings), client=chromadb.EphemeralClient())
    blobs = LocalBlobStore(settings.blob_dir)
    statuses = FileStatusStore(settings.status_dir)
    gateway = EmbeddingGateway(HashEmbeddings(dim=DIM), EmbeddingConfig(dim=DIM, batch_delay_seconds=0.0))
    deps = AppDependencies(
        blobs=blobs,
        statuses=statuses,
        index=index,
        pipeline=IngestionPipeline(extractor or StubExtractor(), TextChunker(), gateway, index),
        query_service=query_service
        or QueryService(gateway, RetrievalEngine(index), AnswerSynthesizer(TemplateGenerator())),
        deletion_service=DocumentDeletionService(index, blobs, statuses),
    )
    return TestClient(create_app(settings=settings, dependencies=deps))


def _upload(client: TestClient, name: str = "manual.pdf", content: bytes = b"%PDF-1.4 stub"):
    return client.post("/upload", files={"file": (name, BytesIO(content), "application/pdf")})


def test_upload_processes_document_in_background(tmp_path: Path) -> None:
    client = create_test_client(tmp_path)
    response = _upload(client)
    assert response.status_code == 202, response.text
    body = response.json()
    assert body["file_name"] == "manual.pdf"
    assert body["status"] == "uploaded"
    assert body["status_endpoint"] == f"/status/{body['document_id']}"

    status_response = client.get(body["status_endpoint"])
    assert status_response.status_code == 200
    record = status_response.json()
    assert record["status"] == "completed"
    assert record["page_count"] == 2
    assert record["chunk_count"] == 2
    assert record["processed_at"] is not None


def test_failed_ingestion_is_recorded_on_status(tmp_path: Path) -> None:
    client = create_test_client(tmp_path, extractor=StubExtractor(ExtractionError("no text layer")))
    document_id = _upload(client).json()["document_id"]
    record = client.get(f"/status/{document_id}").json()
    assert record["status"] == "failed"
    assert record["error_step"] == "text_extraction"
    assert record["error_message"] == "no text layer"
    assert record["error_attempt_count"] == 1


def test_upload_rejects_bad_files(tmp_path: Path) -> None:
    client = create_test_client(tmp_path)
    assert _upload(client, name="notes.txt").status_code == 415
    assert _upload(client, content=b"").status_code == 400


def test_upload_enforces_size_limit(tmp_path: Path) -> None:
    client = create_test_client(tmp_path, max_upload_size_mb=0)
    assert _upload(client).status_code == 413


def test_query_returns_grounded_answer(tmp_path: Path) -> None:
    client = create_test_client(tmp_path)
    document_id = _upload(client).json()["document_id"]
    response = client.post(
        "/query",
        json={"question": "How long is the warranty period?", "document_ids": [document_id]},
    )
    assert response.status_code == 200, response.text
    body = response.json()
    assert body["found_in_documents"] is True
    assert body["citations"]
    assert body["citations"][0]["document_title"] == "manual"
    assert isinstance(body["processing_time_ms"], int)
    assert 0.0 <= body["confidence"] <= 1.0


def test_query_requires_question_and_document_ids(tmp_path: Path) -> None:
    client = create_test_client(tmp_path)
    assert client.post("/query", json={"question": "What?", "document_ids": []}).status_code == 400
    assert client.post("/query", json={"question": "   ", "document_ids": ["x"]}).status_code == 400


def test_query_provider_failure_maps_to_500(tmp_path: Path) -> None:
    client = create_test_client(tmp_path, query_service=FailingQueryService())
    response = client.post("/query", json={"question": "What?", "document_ids": ["x"]})
    assert response.status_code == 500
    assert response.json()["detail"] == "An error occurred during answer_generation."


def test_list_documents_filters_by_status(tmp_path: Path) -> None:
    client = create_test_client(tmp_path)
    _upload(client, name="a.pdf")
    _upload(client, name="b.pdf")
    assert client.get("/documents").json()["total_count"] == 2
    assert client.get("/documents", params={"status": "completed", "limit": 1}).json()["total_count"] == 1
    assert client.get("/documents", params={"status": "failed"}).json()["documents"] == []


def test_delete_document_and_not_found(tmp_path: Path) -> None:
    client = create_test_client(tmp_path)
    document_id = _upload(client).json()["document_id"]

    response = client.delete(f"/documents/{document_id}")
    assert response.status_code == 200
    body = response.json()
    assert body["overall_success"] is True
    assert body["deleted_chunks"] and body["deleted_blob"] and body["deleted_status"]

    assert client.get(f"/status/{document_id}").status_code == 404
    assert client.delete(f"/documents/{document_id}").status_code == 404
    assert client.delete("/documents/not-a-uuid").status_code == 400


def test_health_metrics_and_correlation_id(tmp_path: Path) -> None:
    client = create_test_client(tmp_path)
    health = client.get("/healthz", headers={"X-Request-ID": "req-123"})
    assert health.status_code == 200
    assert health.json()["status"] == "ok"
    assert health.headers["X-Correlation-ID"] == "req-123"
    assert client.get("/healthz/ready").json()["status"] == "ready"
    metrics = client.get("/metrics")
    assert metrics.status_code == 200
    assert "docqa_stage_failures_total" in metrics.text
