from __future__ import annotations

import asyncio
from pathlib import Path
from uuid import uuid4

import chromadb
import pytest

from docqa.config import Settings
from docqa.embeddings.index import ChromaSearchIndex, build_index_schema
from docqa.embeddings.service import HashEmbeddings
from docqa.errors import ConfigurationError, NotFoundError
from docqa.models import IndexedChunk
from docqa.services.deletion import DocumentDeletionService
from docqa.storage import FileStatusStore, LocalBlobStore

DIM = 16


class UnreachableIndex(ChromaSearchIndex):
    def delete_by_document(self, document_id: str) -> int:
        raise ConnectionError("search service unavailable")


def _setup(tmp_path: Path, index_cls=ChromaSearchIndex):
    settings = Settings(environment="test", embedding_dim=DIM, index_name=f"delete-{uuid4().hex[:12]}")
    index = index_cls(build_index_schema(settings), client=chromadb.EphemeralClient())
    blobs = LocalBlobStore(tmp_path / "blobs")
    statuses = FileStatusStore(tmp_path / "status")

    document_id = str(uuid4())
    blob_path = f"{document_id}/manual.pdf"
    blobs.upload(blob_path, b"%PDF-1.4")
    statuses.create(document_id, "manual.pdf", blob_path)
    embedder = HashEmbeddings(dim=DIM)
    index.upsert(
        [
            IndexedChunk(
                id=str(uuid4()),
                document_id=document_id,
                document_title="manual",
                content=text,
                page_number=1,
                chunk_index=position,
                embedding=tuple(embedder.embed_query(text)),
            )
            for position, text in enumerate(["first chunk", "second chunk"])
        ]
    )
    return DocumentDeletionService(index, blobs, statuses), index, blobs, statuses, document_id, blob_path


def test_delete_removes_document_everywhere(tmp_path: Path):
    service, index, blobs, statuses, document_id, blob_path = _setup(tmp_path)
    result = asyncio.run(service.delete_document(document_id))
    assert result.overall_success
    assert (result.deleted_chunks, result.deleted_blob, result.deleted_status) == (True, True, True)
    assert result.errors == ()
    assert result.message == "Document deleted successfully from all storage locations."
    assert index.count() == 0
    assert not blobs.exists(blob_path)
    assert statuses.get(document_id) is None


def test_index_failure_does_not_stop_other_stores(tmp_path: Path):
    service, _, blobs, statuses, document_id, blob_path = _setup(tmp_path, UnreachableIndex)
    result = asyncio.run(service.delete_document(document_id))
    assert not result.overall_success
    assert result.deleted_chunks is False
    assert result.deleted_blob is True
    assert result.deleted_status is True
    assert len(result.errors) == 1
    assert "search service unavailable" in result.errors[0]
    assert result.message == (
        "Document partially deleted (2/3 operations succeeded). Some data may remain in the system."
    )
    assert not blobs.exists(blob_path)
    assert statuses.get(document_id) is None


def test_missing_blob_still_counts_as_deleted(tmp_path: Path):
    service, _, blobs, _, document_id, blob_path = _setup(tmp_path)
    blobs.delete_if_exists(blob_path)
    result = asyncio.run(service.delete_document(document_id))
    assert result.overall_success
    assert result.deleted_blob is True


def test_invalid_document_id_is_rejected(tmp_path: Path):
    service, *_ = _setup(tmp_path)
    with pytest.raises(ConfigurationError):
        asyncio.run(service.delete_document("not-a-uuid"))


def test_unknown_document_is_not_found(tmp_path: Path):
    service, *_ = _setup(tmp_path)
    with pytest.raises(NotFoundError):
        asyncio.run(service.delete_document(str(uuid4())))
