"""Best-effort removal of a document from every backing store."""

from __future__ import annotations

import asyncio
import uuid
from typing import List

from docqa.embeddings.index import SearchIndex
from docqa.errors import ConfigurationError, NotFoundError
from docqa.metrics.observability import get_logger
from docqa.models import DeletionResult, StoreOutcome
from docqa.storage.blobs import BlobStore
from docqa.storage.status import StatusStore

STORE_INDEX = "search_index"
STORE_BLOB = "blob_storage"
STORE_STATUS = "status_store"


def validate_document_id(document_id: str) -> str:
    try:
        return str(uuid.UUID(str(document_id)))
    except ValueError as exc:
        raise ConfigurationError(f"Invalid document ID format: {document_id}") from exc


def summarize_outcomes(document_id: str, outcomes: List[StoreOutcome]) -> DeletionResult:
    succeeded = {outcome.store: outcome.succeeded for outcome in outcomes}
    passed = sum(1 for outcome in outcomes if outcome.succeeded)
    overall = passed == len(outcomes)
    if overall:
        message = "Document deleted successfully from all storage locations."
    else:
        message = (
            f"Document partially deleted ({passed}/{len(outcomes)} operations succeeded). "
            "Some data may remain in the system."
        )
    return DeletionResult(
        document_id=document_id,
        overall_success=overall,
        deleted_chunks=succeeded.get(STORE_INDEX, False),
        deleted_blob=succeeded.get(STORE_BLOB, False),
        deleted_status=succeeded.get(STORE_STATUS, False),
        errors=tuple(f"{outcome.store}: {outcome.error}" for outcome in outcomes if outcome.error),
        message=message,
    )


class DocumentDeletionService:
    """Deletes chunks, raw blob and status record independently.

    A failure in one store does not stop the others; each outcome is reported.
    """

    def __init__(self, index: SearchIndex, blobs: BlobStore, statuses: StatusStore) -> None:
        self._index = index
        self._blobs = blobs
        self._statuses = statuses
        self._logger = get_logger("deletion")

    async def delete_document(self, document_id: str) -> DeletionResult:
        document_id = validate_document_id(document_id)
        record = self._statuses.get(document_id)
        if record is None:
            raise NotFoundError(f"Document with ID {document_id} not found.")

        outcomes: List[StoreOutcome] = []

        try:
            removed = await asyncio.to_thread(self._index.delete_by_document, document_id)
            self._logger.info("deletion.chunks_removed", document_id=document_id, chunk_count=removed)
            outcomes.append(StoreOutcome(STORE_INDEX, True))
        except Exception as exc:
            outcomes.append(self._failure(document_id, STORE_INDEX, exc))

        try:
            existed = await asyncio.to_thread(self._blobs.delete_if_exists, record.blob_path)
            if not existed:
                self._logger.warning("deletion.blob_missing", document_id=document_id, blob_path=record.blob_path)
            outcomes.append(StoreOutcome(STORE_BLOB, True))
        except Exception as exc:
            outcomes.append(self._failure(document_id, STORE_BLOB, exc))

        try:
            await asyncio.to_thread(self._statuses.delete, document_id)
            outcomes.append(StoreOutcome(STORE_STATUS, True))
        except Exception as exc:
            outcomes.append(self._failure(document_id, STORE_STATUS, exc))

        result = summarize_outcomes(document_id, outcomes)
        log = self._logger.info if result.overall_success else self._logger.warning
        log("deletion.complete", document_id=document_id, overall_success=result.overall_success)
        return result

    def _failure(self, document_id: str, store: str, exc: Exception) -> StoreOutcome:
        self._logger.error("deletion.store_failed", document_id=document_id, store=store, detail=str(exc))
        return StoreOutcome(store, False, str(exc))
