"""Document lifecycle status store."""

from __future__ import annotations

import threading
from dataclasses import replace
from pathlib import Path
from typing import List, Protocol

from pydantic import TypeAdapter

from docqa.errors import NotFoundError
from docqa.models import DocumentStatus, ProcessingState, utcnow

_ADAPTER = TypeAdapter(DocumentStatus)


class StatusStore(Protocol):
    """Key-value lifecycle records keyed by document id."""

    def initialize(self) -> None:
        ...

    def create(self, document_id: str, file_name: str, blob_path: str) -> DocumentStatus:
        ...

    def get(self, document_id: str) -> DocumentStatus | None:
        ...

    def update_status(self, document_id: str, status: ProcessingState) -> DocumentStatus:
        ...

    def update_processing_details(self, document_id: str, page_count: int, chunk_count: int) -> DocumentStatus:
        ...

    def mark_failed(self, document_id: str, error_message: str, error_step: str, attempt_count: int) -> DocumentStatus:
        ...

    def delete(self, document_id: str) -> bool:
        ...

    def list(self, status: ProcessingState | None = None, limit: int | None = None) -> List[DocumentStatus]:
        ...


class FileStatusStore:
    """Stores one JSON record per document under ``root``."""

    def __init__(self, root: str | Path) -> None:
        self._root = Path(root)
        self._lock = threading.Lock()

    def initialize(self) -> None:
        self._root.mkdir(parents=True, exist_ok=True)

    def create(self, document_id: str, file_name: str, blob_path: str) -> DocumentStatus:
        record = DocumentStatus(document_id=document_id, file_name=file_name, blob_path=blob_path)
        with self._lock:
            if self._path(document_id).exists():
                raise FileExistsError(f"Status record already exists for {document_id}")
            self._write(record)
        return record

    def get(self, document_id: str) -> DocumentStatus | None:
        path = self._path(document_id)
        if not path.is_file():
            return None
        return _ADAPTER.validate_json(path.read_bytes())

    def update_status(self, document_id: str, status: ProcessingState) -> DocumentStatus:
        def apply(record: DocumentStatus) -> DocumentStatus:
            if status is ProcessingState.COMPLETED:
                return replace(record, status=status, processed_at=utcnow())
            return replace(record, status=status)

        return self._update(document_id, apply)

    def update_processing_details(self, document_id: str, page_count: int, chunk_count: int) -> DocumentStatus:
        return self._update(document_id, lambda record: replace(record, page_count=page_count, chunk_count=chunk_count))

    def mark_failed(self, document_id: str, error_message: str, error_step: str, attempt_count: int) -> DocumentStatus:
        return self._update(
            document_id,
            lambda record: replace(
                record,
                status=ProcessingState.FAILED,
                error_message=error_message,
                error_step=error_step,
                error_attempt_count=attempt_count,
                last_attempt_at=utcnow(),
            ),
        )

    def delete(self, document_id: str) -> bool:
        path = self._path(document_id)
        with self._lock:
            if not path.is_file():
                return False
            path.unlink()
        return True

    def list(self, status: ProcessingState | None = None, limit: int | None = None) -> List[DocumentStatus]:
        if not self._root.is_dir():
            return []
        records = [_ADAPTER.validate_json(path.read_bytes()) for path in self._root.glob("*.json")]
        if status is not None:
            records = [record for record in records if record.status == status]
        records.sort(key=lambda record: record.uploaded_at, reverse=True)
        if limit is not None and limit > 0:
            records = records[:limit]
        return records

    def _update(self, document_id: str, apply) -> DocumentStatus:
        with self._lock:
            record = self.get(document_id)
            if record is None:
                raise NotFoundError(f"Document with ID {document_id} not found.")
            updated = apply(record)
            self._write(updated)
        return updated

    def _write(self, record: DocumentStatus) -> None:
        self._root.mkdir(parents=True, exist_ok=True)
        path = self._path(record.document_id)
        tmp = path.with_suffix(".json.part")
        tmp.write_bytes(_ADAPTER.dump_json(record, indent=2))
        tmp.replace(path)

    def _path(self, document_id: str) -> Path:
        if not document_id or "/" in document_id or "\\" in document_id or document_id.startswith("."):
            raise ValueError(f"Invalid document id: {document_id!r}")
        return self._root / f"{document_id}.json"
