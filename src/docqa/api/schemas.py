"""Pydantic models for the DocQA API."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from docqa.models import Answer, DeletionResult, DocumentStatus, ProcessingState


class UploadResponse(BaseModel):
    document_id: str = Field(..., description="Identifier assigned to the uploaded document")
    file_name: str
    status: ProcessingState
    message: str
    status_endpoint: str = Field(..., description="Relative URL to poll for processing status")


class DocumentStatusResponse(BaseModel):
    document_id: str
    file_name: str
    status: ProcessingState
    uploaded_at: datetime
    processed_at: Optional[datetime] = None
    page_count: Optional[int] = None
    chunk_count: Optional[int] = None
    error_message: Optional[str] = None
    error_step: Optional[str] = None
    error_attempt_count: Optional[int] = None
    last_attempt_at: Optional[datetime] = None

    @classmethod
    def from_status(cls, record: DocumentStatus) -> "DocumentStatusResponse":
        return cls(
            document_id=record.document_id,
            file_name=record.file_name,
            status=record.status,
            uploaded_at=record.uploaded_at,
            processed_at=record.processed_at,
            page_count=record.page_count,
            chunk_count=record.chunk_count,
            error_message=record.error_message,
            error_step=record.error_step,
            error_attempt_count=record.error_attempt_count,
            last_attempt_at=record.last_attempt_at,
        )


class DocumentListResponse(BaseModel):
    total_count: int
    documents: List[DocumentStatusResponse]


class QueryRequest(BaseModel):
    question: str = Field(..., description="End-user question to answer")
    document_ids: List[str] = Field(default_factory=list, description="Documents to search; at least one is required")
    max_chunks: Optional[int] = Field(
        default=None,
        ge=1,
        le=50,
        description="Override the number of chunks used to build the answer",
    )


class CitationModel(BaseModel):
    document_title: str
    page_number: int
    excerpt: str
    section_title: str = ""


class QueryResponse(BaseModel):
    answer: str
    confidence: float
    found_in_documents: bool
    citations: List[CitationModel]
    processing_time_ms: int

    @classmethod
    def from_answer(cls, answer: Answer, processing_time_ms: int) -> "QueryResponse":
        return cls(
            answer=answer.text,
            confidence=answer.confidence_score,
            found_in_documents=answer.found_in_documents,
            citations=[
                CitationModel(
                    document_title=citation.document_title,
                    page_number=citation.page_number,
                    excerpt=citation.excerpt,
                    section_title=citation.section_title,
                )
                for citation in answer.citations
            ],
            processing_time_ms=processing_time_ms,
        )


class DeletionResponse(BaseModel):
    document_id: str
    overall_success: bool
    deleted_chunks: bool
    deleted_blob: bool
    deleted_status: bool
    errors: List[str] = Field(default_factory=list)
    message: str

    @classmethod
    def from_result(cls, result: DeletionResult) -> "DeletionResponse":
        return cls(
            document_id=result.document_id,
            overall_success=result.overall_success,
            deleted_chunks=result.deleted_chunks,
            deleted_blob=result.deleted_blob,
            deleted_status=result.deleted_status,
            errors=list(result.errors),
            message=result.message,
        )
