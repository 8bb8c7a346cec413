"""FastAPI application exposing DocQA services."""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional
from uuid import uuid4

from fastapi import BackgroundTasks, Depends, FastAPI, File, HTTPException, Query, Request, UploadFile, status
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from docqa.api.schemas import (
    DeletionResponse,
    DocumentListResponse,
    DocumentStatusResponse,
    QueryRequest,
    QueryResponse,
    UploadResponse,
)
from docqa.config import Settings, get_settings
from docqa.embeddings import SearchIndex, build_embedding_gateway, build_search_index
from docqa.errors import ConfigurationError, DocQAError, NotFoundError, ProviderError
from docqa.ingestion import ChunkingConfig, IngestionPipeline, IngestionResult, PyPDFPageExtractor, TextChunker
from docqa.metrics.observability import bind_correlation_id, clear_correlation_id, configure_logging, get_logger
from docqa.models import ProcessingState
from docqa.retrieval import LexicalReranker, RetrievalEngine, ScoreReranker
from docqa.services.deletion import DocumentDeletionService, validate_document_id
from docqa.services.generation import build_generator
from docqa.services.query import QueryConfig, QueryService
from docqa.services.synthesis import AnswerSynthesizer, SynthesisConfig
from docqa.storage import BlobStore, FileStatusStore, LocalBlobStore, StatusStore

READ_CHUNK_BYTES = 1024 * 1024
LOGGER = get_logger("api")


@dataclass(frozen=True)
class AppDependencies:
    blobs: BlobStore
    statuses: StatusStore
    index: SearchIndex
    pipeline: IngestionPipeline
    query_service: QueryService
    deletion_service: DocumentDeletionService


def build_dependencies(settings: Settings) -> AppDependencies:
    blobs = LocalBlobStore(settings.blob_dir)
    blobs.create_container_if_absent()
    statuses = FileStatusStore(settings.status_dir)
    statuses.initialize()
    index = build_search_index(settings)
    index.create_if_absent()

    gateway = build_embedding_gateway(settings)
    pipeline = IngestionPipeline(
        PyPDFPageExtractor(),
        TextChunker(ChunkingConfig(chunk_size=settings.chunk_size, overlap=settings.chunk_overlap)),
        gateway,
        index,
        timeout_seconds=settings.ingestion_timeout_seconds,
    )
    synthesizer = AnswerSynthesizer(
        build_generator(settings),
        SynthesisConfig(max_excerpt_length=settings.max_excerpt_length),
    )
    query_service = QueryService(
        gateway,
        RetrievalEngine(index),
        synthesizer,
        reranker=LexicalReranker(settings.index_lexical_weight) if settings.reranker == "lexical" else ScoreReranker(),
        config=QueryConfig(
            max_chunks_to_retrieve=settings.max_chunks_to_retrieve,
            top_chunks_for_answer=settings.top_chunks_for_answer,
            timeout_seconds=settings.query_timeout_seconds,
        ),
    )
    return AppDependencies(
        blobs=blobs,
        statuses=statuses,
        index=index,
        pipeline=pipeline,
        query_service=query_service,
        deletion_service=DocumentDeletionService(index, blobs, statuses),
    )


async def process_document(deps: AppDependencies, document_id: str) -> IngestionResult | None:
    """Drive one uploaded document through ingestion and record the outcome."""

    record = deps.statuses.get(document_id)
    if record is None:
        LOGGER.warning("ingestion.status_missing", document_id=document_id)
        return None
    attempt = (record.error_attempt_count or 0) + 1
    deps.statuses.update_status(document_id, ProcessingState.PROCESSING)
    try:
        data = await asyncio.to_thread(deps.blobs.download, record.blob_path)
    except OSError as exc:
        LOGGER.error("ingestion.blob_unreadable", document_id=document_id, detail=str(exc))
        deps.statuses.mark_failed(document_id, f"Could not read uploaded file: {exc}", "blob_download", attempt)
        return None

    result = await deps.pipeline.process(document_id, record.title, data, file_name=record.file_name)
    if result.ok:
        deps.statuses.update_processing_details(document_id, result.page_count, result.chunk_count)
        deps.statuses.update_status(document_id, ProcessingState.COMPLETED)
    else:
        deps.statuses.mark_failed(document_id, result.failure.message, result.failure.stage, attempt)
    return result


def create_app(*, settings: Settings | None = None, dependencies: AppDependencies | None = None) -> FastAPI:
    """Application factory; serve with ``uvicorn docqa.api.app:create_app --factory``."""

    settings = settings or get_settings()
    deps = dependencies or build_dependencies(settings)

    configure_logging()
    logger = get_logger("api")
    app = FastAPI(title="DocQA API", version="0.1.0")
    app.state.dependencies = deps

    @app.middleware("http")
    async def add_correlation_id(request: Request, call_next):  # type: ignore[override]
        correlation_id = request.headers.get("X-Request-ID", uuid4().hex)
        request.state.correlation_id = correlation_id
        bind_correlation_id(correlation_id)
        try:
            response = await call_next(request)
        finally:
            clear_correlation_id()
        response.headers["X-Correlation-ID"] = correlation_id
        return response

    def _error(request: Request, status_code: int, detail: str) -> JSONResponse:
        correlation_id = getattr(request.state, "correlation_id", uuid4().hex)
        return JSONResponse(status_code=status_code, content={"detail": detail, "correlation_id": correlation_id})

    @app.exception_handler(ConfigurationError)
    async def handle_invalid_request(request: Request, exc: ConfigurationError) -> JSONResponse:
        return _error(request, status.HTTP_400_BAD_REQUEST, str(exc))

    @app.exception_handler(NotFoundError)
    async def handle_not_found(request: Request, exc: NotFoundError) -> JSONResponse:
        return _error(request, status.HTTP_404_NOT_FOUND, str(exc))

    @app.exception_handler(ProviderError)
    async def handle_provider_error(request: Request, exc: ProviderError) -> JSONResponse:
        logger.error("provider.error", stage=exc.stage, detail=exc.message, path=request.url.path)
        return _error(request, status.HTTP_500_INTERNAL_SERVER_ERROR, f"An error occurred during {exc.stage}.")

    @app.exception_handler(DocQAError)
    async def handle_docqa_error(request: Request, exc: DocQAError) -> JSONResponse:
        logger.error("docqa.error", detail=str(exc), path=request.url.path)
        return _error(request, status.HTTP_500_INTERNAL_SERVER_ERROR, str(exc))

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
        logger.error("unhandled.error", detail=str(exc), path=request.url.path)
        return _error(request, status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal Server Error")

    def get_dependencies(request: Request) -> AppDependencies:
        return request.app.state.dependencies

    @app.post("/upload", response_model=UploadResponse, status_code=status.HTTP_202_ACCEPTED)
    async def upload_document(
        background_tasks: BackgroundTasks,
        file: UploadFile = File(...),
        dep: AppDependencies = Depends(get_dependencies),
    ) -> UploadResponse:
        file_name = Path(file.filename or "").name
        if not file_name:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No file provided")
        suffix = Path(file_name).suffix.lower()
        if suffix not in settings.allowed_extensions:
            await file.close()
            allowed = ", ".join(settings.allowed_extensions)
            raise HTTPException(
                status_code=status.HTTP_415_UNSUPPORTED_MEDIA_TYPE,
                detail=f"Unsupported file type: {suffix or 'unknown'}. Allowed: {allowed}",
            )

        limit = settings.max_upload_size_mb * 1024 * 1024
        buffer = bytearray()
        while True:
            part = await file.read(READ_CHUNK_BYTES)
            if not part:
                break
            buffer.extend(part)
            if len(buffer) > limit:
                await file.close()
                raise HTTPException(
                    status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
                    detail=f"File too large (>{settings.max_upload_size_mb}MB): {file_name}",
                )
        await file.close()
        if not buffer:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"File is empty: {file_name}")

        document_id = str(uuid4())
        blob_path = f"{document_id}/{file_name}"
        await asyncio.to_thread(dep.blobs.upload, blob_path, bytes(buffer), overwrite=True)
        record = dep.statuses.create(document_id, file_name, blob_path)
        background_tasks.add_task(process_document, dep, document_id)
        logger.info("upload.accepted", document_id=document_id, file_name=file_name, size_bytes=len(buffer))
        return UploadResponse(
            document_id=document_id,
            file_name=file_name,
            status=record.status,
            message="Document uploaded successfully. Processing will begin shortly.",
            status_endpoint=f"/status/{document_id}",
        )

    @app.get("/status/{document_id}", response_model=DocumentStatusResponse)
    async def document_status(
        document_id: str,
        dep: AppDependencies = Depends(get_dependencies),
    ) -> DocumentStatusResponse:
        document_id = validate_document_id(document_id)
        record = dep.statuses.get(document_id)
        if record is None:
            raise NotFoundError(f"Document with ID {document_id} not found.")
        return DocumentStatusResponse.from_status(record)

    @app.get("/documents", response_model=DocumentListResponse)
    async def list_documents(
        status_filter: Optional[ProcessingState] = Query(default=None, alias="status"),
        limit: Optional[int] = Query(default=None, ge=1, le=1000),
        dep: AppDependencies = Depends(get_dependencies),
    ) -> DocumentListResponse:
        records = dep.statuses.list(status=status_filter, limit=limit)
        return DocumentListResponse(
            total_count=len(records),
            documents=[DocumentStatusResponse.from_status(record) for record in records],
        )

    @app.post("/query", response_model=QueryResponse)
    async def query_documents(
        payload: QueryRequest,
        dep: AppDependencies = Depends(get_dependencies),
    ) -> QueryResponse:
        if not payload.question.strip():
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Question is required")
        if not payload.document_ids:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="At least one document ID is required")
        start = time.perf_counter()
        answer = await dep.query_service.ask(
            payload.question,
            payload.document_ids,
            max_chunks=payload.max_chunks,
        )
        elapsed_ms = int((time.perf_counter() - start) * 1000)
        return QueryResponse.from_answer(answer, elapsed_ms)

    @app.delete("/documents/{document_id}", response_model=DeletionResponse)
    async def delete_document(
        document_id: str,
        dep: AppDependencies = Depends(get_dependencies),
    ) -> DeletionResponse:
        result = await dep.deletion_service.delete_document(document_id)
        return DeletionResponse.from_result(result)

    @app.get("/metrics")
    async def metrics() -> Response:
        payload = generate_latest()
        return Response(content=payload, media_type=CONTENT_TYPE_LATEST)

    @app.get("/healthz")
    async def healthcheck() -> dict[str, str]:
        from docqa import __version__

        return {"status": "ok", "version": __version__, "environment": settings.environment}

    @app.get("/healthz/ready")
    async def readiness(dep: AppDependencies = Depends(get_dependencies)) -> dict[str, object]:
        try:
            chunks = await asyncio.to_thread(dep.index.count)
        except Exception as exc:
            logger.error("readiness.failed", detail=str(exc))
            return {"status": "error", "detail": str(exc)}
        return {"status": "ready", "chunks": chunks}

    return app
