"""FastAPI routes for the knowledge base.

Endpoint                              Method  Description
-------------------------------------------------------------------------
/api/v1/documents/upload              POST    Upload and ingest a document
/api/v1/documents/status/{id}         GET     Poll ingestion progress
/api/v1/documents                     GET     List shared or tenant documents
/api/v1/documents/delete              POST    Delete a document everywhere
/api/v1/documents/download            GET     Download the original upload
/api/v1/knowledge/search              POST    Semantic search
/api/v1/knowledge/stats               GET     Vector counts per namespace
/api/v1/health                        GET     Health check

Services are resolved from ``app.state`` (populated by ``main.py``) through
``Annotated[..., Depends(...)]`` parameters.  ``KnowledgeBaseError``
subclasses raised by the services are turned into JSON errors by
:class:`~knowledge_base.api.middleware.ErrorHandlingMiddleware`.
"""

from __future__ import annotations

import mimetypes
from typing import Annotated
from urllib.parse import quote

import structlog
from fastapi import APIRouter, Depends, Form, HTTPException, Query, Request, UploadFile
from fastapi.responses import Response

from knowledge_base.api.schemas import (
    DeleteDocumentRequest,
    DeleteDocumentResponse,
    DocumentListResponse,
    ErrorResponse,
    HealthResponse,
    IndexStatsResponse,
    ProcessingStatusResponse,
    SearchRequest,
    SearchResponse,
    UploadResponse,
)
from knowledge_base.config.settings import Settings
from knowledge_base.services.knowledge_base_service import KnowledgeBaseService
from knowledge_base.utils.logging import get_logger

_logger: structlog.BoundLogger = get_logger(__name__)

router = APIRouter(prefix="/api/v1")

_VERSION = "0.1.0"

# Uploads are read in 64 KB pieces so oversized files are rejected early.
_UPLOAD_CHUNK_SIZE = 64 * 1024


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------


def _get_knowledge_base(request: Request) -> KnowledgeBaseService:
    """Return the knowledge base facade from application state."""
    return request.app.state.knowledge_base


def _get_settings(request: Request) -> Settings:
    return request.app.state.settings


KnowledgeBaseDep = Annotated[KnowledgeBaseService, Depends(_get_knowledge_base)]
SettingsDep = Annotated[Settings, Depends(_get_settings)]


def _resolve_media_type(content_type: str | None, filename: str) -> str:
    # Browsers send octet-stream for unknown extensions; fall back to the filename.
    if content_type and content_type != "application/octet-stream":
        return content_type
    guessed, _ = mimetypes.guess_type(filename)
    return guessed or content_type or "application/octet-stream"


# ---------------------------------------------------------------------------
# Document endpoints
# ---------------------------------------------------------------------------


@router.post(
    "/documents/upload",
    response_model=UploadResponse,
    responses={
        400: {"model": ErrorResponse},
        413: {"model": ErrorResponse},
        415: {"model": ErrorResponse},
    },
    summary="Upload a document into the knowledge base",
)
async def upload_document(
    file: UploadFile,
    knowledge_base: KnowledgeBaseDep,
    settings: SettingsDep,
    title: Annotated[str | None, Form()] = None,
    tenant_id: Annotated[str | None, Form()] = None,
    is_shared: Annotated[bool, Form()] = False,
) -> UploadResponse:
    """Ingest a PDF, plain-text or DOCX file and return its processing id."""
    filename = file.filename or "document"
    media_type = _resolve_media_type(file.content_type, filename)

    chunks: list[bytes] = []
    total_size = 0
    while True:
        chunk = await file.read(_UPLOAD_CHUNK_SIZE)
        if not chunk:
            break
        total_size += len(chunk)
        if total_size > settings.max_upload_bytes:
            raise HTTPException(
                status_code=413,
                detail=f"File too large. Maximum: {settings.max_upload_bytes} bytes.",
            )
        chunks.append(chunk)
    buffer = b"".join(chunks)

    processing_id = await knowledge_base.ingest(
        buffer,
        media_type,
        filename,
        title=title,
        tenant_id=tenant_id or None,
        is_shared=is_shared,
    )
    status = await knowledge_base.get_status(processing_id)
    if status is None:
        raise HTTPException(status_code=500, detail="Processing status unavailable")

    return UploadResponse(
        processing_id=processing_id,
        status=status.state,
        message=status.error or status.message,
    )


@router.get(
    "/documents/status/{processing_id}",
    response_model=ProcessingStatusResponse,
    responses={404: {"model": ErrorResponse}},
    summary="Get ingestion progress",
)
async def get_processing_status(
    processing_id: str,
    knowledge_base: KnowledgeBaseDep,
) -> ProcessingStatusResponse:
    status = await knowledge_base.get_status(processing_id)
    if status is None:
        raise HTTPException(status_code=404, detail=f"Unknown processing id: {processing_id}")

    return ProcessingStatusResponse(
        processing_id=status.id,
        source_id=status.source_id,
        status=status.state,
        progress=status.progress,
        message=status.message,
        created_at=status.created_at,
        completed_at=status.completed_at,
        error=status.error,
    )


@router.get(
    "/documents",
    response_model=DocumentListResponse,
    summary="List documents",
)
async def list_documents(
    knowledge_base: KnowledgeBaseDep,
    tenant_id: Annotated[str | None, Query()] = None,
) -> DocumentListResponse:
    """Tenant documents when ``tenant_id`` is given, shared documents otherwise."""
    documents = await knowledge_base.list_documents(tenant_id or None)
    return DocumentListResponse(documents=documents, count=len(documents))


@router.post(
    "/documents/delete",
    response_model=DeleteDocumentResponse,
    responses={403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
    summary="Delete a document, its vectors and stored files",
)
async def delete_document(
    body: DeleteDocumentRequest,
    knowledge_base: KnowledgeBaseDep,
) -> DeleteDocumentResponse:
    report = await knowledge_base.delete_document(body.source_id, body.tenant_id or None)
    return DeleteDocumentResponse(
        success=True,
        source_id=body.source_id,
        complete=report.complete,
        remaining_ids=report.remaining_ids,
    )


def _content_disposition(filename: str) -> str:
    # Header values must be latin-1; the RFC 5987 form carries the real name.
    fallback = filename.encode("ascii", "replace").decode("ascii")
    fallback = "".join(c for c in fallback if c not in '"\\\r\n')
    return f"attachment; filename=\"{fallback}\"; filename*=UTF-8''{quote(filename)}"


@router.get(
    "/documents/download",
    responses={403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
    summary="Download the original uploaded file",
)
async def download_document(
    knowledge_base: KnowledgeBaseDep,
    source_id: Annotated[str, Query(min_length=1)],
    tenant_id: Annotated[str | None, Query()] = None,
) -> Response:
    data, filename, media_type = await knowledge_base.download_document(
        source_id, tenant_id or None
    )
    return Response(
        content=data,
        media_type=media_type,
        headers={"Content-Disposition": _content_disposition(filename)},
    )


# ---------------------------------------------------------------------------
# Knowledge endpoints
# ---------------------------------------------------------------------------


@router.post(
    "/knowledge/search",
    response_model=SearchResponse,
    summary="Semantic search over the knowledge base",
)
async def search_knowledge(
    body: SearchRequest,
    knowledge_base: KnowledgeBaseDep,
) -> SearchResponse:
    """Search shared documents, plus the tenant's own when ``tenant_id`` is set.

    Failures inside retrieval yield an empty result rather than an error.
    """
    context = await knowledge_base.search(
        body.query, tenant_id=body.tenant_id or None, top_k=body.top_k
    )
    return SearchResponse(
        chunks=context.chunks,
        sources=context.sources,
        context=context.to_prompt(),
    )


@router.get(
    "/knowledge/stats",
    response_model=IndexStatsResponse,
    summary="Vector index statistics",
)
async def knowledge_stats(knowledge_base: KnowledgeBaseDep) -> IndexStatsResponse:
    stats = await knowledge_base.get_index_stats()
    return IndexStatsResponse(
        total_vectors=stats.total_vectors,
        namespaces=stats.namespaces,
        dimension=stats.dimension,
    )


# ---------------------------------------------------------------------------
# System endpoints
# ---------------------------------------------------------------------------


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Application health check",
)
async def health_check(request: Request) -> HealthResponse:
    """Report embedding availability and whether the vector index answers."""
    providers: dict[str, object] = {}

    embedding_provider = getattr(request.app.state, "embedding_provider", None)
    providers["embedding"] = bool(embedding_provider and embedding_provider.is_available())

    knowledge_base: KnowledgeBaseService | None = getattr(
        request.app.state, "knowledge_base", None
    )
    if knowledge_base is not None:
        try:
            stats = await knowledge_base.get_index_stats()
            providers["vector_index"] = True
            providers["vectors"] = stats.total_vectors
        except Exception as exc:  # noqa: BLE001
            _logger.warning("health_vector_index_unavailable", error=str(exc))
            providers["vector_index"] = False
    else:
        providers["vector_index"] = False

    if providers["embedding"] and providers["vector_index"]:
        status = "healthy"
    elif providers["vector_index"]:
        status = "degraded"
    else:
        status = "unhealthy"

    return HealthResponse(status=status, version=_VERSION, providers=providers)
