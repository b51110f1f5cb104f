"""Knowledge base HTTP layer: routes, schemas, and middleware."""

from knowledge_base.api.middleware import (
    ErrorHandlingMiddleware,
    RequestLoggingMiddleware,
    configure_cors,
)
from knowledge_base.api.routes import router
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

__all__ = [
    "ErrorHandlingMiddleware",
    "RequestLoggingMiddleware",
    "configure_cors",
    "router",
    "DeleteDocumentRequest",
    "DeleteDocumentResponse",
    "DocumentListResponse",
    "ErrorResponse",
    "HealthResponse",
    "IndexStatsResponse",
    "ProcessingStatusResponse",
    "SearchRequest",
    "SearchResponse",
    "UploadResponse",
]
