"""API middleware: CORS, request logging, and error handling.

Middleware is a stack; the last one added runs first.  ``main.py`` adds
``ErrorHandlingMiddleware`` before ``RequestLoggingMiddleware`` so the
request log records the status code of the structured error response.
"""

from __future__ import annotations

import time

import structlog
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from knowledge_base.api.schemas import ErrorResponse
from knowledge_base.utils.errors import (
    AccessDeniedError,
    DocumentNotFoundError,
    FileTooLargeError,
    InvalidRequestError,
    KnowledgeBaseError,
    UnsupportedFormatError,
)
from knowledge_base.utils.logging import get_logger

_logger: structlog.BoundLogger = get_logger(__name__)

# Client-caused errors get a 4xx; every other KnowledgeBaseError is a 500.
_STATUS_CODES: dict[type[KnowledgeBaseError], int] = {
    InvalidRequestError: 400,
    AccessDeniedError: 403,
    DocumentNotFoundError: 404,
    FileTooLargeError: 413,
    UnsupportedFormatError: 415,
}


def status_code_for(exc: KnowledgeBaseError) -> int:
    for klass in type(exc).__mro__:
        if klass in _STATUS_CODES:
            return _STATUS_CODES[klass]
    return 500


# ---------------------------------------------------------------------------
# CORS
# ---------------------------------------------------------------------------


def configure_cors(app: FastAPI, *, allowed_origins: list[str] | None = None) -> None:
    """Let the chat front-end call the API from another origin; every origin when none are listed."""
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins or ["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


# ---------------------------------------------------------------------------
# Request Logging
# ---------------------------------------------------------------------------


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """One ``http_request`` event per request, with its final status and latency."""

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        started = time.perf_counter()
        status = 500
        try:
            response = await call_next(request)
            status = response.status_code
            return response
        finally:
            _logger.info(
                "http_request",
                method=request.method,
                path=str(request.url.path),
                status=status,
                duration_ms=round((time.perf_counter() - started) * 1000, 2),
            )


# ---------------------------------------------------------------------------
# Error Handling
# ---------------------------------------------------------------------------


class ErrorHandlingMiddleware(BaseHTTPMiddleware):
    """Convert ``KnowledgeBaseError`` subclasses into JSON ``ErrorResponse`` bodies.

    The client sees the exception class name and message only; provider
    details stay in the server log.
    """

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        try:
            return await call_next(request)
        except KnowledgeBaseError as exc:
            status_code = status_code_for(exc)
            log = _logger.error if status_code >= 500 else _logger.warning
            log(
                "application_error",
                error_type=type(exc).__name__,
                message=exc.message,
                provider=exc.provider_name,
                path=str(request.url.path),
                status=status_code,
            )
            body = ErrorResponse(error=type(exc).__name__, detail=exc.message)
            return JSONResponse(status_code=status_code, content=body.model_dump())
