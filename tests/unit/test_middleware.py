"""Unit tests for API error mapping and the error-handling middleware."""

from __future__ import annotations

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from knowledge_base.api.middleware import ErrorHandlingMiddleware, status_code_for
from knowledge_base.utils.errors import (
    AccessDeniedError,
    DocumentNotFoundError,
    EmbeddingProviderError,
    FileTooLargeError,
    InsufficientContentError,
    InvalidRequestError,
    KnowledgeBaseError,
    UnsupportedFormatError,
    VectorIndexError,
)


@pytest.mark.parametrize(
    ("exc", "expected"),
    [
        (InvalidRequestError(), 400),
        (AccessDeniedError(), 403),
        (DocumentNotFoundError(), 404),
        (FileTooLargeError(), 413),
        (UnsupportedFormatError(), 415),
        (InsufficientContentError(), 500),
        (EmbeddingProviderError(), 500),
        (KnowledgeBaseError(), 500),
    ],
)
def test_status_code_for(exc: KnowledgeBaseError, expected: int) -> None:
    assert status_code_for(exc) == expected


def _app() -> FastAPI:
    app = FastAPI()
    app.add_middleware(ErrorHandlingMiddleware)

    @app.get("/missing")
    async def missing() -> dict:
        raise DocumentNotFoundError(message="Document not found: abc")

    @app.get("/index-down")
    async def index_down() -> dict:
        raise VectorIndexError(message="connection refused", provider_name="chromadb")

    @app.get("/ok")
    async def ok() -> dict:
        return {"ok": True}

    return app


class TestErrorHandlingMiddleware:
    def test_client_error_body(self) -> None:
        response = TestClient(_app()).get("/missing")

        assert response.status_code == 404
        assert response.json() == {"error": "DocumentNotFoundError", "detail": "Document not found: abc"}

    def test_provider_name_not_exposed(self) -> None:
        response = TestClient(_app()).get("/index-down")

        assert response.status_code == 500
        body = response.json()
        assert body["error"] == "VectorIndexError"
        assert "chromadb" not in body["detail"]

    def test_success_passes_through(self) -> None:
        assert TestClient(_app()).get("/ok").json() == {"ok": True}
