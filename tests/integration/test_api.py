"""Integration tests for the HTTP API.

Builds a FastAPI app with the real router and error-handling middleware,
wires the in-memory knowledge base onto ``app.state`` and drives it with
``TestClient``.
"""

from __future__ import annotations

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from knowledge_base.api.middleware import ErrorHandlingMiddleware
from knowledge_base.api.routes import _content_disposition, router
from knowledge_base.config.settings import Settings
from knowledge_base.services.knowledge_base_service import KnowledgeBaseService
from tests.conftest import MockEmbeddingProvider, MockVectorIndex

_TEXT = b"Refunds are processed within five business days of approval."


@pytest.fixture()
def app(
    knowledge_base: KnowledgeBaseService,
    settings: Settings,
    embedding_provider: MockEmbeddingProvider,
) -> FastAPI:
    application = FastAPI()
    application.add_middleware(ErrorHandlingMiddleware)
    application.include_router(router)
    application.state.knowledge_base = knowledge_base
    application.state.settings = settings
    application.state.embedding_provider = embedding_provider
    return application


@pytest.fixture()
def client(app: FastAPI) -> TestClient:
    return TestClient(app)


def _upload(client: TestClient, content: bytes = _TEXT, **form: str) -> dict:
    response = client.post(
        "/api/v1/documents/upload",
        files={"file": ("refunds.txt", content, "text/plain")},
        data=form,
    )
    assert response.status_code == 200, response.text
    return response.json()


class TestUpload:
    def test_upload_shared_document(self, client: TestClient) -> None:
        body = _upload(client, title="Refund Policy", is_shared="true")

        assert body["status"] == "completed"
        assert body["processing_id"].startswith("doc_")
        assert body["message"] == "Document processing completed"

    def test_status_endpoint(self, client: TestClient) -> None:
        processing_id = _upload(client, tenant_id="acme")["processing_id"]

        response = client.get(f"/api/v1/documents/status/{processing_id}")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "completed"
        assert body["progress"] == 100
        assert body["source_id"].startswith("acme_")
        assert body["completed_at"] is not None
        assert body["error"] is None

    def test_unknown_status(self, client: TestClient) -> None:
        assert client.get("/api/v1/documents/status/doc_0_missing").status_code == 404

    def test_unsupported_format(self, client: TestClient) -> None:
        response = client.post(
            "/api/v1/documents/upload",
            files={"file": ("logo.png", b"\x89PNG\r\n", "image/png")},
            data={"is_shared": "true"},
        )

        assert response.status_code == 415
        assert response.json()["error"] == "UnsupportedFormatError"

    def test_missing_tenant(self, client: TestClient) -> None:
        response = client.post(
            "/api/v1/documents/upload",
            files={"file": ("refunds.txt", _TEXT, "text/plain")},
        )

        assert response.status_code == 400
        assert response.json()["error"] == "InvalidRequestError"

    def test_octet_stream_resolved_from_filename(self, client: TestClient) -> None:
        response = client.post(
            "/api/v1/documents/upload",
            files={"file": ("notes.txt", _TEXT, "application/octet-stream")},
            data={"is_shared": "true"},
        )

        assert response.status_code == 200
        assert response.json()["status"] == "completed"

    def test_too_large(self, app: FastAPI, settings: Settings) -> None:
        app.state.settings = settings.model_copy(update={"max_upload_bytes": 16})

        response = TestClient(app).post(
            "/api/v1/documents/upload",
            files={"file": ("refunds.txt", _TEXT, "text/plain")},
            data={"is_shared": "true"},
        )

        assert response.status_code == 413

    def test_failed_processing_reported(
        self, client: TestClient, embedding_provider: MockEmbeddingProvider, embedding_outage: Exception
    ) -> None:
        embedding_provider.fail_with = embedding_outage

        body = _upload(client, is_shared="true")

        assert body["status"] == "failed"
        assert "embedding service unavailable" in body["message"]


class TestDocuments:
    def test_list_and_download(self, client: TestClient) -> None:
        _upload(client, tenant_id="acme", title="Acme Refunds")

        listing = client.get("/api/v1/documents", params={"tenant_id": "acme"}).json()
        assert listing["count"] == 1
        document = listing["documents"][0]
        assert document["title"] == "Acme Refunds"
        assert document["scope"] == "avatar:acme"

        assert client.get("/api/v1/documents").json()["count"] == 0

        download = client.get(
            "/api/v1/documents/download",
            params={"source_id": document["source_id"], "tenant_id": "acme"},
        )
        assert download.status_code == 200
        assert download.content == _TEXT
        assert 'filename="refunds.txt"' in download.headers["content-disposition"]

    def test_download_non_ascii_filename(self, client: TestClient) -> None:
        client.post(
            "/api/v1/documents/upload",
            files={"file": ("資料.txt", _TEXT, "text/plain")},
            data={"tenant_id": "acme"},
        )
        source_id = client.get("/api/v1/documents", params={"tenant_id": "acme"}).json()["documents"][0][
            "source_id"
        ]

        download = client.get(
            "/api/v1/documents/download", params={"source_id": source_id, "tenant_id": "acme"}
        )

        assert download.status_code == 200
        disposition = download.headers["content-disposition"]
        assert disposition.endswith("filename*=UTF-8''%E8%B3%87%E6%96%99.txt")

    def test_content_disposition_escapes_quotes(self) -> None:
        header = _content_disposition('say "hi".txt')

        assert header == (
            "attachment; filename=\"say hi.txt\"; filename*=UTF-8''say%20%22hi%22.txt"
        )

    def test_delete(self, client: TestClient, vector_index: MockVectorIndex) -> None:
        _upload(client, tenant_id="acme")
        source_id = client.get("/api/v1/documents", params={"tenant_id": "acme"}).json()["documents"][0][
            "source_id"
        ]

        response = client.post(
            "/api/v1/documents/delete", json={"source_id": source_id, "tenant_id": "acme"}
        )

        assert response.status_code == 200
        assert response.json() == {
            "success": True,
            "source_id": source_id,
            "complete": True,
            "remaining_ids": [],
        }
        assert vector_index.records("avatar-acme") == {}

    def test_delete_wrong_tenant(self, client: TestClient) -> None:
        _upload(client, tenant_id="acme")
        source_id = client.get("/api/v1/documents", params={"tenant_id": "acme"}).json()["documents"][0][
            "source_id"
        ]

        response = client.post(
            "/api/v1/documents/delete", json={"source_id": source_id, "tenant_id": "globex"}
        )

        assert response.status_code == 403
        assert response.json()["error"] == "AccessDeniedError"

    def test_delete_unknown(self, client: TestClient) -> None:
        response = client.post("/api/v1/documents/delete", json={"source_id": "shared_0_missing"})
        assert response.status_code == 404

    def test_delete_requires_source_id(self, client: TestClient) -> None:
        assert client.post("/api/v1/documents/delete", json={"source_id": ""}).status_code == 422


class TestKnowledge:
    def test_search(self, client: TestClient) -> None:
        _upload(client, title="Refund Policy", is_shared="true")

        response = client.post("/api/v1/knowledge/search", json={"query": _TEXT.decode(), "top_k": 3})

        assert response.status_code == 200
        body = response.json()
        assert body["sources"] == ["Refund Policy"]
        assert body["chunks"][0]["text"] == _TEXT.decode()
        assert body["context"].startswith("## Knowledge Base Context")

    def test_search_nothing_found(self, client: TestClient) -> None:
        body = client.post("/api/v1/knowledge/search", json={"query": "anything"}).json()
        assert body == {"chunks": [], "sources": [], "context": ""}

    def test_search_validation(self, client: TestClient) -> None:
        assert client.post("/api/v1/knowledge/search", json={"query": ""}).status_code == 422
        assert (
            client.post("/api/v1/knowledge/search", json={"query": "x", "top_k": 0}).status_code == 422
        )

    def test_stats(self, client: TestClient) -> None:
        _upload(client, tenant_id="acme")

        body = client.get("/api/v1/knowledge/stats").json()

        assert body["total_vectors"] == 1
        assert body["namespaces"] == {"avatar-acme": 1}


class TestHealth:
    def test_healthy(self, client: TestClient) -> None:
        body = client.get("/api/v1/health").json()

        assert body["status"] == "healthy"
        assert body["version"] == "0.1.0"
        assert body["providers"]["embedding"] is True
        assert body["providers"]["vector_index"] is True

    def test_unhealthy_when_index_down(self, client: TestClient, vector_index: MockVectorIndex) -> None:
        async def broken_stats():  # noqa: ANN202
            raise RuntimeError("index unreachable")

        vector_index.get_stats = broken_stats

        body = client.get("/api/v1/health").json()

        assert body["providers"]["vector_index"] is False
        assert body["status"] == "unhealthy"
