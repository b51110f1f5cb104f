"""Knowledge base FastAPI application entry point.

Wires providers and services together via constructor injection, exposes
them on ``app.state`` for the routes, and runs startup work (index
readiness, status retention sweeper) in the lifespan.

Provider selection:
    embeddings    OpenAI (or an OpenAI-compatible endpoint)
    vector index  ChromaDB, remote when ``CHROMA_HOST`` is set, else local
    object store  S3 when ``S3_BUCKET`` is set, else in-memory
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any

import structlog
import uvicorn
from fastapi import FastAPI

from knowledge_base.api.middleware import (
    ErrorHandlingMiddleware,
    RequestLoggingMiddleware,
    configure_cors,
)
from knowledge_base.api.routes import router as api_router
from knowledge_base.config.loader import load_config
from knowledge_base.config.settings import Settings
from knowledge_base.interfaces.embedding_provider import IEmbeddingProvider
from knowledge_base.interfaces.object_store import IObjectStore
from knowledge_base.interfaces.vector_index_provider import IVectorIndexProvider
from knowledge_base.providers.cache.memory_cache import MemoryCacheProvider
from knowledge_base.providers.embedding.openai_embedding_provider import OpenAIEmbeddingProvider
from knowledge_base.providers.object_store.memory_object_store import MemoryObjectStore
from knowledge_base.providers.object_store.s3_object_store import S3ObjectStore
from knowledge_base.providers.vector_index.chromadb_provider import ChromaDBProvider
from knowledge_base.services.deletion_reconciler import DeletionReconciler
from knowledge_base.services.ingestion.chunker import TextChunker
from knowledge_base.services.ingestion.extractor import TextExtractor
from knowledge_base.services.ingestion.ingestion_service import IngestionService
from knowledge_base.services.knowledge_base_service import KnowledgeBaseService
from knowledge_base.services.metadata_store import MetadataStore
from knowledge_base.services.retrieval_service import RetrievalService
from knowledge_base.services.status_store import ProcessingStatusStore, StatusRetentionSweeper
from knowledge_base.utils.logging import configure_logging, get_logger

# ---------------------------------------------------------------------------
# Module-level settings & logging
# ---------------------------------------------------------------------------

settings = Settings()
config = load_config(settings=settings)

configure_logging(
    log_level=settings.log_level,
    json_output=(settings.app_env == "production"),
)
_logger: structlog.BoundLogger = get_logger(__name__)


# ---------------------------------------------------------------------------
# Component assembly
# ---------------------------------------------------------------------------


def _build_object_store(app_settings: Settings) -> IObjectStore:
    if app_settings.s3_bucket:
        return S3ObjectStore.from_settings(app_settings)
    _logger.warning("object_store_in_memory", reason="S3_BUCKET not set")
    return MemoryObjectStore()


def build_components(
    app_settings: Settings,
    *,
    embedding_provider: IEmbeddingProvider | None = None,
    vector_index: IVectorIndexProvider | None = None,
    object_store: IObjectStore | None = None,
) -> dict[str, Any]:
    """Construct every provider and service for the application.

    Any of the three external collaborators can be passed in to replace
    the configured one (tests, scripts).  Returns a flat dict of named
    components to be stored on ``app.state``.
    """
    embedding_provider = embedding_provider or OpenAIEmbeddingProvider(settings=app_settings)
    vector_index = vector_index or ChromaDBProvider.from_settings(
        app_settings, dimension=embedding_provider.get_dimension()
    )
    object_store = object_store or _build_object_store(app_settings)

    status_store = ProcessingStatusStore(
        cache=MemoryCacheProvider(
            max_size=app_settings.status_cache_max_size,
            ttl=app_settings.status_retention_seconds,
        ),
        object_store=object_store,
        retention_seconds=app_settings.status_retention_seconds,
    )
    metadata_store = MetadataStore(object_store)

    ingestion = IngestionService(
        extractor=TextExtractor(),
        chunker=TextChunker(
            max_tokens=app_settings.chunk_max_tokens,
            overlap_tokens=app_settings.chunk_overlap_tokens,
        ),
        embedding_provider=embedding_provider,
        vector_index=vector_index,
        metadata_store=metadata_store,
        status_store=status_store,
        max_upload_bytes=app_settings.max_upload_bytes,
    )
    retrieval = RetrievalService(
        embedding_provider=embedding_provider,
        vector_index=vector_index,
        min_score=app_settings.retrieval_min_score,
        default_top_k=app_settings.retrieval_top_k,
    )
    reconciler = DeletionReconciler(
        vector_index=vector_index,
        dimension=embedding_provider.get_dimension(),
        min_id_sweep=app_settings.deletion_min_id_sweep,
        batch_size=app_settings.deletion_batch_size,
        probe_top_k=app_settings.deletion_probe_top_k,
        max_probe_rounds=app_settings.deletion_max_probe_rounds,
        strict=app_settings.deletion_strict,
    )

    knowledge_base = KnowledgeBaseService(
        ingestion=ingestion,
        retrieval=retrieval,
        reconciler=reconciler,
        metadata_store=metadata_store,
        vector_index=vector_index,
    )

    return {
        "settings": app_settings,
        "embedding_provider": embedding_provider,
        "vector_index": vector_index,
        "object_store": object_store,
        "status_store": status_store,
        "knowledge_base": knowledge_base,
        "status_sweeper": StatusRetentionSweeper(
            status_store, interval_seconds=app_settings.status_sweep_interval_seconds
        ),
    }


# ---------------------------------------------------------------------------
# Application lifespan (startup / shutdown)
# ---------------------------------------------------------------------------


@asynccontextmanager
async def _lifespan(application: FastAPI):  # noqa: ANN201
    """Build components, wait for the index, and run the retention sweeper."""
    components = build_components(settings)
    for key, value in components.items():
        setattr(application.state, key, value)

    vector_index: IVectorIndexProvider = components["vector_index"]
    await vector_index.ensure_index()

    sweeper: StatusRetentionSweeper = components["status_sweeper"]
    sweeper.start()

    _logger.info(
        "app_startup",
        version=config.get("app", {}).get("version", "0.1.0"),
        environment=settings.app_env,
        embedding=components["embedding_provider"].get_provider_name(),
        vector_index=vector_index.get_provider_name(),
        object_store=components["object_store"].get_provider_name(),
    )

    yield

    await sweeper.stop()
    _logger.info("app_shutdown")


# ---------------------------------------------------------------------------
# FastAPI application factory
# ---------------------------------------------------------------------------


def create_app() -> FastAPI:
    """Build and configure the FastAPI application."""
    application = FastAPI(
        title="Knowledge Base API",
        version=str(config.get("app", {}).get("version", "0.1.0")),
        description=(
            "Ingest documents into a namespaced vector index, search them for "
            "chat context, and delete them again."
        ),
        lifespan=_lifespan,
    )

    # -- Middleware (order matters: last added = first executed) --
    application.add_middleware(ErrorHandlingMiddleware)
    application.add_middleware(RequestLoggingMiddleware)
    configure_cors(application, allowed_origins=settings.get_cors_origins())

    application.include_router(api_router)
    return application


app = create_app()

# ---------------------------------------------------------------------------
# CLI entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    uvicorn.run(
        "knowledge_base.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=(settings.app_env == "development"),
    )
