"""Business logic: ingestion, retrieval, deletion and the facade over them."""

from knowledge_base.services.deletion_reconciler import DeletionReconciler
from knowledge_base.services.knowledge_base_service import KnowledgeBaseService
from knowledge_base.services.metadata_store import MetadataStore
from knowledge_base.services.retrieval_service import RetrievalService
from knowledge_base.services.status_store import ProcessingStatusStore, StatusRetentionSweeper

__all__ = [
    "DeletionReconciler",
    "KnowledgeBaseService",
    "MetadataStore",
    "ProcessingStatusStore",
    "RetrievalService",
    "StatusRetentionSweeper",
]
