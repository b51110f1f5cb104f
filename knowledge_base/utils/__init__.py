"""Utility modules for the knowledge base.

- **errors** -- exception hierarchy rooted at KnowledgeBaseError.
- **logging** -- structlog setup with coloured console output in
  development and JSON in production.
- **text** -- whitespace cleanup, token estimates and document summaries.
- **concurrency** -- timeouts around provider calls and thread offloading
  for blocking SDKs.
"""

from knowledge_base.utils.errors import (
    AccessDeniedError,
    ConfigurationError,
    DocumentNotFoundError,
    EmbeddingProviderError,
    EncodingFallbackExhaustedError,
    ExtractionFailedError,
    FileTooLargeError,
    IndexNotReadyTimeoutError,
    InsufficientContentError,
    InvalidRequestError,
    KnowledgeBaseError,
    ObjectStoreError,
    PartialDeletionWarning,
    UnsupportedFormatError,
    VectorIndexError,
)
from knowledge_base.utils.logging import configure_logging, get_logger
from knowledge_base.utils.text import clean_text, estimate_tokens, generate_summary

__all__ = [
    "AccessDeniedError",
    "ConfigurationError",
    "DocumentNotFoundError",
    "EmbeddingProviderError",
    "EncodingFallbackExhaustedError",
    "ExtractionFailedError",
    "FileTooLargeError",
    "IndexNotReadyTimeoutError",
    "InsufficientContentError",
    "InvalidRequestError",
    "KnowledgeBaseError",
    "ObjectStoreError",
    "PartialDeletionWarning",
    "UnsupportedFormatError",
    "VectorIndexError",
    "clean_text",
    "configure_logging",
    "estimate_tokens",
    "generate_summary",
    "get_logger",
]
