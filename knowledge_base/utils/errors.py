"""Custom exception hierarchy for the knowledge base.

Everything the package raises derives from :class:`KnowledgeBaseError`.  When
a backend is at fault ("openai", "chromadb", "s3") its name travels on the
exception as ``provider_name``.

The hierarchy is organized by pipeline stage:

    KnowledgeBaseError  (base -- catch-all for any knowledge base error)
    +-- UnsupportedFormatError          (unknown media type)
    +-- ExtractionFailedError           (parser failure)
    |   +-- InsufficientContentError    (document produced zero chunks)
    +-- EncodingFallbackExhaustedError  (no text decoding succeeded)
    +-- EmbeddingProviderError          (embedding API failure)
    +-- VectorIndexError                (vector database failure)
    |   +-- IndexNotReadyTimeoutError   (readiness polling gave up)
    +-- PartialDeletionWarning          (vectors survived reconciliation)
    +-- ObjectStoreError                (raw file / metadata storage failure)
    +-- DocumentNotFoundError           (no metadata entry for source id)
    +-- AccessDeniedError               (scope mismatch on a document)
    +-- FileTooLargeError               (upload exceeds the size limit)
    +-- InvalidRequestError             (missing tenant for a scoped upload)
    +-- ConfigurationError              (startup / missing config)

Ingestion validation errors (format, size, tenant) are raised to the caller
synchronously; everything that happens after a processing id has been issued
is captured on the processing status instead.
"""


class KnowledgeBaseError(Exception):
    """Root of the hierarchy.

    ``str(exc)`` reads ``[provider] message`` when a provider is attached,
    which is how the CLI prints failures.
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        provider_name: str | None = None,
    ) -> None:
        self._message = message
        self._provider_name = provider_name
        super().__init__(self._message)

    @property
    def message(self) -> str:
        return self._message

    @property
    def provider_name(self) -> str | None:
        return self._provider_name

    def __str__(self) -> str:
        if self._provider_name:
            return f"[{self._provider_name}] {self._message}"
        return self._message


# ---------------------------------------------------------------------------
# Extraction errors
# ---------------------------------------------------------------------------

class UnsupportedFormatError(KnowledgeBaseError):
    """Raised when a document's media type has no registered extractor."""

    def __init__(
        self,
        message: str = "Unsupported document format",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class ExtractionFailedError(KnowledgeBaseError):
    """Raised when a parser cannot read a document's text."""

    def __init__(
        self,
        message: str = "Text extraction failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class InsufficientContentError(ExtractionFailedError):
    """Raised when extraction succeeded but produced no chunkable text."""

    def __init__(
        self,
        message: str = "Document has insufficient content to index",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class EncodingFallbackExhaustedError(KnowledgeBaseError):
    """Raised when no candidate text encoding decodes a plain-text buffer."""

    def __init__(
        self,
        message: str = "Could not decode text with any supported encoding",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# External service errors
# ---------------------------------------------------------------------------

class EmbeddingProviderError(KnowledgeBaseError):
    """Raised when the embedding API fails or returns a malformed response.

    Embedding calls are all-or-nothing: no partial results are returned
    alongside this error.
    """

    def __init__(
        self,
        message: str = "Embedding provider call failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class VectorIndexError(KnowledgeBaseError):
    """Raised when a vector database operation fails."""

    def __init__(
        self,
        message: str = "Vector index operation failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class IndexNotReadyTimeoutError(VectorIndexError):
    """Raised when the vector index does not become ready within the polling budget."""

    def __init__(
        self,
        message: str = "Vector index did not become ready in time",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class ObjectStoreError(KnowledgeBaseError):
    """Raised when the object store rejects a read, write, or delete."""

    def __init__(
        self,
        message: str = "Object store operation failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Deletion
# ---------------------------------------------------------------------------

class PartialDeletionWarning(KnowledgeBaseError):
    """Signals that some vectors for a source survived deletion reconciliation.

    Carries the leftover vector ids so operators can retry or clean up
    manually.
    """

    def __init__(
        self,
        message: str = "Some vectors could not be deleted",
        provider_name: str | None = None,
        remaining_ids: list[str] | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
        self._remaining_ids = list(remaining_ids or [])

    @property
    def remaining_ids(self) -> list[str]:
        return list(self._remaining_ids)


# ---------------------------------------------------------------------------
# Request-level errors
# ---------------------------------------------------------------------------

class DocumentNotFoundError(KnowledgeBaseError):
    """Raised when no metadata entry exists for a source id."""

    def __init__(
        self,
        message: str = "Document not found",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class AccessDeniedError(KnowledgeBaseError):
    """Raised when a caller's tenant scope does not match a document's scope."""

    def __init__(
        self,
        message: str = "Access denied",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class FileTooLargeError(KnowledgeBaseError):
    """Raised when an uploaded document exceeds the configured size limit."""

    def __init__(
        self,
        message: str = "File exceeds the maximum upload size",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class InvalidRequestError(KnowledgeBaseError):
    """Raised when a request is missing a required field, e.g. the tenant of a scoped upload."""

    def __init__(
        self,
        message: str = "Invalid request",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class ConfigurationError(KnowledgeBaseError):
    """Raised when configuration is invalid or missing at startup."""

    def __init__(
        self,
        message: str = "Invalid or missing configuration",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
