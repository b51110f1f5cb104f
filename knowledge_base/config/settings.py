"""Application settings loaded from environment variables via pydantic-settings.

Values are read from two sources, in priority order:

  1. Environment variables, e.g. ``OPENAI_API_KEY=sk-abc123``
  2. A ``.env`` file in the working directory (local development)

Field ``openai_api_key`` maps to ``OPENAI_API_KEY`` and so on.  Defaults
apply when neither source sets a value.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Knowledge base settings.

    Environment variables override defaults. Loaded from .env file when present.
    """

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    # === Embeddings ===
    openai_api_key: str = ""
    openai_base_url: str = ""  # OpenAI-compatible endpoint (TogetherAI, Azure proxy, ...)
    openai_embedding_model: str = "text-embedding-3-small"
    embedding_batch_size: int = 100

    # === Vector index (ChromaDB) ===
    # chroma_host set => HttpClient against a server; empty => local PersistentClient.
    chroma_host: str = ""
    chroma_port: int = 8000
    chroma_persist_dir: str = "./data/chromadb"
    vector_index_name: str = "knowledge"
    vector_upsert_batch_size: int = 100
    index_ready_max_attempts: int = 30
    index_ready_delay_seconds: float = 1.0

    # === Object store (S3) ===
    s3_bucket: str = ""
    s3_region: str = "us-east-1"
    s3_endpoint_url: str = ""  # MinIO / LocalStack

    # === Chunking ===
    chunk_max_tokens: int = 500
    chunk_overlap_tokens: int = 50

    # === Retrieval ===
    retrieval_top_k: int = 5
    retrieval_min_score: float = 0.2

    # === Deletion ===
    deletion_min_id_sweep: int = 1000
    deletion_batch_size: int = 100
    deletion_probe_top_k: int = 1000
    deletion_max_probe_rounds: int = 10
    deletion_strict: bool = False  # raise PartialDeletionWarning instead of only reporting it

    # === Processing status ===
    # Terminal statuses are kept for 10 minutes, then removed.
    status_retention_seconds: int = 600
    status_sweep_interval_seconds: int = 60
    status_cache_max_size: int = 10_000

    # === Limits & timeouts ===
    max_upload_bytes: int = 10 * 1024 * 1024
    external_call_timeout: float = 30.0

    # === App Config ===
    app_host: str = "0.0.0.0"
    app_port: int = 8000
    app_env: str = "development"
    log_level: str = "INFO"
    cors_origins: str = "*"  # comma-separated

    def get_cors_origins(self) -> list[str]:
        """Return the configured CORS origins as a list."""
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    def uses_remote_chroma(self) -> bool:
        """Return ``True`` when a Chroma server host is configured."""
        return bool(self.chroma_host)
