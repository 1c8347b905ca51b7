"""Application settings loaded from environment variables via pydantic-settings.

# ─── HOW SETTINGS WORK ────────────────────────────────────────────────
#
# Two sources, in priority order:
#
#   1. **Environment variables** - e.g., OPENAI_API_KEY=sk-abc123
#   2. **.env file** - key=value lines in the project root .env file
#
# Field `openai_api_key` maps to env var `OPENAI_API_KEY`.  Defaults below
# apply when neither source sets a value.
# ──────────────────────────────────────────────────────────────────────
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """docingest application settings.

    Environment variables override defaults. Loaded from .env file when present.
    """

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    # === Embedding Providers ===
    # Server-wide OpenAI key, used when the caller's profile carries none.
    openai_api_key: str = ""
    openai_organization_id: str = ""
    openai_base_url: str = ""
    openai_embedding_model: str = "text-embedding-3-small"
    azure_openai_api_version: str = "2023-12-01-preview"
    local_embedding_model: str = "sentence-transformers/all-MiniLM-L6-v2"
    # Where fastembed keeps downloaded ONNX weights; empty uses its default.
    local_embedding_cache_dir: str = ""

    # === Chunking ===
    # cl100k-compatible tokenizer, the same rule OpenAI embedding models count with.
    tokenizer_model: str = "Xenova/text-embedding-ada-002"
    chunk_size: int = 2000
    chunk_overlap: int = 200

    # === Embedding request limits ===
    max_tokens_per_request: int = 300_000
    max_batch_tokens: int = 250_000  # 83% of the per-request limit
    max_batch_items: int = 2048  # OpenAI inputs-per-request cap
    persist_batch_size: int = 50

    # === Processing job ===
    max_file_size_bytes: int = 200 * 1024 * 1024
    processing_deadline_seconds: float = 540.0  # under the 10 min client timeout
    # 0 disables reclaiming files stuck in "processing" after a crash.
    processing_lease_seconds: int = 0

    # === Storage ===
    record_store_path: str = "data/docingest.db"
    blob_store_dir: str = "data/blobs"
    signed_url_secret: str = "change-me"
    signed_url_ttl_seconds: int = 60 * 60 * 24

    # === Client retry driver ===
    process_url: str = "http://localhost:8000/api/retrieval/process"
    docx_process_url: str = "http://localhost:8000/api/retrieval/process/docx"
    api_token: str = ""
    retry_max_retries: int = 3
    retry_base_delay_seconds: float = 2.0
    first_attempt_timeout_seconds: float = 10 * 60
    retry_attempt_timeout_seconds: float = 5 * 60

    # === App Config ===
    app_host: str = "0.0.0.0"
    app_port: int = 8000
    app_env: str = "development"
    log_level: str = "INFO"

    @property
    def is_development(self) -> bool:
        return self.app_env == "development"
