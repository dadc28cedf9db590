"""Application configuration and environment-driven settings.

Defines the Settings class based on pydantic-settings to centralize configuration for:
- Embedding and generation providers (API keys, model names, provider selection)
- The document store (DATABASE_URL; SQLite file by default, PostgreSQL + pgvector supported)
- Chunking and retrieval knobs
- Source trees (local PDF directory, Google Drive folders)
- Admin credentials for sync routes
- Optional console export of OpenTelemetry spans

A light-weight local safety warning is logged if the selected providers have no key
configured when not running in Docker. Missing keys become a ConfigurationError at first use.
"""
import logging
import os
from typing import List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


def _split_csv(value: str) -> List[str]:
    return [s.strip() for s in (value or "").split(",") if s.strip()]


class Settings(BaseSettings):
    """Strongly-typed application settings loaded from environment variables.

    Uses pydantic-settings to populate fields from a .env file or process env.
    See individual field names for semantics and safe defaults.
    """
    # Providers
    EMBEDDINGS_PROVIDER: str = "OPENAI"  # OPENAI | VOYAGE
    GENERATION_PROVIDER: str = "ANTHROPIC"  # ANTHROPIC | OPENAI

    OPENAI_API_KEY: str = Field(default="", description="OpenAI API key")
    OPENAI_EMBEDDING_MODEL: str = "text-embedding-3-large"
    OPENAI_CHAT_MODEL: str = "gpt-4o"

    VOYAGE_API_KEY: str = Field(default="", description="Voyage AI API key")
    VOYAGE_MODEL: str = "voyage-3"

    ANTHROPIC_API_KEY: str = Field(default="", description="Anthropic API key")
    ANTHROPIC_MODEL: str = "claude-3-5-sonnet-20240620"
    MAX_OUTPUT_TOKENS: int = 800

    # Data store
    DATABASE_URL: str = "sqlite:///./data/index.sqlite"

    # Chunking
    CHUNK_SIZE_CHARS: int = 1500
    CHUNK_OVERLAP_CHARS: int = 200

    # Retrieval / query
    RETRIEVAL_TOP_K: int = 8
    SHORT_QUERY_TOP_K: int = 12
    MAX_MESSAGE_CHARS: int = 2000
    SSE_KEEPALIVE_SECONDS: float = 15.0

    # Sources
    PDFS_DIR: str = "./data/pdfs"
    PDF_BASE_URL: str = ""
    GOOGLE_DRIVE_FOLDER_IDS: str = ""
    GOOGLE_OAUTH_TOKEN: str = "./credentials/google-token.json"
    INGEST_MIME_WHITELIST: str = ""

    # Admin (sync routes)
    ADMIN_USER: str = ""
    ADMIN_PASS: str = ""

    # Observability
    OTEL_CONSOLE_EXPORT: bool = False
    LOG_LEVEL: str = "INFO"

    # Derived
    @property
    def drive_folder_ids(self) -> List[str]:
        """Google Drive folder ids parsed from GOOGLE_DRIVE_FOLDER_IDS."""
        return _split_csv(self.GOOGLE_DRIVE_FOLDER_IDS)

    @property
    def mime_whitelist(self) -> List[str]:
        """Allowed mime types parsed from INGEST_MIME_WHITELIST (empty means all)."""
        return _split_csv(self.INGEST_MIME_WHITELIST)

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")


settings = Settings()

# Safety check for local dev (inside the API container these must be set)
if os.environ.get("RUNNING_IN_DOCKER", "0") == "0":
    _embed_key = settings.VOYAGE_API_KEY if settings.EMBEDDINGS_PROVIDER.upper() == "VOYAGE" else settings.OPENAI_API_KEY
    if not _embed_key:
        # Avoid raising to allow local scaffolding before setting .env
        logger.warning(
            "No API key set for EMBEDDINGS_PROVIDER=%s. Set it in .env before running a sync or /ask.",
            settings.EMBEDDINGS_PROVIDER,
        )
