"""Configuration via pydantic-settings with .env support."""

from __future__ import annotations

from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

REQUIRED_SETTINGS = (
    "openai_api_key",
    "pinecone_api_key",
    "pinecone_environment",
    "pinecone_index_name",
)


class DigestIndexerSettings(BaseSettings):
    """Application settings loaded from environment variables and .env file."""

    model_config = SettingsConfigDict(
        env_prefix="DIGEST_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # OAuth credentials (Gmail + Sheets)
    credentials_path: Path = Path("credentials/client_secret.json")
    token_path: Path = Path("credentials/token.json")

    # Embedding API
    openai_api_key: str = ""
    embedding_endpoint: str = "https://api.openai.com/v1/embeddings"
    embedding_model: str = "text-embedding-3-small"
    max_embedding_chars: int = 8000

    # Pinecone
    pinecone_api_key: str = ""
    pinecone_environment: str = ""
    pinecone_index_name: str = ""
    pinecone_index_host: str = ""
    metadata_text_max_chars: int = 1000

    # Publisher lookup sheet
    publisher_sheet_id: str = ""
    publisher_sheet_name: str = "Publishers"

    # Comma-separated, e.g. "offlinestudio.com,mula.app"
    internal_domains: str = ""

    # Digest selection
    target_sender: str = "logan.lorenz@offlinestudio.com"
    subject_prefix: str = "Mula Daily Digest"

    # Run state database
    state_path: Path = Path("data/digest_indexer.db")

    # Gmail API paging & retry
    max_results_per_page: int = 100
    max_retries: int = 5
    initial_backoff_seconds: float = 1.0
    max_backoff_seconds: float = 60.0
    inter_page_delay_seconds: float = 0.2
    num_retries: int = 3

    # HTTP clients
    request_timeout_seconds: float = 30.0

    # Logging
    log_level: str = "INFO"

    @property
    def internal_domain_list(self) -> list[str]:
        """Internal domains, lowercased, blanks dropped."""
        return [d.strip().lower() for d in self.internal_domains.split(",") if d.strip()]

    def missing_required(self) -> list[str]:
        """Names of required settings that are empty."""
        return [name for name in REQUIRED_SETTINGS if not str(getattr(self, name)).strip()]

    def ensure_directories(self) -> None:
        """Create data and credentials directories if they don't exist."""
        self.state_path.parent.mkdir(parents=True, exist_ok=True)
        self.credentials_path.parent.mkdir(parents=True, exist_ok=True)
