"""Configuration from .env only."""
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

PROJECT_ROOT = Path(__file__).resolve().parent.parent


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Anthropic Messages API
    anthropic_api_key: str = ""
    anthropic_api_url: str = "https://api.anthropic.com/v1"
    anthropic_model: str = "claude-sonnet-4-5-20250929"
    anthropic_version: str = "2023-06-01"
    anthropic_beta: str = "prompt-caching-2024-07-31"
    chat_max_tokens: int = 4096
    metadata_max_tokens: int = 1024
    llm_timeout_seconds: float = 300.0

    database_url: str = "sqlite+aiosqlite:///./chat_history.db"

    # Хранилище PDF: "local" (каталог upload_dir) или "minio"
    storage_backend: str = "local"
    upload_dir: Path = Path("./uploads")
    minio_endpoint: str = "localhost:9000"
    minio_access_key: str = "minioadmin"
    minio_secret_key: str = "minioadmin"
    minio_bucket: str = "pdfchat"
    minio_secure: bool = False

    # base64 PDF cache: up to 100 documents, 1 hour
    pdf_cache_max_entries: int = 100
    pdf_cache_ttl_seconds: int = 3600

    metadata_retry_attempts: int = 3
    metadata_retry_base_delay: float = 1.0
    backfill_limit: int = 1000

    cors_origins: list[str] = ["*"]
    app_host: str = "0.0.0.0"
    app_port: int = 3001
    log_level: str = "INFO"

    def get_upload_dir(self, base_dir: Path | None = None) -> Path:
        p = Path(self.upload_dir)
        if not p.is_absolute():
            base = base_dir if base_dir is not None else PROJECT_ROOT
            p = base / p
        return p


def validate_required_settings(s: Settings) -> None:
    """Падаем на старте, если нет ключа API."""
    if not s.anthropic_api_key.strip():
        raise RuntimeError("ANTHROPIC_API_KEY must be set")


settings = Settings()
