"""Configuration and environment settings for the paysync worker."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings for the paysync worker."""

    database_url: str
    poll_interval_seconds: int = 10
    shutdown_timeout_seconds: int = 30

    account_batch_size: int = 5
    discovery_batch_size: int = 1
    extraction_batch_size: int = 3

    max_messages_per_account: int = 10000
    messages_per_page: int = 50
    initial_sync_days: int = 365
    token_refresh_window_seconds: int = 300

    google_client_id: str = ""
    google_client_secret: str = ""
    http_timeout_seconds: float = 30.0

    groq_api_key: str = ""
    llm_model: str = "llama-3.3-70b-versatile"
    llm_temperature: float = 0.1
    llm_max_completion_tokens: int = 2048
    llm_top_p: float = 0.95
    llm_stream: bool = False

    log_level: str = "INFO"
    log_file: str | None = None

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")


def get_settings() -> "Settings":
    """Return an instance of the application settings."""
    return Settings()
