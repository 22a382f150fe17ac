"""Configuration and environment settings for the expense classifier."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings for the expense classifier."""

    classification_endpoint_url: str = "http://127.0.0.1:8000/v1/expense-classification"
    classification_model: str = "openai/gpt-oss-120b"
    classification_temperature: float = 0.2
    single_max_tokens: int = 500
    batch_max_tokens: int = 2000
    classification_timeout_seconds: float = 30.0
    classification_max_retries: int = 3
    classification_backoff_base: float = 2.0
    max_description_length: int = 500

    rate_limit_max_requests: int = 10
    rate_limit_window_seconds: float = 60.0

    groq_api_key: str | None = None
    relay_access_tokens: list[str] = []

    database_url: str = "sqlite:///categories.db"
    server_host: str = "127.0.0.1"
    server_port: int = 8000

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")


def get_settings() -> "Settings":
    """Return an instance of the application settings."""
    return Settings()
