"""
Configuration module using Pydantic Settings.

Loads the Gemini model, polling limits and session policy from environment
variables. Supports .env files for local development.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Gemini
    gemini_api_key: str = ""
    gemini_model: str = "gemini-2.5-flash"

    # Upload polling
    poll_interval_seconds: float = 3.0
    upload_max_wait_seconds: float = 600.0
    upload_max_poll_attempts: int | None = None
    continue_on_upload_error: bool = False

    # Sessions
    max_sessions: int = 100

    # Suggestions
    suggestion_count: int = 4

    # Sample documents
    sample_fetch_timeout_seconds: float = 30.0

    # Tracing
    applicationinsights_connection_string: str = ""
    trace_console_export: bool = False

    # App
    log_level: str = "INFO"
    allowed_origins: str = "http://localhost:3000"

    @property
    def cors_origins(self) -> list[str]:
        """Parse comma-separated CORS origins into a list."""
        return [origin.strip() for origin in self.allowed_origins.split(",")]


def get_settings() -> Settings:
    """Factory for cached settings instance."""
    return Settings()
