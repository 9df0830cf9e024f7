"""
Centralized configuration using Pydantic Settings.

All environment variables are loaded and validated here.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Application database
    db_host: str = "db"
    db_port: int = 5432
    db_name: str = "jobtrack"
    db_user: str = "jobtrack"
    db_password: str = ""

    # Gemini
    gemini_api_key: str = ""
    gemini_model: str = "gemini-2.0-flash"

    # Google OAuth (Gmail access token refresh)
    google_client_id: str = ""
    google_client_secret: str = ""
    gmail_api_url: str = "https://gmail.googleapis.com/gmail/v1/users/me"
    google_token_url: str = "https://oauth2.googleapis.com/token"
    gmail_timeout_seconds: float = 30.0

    # Sync
    sync_default_days: int = 3
    sync_batch_size: int = 50

    # Classifier
    classifier_max_retries: int = 3
    classifier_base_backoff_seconds: float = 10.0
    # Retry hints longer than this mean the daily quota is gone, not a throttle
    quota_delay_threshold_seconds: float = 60.0
    trusted_body_limit: int = 1500
    unknown_body_limit: int = 3000
    # Gemini free tier allows 15 requests per minute; 0 disables the limiter
    ai_requests_per_minute: int = 15

    # Pre-filter rules (defaults to the packaged rule set)
    prefilter_rules_path: str | None = None

    # Applications still SENT after this many days are displayed as GHOSTED
    ghosted_after_days: int = 10

    # Scheduler (single-tenant periodic sync) - disabled by default
    scheduler_enabled: bool = False
    scheduler_interval_minutes: int = 60
    scheduler_user_id: str = ""

    # Logging
    log_level: str = "INFO"
    json_logs: bool = True  # False for colored dev output

    @property
    def database_url(self) -> str:
        """PostgreSQL connection URL for the application database."""
        return (
            f"postgresql://{self.db_user}:{self.db_password}"
            f"@{self.db_host}:{self.db_port}/{self.db_name}"
        )


# Global settings instance
settings = Settings()
