"""Worker configuration loaded from environment variables."""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Blocksync worker settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Core
    secret_key: str = "change-me-in-production"
    debug: bool = False

    # Database
    database_url: str = "sqlite+aiosqlite:///data/db/blocksync.db"

    # Remote API
    twitter_api_base_url: str = "https://api.twitter.com"
    twitter_request_timeout: float = Field(default=15.0, gt=0)
    # System-level credential used for bulk user lookups.
    lookup_access_token: str = ""

    # Sync engine
    rate_limit_backoff_seconds: float = Field(default=15 * 60, ge=0)
    snapshot_retention_count: int = Field(default=4, ge=2)
    action_dedup_window_seconds: int = Field(default=60, ge=0)
    lookup_batch_size: int = Field(default=100, ge=1, le=100)

    # Scheduler
    sync_stale_after_hours: float = Field(default=24, gt=0)
    poll_interval_seconds: float = Field(default=5.0, gt=0)

    def validate_runtime_security(self) -> None:
        """Validate settings that must be overridden in production."""
        if self.debug:
            return

        violations: list[str] = []
        if self.secret_key == "change-me-in-production" or len(self.secret_key) < 32:
            violations.append(
                "SECRET_KEY must be overridden with a high-entropy value (>=32 chars)"
            )
        if not self.lookup_access_token:
            violations.append("LOOKUP_ACCESS_TOKEN must be configured in production")

        if violations:
            joined = "; ".join(violations)
            raise ValueError(f"Insecure production configuration: {joined}")
