"""Application configuration via pydantic-settings."""

from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from followupx.scheduler.cron import validate_cron_expression


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # App
    app_name: str = "FollowUpX"
    app_env: Literal["development", "staging", "production"] = "development"
    debug: bool = False
    app_base_url: str = "http://localhost:3000"

    # Database
    database_url_override: str | None = Field(default=None, alias="DATABASE_URL")
    db_host: str = "localhost"
    db_port: int = 3306
    db_name: str = "followupx"
    db_user: str = "followupx"
    db_password: str = ""

    @property
    def database_url(self) -> str:
        if self.database_url_override:
            return self.database_url_override
        return (
            f"mysql+aiomysql://{self.db_user}:{self.db_password}"
            f"@{self.db_host}:{self.db_port}/{self.db_name}"
        )

    @property
    def database_url_sync(self) -> str:
        if self.database_url_override:
            return self.database_url_override.replace("+aiomysql", "+pymysql").replace(
                "+aiosqlite", ""
            )
        return (
            f"mysql+pymysql://{self.db_user}:{self.db_password}"
            f"@{self.db_host}:{self.db_port}/{self.db_name}"
        )

    # Scheduler
    scheduler_timezone: str = "Asia/Kolkata"
    scheduler_tick_seconds: float = 60.0
    scheduler_global_concurrency: int = 20
    scheduler_default_concurrency: int = 5
    scheduler_lease_seconds: int = 600
    scheduler_handler_timeout_seconds: float = 120.0
    scheduler_max_attempts: int = 3
    scheduler_retry_backoff_seconds: int = 60
    scheduler_shutdown_grace_seconds: float = 10.0
    scheduler_job_retention_days: int = 30

    # Periodic jobs (5-field cron, evaluated in scheduler_timezone)
    overdue_scan_cron: str = "0 8 * * *"
    daily_summary_cron: str = "0 8 * * *"
    recovery_scan_cron: str = "0 9 * * *"
    weekly_report_cron: str = "0 8 * * 1"
    message_sweep_cron: str = "* * * * *"
    cleanup_cron: str = "30 3 * * *"

    @field_validator(
        "overdue_scan_cron",
        "daily_summary_cron",
        "recovery_scan_cron",
        "weekly_report_cron",
        "message_sweep_cron",
        "cleanup_cron",
    )
    @classmethod
    def check_cron(cls, value: str) -> str:
        ok, error = validate_cron_expression(value)
        if not ok:
            raise ValueError(error)
        return value

    @model_validator(mode="after")
    def check_lease(self) -> "Settings":
        # A job still inside its handler timeout must never be reclaimable.
        if self.scheduler_lease_seconds <= self.scheduler_handler_timeout_seconds:
            raise ValueError(
                "scheduler_lease_seconds must be greater than scheduler_handler_timeout_seconds"
            )
        return self

    # Lead recovery scan
    recovery_cold_after_days: int = 7
    recovery_stuck_after_days: int = 14
    recovery_terminal_statuses: list[str] = ["won", "lost"]
    recovery_stuck_statuses: list[str] = ["contacted", "qualified"]

    # Notifications / messages
    notification_ttl_days: int = 30
    message_max_retries: int = 3
    message_sweep_batch_size: int = 50

    # Email (SMTP)
    email_smtp_host: str | None = None
    email_smtp_port: int = 587
    email_username: str | None = None
    email_password: str | None = None
    email_from: str = "FollowUpX <noreply@followupx.com>"
    email_timeout_seconds: float = 30.0

    @property
    def email_configured(self) -> bool:
        return bool(self.email_smtp_host and self.email_username)


@lru_cache
def get_settings() -> Settings:
    return Settings()
