"""Application configuration settings."""

from __future__ import annotations

from functools import lru_cache

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

ENV_FILE = ".env"
ENV_FILE_ENCODING = "utf-8"


class Settings(BaseSettings):
    """Application configuration values loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=ENV_FILE, env_file_encoding=ENV_FILE_ENCODING, extra="ignore"
    )

    database_url: str = Field(
        default="sqlite:///./clinic_notifications.db",
        description="Database connection URL used by SQLAlchemy to connect to the DB",
        min_length=1,
    )
    secret_key: str = Field(
        description="Secret key used to verify identity tokens", min_length=1
    )
    access_token_expire_minutes: int = Field(
        default=60,
        description="Number of minutes before access tokens expire",
        gt=0,
    )
    app_timezone: str | None = Field(
        default=None,
        description="IANA timezone (or UTC offset) used for stored timestamps",
    )

    sendgrid_api_key: str | None = Field(
        default=None,
        description="SendGrid API key used for sending notification emails via the REST API",
    )
    sendgrid_sender: str | None = Field(
        default=None,
        description="Email address that will appear as the sender of notification emails",
        min_length=3,
    )

    at_username: str | None = Field(
        default=None, description="Africa's Talking account username"
    )
    at_api_key: str | None = Field(
        default=None, description="Africa's Talking API key"
    )
    at_sender_id: str | None = Field(
        default=None, description="Registered sender id used for outgoing SMS"
    )
    at_base_url: str = Field(
        default="https://api.africastalking.com/version1",
        description="Base URL of the Africa's Talking messaging API",
    )

    delivery_max_attempts: int = Field(
        default=3, description="Total delivery attempts before a notification fails", gt=0
    )
    delivery_backoff_base_ms: int = Field(
        default=5000, description="Wait before the second delivery attempt", gt=0
    )
    delivery_backoff_multiplier: float = Field(
        default=2.0, description="Growth factor applied to each following wait", gt=1
    )
    delivery_lease_ms: int = Field(
        default=60000, description="How long a worker holds a claimed job", gt=0
    )
    delivery_poll_interval_seconds: float = Field(
        default=1.0, description="Idle wait between queue polls", gt=0
    )
    delivery_worker_count: int = Field(
        default=2, description="Number of delivery worker threads", ge=1
    )
    delivery_send_timeout_seconds: float = Field(
        default=30.0, description="Upper bound for a single channel send", gt=0
    )
    delivery_worker_enabled: bool = Field(
        default=True, description="Start the delivery workers with the application"
    )

    unread_includes_sent: bool = Field(
        default=False,
        description="Count SENT notifications as unread in addition to PENDING ones",
    )

    @model_validator(mode="after")
    def _validate_channel_settings(self) -> "Settings":
        if bool(self.sendgrid_api_key) ^ bool(self.sendgrid_sender):
            raise ValueError(
                "SENDGRID_API_KEY and SENDGRID_SENDER must both be provided to enable email"
            )
        if self.sendgrid_sender and "@" not in self.sendgrid_sender:
            raise ValueError("SENDGRID_SENDER must be a valid email address")
        if bool(self.at_username) ^ bool(self.at_api_key):
            raise ValueError("AT_USERNAME and AT_API_KEY must both be provided to enable SMS")
        if self.delivery_lease_ms <= self.delivery_send_timeout_seconds * 1000:
            raise ValueError(
                "DELIVERY_LEASE_MS must be longer than DELIVERY_SEND_TIMEOUT_SECONDS"
            )
        return self


@lru_cache
def get_settings() -> Settings:
    """Return cached application settings instance."""

    return Settings()


def reset_settings_cache() -> None:
    """Clear the settings cache to force reloading from the environment."""

    get_settings.cache_clear()


__all__ = ["Settings", "get_settings", "reset_settings_cache"]
