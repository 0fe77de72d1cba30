"""Configuration settings for auroraboot_client.

Uses pydantic-settings for config parsing from environment variables
and defaults. Configuration precedence: CLI flags > env vars > defaults.
"""

from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# WebSocket close code for a normal, completed stream
CLOSE_NORMAL = 1000


class Settings(BaseSettings):
    """Application settings.

    Settings are loaded from environment variables with the AURORABOOT_
    prefix. CLI flags can override these at runtime.
    """

    model_config = SettingsConfigDict(
        env_prefix="AURORABOOT_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Server
    base_url: str = Field(
        default="http://localhost:8080",
        description="Base URL of the AuroraBoot server",
    )

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )

    # Timeouts (in seconds)
    request_timeout: float = Field(
        default=30.0,
        gt=0,
        description="Timeout for HTTP requests",
    )
    connect_timeout: float = Field(
        default=10.0,
        gt=0,
        description="Timeout for opening the log stream",
    )

    # Log streaming
    grace_period: float = Field(
        default=2.0,
        ge=0,
        description="Seconds to wait after an abnormal close before "
        "declaring the log stream lost",
    )
    clean_close_codes: list[int] = Field(
        default_factory=lambda: [CLOSE_NORMAL],
        description="Close codes that mean the stream completed normally",
    )
    max_reconnects: int = Field(
        default=3,
        ge=0,
        le=20,
        description="Maximum log stream reconnects per observed build",
    )

    # Listing
    list_limit: int = Field(
        default=50,
        ge=1,
        le=100,
        description="Default page size when listing builds",
    )

    @field_validator("base_url")
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        """Validate base_url is an http(s) URL and strip trailing slashes."""
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"base_url must start with http:// or https://, got '{v}'")
        return v.rstrip("/")


def get_settings() -> Settings:
    """Get the application settings.

    Returns:
        Settings instance loaded from environment.
    """
    return Settings()


def print_settings_json(settings: Settings | None = None) -> str:
    """Render effective settings as JSON.

    Args:
        settings: Optional settings instance; uses default if not provided.

    Returns:
        JSON string of effective settings.
    """
    if settings is None:
        settings = get_settings()
    return settings.model_dump_json(indent=2)


__all__ = ["CLOSE_NORMAL", "Settings", "get_settings", "print_settings_json"]
