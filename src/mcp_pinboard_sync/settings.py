"""Application settings (env/.env)."""

from __future__ import annotations

from pathlib import Path

from pydantic import AnyHttpUrl, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings for the MCP server, the Pinboard API and the local cache."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Optional: when unset the token comes from the credential store (see `login`).
    pinboard_token: str | None = Field(default=None, alias="PINBOARD_TOKEN")
    pinboard_base_url: AnyHttpUrl = Field(
        default="https://api.pinboard.in/v1",
        alias="PINBOARD_BASE_URL",
    )

    database_url: str = Field(default="sqlite:///pinboard_cache.db", alias="DATABASE_URL")
    credentials_path: Path = Field(
        default=Path("~/.config/pinboard-sync/credentials.json"),
        alias="CREDENTIALS_PATH",
    )
    shared_credentials_path: Path = Field(
        default=Path("~/.local/share/pinboard-sync/credentials.json"),
        alias="SHARED_CREDENTIALS_PATH",
    )

    page_size: int = Field(default=100, alias="PAGE_SIZE", ge=1, le=100)
    recent_count: int = Field(default=100, alias="RECENT_COUNT", ge=1, le=100)

    mcp_api_key: str = Field(alias="MCP_API_KEY", min_length=1)
    mcp_host: str = Field(default="127.0.0.1", alias="MCP_HOST")
    mcp_port: int = Field(default=5005, alias="MCP_PORT", ge=1, le=65535)

    http_timeout_seconds: float = Field(
        default=10.0,
        alias="HTTP_TIMEOUT_SECONDS",
        gt=0,
    )
    log_level: str = Field(default="info", alias="LOG_LEVEL")
