"""Configuration and environment loading for mcptools servers."""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

TransportMode = Literal["stdio", "http", "both"]


class Settings(BaseSettings):
    """Server settings loaded from environment variables (read once)."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # Transport selection
    transport: TransportMode = Field(
        default="both", validation_alias=AliasChoices("MCP_TRANSPORT", "TRANSPORT")
    )

    # HTTP
    http_host: str = Field(default="0.0.0.0", validation_alias=AliasChoices("HTTP_HOST"))
    http_port: int | None = Field(default=None, validation_alias=AliasChoices("PORT", "HTTP_PORT"))
    http_path: str = Field(default="/mcp", validation_alias=AliasChoices("HTTP_PATH"))

    # Host/origin allow-lists, comma separated
    allowed_origins: str = Field(default="*", validation_alias=AliasChoices("ALLOWED_ORIGINS"))
    allowed_hosts: str = Field(
        default="127.0.0.1,localhost", validation_alias=AliasChoices("ALLOWED_HOSTS")
    )
    enable_dns_rebinding_protection: bool = Field(
        default=True, validation_alias=AliasChoices("ENABLE_DNS_REBINDING_PROTECTION")
    )

    # Answer POSTs with a single JSON body instead of an SSE stream
    http_json_response: bool = Field(
        default=False, validation_alias=AliasChoices("HTTP_JSON_RESPONSE")
    )

    log_level: str = Field(default="INFO", validation_alias=AliasChoices("LOG_LEVEL"))

    @field_validator("transport", mode="before")
    @classmethod
    def _lower_transport(cls, value: object) -> object:
        return value.strip().lower() if isinstance(value, str) else value

    @field_validator("http_path")
    @classmethod
    def _leading_slash(cls, value: str) -> str:
        return value if value.startswith("/") else f"/{value}"

    @property
    def origin_list(self) -> list[str]:
        return _split(self.allowed_origins)

    @property
    def host_list(self) -> list[str]:
        return _split(self.allowed_hosts)

    @property
    def allows_any_origin(self) -> bool:
        return "*" in self.origin_list

    @property
    def stdio_enabled(self) -> bool:
        return self.transport in ("stdio", "both")

    @property
    def http_enabled(self) -> bool:
        return self.transport in ("http", "both")


def _split(raw: str) -> list[str]:
    return [item.strip() for item in raw.split(",") if item.strip()]


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
