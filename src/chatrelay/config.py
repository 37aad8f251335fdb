"""Application configuration using environment variables."""

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import AliasChoices, AnyHttpUrl, Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

from .chat.assembly.markup import DEFAULT_IMAGE_HOSTS

# Resolve the project root once so that `.env` is discovered regardless of CWD
PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent


class Settings(BaseSettings):
    """Load configuration from environment variables and `.env`."""

    model_config = SettingsConfigDict(
        env_file=str(PROJECT_ROOT / ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Requests may carry their own key; this is the fallback
    gemini_api_key: Optional[SecretStr] = Field(
        default=None,
        validation_alias=AliasChoices("GEMINI_API_KEY", "gemini_api_key"),
    )
    gemini_base_url: AnyHttpUrl = Field(
        default_factory=lambda: AnyHttpUrl(
            "https://generativelanguage.googleapis.com/v1beta"
        ),
        validation_alias=AliasChoices("GEMINI_BASE_URL", "gemini_base_url", "base_url"),
    )
    default_model: str = Field(
        default="gemini-3-pro-image-preview",
        validation_alias=AliasChoices("GEMINI_DEFAULT_MODEL", "default_model"),
    )
    request_timeout: float = Field(
        default=300.0,
        validation_alias=AliasChoices("GEMINI_TIMEOUT", "request_timeout", "timeout"),
        ge=1,
    )

    # CDN image resolution (Markdown image links emitted by the model)
    enable_cdn_image_processing: bool = Field(
        default=True,
        validation_alias=AliasChoices(
            "ENABLE_CDN_IMAGE_PROCESSING",
            "enable_cdn_image_processing",
        ),
    )
    cdn_image_concurrency: int = Field(
        default=3,
        ge=1,
        validation_alias=AliasChoices(
            "CDN_IMAGE_CONCURRENCY",
            "cdn_image_concurrency",
        ),
    )
    cdn_image_timeout_ms: int = Field(
        default=10_000,
        ge=1,
        validation_alias=AliasChoices(
            "CDN_IMAGE_TIMEOUT_MS",
            "cdn_image_timeout_ms",
        ),
    )
    cdn_image_allowed_hosts: list[str] = Field(
        default_factory=lambda: list(DEFAULT_IMAGE_HOSTS),
        validation_alias=AliasChoices(
            "CDN_IMAGE_ALLOWED_HOSTS",
            "cdn_image_allowed_hosts",
        ),
        description="Hosts treated as image CDNs even without an image-like path.",
    )
    cdn_image_max_bytes: int = Field(
        default=20 * 1024 * 1024,
        ge=1,
        validation_alias=AliasChoices(
            "CDN_IMAGE_MAX_BYTES",
            "cdn_image_max_bytes",
        ),
    )

    cors_origins: list[str] = Field(
        default_factory=lambda: ["http://localhost:5173"],
        validation_alias=AliasChoices("CORS_ORIGINS", "cors_origins"),
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached `Settings` instance."""

    return Settings()  # pyright: ignore[reportCallIssue]


__all__ = ["Settings", "get_settings"]
