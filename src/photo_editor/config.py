"""Application configuration using environment variables."""

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import AliasChoices, AnyHttpUrl, Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

# Resolve the project root once so that `.env` is discovered regardless of CWD
PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent


class Settings(BaseSettings):
    """Load configuration from environment variables and `.env`."""

    model_config = SettingsConfigDict(
        env_file=str(PROJECT_ROOT / ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Only the proxy needs the key; the client never sees it.
    openrouter_api_key: Optional[SecretStr] = Field(
        default=None,
        validation_alias=AliasChoices("OPENROUTER_API_KEY", "openrouter_api_key"),
    )
    openrouter_base_url: AnyHttpUrl = Field(
        default_factory=lambda: AnyHttpUrl("https://openrouter.ai/api/v1"),
        validation_alias=AliasChoices("OPENROUTER_BASE_URL", "base_url"),
    )
    openrouter_app_url: Optional[AnyHttpUrl] = Field(
        default_factory=lambda: AnyHttpUrl("https://ai-photo-editor.vercel.app"),
        validation_alias=AliasChoices(
            "OPENROUTER_APP_URL",
            "HTTP_REFERER",
            "http_referer",
        ),
    )
    openrouter_app_name: Optional[str] = Field(
        default="AI Photo Editor",
        validation_alias=AliasChoices(
            "OPENROUTER_APP_TITLE",
            "X_TITLE",
            "x_title",
        ),
    )
    request_timeout: float = Field(
        default=120.0,
        validation_alias=AliasChoices("OPENROUTER_TIMEOUT", "timeout"),
        ge=1,
    )

    proxy_url: AnyHttpUrl = Field(
        default_factory=lambda: AnyHttpUrl("http://localhost:8000"),
        validation_alias=AliasChoices("PHOTO_EDITOR_PROXY_URL", "proxy_url"),
    )

    rate_limit_max_calls: int = Field(
        default=10,
        ge=1,
        validation_alias=AliasChoices("RATE_LIMIT_MAX_CALLS", "rate_limit_max_calls"),
    )
    rate_limit_window_ms: int = Field(
        default=60_000,
        ge=1,
        validation_alias=AliasChoices("RATE_LIMIT_WINDOW_MS", "rate_limit_window_ms"),
    )

    image_max_bytes: int = Field(
        default=4 * 1024 * 1024,
        ge=1,
        validation_alias=AliasChoices("IMAGE_MAX_BYTES", "image_max_bytes"),
    )
    image_max_dimension: int = Field(
        default=2048,
        ge=1,
        validation_alias=AliasChoices("IMAGE_MAX_DIMENSION", "image_max_dimension"),
    )
    image_min_dimension: int = Field(
        default=256,
        ge=1,
        validation_alias=AliasChoices("IMAGE_MIN_DIMENSION", "image_min_dimension"),
    )
    image_quality_steps: list[int] = Field(
        default_factory=lambda: [90, 80, 70, 60, 50, 40],
        min_length=1,
        validation_alias=AliasChoices("IMAGE_QUALITY_STEPS", "image_quality_steps"),
    )
    image_scale_step: float = Field(
        default=0.75,
        gt=0,
        lt=1,
        validation_alias=AliasChoices("IMAGE_SCALE_STEP", "image_scale_step"),
    )

    default_chat_model: str = Field(
        default="anthropic/claude-sonnet-4.5",
        validation_alias=AliasChoices("DEFAULT_CHAT_MODEL", "default_chat_model"),
    )
    default_edit_model: str = Field(
        default="openai/gpt-5-image-mini",
        validation_alias=AliasChoices("DEFAULT_EDIT_MODEL", "default_edit_model"),
    )
    default_generation_model: str = Field(
        default="black-forest-labs/flux.2-pro",
        validation_alias=AliasChoices(
            "DEFAULT_GENERATION_MODEL",
            "default_generation_model",
        ),
    )
    enhance_model: str = Field(
        default="openai/gpt-4.1",
        validation_alias=AliasChoices("ENHANCE_MODEL", "enhance_model"),
    )
    analyze_model: str = Field(
        default="google/gemini-2.5-flash",
        validation_alias=AliasChoices("ANALYZE_MODEL", "analyze_model"),
    )
    chat_system_prompt: str = Field(
        default=(
            "You are a helpful, friendly, and knowledgeable AI assistant. "
            "Provide clear, accurate, and well-structured responses. When appropriate, "
            "use markdown formatting for code blocks, lists, and emphasis. "
            "Be concise but thorough."
        ),
        validation_alias=AliasChoices("CHAT_SYSTEM_PROMPT", "chat_system_prompt"),
    )
    chat_max_tokens: int = Field(
        default=4096,
        ge=1,
        validation_alias=AliasChoices("CHAT_MAX_TOKENS", "chat_max_tokens"),
    )
    prompt_max_length: int = Field(
        default=2000,
        ge=1,
        validation_alias=AliasChoices("PROMPT_MAX_LENGTH", "prompt_max_length"),
    )
    message_max_length: int = Field(
        default=10_000,
        ge=1,
        validation_alias=AliasChoices("MESSAGE_MAX_LENGTH", "message_max_length"),
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached `Settings` instance."""

    return Settings()  # pyright: ignore[reportCallIssue]


__all__ = ["Settings", "get_settings"]
