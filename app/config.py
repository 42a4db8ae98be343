"""Application configuration models."""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field, HttpUrl, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings loaded from environment variables or a .env file."""

    app_name: str = Field(default="CineMood", alias="APP_NAME")
    server_host: str = Field(default="0.0.0.0", alias="HOST")
    server_port: int = Field(default=3000, alias="PORT")

    openai_api_key: str | None = Field(default=None, alias="OPENAI_API_KEY")
    openai_api_url: HttpUrl = Field(
        default="https://api.openai.com/v1", alias="OPENAI_API_URL"
    )
    openai_model: str = Field(default="gpt-4o", alias="OPENAI_MODEL")
    openai_chat_model: str = Field(default="gpt-4o-mini", alias="OPENAI_CHAT_MODEL")
    openai_vision_model: str = Field(
        default="gpt-4o-mini", alias="OPENAI_VISION_MODEL"
    )

    tmdb_api_key: str | None = Field(default=None, alias="TMDB_API_KEY")
    tmdb_legacy_key: str | None = Field(default=None, alias="TMDB_KEY", exclude=True)
    tmdb_api_url: HttpUrl = Field(
        default="https://api.themoviedb.org/3", alias="TMDB_API_URL"
    )

    database_url: str = Field(
        default="sqlite+aiosqlite:///./cinemood.db", alias="DATABASE_URL"
    )

    environment: Literal["development", "production"] = Field(
        default="development", alias="ENVIRONMENT"
    )

    @field_validator("openai_api_key", "tmdb_api_key", "tmdb_legacy_key", mode="before")
    @classmethod
    def _strip_blank(cls, value: object) -> object:
        """Treat blank credentials as missing."""

        if isinstance(value, str):
            value = value.strip()
            return value or None
        return value

    @model_validator(mode="after")
    def _apply_legacy_tmdb_key(self) -> "Settings":
        """Fall back to the deprecated TMDB_KEY when TMDB_API_KEY is unset."""

        if self.tmdb_api_key:
            self.tmdb_legacy_key = None
        elif self.tmdb_legacy_key:
            self.tmdb_api_key = self.tmdb_legacy_key
        return self

    def uses_legacy_tmdb_key(self) -> bool:
        return self.tmdb_legacy_key is not None

    def missing_credentials(self) -> list[str]:
        """Return the environment variable names of absent credentials."""

        missing: list[str] = []
        if not self.openai_api_key:
            missing.append("OPENAI_API_KEY")
        if not self.tmdb_api_key:
            missing.append("TMDB_API_KEY")
        if not self.database_url.strip():
            missing.append("DATABASE_URL")
        return missing

    def environment_flags(self) -> dict[str, bool]:
        """Summarise which external services are configured."""

        return {
            "openai_configured": bool(self.openai_api_key),
            "tmdb_configured": bool(self.tmdb_api_key),
            "database_configured": bool(self.database_url.strip()),
            "production": self.environment == "production",
        }

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )


@lru_cache
def get_settings() -> Settings:
    """Return a cached settings instance."""

    return Settings()  # type: ignore[call-arg]
