"""Application configuration models."""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field, HttpUrl, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings loaded from environment variables or a .env file."""

    app_name: str = Field(default="CineWatch", alias="APP_NAME")
    server_host: str = Field(default="0.0.0.0", alias="HOST")
    server_port: int = Field(default=3000, alias="PORT")

    tmdb_api_key: str | None = Field(default=None, alias="TMDB_API_KEY")
    tmdb_api_url: HttpUrl = Field(
        default="https://api.themoviedb.org/3", alias="TMDB_API_URL"
    )
    tmdb_language: str = Field(default="en-US", alias="TMDB_LANGUAGE")

    recommendation_seed_limit: int = Field(
        default=5, alias="RECOMMENDATION_SEED_LIMIT", ge=1, le=50
    )
    genre_seed_limit: int = Field(default=3, alias="GENRE_SEED_LIMIT", ge=1, le=50)
    genre_tag_limit: int = Field(default=3, alias="GENRE_TAG_LIMIT", ge=1, le=20)
    recommendation_bucket_size: int = Field(
        default=20, alias="RECOMMENDATION_BUCKET_SIZE", ge=1, le=200
    )
    recommendation_session_limit: int = Field(
        default=1_000, alias="RECOMMENDATION_SESSION_LIMIT", ge=1, le=100_000
    )

    database_url: str = Field(
        default="sqlite+aiosqlite:///./cinewatch.db", alias="DATABASE_URL"
    )

    environment: Literal["development", "production"] = Field(
        default="development", alias="ENVIRONMENT"
    )

    @field_validator("tmdb_language", mode="before")
    @classmethod
    def _normalise_language(cls, value: object) -> str:
        """Accept ``es_es`` style values and fall back to English when blank."""

        if value is None:
            return "en-US"
        text = str(value).strip().replace("_", "-")
        if not text:
            return "en-US"
        language, _, region = text.partition("-")
        if not region:
            return language.lower()
        return f"{language.lower()}-{region.upper()}"

    @field_validator("tmdb_api_key", mode="before")
    @classmethod
    def _strip_blank(cls, value: object) -> object:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")


@lru_cache
def get_settings() -> Settings:
    """Return a cached settings instance."""

    return Settings()  # type: ignore[call-arg]


settings = get_settings()
