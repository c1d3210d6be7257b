"""Application configuration models."""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import AliasChoices, Field, HttpUrl, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings loaded from environment variables or a .env file."""

    app_name: str = Field(default="DebridShelf", alias="APP_NAME")
    server_host: str = Field(default="0.0.0.0", alias="HOST")
    server_port: int = Field(default=3001, alias="PORT")

    rd_token: str | None = Field(default=None, alias="RD_TOKEN")
    rd_api_url: HttpUrl = Field(
        default="https://api.real-debrid.com/rest/1.0", alias="RD_API_URL"
    )

    tmdb_api_key: str | None = Field(
        default=None,
        alias="TMDB_KEY",
        validation_alias=AliasChoices("TMDB_KEY", "TMDB_API_KEY"),
    )
    tmdb_api_url: HttpUrl = Field(
        default="https://api.themoviedb.org/3", alias="TMDB_API_URL"
    )
    tmdb_language: str = Field(default="pl-PL", alias="TMDB_LANGUAGE")
    tmdb_region: str = Field(default="PL", alias="TMDB_REGION")

    metadata_addon_url: HttpUrl = Field(
        default="https://v3-cinemeta.strem.io",
        alias="METADATA_ADDON_URL",
        validation_alias=AliasChoices("METADATA_ADDON_URL", "CINEMETA_API_URL"),
    )

    sync_interval_seconds: int = Field(default=900, alias="SYNC_INTERVAL", ge=60)
    sync_page_size: int = Field(default=100, alias="SYNC_PAGE_SIZE", ge=1, le=5_000)
    sync_page_delay: float = Field(default=0.2, alias="SYNC_PAGE_DELAY", ge=0)
    sync_detail_delay: float = Field(default=0.05, alias="SYNC_DETAIL_DELAY", ge=0)

    metadata_cache_seconds: int = Field(
        default=86_400, alias="METADATA_CACHE_TTL", ge=0
    )
    metadata_timeout_seconds: float = Field(
        default=20.0, alias="METADATA_TIMEOUT", gt=0
    )
    catalog_limit: int = Field(default=100, alias="CATALOG_LIMIT", ge=1, le=1_000)

    database_url: str | None = Field(
        default="sqlite+aiosqlite:///./debridshelf.db", alias="DATABASE_URL"
    )

    environment: Literal["development", "production"] = Field(
        default="development", alias="ENVIRONMENT"
    )

    @field_validator("rd_token", "tmdb_api_key", "database_url", mode="before")
    @classmethod
    def _blank_to_none(cls, value: object) -> object:
        """Treat empty environment values as unset."""

        if isinstance(value, str) and not value.strip():
            return None
        return value

    @property
    def persistence_enabled(self) -> bool:
        return bool(self.database_url)

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", populate_by_name=True
    )


@lru_cache
def get_settings() -> Settings:
    """Return a cached settings instance."""

    return Settings()  # type: ignore[call-arg]


settings = get_settings()
