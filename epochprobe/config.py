import logging
from functools import lru_cache
from typing import Any

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
    )

    production: bool = Field(default=False, alias="PRODUCTION")
    addr: str = Field(default=":8080", alias="ADDR")
    database_uri: str = Field(default=":memory:", alias="DATABASE_URI")
    sentry_dsn: str = Field(default="", alias="SENTRY_DSN")
    shutdown_timeout: float = Field(default=10.0, alias="SHUTDOWN_TIMEOUT")

    @field_validator("production", mode="before")
    @classmethod
    def _exactly_true(cls, value: Any) -> bool:
        # Only the literal string "true" turns production mode on.
        if isinstance(value, bool):
            return value
        return value == "true"

    @property
    def environment(self) -> str:
        return "production" if self.production else "development"

    @property
    def log_level(self) -> int:
        return logging.INFO if self.production else logging.DEBUG


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
