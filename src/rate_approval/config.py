"""Service configuration read from the environment and an optional ``.env``.

``get_settings()`` is the cached accessor used by the app and CLI.
``validate_settings()`` is the startup gate: production refuses to start
without an admin API key or with a malformed public URL, development only
warns.

This module imports nothing from the ``rate_approval`` package so any module
can depend on it.
"""

from __future__ import annotations

import sys
from functools import lru_cache
from pathlib import Path

import structlog
from pydantic import Field, SecretStr, ValidationError, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = structlog.get_logger()


class Settings(BaseSettings):
    """Rate-card approval settings; variable names match the fields, any case."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    production: bool = Field(False, description="JSON logs and strict startup checks")
    http_port: int = Field(8000, ge=1, le=65535)

    database_path: Path = Field(
        Path("data/rate_cards.db"), description="SQLite file for rate cards, tokens and audit"
    )

    admin_api_key: SecretStr = Field(
        SecretStr(""), description="Shared key expected in X-Admin-Key; empty disables admin routes"
    )
    default_page_size: int = 10
    max_page_size: int = 100

    public_base_url: str = Field(
        "http://localhost:3000", description="Origin that serves /pricing-approval/{token} pages"
    )
    mail_sender: str = Field("", description="From address of approval emails")

    sentry_dsn: str = ""

    @model_validator(mode="after")
    def check_page_sizes(self) -> Settings:
        """Page sizes must be positive and the default must fit the maximum."""
        if self.default_page_size < 1 or self.max_page_size < 1:
            raise ValueError("page sizes must be positive")
        if self.default_page_size > self.max_page_size:
            raise ValueError("default_page_size cannot exceed max_page_size")
        self.public_base_url = self.public_base_url.rstrip("/")
        return self


@lru_cache
def get_settings() -> Settings:
    """Load settings once per process.

    Invalid values are logged field by field and end the process with exit
    code 1.  Tests reset the cache with ``get_settings.cache_clear()``.
    """
    try:
        return Settings()
    except ValidationError as exc:
        # exc.errors() carries locations and messages without echoing secrets.
        logger.error("settings_validation_failed", errors=exc.errors(include_input=False))
        sys.exit(1)


def startup_problems(settings: Settings) -> list[str]:
    """Describe every setting that would leave the service half-working."""
    problems = []
    if not settings.admin_api_key.get_secret_value():
        problems.append("ADMIN_API_KEY is not set; every admin request will get 401")
    if not settings.public_base_url.startswith(("http://", "https://")):
        problems.append(
            f"PUBLIC_BASE_URL must be an http(s) URL, got {settings.public_base_url!r}; "
            "approval links would be unusable"
        )
    return problems


def validate_settings(settings: Settings) -> None:
    """Gate startup on :func:`startup_problems`.

    Production logs each problem, prints a summary to stderr and exits with
    code 1.  Development logs each problem as a warning and carries on.

    Args:
        settings: The loaded settings.
    """
    problems = startup_problems(settings)
    if not problems:
        logger.info("settings_validation_passed")
        return

    if not settings.production:
        for problem in problems:
            logger.warning("setting_missing_dev", detail=problem)
        return

    for problem in problems:
        logger.error("setting_missing", detail=problem)
    summary = "\n".join(f"  - {problem}" for problem in problems)
    print(f"\nRate-card approval service cannot start in production:\n{summary}\n", file=sys.stderr)
    sys.exit(1)
