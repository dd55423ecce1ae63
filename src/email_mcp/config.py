"""Centralized, typed configuration using pydantic-settings.

Provides a single ``Settings`` class backed by ``.env`` file and environment
variables, and a cached ``get_settings()`` accessor.

IMPORTANT: This module has ZERO imports from the ``email_mcp`` package to
prevent circular imports.  Only stdlib, pydantic, pydantic_settings, and
structlog are used.
"""

from __future__ import annotations

import sys
from functools import lru_cache
from pathlib import Path

import structlog
from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = structlog.get_logger()

GMAIL_READONLY_SCOPE: str = "https://www.googleapis.com/auth/gmail.readonly"


class Settings(BaseSettings):
    """Application settings loaded from environment variables and ``.env`` file.

    Every local path hangs off ``data_dir`` unless overridden individually;
    use the ``resolved_*`` helpers rather than reading the optional fields
    directly.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # -- General ---------------------------------------------------------------
    production: bool = False
    data_dir: Path = Path("~/.email-mcp")

    # -- Secret storage --------------------------------------------------------
    token_dir: Path | None = None
    keys_dir: Path | None = None

    # -- Gmail -----------------------------------------------------------------
    gmail_credentials_path: Path | None = None
    gmail_scopes: list[str] = Field(default_factory=lambda: [GMAIL_READONLY_SCOPE])

    def resolved_data_dir(self) -> Path:
        return self.data_dir.expanduser()

    def resolved_token_dir(self) -> Path:
        """Directory holding one ``<key>.enc`` file per secret."""
        if self.token_dir is not None:
            return self.token_dir.expanduser()
        return self.resolved_data_dir() / "tokens"

    def resolved_keys_dir(self) -> Path:
        """Directory holding the encryption master key."""
        if self.keys_dir is not None:
            return self.keys_dir.expanduser()
        return self.resolved_data_dir() / "keys"

    def resolved_credentials_path(self) -> Path:
        """Fallback ``credentials.json`` consulted when the store has no descriptor."""
        if self.gmail_credentials_path is not None:
            return self.gmail_credentials_path.expanduser()
        return self.resolved_data_dir() / "credentials.json"


@lru_cache
def get_settings() -> Settings:
    """Return a cached ``Settings`` instance.

    The ``@lru_cache`` decorator ensures environment variables are parsed
    exactly once.  Call ``get_settings.cache_clear()`` in tests to reset.

    Returns:
        The application ``Settings``.
    """
    try:
        return Settings()
    except ValidationError as exc:
        logger.error("settings_validation_failed", errors=exc.errors())
        sys.exit(1)
