#!/usr/bin/env python
#
#
# -----------------------------------------------------------------------------
"""
Application configuration.

All values can be overridden via environment variables or a .env file.
"""
# -----------------------------------------------------------------------------

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


# -----------------------------------------------------------------------------

class Settings(BaseSettings):

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ── Application ────────────────────────────────────────────────────────

    app_name: str = "PyMark"
    app_version: str = "0.1.0"
    debug: bool = False
    environment: Literal["development", "testing", "production"] = "development"
    log_level: str = "INFO"

    # ── Confluence directory (user lookup) ────────────────────────────────

    confluence_base_url: str = ""          # empty disables user lookup
    confluence_username: str = ""
    confluence_password: str = ""          # API token
    lookup_timeout: float = 5.0            # seconds per lookup request

    # ── Macro engine ───────────────────────────────────────────────────────

    max_sweeps: int = Field(default=32, ge=1)
    max_include_depth: int = Field(default=8, ge=1)
    include_root: Optional[Path] = None    # unset disables include directives

    @property
    def is_testing(self) -> bool:
        return self.environment == "testing"

    @property
    def lookup_enabled(self) -> bool:
        return bool(self.confluence_base_url)


# -----------------------------------------------------------------------------

@lru_cache
def get_settings() -> Settings:
    return Settings()


# -----------------------------------------------------------------------------
