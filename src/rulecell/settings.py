"""Settings for the rulecell harness.

Everything tunable about fetching, naming and logging lives on
``RuleCellSettings``. Values come from ``RULECELL_*`` environment variables
or a ``.env`` file and are validated by pydantic at construction time.

Manifesto:
    Configuration should be explicit, validated, and environment-driven.

    - **Pydantic validation:** Type-checked at startup, not mid-evaluation
    - **Environment-driven:** ``RULECELL_FETCH_TIMEOUT_SECONDS=5`` just works
    - **Sensible defaults:** Works out of the box for development

Examples:
    >>> from rulecell.settings import RuleCellSettings
    >>> RuleCellSettings(owner_kind_label="Table").owner_kind_label
    'Table'

Tags:
    settings, configuration, pydantic, environment, rulecell

Doc-Types:
    - API Reference
    - Configuration Guide
"""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class RuleCellSettings(BaseSettings):
    """Settings shared by the fetcher, the compiler and the CLI.

    Fields
    ──────
    fetch_timeout_seconds : Upper bound for one URL fetch
    fetch_max_redirects   : Redirects followed before giving up
    fetch_base_url        : Base for relative cell URLs
    owner_kind_label      : Resource label used in fetch failure messages
    unit_name_prefix      : Prefix of generated rule class names
    log_level             : Structlog log level
    log_format            : ``console`` or ``json``
    """

    model_config = SettingsConfigDict(
        env_prefix="RULECELL_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Fetching ─────────────────────────────────────────────────
    fetch_timeout_seconds: float = Field(default=30.0, gt=0)
    fetch_max_redirects: int = Field(default=5, ge=0)
    fetch_base_url: str | None = None
    owner_kind_label: str = "NCube"

    # ── Compilation ──────────────────────────────────────────────
    unit_name_prefix: str = Field(default="RuleExp", pattern=r"^[A-Za-z_][A-Za-z0-9_]*$")

    # ── Observability ────────────────────────────────────────────
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_format: Literal["console", "json"] = "console"


@lru_cache(maxsize=1)
def get_settings() -> RuleCellSettings:
    """Return the process-wide settings, read once from the environment."""
    return RuleCellSettings()


__all__ = ["RuleCellSettings", "get_settings"]
