"""Process-wide settings for Stratus.

``StratusSettings`` holds the knobs that are not specific to one
deployment: where the provider CLI lives, how long a CLI call may run,
and how logs are rendered. Per-deployment choices live in
:class:`stratus.deploy.config.DeploymentConfig`.

Features:
    - **env_prefix:** ``STRATUS_`` (e.g. ``STRATUS_AZ_PATH``)
    - **.env file support:** Automatic loading via pydantic-settings
    - **Extra ignore:** Unknown env vars don't cause startup failures

Examples:
    >>> from stratus.core.settings import get_settings
    >>> get_settings().az_path
    'az'
"""

from __future__ import annotations

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class StratusSettings(BaseSettings):
    """Common settings shared by the CLI and the deployment stack.

    Fields
    ──────
    log_level               : structlog log level
    json_logs               : force JSON (True) / console (False); None = auto
    az_path                 : provider CLI binary name or absolute path
    subscription_id         : subscription to select before deploying
    command_timeout_seconds : timeout for a single provider CLI call
    """

    model_config = SettingsConfigDict(
        env_prefix="STRATUS_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Observability ────────────────────────────────────────────
    log_level: str = "INFO"
    json_logs: bool | None = None

    # ── Provider ─────────────────────────────────────────────────
    az_path: str = "az"
    subscription_id: str | None = None
    command_timeout_seconds: int = Field(
        default=1800,
        description="Deployments routinely take 5-10 minutes",
    )


@lru_cache(maxsize=1)
def get_settings() -> StratusSettings:
    """Return the cached settings instance."""
    return StratusSettings()


__all__ = ["StratusSettings", "get_settings"]
