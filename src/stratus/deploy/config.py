"""Configuration model for a deployment run.

Every field can be overridden from ``STRATUS_DEPLOY_*`` environment
variables through :meth:`DeploymentConfig.from_env`, so the same run can be
driven from the CLI, from CI, or programmatically.

Key Concepts:
    DeploymentConfig: target environment/region, template path, component
        toggles, conflict retry budget and transient-retry backoff.
    Override precedence: kwargs > env vars > field defaults.

Tags:
    config, settings, pydantic, deployment, environment
"""

from __future__ import annotations

import os
import uuid
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, model_validator

from stratus.core.errors import InvalidConfigError

DEFAULT_LOCATION = "westeurope"
DEFAULT_FALLBACK_LOCATION = "eastus2"


class DeploymentConfig(BaseModel):
    """Configuration for one orchestration run.

    Example::

        config = DeploymentConfig(
            environment="dev",
            template_path=Path("infrastructure/dev/main.bicep"),
            dry_run=True,
        )
    """

    # Target
    environment: str = Field(default="dev", description="Environment name (dev, staging, prod)")
    application: str = Field(default="app", description="Application name used in resource names")
    location: str = Field(default=DEFAULT_LOCATION, description="Initial target region")
    fallback_location: str = Field(
        default=DEFAULT_FALLBACK_LOCATION,
        description="Region used when a conflict handler relocates the deployment",
    )
    template_path: Path = Field(default=Path("main.bicep"), description="Declarative template file")

    # Components
    deploy_storage: bool = True
    deploy_database: bool = True
    deploy_app_service: bool = True
    deploy_messaging: bool = True
    extra_parameters: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional template parameters passed through verbatim",
    )

    # Conflict retry budget
    max_retries: int = Field(default=3, ge=0, description="Conflict-driven retries per run")

    # Transient retry (per provider call)
    retry_max_attempts: int = Field(default=3, ge=0)
    retry_initial_delay: float = Field(default=5.0, ge=0)
    retry_max_delay: float = Field(default=60.0, ge=0)
    retry_backoff_multiplier: float = Field(default=2.0, ge=1.0)

    # Behaviour
    dry_run: bool = Field(default=False, description="Print parameters instead of submitting")
    verbose: bool = False
    assume_yes: bool = Field(
        default=False,
        description="Approve rollback prompts without asking",
    )

    run_id: str = Field(default="", description="Unique run identifier (auto-generated)")

    @model_validator(mode="after")
    def _set_defaults(self) -> DeploymentConfig:
        if not self.run_id:
            self.run_id = uuid.uuid4().hex[:12]
        return self

    def validate_components(self) -> None:
        """App Service needs its storage account and database in the same template."""
        if self.deploy_app_service and not (self.deploy_database and self.deploy_storage):
            raise InvalidConfigError(
                "deploy_app_service",
                True,
                "App Service requires Cosmos DB and Storage Account to be deployed. "
                "Enable all dependencies or disable the App Service.",
            )

    @classmethod
    def from_env(cls, **overrides: Any) -> DeploymentConfig:
        """Create config from STRATUS_DEPLOY_* environment variables."""
        env_map = {
            "environment": "STRATUS_DEPLOY_ENVIRONMENT",
            "application": "STRATUS_DEPLOY_APPLICATION",
            "location": "STRATUS_DEPLOY_LOCATION",
            "fallback_location": "STRATUS_DEPLOY_FALLBACK_LOCATION",
            "template_path": "STRATUS_DEPLOY_TEMPLATE",
            "max_retries": "STRATUS_DEPLOY_MAX_RETRIES",
            "dry_run": "STRATUS_DEPLOY_DRY_RUN",
            "verbose": "STRATUS_DEPLOY_VERBOSE",
            "assume_yes": "STRATUS_DEPLOY_ASSUME_YES",
        }
        values: dict[str, Any] = {}
        for field_name, env_var in env_map.items():
            env_val = os.environ.get(env_var)
            if env_val is None:
                continue
            if field_name == "max_retries":
                values[field_name] = int(env_val)
            elif field_name in ("dry_run", "verbose", "assume_yes"):
                values[field_name] = env_val.lower() in ("true", "1", "yes")
            elif field_name == "template_path":
                values[field_name] = Path(env_val)
            else:
                values[field_name] = env_val
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)


__all__ = ["DEFAULT_FALLBACK_LOCATION", "DEFAULT_LOCATION", "DeploymentConfig"]
