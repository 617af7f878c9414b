"""Template parameter generation.

:func:`state_to_parameters` turns the current :class:`DeploymentState` into
template parameters; :func:`build_parameter_file` writes them as an ARM
parameter document. The orchestrator regenerates the file on every attempt
because conflict handlers mutate the state between attempts.
"""

from __future__ import annotations

import json
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from stratus.deploy.config import DeploymentConfig
from stratus.deploy.state import DeploymentState, ResourceCategory

PARAMETERS_SCHEMA = (
    "https://schema.management.azure.com/schemas/2019-04-01/deploymentParameters.json#"
)

# Template parameter stem per category: skip<Stem>Creation, existing<Stem>Name, ...
_PARAM_STEMS = {
    ResourceCategory.APP_HOSTING: "AppService",
    ResourceCategory.STORAGE: "Storage",
    ResourceCategory.MESSAGING: "CommunicationService",
    ResourceCategory.DATABASE: "Cosmos",
}

_SECRET_KEYS = ("connectionstring", "secret", "password", "key")
REDACTED = "***"


@dataclass
class ParameterFileResult:
    success: bool
    path: Path | None = None
    error: str | None = None


def state_to_parameters(state: DeploymentState, config: DeploymentConfig) -> dict[str, Any]:
    """Serialise *state* into template parameters (plain values, not wrapped)."""
    params: dict[str, Any] = {
        "environment": state.environment,
        "location": state.location,
        "resourcePrefix": state.resource_prefix,
        "storageAccountName": state.expected_storage_name,
        "deployStorage": config.deploy_storage,
        "deployCosmos": config.deploy_database,
        "deployAppService": config.deploy_app_service,
        "deployCommunicationServices": config.deploy_messaging,
    }

    for category, stem in _PARAM_STEMS.items():
        entry = state.category(category)
        params[f"skip{stem}Creation"] = entry.skip_creation
        if entry.skip_creation and entry.existing is not None:
            params[f"existing{stem}ResourceGroup"] = entry.existing.resource_group
            params[f"existing{stem}Name"] = entry.existing.name
            if category is ResourceCategory.DATABASE and entry.existing.connection_string:
                params["existingCosmosConnectionString"] = entry.existing.connection_string

    params.update(config.extra_parameters)
    return params


def to_parameter_document(params: dict[str, Any]) -> dict[str, Any]:
    return {
        "$schema": PARAMETERS_SCHEMA,
        "contentVersion": "1.0.0.0",
        "parameters": {name: {"value": value} for name, value in params.items()},
    }


def redact_parameters(params: dict[str, Any]) -> dict[str, Any]:
    """Copy of *params* safe to print."""
    redacted = {}
    for name, value in params.items():
        if any(marker in name.lower() for marker in _SECRET_KEYS) and value:
            redacted[name] = REDACTED
        else:
            redacted[name] = value
    return redacted


def build_parameter_file(
    params: dict[str, Any],
    directory: Path | None = None,
) -> ParameterFileResult:
    """Write *params* as an ARM parameter file. Never raises."""
    try:
        if directory is not None:
            directory.mkdir(parents=True, exist_ok=True)
        with tempfile.NamedTemporaryFile(
            mode="w",
            suffix=".parameters.json",
            prefix="stratus-",
            dir=directory,
            delete=False,
            encoding="utf-8",
        ) as handle:
            json.dump(to_parameter_document(params), handle, indent=2, default=str)
            path = Path(handle.name)
    except (OSError, TypeError, ValueError) as e:
        return ParameterFileResult(success=False, error=f"Failed to write parameters file: {e}")
    return ParameterFileResult(success=True, path=path)


__all__ = [
    "PARAMETERS_SCHEMA",
    "ParameterFileResult",
    "build_parameter_file",
    "redact_parameters",
    "state_to_parameters",
    "to_parameter_document",
]
