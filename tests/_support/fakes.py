"""In-memory collaborators for orchestrator tests.

``FakeProviderClient`` records every call and answers from scripted data, so
tests never shell out to ``az``. ``ScriptedPrompter`` answers menus from a
queue and records what it was asked.
"""

from __future__ import annotations

import json
from collections.abc import Sequence
from pathlib import Path
from typing import Any

from stratus.core.errors import ProviderError
from stratus.deploy.provider import CommandResult


def az_error(code: str, message: str, details: list[dict[str, Any]] | None = None) -> CommandResult:
    """A failed ``az deployment group create`` result."""
    payload = {"status": "Failed", "error": {"code": code, "message": message, "details": details or []}}
    return CommandResult(exit_code=1, stdout="", stderr=f"ERROR: {json.dumps(payload)}")


def az_ok(stdout: str = "{}") -> CommandResult:
    return CommandResult(exit_code=0, stdout=stdout, stderr="")


def deployment_failed(code: str, message: str) -> CommandResult:
    """The usual shape: a generic DeploymentFailed wrapping the real cause."""
    return az_error(
        "DeploymentFailed",
        "At least one resource deployment operation failed.",
        details=[{"code": code, "message": message}],
    )


STORAGE_TAKEN = deployment_failed(
    "StorageAccountAlreadyTaken", "The storage account named deveuwstapp is already taken."
)
SITE_EXISTS = deployment_failed("Conflict", "Website with given name dev-euw-app-app-api already exists.")
MESSAGING_TAKEN = deployment_failed(
    "NameUnavailable", "Communication Service name dev-euw-acs-app is already taken."
)
COSMOS_UNAVAILABLE = deployment_failed(
    "ServiceUnavailable",
    "Database account creation failed: Cosmos DB is experiencing high demand in West Europe.",
)
THROTTLED = az_error("TooManyRequests", "The request is being throttled. Retry later.")
SERVICE_UNAVAILABLE = az_error("ServiceUnavailable", "The service is temporarily unavailable.")


class FakeProviderClient:
    """Scripted :class:`ProviderClient`."""

    def __init__(
        self,
        deploy_results: Sequence[CommandResult | Exception] = (),
        outputs: dict[str, Any] | None = None,
    ) -> None:
        self.deploy_results: list[CommandResult | Exception] = list(deploy_results)
        self.outputs = outputs or {}
        self.submissions: list[dict[str, Any]] = []
        self.existing_groups: set[str] = set()
        self.created_groups: list[str] = []
        self.group_resources: dict[str, list[dict[str, Any]]] = {}
        self.found: dict[str, list[dict[str, Any]]] = {}
        self.existing: dict[tuple[str, str], dict[str, Any]] = {}
        self.connection_strings: dict[tuple[str, str], str] = {}
        self.operations: dict[str, list[dict[str, Any]]] = {}
        self.fail_deletes: set[str] = set()
        self.deleted: list[str] = []
        self.deleted_groups: list[str] = []

    # resource groups
    def resource_group_exists(self, name: str) -> bool:
        return name in self.existing_groups

    def create_resource_group_if_missing(self, name: str, location: str) -> bool:
        if name in self.existing_groups:
            return False
        self.existing_groups.add(name)
        self.created_groups.append(name)
        return True

    def delete_resource_group(self, name: str) -> CommandResult:
        self.deleted_groups.append(name)
        return az_ok("")

    # deployments
    def submit_deployment(
        self, resource_group: str, template: Path, parameter_file: Path, name: str
    ) -> CommandResult:
        document = json.loads(Path(parameter_file).read_text(encoding="utf-8"))
        self.submissions.append(
            {
                "resource_group": resource_group,
                "template": template,
                "parameter_file": Path(parameter_file),
                "name": name,
                "parameters": {k: v["value"] for k, v in document["parameters"].items()},
            }
        )
        if not self.deploy_results:
            return az_ok()
        result = self.deploy_results.pop(0)
        if isinstance(result, Exception):
            raise result
        return result

    def get_deployment_outputs(self, resource_group: str, name: str) -> dict[str, Any]:
        return self.outputs

    def list_deployment_operations(self, resource_group: str, name: str) -> list[dict[str, Any]]:
        return self.operations.get(resource_group, [])

    # resources
    def resource_id(self, resource_group: str, resource_type: str, name: str) -> str:
        return f"/subscriptions/sub/resourceGroups/{resource_group}/providers/{resource_type}/{name}"

    def delete_resource(self, resource_id: str) -> CommandResult:
        if any(marker in resource_id for marker in self.fail_deletes):
            return CommandResult(exit_code=1, stderr=f"ERROR: cannot delete {resource_id}")
        self.deleted.append(resource_id)
        return az_ok("")

    def list_resources(self, resource_group: str) -> list[dict[str, Any]]:
        return self.group_resources.get(resource_group, [])

    def find_resources(self, name: str, resource_type: str | None = None) -> list[dict[str, Any]]:
        return self.found.get(name, [])

    def get_resource(self, resource_group: str, name: str, resource_type: str) -> dict[str, Any] | None:
        return self.existing.get((resource_group, name))

    def get_database_connection_string(self, resource_group: str, account: str) -> str | None:
        key = (resource_group, account)
        if key not in self.connection_strings:
            raise ProviderError(f"No keys for {account}", exit_code=1)
        return self.connection_strings[key]


class ScriptedPrompter:
    """Answers menus from ``choices`` in order; ``confirm`` returns ``approve``."""

    def __init__(self, choices: Sequence[int] = (), approve: bool = True) -> None:
        self.choices = list(choices)
        self.approve = approve
        self.menus: list[tuple[str, list[str]]] = []
        self.confirmations: list[str] = []
        self.shown: list[list[Any]] = []

    def choose(self, title: str, options: Sequence[str]) -> int:
        self.menus.append((title, list(options)))
        if not self.choices:
            raise AssertionError(f"Unexpected menu: {title}")
        return self.choices.pop(0)

    def confirm(self, message: str, default: bool = False) -> bool:
        self.confirmations.append(message)
        return self.approve

    def show_resources(self, resources: Sequence[Any]) -> None:
        self.shown.append(list(resources))
