"""Cloud provider client over the ``az`` CLI.

Uses ``subprocess`` rather than an SDK so the same code path works wherever
the operator is already logged in with the CLI.

Key Concepts:
    ProviderClient: Protocol the orchestrator, conflict handlers and
        resource tracker depend on. Tests supply an in-memory fake.
    AzureCliClient: Implementation that shells out to ``az``.
    CommandResult: exit code plus captured output of one CLI call.

Architecture Decisions:
    - The client never retries. Callers wrap calls in
      :func:`stratus.execution.retry.execute_with_retry`.
    - Deployments always use ``--mode Incremental`` so a template can never
      delete resources it does not mention.
    - A CLI timeout is raised as :class:`TransientError`; a missing binary as
      :class:`ProviderNotFoundError`.
"""

from __future__ import annotations

import json
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol

from stratus.core.errors import ProviderError, ProviderNotFoundError, TransientError
from stratus.core.logging import get_logger
from stratus.deploy.provider_errors import parse_provider_error
from stratus.deploy.state import ResourceCategory

logger = get_logger(__name__)

RESOURCE_TYPES: dict[ResourceCategory, str] = {
    ResourceCategory.APP_HOSTING: "Microsoft.Web/sites",
    ResourceCategory.STORAGE: "Microsoft.Storage/storageAccounts",
    ResourceCategory.MESSAGING: "Microsoft.Communication/communicationServices",
    ResourceCategory.DATABASE: "Microsoft.DocumentDB/databaseAccounts",
}


@dataclass
class CommandResult:
    """Captured result of one provider CLI call."""

    exit_code: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.exit_code == 0

    @property
    def output(self) -> str:
        """stderr when present, otherwise stdout."""
        return self.stderr.strip() or self.stdout.strip()


class ProviderClient(Protocol):
    """Operations the deployment stack needs from a cloud provider."""

    def resource_group_exists(self, name: str) -> bool: ...

    def create_resource_group_if_missing(self, name: str, location: str) -> bool: ...

    def submit_deployment(
        self, resource_group: str, template: Path, parameter_file: Path, name: str
    ) -> CommandResult: ...

    def get_deployment_outputs(self, resource_group: str, name: str) -> dict[str, Any]: ...

    def list_deployment_operations(self, resource_group: str, name: str) -> list[dict[str, Any]]: ...

    def resource_id(self, resource_group: str, resource_type: str, name: str) -> str: ...

    def delete_resource(self, resource_id: str) -> CommandResult: ...

    def delete_resource_group(self, name: str) -> CommandResult: ...

    def list_resources(self, resource_group: str) -> list[dict[str, Any]]: ...

    def find_resources(self, name: str, resource_type: str | None = None) -> list[dict[str, Any]]: ...

    def get_resource(
        self, resource_group: str, name: str, resource_type: str
    ) -> dict[str, Any] | None: ...

    def get_database_connection_string(self, resource_group: str, account: str) -> str | None: ...


class AzureCliClient:
    """:class:`ProviderClient` backed by the ``az`` CLI.

    Parameters
    ----------
    az_path
        CLI binary name or path (default from ``STRATUS_AZ_PATH``).
    subscription_id
        Subscription used to build resource IDs. Looked up with
        ``az account show`` when not given.
    timeout
        Per-call timeout in seconds.
    """

    def __init__(
        self,
        az_path: str = "az",
        subscription_id: str | None = None,
        timeout: int = 1800,
    ) -> None:
        self.az_path = az_path
        self._az: str | None = None
        self._subscription_id = subscription_id
        self.timeout = timeout

    @staticmethod
    def _find_cli(az_path: str) -> str:
        resolved = shutil.which(az_path)
        if resolved is None:
            raise ProviderNotFoundError(
                f"Azure CLI '{az_path}' not found on PATH. "
                "Install it from https://learn.microsoft.com/cli/azure/install-azure-cli"
            )
        return resolved

    # ------------------------------------------------------------------
    # Resource groups
    # ------------------------------------------------------------------

    def resource_group_exists(self, name: str) -> bool:
        result = self._run(["group", "exists", "--name", name, "--output", "tsv"])
        if not result.ok:
            raise self._error("group exists", result)
        return result.stdout.strip().lower() == "true"

    def create_resource_group_if_missing(self, name: str, location: str) -> bool:
        """Create *name* in *location* unless it exists. Returns True if created."""
        if self.resource_group_exists(name):
            return False
        result = self._run(
            ["group", "create", "--name", name, "--location", location, "--output", "none"]
        )
        if not result.ok:
            raise self._error("group create", result)
        logger.info("provider.resource_group_created", resource_group=name, location=location)
        return True

    def delete_resource_group(self, name: str) -> CommandResult:
        return self._run(["group", "delete", "--name", name, "--yes", "--no-wait"])

    # ------------------------------------------------------------------
    # Deployments
    # ------------------------------------------------------------------

    def submit_deployment(
        self, resource_group: str, template: Path, parameter_file: Path, name: str
    ) -> CommandResult:
        """Submit a template deployment and block until the provider reports an outcome."""
        logger.info("provider.deployment_submitted", resource_group=resource_group, deployment=name)
        return self._run(
            [
                "deployment", "group", "create",
                "--resource-group", resource_group,
                "--template-file", str(template),
                "--parameters", f"@{parameter_file}",
                "--mode", "Incremental",
                "--name", name,
                "--output", "json",
            ]
        )

    def get_deployment_outputs(self, resource_group: str, name: str) -> dict[str, Any]:
        data = self._run_json(
            [
                "deployment", "group", "show",
                "--resource-group", resource_group,
                "--name", name,
                "--query", "properties.outputs",
            ]
        )
        return data if isinstance(data, dict) else {}

    def list_deployment_operations(self, resource_group: str, name: str) -> list[dict[str, Any]]:
        """Operations of a deployment, including those of a failed one."""
        data = self._run_json(
            [
                "deployment", "operation", "group", "list",
                "--resource-group", resource_group,
                "--name", name,
            ]
        )
        return data if isinstance(data, list) else []

    # ------------------------------------------------------------------
    # Resources
    # ------------------------------------------------------------------

    @property
    def subscription_id(self) -> str:
        if self._subscription_id is None:
            result = self._run(["account", "show", "--query", "id", "--output", "tsv"])
            if not result.ok:
                raise self._error("account show", result)
            self._subscription_id = result.stdout.strip()
        return self._subscription_id

    def resource_id(self, resource_group: str, resource_type: str, name: str) -> str:
        return (
            f"/subscriptions/{self.subscription_id}/resourceGroups/{resource_group}"
            f"/providers/{resource_type}/{name}"
        )

    def delete_resource(self, resource_id: str) -> CommandResult:
        return self._run(["resource", "delete", "--ids", resource_id])

    def list_resources(self, resource_group: str) -> list[dict[str, Any]]:
        data = self._run_json(["resource", "list", "--resource-group", resource_group])
        return data if isinstance(data, list) else []

    def find_resources(self, name: str, resource_type: str | None = None) -> list[dict[str, Any]]:
        """Subscription-wide lookup by exact name."""
        args = ["resource", "list", "--name", name]
        if resource_type:
            args.extend(["--resource-type", resource_type])
        data = self._run_json(args)
        return data if isinstance(data, list) else []

    def get_resource(
        self, resource_group: str, name: str, resource_type: str
    ) -> dict[str, Any] | None:
        result = self._run(
            [
                "resource", "show",
                "--resource-group", resource_group,
                "--name", name,
                "--resource-type", resource_type,
                "--output", "json",
            ]
        )
        if not result.ok:
            if "notfound" in result.output.lower().replace(" ", ""):
                return None
            raise self._error("resource show", result)
        return json.loads(result.stdout) if result.stdout.strip() else None

    def get_database_connection_string(self, resource_group: str, account: str) -> str | None:
        result = self._run(
            [
                "cosmosdb", "keys", "list",
                "--name", account,
                "--resource-group", resource_group,
                "--type", "connection-strings",
                "--query", "connectionStrings[0].connectionString",
                "--output", "tsv",
            ]
        )
        if not result.ok:
            raise self._error("cosmosdb keys list", result)
        return result.stdout.strip() or None

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _run(self, args: list[str], timeout: int | None = None) -> CommandResult:
        """Run an az CLI command, capturing output."""
        if self._az is None:
            self._az = self._find_cli(self.az_path)
        cmd = [self._az, *args]
        limit = timeout or self.timeout
        logger.debug("provider.exec", cmd=" ".join(args[:3]))
        try:
            proc = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=limit,
            )
        except subprocess.TimeoutExpired as exc:
            raise TransientError(
                f"az {' '.join(args[:3])} timed out after {limit}s", cause=exc
            ) from exc
        except OSError as exc:
            raise ProviderError(f"Failed to execute az: {exc}", cause=exc) from exc
        return CommandResult(exit_code=proc.returncode, stdout=proc.stdout, stderr=proc.stderr)

    def _run_json(self, args: list[str]) -> Any:
        result = self._run([*args, "--output", "json"])
        if not result.ok:
            raise self._error(" ".join(args[:3]), result)
        if not result.stdout.strip():
            return None
        return json.loads(result.stdout)

    @staticmethod
    def _error(operation: str, result: CommandResult) -> ProviderError:
        info = parse_provider_error(result.output)
        return ProviderError(
            f"az {operation} failed (exit {result.exit_code}): {info.message or result.output}",
            exit_code=result.exit_code,
            stderr=result.stderr,
            code=info.code or None,
        )


__all__ = ["RESOURCE_TYPES", "AzureCliClient", "CommandResult", "ProviderClient"]
