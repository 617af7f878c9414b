"""Resource tracking and rollback.

Tracks every resource a run confirms it created so they can be removed if
the run ends in failure. One tracker instance is owned by one orchestration
run; nothing here is process-global.

Rollback semantics:
    - Without ``skip_confirmation`` the full resource list is shown and an
      affirmative answer is required before anything is deleted.
    - Deletions continue past individual failures; each failure is reported.
    - Afterwards the run's resource group, every group the run created and
      every group holding a tracked resource is checked. An empty group is
      deleted, otherwise the remaining count is reported.
    - Tracked state is cleared whatever the outcome.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime

from stratus.core.errors import StratusError
from stratus.core.logging import get_logger
from stratus.deploy.prompts import Prompter
from stratus.deploy.provider import RESOURCE_TYPES, ProviderClient
from stratus.deploy.results import RollbackFailure, RollbackReport
from stratus.deploy.state import ResourceCategory

logger = get_logger(__name__)


@dataclass(frozen=True)
class CreatedResource:
    category: ResourceCategory
    name: str
    resource_group: str
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def resource_type(self) -> str:
        return RESOURCE_TYPES[self.category]

    def to_dict(self) -> dict[str, str]:
        return {
            "category": self.category.value,
            "name": self.name,
            "resource_group": self.resource_group,
            "created_at": self.created_at.isoformat(),
        }


class ResourceTracker:
    """Append-only record of resources created during one run."""

    def __init__(self, client: ProviderClient, prompter: Prompter) -> None:
        self.client = client
        self.prompter = prompter
        self.resource_group: str | None = None
        self.deployment_name: str | None = None
        self.started_at: datetime | None = None
        self._resources: list[CreatedResource] = []
        self._groups: list[str] = []

    def initialize(self, resource_group: str, deployment_name: str) -> None:
        """Reset tracking for a new run."""
        self.resource_group = resource_group
        self.deployment_name = deployment_name
        self.started_at = datetime.now(UTC)
        self._resources = []
        self._groups = []
        logger.debug("tracker.initialized", resource_group=resource_group, deployment=deployment_name)

    def register(self, category: ResourceCategory, name: str, resource_group: str) -> CreatedResource:
        resource = CreatedResource(category=category, name=name, resource_group=resource_group)
        self._resources.append(resource)
        logger.info(
            "tracker.registered",
            category=category.value,
            resource=name,
            resource_group=resource_group,
        )
        return resource

    def track_group(self, name: str) -> None:
        """Record a resource group this run created."""
        if name not in self._groups:
            self._groups.append(name)
            logger.info("tracker.group_registered", resource_group=name)

    def groups(self) -> list[str]:
        """Resource groups to check after rollback, the run's own group first."""
        candidates = [self.resource_group, *self._groups, *(r.resource_group for r in self._resources)]
        return [g for g in dict.fromkeys(candidates) if g]

    def list(self) -> list[CreatedResource]:
        return list(self._resources)

    def __len__(self) -> int:
        return len(self._resources)

    def clear(self) -> None:
        self._resources = []

    def rollback(self, skip_confirmation: bool = False) -> RollbackReport:
        """Delete every tracked resource, continuing past failures."""
        resources = self.list()
        report = RollbackReport(resource_group=self.resource_group)
        if not resources:
            return report

        if not skip_confirmation:
            self.prompter.show_resources(resources)
            approved = self.prompter.confirm(
                f"Delete these {len(resources)} resources? This cannot be undone.",
                default=False,
            )
            if not approved:
                logger.warning("rollback.cancelled", resources=len(resources))
                report.cancelled = True
                report.skipped = [r.name for r in resources]
                self.clear()
                return report

        logger.warning("rollback.started", resources=len(resources))
        # Newest first so dependants go before what they depend on
        for resource in reversed(resources):
            error = self._delete(resource)
            if error is None:
                report.deleted.append(resource.name)
                logger.info("rollback.resource_deleted", resource=resource.name)
            else:
                report.failed.append(RollbackFailure(name=resource.name, error=error))
                logger.error("rollback.resource_failed", resource=resource.name, error=error)

        for group in self.groups():
            self._cleanup_group(group, report)

        self.clear()
        self._groups = []
        logger.info(
            "rollback.completed",
            deleted=len(report.deleted),
            failed=len(report.failed),
            remaining=report.remaining_resources,
            summary=report.summary,
        )
        return report

    def _delete(self, resource: CreatedResource) -> str | None:
        try:
            resource_id = self.client.resource_id(
                resource.resource_group, resource.resource_type, resource.name
            )
            result = self.client.delete_resource(resource_id)
        except StratusError as e:
            return e.message
        return None if result.ok else (result.output or f"exit code {result.exit_code}")

    def _cleanup_group(self, group: str, report: RollbackReport) -> None:
        try:
            remaining = self.client.list_resources(group)
        except StratusError as e:
            logger.error("rollback.group_check_failed", resource_group=group, error=e.message)
            return
        if remaining:
            report.remaining_resources += len(remaining)
            logger.warning("rollback.group_not_empty", resource_group=group, remaining=len(remaining))
            return
        try:
            result = self.client.delete_resource_group(group)
        except StratusError as e:
            logger.error("rollback.group_delete_failed", resource_group=group, error=e.message)
            return
        if result.ok:
            report.resource_groups_deleted.append(group)
            logger.info("rollback.group_deleted", resource_group=group)
        else:
            logger.error("rollback.group_delete_failed", resource_group=group, error=result.output)


__all__ = ["CreatedResource", "ResourceTracker"]
