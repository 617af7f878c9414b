"""Result models for a deployment run.

Pydantic v2 models so the CLI can print either a rich summary or
``model_dump_json(indent=2)`` for CI pipelines.

Key Concepts:
    DeploymentPhase: State machine phases the orchestrator moves through.
    AttemptRecord: One submission attempt (name, region, outcome).
    RollbackReport: Per-resource outcome of a rollback.
    DeploymentOutcome: Final result of ``run_deployment``.
        ``mark_complete()`` finalises timestamps and duration.

Tags:
    results, models, pydantic, deployment, rollback
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class DeploymentPhase(str, Enum):
    """Orchestrator phases."""

    PREPARING = "PREPARING"
    SUBMITTING = "SUBMITTING"
    SUCCEEDED = "SUCCEEDED"
    ROUTING = "ROUTING"
    RETRYING = "RETRYING"
    ABORTED = "ABORTED"


class AttemptRecord(BaseModel):
    """One submission of the template."""

    number: int
    deployment_name: str
    location: str
    resource_group: str
    succeeded: bool = False
    transient_retries: int = 0
    error_code: str | None = None
    error: str | None = None
    handler: str | None = None


class RollbackFailure(BaseModel):
    name: str
    error: str


class RollbackReport(BaseModel):
    """Outcome of rolling back tracked resources."""

    resource_group: str | None = None
    deleted: list[str] = Field(default_factory=list)
    failed: list[RollbackFailure] = Field(default_factory=list)
    skipped: list[str] = Field(default_factory=list)
    resource_groups_deleted: list[str] = Field(default_factory=list)
    remaining_resources: int = 0
    cancelled: bool = False

    @property
    def resource_group_deleted(self) -> bool:
        return bool(self.resource_groups_deleted)

    @property
    def fully_rolled_back(self) -> bool:
        return not self.cancelled and not self.failed and self.remaining_resources == 0

    @property
    def summary(self) -> str:
        if self.cancelled:
            return "Rollback cancelled; resources left in place"
        if self.fully_rolled_back:
            return f"Fully rolled back ({len(self.deleted)} resources deleted)"
        manual = max(len(self.failed), self.remaining_resources)
        return f"{manual} resources require manual cleanup"


class DeploymentOutcome(BaseModel):
    """Result of one orchestration run."""

    success: bool = False
    error: str | None = None
    error_code: str | None = None
    phase: DeploymentPhase = DeploymentPhase.PREPARING

    final_location: str = ""
    final_resource_group: str = ""
    final_resource_prefix: str = ""
    final_storage_name: str = ""

    run_id: str = ""
    deployment_name: str | None = None
    dry_run: bool = False
    parameters: dict[str, Any] = Field(default_factory=dict)
    attempts: list[AttemptRecord] = Field(default_factory=list)
    created_resources: list[dict[str, Any]] = Field(default_factory=list)
    outputs: dict[str, Any] = Field(default_factory=dict)
    rollback: RollbackReport | None = None

    started_at: str = Field(default_factory=lambda: datetime.now(UTC).isoformat())
    completed_at: str | None = None
    duration_seconds: float = 0.0

    @property
    def conflict_retries(self) -> int:
        return sum(1 for a in self.attempts if a.handler and not a.succeeded)

    def mark_complete(self) -> None:
        """Mark the run complete and compute its duration."""
        self.completed_at = datetime.now(UTC).isoformat()
        start = datetime.fromisoformat(self.started_at)
        end = datetime.fromisoformat(self.completed_at)
        self.duration_seconds = (end - start).total_seconds()


__all__ = [
    "AttemptRecord",
    "DeploymentOutcome",
    "DeploymentPhase",
    "RollbackFailure",
    "RollbackReport",
]
