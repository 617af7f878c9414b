"""Mutable state threaded through one orchestration run.

``DeploymentState`` is created once per :func:`run_deployment` call, passed by
reference to every conflict handler, and discarded when the run ends. Two
invariants are enforced on assignment because breaking them would reopen an
already exhausted recovery path:

- ``retry_count`` never decreases.
- A category's ``use_attempted`` flag, once set, is never cleared.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from stratus.deploy import naming


class ResourceCategory(str, Enum):
    """Resource kinds with dedicated conflict handling."""

    APP_HOSTING = "app-hosting"
    STORAGE = "storage"
    MESSAGING = "messaging"
    DATABASE = "database"

    @property
    def label(self) -> str:
        return _LABELS[self]


_LABELS = {
    ResourceCategory.APP_HOSTING: "App Service",
    ResourceCategory.STORAGE: "Storage Account",
    ResourceCategory.MESSAGING: "Communication Service",
    ResourceCategory.DATABASE: "Cosmos DB",
}


@dataclass
class ExistingResourceRef:
    """Pointer to a pre-existing resource the template should reference."""

    resource_group: str
    name: str
    connection_string: str | None = None


@dataclass
class CategoryState:
    """Per-category reuse bookkeeping."""

    skip_creation: bool = False
    existing: ExistingResourceRef | None = None
    use_attempted: bool = False

    def __setattr__(self, key: str, value: Any) -> None:
        if key == "use_attempted" and not value and getattr(self, "use_attempted", False):
            raise ValueError("use_attempted cannot be cleared once set")
        super().__setattr__(key, value)


def _default_categories() -> dict[ResourceCategory, CategoryState]:
    return {category: CategoryState() for category in ResourceCategory}


@dataclass
class DeploymentState:
    """Target coordinates plus retry bookkeeping for one run.

    ``retry_count`` counts conflict-driven retries; the orchestrator loops
    while ``retry_count <= max_retries``.
    """

    environment: str
    application: str
    location: str
    resource_group: str
    resource_prefix: str
    expected_storage_name: str
    max_retries: int = 3
    retry_count: int = 0
    should_retry: bool = False
    categories: dict[ResourceCategory, CategoryState] = field(default_factory=_default_categories)

    def __setattr__(self, key: str, value: Any) -> None:
        if key == "retry_count" and value < getattr(self, "retry_count", 0):
            raise ValueError("retry_count cannot decrease")
        super().__setattr__(key, value)

    @classmethod
    def create(
        cls,
        environment: str,
        application: str,
        location: str,
        max_retries: int = 3,
    ) -> DeploymentState:
        """Build the initial state from naming conventions."""
        prefix = naming.resource_prefix(environment, location)
        return cls(
            environment=environment,
            application=application,
            location=location,
            resource_group=naming.resource_group_name(prefix, application),
            resource_prefix=prefix,
            expected_storage_name=naming.storage_account_name(prefix, application),
            max_retries=max_retries,
        )

    def category(self, category: ResourceCategory) -> CategoryState:
        return self.categories[category]

    def use_attempted(self, category: ResourceCategory) -> bool:
        return self.categories[category].use_attempted

    def mark_reuse(self, category: ResourceCategory, ref: ExistingResourceRef) -> None:
        """Point *category* at an existing resource; allowed once per run."""
        entry = self.categories[category]
        entry.skip_creation = True
        entry.existing = ref
        entry.use_attempted = True

    def relocate(self, location: str) -> None:
        """Move the whole deployment target to *location*, recomputing names."""
        prefix = naming.resource_prefix(self.environment, location)
        self.location = location
        self.resource_prefix = prefix
        self.resource_group = naming.resource_group_name(prefix, self.application)
        self.expected_storage_name = naming.storage_account_name(prefix, self.application)

    def request_retry(self) -> None:
        """Consume one unit of the retry budget and ask the orchestrator to loop."""
        self.retry_count += 1
        self.should_retry = True

    @property
    def retry_budget_spent(self) -> bool:
        """True once no further conflict retry may be requested."""
        return self.retry_count >= self.max_retries

    def summary(self) -> dict[str, Any]:
        return {
            "location": self.location,
            "resource_group": self.resource_group,
            "resource_prefix": self.resource_prefix,
            "storage_name": self.expected_storage_name,
            "retry_count": self.retry_count,
            "reused": [c.value for c, s in self.categories.items() if s.skip_creation],
        }


@dataclass(frozen=True)
class ConflictOutcome:
    """Result of one conflict handler invocation.

    ``handled=False`` means no recovery strategy applies and the run aborts.
    """

    handled: bool
    retry: bool = False
    handler: str = ""
    message: str = ""

    @classmethod
    def unhandled(cls, handler: str = "", message: str = "") -> ConflictOutcome:
        return cls(handled=False, retry=False, handler=handler, message=message)


__all__ = [
    "CategoryState",
    "ConflictOutcome",
    "DeploymentState",
    "ExistingResourceRef",
    "ResourceCategory",
]
