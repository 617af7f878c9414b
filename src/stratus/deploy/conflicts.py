"""Per-category conflict handlers.

A conflict is a deployment failure caused by a naming collision, regional
capacity or a stale failed resource. Each handler owns one
:class:`ResourceCategory`: it recognises that category's failure signatures
and applies one remediation by mutating the shared :class:`DeploymentState`.

Remediations:
    app-hosting  reuse the existing site, or delete it and recreate, or abort
    storage      relocate the whole deployment to the fallback region
    messaging    relocate, or reuse the existing service
    database     delete a failed-state account, then reuse the instance in
                 the fallback region (or relocate when there is none)

Every handler that asks for a retry calls :meth:`DeploymentState.request_retry`,
which is the only place ``retry_count`` moves.
"""

from __future__ import annotations

import re
from collections.abc import Iterable

from stratus.core.errors import StratusError
from stratus.core.logging import get_logger
from stratus.deploy import naming
from stratus.deploy.prompts import Prompter
from stratus.deploy.provider import RESOURCE_TYPES, ProviderClient
from stratus.deploy.state import (
    ConflictOutcome,
    DeploymentState,
    ExistingResourceRef,
    ResourceCategory,
)

logger = get_logger(__name__)


def _compile(*patterns: str) -> tuple[re.Pattern[str], ...]:
    return tuple(re.compile(p, re.IGNORECASE) for p in patterns)


FAILED_STATE_PATTERNS = _compile(
    r"failed provisioning state",
    r"provisioning ?state\W+failed",
    r"is in (a )?failed state",
)

SIGNATURES: dict[ResourceCategory, tuple[re.Pattern[str], ...]] = {
    ResourceCategory.APP_HOSTING: _compile(
        r"website with (the )?given name .+ already exists",
        r"microsoft\.web/(sites|serverfarms)\S*.*\b(already exists|conflict)\b",
        r"\bapp service( plan)?\b.*\balready exists\b",
    ),
    ResourceCategory.STORAGE: _compile(
        r"storageaccountalreadytaken",
        r"storageaccountalreadyexists",
        r"storage account .*\bis already taken\b",
    ),
    ResourceCategory.MESSAGING: _compile(
        r"communication ?services?\b.*\b(already exists|already taken|not available|nameunavailable)\b",
        r"microsoft\.communication/\S*.*\b(already exists|conflict)\b",
    ),
    ResourceCategory.DATABASE: _compile(
        r"cosmos ?db\b.*\b(already exists|already taken|not available)\b",
        r"database ?account\S*.*\b(already exists|already taken|nameunavailable)\b",
        r"microsoft\.documentdb/databaseaccounts\S*.*\b(already exists|conflict)\b",
        r"(serviceunavailable|service ?unavailable|high demand).*(cosmos|documentdb|database ?account)",
        r"(cosmos|documentdb|database ?account).*(serviceunavailable|service ?unavailable|high demand)",
        r"(cosmos|documentdb|database ?account).*(failed provisioning state|failed state)",
    ),
}

# Looser than the database signatures: anything that is about the database at all
DATABASE_SHAPE_PATTERNS = _compile(r"cosmos", r"documentdb", r"database ?account")


def _any_match(patterns: Iterable[re.Pattern[str]], text: str) -> bool:
    return any(p.search(text) for p in patterns)


def matches_category(category: ResourceCategory, text: str) -> bool:
    return _any_match(SIGNATURES[category], text)


def is_failed_state(text: str) -> bool:
    return _any_match(FAILED_STATE_PATTERNS, text)


def is_database_shaped(text: str) -> bool:
    return _any_match(DATABASE_SHAPE_PATTERNS, text)


class ConflictHandler:
    """Base class: signature matching plus shared collaborators."""

    category: ResourceCategory

    def __init__(self, client: ProviderClient, prompter: Prompter, fallback_location: str) -> None:
        self.client = client
        self.prompter = prompter
        self.fallback_location = fallback_location

    @property
    def name(self) -> str:
        return self.category.value

    def matches(self, text: str) -> bool:
        return matches_category(self.category, text)

    def handle(self, state: DeploymentState, error_text: str) -> ConflictOutcome:
        raise NotImplementedError

    def _retry(self, state: DeploymentState, message: str) -> ConflictOutcome:
        state.request_retry()
        logger.info(
            "conflict.retry_requested",
            handler=self.name,
            retry_count=state.retry_count,
            detail=message,
        )
        return ConflictOutcome(handled=True, retry=True, handler=self.name, message=message)

    def _relocate(self, state: DeploymentState) -> str:
        previous = state.location
        state.relocate(self.fallback_location)
        logger.warning(
            "conflict.relocated",
            handler=self.name,
            from_location=previous,
            to_location=state.location,
            resource_group=state.resource_group,
            storage_name=state.expected_storage_name,
        )
        return f"Relocated deployment from {previous} to {state.location}"


class AppHostingConflictHandler(ConflictHandler):
    category = ResourceCategory.APP_HOSTING

    REUSE = "Use the existing resources"
    RECREATE = "Delete the existing resources and recreate them"
    ABORT = "Abort the deployment"

    def handle(self, state: DeploymentState, error_text: str) -> ConflictOutcome:
        site = naming.app_service_name(state.resource_prefix, state.application)
        choice = self.prompter.choose(
            f"{self.category.label} '{site}' already exists",
            [self.REUSE, self.RECREATE, self.ABORT],
        )
        if choice == 0:
            return self._reuse(state, site)
        if choice == 1:
            return self._recreate(state, site)
        logger.warning("conflict.aborted_by_operator", handler=self.name)
        return ConflictOutcome.unhandled(self.name, "Deployment aborted by operator")

    def _find(self, site: str) -> list[dict]:
        try:
            return self.client.find_resources(site, RESOURCE_TYPES[self.category])
        except StratusError as e:
            logger.warning("conflict.lookup_failed", handler=self.name, resource=site, error=e.message)
            return []

    def _reuse(self, state: DeploymentState, site: str) -> ConflictOutcome:
        found = self._find(site)
        group = found[0].get("resourceGroup", state.resource_group) if found else state.resource_group
        state.mark_reuse(self.category, ExistingResourceRef(resource_group=group, name=site))
        return self._retry(state, f"Reusing {self.category.label} '{site}' in {group}")

    def _recreate(self, state: DeploymentState, site: str) -> ConflictOutcome:
        for resource in self._find(site):
            resource_id = resource.get("id") or self.client.resource_id(
                resource.get("resourceGroup", state.resource_group), RESOURCE_TYPES[self.category], site
            )
            try:
                result = self.client.delete_resource(resource_id)
            except StratusError as e:
                return ConflictOutcome.unhandled(self.name, f"Failed to delete {site}: {e.message}")
            if not result.ok:
                return ConflictOutcome.unhandled(self.name, f"Failed to delete {site}: {result.output}")
            logger.info("conflict.resource_deleted", handler=self.name, resource=resource_id)
        return self._retry(state, f"Deleted {self.category.label} '{site}' for recreation")


class StorageConflictHandler(ConflictHandler):
    """Storage names are global; a fresh prefix is the only deterministic fix."""

    category = ResourceCategory.STORAGE

    def handle(self, state: DeploymentState, error_text: str) -> ConflictOutcome:
        taken = state.expected_storage_name
        message = self._relocate(state)
        return self._retry(
            state, f"Storage name '{taken}' is taken. {message}; new name '{state.expected_storage_name}'"
        )


class MessagingConflictHandler(ConflictHandler):
    category = ResourceCategory.MESSAGING

    RELOCATE = "Deploy to the fallback region"
    REUSE = "Use the existing Communication Service"

    def handle(self, state: DeploymentState, error_text: str) -> ConflictOutcome:
        service = naming.messaging_service_name(state.resource_prefix, state.application)
        choice = self.prompter.choose(
            f"{self.category.label} '{service}' conflicts with an existing resource",
            [f"{self.RELOCATE} ({self.fallback_location})", self.REUSE],
        )
        if choice == 0:
            return self._retry(state, self._relocate(state))
        state.mark_reuse(self.category, ExistingResourceRef(resource_group=state.resource_group, name=service))
        return self._retry(state, f"Reusing {self.category.label} '{service}'")


class DatabaseConflictHandler(ConflictHandler):
    """Covers name collisions, regional unavailability and failed-state accounts."""

    category = ResourceCategory.DATABASE

    def handle(self, state: DeploymentState, error_text: str) -> ConflictOutcome:
        if is_failed_state(error_text):
            self._delete_failed(state)

        fallback_prefix = naming.resource_prefix(state.environment, self.fallback_location)
        group = naming.resource_group_name(fallback_prefix, state.application)
        account = naming.database_account_name(fallback_prefix, state.application)

        if self._exists(group, account):
            connection_string = self._connection_string(group, account)
            state.mark_reuse(
                self.category,
                ExistingResourceRef(resource_group=group, name=account, connection_string=connection_string),
            )
            return self._retry(state, f"Reusing {self.category.label} '{account}' in {self.fallback_location}")

        message = self._relocate(state)
        state.category(self.category).use_attempted = True
        return self._retry(state, f"No {self.category.label} in {self.fallback_location} to reuse. {message}")

    def _delete_failed(self, state: DeploymentState) -> None:
        account = naming.database_account_name(state.resource_prefix, state.application)
        try:
            resource_id = self.client.resource_id(state.resource_group, RESOURCE_TYPES[self.category], account)
            result = self.client.delete_resource(resource_id)
        except StratusError as e:
            logger.warning("conflict.failed_resource_delete_failed", resource=account, error=e.message)
            return
        if result.ok:
            logger.info("conflict.failed_resource_deleted", resource=account)
        else:
            logger.warning("conflict.failed_resource_delete_failed", resource=account, error=result.output)

    def _exists(self, group: str, account: str) -> bool:
        try:
            return self.client.get_resource(group, account, RESOURCE_TYPES[self.category]) is not None
        except StratusError as e:
            logger.warning("conflict.lookup_failed", handler=self.name, resource=account, error=e.message)
            return False

    def _connection_string(self, group: str, account: str) -> str | None:
        try:
            return self.client.get_database_connection_string(group, account)
        except StratusError as e:
            logger.warning("conflict.credentials_unavailable", resource=account, error=e.message)
            return None


HANDLER_ORDER: tuple[type[ConflictHandler], ...] = (
    AppHostingConflictHandler,
    StorageConflictHandler,
    MessagingConflictHandler,
    DatabaseConflictHandler,
)


def build_handlers(client: ProviderClient, prompter: Prompter, fallback_location: str) -> list[ConflictHandler]:
    """Handlers in dispatch order."""
    return [cls(client, prompter, fallback_location) for cls in HANDLER_ORDER]


__all__ = [
    "HANDLER_ORDER",
    "SIGNATURES",
    "AppHostingConflictHandler",
    "ConflictHandler",
    "DatabaseConflictHandler",
    "MessagingConflictHandler",
    "StorageConflictHandler",
    "build_handlers",
    "is_database_shaped",
    "is_failed_state",
    "matches_category",
]
