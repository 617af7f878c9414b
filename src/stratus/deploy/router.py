"""Conflict router.

Dispatches a failed attempt's error text to exactly one conflict handler or
to a terminal path. Categories share vocabulary ("conflict", "already
exists"), so evaluation order matters; the order lives in :attr:`rules` as
data rather than in control flow:

1. messaging reuse already attempted and a messaging error recurs: terminal
2. app-hosting reuse already attempted and an app-hosting error recurs: terminal
3. signature dispatch in the order app-hosting, storage, messaging, database
   (a category whose reuse was already attempted is skipped)
4. database reuse already attempted and a database-shaped error recurs
   without matching app-hosting: terminal
5. anything else: unclassified, terminal
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass

from stratus.core.logging import get_logger
from stratus.deploy.conflicts import (
    ConflictHandler,
    build_handlers,
    is_database_shaped,
    matches_category,
)
from stratus.deploy.prompts import Prompter
from stratus.deploy.provider import ProviderClient
from stratus.deploy.state import ConflictOutcome, DeploymentState, ResourceCategory

logger = get_logger(__name__)

UNCLASSIFIED = "unclassified"


@dataclass(frozen=True)
class RouteRule:
    name: str
    applies: Callable[[DeploymentState, str], bool]
    action: Callable[[DeploymentState, str], ConflictOutcome]


def _exhausted(category: ResourceCategory) -> Callable[[DeploymentState, str], ConflictOutcome]:
    def action(state: DeploymentState, error_text: str) -> ConflictOutcome:
        return ConflictOutcome.unhandled(
            f"{category.value}-reuse-exhausted",
            f"Reusing the existing {category.label} was already attempted and failed again",
        )

    return action


def _recurs(category: ResourceCategory) -> Callable[[DeploymentState, str], bool]:
    def applies(state: DeploymentState, error_text: str) -> bool:
        return state.use_attempted(category) and matches_category(category, error_text)

    return applies


def _database_recurs(state: DeploymentState, error_text: str) -> bool:
    return (
        state.use_attempted(ResourceCategory.DATABASE)
        and is_database_shaped(error_text)
        and not matches_category(ResourceCategory.APP_HOSTING, error_text)
    )


def _dispatch_applies(handler: ConflictHandler) -> Callable[[DeploymentState, str], bool]:
    def applies(state: DeploymentState, error_text: str) -> bool:
        return handler.matches(error_text) and not state.use_attempted(handler.category)

    return applies


def _unclassified(state: DeploymentState, error_text: str) -> ConflictOutcome:
    return ConflictOutcome.unhandled(UNCLASSIFIED, "No recovery strategy matches this failure")


class ConflictRouter:
    """Ordered rule evaluation over a set of conflict handlers."""

    def __init__(self, handlers: Sequence[ConflictHandler]) -> None:
        self.handlers = list(handlers)
        self.rules: list[RouteRule] = [
            RouteRule(
                "messaging-reuse-exhausted",
                _recurs(ResourceCategory.MESSAGING),
                _exhausted(ResourceCategory.MESSAGING),
            ),
            RouteRule(
                "app-hosting-reuse-exhausted",
                _recurs(ResourceCategory.APP_HOSTING),
                _exhausted(ResourceCategory.APP_HOSTING),
            ),
            *(
                RouteRule(f"dispatch:{h.name}", _dispatch_applies(h), h.handle)
                for h in self.handlers
            ),
            RouteRule(
                "database-reuse-exhausted",
                _database_recurs,
                _exhausted(ResourceCategory.DATABASE),
            ),
            RouteRule(UNCLASSIFIED, lambda state, text: True, _unclassified),
        ]

    @classmethod
    def create(
        cls, client: ProviderClient, prompter: Prompter, fallback_location: str
    ) -> ConflictRouter:
        return cls(build_handlers(client, prompter, fallback_location))

    def route(self, error_text: str, state: DeploymentState) -> ConflictOutcome:
        """Apply the first matching rule."""
        for rule in self.rules:
            if rule.applies(state, error_text):
                outcome = rule.action(state, error_text)
                logger.info(
                    "router.routed",
                    rule=rule.name,
                    handled=outcome.handled,
                    retry=outcome.retry,
                )
                return outcome
        return _unclassified(state, error_text)

    def is_business_conflict(self, error_text: str) -> bool:
        """True when some handler recognises the text.

        Used to keep such failures away from the transient retry layer.
        """
        return any(h.matches(error_text) for h in self.handlers)


__all__ = ["UNCLASSIFIED", "ConflictRouter", "RouteRule"]
