"""Infrastructure deployment with conflict recovery and rollback.

Submodules:
    state           DeploymentState and per-category reuse bookkeeping
    naming          Resource naming conventions
    parameters      Template parameter generation
    provider        ProviderClient protocol and the az CLI implementation
    provider_errors Structured parsing of provider error output
    conflicts       Per-category conflict handlers
    router          Ordered conflict routing
    tracker         Created-resource tracking and rollback
    orchestrator    The deploy / route / retry loop
"""

from stratus.deploy.config import DeploymentConfig
from stratus.deploy.orchestrator import DeploymentOrchestrator, run_deployment
from stratus.deploy.prompts import AutoPrompter, ConsolePrompter, Prompter
from stratus.deploy.provider import AzureCliClient, CommandResult, ProviderClient
from stratus.deploy.results import DeploymentOutcome, DeploymentPhase, RollbackReport
from stratus.deploy.router import ConflictRouter
from stratus.deploy.state import (
    ConflictOutcome,
    DeploymentState,
    ExistingResourceRef,
    ResourceCategory,
)
from stratus.deploy.tracker import CreatedResource, ResourceTracker

__all__ = [
    "AutoPrompter",
    "AzureCliClient",
    "CommandResult",
    "ConflictOutcome",
    "ConflictRouter",
    "ConsolePrompter",
    "CreatedResource",
    "DeploymentConfig",
    "DeploymentOrchestrator",
    "DeploymentOutcome",
    "DeploymentPhase",
    "DeploymentState",
    "ExistingResourceRef",
    "Prompter",
    "ProviderClient",
    "ResourceCategory",
    "ResourceTracker",
    "RollbackReport",
    "run_deployment",
]
