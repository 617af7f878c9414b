"""Deployment orchestrator.

Drives a template deployment to success or to a clean abort.

State machine::

    PREPARING -> SUBMITTING -> SUCCEEDED
                            -> ROUTING -> RETRYING -> PREPARING
                                       -> ABORTED

Key Concepts:
    PREPARING: ensure the resource group exists, serialise the current
        :class:`DeploymentState` into a parameter file. Dry-run stops here
        with a synthetic success.
    SUBMITTING: submit through :func:`execute_with_retry`. Only provider
        noise is retried at this layer; business conflicts are classified
        as non-transient so they reach ROUTING.
    SUCCEEDED: read deployment outputs and register created resources.
    ROUTING: parse the provider error and hand it to :class:`ConflictRouter`.
        A handled retry loops back; anything else aborts. Once the retry
        budget is spent a business conflict aborts without reaching a handler.
    ABORTED: print the formatted provider error and offer rollback of
        tracked resources.

Architecture Decisions:
    - ``run()`` never raises :class:`StratusError`; every failure ends in a
      :class:`DeploymentOutcome` with ``success=False``.
    - The parameter file is regenerated per attempt and removed after
      submission.
    - Resources that a failed attempt did manage to provision are read from
      the deployment operations and tracked so rollback can remove them.

Tags:
    orchestration, deployment, retry, conflict, rollback, state-machine
"""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
from typing import Any

from rich.console import Console
from rich.markup import escape

from stratus.core.errors import ParameterFileError, ProviderError, StratusError, TemplateError
from stratus.core.logging import LogContext, get_logger
from stratus.deploy import naming
from stratus.deploy.config import DeploymentConfig
from stratus.deploy.parameters import build_parameter_file, redact_parameters, state_to_parameters
from stratus.deploy.prompts import ConsolePrompter, Prompter
from stratus.deploy.provider import RESOURCE_TYPES, CommandResult, ProviderClient
from stratus.deploy.provider_errors import (
    ProviderErrorInfo,
    format_provider_error,
    parse_provider_error,
    troubleshooting_hints,
)
from stratus.deploy.results import AttemptRecord, DeploymentOutcome, DeploymentPhase
from stratus.deploy.router import ConflictRouter
from stratus.deploy.state import DeploymentState, ResourceCategory
from stratus.deploy.tracker import ResourceTracker
from stratus.execution.retry import error_text, execute_with_retry, is_transient_error

logger = get_logger(__name__)

# Template outputs that name a resource the deployment created
OUTPUT_CATEGORIES: dict[str, ResourceCategory] = {
    "appServiceName": ResourceCategory.APP_HOSTING,
    "apiAppServiceName": ResourceCategory.APP_HOSTING,
    "storageAccountName": ResourceCategory.STORAGE,
    "communicationServiceName": ResourceCategory.MESSAGING,
    "cosmosDbAccountName": ResourceCategory.DATABASE,
}
URL_OUTPUTS = ("apiAppServiceUrl", "adminApiAppServiceUrl")

_TYPE_CATEGORIES = {rtype.lower(): category for category, rtype in RESOURCE_TYPES.items()}


def output_value(outputs: dict[str, Any], key: str) -> Any:
    """Deployment outputs are ``{"key": {"type": ..., "value": ...}}``."""
    entry = outputs.get(key)
    if isinstance(entry, dict):
        return entry.get("value")
    return entry


def _group_from_id(resource_id: str | None) -> str | None:
    if not resource_id:
        return None
    parts = resource_id.split("/")
    lowered = [p.lower() for p in parts]
    if "resourcegroups" in lowered:
        index = lowered.index("resourcegroups")
        if index + 1 < len(parts):
            return parts[index + 1]
    return None


class DeploymentOrchestrator:
    """Runs the deploy / route / retry loop for one deployment.

    Example::

        orchestrator = DeploymentOrchestrator(config, AzureCliClient(), ConsolePrompter())
        outcome = orchestrator.run()
    """

    def __init__(
        self,
        config: DeploymentConfig,
        client: ProviderClient,
        prompter: Prompter,
        *,
        tracker: ResourceTracker | None = None,
        router: ConflictRouter | None = None,
        console: Console | None = None,
        sleep: Callable[[float], None] | None = None,
        parameter_dir: Path | None = None,
    ) -> None:
        self.config = config
        self.client = client
        self.prompter = prompter
        self.tracker = tracker or ResourceTracker(client, prompter)
        self.router = router or ConflictRouter.create(client, prompter, config.fallback_location)
        self.console = console or Console()
        self.sleep = sleep
        self.parameter_dir = parameter_dir
        self.phase = DeploymentPhase.PREPARING

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def run(self, state: DeploymentState | None = None) -> DeploymentOutcome:
        """Deploy until success, abort, or the retry ceiling."""
        config = self.config
        if state is None:
            state = DeploymentState.create(
                config.environment, config.application, config.location, config.max_retries
            )
        outcome = DeploymentOutcome(run_id=config.run_id, dry_run=config.dry_run)

        with LogContext(run_id=config.run_id, environment=state.environment):
            logger.info("deploy.started", location=state.location, resource_group=state.resource_group)
            try:
                config.validate_components()
                self._loop(state, outcome)
            except StratusError as e:
                logger.error("deploy.error", **e.to_dict())
                info = parse_provider_error(e.stderr) if isinstance(e, ProviderError) and e.stderr else None
                self._abort(state, outcome, e.message, info=info)

        outcome.final_location = state.location
        outcome.final_resource_group = state.resource_group
        outcome.final_resource_prefix = state.resource_prefix
        outcome.final_storage_name = state.expected_storage_name
        outcome.phase = self.phase
        outcome.mark_complete()
        logger.info(
            "deploy.finished",
            success=outcome.success,
            attempts=len(outcome.attempts),
            retry_count=state.retry_count,
            duration_seconds=round(outcome.duration_seconds, 2),
        )
        return outcome

    # ------------------------------------------------------------------
    # State machine
    # ------------------------------------------------------------------

    def _loop(self, state: DeploymentState, outcome: DeploymentOutcome) -> None:
        config = self.config
        initialized = False

        while True:
            self.phase = DeploymentPhase.PREPARING
            state.should_retry = False
            name = naming.deployment_name(state.application, state.environment)
            outcome.deployment_name = name
            if not initialized:
                self.tracker.initialize(state.resource_group, name)
                initialized = True

            params = state_to_parameters(state, config)
            outcome.parameters = redact_parameters(params)

            if config.dry_run:
                self._print_parameters(state, outcome.parameters, title="What-if: parameters that would be deployed")
                self.phase = DeploymentPhase.SUCCEEDED
                outcome.success = True
                return
            if config.verbose:
                self._print_parameters(state, outcome.parameters, title="Deployment parameters")

            if not config.template_path.exists():
                raise TemplateError(f"Template not found: {config.template_path}")

            self._ensure_resource_group(state)
            param_file = build_parameter_file(params, self.parameter_dir)
            if not param_file.success or param_file.path is None:
                raise ParameterFileError(param_file.error or "Failed to write parameters file")

            attempt = AttemptRecord(
                number=len(outcome.attempts) + 1,
                deployment_name=name,
                location=state.location,
                resource_group=state.resource_group,
            )
            outcome.attempts.append(attempt)

            self.phase = DeploymentPhase.SUBMITTING
            self.console.print(
                f"[bold]▲ Attempt {attempt.number}[/] {name} → {state.resource_group} ({state.location})"
            )
            with LogContext(deployment_name=name, attempt=attempt.number):
                logger.info("deploy.attempt.started", location=state.location, resource_group=state.resource_group)
                try:
                    result = execute_with_retry(
                        lambda: self._submit(state, param_file.path, name),
                        max_retries=config.retry_max_attempts,
                        initial_delay=config.retry_initial_delay,
                        max_delay=config.retry_max_delay,
                        backoff_multiplier=config.retry_backoff_multiplier,
                        is_transient=self._is_transient,
                        sleep=self.sleep,
                    )
                finally:
                    param_file.path.unlink(missing_ok=True)
                attempt.transient_retries = max(result.attempts - 1, 0)

                if result.success:
                    attempt.succeeded = True
                    self.phase = DeploymentPhase.SUCCEEDED
                    logger.info("deploy.attempt.succeeded")
                    self._on_success(state, name, outcome)
                    return

                info = parse_provider_error(self._raw_error(result.error))
                attempt.error_code = info.code or None
                attempt.error = info.message or None
                logger.warning("deploy.attempt.failed", code=info.code, transient=result.is_transient)
                self._track_partial(state, name)

                if result.is_transient:
                    self._abort(
                        state,
                        outcome,
                        f"Transient provider errors persisted after {result.attempts} attempts",
                        info=info,
                    )
                    return

                self.phase = DeploymentPhase.ROUTING
                search_text = info.search_text or info.raw
                if state.retry_budget_spent and self.router.is_business_conflict(search_text):
                    # budget spent: abort before any handler mutates state
                    self._abort(
                        state, outcome, f"Retry limit reached ({state.max_retries} conflict retries)", info=info
                    )
                    return
                routed = self.router.route(search_text, state)
                attempt.handler = routed.handler or None

            if routed.handled and routed.retry:
                self.phase = DeploymentPhase.RETRYING
                self.console.print(
                    f"[yellow]↻ {escape(routed.message)} "
                    f"(retry {state.retry_count}/{state.max_retries})[/]"
                )
                continue

            self._abort(state, outcome, routed.message or "Deployment failed", info=info)
            return

    def _ensure_resource_group(self, state: DeploymentState) -> None:
        result = execute_with_retry(
            lambda: self.client.create_resource_group_if_missing(state.resource_group, state.location),
            max_retries=self.config.retry_max_attempts,
            initial_delay=self.config.retry_initial_delay,
            max_delay=self.config.retry_max_delay,
            backoff_multiplier=self.config.retry_backoff_multiplier,
            sleep=self.sleep,
        )
        if not result.success:
            error = result.error
            if not isinstance(error, StratusError):
                error = ProviderError(f"Failed to create resource group {state.resource_group}: {error}", cause=error)
            raise error.with_context(resource_group=state.resource_group, location=state.location)
        if result.result:
            self.tracker.track_group(state.resource_group)
            self.console.print(f"[green]✓[/] Created resource group {state.resource_group}")

    def _submit(self, state: DeploymentState, parameter_file: Path, name: str) -> CommandResult:
        result = self.client.submit_deployment(
            state.resource_group, self.config.template_path, parameter_file, name
        )
        if not result.ok:
            info = parse_provider_error(result.output)
            raise ProviderError(
                result.output or f"Deployment exited with code {result.exit_code}",
                exit_code=result.exit_code,
                stderr=result.stderr,
                code=info.code or None,
            ).with_context(deployment_name=name, resource_group=state.resource_group, location=state.location)
        return result

    def _is_transient(self, error: BaseException) -> bool:
        if self.router.is_business_conflict(error_text(error)):
            return False
        return is_transient_error(error)

    @staticmethod
    def _raw_error(error: BaseException | None) -> str:
        if error is None:
            return ""
        if isinstance(error, ProviderError) and error.stderr:
            return error.stderr
        if isinstance(error, StratusError):
            return error.message
        return str(error)

    # ------------------------------------------------------------------
    # Resource tracking
    # ------------------------------------------------------------------

    def _on_success(self, state: DeploymentState, name: str, outcome: DeploymentOutcome) -> None:
        try:
            outputs = self.client.get_deployment_outputs(state.resource_group, name)
        except StratusError as e:
            logger.warning("deploy.outputs_unavailable", error=e.message)
            outputs = {}
        outcome.outputs = outputs

        for key, category in OUTPUT_CATEGORIES.items():
            value = output_value(outputs, key)
            if not value or state.category(category).skip_creation:
                continue
            self._register(category, str(value), state.resource_group)

        outcome.created_resources = [r.to_dict() for r in self.tracker.list()]
        outcome.success = True
        self._print_success(state, outcome)
        self.tracker.clear()

    def _track_partial(self, state: DeploymentState, name: str) -> None:
        """Track resources a failed deployment still provisioned."""
        try:
            operations = self.client.list_deployment_operations(state.resource_group, name)
        except StratusError as e:
            logger.debug("deploy.operations_unavailable", error=e.message)
            return
        for operation in operations:
            props = operation.get("properties") or {}
            if str(props.get("provisioningState", "")).lower() != "succeeded":
                continue
            target = props.get("targetResource") or {}
            category = _TYPE_CATEGORIES.get(str(target.get("resourceType", "")).lower())
            resource_name = target.get("resourceName")
            if category is None or not resource_name or state.category(category).skip_creation:
                continue
            group = _group_from_id(target.get("id")) or state.resource_group
            self._register(category, resource_name, group)

    def _register(self, category: ResourceCategory, name: str, group: str) -> None:
        if any(r.name == name and r.resource_group == group for r in self.tracker.list()):
            return
        self.tracker.register(category, name, group)

    # ------------------------------------------------------------------
    # Terminal paths and output
    # ------------------------------------------------------------------

    def _abort(
        self,
        state: DeploymentState,
        outcome: DeploymentOutcome,
        reason: str,
        info: ProviderErrorInfo | None,
    ) -> None:
        self.phase = DeploymentPhase.ABORTED
        outcome.success = False
        outcome.error = reason
        outcome.error_code = (info.code or None) if info else None
        logger.error("deploy.aborted", reason=reason, code=outcome.error_code, retry_count=state.retry_count)

        self.console.print(f"\n[bold red]✗ Deployment failed:[/] {escape(reason)}")
        if info is not None and (info.code or info.message):
            self.console.print(escape(format_provider_error(info)))
            for hint in troubleshooting_hints(info):
                self.console.print(f"  [cyan]hint:[/] {escape(hint)}")

        if len(self.tracker):
            self.console.print(
                f"[yellow]{len(self.tracker)} resources were created during this run.[/]"
            )
            outcome.created_resources = [r.to_dict() for r in self.tracker.list()]
            report = self.tracker.rollback(skip_confirmation=self.config.assume_yes)
            outcome.rollback = report
            style = "green" if report.fully_rolled_back else "yellow"
            self.console.print(f"[{style}]{escape(report.summary)}[/]")
            for failure in report.failed:
                self.console.print(f"  [red]- {escape(failure.name)}:[/] {escape(failure.error)}")

    def _print_parameters(self, state: DeploymentState, params: dict[str, Any], title: str) -> None:
        self.console.print(f"\n[bold]{title}[/]")
        self.console.print(f"  resource group: {state.resource_group} ({state.location})")
        for key, value in params.items():
            self.console.print(f"  {key} = {escape(str(value))}")

    def _print_success(self, state: DeploymentState, outcome: DeploymentOutcome) -> None:
        self.console.print(
            f"\n[bold green]✓ Deployment succeeded[/] in {state.location} → {state.resource_group}"
        )
        for resource in outcome.created_resources:
            self.console.print(f"  + {resource['category']}: {resource['name']}")
        for key in URL_OUTPUTS:
            url = output_value(outcome.outputs, key)
            if url:
                self.console.print(f"  {key}: {url}")


def run_deployment(
    initial_state: DeploymentState | None,
    template_path: Path | str,
    *,
    config: DeploymentConfig | None = None,
    client: ProviderClient | None = None,
    prompter: Prompter | None = None,
    tracker: ResourceTracker | None = None,
    console: Console | None = None,
    sleep: Callable[[float], None] | None = None,
) -> DeploymentOutcome:
    """Deploy *template_path* starting from *initial_state*.

    Builds an :class:`AzureCliClient` from :class:`StratusSettings` when no
    client is given. A dry run never calls the client.
    """
    config = (config or DeploymentConfig()).model_copy(update={"template_path": Path(template_path)})
    console = console or Console()
    if client is None:
        from stratus.core.settings import get_settings
        from stratus.deploy.provider import AzureCliClient

        settings = get_settings()
        client = AzureCliClient(
            az_path=settings.az_path,
            subscription_id=settings.subscription_id,
            timeout=settings.command_timeout_seconds,
        )
    orchestrator = DeploymentOrchestrator(
        config,
        client,
        prompter or ConsolePrompter(console),
        tracker=tracker,
        console=console,
        sleep=sleep,
    )
    return orchestrator.run(initial_state)


__all__ = ["OUTPUT_CATEGORIES", "DeploymentOrchestrator", "output_value", "run_deployment"]
