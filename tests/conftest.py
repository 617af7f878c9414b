"""
Shared pytest fixtures for Stratus tests.

This module provides:
- An in-memory provider client and scripted prompter
- A rich console that renders into a buffer
- A deployment config pointing at a throwaway template
- Reset of structlog context between tests

Usage:
    def test_something(client, prompter, orchestrator_factory):
        orchestrator = orchestrator_factory(max_retries=1)
"""

from __future__ import annotations

import io
from collections.abc import Callable, Generator
from pathlib import Path
from typing import Any

import pytest
from rich.console import Console

from stratus.core.logging import clear_context
from stratus.deploy.config import DeploymentConfig
from stratus.deploy.orchestrator import DeploymentOrchestrator
from stratus.deploy.state import DeploymentState
from tests._support.fakes import FakeProviderClient, ScriptedPrompter


@pytest.fixture(autouse=True)
def _clean_log_context() -> Generator[None, None, None]:
    yield
    clear_context()


@pytest.fixture
def console() -> Console:
    return Console(file=io.StringIO(), width=200, color_system=None)


@pytest.fixture
def console_text(console: Console) -> Callable[[], str]:
    return lambda: console.file.getvalue()


@pytest.fixture
def client() -> FakeProviderClient:
    return FakeProviderClient()


@pytest.fixture
def prompter() -> ScriptedPrompter:
    return ScriptedPrompter()


@pytest.fixture
def template(tmp_path: Path) -> Path:
    path = tmp_path / "main.bicep"
    path.write_text("// template\n", encoding="utf-8")
    return path


@pytest.fixture
def state() -> DeploymentState:
    return DeploymentState.create("dev", "app", "westeurope", max_retries=3)


@pytest.fixture
def sleeps() -> list[float]:
    return []


@pytest.fixture
def make_config(template: Path) -> Callable[..., DeploymentConfig]:
    def factory(**overrides: Any) -> DeploymentConfig:
        values: dict[str, Any] = {
            "environment": "dev",
            "application": "app",
            "location": "westeurope",
            "fallback_location": "eastus2",
            "template_path": template,
            "retry_initial_delay": 1.0,
            "retry_max_delay": 8.0,
        }
        values.update(overrides)
        return DeploymentConfig(**values)

    return factory


@pytest.fixture
def orchestrator_factory(
    client: FakeProviderClient,
    prompter: ScriptedPrompter,
    console: Console,
    sleeps: list[float],
    make_config: Callable[..., DeploymentConfig],
    tmp_path: Path,
) -> Callable[..., DeploymentOrchestrator]:
    def factory(**config_overrides: Any) -> DeploymentOrchestrator:
        return DeploymentOrchestrator(
            make_config(**config_overrides),
            client,
            prompter,
            console=console,
            sleep=sleeps.append,
            parameter_dir=tmp_path / "params",
        )

    return factory
