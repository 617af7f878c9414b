"""Tests for stratus.cli — command smoke tests via CliRunner.

The orchestrator is patched out, so no provider CLI is needed.
"""

import json
from unittest.mock import patch

import pytest
from typer.testing import CliRunner

from stratus import __version__
from stratus.cli.app import app
from stratus.deploy.prompts import AutoPrompter, ConsolePrompter
from stratus.deploy.results import DeploymentOutcome, DeploymentPhase, RollbackReport

runner = CliRunner()


@pytest.fixture(autouse=True)
def _no_logging_config():
    with patch("stratus.core.logging.configure_logging"):
        yield


@pytest.fixture
def template(tmp_path):
    path = tmp_path / "main.bicep"
    path.write_text("// template\n")
    return path


def _outcome(success=True, **kwargs):
    values = {
        "success": success,
        "phase": DeploymentPhase.SUCCEEDED if success else DeploymentPhase.ABORTED,
        "final_location": "westeurope",
        "final_resource_group": "dev-euw-rg-app",
        "final_resource_prefix": "dev-euw",
        "final_storage_name": "deveuwstapp",
    }
    values.update(kwargs)
    return DeploymentOutcome(**values)


class TestRootApp:
    def test_version(self):
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert result.output.startswith("stratus ")

    def test_version_falls_back_to_package_attribute(self):
        from importlib.metadata import PackageNotFoundError

        with patch("importlib.metadata.version", side_effect=PackageNotFoundError):
            result = runner.invoke(app, ["-V"])
        assert result.output.strip() == f"stratus {__version__}"

    def test_no_args_shows_help(self):
        result = runner.invoke(app, [])
        assert "deploy" in result.output


class TestNamesAndRegions:
    def test_names_json(self):
        result = runner.invoke(app, ["deploy", "names", "--env", "dev", "--location", "westeurope", "--json"])
        assert result.exit_code == 0
        names = json.loads(result.output)
        assert names["resource_group"] == "dev-euw-rg-app"
        assert names["storage"] == "deveuwstapp"

    def test_names_table(self):
        result = runner.invoke(app, ["deploy", "names", "--location", "eastus2"])
        assert result.exit_code == 0
        assert "dev-eus2-rg-app" in result.output

    def test_regions(self):
        result = runner.invoke(app, ["deploy", "regions"])
        assert result.exit_code == 0
        assert "westeurope" in result.output
        assert "default fallback" in result.output


class TestDeployRun:
    @patch("stratus.deploy.orchestrator.run_deployment")
    def test_success_exits_zero(self, mock_run, template):
        mock_run.return_value = _outcome()

        result = runner.invoke(app, ["deploy", "run", "--template", str(template), "--env", "staging"])

        assert result.exit_code == 0, result.output
        assert "SUCCEEDED" in result.output
        args, kwargs = mock_run.call_args
        assert args[0] is None
        assert kwargs["config"].environment == "staging"
        assert isinstance(kwargs["prompter"], ConsolePrompter)

    @patch("stratus.deploy.orchestrator.run_deployment")
    def test_failure_exits_one(self, mock_run, template):
        mock_run.return_value = _outcome(
            success=False,
            error="Retry limit reached (3 conflict retries)",
            rollback=RollbackReport(deleted=["deveuwstapp"]),
        )

        result = runner.invoke(app, ["deploy", "run", "-t", str(template)])

        assert result.exit_code == 1
        assert "FAILED" in result.output
        assert "Fully rolled back (1 resources deleted)" in result.output

    @patch("stratus.deploy.orchestrator.run_deployment")
    def test_interrupt_exits_130(self, mock_run, template):
        mock_run.side_effect = KeyboardInterrupt

        result = runner.invoke(app, ["deploy", "run", "-t", str(template)])

        assert result.exit_code == 130
        assert "Interrupted" in result.output

    @patch("stratus.deploy.orchestrator.run_deployment")
    def test_invalid_components_exit_before_deploying(self, mock_run, template):
        result = runner.invoke(app, ["deploy", "run", "-t", str(template), "--no-database"])

        assert result.exit_code == 1
        assert "App Service requires" in result.output
        mock_run.assert_not_called()

    @patch("stratus.deploy.orchestrator.run_deployment")
    def test_non_interactive_choice_is_zero_based(self, mock_run, template):
        mock_run.return_value = _outcome()

        result = runner.invoke(
            app,
            ["deploy", "run", "-t", str(template), "--non-interactive", "--choice", "2", "--yes"],
        )

        assert result.exit_code == 0, result.output
        prompter = mock_run.call_args.kwargs["prompter"]
        assert isinstance(prompter, AutoPrompter)
        assert prompter.choice == 1
        assert prompter.approve is True

    @patch("stratus.deploy.orchestrator.run_deployment")
    def test_params_and_toggles_reach_config(self, mock_run, template):
        mock_run.return_value = _outcome(dry_run=True)

        result = runner.invoke(
            app,
            [
                "deploy", "run", "-t", str(template), "--what-if",
                "--no-messaging", "-p", "sku=B1", "-p", "instances=2",
            ],
        )

        assert result.exit_code == 0, result.output
        config = mock_run.call_args.kwargs["config"]
        assert config.dry_run is True
        assert config.deploy_messaging is False
        assert config.extra_parameters == {"sku": "B1", "instances": 2}
        assert "WHAT-IF" in result.output

    def test_bad_param_rejected(self, template):
        result = runner.invoke(app, ["deploy", "run", "-t", str(template), "-p", "novalue"])
        assert result.exit_code != 0

    @patch("stratus.deploy.orchestrator.run_deployment")
    def test_json_output(self, mock_run, template):
        mock_run.return_value = _outcome()

        result = runner.invoke(app, ["deploy", "run", "-t", str(template), "--json"])

        assert result.exit_code == 0
        assert '"success": true' in result.output
        assert '"final_resource_group": "dev-euw-rg-app"' in result.output
