"""Tests for stratus.deploy.config."""

from __future__ import annotations

import os
from pathlib import Path
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from stratus.core.errors import InvalidConfigError
from stratus.deploy.config import DEFAULT_FALLBACK_LOCATION, DeploymentConfig


class TestDeploymentConfig:
    def test_defaults(self):
        config = DeploymentConfig()
        assert config.environment == "dev"
        assert config.location == "westeurope"
        assert config.fallback_location == DEFAULT_FALLBACK_LOCATION == "eastus2"
        assert config.max_retries == 3
        assert config.dry_run is False

    def test_run_id_auto_generated(self):
        first, second = DeploymentConfig(), DeploymentConfig()
        assert len(first.run_id) == 12
        assert first.run_id != second.run_id

    def test_explicit_run_id_kept(self):
        assert DeploymentConfig(run_id="fixed").run_id == "fixed"

    def test_negative_retries_rejected(self):
        with pytest.raises(ValidationError):
            DeploymentConfig(max_retries=-1)


class TestValidateComponents:
    def test_all_enabled_ok(self):
        DeploymentConfig().validate_components()

    @pytest.mark.parametrize("missing", ["deploy_database", "deploy_storage"])
    def test_app_service_needs_dependencies(self, missing):
        config = DeploymentConfig(**{missing: False})
        with pytest.raises(InvalidConfigError, match="App Service requires"):
            config.validate_components()

    def test_without_app_service_anything_goes(self):
        DeploymentConfig(deploy_app_service=False, deploy_database=False).validate_components()


class TestFromEnv:
    @patch.dict(
        os.environ,
        {
            "STRATUS_DEPLOY_ENVIRONMENT": "staging",
            "STRATUS_DEPLOY_MAX_RETRIES": "5",
            "STRATUS_DEPLOY_DRY_RUN": "yes",
            "STRATUS_DEPLOY_TEMPLATE": "infra/main.bicep",
        },
    )
    def test_reads_environment(self):
        config = DeploymentConfig.from_env()
        assert config.environment == "staging"
        assert config.max_retries == 5
        assert config.dry_run is True
        assert config.template_path == Path("infra/main.bicep")

    @patch.dict(os.environ, {"STRATUS_DEPLOY_LOCATION": "northeurope"})
    def test_kwargs_win_and_none_ignored(self):
        config = DeploymentConfig.from_env(location="uksouth", environment=None)
        assert config.location == "uksouth"
        assert config.environment == "dev"
