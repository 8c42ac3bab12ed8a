"""Tests for ScaffoldService — variable files and state storage bootstrap."""

from __future__ import annotations

import re
from collections.abc import Sequence
from pathlib import Path

import pytest

from tests.conftest import LAYERS
from tflayerctl.config.credentials import AzureCredentials
from tflayerctl.config.models import EnvironmentsConfig
from tflayerctl.config.settings import LayerCtlSettings
from tflayerctl.infrastructure.azure import AzureCli, AzureCliError
from tflayerctl.services.scaffold import ScaffoldService, generate_storage_account_name


class RecordingAzure(AzureCli):
    """Records commands instead of running them; optionally fails one."""

    def __init__(self, fail_on: str | None = None) -> None:
        super().__init__()
        self.ran: list[list[str]] = []
        self._fail_on = fail_on

    def run(self, command: Sequence[str]) -> str:
        if self._fail_on and self._fail_on in command:
            raise AzureCliError(command, "AuthorizationFailed")
        self.ran.append(list(command))
        return ""


@pytest.fixture
def qa_settings(project_root: Path) -> LayerCtlSettings:
    return LayerCtlSettings.from_cli(
        project_root=project_root,
        environments=EnvironmentsConfig(names=["dev", "qa", "prod"]),
    )


class TestScaffold:
    def test_existing_files_skipped(
        self, settings: LayerCtlSettings, credentials: AzureCredentials
    ) -> None:
        result = ScaffoldService(settings, credentials=credentials).scaffold(["dev"])
        assert result.ok
        assert result.data["created"] == []
        assert len(result.data["skipped"]) == len(LAYERS)

    def test_new_environment(
        self, qa_settings: LayerCtlSettings, credentials: AzureCredentials, project_root: Path
    ) -> None:
        result = ScaffoldService(qa_settings, credentials=credentials).scaffold(["qa"])
        assert result.data["count"] == len(LAYERS)
        assert result.data["created"][0] == "environments/qa/networking.tfvars"

        text = (project_root / "environments" / "qa" / "compute.tfvars").read_text()
        assert 'environment = "qa"' in text
        assert 'state_storage_account_name = "tfstate123456"' in text
        assert 'Owner       = "platform-team"' in text
        assert 'Workload    = "compute"' in text

    def test_default_targets_every_environment(
        self, qa_settings: LayerCtlSettings, credentials: AzureCredentials
    ) -> None:
        result = ScaffoldService(qa_settings, credentials=credentials).scaffold()
        assert result.data["count"] == len(LAYERS)
        assert len(result.data["skipped"]) == 2 * len(LAYERS)

    def test_force_overwrites(
        self, settings: LayerCtlSettings, credentials: AzureCredentials, project_root: Path
    ) -> None:
        target = project_root / "environments" / "dev" / "dns.tfvars"
        target.write_text("# hand edited\n")
        result = ScaffoldService(settings, credentials=credentials).scaffold(["dev"], force=True)
        assert result.data["count"] == len(LAYERS)
        assert "Resource Tagging" in target.read_text()

    def test_unknown_environment(
        self, settings: LayerCtlSettings, credentials: AzureCredentials
    ) -> None:
        result = ScaffoldService(settings, credentials=credentials).scaffold(["qa"])
        assert result.error is not None
        assert result.error.code == "INVALID_ENVIRONMENT"

    def test_repository_template_override(
        self, qa_settings: LayerCtlSettings, credentials: AzureCredentials, project_root: Path
    ) -> None:
        override = project_root / ".tflayerctl" / "templates" / "tfvars"
        override.mkdir(parents=True)
        (override / "layer.tfvars.j2").write_text('environment = "{{ environment }}"\n')
        ScaffoldService(qa_settings, credentials=credentials).scaffold(["qa"])
        text = (project_root / "environments" / "qa" / "dns.tfvars").read_text()
        assert text == 'environment = "qa"\n'

    def test_broken_override_template(
        self, qa_settings: LayerCtlSettings, credentials: AzureCredentials, project_root: Path
    ) -> None:
        override = project_root / ".tflayerctl" / "templates" / "tfvars"
        override.mkdir(parents=True)
        (override / "layer.tfvars.j2").write_text("{{ unknown_variable }}\n")
        result = ScaffoldService(qa_settings, credentials=credentials).scaffold(["qa"])
        assert result.error is not None
        assert result.error.code == "CONFIG_ERROR"


class TestBootstrap:
    def test_dry_run_runs_nothing(
        self, settings: LayerCtlSettings, credentials: AzureCredentials
    ) -> None:
        azure = RecordingAzure()
        result = ScaffoldService(settings, credentials=credentials, azure=azure).bootstrap(
            dry_run=True
        )
        assert result.ok
        assert azure.ran == []
        assert result.data["resource_group"] == "rg-terraform-state"
        assert result.data["storage_account"] == "tfstate123456"
        assert result.data["location"] == "East US 2"
        assert len(result.data["commands"]) == 3
        assert result.data["completed"] == 0
        assert result.warnings == []

    def test_creates_resources_in_order(
        self, settings: LayerCtlSettings, credentials: AzureCredentials
    ) -> None:
        azure = RecordingAzure()
        result = ScaffoldService(settings, credentials=credentials, azure=azure).bootstrap(
            "westeurope"
        )
        assert result.data["completed"] == 3
        assert [cmd[1:3] for cmd in azure.ran] == [
            ["group", "create"],
            ["storage", "account"],
            ["storage", "container"],
        ]
        assert "westeurope" in azure.ran[0]

    def test_new_names_warn_about_secrets(self, settings: LayerCtlSettings) -> None:
        azure = RecordingAzure()
        result = ScaffoldService(
            settings, credentials=AzureCredentials(), azure=azure
        ).bootstrap(storage_account="tfstatenew01", dry_run=True)
        assert result.data["resource_group"] == "rg-terraform-state"
        assert "TF_STATE_STORAGE_ACCOUNT=tfstatenew01" in result.warnings[0]

    def test_invalid_account_name(
        self, settings: LayerCtlSettings, credentials: AzureCredentials
    ) -> None:
        result = ScaffoldService(settings, credentials=credentials).bootstrap(
            storage_account="Bad_Name", dry_run=True
        )
        assert result.error is not None
        assert result.error.code == "CONFIG_ERROR"

    def test_azure_failure_stops(
        self, settings: LayerCtlSettings, credentials: AzureCredentials
    ) -> None:
        azure = RecordingAzure(fail_on="container")
        result = ScaffoldService(settings, credentials=credentials, azure=azure).bootstrap()
        assert not result.ok
        assert result.error is not None
        assert result.error.code == "AZ_ERROR"
        assert result.data["completed"] == 2

    def test_generated_name(self) -> None:
        assert re.fullmatch(r"tfstate\d{6}", generate_storage_account_name())
