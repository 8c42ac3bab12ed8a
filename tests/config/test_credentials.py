"""Tests for Azure credentials read from the environment."""

from __future__ import annotations

import pytest

from tests.conftest import AZURE_ENV
from tflayerctl.config.credentials import IDENTITY_VARS, STATE_VARS, AzureCredentials


class TestAzureCredentials:
    def test_reads_environment(self, azure_env: dict[str, str]) -> None:
        creds = AzureCredentials()
        assert creds.arm_client_id == AZURE_ENV["ARM_CLIENT_ID"]
        assert creds.tf_state_storage_account == "tfstate123456"
        assert creds.missing_identity() == []
        assert creds.missing_state() == []

    def test_all_missing(self) -> None:
        creds = AzureCredentials()
        assert creds.missing_identity() == list(IDENTITY_VARS)
        assert creds.missing_state() == list(STATE_VARS)

    def test_partial(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("ARM_CLIENT_ID", "abc")
        monkeypatch.setenv("ARM_TENANT_ID", "def")
        assert AzureCredentials().missing_identity() == ["ARM_CLIENT_SECRET", "ARM_SUBSCRIPTION_ID"]

    def test_secret_hidden(self, azure_env: dict[str, str]) -> None:
        creds = AzureCredentials()
        assert "s3cret-value" not in repr(creds)
        assert "s3cret-value" not in creds.model_dump_json()

    def test_terraform_env(self, azure_env: dict[str, str]) -> None:
        env = AzureCredentials().terraform_env()
        assert env == {var: AZURE_ENV[var] for var in IDENTITY_VARS}
