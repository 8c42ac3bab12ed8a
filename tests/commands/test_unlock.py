"""Tests for the unlock command."""

from __future__ import annotations

import pytest
from click.testing import CliRunner

from tests.conftest import FakeTerraform
from tflayerctl.cli import cli


@pytest.mark.usefixtures("_in_project", "azure_env")
class TestUnlockCommand:
    def test_unlock(self, cli_runner: CliRunner, patched_terraform: FakeTerraform) -> None:
        result = cli_runner.invoke(cli, ["unlock", "compute", "staging", "lock-42"])
        assert result.exit_code == 0
        assert "lock_id: lock-42" in result.stdout
        assert patched_terraform.commands("compute", "staging") == [
            "init",
            "force-unlock:lock-42",
        ]

    def test_unknown_layer(self, cli_runner: CliRunner, patched_terraform: FakeTerraform) -> None:
        result = cli_runner.invoke(cli, ["unlock", "frontend", "dev", "lock-42"])
        assert result.exit_code == 1
        assert "INVALID_LAYER" in result.stderr
        assert patched_terraform.calls == []

    def test_arguments_required(self, cli_runner: CliRunner) -> None:
        result = cli_runner.invoke(cli, ["unlock", "compute", "dev"])
        assert result.exit_code == 2
