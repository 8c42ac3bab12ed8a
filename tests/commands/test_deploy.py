"""Tests for the plan, apply, and destroy commands."""

from __future__ import annotations

from pathlib import Path

import pytest
from click.testing import CliRunner

from tests.conftest import LAYERS, FakeTerraform, json_payload
from tflayerctl.cli import cli


@pytest.mark.usefixtures("_in_project", "azure_env")
class TestPlanCommand:
    def test_changes_pending_exits_2(
        self, cli_runner: CliRunner, patched_terraform: FakeTerraform
    ) -> None:
        result = cli_runner.invoke(cli, ["plan", "-e", "dev"])
        assert result.exit_code == 2
        assert "Changes detected but not applied." in result.stdout
        assert len(patched_terraform.sequence("plan")) == len(LAYERS)

    def test_no_changes_exits_0(
        self, cli_runner: CliRunner, patched_terraform: FakeTerraform
    ) -> None:
        for layer in LAYERS:
            patched_terraform.plan_codes[layer] = 0
        result = cli_runner.invoke(cli, ["plan", "-e", "dev"])
        assert result.exit_code == 0

    def test_json(self, cli_runner: CliRunner, patched_terraform: FakeTerraform) -> None:
        result = cli_runner.invoke(cli, ["--json", "plan", "-e", "uat", "-l", "dns"])
        assert result.exit_code == 2
        data = json_payload(result.stdout)
        assert data["ok"] is True
        assert data["data"]["changes_pending"] is True
        assert data["data"]["results"][0]["environment"] == "uat"
        assert patched_terraform.sequence("plan") == ["dns:uat"]

    def test_quiet(self, cli_runner: CliRunner, patched_terraform: FakeTerraform) -> None:
        result = cli_runner.invoke(cli, ["-q", "plan", "-e", "dev", "-l", "storage"])
        assert result.stdout.strip() == "storage:dev changes_pending"

    def test_failure_exits_1(self, cli_runner: CliRunner, patched_terraform: FakeTerraform) -> None:
        patched_terraform.failures[("networking", "init")] = "AADSTS700016: app not found"
        result = cli_runner.invoke(cli, ["--json", "plan", "-e", "dev"])
        assert result.exit_code == 1
        data = json_payload(result.stderr)
        assert data["error"]["code"] == "PIPELINE_FAILED"
        assert data["error"]["detail"]["failures"][0]["code"] == "AUTH_ERROR"
        assert data["data"]["counts"]["skipped"] == len(LAYERS) - 1

    def test_unknown_environment(self, cli_runner: CliRunner) -> None:
        result = cli_runner.invoke(cli, ["plan", "-e", "qa"])
        assert result.exit_code == 1
        assert "INVALID_ENVIRONMENT" in result.stderr

    def test_environment_required(self, cli_runner: CliRunner) -> None:
        result = cli_runner.invoke(cli, ["plan"])
        assert result.exit_code == 2
        assert "Missing option" in result.output


@pytest.mark.usefixtures("_in_project")
class TestCredentials:
    def test_missing_credentials(
        self, cli_runner: CliRunner, patched_terraform: FakeTerraform
    ) -> None:
        result = cli_runner.invoke(cli, ["--json", "plan", "-e", "dev", "-l", "networking"])
        assert result.exit_code == 1
        failure = json_payload(result.stderr)["error"]["detail"]["failures"][0]
        assert failure["code"] == "CONFIG_ERROR"
        assert patched_terraform.calls == []


@pytest.mark.usefixtures("_in_project", "azure_env")
class TestApplyCommand:
    def test_without_auto_approve_exits_2(
        self, cli_runner: CliRunner, patched_terraform: FakeTerraform
    ) -> None:
        result = cli_runner.invoke(cli, ["apply", "-e", "dev", "-l", "networking"])
        assert result.exit_code == 2
        assert patched_terraform.sequence("apply-plan") == []

    def test_auto_approve(self, cli_runner: CliRunner, patched_terraform: FakeTerraform) -> None:
        result = cli_runner.invoke(cli, ["--json", "apply", "-e", "dev", "--auto-approve"])
        assert result.exit_code == 0
        data = json_payload(result.stdout)["data"]
        assert data["counts"] == {"applied": len(LAYERS)}

    def test_skip_plan_needs_auto_approve(
        self, cli_runner: CliRunner, patched_terraform: FakeTerraform
    ) -> None:
        result = cli_runner.invoke(cli, ["apply", "-e", "dev", "-l", "dns", "--skip-plan"])
        assert result.exit_code == 1
        assert "--skip-plan requires --auto-approve" in result.stderr
        assert patched_terraform.calls == []

    def test_stale_plan_warning(
        self, cli_runner: CliRunner, patched_terraform: FakeTerraform
    ) -> None:
        patched_terraform.failures[("dns", "apply-plan")] = "Error: Saved plan is stale"
        result = cli_runner.invoke(cli, ["apply", "-e", "dev", "-l", "dns", "--auto-approve"])
        assert result.exit_code == 2
        assert "replan_required" in result.stdout
        assert "WARNING: dns:dev: saved plan is stale" in result.stderr


@pytest.mark.usefixtures("_in_project", "azure_env")
class TestDestroyCommand:
    def test_production_refused(
        self, cli_runner: CliRunner, patched_terraform: FakeTerraform
    ) -> None:
        result = cli_runner.invoke(
            cli, ["destroy", "-e", "prod", "--confirm", "DESTROY", "--reason", "cleanup"]
        )
        assert result.exit_code == 1
        assert "GUARDRAIL_VIOLATION" in result.stderr
        assert "production" in result.stderr
        assert patched_terraform.calls == []

    def test_wrong_confirmation(
        self, cli_runner: CliRunner, patched_terraform: FakeTerraform
    ) -> None:
        result = cli_runner.invoke(
            cli, ["destroy", "-e", "dev", "--confirm", "yes", "--reason", "cleanup"]
        )
        assert result.exit_code == 1
        assert patched_terraform.calls == []

    def test_reason_required(self, cli_runner: CliRunner) -> None:
        result = cli_runner.invoke(cli, ["destroy", "-e", "dev", "--confirm", "DESTROY"])
        assert result.exit_code == 2
        assert "--reason" in result.output

    def test_destroys_dependents_first(
        self, cli_runner: CliRunner, patched_terraform: FakeTerraform
    ) -> None:
        result = cli_runner.invoke(
            cli,
            [
                "--json",
                "destroy",
                "-e",
                "dev",
                "--confirm",
                "DESTROY",
                "--reason",
                "sandbox",
                "--auto-approve",
                "--max-workers",
                "1",
            ],
        )
        assert result.exit_code == 0
        sequence = patched_terraform.sequence("plan-destroy")
        assert sequence[0] != "networking:dev"
        assert sequence[-1] == "networking:dev"
        layers = [r["layer"] for r in json_payload(result.stdout)["data"]["results"]]
        assert layers[0] == "dns"
        assert layers[-1] == "networking"


@pytest.mark.usefixtures("azure_env")
class TestChangeDrivenPlan:
    def test_base_selects_changed_layers(
        self,
        cli_runner: CliRunner,
        repo: Path,
        patched_terraform: FakeTerraform,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        from tests.conftest import commit_all, git

        monkeypatch.chdir(repo)
        base = git(repo, "rev-parse", "HEAD")
        (repo / "layers" / "monitoring" / "main.tf").write_text("# alerts\n")
        commit_all(repo, "alerts")

        result = cli_runner.invoke(cli, ["plan", "-e", "dev", "--base", base])
        assert result.exit_code == 2
        assert patched_terraform.sequence("plan") == ["monitoring:dev"]


STUB_TERRAFORM = """\
#!/bin/sh
for arg in "$@"; do
  case "$arg" in
    -var-file=*)
      [ -f "${arg#-var-file=}" ] || { echo "Failed to read variables file" >&2; exit 1; }
      ;;
  esac
done
exit 0
"""


@pytest.mark.usefixtures("_in_project", "azure_env")
class TestRelativeConfigPath:
    def test_var_file_reaches_terraform_as_absolute_path(
        self, cli_runner: CliRunner, project_root: Path
    ) -> None:
        stub = project_root / "bin" / "terraform"
        stub.parent.mkdir()
        stub.write_text(STUB_TERRAFORM)
        stub.chmod(0o755)
        (project_root / "tflayerctl.toml").write_text(f'[terraform]\nbinary = "{stub}"\n')

        result = cli_runner.invoke(
            cli, ["-c", "tflayerctl.toml", "--json", "plan", "-e", "dev", "-l", "networking"]
        )
        assert result.exit_code == 0, result.output
        item = json_payload(result.stdout)["data"]["results"][0]
        assert item["status"] == "no_changes"
