"""Shared pytest fixtures and test helpers for tflayerctl tests."""

from __future__ import annotations

import json
import subprocess
import threading
from collections.abc import Iterator, Mapping
from pathlib import Path
from typing import Any

import pytest
from click.testing import CliRunner

from tflayerctl.config.credentials import AzureCredentials
from tflayerctl.config.settings import LayerCtlSettings
from tflayerctl.infrastructure.terraform import TerraformError, TerraformRun
from tflayerctl.services.telemetry import disable_telemetry

LAYERS = ("networking", "security", "storage", "database", "compute", "monitoring", "dns")
ENVIRONMENTS = ("dev", "staging", "uat", "prod")

AZURE_ENV = {
    "ARM_CLIENT_ID": "00000000-0000-0000-0000-000000000001",
    "ARM_CLIENT_SECRET": "s3cret-value",
    "ARM_TENANT_ID": "00000000-0000-0000-0000-000000000002",
    "ARM_SUBSCRIPTION_ID": "00000000-0000-0000-0000-000000000003",
    "TF_STATE_STORAGE_ACCOUNT": "tfstate123456",
    "TF_STATE_RESOURCE_GROUP": "rg-terraform-state",
}

MAIN_TF = """\
terraform {
  required_version = ">= 1.5.0"

  backend "azurerm" {}
}
"""

WORKFLOW_YML = """\
name: Terraform Plan
on:
  pull_request:
    branches: [main]
jobs:
  plan:
    runs-on: ubuntu-latest
    steps:
      - uses: actions/checkout@v4
"""


def tfvars(environment: str, layer: str) -> str:
    return (
        f'environment = "{environment}"\n'
        'location    = "East US 2"\n'
        f'tags = {{\n  Environment = "{environment}"\n  Workload = "{layer}"\n}}\n'
    )


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep the developer's shell and CI variables out of every test."""
    for var in [*AZURE_ENV, "TFLAYERCTL_CONFIG", "GITHUB_OUTPUT"]:
        monkeypatch.delenv(var, raising=False)


@pytest.fixture(autouse=True)
def _reset_telemetry() -> Iterator[None]:
    """--verbose runs enable telemetry for the current context; undo it."""
    yield
    disable_telemetry()


@pytest.fixture
def cli_runner() -> CliRunner:
    """Provide a Click CLI test runner."""
    return CliRunner()


@pytest.fixture
def project_root(tmp_path: Path) -> Path:
    """Repository with the default layout: layers, modules, environments, workflows.

    This is the single source of truth for the on-disk project layout.
    """
    for layer in LAYERS:
        layer_dir = tmp_path / "layers" / layer
        layer_dir.mkdir(parents=True)
        (layer_dir / "main.tf").write_text(MAIN_TF)
        (layer_dir / "variables.tf").write_text('variable "environment" {}\n')
        (layer_dir / "outputs.tf").write_text("")
    (tmp_path / "layers" / "networking" / "vnet.tf").write_text(
        'module "vnet" {\n  source = "../../modules/vnet"\n}\n'
    )
    (tmp_path / "modules" / "vnet").mkdir(parents=True)
    (tmp_path / "modules" / "vnet" / "main.tf").write_text("")
    for env in ENVIRONMENTS:
        env_dir = tmp_path / "environments" / env
        env_dir.mkdir(parents=True)
        for layer in LAYERS:
            (env_dir / f"{layer}.tfvars").write_text(tfvars(env, layer))
    workflows = tmp_path / ".github" / "workflows"
    workflows.mkdir(parents=True)
    (workflows / "terraform-plan.yml").write_text(WORKFLOW_YML)
    return tmp_path


@pytest.fixture
def settings(project_root: Path) -> LayerCtlSettings:
    return LayerCtlSettings.from_cli(project_root=project_root)


@pytest.fixture
def credentials() -> AzureCredentials:
    return AzureCredentials(**{k.lower(): v for k, v in AZURE_ENV.items()})


@pytest.fixture
def azure_env(monkeypatch: pytest.MonkeyPatch) -> dict[str, str]:
    """Export the Azure variables for CLI-level tests."""
    for key, value in AZURE_ENV.items():
        monkeypatch.setenv(key, value)
    return AZURE_ENV


@pytest.fixture
def _in_project(project_root: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Change CWD to the temp project so the CLI discovers it."""
    monkeypatch.chdir(project_root)


# ---------------------------------------------------------------------------
# Git helpers
# ---------------------------------------------------------------------------


def git(root: Path, *args: str) -> str:
    """Run git in *root*, asserting success."""
    result = subprocess.run(
        ["git", *args], cwd=root, capture_output=True, text=True, check=True
    )
    return result.stdout.strip()


def init_repo(root: Path) -> str:
    """Initialize a repository with everything under *root* committed; return HEAD."""
    git(root, "init", "-q", "-b", "main")
    git(root, "config", "user.email", "ci@example.com")
    git(root, "config", "user.name", "CI")
    git(root, "config", "commit.gpgsign", "false")
    return commit_all(root, "initial")


def commit_all(root: Path, message: str) -> str:
    git(root, "add", "-A")
    git(root, "commit", "-q", "--allow-empty", "-m", message)
    return git(root, "rev-parse", "HEAD")


@pytest.fixture
def repo(project_root: Path) -> Path:
    """The default project committed as a git repository."""
    init_repo(project_root)
    return project_root


# ---------------------------------------------------------------------------
# Fake Terraform
# ---------------------------------------------------------------------------


class FakeTerraform:
    """Scriptable stand-in for TerraformRunner.

    Acts as the ``runner_factory`` for ExecutorService. Every call is
    recorded as ``(layer, environment, command)``.

    Attributes:
        plan_codes: ``layer`` or ``layer:env`` -> detailed exit code (default 2).
        failures: ``(layer, command)`` or ``(layer:env, command)`` -> tool output
            for a failing invocation.
    """

    def __init__(self) -> None:
        self.calls: list[tuple[str, str, str]] = []
        self.plan_codes: dict[str, int] = {}
        self.failures: dict[tuple[str, str], str] = {}
        self.envs: list[Mapping[str, str]] = []
        self._lock = threading.Lock()

    def __call__(self, working_dir: Path, env: Mapping[str, str]) -> FakeRunner:
        with self._lock:
            self.envs.append(dict(env))
        environment = str(env.get("TF_DATA_DIR", "")).removeprefix(".terraform-")
        return FakeRunner(self, working_dir, working_dir.name, environment)

    def record(self, layer: str, environment: str, command: str) -> None:
        with self._lock:
            self.calls.append((layer, environment, command))

    def commands(self, layer: str, environment: str) -> list[str]:
        return [c for lay, env, c in self.calls if lay == layer and env == environment]

    def sequence(self, command: str) -> list[str]:
        """``layer:env`` keys in the order *command* was invoked."""
        return [f"{lay}:{env}" for lay, env, c in self.calls if c == command]


class FakeRunner:
    def __init__(
        self, fake: FakeTerraform, working_dir: Path, layer: str, environment: str
    ) -> None:
        self.working_dir = working_dir
        self._fake = fake
        self._layer = layer
        self._env = environment

    def _run(self, command: str, return_code: int = 0) -> TerraformRun:
        self._fake.record(self._layer, self._env, command)
        for key in (f"{self._layer}:{self._env}", self._layer):
            output = self._fake.failures.get((key, command))
            if output is not None:
                raise TerraformError(command, 1, output)
        return TerraformRun(command=command, return_code=return_code, output=f"{command} ok")

    def init(self, backend_config: Mapping[str, str]) -> TerraformRun:
        return self._run("init")

    def plan(self, var_file: Path, plan_file: str, *, destroy: bool = False) -> TerraformRun:
        codes = self._fake.plan_codes
        code = codes.get(f"{self._layer}:{self._env}", codes.get(self._layer, 2))
        return self._run("plan-destroy" if destroy else "plan", code)

    def apply_plan(self, plan_file: str) -> TerraformRun:
        return self._run("apply-plan")

    def apply(self, var_file: Path) -> TerraformRun:
        return self._run("apply")

    def destroy(self, var_file: Path) -> TerraformRun:
        return self._run("destroy")

    def force_unlock(self, lock_id: str) -> TerraformRun:
        return self._run(f"force-unlock:{lock_id}")


@pytest.fixture
def fake_terraform() -> FakeTerraform:
    return FakeTerraform()


@pytest.fixture
def patched_terraform(
    monkeypatch: pytest.MonkeyPatch, fake_terraform: FakeTerraform
) -> FakeTerraform:
    """Route the CLI's TerraformRunner construction to the fake."""

    def factory(working_dir: Path, **kwargs: Any) -> FakeRunner:
        return fake_terraform(working_dir, kwargs.get("env") or {})

    monkeypatch.setattr("tflayerctl.services.executor.TerraformRunner", factory)
    return fake_terraform


def json_payload(text: str) -> dict[str, Any]:
    """Parse the JSON result from captured output, skipping any log lines before it."""
    start = 0 if text.startswith("{") else text.index("\n{") + 1
    return json.loads(text[start:])  # type: ignore[no-any-return]
