"""CheckService — repository readiness checks.

Single command following the linter pattern: every check appends issues
with a severity and a category, nothing is modified. Categories cover the
directory structure, layer files, environment variable files, workflow
YAML, credentials, tooling, and (opt-in) Terraform formatting.
"""

from __future__ import annotations

import re
import shutil
from pathlib import Path
from typing import Any

from ruamel.yaml import YAML
from ruamel.yaml.error import YAMLError

from tflayerctl.config.credentials import IDENTITY_VARS, STATE_VARS
from tflayerctl.infrastructure.filesystem import LAYER_FILES, layer_dir, var_file
from tflayerctl.infrastructure.terraform import TerraformError, TerraformRunner
from tflayerctl.services.base import BaseService
from tflayerctl.services.result import ServiceResult
from tflayerctl.services.telemetry import trace_span, traced

# ---------------------------------------------------------------------------
# Issue severity and category constants
# ---------------------------------------------------------------------------

SEVERITY_ERROR = "error"
SEVERITY_WARNING = "warning"

CAT_STRUCTURE = "structure"
CAT_LAYERS = "layers"
CAT_ENVIRONMENTS = "environments"
CAT_WORKFLOWS = "workflows"
CAT_CREDENTIALS = "credentials"
CAT_TOOLING = "tooling"
CAT_FORMATTING = "formatting"

_TERRAFORM_BLOCK = re.compile(r"^\s*terraform\s*\{", re.MULTILINE)
_AZURERM_BACKEND = re.compile(r'backend\s+"azurerm"')
_LOCATION = re.compile(r"^\s*location\s*=", re.MULTILINE)
_TAGS = re.compile(r"^\s*tags\s*=", re.MULTILINE)


def _issue(
    severity: str, category: str, message: str, *, path: str | None = None
) -> dict[str, Any]:
    issue: dict[str, Any] = {"severity": severity, "category": category, "message": message}
    if path is not None:
        issue["path"] = path
    return issue


def _warning(category: str, message: str, *, path: str | None = None) -> dict[str, Any]:
    return _issue(SEVERITY_WARNING, category, message, path=path)


class CheckService(BaseService):
    """Reports problems that would break a pipeline run."""

    @traced
    def check(self, *, fmt: bool = False) -> ServiceResult:
        """Run every check; with *fmt*, also ``terraform fmt -check`` each layer."""
        issues: list[dict[str, Any]] = []
        with trace_span("structure"):
            issues.extend(self._check_structure())
        with trace_span("layers"):
            issues.extend(self._check_layers())
        with trace_span("environments"):
            issues.extend(self._check_environments())
        with trace_span("workflows"):
            issues.extend(self._check_workflows())
        issues.extend(self._check_credentials())
        terraform_found = shutil.which(self.settings.terraform.binary) is not None
        issues.extend(self._check_tooling(terraform_found))
        if fmt and terraform_found:
            with trace_span("formatting"):
                issues.extend(self._check_formatting())

        errors = sum(1 for i in issues if i["severity"] == SEVERITY_ERROR)
        return ServiceResult(
            ok=True,
            op="check",
            data={
                "issues": issues,
                "count": len(issues),
                "error_count": errors,
                "warning_count": len(issues) - errors,
                "healthy": errors == 0,
            },
        )

    # ------------------------------------------------------------------
    # Individual checks
    # ------------------------------------------------------------------

    def _rel(self, path: Path) -> str:
        return str(path.relative_to(self.root))

    def _check_structure(self) -> list[dict[str, Any]]:
        paths = self.settings.paths
        envs_root = self.root / paths.environments_root
        required = [self.root / paths.workflows_root, self.root / paths.modules_root]
        required.extend(envs_root / env for env in self.settings.environments.names)
        required.extend(layer_dir(self.root, paths.layers_root, name) for name in self.graph.order)
        return [
            _issue(SEVERITY_ERROR, CAT_STRUCTURE, "Missing required directory", path=self._rel(d))
            for d in required
            if not d.is_dir()
        ]

    def _check_layers(self) -> list[dict[str, Any]]:
        issues: list[dict[str, Any]] = []
        for name in self.graph.order:
            directory = layer_dir(self.root, self.settings.paths.layers_root, name)
            if not directory.is_dir():
                continue  # reported under structure
            for filename in LAYER_FILES:
                if not (directory / filename).is_file():
                    rel = self._rel(directory / filename)
                    issues.append(_warning(CAT_LAYERS, "Missing layer file", path=rel))
            main_tf = directory / "main.tf"
            if not main_tf.is_file():
                continue
            text = main_tf.read_text(encoding="utf-8")
            rel = self._rel(main_tf)
            if not _TERRAFORM_BLOCK.search(text):
                issues.append(_warning(CAT_LAYERS, "terraform block missing", path=rel))
            if not _AZURERM_BACKEND.search(text):
                issues.append(_warning(CAT_LAYERS, "azurerm backend not configured", path=rel))
        return issues

    def _check_environments(self) -> list[dict[str, Any]]:
        issues: list[dict[str, Any]] = []
        paths = self.settings.paths
        for env in self.settings.environments.names:
            env_pattern = re.compile(rf'^\s*environment\s*=\s*"{re.escape(env)}"', re.MULTILINE)
            for name in self.graph.order:
                tfvars = var_file(self.root, paths.environments_root, env, name)
                rel = self._rel(tfvars)
                if not tfvars.is_file():
                    issues.append(_warning(CAT_ENVIRONMENTS, "Missing variable file", path=rel))
                    continue
                text = tfvars.read_text(encoding="utf-8")
                if not env_pattern.search(text):
                    msg = f'environment is not set to "{env}"'
                    issues.append(_warning(CAT_ENVIRONMENTS, msg, path=rel))
                if not _LOCATION.search(text):
                    issues.append(_warning(CAT_ENVIRONMENTS, "location variable missing", path=rel))
                if not _TAGS.search(text):
                    issues.append(_warning(CAT_ENVIRONMENTS, "tags variable missing", path=rel))
        return issues

    def _check_workflows(self) -> list[dict[str, Any]]:
        root = self.root / self.settings.paths.workflows_root
        if not root.is_dir():
            return []  # reported under structure
        files = sorted([*root.glob("*.yml"), *root.glob("*.yaml")])
        if not files:
            return [_warning(CAT_WORKFLOWS, "No workflow files found", path=self._rel(root))]

        issues: list[dict[str, Any]] = []
        for path in files:
            rel = self._rel(path)
            try:
                data = YAML(typ="safe").load(path.read_text(encoding="utf-8"))
            except (UnicodeError, YAMLError) as exc:
                first_line = str(exc).splitlines()[0] if str(exc) else type(exc).__name__
                msg = f"Invalid YAML: {first_line}"
                issues.append(_issue(SEVERITY_ERROR, CAT_WORKFLOWS, msg, path=rel))
                continue
            if not isinstance(data, dict) or "jobs" not in data:
                issues.append(_warning(CAT_WORKFLOWS, "Workflow defines no jobs", path=rel))
        return issues

    def _check_credentials(self) -> list[dict[str, Any]]:
        missing = set(self.credentials.missing_identity()) | set(self.credentials.missing_state())
        return [
            _warning(CAT_CREDENTIALS, f"{var} is not set")
            for var in (*IDENTITY_VARS, *STATE_VARS)
            if var in missing
        ]

    def _check_tooling(self, terraform_found: bool) -> list[dict[str, Any]]:
        tf = self.settings.terraform
        if not terraform_found:
            return [_warning(CAT_TOOLING, f"Terraform binary '{tf.binary}' not found on PATH")]
        if tf.version is None:
            return []
        try:
            installed = TerraformRunner(self.root, binary=tf.binary, timeout=60).version()
        except TerraformError as exc:
            return [_warning(CAT_TOOLING, f"Could not read Terraform version: {exc}")]
        if installed != tf.version:
            msg = f"Terraform {installed} installed, {tf.version} configured"
            return [_warning(CAT_TOOLING, msg)]
        return []

    def _check_formatting(self) -> list[dict[str, Any]]:
        issues: list[dict[str, Any]] = []
        for name in self.graph.order:
            directory = layer_dir(self.root, self.settings.paths.layers_root, name)
            if not directory.is_dir():
                continue
            runner = TerraformRunner(directory, binary=self.settings.terraform.binary, timeout=120)
            rel = self._rel(directory)
            try:
                formatted = runner.fmt_check()
            except TerraformError as exc:
                issues.append(_warning(CAT_FORMATTING, f"fmt check failed: {exc}", path=rel))
                continue
            if not formatted:
                msg = "Formatting issues (run: terraform fmt)"
                issues.append(_warning(CAT_FORMATTING, msg, path=rel))
        return issues
