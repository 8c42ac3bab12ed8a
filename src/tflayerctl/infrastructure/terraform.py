"""Terraform CLI wrapper.

One :class:`TerraformRunner` per layer working directory. Commands run
non-interactively (``-input=false -no-color``) with the service principal
passed through the process environment. A non-zero exit that the command
does not define as meaningful raises :class:`TerraformError`, carrying a
classification of the failure derived from the tool's own text.
"""

from __future__ import annotations

import json
import logging
import os
import re
import subprocess
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path

logger = logging.getLogger(__name__)

# ``terraform plan -detailed-exitcode``: 0 = no changes, 1 = error, 2 = changes.
PLAN_NO_CHANGES = 0
PLAN_CHANGES = 2

_LOCK_ID = re.compile(r"^\s*ID:\s+(\S+)", re.MULTILINE)

_LOCK_MARKERS = ("Error acquiring the state lock", "state blob is already locked")
_STALE_MARKERS = ("Saved plan is stale",)
_AUTH_MARKERS = (
    "AADSTS",
    "AuthorizationFailed",
    "InvalidAuthenticationToken",
    "Unable to build authorizer",
    "building AzureRM Client",
    "does not have authorization",
    "StatusCode=403",
    "status code 403",
)
_CONFIG_MARKERS = (
    "No value for required variable",
    "Failed to read variables file",
    "Invalid value for input variable",
    "Value for undeclared variable",
    "Reference to undeclared input variable",
    "Invalid backend configuration",
    "Backend initialization required",
    "Backend configuration changed",
    "Missing required argument",
)


class FailureKind(StrEnum):
    """Classification of a failed Terraform invocation (values are error codes)."""

    STATE_LOCKED = "STATE_LOCKED"
    AUTH = "AUTH_ERROR"
    CONFIG = "CONFIG_ERROR"
    STALE_PLAN = "STALE_PLAN"
    TOOL = "TOOL_ERROR"


def classify_failure(output: str) -> FailureKind:
    """Map Terraform's error text onto a :class:`FailureKind`.

    Checked in priority order: a locked state is reported even when the
    lock error also mentions the backend.
    """
    if any(marker in output for marker in _LOCK_MARKERS):
        return FailureKind.STATE_LOCKED
    if any(marker in output for marker in _STALE_MARKERS):
        return FailureKind.STALE_PLAN
    if any(marker in output for marker in _AUTH_MARKERS):
        return FailureKind.AUTH
    if any(marker in output for marker in _CONFIG_MARKERS):
        return FailureKind.CONFIG
    return FailureKind.TOOL


def extract_lock_id(output: str) -> str | None:
    """Pull the lock ID out of an "Error acquiring the state lock" block."""
    match = _LOCK_ID.search(output)
    return match.group(1) if match else None


def tail(text: str, limit: int) -> str:
    """Last *limit* characters of *text* (whole text when limit <= 0)."""
    if limit <= 0 or len(text) <= limit:
        return text
    return text[-limit:]


class TerraformError(Exception):
    """Raised when a Terraform command fails."""

    def __init__(
        self,
        command: str,
        return_code: int | None,
        output: str,
        *,
        kind: FailureKind | None = None,
    ) -> None:
        self.command = command
        self.return_code = return_code
        self.output = output
        self.kind = kind or classify_failure(output)
        self.lock_id = extract_lock_id(output) if self.kind is FailureKind.STATE_LOCKED else None
        super().__init__(f"terraform {command} failed (exit {return_code})")


@dataclass(frozen=True)
class TerraformRun:
    """Captured result of one Terraform invocation."""

    command: str
    return_code: int
    output: str


class TerraformRunner:
    """Runs Terraform commands inside one layer directory.

    Attributes:
        working_dir: The layer directory Terraform runs in.
    """

    def __init__(
        self,
        working_dir: Path,
        *,
        binary: str = "terraform",
        env: Mapping[str, str] | None = None,
        timeout: int | None = None,
    ) -> None:
        self.working_dir = working_dir
        self._binary = binary
        self._env = dict(env or {})
        self._timeout = timeout

    def _environment(self) -> dict[str, str]:
        merged = dict(os.environ)
        merged.update(self._env)
        merged["TF_IN_AUTOMATION"] = "1"
        merged["TF_INPUT"] = "0"
        return merged

    def _run(self, args: Sequence[str], *, ok_codes: Sequence[int] = (0,)) -> TerraformRun:
        """Run ``terraform <args>``; raise :class:`TerraformError` outside *ok_codes*."""
        command = args[0]
        cmd = [self._binary, *args]
        logger.debug("Running: %s (cwd=%s)", " ".join(cmd), self.working_dir)
        try:
            result = subprocess.run(
                cmd,
                cwd=self.working_dir,
                env=self._environment(),
                capture_output=True,
                text=True,
                timeout=self._timeout,
                check=False,
            )
        except FileNotFoundError as exc:
            msg = f"Terraform binary '{self._binary}' not found: {exc}"
            raise TerraformError(command, None, msg, kind=FailureKind.TOOL) from exc
        except subprocess.TimeoutExpired as exc:
            msg = f"terraform {command} timed out after {self._timeout}s"
            raise TerraformError(command, None, msg, kind=FailureKind.TOOL) from exc
        except OSError as exc:
            msg = f"Cannot run Terraform binary '{self._binary}': {exc}"
            raise TerraformError(command, None, msg, kind=FailureKind.TOOL) from exc

        output = result.stdout or ""
        if result.stderr:
            output = f"{output}\n{result.stderr}" if output else result.stderr
        if result.returncode not in ok_codes:
            raise TerraformError(command, result.returncode, output or "No output captured")
        return TerraformRun(command=command, return_code=result.returncode, output=output)

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def init(self, backend_config: Mapping[str, str]) -> TerraformRun:
        args = ["init", "-input=false", "-no-color", "-reconfigure"]
        args.extend(f"-backend-config={key}={value}" for key, value in backend_config.items())
        return self._run(args)

    def plan(self, var_file: Path, plan_file: str, *, destroy: bool = False) -> TerraformRun:
        """Plan into *plan_file*; ``return_code`` is 0 (no changes) or 2 (changes)."""
        args = [
            "plan",
            "-input=false",
            "-no-color",
            "-detailed-exitcode",
            f"-var-file={var_file}",
            f"-out={plan_file}",
        ]
        if destroy:
            args.append("-destroy")
        return self._run(args, ok_codes=(PLAN_NO_CHANGES, PLAN_CHANGES))

    def apply_plan(self, plan_file: str) -> TerraformRun:
        """Apply a saved plan (saved plans never prompt)."""
        return self._run(["apply", "-input=false", "-no-color", plan_file])

    def apply(self, var_file: Path) -> TerraformRun:
        return self._run(
            ["apply", "-input=false", "-no-color", "-auto-approve", f"-var-file={var_file}"]
        )

    def destroy(self, var_file: Path) -> TerraformRun:
        return self._run(
            ["destroy", "-input=false", "-no-color", "-auto-approve", f"-var-file={var_file}"]
        )

    def force_unlock(self, lock_id: str) -> TerraformRun:
        return self._run(["force-unlock", "-force", lock_id])

    def fmt_check(self) -> bool:
        """True when ``terraform fmt -check`` finds nothing to rewrite."""
        try:
            self._run(["fmt", "-check", "-no-color"])
        except TerraformError as exc:
            if exc.return_code is None:
                raise
            return False
        return True

    def version(self) -> str:
        """Installed Terraform version (``terraform version -json``)."""
        run = self._run(["version", "-json"])
        return str(json.loads(run.output).get("terraform_version", ""))
