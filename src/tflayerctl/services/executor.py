"""ExecutorService — runs one work item through Terraform.

Flow per item: guardrails (destroy only) -> resolve inputs -> check
credentials -> ``terraform init`` -> plan / apply / destroy. Every failure
becomes a ServiceResult with one of the error codes below; nothing is
retried and nothing is rolled back.

Concurrent items for the same layer share its directory, so each
environment gets its own Terraform data directory and plan file.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from pathlib import Path
from typing import TYPE_CHECKING, Any, TypeAlias

import structlog

from tflayerctl.domain.errors import GuardrailViolation
from tflayerctl.domain.matrix import WorkItem
from tflayerctl.domain.types import ItemStatus, Operation
from tflayerctl.infrastructure.filesystem import layer_dir, var_file
from tflayerctl.infrastructure.terraform import (
    PLAN_CHANGES,
    FailureKind,
    TerraformError,
    TerraformRun,
    TerraformRunner,
    tail,
)
from tflayerctl.services.base import BaseService
from tflayerctl.services.result import ServiceResult, failure
from tflayerctl.services.telemetry import annotate, trace_span, traced

if TYPE_CHECKING:
    from tflayerctl.config.credentials import AzureCredentials
    from tflayerctl.config.settings import LayerCtlSettings
    from tflayerctl.domain.topology import LayerGraph

log = structlog.get_logger(__name__)

RunnerFactory: TypeAlias = Callable[[Path, Mapping[str, str]], TerraformRunner]


class ExecutorService(BaseService):
    """Executes work items; one Terraform runner per (layer, environment)."""

    def __init__(
        self,
        settings: LayerCtlSettings,
        *,
        graph: LayerGraph | None = None,
        credentials: AzureCredentials | None = None,
        runner_factory: RunnerFactory | None = None,
    ) -> None:
        super().__init__(settings, graph=graph, credentials=credentials)
        self._runner_factory = runner_factory or self._default_runner

    def _default_runner(self, working_dir: Path, env: Mapping[str, str]) -> TerraformRunner:
        tf = self.settings.terraform
        return TerraformRunner(working_dir, binary=tf.binary, env=env, timeout=tf.timeout)

    # ------------------------------------------------------------------
    # Input resolution
    # ------------------------------------------------------------------

    def backend_config(self, layer: str, environment: str) -> dict[str, str]:
        """``-backend-config`` pairs for the azurerm backend of one item."""
        creds = self.credentials
        backend = self.settings.backend
        return {
            "resource_group_name": creds.tf_state_resource_group,
            "storage_account_name": creds.tf_state_storage_account,
            "container_name": backend.container,
            "key": backend.key_template.format(layer=layer, environment=environment),
        }

    def _prepare(
        self, op: str, layer: str, environment: str
    ) -> tuple[TerraformRunner, Path] | ServiceResult:
        """Resolve inputs and build a runner, or return the failure result."""
        detail: dict[str, Any] = {"layer": layer, "environment": environment}
        if layer not in self.graph:
            return failure(op, "INVALID_LAYER", f"Unknown layer '{layer}'", detail=detail)
        if environment not in self.settings.environments.names:
            msg = f"Unknown environment '{environment}'"
            return failure(op, "INVALID_ENVIRONMENT", msg, detail=detail)

        paths = self.settings.paths
        directory = layer_dir(self.root, paths.layers_root, layer)
        if not directory.is_dir():
            msg = f"Layer directory not found: {directory}"
            return failure(op, "CONFIG_ERROR", msg, detail=detail)
        tfvars = var_file(self.root, paths.environments_root, environment, layer)
        if not tfvars.is_file():
            return failure(op, "CONFIG_ERROR", f"Variable file not found: {tfvars}", detail=detail)
        missing_state = self.credentials.missing_state()
        if missing_state:
            msg = f"Backend state location not configured; missing: {', '.join(missing_state)}"
            return failure(op, "CONFIG_ERROR", msg, detail={**detail, "missing": missing_state})
        missing_identity = self.credentials.missing_identity()
        if missing_identity:
            msg = f"Azure credentials missing: {', '.join(missing_identity)}"
            return failure(op, "AUTH_ERROR", msg, detail={**detail, "missing": missing_identity})

        env = self.credentials.terraform_env()
        env["TF_DATA_DIR"] = f".terraform-{environment}"
        runner = self._runner_factory(directory, env)
        return runner, tfvars

    def _plan_file(self, environment: str) -> str:
        return f"{self.settings.terraform.plan_file}-{environment}"

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @traced
    def execute(
        self,
        item: WorkItem,
        *,
        auto_approve: bool = False,
        skip_plan: bool = False,
        confirmation: str | None = None,
        reason: str | None = None,
    ) -> ServiceResult:
        """Run *item* and report its status.

        Without *auto_approve*, apply and destroy stop after the plan and
        report ``changes_pending``. *skip_plan* requires *auto_approve*.
        """
        op = item.operation.value
        bound = log.bind(layer=item.layer, environment=item.environment, operation=op)
        detail: dict[str, Any] = {
            "layer": item.layer,
            "environment": item.environment,
            "operation": op,
        }

        if item.operation is Operation.DESTROY:
            try:
                self.settings.destroy_guard().authorize(
                    [item.environment], confirmation=confirmation, reason=reason
                )
            except GuardrailViolation as exc:
                bound.warning("destroy.refused", rule=type(exc).__name__)
                rule = {**detail, "rule": type(exc).__name__}
                return failure(op, "GUARDRAIL_VIOLATION", str(exc), detail=rule)
        if skip_plan and item.operation is Operation.PLAN:
            msg = "--skip-plan cannot be used with plan"
            return failure(op, "INVALID_OPERATION", msg, detail=detail)
        if skip_plan and not auto_approve:
            msg = "--skip-plan requires --auto-approve"
            return failure(op, "INVALID_OPERATION", msg, detail=detail)

        prepared = self._prepare(op, item.layer, item.environment)
        if isinstance(prepared, ServiceResult):
            return prepared
        runner, tfvars = prepared

        outputs: list[str] = []

        def record(run: TerraformRun) -> TerraformRun:
            outputs.append(run.output)
            return run

        bound.info("item.start")
        try:
            with trace_span("init"):
                record(runner.init(self.backend_config(item.layer, item.environment)))
            status, changes, exit_code = self._run_operation(
                runner, item, tfvars, auto_approve=auto_approve, skip_plan=skip_plan, record=record
            )
        except TerraformError as exc:
            outputs.append(exc.output)
            return self._tool_failure(item, exc, "\n".join(outputs), bound)

        bound.info("item.complete", status=status.value)
        annotate(item=item.key, status=status.value)
        return ServiceResult(
            ok=True,
            op=op,
            data={
                **detail,
                "status": status.value,
                "changes_detected": changes,
                "changes_pending": status is ItemStatus.CHANGES_PENDING,
                "exit_code": exit_code,
                "output": tail("\n".join(outputs), self.settings.terraform.output_tail),
            },
        )

    def _run_operation(
        self,
        runner: TerraformRunner,
        item: WorkItem,
        tfvars: Path,
        *,
        auto_approve: bool,
        skip_plan: bool,
        record: Callable[[TerraformRun], TerraformRun],
    ) -> tuple[ItemStatus, bool | None, int]:
        """Return ``(status, changes_detected, last_exit_code)``."""
        destroy = item.operation is Operation.DESTROY
        done = ItemStatus.DESTROYED if destroy else ItemStatus.APPLIED

        if skip_plan:
            with trace_span("destroy" if destroy else "apply"):
                run = record(runner.destroy(tfvars) if destroy else runner.apply(tfvars))
            return done, None, run.return_code

        plan_file = self._plan_file(item.environment)
        with trace_span("plan", destroy=destroy):
            plan = record(runner.plan(tfvars, plan_file, destroy=destroy))
        changes = plan.return_code == PLAN_CHANGES
        if not changes:
            return ItemStatus.NO_CHANGES, False, plan.return_code
        if item.operation is Operation.PLAN or not auto_approve:
            return ItemStatus.CHANGES_PENDING, True, plan.return_code

        with trace_span("apply"):
            run = record(runner.apply_plan(plan_file))
        return done, True, run.return_code

    def _tool_failure(
        self, item: WorkItem, exc: TerraformError, output: str, bound: Any
    ) -> ServiceResult:
        op = item.operation.value
        text = tail(output, self.settings.terraform.output_tail)
        data: dict[str, Any] = {
            "layer": item.layer,
            "environment": item.environment,
            "operation": op,
            "exit_code": exc.return_code,
            "output": text,
        }

        if exc.kind is FailureKind.STALE_PLAN:
            bound.warning("item.replan_required")
            return ServiceResult(
                ok=True,
                op=op,
                data={
                    **data,
                    "status": ItemStatus.REPLAN_REQUIRED.value,
                    "changes_detected": True,
                    "changes_pending": True,
                },
                warnings=[
                    f"{item.key}: saved plan is stale (state changed since planning); re-run plan"
                ],
            )

        detail = {**data, "command": exc.command}
        if exc.kind is FailureKind.STATE_LOCKED:
            lock_id = exc.lock_id or "<lock-id>"
            detail["lock_id"] = exc.lock_id
            message = (
                f"State for {item.key} is locked (lock ID {lock_id}). If no other run holds it, "
                f"release it manually: tflayerctl unlock {item.layer} {item.environment} {lock_id}"
            )
        elif exc.kind is FailureKind.AUTH:
            message = f"Azure authentication failed for {item.key} during terraform {exc.command}"
        elif exc.kind is FailureKind.CONFIG:
            message = f"Terraform configuration error for {item.key} during terraform {exc.command}"
        else:
            message = f"terraform {exc.command} failed for {item.key}"
            if exc.return_code is None:
                message = f"{message}: {exc.output}"
        bound.error("item.failed", code=exc.kind.value, command=exc.command)
        failed = {**data, "status": ItemStatus.FAILED.value}
        return failure(op, exc.kind.value, message, detail=detail, data=failed)

    @traced
    def unlock(self, layer: str, environment: str, lock_id: str) -> ServiceResult:
        """Release a stuck state lock (operator-initiated only)."""
        detail = {"layer": layer, "environment": environment, "lock_id": lock_id}
        if not lock_id.strip():
            return failure("unlock", "INVALID_OPERATION", "A lock ID is required", detail=detail)
        prepared = self._prepare("unlock", layer, environment)
        if isinstance(prepared, ServiceResult):
            return prepared
        runner, _ = prepared
        try:
            init = runner.init(self.backend_config(layer, environment))
            run = runner.force_unlock(lock_id)
        except TerraformError as exc:
            return failure(
                "unlock",
                exc.kind.value,
                f"terraform {exc.command} failed while unlocking {layer}:{environment}",
                detail={**detail, "output": tail(exc.output, self.settings.terraform.output_tail)},
            )
        log.warning("state.unlocked", layer=layer, environment=environment, lock_id=lock_id)
        return ServiceResult(
            ok=True,
            op="unlock",
            data={
                **detail,
                "output": tail(f"{init.output}\n{run.output}", self.settings.terraform.output_tail),
            },
        )
