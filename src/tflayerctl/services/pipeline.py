"""PipelineService — resolve, build, and execute a matrix as a task graph.

Work items run on a thread pool. An item is submitted once every item it
depends on (same environment, transitively within the selected layers)
has succeeded. When an item fails, its dependents are reported as
skipped and never submitted; independent items keep running.
"""

from __future__ import annotations

import contextvars
from collections import Counter, deque
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from typing import TYPE_CHECKING, Any

import structlog

from tflayerctl.domain.changeset import ChangeSet
from tflayerctl.domain.errors import GuardrailViolation
from tflayerctl.domain.matrix import WorkItem
from tflayerctl.domain.types import ALL, PENDING_STATUSES, ItemStatus, Operation
from tflayerctl.infrastructure.git import GitError
from tflayerctl.services.base import BaseService
from tflayerctl.services.changes import ChangesService
from tflayerctl.services.executor import ExecutorService, RunnerFactory
from tflayerctl.services.matrix import InvalidSelection, MatrixService
from tflayerctl.services.result import ServiceResult, failure
from tflayerctl.services.telemetry import traced

if TYPE_CHECKING:
    from tflayerctl.config.credentials import AzureCredentials
    from tflayerctl.config.settings import LayerCtlSettings
    from tflayerctl.domain.topology import LayerGraph

log = structlog.get_logger(__name__)


class PipelineService(BaseService):
    """End-to-end plan/apply/destroy across layers and environments."""

    def __init__(
        self,
        settings: LayerCtlSettings,
        *,
        graph: LayerGraph | None = None,
        credentials: AzureCredentials | None = None,
        runner_factory: RunnerFactory | None = None,
    ) -> None:
        super().__init__(settings, graph=graph, credentials=credentials)
        shared = {"graph": self.graph, "credentials": credentials}
        self._changes = ChangesService(settings, **shared)
        self._matrix = MatrixService(settings, **shared)
        self._executor = ExecutorService(settings, runner_factory=runner_factory, **shared)

    @property
    def executor(self) -> ExecutorService:
        return self._executor

    @traced
    def run(
        self,
        operation: Operation | str,
        environment: str,
        layer: str = ALL,
        *,
        base: str | None = None,
        head: str = "HEAD",
        auto_approve: bool = False,
        skip_plan: bool = False,
        confirmation: str | None = None,
        reason: str | None = None,
        max_workers: int | None = None,
    ) -> ServiceResult:
        """Run *operation* for the selected layers and environments.

        Without *base* every layer is selected; with it only the layers the
        ``base..head`` range touched (plus the configured policies).
        """
        op_name = str(operation)
        warnings: list[str] = []
        change_set: ChangeSet | None = None
        try:
            self._matrix.preflight(operation, environment, confirmation=confirmation, reason=reason)
            if base is not None:
                change_set, change_warnings = self._changes.change_set(base, head)
                warnings.extend(change_warnings)
            items = self._matrix.work_items(
                change_set,
                environment,
                operation,
                layer,
                confirmation=confirmation,
                reason=reason,
            )
        except GitError as exc:
            return failure(op_name, "GIT_ERROR", str(exc), detail={"base": base, "head": head})
        except InvalidSelection as exc:
            return failure(op_name, exc.code, str(exc))
        except GuardrailViolation as exc:
            return failure(
                op_name,
                "GUARDRAIL_VIOLATION",
                str(exc),
                detail={"rule": type(exc).__name__, "environment": environment},
            )

        op = Operation(operation)
        if not items:
            warnings.append("No layers selected; nothing to do")
            return ServiceResult(
                ok=True, op=op.value, data=self._summary([], {}, op), warnings=warnings
            )

        outcomes = self._run_graph(
            items,
            reverse=op is Operation.DESTROY,
            max_workers=max_workers,
            auto_approve=auto_approve,
            skip_plan=skip_plan,
            confirmation=confirmation,
            reason=reason,
        )
        for item in items:
            warnings.extend(outcomes[item.key].warnings)

        data = self._summary(items, outcomes, op)
        failures: list[dict[str, Any]] = []
        for item in items:
            outcome = outcomes[item.key]
            if outcome.error is None or outcome.error.code == "SKIPPED":
                continue
            failures.append(
                {
                    "layer": item.layer,
                    "environment": item.environment,
                    "operation": op.value,
                    "code": outcome.error.code,
                    "message": outcome.error.message,
                    "output": outcome.data.get("output", ""),
                }
            )
        if failures:
            return failure(
                op.value,
                "PIPELINE_FAILED",
                f"{len(failures)} of {len(items)} work items failed",
                detail={"failures": failures},
                data=data,
                warnings=warnings,
            )
        return ServiceResult(ok=True, op=op.value, data=data, warnings=warnings)

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    def _dependencies(self, items: list[WorkItem], *, reverse: bool) -> dict[str, list[str]]:
        """Item key -> keys of the items that must succeed first."""
        layers_by_env: dict[str, list[str]] = {}
        for item in items:
            layers_by_env.setdefault(item.environment, []).append(item.layer)
        return {
            item.key: [
                f"{name}:{item.environment}"
                for name in self.graph.predecessors_within(
                    item.layer, layers_by_env[item.environment], reverse=reverse
                )
            ]
            for item in items
        }

    def _run_graph(
        self,
        items: list[WorkItem],
        *,
        reverse: bool,
        max_workers: int | None,
        **execute_kwargs: Any,
    ) -> dict[str, ServiceResult]:
        by_key = {item.key: item for item in items}
        deps = self._dependencies(items, reverse=reverse)
        dependents: dict[str, list[str]] = {key: [] for key in by_key}
        for key, upstream in deps.items():
            for name in upstream:
                dependents[name].append(key)
        pending = {key: len(upstream) for key, upstream in deps.items()}

        ready = deque(item.key for item in items if pending[item.key] == 0)
        outcomes: dict[str, ServiceResult] = {}
        workers = max_workers or self.settings.terraform.parallelism or max(1, len(self.graph))

        def skip(key: str, cause: str) -> None:
            for child in dependents[key]:
                if child in outcomes:
                    continue
                item = by_key[child]
                outcomes[child] = failure(
                    item.operation.value,
                    "SKIPPED",
                    f"Skipped because {cause} did not succeed",
                    data={
                        "layer": item.layer,
                        "environment": item.environment,
                        "operation": item.operation.value,
                        "status": ItemStatus.SKIPPED.value,
                    },
                )
                skip(child, cause)

        in_flight: dict[Future[ServiceResult], str] = {}
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="tflayerctl") as pool:
            while ready or in_flight:
                while ready:
                    key = ready.popleft()
                    if key in outcomes:
                        continue
                    ctx = contextvars.copy_context()
                    future = pool.submit(ctx.run, self._execute, by_key[key], execute_kwargs)
                    in_flight[future] = key

                if not in_flight:
                    break
                done, _ = wait(list(in_flight), return_when=FIRST_COMPLETED)
                for future in done:
                    key = in_flight.pop(future)
                    result = future.result()
                    outcomes[key] = result
                    if result.ok:
                        for child in dependents[key]:
                            pending[child] -= 1
                            if pending[child] == 0:
                                ready.append(child)
                    else:
                        skip(key, key)
        return outcomes

    def _execute(self, item: WorkItem, kwargs: dict[str, Any]) -> ServiceResult:
        structlog.contextvars.bind_contextvars(
            layer=item.layer, environment=item.environment, operation=item.operation.value
        )
        return self._executor.execute(item, **kwargs)

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    @staticmethod
    def _summary(
        items: list[WorkItem], outcomes: dict[str, ServiceResult], op: Operation
    ) -> dict[str, Any]:
        results: list[dict[str, Any]] = []
        for item in items:
            outcome = outcomes[item.key]
            entry: dict[str, Any] = {
                "layer": item.layer,
                "environment": item.environment,
                "operation": op.value,
                "status": outcome.data.get("status", ItemStatus.FAILED.value),
                "ok": outcome.ok,
            }
            if "changes_detected" in outcome.data:
                entry["changes_detected"] = outcome.data["changes_detected"]
            if outcome.error is not None:
                entry["code"] = outcome.error.code
                entry["message"] = outcome.error.message
            results.append(entry)

        counts = Counter(entry["status"] for entry in results)
        pending = any(ItemStatus(entry["status"]) in PENDING_STATUSES for entry in results)
        failed = [
            f"{entry['layer']}:{entry['environment']}"
            for entry in results
            if entry["status"] == ItemStatus.FAILED.value
        ]
        return {
            "operation": op.value,
            "results": results,
            "count": len(results),
            "counts": dict(sorted(counts.items())),
            "changes_pending": pending,
            "failed": failed,
        }
