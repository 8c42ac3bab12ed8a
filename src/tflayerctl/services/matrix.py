"""MatrixService — turns a change set into an ordered list of work items."""

from __future__ import annotations

import json
from pathlib import Path

from tflayerctl.domain.changeset import ChangeSet
from tflayerctl.domain.errors import ConfigurationError, GuardrailViolation
from tflayerctl.domain.matrix import (
    WorkItem,
    build_destroy_matrix,
    build_matrix,
    resolve_environments,
)
from tflayerctl.domain.types import ALL, Operation
from tflayerctl.infrastructure.filesystem import module_consumers
from tflayerctl.infrastructure.git import GitError
from tflayerctl.services.base import BaseService
from tflayerctl.services.changes import ChangesService
from tflayerctl.services.result import ServiceResult, failure
from tflayerctl.services.telemetry import traced


class InvalidSelection(ValueError):
    """An operation, layer, or environment selector is not recognized."""

    def __init__(self, code: str, message: str) -> None:
        self.code = code
        super().__init__(message)


class MatrixService(BaseService):
    """Builds plan/apply/destroy matrices with the configured policies."""

    def module_consumers(self) -> dict[str, list[str]] | None:
        """Module -> consuming layers, or None when the policy is off."""
        if not self.settings.matrix.module_consumers:
            return None
        paths = self.settings.paths
        return module_consumers(self.root, paths.layers_root, paths.modules_root, self.graph.names)

    def environments(self, selector: str) -> list[str]:
        try:
            return resolve_environments(selector, self.settings.environments.names)
        except ConfigurationError as exc:
            raise InvalidSelection("INVALID_ENVIRONMENT", str(exc)) from exc

    def operation(self, operation: Operation | str) -> Operation:
        try:
            return Operation(operation)
        except ValueError as exc:
            valid = [o.value for o in Operation]
            msg = f"Unknown operation '{operation}'. Expected one of: {valid}"
            raise InvalidSelection("INVALID_OPERATION", msg) from exc

    def preflight(
        self,
        operation: Operation | str,
        environment: str,
        *,
        confirmation: str | None = None,
        reason: str | None = None,
    ) -> Operation:
        """Validate a request before git or Terraform is touched.

        Destroy requests are authorized here, so a refused destroy makes
        no external call at all.
        """
        op = self.operation(operation)
        envs = self.environments(environment)
        if op is Operation.DESTROY:
            self.settings.destroy_guard().authorize(envs, confirmation=confirmation, reason=reason)
        return op

    def work_items(
        self,
        change_set: ChangeSet | None,
        environment: str,
        operation: Operation | str,
        layer: str = ALL,
        *,
        confirmation: str | None = None,
        reason: str | None = None,
    ) -> list[WorkItem]:
        """Ordered work items for the request.

        *change_set* None means "no change information": every layer is
        selected.

        Raises:
            InvalidSelection: Unknown operation, layer, or environment.
            GuardrailViolation: A destroy request was refused.
        """
        op = self.operation(operation)
        if layer != ALL and layer not in self.graph:
            msg = f"Unknown layer '{layer}'. Known layers: {list(self.graph.names)}"
            raise InvalidSelection("INVALID_LAYER", msg)
        envs = self.environments(environment)
        if change_set is None:
            change_set = ChangeSet(layers=frozenset(self.graph.names))

        consumers = self.module_consumers() if layer == ALL else None
        if op is Operation.DESTROY:
            return build_destroy_matrix(
                change_set,
                self.graph,
                self.settings.destroy_guard(),
                environments=envs,
                confirmation=confirmation,
                reason=reason,
                layer=layer,
                module_consumers=consumers,
            )
        return build_matrix(
            change_set,
            self.graph,
            environments=envs,
            operation=op,
            layer=layer,
            cascade_dependents=self.settings.matrix.cascade_dependents,
            module_consumers=consumers,
        )

    @traced
    def build(
        self,
        change_set: ChangeSet | None,
        environment: str,
        operation: Operation | str,
        layer: str = ALL,
        *,
        confirmation: str | None = None,
        reason: str | None = None,
        base: str | None = None,
        head: str = "HEAD",
        github_output: Path | None = None,
    ) -> ServiceResult:
        """Build the matrix and describe it (items, order, concurrent stages).

        With *base*, the change set is resolved from ``base..head`` first
        (overriding *change_set*). With *github_output*, ``matrix=`` and
        ``has_items=`` lines are appended to that file for a CI fan-out.
        """
        warnings: list[str] = []
        try:
            self.preflight(operation, environment, confirmation=confirmation, reason=reason)
            if base is not None:
                change_set, warnings = ChangesService(
                    self.settings, graph=self.graph, credentials=self._credentials
                ).change_set(base, head)
            items = self.work_items(
                change_set,
                environment,
                operation,
                layer,
                confirmation=confirmation,
                reason=reason,
            )
        except GitError as exc:
            return failure("matrix", "GIT_ERROR", str(exc), detail={"base": base, "head": head})
        except InvalidSelection as exc:
            return failure("matrix", exc.code, str(exc), warnings=warnings)
        except GuardrailViolation as exc:
            return failure(
                "matrix",
                "GUARDRAIL_VIOLATION",
                str(exc),
                detail={"rule": type(exc).__name__, "environment": environment},
                warnings=warnings,
            )

        op = Operation(operation)
        order = list(dict.fromkeys(item.layer for item in items))
        stages = self.graph.stages(order, reverse=op is Operation.DESTROY) if order else []
        include = [{"layer": i.layer, "environment": i.environment} for i in items]
        if github_output is not None:
            with github_output.open("a", encoding="utf-8") as fh:
                fh.write(f"matrix={json.dumps({'include': include}, separators=(',', ':'))}\n")
                fh.write(f"has_items={str(bool(items)).lower()}\n")
        return ServiceResult(
            ok=True,
            op="matrix",
            data={
                "operation": op.value,
                "environment": environment,
                "layer": layer,
                "items": [item.model_dump(mode="json") for item in items],
                "count": len(items),
                "order": order,
                "stages": stages,
                "include": include,
            },
            warnings=warnings,
        )

    @traced
    def layers(self) -> ServiceResult:
        """Describe the layer graph: apply order, dependencies, and stages."""
        items = [
            {
                "name": name,
                "position": position,
                "depends_on": self.graph.dependencies(name),
                "dependents": self.graph.dependents(name),
            }
            for position, name in enumerate(self.graph.order, start=1)
        ]
        return ServiceResult(
            ok=True,
            op="layers",
            data={
                "items": items,
                "count": len(items),
                "order": list(self.graph.order),
                "stages": self.graph.stages(self.graph.names),
                "environments": list(self.settings.environments.names),
                "production": self.settings.environments.production,
            },
        )
