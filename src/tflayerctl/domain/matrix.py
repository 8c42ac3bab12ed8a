"""WorkItem and the deployment matrix rules.

The matrix is an ordered list of (layer, environment, operation) items.
For plan/apply it follows the topological apply order with environments
as the inner loop; destroy goes through its own entry point, which
authorizes the request before producing the exact reverse of that order.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence

from pydantic import BaseModel

from tflayerctl.domain.changeset import ChangeSet
from tflayerctl.domain.errors import ConfigurationError
from tflayerctl.domain.guardrails import DestroyGuard
from tflayerctl.domain.topology import LayerGraph
from tflayerctl.domain.types import ALL, Operation


class WorkItem(BaseModel):
    """One unit of planned work."""

    model_config = {"frozen": True}

    layer: str
    environment: str
    operation: Operation

    @property
    def key(self) -> str:
        return f"{self.layer}:{self.environment}"


def resolve_environments(selector: str, configured: Sequence[str]) -> list[str]:
    """Expand an environment selector (a name or ``all``)."""
    if selector == ALL:
        return list(configured)
    if selector not in configured:
        msg = f"Unknown environment '{selector}'. Known environments: {list(configured)}"
        raise ConfigurationError(msg)
    return [selector]


def select_layers(
    change_set: ChangeSet,
    graph: LayerGraph,
    *,
    cascade_dependents: bool = False,
    module_consumers: Mapping[str, Iterable[str]] | None = None,
) -> list[str]:
    """Layers a change set asks to run, in apply order.

    * ``forced`` selects every layer.
    * *module_consumers* maps a module name to the layers that source it;
      a changed module selects its consumers.
    * With *cascade_dependents*, every layer downstream of a selected
      layer is selected too.
    """
    if change_set.forced:
        return list(graph.order)

    selected = set(change_set.layers)
    if module_consumers:
        for module in change_set.modules:
            selected.update(name for name in module_consumers.get(module, ()) if name in graph)
    if cascade_dependents:
        for name in list(selected):
            selected.update(graph.downstream(name))
    return graph.sort(selected)


def expand(
    layers: Sequence[str], environments: Sequence[str], operation: Operation
) -> list[WorkItem]:
    """Cross *layers* (already ordered) with *environments*."""
    return [
        WorkItem(layer=layer, environment=env, operation=operation)
        for layer in layers
        for env in environments
    ]


def build_matrix(
    change_set: ChangeSet,
    graph: LayerGraph,
    *,
    environments: Sequence[str],
    operation: Operation,
    layer: str = ALL,
    cascade_dependents: bool = False,
    module_consumers: Mapping[str, Iterable[str]] | None = None,
) -> list[WorkItem]:
    """Build the plan/apply matrix.

    A specific *layer* yields exactly one item per environment and ignores
    the change set; ordering against other layers is then the caller's job.
    """
    if operation is Operation.DESTROY:
        msg = "Destroy matrices must be built with build_destroy_matrix()."
        raise ValueError(msg)
    if layer != ALL:
        return expand(graph.sort([layer]), environments, operation)
    layers = select_layers(
        change_set,
        graph,
        cascade_dependents=cascade_dependents,
        module_consumers=module_consumers,
    )
    return expand(layers, environments, operation)


def build_destroy_matrix(
    change_set: ChangeSet,
    graph: LayerGraph,
    guard: DestroyGuard,
    *,
    environments: Sequence[str],
    confirmation: str | None,
    reason: str | None,
    layer: str = ALL,
    module_consumers: Mapping[str, Iterable[str]] | None = None,
) -> list[WorkItem]:
    """Build the destroy matrix: dependents before their dependencies.

    The guard runs before anything else, so a refused request produces
    no items at all.
    """
    guard.authorize(environments, confirmation=confirmation, reason=reason)
    if layer != ALL:
        layers = graph.sort([layer])
    else:
        layers = select_layers(change_set, graph, module_consumers=module_consumers)
    apply_order = expand(layers, environments, Operation.DESTROY)
    return list(reversed(apply_order))
