"""LayerGraph — the fixed layer dependency graph as an immutable NetworkX DAG.

Built once from configuration at process start and passed to the
resolver, matrix builder, and pipeline. Edges point from a dependency
to its dependent (``networking -> security``), so a topological sort
is the apply order. Ties are broken by declaration order, which keeps
every ordering deterministic.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping, Sequence
from typing import TypeAlias

import networkx as nx

from tflayerctl.domain.errors import ConfigurationError
from tflayerctl.domain.types import ALL

_Graph: TypeAlias = nx.DiGraph


class LayerGraph:
    """Immutable dependency graph over the configured layers."""

    def __init__(self, dependencies: Mapping[str, Sequence[str]]) -> None:
        if not dependencies:
            msg = "At least one layer must be configured."
            raise ConfigurationError(msg)
        if ALL in dependencies:
            msg = f"'{ALL}' is reserved and cannot be a layer name."
            raise ConfigurationError(msg)

        self._rank: dict[str, int] = {name: i for i, name in enumerate(dependencies)}
        g: _Graph = nx.DiGraph()
        g.add_nodes_from(self._rank)

        for name, deps in dependencies.items():
            for dep in deps:
                if dep not in self._rank:
                    msg = (
                        f"Layer '{name}' depends on unknown layer '{dep}'. "
                        f"Known layers: {sorted(self._rank)}"
                    )
                    raise ConfigurationError(msg)
                if dep == name:
                    msg = f"Layer '{name}' cannot depend on itself."
                    raise ConfigurationError(msg)
                g.add_edge(dep, name)

        if not nx.is_directed_acyclic_graph(g):
            cycle = [edge[0] for edge in nx.find_cycle(g)]
            msg = f"Layer dependency cycle: {' -> '.join([*cycle, cycle[0]])}"
            raise ConfigurationError(msg)

        self._graph: _Graph = nx.freeze(g)
        # Reachability graph: keeps ordering constraints between selected
        # layers even when the layer in between is not selected.
        self._closure: _Graph = nx.freeze(nx.transitive_closure_dag(g))
        self._order: tuple[str, ...] = tuple(
            nx.lexicographical_topological_sort(g, key=self._rank.__getitem__)
        )
        self._position: dict[str, int] = {name: i for i, name in enumerate(self._order)}

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def __contains__(self, name: object) -> bool:
        return name in self._rank

    def __len__(self) -> int:
        return len(self._rank)

    def __iter__(self) -> Iterator[str]:
        return iter(self._order)

    @property
    def names(self) -> tuple[str, ...]:
        """Layer names in declaration order."""
        return tuple(self._rank)

    @property
    def order(self) -> tuple[str, ...]:
        """All layers in apply (topological) order."""
        return self._order

    def dependencies(self, name: str) -> list[str]:
        """Direct upstream dependencies of *name*."""
        return self._ranked(self._graph.predecessors(name))

    def dependents(self, name: str) -> list[str]:
        """Direct downstream dependents of *name*."""
        return self._ranked(self._graph.successors(name))

    def upstream(self, name: str) -> list[str]:
        """Every layer *name* transitively depends on."""
        return self._ranked(nx.ancestors(self._graph, name))

    def downstream(self, name: str) -> list[str]:
        """Every layer that transitively depends on *name*."""
        return self._ranked(nx.descendants(self._graph, name))

    # ------------------------------------------------------------------
    # Ordering
    # ------------------------------------------------------------------

    def sort(self, layers: Iterable[str]) -> list[str]:
        """Return *layers* in apply order. Unknown names raise ConfigurationError."""
        selected = set(layers)
        unknown = selected - set(self._rank)
        if unknown:
            msg = f"Unknown layers: {sorted(unknown)}. Known layers: {list(self._rank)}"
            raise ConfigurationError(msg)
        return [name for name in self._order if name in selected]

    def stages(self, layers: Iterable[str], *, reverse: bool = False) -> list[list[str]]:
        """Group *layers* into stages whose members may run concurrently.

        Stage *n* only contains layers whose selected predecessors all sit
        in earlier stages. With ``reverse=True`` the stages follow destroy
        order (dependents first).
        """
        selected = self.sort(layers)
        sub = self._closure.subgraph(selected)
        if reverse:
            sub = sub.reverse(copy=False)
        return [self._ranked(generation) for generation in nx.topological_generations(sub)]

    def predecessors_within(
        self, name: str, selected: Iterable[str], *, reverse: bool = False
    ) -> list[str]:
        """Layers in *selected* that must finish before *name* may start.

        For apply/plan these are its transitive dependencies; for destroy
        (``reverse=True``) they are its transitive dependents.
        """
        pool = set(selected)
        if reverse:
            related = self._closure.successors(name)
        else:
            related = self._closure.predecessors(name)
        return self._ranked(n for n in related if n in pool)

    def _ranked(self, names: Iterable[str]) -> list[str]:
        return sorted(names, key=self._position.__getitem__)
