"""ChangeSet — which layers and modules a revision range touched.

Attribution is pure: it receives repository-relative paths and the
configured roots, and never touches git or the filesystem. Each path is
attributed to the single root with the longest matching prefix.
"""

from __future__ import annotations

import json
from collections.abc import Collection, Iterable
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import Any

from pydantic import BaseModel, Field

from tflayerctl.domain.topology import LayerGraph
from tflayerctl.domain.types import ForceReason

_TFVARS_SUFFIX = ".tfvars"


class ChangeSet(BaseModel):
    """Layers and modules touched between two revisions.

    Attributes:
        layers: Layer names with at least one changed file (all layers
            when ``forced``).
        modules: Module names with at least one changed file.
        forced: The "affects everything" flag: every layer is treated
            as changed.
        reason: Why ``forced`` is set, or None.
        files: Number of changed paths considered.
    """

    model_config = {"frozen": True}

    layers: frozenset[str] = Field(default_factory=frozenset)
    modules: frozenset[str] = Field(default_factory=frozenset)
    forced: bool = False
    reason: str | None = None
    files: int = 0

    @property
    def has_changes(self) -> bool:
        return self.forced or bool(self.layers) or bool(self.modules)

    def to_matrix(self, graph: LayerGraph) -> dict[str, list[str]]:
        """Flat matrix structure for a CI fan-out (layers in apply order)."""
        return {
            "layer": graph.sort(self.layers),
            "module": sorted(self.modules),
        }

    def to_data(self, graph: LayerGraph) -> dict[str, Any]:
        """Serializable payload used by the changes service."""
        matrix = self.to_matrix(graph)
        return {
            "layers": matrix["layer"],
            "modules": matrix["module"],
            "forced": self.forced,
            "reason": self.reason,
            "files": self.files,
            "has_changes": self.has_changes,
            "matrix": matrix,
        }

    def github_output_lines(self, graph: LayerGraph) -> list[str]:
        """``key=value`` lines for the ``$GITHUB_OUTPUT`` file."""
        matrix = self.to_matrix(graph)
        return [
            f"layers={json.dumps(matrix['layer'], separators=(',', ':'))}",
            f"modules={json.dumps(matrix['module'], separators=(',', ':'))}",
            f"affects_all={str(self.forced).lower()}",
            f"has_changes={str(self.has_changes).lower()}",
        ]


@dataclass(frozen=True)
class SourceRoots:
    """Repository-relative roots used for path attribution."""

    layers: str = "layers"
    modules: str = "modules"
    environments: str = "environments"
    workflows: str = ".github/workflows"

    def normalized(self) -> dict[str, str]:
        """Map root kind to a normalized POSIX prefix (no ``./``, no trailing ``/``)."""
        return {
            "layers": _normalize(self.layers),
            "modules": _normalize(self.modules),
            "environments": _normalize(self.environments),
            "workflows": _normalize(self.workflows),
        }


def _normalize(path: str) -> str:
    parts = PurePosixPath(path.replace("\\", "/")).parts
    return "/".join(p for p in parts if p not in (".", ""))


def _under(path: str, root: str) -> bool:
    if not root:
        return True
    return path == root or path.startswith(root + "/")


def longest_root(path: str, roots: dict[str, str]) -> str | None:
    """Return the kind of the root with the longest prefix matching *path*."""
    best: str | None = None
    best_len = -1
    for kind, root in roots.items():
        if _under(path, root) and len(root) > best_len:
            best, best_len = kind, len(root)
    return best


def attribute_changes(
    paths: Iterable[str],
    *,
    graph: LayerGraph,
    environments: Collection[str],
    roots: SourceRoots | None = None,
    forced_reason: ForceReason | None = None,
) -> tuple[ChangeSet, list[str]]:
    """Attribute changed *paths* to layers and modules.

    Returns the change set and a list of warnings for paths under the
    layers root that name an unknown layer. When *forced_reason* is
    given the set is forced regardless of the paths (used by the
    missing-base fallback).
    """
    prefixes = (roots or SourceRoots()).normalized()
    layers: set[str] = set()
    modules: set[str] = set()
    warnings: list[str] = []
    unknown: set[str] = set()
    reason = forced_reason
    count = 0

    for raw in paths:
        path = _normalize(raw)
        if not path:
            continue
        count += 1
        kind = longest_root(path, prefixes)
        if kind is None:
            continue
        rest = path[len(prefixes[kind]) :].lstrip("/").split("/")

        if kind == "workflows":
            reason = reason or ForceReason.WORKFLOWS_CHANGED
        elif kind == "layers":
            if len(rest) < 2:
                continue
            if rest[0] in graph:
                layers.add(rest[0])
            else:
                unknown.add(rest[0])
        elif kind == "modules":
            if len(rest) >= 2:
                modules.add(rest[0])
        elif kind == "environments":
            # <env>/<layer>.tfvars
            if len(rest) == 2 and rest[0] in environments and rest[1].endswith(_TFVARS_SUFFIX):
                stem = rest[1][: -len(_TFVARS_SUFFIX)]
                if stem in graph:
                    layers.add(stem)

    for name in sorted(unknown):
        warnings.append(f"Ignoring changes under unknown layer directory '{name}'")

    if reason is not None:
        layers = set(graph.names)

    change_set = ChangeSet(
        layers=frozenset(layers),
        modules=frozenset(modules),
        forced=reason is not None,
        reason=str(reason) if reason is not None else None,
        files=count,
    )
    return change_set, warnings
