"""Jinja2 template loading with per-repository override support."""

from __future__ import annotations

from pathlib import Path

from jinja2 import (
    BaseLoader,
    ChoiceLoader,
    Environment,
    FileSystemLoader,
    PackageLoader,
    StrictUndefined,
)


def build_template_environment(group: str, *, project_root: Path | None = None) -> Environment:
    """Build a Jinja2 environment with repository overrides before packaged defaults.

    Overrides are loaded from ``.tflayerctl/templates/<group>/`` and then the
    shared ``.tflayerctl/templates/`` root.
    """
    loaders: list[BaseLoader] = []
    if project_root is not None:
        template_root = project_root / ".tflayerctl" / "templates"
        loaders.append(FileSystemLoader([str(template_root / group), str(template_root)]))

    loaders.append(PackageLoader("tflayerctl", f"templates/{group}"))
    return Environment(
        loader=ChoiceLoader(loaders),
        keep_trailing_newline=True,
        undefined=StrictUndefined,
    )
