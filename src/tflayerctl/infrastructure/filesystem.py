"""Repository layout: layer directories, variable files, module consumers.

All paths are resolved from the project root plus the configured
``[paths]`` roots. This module only reads the filesystem.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from pathlib import Path, PurePosixPath

logger = logging.getLogger(__name__)

_SOURCE = re.compile(r'^\s*source\s*=\s*"([^"]+)"', re.MULTILINE)

# Files every layer directory is expected to carry.
LAYER_FILES = ("main.tf", "variables.tf", "outputs.tf")


def layer_dir(project_root: Path, layers_root: str, layer: str) -> Path:
    return project_root / layers_root / layer


def var_file(project_root: Path, environments_root: str, environment: str, layer: str) -> Path:
    """``<environments_root>/<env>/<layer>.tfvars``."""
    return project_root / environments_root / environment / f"{layer}.tfvars"


def terraform_files(directory: Path) -> list[Path]:
    """Top-level ``*.tf`` files in *directory*, sorted."""
    if not directory.is_dir():
        return []
    return sorted(p for p in directory.glob("*.tf") if p.is_file())


def _module_name(source: str, modules_dirname: str) -> str | None:
    """The module a local ``source`` path points into, if any."""
    if not source.startswith((".", "/")):
        return None  # registry or remote module
    parts = PurePosixPath(source.split("//", 1)[0]).parts
    for idx, part in enumerate(parts[:-1]):
        if part == modules_dirname:
            return parts[idx + 1]
    return None


def referenced_modules(directory: Path, modules_root: str) -> set[str]:
    """Module names referenced via ``source = ".../<modules_root>/<name>"``."""
    modules_dirname = PurePosixPath(modules_root).name
    found: set[str] = set()
    for path in terraform_files(directory):
        text = path.read_text(encoding="utf-8")
        for source in _SOURCE.findall(text):
            name = _module_name(source, modules_dirname)
            if name:
                found.add(name)
    return found


def module_consumers(
    project_root: Path, layers_root: str, modules_root: str, layers: Iterable[str]
) -> dict[str, list[str]]:
    """Map each referenced module name to the layers whose ``.tf`` files source it."""
    consumers: dict[str, list[str]] = {}
    for layer in layers:
        directory = layer_dir(project_root, layers_root, layer)
        for module in sorted(referenced_modules(directory, modules_root)):
            consumers.setdefault(module, []).append(layer)
    logger.debug("Module consumers: %s", consumers)
    return consumers
