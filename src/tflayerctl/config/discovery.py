"""Locate ``tflayerctl.toml``.

Precedence: ``--config`` (handled by the caller), then the
``TFLAYERCTL_CONFIG`` environment variable, then a walk up from the
working directory. The walk stops at the enclosing git work tree so a
checkout nested inside another project never picks up the outer
project's file.
"""

from __future__ import annotations

import os
from pathlib import Path

CONFIG_FILENAME = "tflayerctl.toml"
CONFIG_ENV_VAR = "TFLAYERCTL_CONFIG"


def _candidates(start: Path) -> list[Path]:
    dirs: list[Path] = []
    for directory in (start, *start.parents):
        dirs.append(directory)
        if (directory / ".git").exists():
            break
    return dirs


def find_config(start: Path | None = None) -> Path | None:
    """Return the config file governing *start* (default: cwd), or None.

    A ``TFLAYERCTL_CONFIG`` that points at a missing file yields None
    rather than falling back to the walk.
    """
    override = os.environ.get(CONFIG_ENV_VAR)
    if override:
        path = Path(override)
        return path if path.is_file() else None

    for directory in _candidates((start or Path.cwd()).resolve()):
        candidate = directory / CONFIG_FILENAME
        if candidate.is_file():
            return candidate
    return None
