"""Option helpers shared by several commands."""

from __future__ import annotations

import os
from collections.abc import Callable
from pathlib import Path
from typing import Any, TypeVar

import click

_F = TypeVar("_F", bound=Callable[..., Any])

GITHUB_OUTPUT_VAR = "GITHUB_OUTPUT"


def github_output_path(enabled: bool) -> Path | None:
    """Resolve ``$GITHUB_OUTPUT`` when ``--github-output`` was passed."""
    if not enabled:
        return None
    value = os.environ.get(GITHUB_OUTPUT_VAR)
    if not value:
        raise click.UsageError(f"--github-output requires ${GITHUB_OUTPUT_VAR} to be set")
    return Path(value)


def layer_option(default: str = "all") -> Callable[[_F], _F]:
    return click.option(
        "-l", "--layer", default=default, show_default=True, help="Layer name or 'all'."
    )


def range_options(func: _F) -> _F:
    """``--base`` / ``--head`` revision range."""
    func = click.option(
        "--head", default="HEAD", show_default=True, help="Head revision of the change range."
    )(func)
    func = click.option(
        "--base", default=None, help="Base revision; only layers changed since it are selected."
    )(func)
    return func
