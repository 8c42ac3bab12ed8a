"""Command: repository readiness checks."""

from __future__ import annotations

from typing import TYPE_CHECKING

import click

from tflayerctl.commands._base import LayerCommand

if TYPE_CHECKING:
    from tflayerctl.commands._context import AppContext


@click.command(
    cls=LayerCommand,
    examples="""\
  tflayerctl check
  tflayerctl check --fmt
  tflayerctl --json check""",
)
@click.option("--fmt", is_flag=True, help="Also run terraform fmt -check in every layer.")
@click.pass_obj
def check(app: AppContext, fmt: bool) -> None:
    """Check layout, variable files, workflows, and credentials. Exits 1 on errors."""
    from tflayerctl.services.check import CheckService

    app.emit(CheckService(app.settings, graph=app.graph).check(fmt=fmt), fail_unhealthy=True)
