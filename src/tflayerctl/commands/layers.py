"""Command: show the layer dependency graph."""

from __future__ import annotations

from typing import TYPE_CHECKING

import click

from tflayerctl.commands._base import LayerCommand

if TYPE_CHECKING:
    from tflayerctl.commands._context import AppContext


@click.command(
    cls=LayerCommand,
    examples="""\
  tflayerctl layers
  tflayerctl -v layers
  tflayerctl --json layers""",
)
@click.pass_obj
def layers(app: AppContext) -> None:
    """List layers in apply order with their dependencies."""
    from tflayerctl.services.matrix import MatrixService

    app.emit(MatrixService(app.settings, graph=app.graph).layers())
