"""Command: release a stuck Terraform state lock."""

from __future__ import annotations

from typing import TYPE_CHECKING

import click

from tflayerctl.commands._base import LayerCommand

if TYPE_CHECKING:
    from tflayerctl.commands._context import AppContext


@click.command(
    cls=LayerCommand,
    examples="""\
  tflayerctl unlock networking dev 6d3f1c2a-8b1e-4f0e-9a57-2c1d9e4b7a10""",
)
@click.argument("layer")
@click.argument("environment")
@click.argument("lock_id")
@click.pass_obj
def unlock(app: AppContext, layer: str, environment: str, lock_id: str) -> None:
    """Force-unlock the state of LAYER in ENVIRONMENT.

    Only run this when no other run holds the lock.
    """
    from tflayerctl.services.executor import ExecutorService

    app.emit(ExecutorService(app.settings, graph=app.graph).unlock(layer, environment, lock_id))
