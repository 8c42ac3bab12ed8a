"""Command: generate environment variable files."""

from __future__ import annotations

from typing import TYPE_CHECKING

import click

from tflayerctl.commands._base import LayerCommand

if TYPE_CHECKING:
    from tflayerctl.commands._context import AppContext


@click.command(
    cls=LayerCommand,
    examples="""\
  tflayerctl scaffold
  tflayerctl scaffold -e dev -e staging
  tflayerctl scaffold --force""",
)
@click.option("-e", "--environment", "environments", multiple=True, help="Limit to environment(s).")
@click.option("--force", is_flag=True, help="Overwrite existing variable files.")
@click.pass_obj
def scaffold(app: AppContext, environments: tuple[str, ...], force: bool) -> None:
    """Write <environment>/<layer>.tfvars files from the template."""
    from tflayerctl.services.scaffold import ScaffoldService

    svc = ScaffoldService(app.settings, graph=app.graph)
    app.emit(svc.scaffold(list(environments) or None, force=force))
