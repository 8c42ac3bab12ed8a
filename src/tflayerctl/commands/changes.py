"""Command: detect which layers and modules a revision range touched."""

from __future__ import annotations

from typing import TYPE_CHECKING

import click

from tflayerctl.commands._base import LayerCommand
from tflayerctl.commands._options import github_output_path

if TYPE_CHECKING:
    from tflayerctl.commands._context import AppContext


@click.command(
    cls=LayerCommand,
    examples="""\
  tflayerctl changes --base origin/main
  tflayerctl changes --base ${{ github.event.before }} --head ${{ github.sha }} --github-output
  tflayerctl --json changes --base HEAD~1""",
)
@click.option("--base", default=None, help="Base revision (missing base selects every layer).")
@click.option("--head", default="HEAD", show_default=True, help="Head revision.")
@click.option("--github-output", is_flag=True, help="Append outputs to $GITHUB_OUTPUT.")
@click.pass_obj
def changes(app: AppContext, base: str | None, head: str, github_output: bool) -> None:
    """Resolve the layers and modules changed between two revisions."""
    from tflayerctl.services.changes import ChangesService

    svc = ChangesService(app.settings, graph=app.graph)
    app.emit(svc.resolve(base, head, github_output=github_output_path(github_output)))
