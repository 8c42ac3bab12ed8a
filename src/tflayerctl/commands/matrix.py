"""Command: build the deployment matrix."""

from __future__ import annotations

from typing import TYPE_CHECKING

import click

from tflayerctl.commands._base import LayerCommand
from tflayerctl.commands._options import github_output_path, layer_option, range_options
from tflayerctl.domain.types import Operation

if TYPE_CHECKING:
    from tflayerctl.commands._context import AppContext


@click.command(
    cls=LayerCommand,
    examples="""\
  tflayerctl matrix -e dev
  tflayerctl matrix -e all --operation apply --base origin/main
  tflayerctl matrix -e dev --layer networking
  tflayerctl matrix -e staging --operation destroy --confirm DESTROY --reason "sandbox teardown"
  tflayerctl --json matrix -e dev --base HEAD~1 --github-output""",
)
@click.option("-e", "--environment", required=True, help="Environment name or 'all'.")
@click.option(
    "-o",
    "--operation",
    type=click.Choice([op.value for op in Operation]),
    default=Operation.PLAN.value,
    show_default=True,
    help="Operation the matrix is built for.",
)
@layer_option()
@range_options
@click.option("--confirm", "confirmation", default=None, help="Destroy confirmation phrase.")
@click.option("--reason", default=None, help="Reason for a destroy.")
@click.option("--github-output", is_flag=True, help="Append matrix= to $GITHUB_OUTPUT.")
@click.pass_obj
def matrix(
    app: AppContext,
    environment: str,
    operation: str,
    layer: str,
    base: str | None,
    head: str,
    confirmation: str | None,
    reason: str | None,
    github_output: bool,
) -> None:
    """Expand changed layers and environments into ordered work items."""
    from tflayerctl.services.matrix import MatrixService

    svc = MatrixService(app.settings, graph=app.graph)
    app.emit(
        svc.build(
            None,
            environment,
            operation,
            layer,
            confirmation=confirmation,
            reason=reason,
            base=base,
            head=head,
            github_output=github_output_path(github_output),
        )
    )
