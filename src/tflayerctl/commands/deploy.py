"""Commands: plan, apply, and destroy across layers and environments."""

from __future__ import annotations

from typing import TYPE_CHECKING

import click

from tflayerctl.commands._base import LayerCommand
from tflayerctl.commands._options import layer_option, range_options
from tflayerctl.domain.types import Operation

if TYPE_CHECKING:
    from tflayerctl.commands._context import AppContext

_environment = click.option("-e", "--environment", required=True, help="Environment name or 'all'.")
_max_workers = click.option(
    "--max-workers",
    type=click.IntRange(min=1),
    default=None,
    help="Concurrent work items (default: [terraform] parallelism or the layer count).",
)
_auto_approve = click.option(
    "--auto-approve", is_flag=True, help="Apply the saved plan instead of stopping after it."
)
_skip_plan = click.option(
    "--skip-plan", is_flag=True, help="Run without a saved plan (requires --auto-approve)."
)


def _run(app: AppContext, operation: Operation, **kwargs: object) -> None:
    from tflayerctl.services.pipeline import PipelineService

    svc = PipelineService(app.settings, graph=app.graph)
    app.emit(svc.run(operation, **kwargs))  # type: ignore[arg-type]


@click.command(
    cls=LayerCommand,
    pending_exit=True,
    examples="""\
  tflayerctl plan -e dev
  tflayerctl plan -e all --base origin/main
  tflayerctl plan -e dev --layer networking
  tflayerctl --json plan -e staging --max-workers 2""",
)
@_environment
@layer_option()
@range_options
@_max_workers
@click.pass_obj
def plan(
    app: AppContext,
    environment: str,
    layer: str,
    base: str | None,
    head: str,
    max_workers: int | None,
) -> None:
    """Plan the selected layers. Exits 2 when changes are detected."""
    _run(
        app,
        Operation.PLAN,
        environment=environment,
        layer=layer,
        base=base,
        head=head,
        max_workers=max_workers,
    )


@click.command(
    cls=LayerCommand,
    pending_exit=True,
    examples="""\
  tflayerctl apply -e dev
  tflayerctl apply -e dev --auto-approve
  tflayerctl apply -e staging --layer compute --auto-approve --skip-plan
  tflayerctl apply -e dev --base ${{ github.event.before }} --auto-approve""",
)
@_environment
@layer_option()
@range_options
@_auto_approve
@_skip_plan
@_max_workers
@click.pass_obj
def apply(
    app: AppContext,
    environment: str,
    layer: str,
    base: str | None,
    head: str,
    auto_approve: bool,
    skip_plan: bool,
    max_workers: int | None,
) -> None:
    """Plan and apply the selected layers in dependency order.

    Without --auto-approve the run stops after planning and exits 2 when
    changes are pending.
    """
    _run(
        app,
        Operation.APPLY,
        environment=environment,
        layer=layer,
        base=base,
        head=head,
        auto_approve=auto_approve,
        skip_plan=skip_plan,
        max_workers=max_workers,
    )


@click.command(
    cls=LayerCommand,
    pending_exit=True,
    examples="""\
  tflayerctl destroy -e dev --confirm DESTROY --reason "tear down feature sandbox"
  tflayerctl destroy -e staging --layer monitoring --confirm DESTROY --reason "rebuild" \\
      --auto-approve""",
)
@_environment
@layer_option()
@click.option(
    "--confirm", "confirmation", required=True, help="Type the confirmation phrase exactly."
)
@click.option("--reason", required=True, help="Why the environment is being destroyed.")
@_auto_approve
@_skip_plan
@_max_workers
@click.pass_obj
def destroy(
    app: AppContext,
    environment: str,
    layer: str,
    confirmation: str,
    reason: str,
    auto_approve: bool,
    skip_plan: bool,
    max_workers: int | None,
) -> None:
    """Destroy the selected layers, dependents first.

    The production environment is always refused.
    """
    _run(
        app,
        Operation.DESTROY,
        environment=environment,
        layer=layer,
        confirmation=confirmation,
        reason=reason,
        auto_approve=auto_approve,
        skip_plan=skip_plan,
        max_workers=max_workers,
    )
