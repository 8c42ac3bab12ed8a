"""Command: create remote state storage in Azure."""

from __future__ import annotations

from typing import TYPE_CHECKING

import click

from tflayerctl.commands._base import LayerCommand

if TYPE_CHECKING:
    from tflayerctl.commands._context import AppContext


@click.command(
    cls=LayerCommand,
    examples="""\
  tflayerctl bootstrap --dry-run
  tflayerctl bootstrap --location "West Europe"
  tflayerctl bootstrap --resource-group rg-tfstate --storage-account tfstate123456""",
)
@click.option("--location", default=None, help="Azure region (default: [environments] location).")
@click.option("--resource-group", default=None, help="State resource group name.")
@click.option("--storage-account", default=None, help="State storage account name.")
@click.option("--dry-run", is_flag=True, help="Print the az commands without running them.")
@click.pass_obj
def bootstrap(
    app: AppContext,
    location: str | None,
    resource_group: str | None,
    storage_account: str | None,
    dry_run: bool,
) -> None:
    """Create the resource group, storage account, and container for state."""
    from tflayerctl.services.scaffold import ScaffoldService

    svc = ScaffoldService(app.settings, graph=app.graph)
    app.emit(
        svc.bootstrap(
            location,
            resource_group=resource_group,
            storage_account=storage_account,
            dry_run=dry_run,
        )
    )
