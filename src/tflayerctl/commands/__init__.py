"""Subcommand modules for tflayerctl.

Provides register_commands() which uses deferred imports to keep
``tflayerctl --help`` fast.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import click


def register_commands(cli: click.Group) -> None:
    """Register every command on the root CLI group."""
    # --- Change detection and planning ---
    from tflayerctl.commands.changes import changes
    from tflayerctl.commands.layers import layers
    from tflayerctl.commands.matrix import matrix

    cli.add_command(changes)
    cli.add_command(matrix)
    cli.add_command(layers)

    # --- Terraform operations ---
    from tflayerctl.commands.deploy import apply, destroy, plan
    from tflayerctl.commands.unlock import unlock

    cli.add_command(plan)
    cli.add_command(apply)
    cli.add_command(destroy)
    cli.add_command(unlock)

    # --- Repository setup ---
    from tflayerctl.commands.bootstrap import bootstrap
    from tflayerctl.commands.check import check
    from tflayerctl.commands.scaffold import scaffold

    cli.add_command(check)
    cli.add_command(scaffold)
    cli.add_command(bootstrap)
