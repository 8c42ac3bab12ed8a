"""Click base classes: ``--examples`` and the exit-status epilog.

Pipelines copy command lines out of ``--examples`` rather than out of
``--help``, so examples stay out of the help text. Commands that can
leave Terraform changes unapplied document exit status 2 in their
help epilog.
"""

from __future__ import annotations

import textwrap
from typing import Any

import click

PENDING_EPILOG = (
    "Exit status: 0 when nothing is pending, 2 when changes were planned "
    "but not applied, 1 on failure."
)


def _show_examples(ctx: click.Context, _param: click.Parameter, value: bool) -> None:
    if not value or ctx.resilient_parsing:
        return
    examples = getattr(ctx.command, "examples", None) or ""
    click.echo(f"Examples for '{ctx.command_path}':\n")
    click.echo(textwrap.dedent(examples).strip("\n"))
    ctx.exit(0)


def _examples_option() -> click.Option:
    return click.Option(
        ["--examples"],
        is_flag=True,
        expose_value=False,
        is_eager=True,
        callback=_show_examples,
        help="Show copyable CI invocations and exit.",
    )


class _ExamplesMixin:
    """Stores ``examples`` and registers the eager flag when present."""

    params: list[click.Parameter]
    examples: str | None

    def _init_examples(self, examples: str | None) -> None:
        self.examples = examples
        if examples:
            self.params.append(_examples_option())


class LayerCommand(_ExamplesMixin, click.Command):
    """A command with optional ``examples`` and a pending-changes epilog.

    ``pending_exit=True`` marks commands whose exit status may be 2.
    """

    def __init__(
        self,
        *args: Any,
        examples: str | None = None,
        pending_exit: bool = False,
        **kwargs: Any,
    ) -> None:
        if pending_exit and not kwargs.get("epilog"):
            kwargs["epilog"] = PENDING_EPILOG
        super().__init__(*args, **kwargs)
        self._init_examples(examples)


class LayerGroup(_ExamplesMixin, click.Group):
    """Root group; subcommands default to :class:`LayerCommand`."""

    command_class = LayerCommand

    def __init__(self, *args: Any, examples: str | None = None, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self._init_examples(examples)
