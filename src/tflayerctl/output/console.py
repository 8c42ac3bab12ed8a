"""Rich Console factory and theme for tflayerctl output.

Creates Console instances that render to a StringIO buffer, preserving
the ``format_result() -> str`` contract. In non-TTY environments (tests,
pipes, CI logs) Rich automatically disables color codes.
"""

from __future__ import annotations

from io import StringIO

from rich.console import Console
from rich.theme import Theme

TFL_THEME = Theme(
    {
        "tfl.ok": "bold green",
        "tfl.error": "bold red",
        "tfl.warning": "bold yellow",
        "tfl.op": "bold cyan",
        "tfl.key": "dim",
        "tfl.layer": "bold blue",
        "tfl.env": "magenta",
        "tfl.path": "dim",
        "tfl.status.no_changes": "dim",
        "tfl.status.changes_pending": "yellow",
        "tfl.status.applied": "green",
        "tfl.status.destroyed": "red",
        "tfl.status.replan_required": "bold yellow",
        "tfl.status.failed": "bold red",
        "tfl.status.skipped": "dim italic",
    }
)


def create_console(*, no_color: bool = False, width: int | None = None) -> Console:
    """Create a Console that renders to a StringIO buffer.

    Args:
        no_color: Disable ANSI escape codes (used in tests).
        width: Override terminal width (useful for consistent test output).
    """
    return Console(
        file=StringIO(),
        theme=TFL_THEME,
        no_color=no_color,
        highlight=False,
        width=width or 120,
    )


def get_output(console: Console) -> str:
    """Extract rendered text from a StringIO-backed Console."""
    assert isinstance(console.file, StringIO)
    return console.file.getvalue()


def style_for_status(status: str) -> str:
    """Return the Rich style name for an item status."""
    return f"tfl.status.{status}" if status else ""
