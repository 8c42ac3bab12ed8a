"""AppContext — shared Click context for all commands.

Created once by the root CLI group and flows to all subcommands via
``@click.pass_obj``. Provides the lazily built layer graph and centralized
result emission (stdout/stderr routing + exit codes).
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import click

from tflayerctl.domain.errors import ConfigurationError
from tflayerctl.output.formatters import OutputSettings, format_result

if TYPE_CHECKING:
    from tflayerctl.config.settings import LayerCtlSettings
    from tflayerctl.domain.topology import LayerGraph
    from tflayerctl.services.result import ServiceResult

# Exit status for "succeeded, but changes were detected and not applied".
EXIT_CHANGES_PENDING = 2


class AppContext:
    """Shared context flowing through Click's command hierarchy.

    The layer graph is built on first use, so ``--help`` and ``--version``
    never read or validate the layer configuration.
    """

    def __init__(self, settings: LayerCtlSettings) -> None:
        self.settings = settings
        self._graph: LayerGraph | None = None

        from tflayerctl.config.logging import configure_logging

        configure_logging(verbose=settings.verbose, log_json=settings.log_json)

        if settings.verbose:
            from tflayerctl.services.telemetry import enable_telemetry

            enable_telemetry()

    @property
    def graph(self) -> LayerGraph:
        """The immutable layer graph (built once per process)."""
        if self._graph is None:
            try:
                self._graph = self.settings.layer_graph()
            except ConfigurationError as exc:
                raise click.ClickException(f"Invalid layer configuration: {exc}") from exc
        return self._graph

    def emit(self, result: ServiceResult, *, fail_unhealthy: bool = False) -> None:
        """Format and output a ServiceResult with correct exit semantics.

        * Success: writes to stdout. Warnings go to stderr so they don't
          pollute piped output. Exits 2 when changes were detected but
          not applied.
        * Failure: writes to stderr, exits 1.
        * With *fail_unhealthy*, a successful result whose data reports
          ``healthy: false`` also exits 1.
        """
        settings = OutputSettings(
            json_output=self.settings.json_output,
            quiet=self.settings.quiet,
            verbose=self.settings.verbose,
        )
        output = format_result(result, settings=settings)
        if not result.ok:
            click.echo(output, err=True)
            raise SystemExit(1)

        click.echo(output)
        # In JSON mode, warnings are already in the serialized payload.
        if not settings.json_output:
            for warning in result.warnings:
                click.echo(f"WARNING: {warning}", err=True)
        if fail_unhealthy and result.data.get("healthy") is False:
            raise SystemExit(1)
        if result.changes_pending:
            raise SystemExit(EXIT_CHANGES_PENDING)
