"""Root CLI group for tflayerctl with global flags and command registration."""

from __future__ import annotations

import click
from pydantic import ValidationError

from tflayerctl import __version__
from tflayerctl.commands import register_commands
from tflayerctl.commands._base import LayerGroup
from tflayerctl.commands._context import AppContext
from tflayerctl.config.settings import LayerCtlSettings


@click.group(
    cls=LayerGroup,
    invoke_without_command=True,
    examples="""\
  tflayerctl layers
  tflayerctl changes --base origin/main
  tflayerctl matrix -e dev --base origin/main
  tflayerctl plan -e dev
  tflayerctl apply -e dev --auto-approve""",
)
@click.version_option(version=__version__, prog_name="tflayerctl")
@click.option("--json", "json_output", is_flag=True, help="Structured JSON output.")
@click.option("-q", "--quiet", is_flag=True, help="Minimal output.")
@click.option("-v", "--verbose", is_flag=True, help="Detailed output with debug info.")
@click.option("--log-json", is_flag=True, help="Structured JSON log output to stderr.")
@click.option("-c", "--config", "config_path", default=None, help="Override config file path.")
@click.pass_context
def cli(
    ctx: click.Context,
    json_output: bool,
    quiet: bool,
    verbose: bool,
    log_json: bool,
    config_path: str | None,
) -> None:
    """tflayerctl — layered Terraform deployments across environments."""
    ctx.ensure_object(dict)
    try:
        settings = LayerCtlSettings.from_cli(
            config_path=config_path,
            json_output=json_output,
            quiet=quiet,
            verbose=verbose,
            log_json=log_json,
        )
    except ValidationError as exc:
        raise click.ClickException(f"Invalid configuration: {exc}") from exc
    ctx.obj = AppContext(settings)
    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


register_commands(cli)
