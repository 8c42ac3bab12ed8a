"""Unified settings — CLI flags, env vars, and TOML config in one object.

Priority chain (highest to lowest):
  1. Init kwargs  — CLI flags passed by Click
  2. Env vars     — ``TFLAYERCTL_*`` prefix
  3. TOML file    — ``tflayerctl.toml`` discovered via walk-up
  4. Code defaults — baked into the section models

Uses Pydantic Settings v2 with a custom :class:`TomlSettingsSource` that
reuses the ``find_config`` walk-up discovery from
:mod:`tflayerctl.config.discovery`.
"""

from __future__ import annotations

import threading
import tomllib
from pathlib import Path
from typing import Any

from pydantic import Field
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource

from tflayerctl.config.discovery import find_config
from tflayerctl.config.models import (
    BackendConfig,
    DestroyConfig,
    EnvironmentsConfig,
    LayerConfig,
    MatrixConfig,
    PathsConfig,
    TagsConfig,
    TerraformConfig,
    _default_layers,
)
from tflayerctl.domain.guardrails import DestroyGuard
from tflayerctl.domain.topology import LayerGraph


class TomlSettingsSource(PydanticBaseSettingsSource):
    """Read settings from a ``tflayerctl.toml`` file discovered via walk-up."""

    def __init__(self, settings_cls: type[BaseSettings], toml_path: Path | None) -> None:
        super().__init__(settings_cls)
        self._data: dict[str, Any] = {}
        if toml_path and toml_path.is_file():
            raw = toml_path.read_text(encoding="utf-8")
            try:
                self._data = tomllib.loads(raw)
            except tomllib.TOMLDecodeError as exc:
                import click

                msg = f"Invalid TOML in {toml_path}: {exc}"
                raise click.ClickException(msg) from exc

    def get_field_value(self, field: Any, field_name: str) -> tuple[Any, str, bool]:
        """Return ``(value, field_name, value_is_complex)``."""
        val = self._data.get(field_name)
        return val, field_name, field_name in self._data

    def __call__(self) -> dict[str, Any]:
        """Return the full TOML data dict for Pydantic to merge."""
        return self._data


# Thread-local storage for TOML path during construction.
_tls = threading.local()


class LayerCtlSettings(BaseSettings):
    """Unified settings for the entire tflayerctl CLI.

    Merges CLI flags, environment variables, TOML config sections,
    and code-baked defaults into a single frozen object.  Stored on the
    :class:`~tflayerctl.commands._context.AppContext` at the CLI root.

    Attributes:
        project_root: Repository root (parent of ``tflayerctl.toml``,
            or CWD if no config found). All configured paths are
            relative to it.
        config_path: The TOML file in use, or None.
    """

    model_config = {
        "frozen": True,
        "env_prefix": "TFLAYERCTL_",
        "env_nested_delimiter": "__",
    }

    # --- Resolved path (not in TOML, derived from config location) ---
    project_root: Path = Field(default_factory=Path.cwd)
    config_path: Path | None = None

    # --- CLI flags ---
    json_output: bool = False
    quiet: bool = False
    verbose: bool = False
    log_json: bool = False

    # --- TOML sections ---
    paths: PathsConfig = Field(default_factory=PathsConfig)
    layers: dict[str, LayerConfig] = Field(default_factory=_default_layers)
    environments: EnvironmentsConfig = Field(default_factory=EnvironmentsConfig)
    terraform: TerraformConfig = Field(default_factory=TerraformConfig)
    backend: BackendConfig = Field(default_factory=BackendConfig)
    destroy: DestroyConfig = Field(default_factory=DestroyConfig)
    matrix: MatrixConfig = Field(default_factory=MatrixConfig)
    tags: TagsConfig = Field(default_factory=TagsConfig)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Insert TOML source between env vars and defaults."""
        toml_path = getattr(_tls, "toml_path", None)
        return (
            init_settings,
            env_settings,
            TomlSettingsSource(settings_cls, toml_path),
        )

    @classmethod
    def from_cli(
        cls,
        *,
        config_path: str | None = None,
        project_root: Path | None = None,
        **cli_flags: Any,
    ) -> LayerCtlSettings:
        """Construct settings from CLI invocation.

        Discovers ``tflayerctl.toml`` via walk-up (or explicit *config_path*),
        resolves *project_root* from the config file's parent directory,
        and merges CLI flags as highest-priority overrides.
        """
        toml_path: Path | None = None
        if config_path:
            p = Path(config_path)
            if p.is_file():
                toml_path = p
        else:
            toml_path = find_config(project_root)
        if toml_path is not None:
            # Terraform runs inside layer directories, so every path handed
            # to it must be absolute.
            toml_path = toml_path.resolve()

        resolved_root = project_root
        if resolved_root is None:
            resolved_root = toml_path.parent if toml_path else Path.cwd()
        resolved_root = resolved_root.resolve()

        _tls.toml_path = toml_path
        try:
            return cls(
                project_root=resolved_root,
                config_path=toml_path,
                **cli_flags,
            )
        finally:
            _tls.toml_path = None

    # ------------------------------------------------------------------
    # Derived runtime objects
    # ------------------------------------------------------------------

    def layer_graph(self) -> LayerGraph:
        """Build the immutable layer dependency graph."""
        return LayerGraph({name: cfg.depends_on for name, cfg in self.layers.items()})

    def destroy_guard(self) -> DestroyGuard:
        return DestroyGuard(
            production=self.environments.production,
            confirmation_phrase=self.destroy.confirmation_phrase,
        )
