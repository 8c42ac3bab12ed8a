"""Pydantic configuration models with code-baked defaults.

Sparse TOML contract: defaults baked here, tflayerctl.toml only contains
overrides. A repository following the default layout needs no config
file at all.
"""

from __future__ import annotations

from string import Formatter

from pydantic import BaseModel, Field, field_validator, model_validator

from tflayerctl.domain.changeset import SourceRoots


class PathsConfig(BaseModel):
    """[paths] section — repository-relative roots."""

    model_config = {"frozen": True}

    layers_root: str = "layers"
    modules_root: str = "modules"
    environments_root: str = "environments"
    workflows_root: str = ".github/workflows"

    def source_roots(self) -> SourceRoots:
        return SourceRoots(
            layers=self.layers_root,
            modules=self.modules_root,
            environments=self.environments_root,
            workflows=self.workflows_root,
        )


class LayerConfig(BaseModel):
    """[layers.<name>] section."""

    model_config = {"frozen": True}

    depends_on: list[str] = Field(default_factory=list)


def _default_layers() -> dict[str, LayerConfig]:
    return {
        "networking": LayerConfig(),
        "security": LayerConfig(depends_on=["networking"]),
        "storage": LayerConfig(depends_on=["networking"]),
        "database": LayerConfig(depends_on=["security"]),
        "compute": LayerConfig(depends_on=["security", "storage"]),
        "monitoring": LayerConfig(depends_on=["security"]),
        "dns": LayerConfig(depends_on=["networking"]),
    }


class EnvironmentsConfig(BaseModel):
    """[environments] section."""

    model_config = {"frozen": True}

    names: list[str] = Field(default_factory=lambda: ["dev", "staging", "uat", "prod"])
    production: str = "prod"
    location: str = "East US 2"

    @model_validator(mode="after")
    def _check_names(self) -> EnvironmentsConfig:
        if not self.names:
            msg = "At least one environment must be configured"
            raise ValueError(msg)
        if len(set(self.names)) != len(self.names):
            msg = f"Duplicate environment names: {self.names}"
            raise ValueError(msg)
        if "all" in self.names:
            msg = "'all' is reserved and cannot be an environment name"
            raise ValueError(msg)
        if self.production not in self.names:
            msg = (
                f"Production environment '{self.production}' is not one of the "
                f"configured environments {self.names}"
            )
            raise ValueError(msg)
        return self


class TerraformConfig(BaseModel):
    """[terraform] section."""

    model_config = {"frozen": True}

    binary: str = "terraform"
    version: str | None = None
    timeout: int = 1800
    parallelism: int | None = None
    plan_file: str = "tfplan"
    output_tail: int = 4000


_KEY_FIELDS = frozenset({"layer", "environment"})


class BackendConfig(BaseModel):
    """[backend] section — azurerm state location per (layer, environment)."""

    model_config = {"frozen": True}

    container: str = "tfstate"
    key_template: str = "{environment}/{layer}.tfstate"

    @field_validator("key_template")
    @classmethod
    def _check_placeholders(cls, value: str) -> str:
        try:
            fields = {name for _, name, _, _ in Formatter().parse(value) if name is not None}
        except ValueError as exc:
            msg = f"Malformed key_template {value!r}: {exc}"
            raise ValueError(msg) from exc
        unknown = fields - _KEY_FIELDS
        if unknown:
            msg = (
                f"Unknown key_template placeholders: {sorted(unknown)}; "
                "use {layer} and {environment}"
            )
            raise ValueError(msg)
        if fields != _KEY_FIELDS:
            msg = "key_template must contain both {layer} and {environment}"
            raise ValueError(msg)
        return value


class DestroyConfig(BaseModel):
    """[destroy] section."""

    model_config = {"frozen": True}

    confirmation_phrase: str = "DESTROY"


class MatrixConfig(BaseModel):
    """[matrix] section."""

    model_config = {"frozen": True}

    cascade_dependents: bool = False
    module_consumers: bool = True


class TagsConfig(BaseModel):
    """[tags] section — default resource tags written by ``scaffold``."""

    model_config = {"frozen": True}

    owner: str = "platform-team"
    cost_center: str = "engineering"
    project: str = "terraform-azure-enterprise"
