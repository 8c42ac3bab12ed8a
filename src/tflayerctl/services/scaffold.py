"""ScaffoldService — environment variable files and remote state storage.

``scaffold`` renders one ``<env>/<layer>.tfvars`` per environment and
layer from a Jinja2 template. ``bootstrap`` creates the resource group,
storage account, and blob container that hold Terraform state.
"""

from __future__ import annotations

import re
import time
from collections.abc import Sequence
from typing import TYPE_CHECKING, Any

import structlog
from jinja2 import TemplateError

from tflayerctl.infrastructure.azure import AzureCli, AzureCliError
from tflayerctl.infrastructure.filesystem import var_file
from tflayerctl.infrastructure.templates import build_template_environment
from tflayerctl.services.base import BaseService
from tflayerctl.services.result import ServiceResult, failure
from tflayerctl.services.telemetry import traced

if TYPE_CHECKING:
    from tflayerctl.config.credentials import AzureCredentials
    from tflayerctl.config.settings import LayerCtlSettings
    from tflayerctl.domain.topology import LayerGraph

log = structlog.get_logger(__name__)

TFVARS_TEMPLATE = "layer.tfvars.j2"
DEFAULT_STATE_RESOURCE_GROUP = "rg-terraform-state"

# Azure storage account names: 3-24 characters, lowercase letters and digits.
_STORAGE_ACCOUNT_NAME = re.compile(r"^[a-z0-9]{3,24}$")


def generate_storage_account_name(prefix: str = "tfstate") -> str:
    """``tfstate`` plus the last six digits of the current epoch second."""
    return f"{prefix}{int(time.time()) % 1_000_000:06d}"


class ScaffoldService(BaseService):
    """Creates the files and Azure resources a new repository needs."""

    def __init__(
        self,
        settings: LayerCtlSettings,
        *,
        graph: LayerGraph | None = None,
        credentials: AzureCredentials | None = None,
        azure: AzureCli | None = None,
    ) -> None:
        super().__init__(settings, graph=graph, credentials=credentials)
        self._azure = azure or AzureCli()

    @traced
    def scaffold(
        self, environments: Sequence[str] | None = None, *, force: bool = False
    ) -> ServiceResult:
        """Write missing variable files (all of them with *force*)."""
        configured = self.settings.environments.names
        targets = list(environments) if environments else list(configured)
        unknown = [env for env in targets if env not in configured]
        if unknown:
            msg = f"Unknown environments: {unknown}. Known environments: {configured}"
            return failure("scaffold", "INVALID_ENVIRONMENT", msg)

        try:
            template = build_template_environment(
                "tfvars", project_root=self.root
            ).get_template(TFVARS_TEMPLATE)
        except TemplateError as exc:
            return failure("scaffold", "CONFIG_ERROR", f"Cannot load {TFVARS_TEMPLATE}: {exc}")

        created: list[str] = []
        skipped: list[str] = []
        for env in targets:
            for layer in self.graph.order:
                path = var_file(self.root, self.settings.paths.environments_root, env, layer)
                rel = str(path.relative_to(self.root))
                if path.exists() and not force:
                    skipped.append(rel)
                    continue
                try:
                    content = template.render(self._template_context(env, layer))
                except TemplateError as exc:
                    return failure(
                        "scaffold",
                        "CONFIG_ERROR",
                        f"Rendering {TFVARS_TEMPLATE} failed: {exc}",
                        data={"created": created, "skipped": skipped},
                    )
                path.parent.mkdir(parents=True, exist_ok=True)
                path.write_text(content, encoding="utf-8")
                created.append(rel)

        log.info("scaffold.complete", created=len(created), skipped=len(skipped))
        return ServiceResult(
            ok=True,
            op="scaffold",
            data={"created": created, "skipped": skipped, "count": len(created)},
        )

    def _template_context(self, environment: str, layer: str) -> dict[str, Any]:
        creds = self.credentials
        return {
            "environment": environment,
            "layer": layer,
            "location": self.settings.environments.location,
            "state_storage_account": creds.tf_state_storage_account,
            "state_resource_group": creds.tf_state_resource_group,
            "tags": self.settings.tags,
        }

    @traced
    def bootstrap(
        self,
        location: str | None = None,
        *,
        resource_group: str | None = None,
        storage_account: str | None = None,
        dry_run: bool = False,
    ) -> ServiceResult:
        """Create state storage with the Azure CLI (report only with *dry_run*)."""
        creds = self.credentials
        group = resource_group or creds.tf_state_resource_group or DEFAULT_STATE_RESOURCE_GROUP
        account = (
            storage_account or creds.tf_state_storage_account or generate_storage_account_name()
        )
        region = location or self.settings.environments.location
        container = self.settings.backend.container

        if not _STORAGE_ACCOUNT_NAME.match(account):
            msg = (
                f"Invalid storage account name '{account}': "
                "use 3-24 lowercase letters and digits"
            )
            return failure("bootstrap", "CONFIG_ERROR", msg)

        commands = [
            self._azure.group_create(group, region),
            self._azure.storage_account_create(account, group, region),
            self._azure.container_create(container, account),
        ]
        data: dict[str, Any] = {
            "resource_group": group,
            "storage_account": account,
            "container": container,
            "location": region,
            "commands": [" ".join(cmd) for cmd in commands],
            "dry_run": dry_run,
            "completed": 0,
        }

        warnings: list[str] = []
        if creds.tf_state_resource_group != group or creds.tf_state_storage_account != account:
            warnings.append(
                f"Set TF_STATE_RESOURCE_GROUP={group} and TF_STATE_STORAGE_ACCOUNT={account} "
                "in the pipeline secrets"
            )
        if dry_run:
            return ServiceResult(ok=True, op="bootstrap", data=data, warnings=warnings)

        for cmd in commands:
            try:
                self._azure.run(cmd)
            except AzureCliError as exc:
                return failure(
                    "bootstrap",
                    "AZ_ERROR",
                    exc.message,
                    detail={"command": " ".join(exc.command)},
                    data=data,
                    warnings=warnings,
                )
            data["completed"] += 1
            log.info("bootstrap.step", command=" ".join(cmd[:4]))

        return ServiceResult(ok=True, op="bootstrap", data=data, warnings=warnings)
