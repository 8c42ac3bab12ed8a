"""Azure CLI wrapper for state-storage bootstrap."""

from __future__ import annotations

import logging
import subprocess
from collections.abc import Sequence

logger = logging.getLogger(__name__)


class AzureCliError(Exception):
    """An ``az`` command failed or the Azure CLI is not installed."""

    def __init__(self, command: Sequence[str], message: str) -> None:
        self.command = list(command)
        self.message = message
        super().__init__(f"{' '.join(command)} failed: {message}")


class AzureCli:
    """Builds and runs the ``az`` commands that create remote state storage."""

    def __init__(self, binary: str = "az") -> None:
        self._binary = binary

    def group_create(self, name: str, location: str) -> list[str]:
        return [self._binary, "group", "create", "--name", name, "--location", location]

    def storage_account_create(self, name: str, resource_group: str, location: str) -> list[str]:
        return [
            self._binary,
            "storage",
            "account",
            "create",
            "--name",
            name,
            "--resource-group",
            resource_group,
            "--location",
            location,
            "--sku",
            "Standard_LRS",
            "--encryption-services",
            "blob",
            "--min-tls-version",
            "TLS1_2",
            "--allow-blob-public-access",
            "false",
        ]

    def container_create(self, name: str, account_name: str) -> list[str]:
        return [
            self._binary,
            "storage",
            "container",
            "create",
            "--name",
            name,
            "--account-name",
            account_name,
            "--auth-mode",
            "login",
        ]

    def run(self, command: Sequence[str]) -> str:
        """Execute one prepared command, returning its stdout."""
        logger.debug("Running: %s", " ".join(command))
        try:
            result = subprocess.run(
                [*command, "--output", "none", "--only-show-errors"],
                capture_output=True,
                text=True,
                check=False,
            )
        except FileNotFoundError as exc:
            raise AzureCliError(command, f"Azure CLI '{self._binary}' not found") from exc
        except OSError as exc:
            raise AzureCliError(command, f"Cannot run Azure CLI '{self._binary}': {exc}") from exc
        if result.returncode != 0:
            message = result.stderr.strip() or f"exit status {result.returncode}"
            raise AzureCliError(command, message)
        return result.stdout
