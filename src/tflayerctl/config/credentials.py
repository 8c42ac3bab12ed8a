"""Azure credentials and state-location values, read from the environment.

These are supplied out-of-band (CI secrets) and never come from
tflayerctl.toml. The secret is held as a SecretStr so it cannot leak
through ``repr`` or JSON output.
"""

from __future__ import annotations

from pydantic import SecretStr
from pydantic_settings import BaseSettings

IDENTITY_VARS = ("ARM_CLIENT_ID", "ARM_CLIENT_SECRET", "ARM_TENANT_ID", "ARM_SUBSCRIPTION_ID")
STATE_VARS = ("TF_STATE_STORAGE_ACCOUNT", "TF_STATE_RESOURCE_GROUP")


class AzureCredentials(BaseSettings):
    """Service principal identity plus the state storage location."""

    model_config = {"frozen": True, "extra": "ignore", "case_sensitive": False}

    arm_client_id: str = ""
    arm_client_secret: SecretStr = SecretStr("")
    arm_tenant_id: str = ""
    arm_subscription_id: str = ""
    tf_state_storage_account: str = ""
    tf_state_resource_group: str = ""

    def _value(self, var: str) -> str:
        value = getattr(self, var.lower())
        if isinstance(value, SecretStr):
            return value.get_secret_value()
        return value

    def missing_identity(self) -> list[str]:
        """Names of unset service principal variables."""
        return [var for var in IDENTITY_VARS if not self._value(var)]

    def missing_state(self) -> list[str]:
        """Names of unset state-location variables."""
        return [var for var in STATE_VARS if not self._value(var)]

    def terraform_env(self) -> dict[str, str]:
        """Environment variables the azurerm provider and backend read."""
        return {var: self._value(var) for var in IDENTITY_VARS if self._value(var)}
