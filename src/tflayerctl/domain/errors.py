"""Typed domain exceptions.

Services catch these and convert them into a failed ServiceResult;
they never escape to the CLI as tracebacks.
"""

from __future__ import annotations


class ConfigurationError(Exception):
    """Layer graph, environment list, or input files are invalid or missing."""


class GuardrailViolation(Exception):
    """A destructive request was refused before any external invocation."""


class ProductionDestroyRefused(GuardrailViolation):
    """Destroy targeted the production environment."""


class ConfirmationMismatch(GuardrailViolation):
    """The confirmation phrase was not exactly the required literal."""


class MissingDestroyReason(GuardrailViolation):
    """Destroy was requested without a reason."""
