"""Destructive-action guardrails.

Checked by both the matrix builder and the executor so a destroy can
never reach Terraform without passing them. Checks are pure: they read
their inputs and raise, nothing else.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from tflayerctl.domain.errors import (
    ConfirmationMismatch,
    MissingDestroyReason,
    ProductionDestroyRefused,
)


@dataclass(frozen=True)
class DestroyGuard:
    """Policy for authorizing destroy requests.

    Attributes:
        production: Name of the environment that may never be destroyed.
        confirmation_phrase: Literal the operator must type, compared exactly.
    """

    production: str
    confirmation_phrase: str

    def authorize(
        self,
        environments: Iterable[str],
        *,
        confirmation: str | None,
        reason: str | None,
    ) -> None:
        """Raise a GuardrailViolation unless the destroy request is allowed.

        Production is checked first: it is refused regardless of the
        confirmation supplied.
        """
        targets = list(environments)
        if self.production in targets:
            msg = (
                f"Refusing to destroy the production environment '{self.production}'. "
                "Production teardown is not supported by this tool."
            )
            raise ProductionDestroyRefused(msg)
        if confirmation != self.confirmation_phrase:
            msg = f"Confirmation phrase must be exactly '{self.confirmation_phrase}'."
            raise ConfirmationMismatch(msg)
        if not reason or not reason.strip():
            msg = "A reason is required for destroy operations."
            raise MissingDestroyReason(msg)
