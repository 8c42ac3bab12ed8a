"""ServiceResult and ServiceError — the contract every service returns.

INVARIANT: All service-layer operations return ServiceResult.
The CLI renders it; CI consumes its ``--json`` form.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class ServiceError(BaseModel):
    """Structured error payload within a ServiceResult."""

    model_config = {"frozen": True}

    code: str
    message: str
    detail: dict[str, Any] = Field(default_factory=dict)


class ServiceResult(BaseModel):
    """Universal return type for all service operations.

    Attributes:
        ok: Whether the operation succeeded.
        op: Name of the operation (e.g. ``"plan"``, ``"changes"``).
        data: Operation-specific payload.
        warnings: Non-fatal issues encountered during the operation.
        error: Structured error if ``ok`` is False.
        meta: Optional metadata (timing with ``--verbose``).
    """

    model_config = {"frozen": True}

    ok: bool
    op: str
    data: dict[str, Any] = Field(default_factory=dict)
    warnings: list[str] = Field(default_factory=list)
    error: ServiceError | None = None
    meta: dict[str, Any] | None = None

    @property
    def changes_pending(self) -> bool:
        """True when the operation found changes it did not apply."""
        return bool(self.data.get("changes_pending"))


def failure(
    op: str,
    code: str,
    message: str,
    *,
    detail: dict[str, Any] | None = None,
    data: dict[str, Any] | None = None,
    warnings: list[str] | None = None,
) -> ServiceResult:
    """Shorthand for a failed ServiceResult."""
    return ServiceResult(
        ok=False,
        op=op,
        data=data or {},
        warnings=warnings or [],
        error=ServiceError(code=code, message=message, detail=detail or {}),
    )
