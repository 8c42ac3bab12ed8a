"""Operation and status enums shared across the domain."""

from __future__ import annotations

from enum import StrEnum

# Selector value meaning "every configured layer" / "every environment".
ALL = "all"


class Operation(StrEnum):
    """Terraform operations a work item can carry."""

    PLAN = "plan"
    APPLY = "apply"
    DESTROY = "destroy"


class ItemStatus(StrEnum):
    """Outcome of executing a single work item."""

    NO_CHANGES = "no_changes"
    CHANGES_PENDING = "changes_pending"
    APPLIED = "applied"
    DESTROYED = "destroyed"
    REPLAN_REQUIRED = "replan_required"
    FAILED = "failed"
    SKIPPED = "skipped"


class ForceReason(StrEnum):
    """Why a change set was widened to every layer."""

    WORKFLOWS_CHANGED = "workflows_changed"
    BASE_MISSING = "base_missing"


# Statuses that mean "something would change but was not applied".
PENDING_STATUSES = frozenset({ItemStatus.CHANGES_PENDING, ItemStatus.REPLAN_REQUIRED})
