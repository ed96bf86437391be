"""
Clearance gate.
"""

from typing import Any, Optional

from .models import ClearanceLevel, PolicyResult
from .tables import PolicyTables, get_policy_tables

CLEARANCE_PASSED = PolicyResult.allow("Clearance checks passed")


def meets_clearance(actual: Any, required: Any) -> bool:
    """``l1 < l2 < l3 < l4``; unrecognized values count as ``l1``."""
    return ClearanceLevel.parse(actual).rank >= ClearanceLevel.parse(required).rank


def clearance_denial(required: ClearanceLevel, reason: Optional[str] = None) -> PolicyResult:
    return PolicyResult.deny(
        reason or f"requires {required.value} clearance level",
        required_attributes=(f"clearance_level>={required.value}",),
    )


def evaluate_clearance(clearance_level: Any, resource: str, action: str,
                       tables: Optional[PolicyTables] = None) -> PolicyResult:
    """Compare the actor's clearance with the level the pair requires."""
    tables = tables or get_policy_tables()
    required = tables.required_clearance(resource, action)

    if meets_clearance(clearance_level, required):
        return CLEARANCE_PASSED

    return clearance_denial(required)
