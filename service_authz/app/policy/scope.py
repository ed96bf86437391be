"""
Scope evaluation against the per-request resource context.

A context field that is absent (or ``None``) leaves that dimension
unconstrained. Callers serving scoped roles must populate the context.
"""

from typing import Any, Mapping, Optional, FrozenSet

from .models import AccessScope, PolicyResult, UserAttributes
from .tables import PolicyTables, get_policy_tables

SCOPE_PASSED = PolicyResult.allow("Scope checks passed")


def _mismatch(context: Mapping[str, Any], key: str, expected: Optional[str]) -> bool:
    value = context.get(key)
    if value is None:
        return False
    return expected is None or str(value) != expected


def evaluate_scope(expanded_roles: FrozenSet[str], attributes: UserAttributes,
                   resource_context: Optional[Mapping[str, Any]] = None,
                   tables: Optional[PolicyTables] = None) -> PolicyResult:
    """Check the actor's access scope; the first mismatch wins."""
    tables = tables or get_policy_tables()
    context = resource_context or {}
    scope = attributes.access_scope

    if scope == AccessScope.GLOBAL or tables.top_role in expanded_roles:
        return SCOPE_PASSED

    if scope == AccessScope.BRANCH:
        if _mismatch(context, "org_id", attributes.org_id):
            return PolicyResult.deny(
                "Branch-scoped access denied",
                required_attributes=(f"org_id={attributes.org_id}",),
            )
        if _mismatch(context, "branch_id", attributes.branch_id):
            return PolicyResult.deny(
                "Branch-scoped access denied for different branch",
                required_attributes=(f"branch_id={attributes.branch_id}",),
            )

    elif scope == AccessScope.REGIONAL:
        if _mismatch(context, "region", attributes.region):
            return PolicyResult.deny(
                "Regional access denied",
                required_attributes=(f"region={attributes.region}",),
            )

    elif scope == AccessScope.SELF:
        # Same organization check as branch scope; owners are narrowed upstream.
        if _mismatch(context, "org_id", attributes.org_id):
            return PolicyResult.deny(
                "Branch-scoped access denied",
                required_attributes=(f"org_id={attributes.org_id}",),
            )

    return SCOPE_PASSED
