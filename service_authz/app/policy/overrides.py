"""
Resource override rules.

Hard-coded exceptions evaluated after the grant, scope and clearance stages.
They can only narrow a decision; none of them grants access.
"""

from dataclasses import dataclass
from typing import Callable, Optional, FrozenSet, Tuple

from .clearance import clearance_denial, meets_clearance
from .models import ClearanceLevel, PolicyResult, UserAttributes
from .tables import PolicyTables, get_policy_tables

OVERRIDES_PASSED = PolicyResult.allow("Override rules passed")


@dataclass(frozen=True)
class OverrideInput:
    """Everything an override rule may look at."""
    declared_roles: Tuple[str, ...]
    expanded_roles: FrozenSet[str]
    attributes: UserAttributes
    resource: str
    action: str
    tables: PolicyTables

    @property
    def verb(self) -> str:
        return self.action.split(":", 1)[0]


@dataclass(frozen=True)
class OverrideRule:
    """A resource-specific veto."""
    rule_id: str
    resource: str
    check: Callable[[OverrideInput], Optional[PolicyResult]]
    verb: Optional[str] = None

    def applies_to(self, request: OverrideInput) -> bool:
        if self.resource != request.resource:
            return False
        return self.verb is None or self.verb == request.verb


def _governance_write_requires_top_role(request: OverrideInput) -> Optional[PolicyResult]:
    if request.tables.top_role in request.declared_roles:
        return None
    return PolicyResult.deny(
        "Governance write requires super admin role",
        required_attributes=(f"role={request.tables.top_role}",),
    )


def _hedging_write_requires_l4(request: OverrideInput) -> Optional[PolicyResult]:
    if meets_clearance(request.attributes.clearance_level, ClearanceLevel.L4):
        return None
    return clearance_denial(ClearanceLevel.L4, "Hedging write requires l4 clearance level")


def _kpi_restricted_viewer_aggregated_only(request: OverrideInput) -> Optional[PolicyResult]:
    viewer = request.tables.restricted_viewer_role
    if viewer not in request.declared_roles:
        return None
    if (request.resource, request.action) in request.tables.restricted_viewer_allowlist:
        return None
    permitted = sorted(
        action for resource, action in request.tables.restricted_viewer_allowlist
        if resource == request.resource
    )
    return PolicyResult.deny(
        f"Role {viewer} lacks permission for {request.resource}:{request.action}",
        required_attributes=tuple(f"action={action}" for action in permitted),
    )


DEFAULT_OVERRIDE_RULES: Tuple[OverrideRule, ...] = (
    OverrideRule(
        rule_id="governance-write-top-role",
        resource="governance",
        verb="write",
        check=_governance_write_requires_top_role,
    ),
    OverrideRule(
        rule_id="hedging-write-l4",
        resource="hedging",
        verb="write",
        check=_hedging_write_requires_l4,
    ),
    OverrideRule(
        rule_id="kpi-restricted-viewer-aggregated",
        resource="kpi",
        check=_kpi_restricted_viewer_aggregated_only,
    ),
)


def evaluate_overrides(declared_roles: Tuple[str, ...], expanded_roles: FrozenSet[str],
                       attributes: UserAttributes, resource: str, action: str,
                       tables: Optional[PolicyTables] = None,
                       rules: Tuple[OverrideRule, ...] = DEFAULT_OVERRIDE_RULES) -> PolicyResult:
    """Run every applicable override rule; the first veto wins."""
    request = OverrideInput(
        declared_roles=declared_roles,
        expanded_roles=expanded_roles,
        attributes=attributes,
        resource=resource,
        action=action,
        tables=tables or get_policy_tables(),
    )

    for rule in rules:
        if rule.applies_to(request):
            denial = rule.check(request)
            if denial is not None:
                return denial

    return OVERRIDES_PASSED
