"""
Policy evaluator: composes the role, grant, scope, clearance and override
stages into one deny-by-default decision.
"""

from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

from pydantic import ValidationError

from shared.logging import get_logger

from . import hierarchy, permissions
from .clearance import evaluate_clearance
from .models import PolicyResult, UserAttributes
from .overrides import DEFAULT_OVERRIDE_RULES, evaluate_overrides
from .scope import evaluate_scope
from .tables import PolicyTables, get_policy_tables

RoleInput = Union[None, str, Iterable[Any]]

EVALUATION_FAILED = PolicyResult.deny("Policy evaluation failed", deny_by_default=True)
ACCESS_GRANTED = PolicyResult.allow("Access granted after policy evaluation")


def coerce_attributes(attributes: Any) -> Optional[UserAttributes]:
    """Return validated attributes, or ``None`` when they are absent or malformed."""
    if isinstance(attributes, UserAttributes):
        return attributes
    if isinstance(attributes, Mapping):
        try:
            return UserAttributes.model_validate(dict(attributes))
        except ValidationError:
            return None
    return None


class PolicyEvaluator:
    """Deny-by-default policy evaluator.

    Bound to a fixed ``PolicyTables`` snapshot when one is given; otherwise it
    reads the published snapshot once at the start of every call.
    """

    def __init__(self, tables: Optional[PolicyTables] = None, override_rules=DEFAULT_OVERRIDE_RULES):
        self.logger = get_logger("authz.policy_evaluator")
        self._tables = tables
        self.override_rules = tuple(override_rules)

    @property
    def tables(self) -> PolicyTables:
        return self._tables or get_policy_tables()

    def evaluate(self, roles: RoleInput, attributes: Any, resource: str, action: str,
                 resource_context: Optional[Mapping[str, Any]] = None) -> PolicyResult:
        """Evaluate a request. Never raises; failures come back as denials."""
        try:
            tables = self.tables
            declared = hierarchy.normalize_roles(roles)
            expanded = hierarchy.expand_roles(declared, tables)

            user_attributes = coerce_attributes(attributes)
            if user_attributes is None:
                self.logger.warning(
                    "Policy evaluation rejected malformed attributes",
                    roles=list(declared),
                    resource=resource,
                    action=action,
                )
                return EVALUATION_FAILED

            if not isinstance(resource, str) or not isinstance(action, str) or not resource or not action:
                self.logger.warning("Policy evaluation rejected malformed target", resource=resource, action=action)
                return EVALUATION_FAILED

            if resource_context is not None and not isinstance(resource_context, Mapping):
                self.logger.warning("Policy evaluation rejected malformed resource context")
                return EVALUATION_FAILED

            # Grants
            if not permissions.has_permission(declared, resource, action, tables):
                return PolicyResult.deny(
                    f"Role {', '.join(declared) or '(none)'} lacks permission for {resource}:{action}",
                    deny_by_default=True,
                )

            # Scope
            scope_check = evaluate_scope(expanded, user_attributes, resource_context, tables)
            if not scope_check.allowed:
                return scope_check

            # Clearance
            clearance_check = evaluate_clearance(user_attributes.clearance_level, resource, action, tables)
            if not clearance_check.allowed:
                return clearance_check

            # Overrides
            override_check = evaluate_overrides(
                declared, expanded, user_attributes, resource, action, tables, self.override_rules
            )
            if not override_check.allowed:
                return override_check

            self.logger.debug(
                "Policy evaluation result",
                roles=list(declared),
                resource=resource,
                action=action,
                org_id=user_attributes.org_id,
                access_scope=user_attributes.access_scope.value,
                allowed=True,
            )
            return ACCESS_GRANTED

        except Exception as e:
            self.logger.error("Policy evaluation error", error=str(e), resource=resource, action=action)
            return EVALUATION_FAILED

    def has_role(self, roles: RoleInput, required_role: Any) -> bool:
        try:
            return hierarchy.has_role(roles, required_role, self.tables)
        except Exception as e:
            self.logger.error("Role check error", error=str(e))
            return False

    def has_permission(self, roles: RoleInput, resource: str, action: str) -> bool:
        try:
            return permissions.has_permission(roles, resource, action, self.tables)
        except Exception as e:
            self.logger.error("Permission check error", error=str(e))
            return False

    def get_effective_permissions(self, roles: RoleInput, attributes: Any) -> List[str]:
        user_attributes = coerce_attributes(attributes)
        if user_attributes is None:
            return []
        try:
            return permissions.get_effective_permissions(roles, user_attributes, self.tables)
        except Exception as e:
            self.logger.error("Effective permission listing error", error=str(e))
            return []

    def get_engine_stats(self) -> Dict[str, Any]:
        """Summarize the snapshot this evaluator reads."""
        tables = self.tables
        return {
            "roles": sorted(tables.closure),
            "granted_roles": len(tables.grants),
            "total_grants": sum(len(grants) for grants in tables.grants.values()),
            "clearance_requirements": len(tables.clearance_requirements),
            "override_rules": [rule.rule_id for rule in self.override_rules],
        }


_default_evaluator = PolicyEvaluator()


def get_evaluator() -> PolicyEvaluator:
    return _default_evaluator


def evaluate(roles: RoleInput, attributes: Any, resource: str, action: str,
             resource_context: Optional[Mapping[str, Any]] = None) -> PolicyResult:
    return _default_evaluator.evaluate(roles, attributes, resource, action, resource_context)


def has_role(roles: RoleInput, required_role: Any) -> bool:
    return _default_evaluator.has_role(roles, required_role)


def has_permission(roles: RoleInput, resource: str, action: str) -> bool:
    """Grant-table check only; not an authoritative decision."""
    return _default_evaluator.has_permission(roles, resource, action)


def get_effective_permissions(roles: RoleInput, attributes: Any) -> List[str]:
    return _default_evaluator.get_effective_permissions(roles, attributes)
