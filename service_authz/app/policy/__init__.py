"""
Policy package.

Defines the static policy tables and the stages combined by the evaluator:

- models: Roles, clearance ladder, attributes and the PolicyResult value.
- tables: Compiled, read-only policy snapshot and its atomic reload.
- hierarchy: Role implication closure.
- permissions: Grant matching and the restricted viewer capability.
- scope, clearance, overrides: Attribute and resource-specific vetoes.
- evaluator: Deny-by-default orchestration.
"""

from .evaluator import (
    PolicyEvaluator,
    evaluate,
    get_effective_permissions,
    get_evaluator,
    has_permission,
    has_role,
)
from .models import AccessScope, Actor, ClearanceLevel, PolicyResult, RiskLevel, Role, UserAttributes
from .tables import PolicyTables, compile_policy, get_policy_tables, install_policy_tables

__all__ = [
    "AccessScope",
    "Actor",
    "ClearanceLevel",
    "PolicyEvaluator",
    "PolicyResult",
    "PolicyTables",
    "RiskLevel",
    "Role",
    "UserAttributes",
    "compile_policy",
    "evaluate",
    "get_effective_permissions",
    "get_evaluator",
    "get_policy_tables",
    "has_permission",
    "has_role",
    "install_policy_tables",
]
