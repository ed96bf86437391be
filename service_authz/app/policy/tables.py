"""
Static policy tables for the Authorization Service.

The role implication graph, the grants table and the clearance requirement
table are compiled once into an immutable ``PolicyTables`` snapshot. Readers
take the module-level reference once per evaluation; a reload replaces the
whole reference and never mutates a published snapshot.
"""

import json
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, Any, Optional, Iterable, List, Mapping, FrozenSet, Tuple

from shared.errors import PolicyConfigurationError
from shared.logging import get_logger

from .models import Role, ClearanceLevel

logger = get_logger("authz.policy_tables")

WILDCARD = "*"

TOP_ROLE = Role.SUPER_ADMIN.value
RESTRICTED_VIEWER_ROLE = Role.INVESTOR_VIEW.value

# Higher roles inherit the grants of every role they imply.
DEFAULT_ROLE_HIERARCHY: Dict[str, List[str]] = {
    Role.SUPER_ADMIN.value: [
        Role.ADMIN.value,
        Role.CS_AGENT.value,
        Role.INVESTOR_VIEW.value,
        Role.BRANCH_MANAGER.value,
        Role.READ_ONLY.value,
    ],
    Role.ADMIN.value: [Role.CS_AGENT.value, Role.INVESTOR_VIEW.value, Role.READ_ONLY.value],
    Role.CS_AGENT.value: [Role.READ_ONLY.value],
    Role.INVESTOR_VIEW.value: [Role.READ_ONLY.value],
    Role.BRANCH_MANAGER.value: [Role.READ_ONLY.value],
    Role.READ_ONLY.value: [],
}

DEFAULT_ROLE_GRANTS: Dict[str, List[str]] = {
    Role.SUPER_ADMIN.value: ["*:*"],
    Role.ADMIN.value: [
        "cases:read",
        "cases:write",
        "cases:assign",
        "orders:read",
        "orders:export",
        "markets:read",
        "hedging:read",
        "hedging:write",
        "reserves:read",
        "accounting:read",
        "kpi:read",
        "audit:read",
        "governance:read",
        "governance:write",
        "branches:read",
        "health:read",
    ],
    Role.CS_AGENT.value: [
        "cases:read",
        "cases:write",
        "cases:assign",
        "orders:read",
        "branches:read",
        "health:read",
    ],
    Role.INVESTOR_VIEW.value: ["kpi:read:aggregated"],
    Role.BRANCH_MANAGER.value: [
        "cases:read:branch",
        "orders:read:branch",
        "branches:read:own",
        "health:read",
    ],
    Role.READ_ONLY.value: ["health:read"],
}

DEFAULT_CLEARANCE_REQUIREMENTS: Dict[str, str] = {
    "hedging:write": ClearanceLevel.L4.value,
    "audit:write": ClearanceLevel.L3.value,
    "reserves:write": ClearanceLevel.L3.value,
    "spending:write": ClearanceLevel.L3.value,
}

# Capability list for restricted viewers; kept outside the grants table.
RESTRICTED_VIEWER_ALLOWLIST: FrozenSet[Tuple[str, str]] = frozenset({
    ("kpi", "read:aggregated"),
})


@dataclass(frozen=True)
class PolicyTables:
    """Compiled, read-only policy snapshot."""
    closure: Mapping[str, FrozenSet[str]]
    grants: Mapping[str, FrozenSet[Tuple[str, str]]]
    clearance_requirements: Mapping[Tuple[str, str], ClearanceLevel]
    top_role: str = TOP_ROLE
    restricted_viewer_role: str = RESTRICTED_VIEWER_ROLE
    restricted_viewer_allowlist: FrozenSet[Tuple[str, str]] = field(
        default_factory=lambda: RESTRICTED_VIEWER_ALLOWLIST
    )

    def implied_roles(self, role: str) -> FrozenSet[str]:
        """Closure for a single role; unknown roles imply only themselves."""
        return self.closure.get(role, frozenset((role,)))

    def grants_for(self, role: str) -> FrozenSet[Tuple[str, str]]:
        return self.grants.get(role, frozenset())

    def required_clearance(self, resource: str, action: str) -> ClearanceLevel:
        return self.clearance_requirements.get((resource, action), ClearanceLevel.L1)


def parse_permission(pattern: str) -> Tuple[str, str]:
    """Split ``resource:action`` on the first colon.

    Actions may carry their own qualifiers (``read:branch``).
    """
    if not isinstance(pattern, str) or ":" not in pattern:
        raise PolicyConfigurationError(
            "Permission pattern must look like resource:action",
            details={"pattern": pattern},
        )
    resource, action = pattern.split(":", 1)
    if not resource or not action:
        raise PolicyConfigurationError(
            "Permission pattern has an empty resource or action",
            details={"pattern": pattern},
        )
    if resource == WILDCARD and action != WILDCARD:
        raise PolicyConfigurationError(
            "Global wildcard must be written as *:*",
            details={"pattern": pattern},
        )
    return resource, action


def _compile_closure(hierarchy: Mapping[str, Iterable[str]]) -> Dict[str, FrozenSet[str]]:
    closure: Dict[str, FrozenSet[str]] = {}
    visiting: List[str] = []

    def visit(role: str) -> FrozenSet[str]:
        if role in closure:
            return closure[role]
        if role in visiting:
            cycle = visiting[visiting.index(role):] + [role]
            raise PolicyConfigurationError(
                "Role hierarchy contains a cycle",
                details={"cycle": cycle},
            )
        visiting.append(role)
        implied = {role}
        for child in hierarchy.get(role, ()):
            implied |= visit(child)
        visiting.pop()
        closure[role] = frozenset(implied)
        return closure[role]

    for role in hierarchy:
        visit(role)
    return closure


def compile_policy(
    hierarchy: Optional[Mapping[str, Iterable[str]]] = None,
    grants: Optional[Mapping[str, Iterable[str]]] = None,
    clearance_requirements: Optional[Mapping[str, str]] = None,
) -> PolicyTables:
    """Compile raw tables into an immutable ``PolicyTables`` snapshot."""
    hierarchy = DEFAULT_ROLE_HIERARCHY if hierarchy is None else hierarchy
    grants = DEFAULT_ROLE_GRANTS if grants is None else grants
    if clearance_requirements is None:
        clearance_requirements = DEFAULT_CLEARANCE_REQUIREMENTS

    closure = _compile_closure(hierarchy)

    compiled_grants = {
        role: frozenset(parse_permission(pattern) for pattern in patterns)
        for role, patterns in grants.items()
    }

    compiled_clearance: Dict[Tuple[str, str], ClearanceLevel] = {}
    for pattern, level in clearance_requirements.items():
        try:
            compiled_clearance[parse_permission(pattern)] = ClearanceLevel(level)
        except ValueError:
            raise PolicyConfigurationError(
                "Unknown clearance level in requirement table",
                details={"pattern": pattern, "level": level},
            )

    return PolicyTables(
        closure=MappingProxyType(closure),
        grants=MappingProxyType(compiled_grants),
        clearance_requirements=MappingProxyType(compiled_clearance),
    )


def load_policy_file(path: str) -> PolicyTables:
    """Compile a JSON policy document.

    Recognized keys are ``hierarchy``, ``grants`` and
    ``clearance_requirements``; a missing key keeps the built-in table.
    """
    try:
        with open(path, "r", encoding="utf-8") as fh:
            document: Dict[str, Any] = json.load(fh)
    except (OSError, json.JSONDecodeError) as e:
        raise PolicyConfigurationError(
            "Unable to read policy file",
            details={"path": path, "error": str(e)},
        )

    if not isinstance(document, dict):
        raise PolicyConfigurationError("Policy file must contain a JSON object", details={"path": path})

    tables = compile_policy(
        hierarchy=document.get("hierarchy"),
        grants=document.get("grants"),
        clearance_requirements=document.get("clearance_requirements"),
    )
    logger.info(
        "Policy file compiled",
        path=path,
        roles=len(tables.closure),
        granted_roles=len(tables.grants),
    )
    return tables


_active_tables: PolicyTables = compile_policy()


def get_policy_tables() -> PolicyTables:
    """Return the currently published policy snapshot."""
    return _active_tables


def install_policy_tables(tables: PolicyTables) -> PolicyTables:
    """Atomically publish a new snapshot and return the previous one."""
    global _active_tables
    if not isinstance(tables, PolicyTables):
        raise PolicyConfigurationError("install_policy_tables expects a compiled PolicyTables")
    previous = _active_tables
    _active_tables = tables
    logger.info("Policy tables installed", roles=len(tables.closure))
    return previous


def reset_policy_tables() -> PolicyTables:
    """Publish the built-in tables again."""
    return install_policy_tables(compile_policy())


def load_configured_policy(config) -> PolicyTables:
    """Install the policy file named by ``config.policy_file``, if any."""
    if config.policy_file:
        install_policy_tables(load_policy_file(config.policy_file))
    return get_policy_tables()
