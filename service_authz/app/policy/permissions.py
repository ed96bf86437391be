"""
Coarse permission matching against the grants table.
"""

from typing import Any, Iterable, List, Optional, Union

from .hierarchy import expand_roles, normalize_roles
from .models import AccessScope, UserAttributes
from .tables import WILDCARD, PolicyTables, get_policy_tables

RoleInput = Union[None, str, Iterable[Any]]


def is_restricted_viewer(roles: RoleInput, tables: Optional[PolicyTables] = None) -> bool:
    """True when the actor directly holds the restricted viewer role.

    Roles that merely imply the restricted viewer (``admin``) are not capped.
    """
    tables = tables or get_policy_tables()
    return tables.restricted_viewer_role in normalize_roles(roles)


def restricted_viewer_allows(resource: str, action: str,
                             tables: Optional[PolicyTables] = None) -> bool:
    tables = tables or get_policy_tables()
    return (resource, action) in tables.restricted_viewer_allowlist


def grant_matches(grant, resource: str, action: str) -> bool:
    """Exact pair, then ``resource:*``, then ``*:*``."""
    granted_resource, granted_action = grant
    if granted_resource == resource and granted_action == action:
        return True
    if granted_resource == resource and granted_action == WILDCARD:
        return True
    return granted_resource == WILDCARD and granted_action == WILDCARD


def has_permission(roles: RoleInput, resource: str, action: str,
                   tables: Optional[PolicyTables] = None) -> bool:
    """Coarse grant check across the expanded role set.

    Necessary but not sufficient: scope, clearance and override rules are not
    consulted here.
    """
    tables = tables or get_policy_tables()

    if is_restricted_viewer(roles, tables) and not restricted_viewer_allows(resource, action, tables):
        return False

    for role in expand_roles(roles, tables):
        for grant in tables.grants_for(role):
            if grant_matches(grant, resource, action):
                return True

    return False


def get_effective_permissions(roles: RoleInput, attributes: UserAttributes,
                              tables: Optional[PolicyTables] = None) -> List[str]:
    """List the grant patterns an actor holds, qualified by access scope."""
    tables = tables or get_policy_tables()

    if is_restricted_viewer(roles, tables):
        patterns = {f"{resource}:{action}" for resource, action in tables.restricted_viewer_allowlist}
    else:
        patterns = {
            f"{resource}:{action}"
            for role in expand_roles(roles, tables)
            for resource, action in tables.grants_for(role)
        }

    suffix = None
    if attributes.access_scope == AccessScope.BRANCH:
        suffix = ":branch"
    elif attributes.access_scope == AccessScope.REGIONAL:
        suffix = ":regional"

    permissions = set()
    for pattern in patterns:
        if suffix and not pattern.endswith(WILDCARD) and suffix not in pattern:
            permissions.add(pattern + suffix)
        else:
            permissions.add(pattern)

    return sorted(permissions)
