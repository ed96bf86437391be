"""
Role hierarchy resolution.
"""

from enum import Enum
from typing import Any, Iterable, Optional, FrozenSet, Tuple, Union

from .tables import PolicyTables, get_policy_tables


def role_name(role: Any) -> str:
    if isinstance(role, Enum):
        return str(role.value)
    return str(role)


def normalize_roles(roles: Union[None, str, Iterable[Any]]) -> Tuple[str, ...]:
    """Coerce caller-supplied roles into a tuple of role names.

    ``None`` yields no roles and a bare string is a single role.
    """
    if roles is None:
        return ()
    if isinstance(roles, (str, Enum)):
        return (role_name(roles),)
    return tuple(role_name(role) for role in roles if role is not None)


def expand_roles(roles: Union[None, str, Iterable[Any]],
                 tables: Optional[PolicyTables] = None) -> FrozenSet[str]:
    """Return the transitive closure of the declared roles."""
    tables = tables or get_policy_tables()
    expanded = set()
    for role in normalize_roles(roles):
        expanded |= tables.implied_roles(role)
    return frozenset(expanded)


def has_role(roles: Union[None, str, Iterable[Any]], required_role: Any,
             tables: Optional[PolicyTables] = None) -> bool:
    """True when ``required_role`` is held directly or through the hierarchy."""
    return role_name(required_role) in expand_roles(roles, tables)
