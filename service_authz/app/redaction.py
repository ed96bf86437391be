"""
Response redaction for restricted viewer actors.

Sensitive keys are masked wherever they appear in a payload; every other key,
and the shape of mappings and sequences, is left as it was.
"""

from typing import Any, Iterable, Mapping, Optional, Union, FrozenSet

from pydantic import BaseModel

from shared.logging import get_logger

from .policy.permissions import is_restricted_viewer
from .policy.tables import PolicyTables

logger = get_logger("authz.redaction")

REDACTION_SENTINEL = "[REDACTED]"

SENSITIVE_FIELDS: FrozenSet[str] = frozenset({
    # identity and contact
    "email",
    "phone",
    "address",
    "ssn",
    # account and routing numbers
    "account_number",
    "routing_number",
    # device and network identifiers
    "device_id",
    "ip_address",
    "user_agent",
    # line-item transaction detail
    "detailed_breakdown",
    "individual_amounts",
    "transaction_details",
})


def redact_value(data: Any, sensitive_fields: FrozenSet[str] = SENSITIVE_FIELDS,
                 sentinel: str = REDACTION_SENTINEL) -> Any:
    """Recursively mask sensitive keys, regardless of who is asking."""
    if isinstance(data, BaseModel):
        data = data.model_dump()

    if isinstance(data, Mapping):
        redacted = {}
        for key, value in data.items():
            if key in sensitive_fields:
                redacted[key] = sentinel
            else:
                redacted[key] = redact_value(value, sensitive_fields, sentinel)
        return redacted

    if isinstance(data, list):
        return [redact_value(item, sensitive_fields, sentinel) for item in data]

    if isinstance(data, tuple):
        items = [redact_value(item, sensitive_fields, sentinel) for item in data]
        if hasattr(data, "_fields"):
            return type(data)(*items)
        return tuple(items)

    return data


def redact(payload: Any, roles: Union[None, str, Iterable[Any]],
           tables: Optional[PolicyTables] = None) -> Any:
    """Redact ``payload`` for restricted viewers; identity for everyone else."""
    try:
        restricted = is_restricted_viewer(roles, tables)
    except TypeError as e:
        # Unreadable roles are treated as restricted.
        logger.warning("Redaction role check failed", error=str(e))
        restricted = True

    if not restricted:
        return payload
    return redact_value(payload)
