"""
Authorization Service package for the Access Layer.

This package decides whether an authenticated actor may perform an action on
an admin terminal resource, and redacts responses for restricted viewers:

- app.policy: Static policy tables and the deny-by-default evaluator.
- app.redaction: Sensitive field masking for investor view actors.
- app.middleware: FastAPI dependencies that enforce decisions on routes.

Guidelines:
- Decisions are pure functions over an immutable policy snapshot.
- Denials are returned as PolicyResult values; only the middleware raises.
- Reload policy by installing a new snapshot, never by mutating one.
"""

from .policy import evaluate, get_effective_permissions, has_permission, has_role
from .redaction import redact

__all__ = ["evaluate", "get_effective_permissions", "has_permission", "has_role", "redact"]
