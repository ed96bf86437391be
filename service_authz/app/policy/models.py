"""
Policy data models for the Authorization Service.
"""

from typing import Dict, Any, Optional, List, Tuple
from dataclasses import dataclass
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Role(str, Enum):
    """Admin terminal roles."""
    SUPER_ADMIN = "super_admin"
    ADMIN = "admin"
    CS_AGENT = "cs_agent"
    INVESTOR_VIEW = "investor_view"
    BRANCH_MANAGER = "branch_manager"
    READ_ONLY = "read_only"


class ClearanceLevel(str, Enum):
    """Ordered clearance ladder, ``l1`` lowest."""
    L1 = "l1"
    L2 = "l2"
    L3 = "l3"
    L4 = "l4"

    @property
    def rank(self) -> int:
        return int(self.value[1:])

    @classmethod
    def parse(cls, value: Any) -> "ClearanceLevel":
        """Parse a clearance value, falling back to ``l1`` when unrecognized."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return cls.L1


class AccessScope(str, Enum):
    """Breadth of resource instances an actor may act on."""
    SELF = "self"
    BRANCH = "branch"
    REGIONAL = "regional"
    GLOBAL = "global"


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class UserAttributes(BaseModel):
    """Per-actor attributes used by scope and clearance checks."""

    model_config = ConfigDict(frozen=True)

    org_id: str = Field(..., min_length=1, description="Organization the actor belongs to")
    region: Optional[str] = Field(None, description="Actor region")
    branch_id: Optional[str] = Field(None, description="Actor branch")
    risk_level: RiskLevel = Field(RiskLevel.HIGH, description="Actor risk level")
    clearance_level: ClearanceLevel = Field(ClearanceLevel.L1, description="Actor clearance level")
    access_scope: AccessScope = Field(AccessScope.SELF, description="Actor access scope")

    @field_validator("org_id")
    @classmethod
    def _org_id_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("org_id must not be blank")
        return value

    # Unknown or missing values fall back to the most restrictive setting.
    @field_validator("clearance_level", mode="before")
    @classmethod
    def _parse_clearance(cls, value: Any) -> ClearanceLevel:
        if value is None:
            return ClearanceLevel.L1
        return ClearanceLevel.parse(value)

    @field_validator("access_scope", mode="before")
    @classmethod
    def _parse_scope(cls, value: Any) -> AccessScope:
        try:
            return AccessScope(str(value).strip().lower())
        except ValueError:
            return AccessScope.SELF

    @field_validator("risk_level", mode="before")
    @classmethod
    def _parse_risk(cls, value: Any) -> RiskLevel:
        try:
            return RiskLevel(str(value).strip().lower())
        except ValueError:
            return RiskLevel.HIGH


class Actor(BaseModel):
    """Authenticated actor as handed over by the identity layer."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Actor ID")
    roles: List[str] = Field(default_factory=list, description="Declared roles")
    attributes: Dict[str, Any] = Field(default_factory=dict, description="Raw actor attributes")


@dataclass(frozen=True)
class PolicyResult:
    """Outcome of a single policy evaluation."""
    allowed: bool
    reason: str
    deny_by_default: bool = True
    required_attributes: Optional[Tuple[str, ...]] = None

    @classmethod
    def allow(cls, reason: str) -> "PolicyResult":
        return cls(allowed=True, reason=reason, deny_by_default=True)

    @classmethod
    def deny(cls, reason: str, deny_by_default: bool = False,
             required_attributes: Optional[Tuple[str, ...]] = None) -> "PolicyResult":
        return cls(
            allowed=False,
            reason=reason,
            deny_by_default=deny_by_default,
            required_attributes=tuple(required_attributes) if required_attributes else None,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Wire representation handed to callers and audit logs."""
        data: Dict[str, Any] = {
            "allowed": self.allowed,
            "reason": self.reason,
            "denyByDefault": self.deny_by_default,
        }
        if self.required_attributes is not None:
            data["requiredAttributes"] = list(self.required_attributes)
        return data
