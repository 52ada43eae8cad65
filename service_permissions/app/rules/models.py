"""
Policy data models for the permission engine.
"""

from typing import Dict, Any, Optional, List, Mapping, Tuple
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field, field_validator


def enum_value(value: Any) -> Any:
    """Unwrap enum members to their plain value."""
    if isinstance(value, Enum):
        return value.value
    return value


class ConditionType(str, Enum):
    """Built-in ABAC condition kinds."""
    DEPARTMENT_MATCH = "department_match"
    OWNERSHIP = "ownership"
    STATUS = "status"
    ROLE_CHECK = "role_check"
    ASSIGNEE_CHECK = "assignee_check"


class DecisionStage(str, Enum):
    """Which part of the hybrid check produced a grant."""
    ABAC = "abac"
    RBAC = "rbac"


@dataclass(frozen=True)
class Actor:
    """The user an authorization check is made for."""
    id: int
    role: str
    department: Optional[str] = None
    assigned_students: Tuple[int, ...] = ()
    active: Optional[bool] = None

    def __post_init__(self):
        object.__setattr__(self, "role", enum_value(self.role))
        object.__setattr__(self, "assigned_students", tuple(self.assigned_students))


@dataclass(frozen=True)
class Resource:
    """A domain entity tagged with its resource type.

    ``attributes`` holds whatever the resource type carries; conditions
    look attributes up by name and treat absent ones as not applying.
    """
    id: Any
    resource_type: str
    attributes: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "resource_type", enum_value(self.resource_type))
        object.__setattr__(self, "attributes", dict(self.attributes))

    def get(self, name: str, default: Any = None) -> Any:
        return self.attributes.get(name, default)

    def has(self, name: str) -> bool:
        return self.attributes.get(name) is not None


@dataclass
class RolePermission:
    """Static RBAC grant: ``role`` may perform ``action`` on ``resource_type``."""
    role: str
    resource_type: str
    action: str
    id: Optional[int] = None
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)

    def __post_init__(self):
        self.role = enum_value(self.role)
        self.resource_type = enum_value(self.resource_type)
        self.action = enum_value(self.action)


@dataclass
class PolicyRule:
    """ABAC rule.

    Rules are evaluated in descending ``priority``. Rules that share a
    ``group`` are only satisfied together.
    """
    resource_type: str
    action: str
    condition_type: str
    condition_value: str = ""
    priority: int = 0
    group: Optional[str] = None
    id: Optional[int] = None
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)

    def __post_init__(self):
        self.resource_type = enum_value(self.resource_type)
        self.action = enum_value(self.action)
        self.condition_type = enum_value(self.condition_type)
        self.condition_value = str(enum_value(self.condition_value))


@dataclass
class CachedDecision:
    """A memoized boolean decision and when it was computed."""
    value: bool
    timestamp: float


@dataclass
class Decision:
    """Result of an explained (uncached) evaluation."""
    allowed: bool
    stage: Optional[DecisionStage] = None
    matched_rules: List[int] = field(default_factory=list)
    evaluation_time_ms: float = 0.0


class _PolicyRuleFields(BaseModel):
    @field_validator("*", mode="before")
    @classmethod
    def _unwrap_enums(cls, value):
        return enum_value(value)


class PolicyRuleCreateRequest(_PolicyRuleFields):
    """Fields for creating an ABAC rule."""
    resource_type: str = Field(..., min_length=1, description="Resource type")
    action: str = Field(..., min_length=1, description="Action the rule grants")
    condition_type: str = Field(..., min_length=1, description="Condition kind")
    condition_value: str = Field("", description="Comparison value for the condition")
    priority: int = Field(0, description="Rule priority, higher first")
    group: Optional[str] = Field(None, description="Conjunction group")

    @field_validator("condition_value", mode="before")
    @classmethod
    def _stringify_value(cls, value):
        return "" if value is None else str(enum_value(value))


class PolicyRuleUpdateRequest(_PolicyRuleFields):
    """Partial update for an ABAC rule."""
    resource_type: Optional[str] = Field(None, description="Resource type")
    action: Optional[str] = Field(None, description="Action the rule grants")
    condition_type: Optional[str] = Field(None, description="Condition kind")
    condition_value: Optional[str] = Field(None, description="Comparison value")
    priority: Optional[int] = Field(None, description="Rule priority")
    group: Optional[str] = Field(None, description="Conjunction group")

    @field_validator("condition_value", mode="before")
    @classmethod
    def _stringify_value(cls, value):
        return None if value is None else str(enum_value(value))

    @field_validator("resource_type", "action", "condition_type", "condition_value", "priority")
    @classmethod
    def _reject_null(cls, value):
        # Omit a field to leave it unchanged; only ``group`` may be cleared.
        if value is None:
            raise ValueError("field cannot be null")
        return value

    def changes(self) -> Dict[str, Any]:
        """Only the fields that were explicitly provided."""
        return self.model_dump(exclude_unset=True)
