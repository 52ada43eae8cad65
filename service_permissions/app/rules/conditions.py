"""
Condition strategies for ABAC rule evaluation.

A strategy is a plain function ``(actor, resource, parameter) -> bool``.
The registry maps condition kinds to strategies and fails closed: an
unknown kind, a missing resource attribute, or a strategy that raises all
evaluate to ``False``.
"""

from typing import Any, Callable, Dict, List, Optional

from shared.logging import get_logger
from .models import Actor, Resource, ConditionType, enum_value
from .catalog import (
    ACTOR_DEPARTMENT_MATCH, ROLE_NOT, ROLE_IN, ASSIGNEE_OR_UNASSIGNED, MODIFY_ASSIGNEE,
    can_modify_assignee,
)


ConditionStrategy = Callable[[Actor, Resource, str], bool]


def evaluate_department_match(actor: Actor, resource: Resource, value: str) -> bool:
    if not resource.has("department_id"):
        return False
    return resource.get("department_id") == value


def evaluate_ownership(actor: Actor, resource: Resource, value: str) -> bool:
    if not resource.has("author_id"):
        return False
    try:
        author_id = int(value)
    except (TypeError, ValueError):
        return False
    return resource.get("author_id") == author_id


def evaluate_status(actor: Actor, resource: Resource, value: str) -> bool:
    if not resource.has("status"):
        return False
    return resource.get("status") == value


def evaluate_role_check(actor: Actor, resource: Resource, value: str) -> bool:
    return actor.role == value


def evaluate_assignee_check(actor: Actor, resource: Resource, value: str) -> bool:
    if not resource.has("assigned_to_id"):
        return False
    return resource.get("assigned_to_id") == actor.id


def evaluate_actor_department_match(actor: Actor, resource: Resource, value: str) -> bool:
    if actor.department is None or not resource.has("department_id"):
        return False
    return resource.get("department_id") == actor.department


def evaluate_role_not(actor: Actor, resource: Resource, value: str) -> bool:
    return actor.role != value


def evaluate_role_in(actor: Actor, resource: Resource, value: str) -> bool:
    roles = [part.strip() for part in value.split(",") if part.strip()]
    return actor.role in roles


def evaluate_assignee_or_unassigned(actor: Actor, resource: Resource, value: str) -> bool:
    assignee = resource.get("assigned_to_id")
    return assignee is None or assignee == actor.id


def evaluate_modify_assignee(actor: Actor, resource: Resource, value: str) -> bool:
    new_assignee = resource.get("new_assignee")
    if not isinstance(new_assignee, Actor):
        return False
    return can_modify_assignee(
        actor,
        new_assignee,
        resource.get("question_target"),
        resource.get("new_question_target"),
    )


BUILTIN_STRATEGIES: Dict[str, ConditionStrategy] = {
    ConditionType.DEPARTMENT_MATCH.value: evaluate_department_match,
    ConditionType.OWNERSHIP.value: evaluate_ownership,
    ConditionType.STATUS.value: evaluate_status,
    ConditionType.ROLE_CHECK.value: evaluate_role_check,
    ConditionType.ASSIGNEE_CHECK.value: evaluate_assignee_check,
}

CATALOG_STRATEGIES: Dict[str, ConditionStrategy] = {
    ACTOR_DEPARTMENT_MATCH: evaluate_actor_department_match,
    ROLE_NOT: evaluate_role_not,
    ROLE_IN: evaluate_role_in,
    ASSIGNEE_OR_UNASSIGNED: evaluate_assignee_or_unassigned,
    MODIFY_ASSIGNEE: evaluate_modify_assignee,
}


class ConditionRegistry:
    """Registry of named condition strategies."""

    def __init__(self, strategies: Optional[Dict[str, ConditionStrategy]] = None):
        self.logger = get_logger("permissions.conditions")
        self._strategies: Dict[str, ConditionStrategy] = dict(
            BUILTIN_STRATEGIES if strategies is None else strategies
        )

    def register(self, kind: Any, strategy: ConditionStrategy) -> None:
        """Register (or replace) the strategy for a condition kind."""
        kind = enum_value(kind)
        self._strategies[kind] = strategy
        self.logger.debug("Condition strategy registered", kind=kind)

    def unregister(self, kind: Any) -> bool:
        return self._strategies.pop(enum_value(kind), None) is not None

    def kinds(self) -> List[str]:
        return sorted(self._strategies)

    def get(self, kind: Any) -> ConditionStrategy:
        """Return the predicate for ``kind``; unknown kinds get one that denies."""
        strategy = self._strategies.get(enum_value(kind))
        if strategy is None:
            return _deny
        return strategy

    def evaluate(self, kind: Any, actor: Actor, resource: Resource, value: Any) -> bool:
        """Evaluate a single condition."""
        kind = enum_value(kind)
        strategy = self._strategies.get(kind)
        if strategy is None:
            self.logger.warning("Unknown condition type", condition_type=kind)
            return False

        parameter = "" if value is None else str(enum_value(value))
        try:
            return bool(strategy(actor, resource, parameter))
        except Exception as e:
            self.logger.error("Error evaluating condition", condition_type=kind, error=str(e))
            return False


def _deny(actor: Actor, resource: Resource, value: str) -> bool:
    return False


def create_default_registry() -> ConditionRegistry:
    """Registry with the built-in kinds plus the catalog's kinds."""
    registry = ConditionRegistry()
    for kind, strategy in CATALOG_STRATEGIES.items():
        registry.register(kind, strategy)
    return registry
