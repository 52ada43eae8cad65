"""
Policy administration: grant and rule mutations.

Each mutation writes through to the store and then clears the decision
cache. If the store write raises, the error propagates and the cache is
left alone, since nothing changed.
"""

from typing import Any, Dict, Union

from shared.logging import get_logger
from .models import RolePermission, PolicyRule, PolicyRuleCreateRequest, PolicyRuleUpdateRequest, enum_value
from .engine import PermissionManager


class PolicyAdministration:
    """Mutates grants and rules behind a ``PermissionManager``."""

    def __init__(self, manager: PermissionManager):
        self.manager = manager
        self.logger = get_logger("permissions.admin")

    async def add_permission(self, role: str, resource_type: str, action: str) -> RolePermission:
        """Grant ``action`` on ``resource_type`` to ``role``."""
        permission = await self.manager.permission_repository.create(
            RolePermission(role=role, resource_type=resource_type, action=action)
        )
        await self.manager.invalidate_cache()
        self.logger.info(
            "Role permission added",
            role=permission.role,
            resource_type=permission.resource_type,
            action=permission.action,
        )
        return permission

    async def remove_permission(self, role: str, resource_type: str, action: str) -> int:
        """Revoke a grant; returns how many records were removed."""
        removed = await self.manager.permission_repository.delete({
            "role": enum_value(role),
            "resource_type": enum_value(resource_type),
            "action": enum_value(action),
        })
        await self.manager.invalidate_cache()
        self.logger.info(
            "Role permission removed",
            role=enum_value(role),
            resource_type=enum_value(resource_type),
            action=enum_value(action),
            removed=removed,
        )
        return removed

    async def add_policy_rule(self, rule: Union[PolicyRuleCreateRequest, Dict[str, Any]]) -> PolicyRule:
        """Create an ABAC rule."""
        if not isinstance(rule, PolicyRuleCreateRequest):
            rule = PolicyRuleCreateRequest(**rule)

        created = await self.manager.policy_rule_repository.create(PolicyRule(**rule.model_dump()))
        await self.manager.invalidate_cache()
        self.logger.info(
            "Policy rule added",
            rule_id=created.id,
            resource_type=created.resource_type,
            action=created.action,
            condition_type=created.condition_type,
            priority=created.priority,
        )
        return created

    async def update_policy_rule(
        self, rule_id: int, updates: Union[PolicyRuleUpdateRequest, Dict[str, Any]]
    ) -> PolicyRule:
        """Apply a partial update to an ABAC rule."""
        if not isinstance(updates, PolicyRuleUpdateRequest):
            updates = PolicyRuleUpdateRequest(**updates)

        updated = await self.manager.policy_rule_repository.update(rule_id, updates.changes())
        await self.manager.invalidate_cache()
        self.logger.info("Policy rule updated", rule_id=rule_id, fields=sorted(updates.changes()))
        return updated

    async def remove_policy_rule(self, rule_id: int) -> int:
        """Delete an ABAC rule by id."""
        removed = await self.manager.policy_rule_repository.delete({"id": rule_id})
        await self.manager.invalidate_cache()
        self.logger.info("Policy rule removed", rule_id=rule_id, removed=removed)
        return removed
