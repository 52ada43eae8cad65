"""
Repository interfaces the engine reads grants and rules through.
"""

from typing import Any, Dict, List, Protocol

from ..rules.models import RolePermission, PolicyRule


class PermissionRepository(Protocol):
    """Store of static RBAC grants."""

    async def find_by_role(self, role: str) -> List[RolePermission]:
        ...

    async def create(self, permission: RolePermission) -> RolePermission:
        ...

    async def update(self, permission_id: int, data: Dict[str, Any]) -> RolePermission:
        ...

    async def delete(self, criteria: Dict[str, Any]) -> int:
        ...


class PolicyRuleRepository(Protocol):
    """Store of prioritized ABAC rules."""

    async def find_by_resource_type(self, resource_type: str) -> List[PolicyRule]:
        ...

    async def create(self, rule: PolicyRule) -> PolicyRule:
        ...

    async def update(self, rule_id: int, data: Dict[str, Any]) -> PolicyRule:
        ...

    async def delete(self, criteria: Dict[str, Any]) -> int:
        ...
