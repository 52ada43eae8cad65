"""
In-memory grant and rule stores.

Used for local runs and tests, and as the reference behaviour for other
stores: records come back as copies, in insertion order.
"""

import asyncio
import itertools
from dataclasses import replace, fields
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from shared.logging import get_logger
from shared.errors import PolicyStoreError, ValidationError
from ..rules.models import RolePermission, PolicyRule, enum_value


def _matches(record: Any, criteria: Dict[str, Any]) -> bool:
    return all(getattr(record, name) == enum_value(value) for name, value in criteria.items())


def _check_fields(record_type: type, names: Iterable[str]) -> None:
    known = {f.name for f in fields(record_type)}
    unknown = sorted(set(names) - known)
    if unknown:
        raise ValidationError("Unknown fields", {"fields": unknown})


class InMemoryPermissionRepository:
    """RBAC grants kept in a dict keyed by id."""

    def __init__(self, permissions: Optional[Iterable[RolePermission]] = None):
        self.logger = get_logger("permissions.persistence.memory")
        self._permissions: Dict[int, RolePermission] = {}
        self._ids = itertools.count(1)
        self._lock = asyncio.Lock()
        for permission in permissions or []:
            self._insert(permission)

    def _insert(self, permission: RolePermission) -> RolePermission:
        for existing in self._permissions.values():
            if (existing.role, existing.resource_type, existing.action) == (
                permission.role, permission.resource_type, permission.action
            ):
                raise ValidationError(
                    "Duplicate role permission",
                    {"role": permission.role, "resource_type": permission.resource_type,
                     "action": permission.action},
                )
        stored = replace(permission, id=next(self._ids))
        self._permissions[stored.id] = stored
        return replace(stored)

    async def find_by_role(self, role: str) -> List[RolePermission]:
        role = enum_value(role)
        async with self._lock:
            return [replace(p) for p in self._permissions.values() if p.role == role]

    async def create(self, permission: RolePermission) -> RolePermission:
        async with self._lock:
            return self._insert(permission)

    async def update(self, permission_id: int, data: Dict[str, Any]) -> RolePermission:
        _check_fields(RolePermission, data)
        async with self._lock:
            current = self._permissions.get(permission_id)
            if current is None:
                raise PolicyStoreError("Role permission not found", {"id": permission_id})
            changes = {k: enum_value(v) for k, v in data.items() if k != "id"}
            changes.setdefault("updated_at", datetime.now())
            updated = replace(current, **changes)
            self._permissions[permission_id] = updated
            return replace(updated)

    async def delete(self, criteria: Dict[str, Any]) -> int:
        _check_fields(RolePermission, criteria)
        async with self._lock:
            doomed = [pid for pid, p in self._permissions.items() if _matches(p, criteria)]
            for pid in doomed:
                del self._permissions[pid]
        self.logger.debug("Role permissions deleted", count=len(doomed))
        return len(doomed)

    def __len__(self) -> int:
        return len(self._permissions)


class InMemoryPolicyRuleRepository:
    """ABAC rules kept in a dict keyed by id."""

    def __init__(self, rules: Optional[Iterable[PolicyRule]] = None):
        self.logger = get_logger("permissions.persistence.memory")
        self._rules: Dict[int, PolicyRule] = {}
        self._ids = itertools.count(1)
        self._lock = asyncio.Lock()
        for rule in rules or []:
            self._insert(rule)

    def _insert(self, rule: PolicyRule) -> PolicyRule:
        stored = replace(rule, id=next(self._ids))
        self._rules[stored.id] = stored
        return replace(stored)

    async def find_by_resource_type(self, resource_type: str) -> List[PolicyRule]:
        resource_type = enum_value(resource_type)
        async with self._lock:
            return [replace(r) for r in self._rules.values() if r.resource_type == resource_type]

    async def get(self, rule_id: int) -> Optional[PolicyRule]:
        async with self._lock:
            rule = self._rules.get(rule_id)
            return replace(rule) if rule else None

    async def create(self, rule: PolicyRule) -> PolicyRule:
        async with self._lock:
            return self._insert(rule)

    async def update(self, rule_id: int, data: Dict[str, Any]) -> PolicyRule:
        _check_fields(PolicyRule, data)
        async with self._lock:
            current = self._rules.get(rule_id)
            if current is None:
                raise PolicyStoreError("Policy rule not found", {"id": rule_id})
            changes = {k: enum_value(v) for k, v in data.items() if k != "id"}
            changes.setdefault("updated_at", datetime.now())
            updated = replace(current, **changes)
            self._rules[rule_id] = updated
            return replace(updated)

    async def delete(self, criteria: Dict[str, Any]) -> int:
        _check_fields(PolicyRule, criteria)
        async with self._lock:
            doomed = [rid for rid, r in self._rules.items() if _matches(r, criteria)]
            for rid in doomed:
                del self._rules[rid]
        self.logger.debug("Policy rules deleted", count=len(doomed))
        return len(doomed)

    def __len__(self) -> int:
        return len(self._rules)
