"""
Unit tests for the grant and rule stores.
"""

from datetime import datetime

import asyncpg
import pytest
from unittest.mock import AsyncMock, MagicMock

from shared.errors import PolicyStoreError, ValidationError
from service_permissions.app.rules.models import RolePermission, PolicyRule
from service_permissions.app.rules.catalog import Role, ResourceType, InquiryAction, StudentAction
from service_permissions.app.persistence.memory import (
    InMemoryPermissionRepository, InMemoryPolicyRuleRepository,
)
from service_permissions.app.persistence.postgres import PostgreSQLPolicyStore, _affected


NOW = datetime(2024, 1, 1, 12, 0, 0)


def permission_row(**overrides):
    row = {
        "id": 1,
        "role": "admin",
        "resource_type": "inquiry",
        "action": "inquiry:read",
        "created_at": NOW,
        "updated_at": NOW,
    }
    row.update(overrides)
    return row


def rule_row(**overrides):
    row = {
        "id": 1,
        "resource_type": "inquiry",
        "action": "inquiry:read",
        "condition_type": "department_match",
        "condition_value": "dep1",
        "priority": 10,
        "rule_group": None,
        "created_at": NOW,
        "updated_at": NOW,
    }
    row.update(overrides)
    return row


class TestInMemoryPermissionRepository:
    """Test cases for InMemoryPermissionRepository."""

    @pytest.fixture
    def repository(self):
        return InMemoryPermissionRepository([
            RolePermission(Role.ADMIN, ResourceType.INQUIRY, InquiryAction.READ),
            RolePermission(Role.ADMIN, ResourceType.INQUIRY, InquiryAction.DELETE),
            RolePermission(Role.EDUCATION_COUNSELOR, ResourceType.INQUIRY, InquiryAction.READ),
        ])

    @pytest.mark.asyncio
    async def test_find_by_role(self, repository):
        grants = await repository.find_by_role(Role.ADMIN)

        assert [g.action for g in grants] == ["inquiry:read", "inquiry:delete"]
        assert [g.id for g in grants] == [1, 2]

    @pytest.mark.asyncio
    async def test_find_returns_copies(self, repository):
        grants = await repository.find_by_role("admin")
        grants[0].action = "inquiry:create"

        again = await repository.find_by_role("admin")
        assert again[0].action == "inquiry:read"

    @pytest.mark.asyncio
    async def test_create_assigns_id(self, repository):
        created = await repository.create(
            RolePermission(Role.EDUCATION_COUNSELOR, ResourceType.STUDENT, StudentAction.READ)
        )

        assert created.id == 4
        assert len(repository) == 4

    @pytest.mark.asyncio
    async def test_create_duplicate_raises(self, repository):
        with pytest.raises(ValidationError):
            await repository.create(RolePermission(Role.ADMIN, ResourceType.INQUIRY, InquiryAction.READ))

    @pytest.mark.asyncio
    async def test_update(self, repository):
        updated = await repository.update(3, {"action": InquiryAction.UPDATE})

        assert updated.action == "inquiry:update"
        assert updated.updated_at >= updated.created_at

    @pytest.mark.asyncio
    async def test_update_missing_raises_store_error(self, repository):
        with pytest.raises(PolicyStoreError):
            await repository.update(99, {"action": "inquiry:read"})

    @pytest.mark.asyncio
    async def test_update_unknown_field_raises(self, repository):
        with pytest.raises(ValidationError):
            await repository.update(1, {"colour": "blue"})

    @pytest.mark.asyncio
    async def test_delete_by_criteria(self, repository):
        removed = await repository.delete({"role": Role.ADMIN})

        assert removed == 2
        assert await repository.find_by_role("admin") == []
        assert len(repository) == 1


class TestInMemoryPolicyRuleRepository:
    """Test cases for InMemoryPolicyRuleRepository."""

    @pytest.fixture
    def repository(self):
        return InMemoryPolicyRuleRepository([
            PolicyRule(ResourceType.INQUIRY, InquiryAction.READ, "department_match", "dep1", priority=10),
            PolicyRule(ResourceType.STUDENT, StudentAction.READ, "ownership", "5", priority=1),
            PolicyRule(ResourceType.INQUIRY, InquiryAction.DELETE, "role_check", "admin", priority=10),
        ])

    @pytest.mark.asyncio
    async def test_find_by_resource_type_keeps_insertion_order(self, repository):
        rules = await repository.find_by_resource_type(ResourceType.INQUIRY)

        assert [r.id for r in rules] == [1, 3]

    @pytest.mark.asyncio
    async def test_get(self, repository):
        rule = await repository.get(2)

        assert rule.condition_type == "ownership"
        assert await repository.get(99) is None

    @pytest.mark.asyncio
    async def test_update_priority(self, repository):
        updated = await repository.update(2, {"priority": 50})

        assert updated.priority == 50
        assert (await repository.get(2)).priority == 50

    @pytest.mark.asyncio
    async def test_delete_by_id(self, repository):
        assert await repository.delete({"id": 1}) == 1
        assert await repository.delete({"id": 1}) == 0
        assert len(repository) == 2


class TestPostgreSQLPolicyStore:
    """Test cases for the PostgreSQL store."""

    @pytest.fixture
    def conn(self):
        return AsyncMock()

    @pytest.fixture
    def store(self, conn):
        store = PostgreSQLPolicyStore("postgres://localhost:5432/access_test")
        pool = MagicMock()
        pool.acquire.return_value.__aenter__.return_value = conn
        pool.acquire.return_value.__aexit__.return_value = False
        store.pool = pool
        return store

    @pytest.mark.asyncio
    async def test_not_started_raises(self):
        store = PostgreSQLPolicyStore("postgres://localhost:5432/access_test")

        with pytest.raises(PolicyStoreError):
            await store.permissions.find_by_role("admin")

    @pytest.mark.asyncio
    async def test_find_by_role(self, store, conn):
        conn.fetch.return_value = [permission_row(), permission_row(id=2, action="inquiry:delete")]

        grants = await store.permissions.find_by_role(Role.ADMIN)

        assert [g.action for g in grants] == ["inquiry:read", "inquiry:delete"]
        query, role = conn.fetch.await_args.args
        assert "FROM role_permissions" in query
        assert role == "admin"

    @pytest.mark.asyncio
    async def test_find_rules_maps_group_column(self, store, conn):
        conn.fetch.return_value = [rule_row(rule_group="g1")]

        rules = await store.rules.find_by_resource_type("inquiry")

        assert rules[0].group == "g1"
        assert rules[0].priority == 10

    @pytest.mark.asyncio
    async def test_create_rule(self, store, conn):
        conn.fetchrow.return_value = rule_row(id=7, priority=20)

        created = await store.rules.create(
            PolicyRule(ResourceType.INQUIRY, InquiryAction.READ, "department_match", "dep1", priority=20)
        )

        assert created.id == 7
        assert "INSERT INTO policy_rules" in conn.fetchrow.await_args.args[0]

    @pytest.mark.asyncio
    async def test_create_duplicate_permission(self, store, conn):
        conn.fetchrow.side_effect = asyncpg.UniqueViolationError("duplicate key value")

        with pytest.raises(ValidationError):
            await store.permissions.create(RolePermission("admin", "inquiry", "inquiry:read"))

    @pytest.mark.asyncio
    async def test_update_rule_builds_set_clause(self, store, conn):
        conn.fetchrow.return_value = rule_row(rule_group="g2")

        updated = await store.rules.update(1, {"group": "g2"})

        query, *args = conn.fetchrow.await_args.args
        assert "rule_group = $1" in query
        assert "WHERE id = $3" in query
        assert args[0] == "g2"
        assert args[-1] == 1
        assert updated.group == "g2"

    @pytest.mark.asyncio
    async def test_update_missing_rule(self, store, conn):
        conn.fetchrow.return_value = None

        with pytest.raises(PolicyStoreError):
            await store.rules.update(99, {"priority": 1})

    @pytest.mark.asyncio
    async def test_update_unknown_field(self, store):
        with pytest.raises(ValidationError):
            await store.rules.update(1, {"colour": "blue"})

    @pytest.mark.asyncio
    async def test_delete_permission(self, store, conn):
        conn.execute.return_value = "DELETE 2"

        removed = await store.permissions.delete({"role": Role.ADMIN, "action": "inquiry:read"})

        query, *args = conn.execute.await_args.args
        assert query == "DELETE FROM role_permissions WHERE role = $1 AND action = $2"
        assert args == ["admin", "inquiry:read"]
        assert removed == 2

    @pytest.mark.asyncio
    async def test_delete_requires_criteria(self, store):
        with pytest.raises(ValidationError):
            await store.rules.delete({})

    @pytest.mark.asyncio
    async def test_driver_errors_become_store_errors(self, store, conn):
        conn.fetch.side_effect = ConnectionError("connection reset")

        with pytest.raises(PolicyStoreError):
            await store.rules.find_by_resource_type("inquiry")

    @pytest.mark.asyncio
    async def test_health_check(self, store, conn):
        conn.fetchval.return_value = 1
        assert await store.health_check() is True

        conn.fetchval.side_effect = ConnectionError("down")
        assert await store.health_check() is False

    def test_affected(self):
        assert _affected("DELETE 3") == 3
        assert _affected("") == 0
        assert _affected(None) == 0
