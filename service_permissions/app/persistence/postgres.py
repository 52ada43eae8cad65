"""
PostgreSQL persistence layer for grants and rules.
"""

from typing import Dict, Any, Optional, List, Tuple
from datetime import datetime

import asyncpg
from shared.logging import get_logger
from shared.errors import PolicyStoreError, ValidationError
from ..rules.models import RolePermission, PolicyRule, enum_value


PERMISSION_COLUMNS = {
    "id": "id",
    "role": "role",
    "resource_type": "resource_type",
    "action": "action",
    "created_at": "created_at",
    "updated_at": "updated_at",
}

RULE_COLUMNS = {
    "id": "id",
    "resource_type": "resource_type",
    "action": "action",
    "condition_type": "condition_type",
    "condition_value": "condition_value",
    "priority": "priority",
    "group": "rule_group",
    "created_at": "created_at",
    "updated_at": "updated_at",
}


def _where(criteria: Dict[str, Any], columns: Dict[str, str], start: int = 1) -> Tuple[str, List[Any]]:
    """Build a parameterised AND clause from a criteria mapping."""
    clauses = []
    args: List[Any] = []
    for offset, (name, value) in enumerate(criteria.items()):
        if name not in columns:
            raise ValidationError("Unknown criteria field", {"field": name})
        clauses.append(f"{columns[name]} = ${start + offset}")
        args.append(enum_value(value))
    return " AND ".join(clauses), args


def _set(data: Dict[str, Any], columns: Dict[str, str], start: int = 1) -> Tuple[str, List[Any]]:
    """Build a parameterised SET list, stamping ``updated_at``."""
    data = {k: v for k, v in data.items() if k != "id"}
    data.setdefault("updated_at", datetime.now())
    assignments = []
    args: List[Any] = []
    for offset, (name, value) in enumerate(data.items()):
        if name not in columns:
            raise ValidationError("Unknown field", {"field": name})
        assignments.append(f"{columns[name]} = ${start + offset}")
        args.append(enum_value(value))
    return ", ".join(assignments), args


def _affected(status: str) -> int:
    # asyncpg returns the command tag, e.g. "DELETE 3"
    try:
        return int(status.split()[-1])
    except (AttributeError, IndexError, ValueError):
        return 0


class PostgreSQLPolicyStore:
    """PostgreSQL-backed store for RBAC grants and ABAC rules.

    Every database failure is raised as ``PolicyStoreError`` so callers can
    tell "could not decide" apart from a denial.
    """

    def __init__(self, dsn: str):
        self.dsn = dsn
        self.logger = get_logger("permissions.persistence.postgres")
        self.pool: Optional[asyncpg.Pool] = None
        self.permissions = PostgreSQLPermissionRepository(self)
        self.rules = PostgreSQLPolicyRuleRepository(self)

    async def start(self):
        """Start the persistence layer."""
        try:
            self.pool = await asyncpg.create_pool(
                self.dsn,
                min_size=2,
                max_size=10,
                command_timeout=30
            )

            await self._create_tables()

            self.logger.info("PostgreSQL persistence started")

        except Exception as e:
            self.logger.error("Failed to start PostgreSQL persistence", error=str(e))
            raise PolicyStoreError("Failed to start PostgreSQL persistence", {"error": str(e)}) from e

    async def stop(self):
        """Stop the persistence layer."""
        if self.pool:
            await self.pool.close()
            self.pool = None
            self.logger.info("PostgreSQL persistence stopped")

    def _pool(self) -> asyncpg.Pool:
        if self.pool is None:
            raise PolicyStoreError("PostgreSQL persistence not started")
        return self.pool

    async def _create_tables(self):
        """Create database tables."""
        async with self._pool().acquire() as conn:
            await conn.execute("""
                CREATE TABLE IF NOT EXISTS role_permissions (
                    id SERIAL PRIMARY KEY,
                    role VARCHAR(100) NOT NULL,
                    resource_type VARCHAR(100) NOT NULL,
                    action VARCHAR(100) NOT NULL,
                    created_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT NOW(),
                    updated_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT NOW(),
                    UNIQUE (role, resource_type, action)
                );
            """)
            await conn.execute("""
                CREATE TABLE IF NOT EXISTS policy_rules (
                    id SERIAL PRIMARY KEY,
                    resource_type VARCHAR(100) NOT NULL,
                    action VARCHAR(100) NOT NULL,
                    condition_type VARCHAR(100) NOT NULL,
                    condition_value TEXT NOT NULL DEFAULT '',
                    priority INTEGER NOT NULL DEFAULT 0,
                    rule_group VARCHAR(255),
                    created_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT NOW(),
                    updated_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT NOW()
                );
            """)

            await conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_role_permissions_role ON role_permissions(role);
            """)
            await conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_policy_rules_resource_type ON policy_rules(resource_type);
            """)

    async def fetch(self, query: str, *args) -> List[Any]:
        try:
            async with self._pool().acquire() as conn:
                return await conn.fetch(query, *args)
        except PolicyStoreError:
            raise
        except Exception as e:
            self.logger.error("Query failed", error=str(e))
            raise PolicyStoreError("Query failed", {"error": str(e)}) from e

    async def fetchrow(self, query: str, *args) -> Optional[Any]:
        try:
            async with self._pool().acquire() as conn:
                return await conn.fetchrow(query, *args)
        except PolicyStoreError:
            raise
        except asyncpg.UniqueViolationError as e:
            raise ValidationError("Duplicate record", {"error": str(e)}) from e
        except Exception as e:
            self.logger.error("Query failed", error=str(e))
            raise PolicyStoreError("Query failed", {"error": str(e)}) from e

    async def execute(self, query: str, *args) -> str:
        try:
            async with self._pool().acquire() as conn:
                return await conn.execute(query, *args)
        except PolicyStoreError:
            raise
        except Exception as e:
            self.logger.error("Statement failed", error=str(e))
            raise PolicyStoreError("Statement failed", {"error": str(e)}) from e

    async def health_check(self) -> bool:
        """Check database health."""
        try:
            async with self._pool().acquire() as conn:
                await conn.fetchval("SELECT 1")
                return True
        except Exception:
            return False


class PostgreSQLPermissionRepository:
    """RBAC grants in the ``role_permissions`` table."""

    def __init__(self, store: PostgreSQLPolicyStore):
        self.store = store

    async def find_by_role(self, role: str) -> List[RolePermission]:
        rows = await self.store.fetch("""
            SELECT * FROM role_permissions WHERE role = $1 ORDER BY id
        """, enum_value(role))
        return [_row_to_permission(row) for row in rows]

    async def create(self, permission: RolePermission) -> RolePermission:
        row = await self.store.fetchrow("""
            INSERT INTO role_permissions (role, resource_type, action, created_at, updated_at)
            VALUES ($1, $2, $3, $4, $5)
            RETURNING *
        """,
            permission.role, permission.resource_type, permission.action,
            permission.created_at, permission.updated_at
        )
        self.store.logger.info("Role permission saved", role=permission.role,
                               resource_type=permission.resource_type, action=permission.action)
        return _row_to_permission(row)

    async def update(self, permission_id: int, data: Dict[str, Any]) -> RolePermission:
        assignments, args = _set(data, PERMISSION_COLUMNS)
        row = await self.store.fetchrow(
            f"UPDATE role_permissions SET {assignments} WHERE id = ${len(args) + 1} RETURNING *",
            *args, permission_id
        )
        if row is None:
            raise PolicyStoreError("Role permission not found", {"id": permission_id})
        return _row_to_permission(row)

    async def delete(self, criteria: Dict[str, Any]) -> int:
        if not criteria:
            raise ValidationError("Refusing to delete without criteria")
        clause, args = _where(criteria, PERMISSION_COLUMNS)
        status = await self.store.execute(f"DELETE FROM role_permissions WHERE {clause}", *args)
        return _affected(status)


class PostgreSQLPolicyRuleRepository:
    """ABAC rules in the ``policy_rules`` table."""

    def __init__(self, store: PostgreSQLPolicyStore):
        self.store = store

    async def find_by_resource_type(self, resource_type: str) -> List[PolicyRule]:
        rows = await self.store.fetch("""
            SELECT * FROM policy_rules WHERE resource_type = $1 ORDER BY id
        """, enum_value(resource_type))
        return [_row_to_rule(row) for row in rows]

    async def create(self, rule: PolicyRule) -> PolicyRule:
        row = await self.store.fetchrow("""
            INSERT INTO policy_rules (
                resource_type, action, condition_type, condition_value,
                priority, rule_group, created_at, updated_at
            ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8)
            RETURNING *
        """,
            rule.resource_type, rule.action, rule.condition_type, rule.condition_value,
            rule.priority, rule.group, rule.created_at, rule.updated_at
        )
        self.store.logger.info("Policy rule saved", resource_type=rule.resource_type,
                               action=rule.action, condition_type=rule.condition_type)
        return _row_to_rule(row)

    async def update(self, rule_id: int, data: Dict[str, Any]) -> PolicyRule:
        assignments, args = _set(data, RULE_COLUMNS)
        row = await self.store.fetchrow(
            f"UPDATE policy_rules SET {assignments} WHERE id = ${len(args) + 1} RETURNING *",
            *args, rule_id
        )
        if row is None:
            raise PolicyStoreError("Policy rule not found", {"id": rule_id})
        return _row_to_rule(row)

    async def delete(self, criteria: Dict[str, Any]) -> int:
        if not criteria:
            raise ValidationError("Refusing to delete without criteria")
        clause, args = _where(criteria, RULE_COLUMNS)
        status = await self.store.execute(f"DELETE FROM policy_rules WHERE {clause}", *args)
        return _affected(status)


def _row_to_permission(row) -> RolePermission:
    """Convert database row to RolePermission."""
    return RolePermission(
        id=row['id'],
        role=row['role'],
        resource_type=row['resource_type'],
        action=row['action'],
        created_at=row['created_at'],
        updated_at=row['updated_at'],
    )


def _row_to_rule(row) -> PolicyRule:
    """Convert database row to PolicyRule."""
    return PolicyRule(
        id=row['id'],
        resource_type=row['resource_type'],
        action=row['action'],
        condition_type=row['condition_type'],
        condition_value=row['condition_value'],
        priority=row['priority'],
        group=row['rule_group'],
        created_at=row['created_at'],
        updated_at=row['updated_at'],
    )
