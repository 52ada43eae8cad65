"""
Permission engine service wiring.
"""

from typing import Optional

from shared.config import PermissionsConfig, get_config
from shared.logging import configure_logging, get_logger
from shared.metrics import MetricsCollector, get_metrics_collector

from .rules.catalog import default_policy_rules, default_role_permissions
from .rules.conditions import ConditionRegistry, create_default_registry
from .rules.engine import PermissionManager
from .rules.admin import PolicyAdministration
from .cache.memory_cache import InMemoryDecisionCache
from .cache.redis_cache import RedisDecisionCache
from .persistence.memory import InMemoryPermissionRepository, InMemoryPolicyRuleRepository
from .persistence.postgres import PostgreSQLPolicyStore


class PermissionsService:
    """Builds the store, cache, engine and administration facade."""

    def __init__(
        self,
        config: Optional[PermissionsConfig] = None,
        registry: Optional[ConditionRegistry] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.config = config or get_config()
        configure_logging(self.config.service_name, self.config.log_level)
        self.logger = get_logger(f"{self.config.service_name}.service")
        self.metrics = metrics or get_metrics_collector(self.config.service_name)

        self.postgres: Optional[PostgreSQLPolicyStore] = None
        if self.config.store_backend == "postgres":
            self.postgres = PostgreSQLPolicyStore(self.config.postgres_dsn)
            permission_repository = self.postgres.permissions
            policy_rule_repository = self.postgres.rules
        else:
            seed = self.config.seed_default_policies
            permission_repository = InMemoryPermissionRepository(default_role_permissions() if seed else None)
            policy_rule_repository = InMemoryPolicyRuleRepository(default_policy_rules() if seed else None)

        if self.config.cache_backend == "redis":
            self.cache = RedisDecisionCache(
                self.config.redis_url,
                ttl_seconds=self.config.cache_ttl_seconds,
                prefix=self.config.cache_key_prefix,
            )
        else:
            self.cache = InMemoryDecisionCache(ttl_seconds=self.config.cache_ttl_seconds)

        self.manager = PermissionManager(
            permission_repository,
            policy_rule_repository,
            cache=self.cache,
            registry=registry or create_default_registry(),
            metrics=self.metrics,
        )
        self.admin = PolicyAdministration(self.manager)

    async def start(self):
        """Open backend connections."""
        if self.config.metrics_port:
            self.metrics.start_metrics_server(self.config.metrics_port)
        try:
            if self.postgres:
                await self.postgres.start()
                if self.config.seed_default_policies:
                    await self._seed_postgres()
            if isinstance(self.cache, RedisDecisionCache):
                await self.cache.start()
        except Exception as e:
            self.logger.error("Permissions service failed to start", error=str(e))
            await self.stop()
            raise

        self.logger.info(
            "Permissions service started",
            store_backend=self.config.store_backend,
            cache_backend=self.config.cache_backend,
        )

    async def stop(self):
        """Close backend connections."""
        if isinstance(self.cache, RedisDecisionCache):
            await self.cache.stop()
        if self.postgres:
            await self.postgres.stop()
        self.logger.info("Permissions service stopped")

    async def _seed_postgres(self):
        # Only seed an empty store; existing policy is left untouched.
        rows = await self.postgres.fetch("SELECT 1 FROM role_permissions LIMIT 1")
        if rows:
            return
        for permission in default_role_permissions():
            await self.postgres.permissions.create(permission)
        for rule in default_policy_rules():
            await self.postgres.rules.create(rule)
        self.logger.info("Seeded default policies")

    async def __aenter__(self) -> "PermissionsService":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.stop()


def create_service(**overrides) -> PermissionsService:
    """Create a permissions service from environment configuration."""
    return PermissionsService(get_config(**overrides))
