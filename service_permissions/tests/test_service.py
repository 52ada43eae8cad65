"""
Tests for configuration and service wiring.
"""

import pytest
from pydantic import ValidationError
from unittest.mock import AsyncMock, patch

from shared.config import PermissionsConfig, get_config
from shared.errors import CacheError
from shared.metrics import MetricsCollector
from service_permissions.app.service import PermissionsService, create_service
from service_permissions.app.cache.memory_cache import InMemoryDecisionCache
from service_permissions.app.cache.redis_cache import RedisDecisionCache
from service_permissions.app.persistence.memory import InMemoryPolicyRuleRepository
from service_permissions.app.persistence.postgres import PostgreSQLPolicyStore
from service_permissions.app.rules.catalog import Role, InquiryAction, inquiry
from service_permissions.app.rules.models import Actor


class TestPermissionsConfig:
    """Test cases for PermissionsConfig."""

    def test_defaults(self):
        config = PermissionsConfig()

        assert config.service_name == "permissions"
        assert config.cache_backend == "memory"
        assert config.cache_ttl_seconds == 300
        assert config.store_backend == "memory"
        assert config.seed_default_policies is True

    def test_environment_override(self, monkeypatch):
        monkeypatch.setenv("ACCESS_CACHE_BACKEND", "redis")
        monkeypatch.setenv("ACCESS_CACHE_TTL_SECONDS", "60")

        config = get_config()

        assert config.cache_backend == "redis"
        assert config.cache_ttl_seconds == 60

    def test_rejects_non_positive_ttl(self):
        with pytest.raises(ValidationError):
            PermissionsConfig(cache_ttl_seconds=0)


class TestPermissionsService:
    """Test cases for PermissionsService."""

    @pytest.fixture
    def metrics(self):
        return MetricsCollector("permissions")

    def test_memory_wiring(self, metrics):
        service = PermissionsService(PermissionsConfig(), metrics=metrics)

        assert isinstance(service.cache, InMemoryDecisionCache)
        assert isinstance(service.manager.policy_rule_repository, InMemoryPolicyRuleRepository)
        assert len(service.manager.policy_rule_repository) > 0
        assert service.admin.manager is service.manager
        assert service.postgres is None

    def test_unseeded_memory_store(self, metrics):
        service = PermissionsService(PermissionsConfig(seed_default_policies=False), metrics=metrics)

        assert len(service.manager.policy_rule_repository) == 0
        assert len(service.manager.permission_repository) == 0

    def test_backend_wiring(self, metrics):
        config = PermissionsConfig(cache_backend="redis", store_backend="postgres", cache_ttl_seconds=30)

        service = PermissionsService(config, metrics=metrics)

        assert isinstance(service.cache, RedisDecisionCache)
        assert service.cache.ttl_seconds == 30
        assert isinstance(service.postgres, PostgreSQLPolicyStore)
        assert service.manager.permission_repository is service.postgres.permissions

    @pytest.mark.asyncio
    async def test_end_to_end_check(self, metrics):
        counselor = Actor(id=2, role=Role.EDUCATION_COUNSELOR, department="dep1")

        async with PermissionsService(PermissionsConfig(), metrics=metrics) as service:
            resource = inquiry(id=1, author_id=3, department_id="dep1", assigned_to_id=2)

            assert await service.manager.check_permission(counselor, InquiryAction.RESOLVE, resource) is True
            await service.admin.remove_permission(Role.EDUCATION_COUNSELOR, "inquiry", InquiryAction.READ)
            assert await service.manager.is_authorized(counselor, InquiryAction.READ, resource) is True

        assert metrics.get_sample_value("decision_cache_invalidations_total") == 1.0

    @pytest.mark.asyncio
    async def test_postgres_seeding_skips_populated_store(self, metrics):
        service = PermissionsService(PermissionsConfig(store_backend="postgres"), metrics=metrics)

        with patch.object(PostgreSQLPolicyStore, "start", AsyncMock()), \
                patch.object(PostgreSQLPolicyStore, "fetch", AsyncMock(return_value=[{"?column?": 1}])), \
                patch.object(PostgreSQLPolicyStore, "fetchrow", AsyncMock()) as fetchrow:
            await service.start()

        fetchrow.assert_not_awaited()

    def test_create_service_applies_overrides(self):
        service = create_service(cache_ttl_seconds=42)

        assert service.cache.ttl_seconds == 42

    @pytest.mark.asyncio
    async def test_failed_start_closes_started_backends(self, metrics):
        config = PermissionsConfig(store_backend="postgres", cache_backend="redis", seed_default_policies=False)
        service = PermissionsService(config, metrics=metrics)

        with patch.object(PostgreSQLPolicyStore, "start", AsyncMock()), \
                patch.object(PostgreSQLPolicyStore, "stop", AsyncMock()) as postgres_stop, \
                patch.object(RedisDecisionCache, "start", AsyncMock(side_effect=CacheError("refused"))):
            with pytest.raises(CacheError):
                await service.start()

        postgres_stop.assert_awaited_once()
