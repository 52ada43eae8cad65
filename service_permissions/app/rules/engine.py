"""
Hybrid RBAC/ABAC decision engine.
"""

import threading
import time
from typing import Any, Dict, List, Optional

from opentelemetry import trace

from shared.logging import get_logger, set_actor_context, reset_actor_context
from shared.errors import AccessControlException
from shared.metrics import MetricsCollector
from .models import Actor, Resource, PolicyRule, Decision, DecisionStage, enum_value
from .conditions import ConditionRegistry, create_default_registry
from ..cache.memory_cache import DecisionCache, InMemoryDecisionCache
from ..persistence.repositories import PermissionRepository, PolicyRuleRepository


def order_rules(rules: List[PolicyRule], action: str) -> List[List[PolicyRule]]:
    """Arrange the rules for ``action`` into evaluation units.

    Rules are sorted by descending priority; equal priorities keep the
    order the store returned them in. Rules sharing a group form one unit,
    placed where its highest-priority member sorts.
    """
    candidates = sorted(
        (rule for rule in rules if rule.action == action),
        key=lambda rule: rule.priority,
        reverse=True,
    )

    units: List[List[PolicyRule]] = []
    groups: Dict[str, List[PolicyRule]] = {}
    for rule in candidates:
        if not rule.group:
            units.append([rule])
            continue
        if rule.group in groups:
            groups[rule.group].append(rule)
            continue
        groups[rule.group] = [rule]
        units.append(groups[rule.group])

    return units


class PermissionManager:
    """Decides whether an actor may perform an action on a resource.

    Grants and rules are read through the injected repositories on every
    evaluation. Only ``check_permission`` consults the decision cache; the
    manager owns that cache and clears it through ``invalidate_cache``.
    Repository errors propagate unchanged, cache errors count as a miss.
    """

    def __init__(
        self,
        permission_repository: PermissionRepository,
        policy_rule_repository: PolicyRuleRepository,
        cache: Optional[DecisionCache] = None,
        registry: Optional[ConditionRegistry] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.logger = get_logger("permissions.engine")
        self.permission_repository = permission_repository
        self.policy_rule_repository = policy_rule_repository
        self.cache = cache if cache is not None else InMemoryDecisionCache()
        self.registry = registry if registry is not None else create_default_registry()
        self.metrics = metrics
        self.tracer = trace.get_tracer(__name__)

        # Bumped on every invalidation; results computed under an older
        # generation are not written back to the cache.
        self._generation = 0
        self._generation_lock = threading.Lock()

    # RBAC / ABAC primitives

    async def check_rbac(self, actor: Actor, action: str, resource_type: str) -> bool:
        """Whether the actor's role is granted ``action`` on ``resource_type``."""
        action = enum_value(action)
        resource_type = enum_value(resource_type)
        permissions = await self.permission_repository.find_by_role(actor.role)
        return any(
            permission.resource_type == resource_type and permission.action == action
            for permission in permissions
        )

    async def check_abac(self, actor: Actor, action: str, resource: Resource) -> bool:
        """Whether any ABAC rule unit for ``action`` holds, in priority order."""
        return await self._match_abac(actor, enum_value(action), resource) is not None

    async def _match_abac(self, actor: Actor, action: str, resource: Resource) -> Optional[List[Any]]:
        rules = await self.policy_rule_repository.find_by_resource_type(resource.resource_type)

        for unit in order_rules(rules, action):
            if all(
                self.registry.evaluate(rule.condition_type, actor, resource, rule.condition_value)
                for rule in unit
            ):
                matched = [rule.id for rule in unit]
                self.logger.debug(
                    "ABAC rule matched",
                    action=action,
                    resource_type=resource.resource_type,
                    rule_ids=matched,
                )
                return matched

        return None

    # Combinations

    async def is_authorized(self, actor: Actor, action: str, resource: Resource) -> bool:
        """Permissive check: RBAC grant OR a satisfied ABAC rule."""
        start_time = time.time()
        allowed = (
            await self.check_rbac(actor, action, resource.resource_type)
            or await self.check_abac(actor, action, resource)
        )
        self._record("permissive", allowed, start_time)
        return allowed

    async def is_strictly_authorized(self, actor: Actor, action: str, resource: Resource) -> bool:
        """Strict check: RBAC grant AND a satisfied ABAC rule."""
        start_time = time.time()
        allowed = (
            await self.check_rbac(actor, action, resource.resource_type)
            and await self.check_abac(actor, action, resource)
        )
        self._record("strict", allowed, start_time)
        return allowed

    # Cached check

    def cache_key(self, role: str, action: str, resource: Resource) -> str:
        return f"{enum_value(role)}:{enum_value(action)}:{resource.resource_type}:{resource.id}"

    async def check_permission(self, actor: Actor, action: str, resource: Resource) -> bool:
        """Cached permissive check.

        On a miss ABAC is evaluated first and RBAC only when ABAC denies;
        the result equals ``is_authorized``.
        """
        token = set_actor_context(actor.id)
        try:
            return await self._check_permission(actor, enum_value(action), resource)
        finally:
            reset_actor_context(token)

    async def _check_permission(self, actor: Actor, action: str, resource: Resource) -> bool:
        start_time = time.time()
        key = self.cache_key(actor.role, action, resource)

        with self.tracer.start_as_current_span("permissions.check_permission") as span:
            span.set_attribute("permissions.cache_key", key)

            cached = await self._cache_get(key)
            if cached is not None:
                span.set_attribute("permissions.cache_hit", True)
                self._count("decision_cache_lookups_total", result="hit")
                self._record("cached", cached, start_time)
                return cached

            span.set_attribute("permissions.cache_hit", False)
            self._count("decision_cache_lookups_total", result="miss")

            generation = self._generation
            try:
                decision = await self._evaluate(actor, action, resource)
            except AccessControlException as e:
                self.logger.error("Permission check failed", cache_key=key, error_code=e.code, error=e.message)
                if self.metrics:
                    self.metrics.record_error(e.code)
                raise

            if generation == self._generation:
                await self._cache_set(key, decision.allowed)
            else:
                self.logger.debug("Skipping cache write after invalidation", cache_key=key)

            span.set_attribute("permissions.allowed", decision.allowed)
            self._record("cached", decision.allowed, start_time)
            return decision.allowed

    async def explain(self, actor: Actor, action: str, resource: Resource) -> Decision:
        """Uncached evaluation reporting which stage granted and why."""
        with self.tracer.start_as_current_span("permissions.explain"):
            return await self._evaluate(actor, enum_value(action), resource)

    async def _evaluate(self, actor: Actor, action: str, resource: Resource) -> Decision:
        start_time = time.time()

        matched = await self._match_abac(actor, action, resource)
        if matched is not None:
            stage: Optional[DecisionStage] = DecisionStage.ABAC
        elif await self.check_rbac(actor, action, resource.resource_type):
            stage = DecisionStage.RBAC
        else:
            stage = None

        decision = Decision(
            allowed=stage is not None,
            stage=stage,
            matched_rules=matched or [],
            evaluation_time_ms=(time.time() - start_time) * 1000,
        )

        self.logger.debug(
            "Permission evaluated",
            role=actor.role,
            action=action,
            resource_type=resource.resource_type,
            resource_id=resource.id,
            allowed=decision.allowed,
            stage=stage.value if stage else None,
        )
        return decision

    # Cache management

    async def invalidate_cache(self) -> None:
        """Drop every cached decision.

        Checks issued after this returns re-read the store. A cache
        failure here is raised, since stale decisions could otherwise
        outlive a policy change.
        """
        with self._generation_lock:
            self._generation += 1

        try:
            await self.cache.invalidate()
        except Exception as e:
            self.logger.error("Decision cache invalidation failed", error=str(e))
            self._count("decision_cache_errors_total", operation="invalidate")
            raise

        self._count("decision_cache_invalidations_total")
        self.logger.info("Decision cache invalidated", generation=self._generation)

    async def _cache_get(self, key: str) -> Optional[bool]:
        try:
            return await self.cache.get(key)
        except Exception as e:
            self.logger.warning("Decision cache read failed; treating as miss", cache_key=key, error=str(e))
            self._count("decision_cache_errors_total", operation="get")
            return None

    async def _cache_set(self, key: str, value: bool) -> None:
        try:
            await self.cache.set(key, value)
        except Exception as e:
            self.logger.warning("Decision cache write failed", cache_key=key, error=str(e))
            self._count("decision_cache_errors_total", operation="set")

    # Metrics

    def _count(self, metric_name: str, **labels) -> None:
        if self.metrics:
            self.metrics.increment_counter(metric_name, **labels)

    def _record(self, mode: str, allowed: bool, start_time: float) -> None:
        if self.metrics:
            self.metrics.record_check(mode, allowed, time.time() - start_time)
