"""
Shared fixtures for permission engine tests.
"""

import pytest

from service_permissions.app.rules.models import Actor
from service_permissions.app.rules.catalog import (
    Role, QuestionTarget, inquiry, default_role_permissions, default_policy_rules,
)
from service_permissions.app.persistence.memory import (
    InMemoryPermissionRepository, InMemoryPolicyRuleRepository,
)


class CountingPermissionRepository(InMemoryPermissionRepository):
    """In-memory grant store that counts reads."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.find_calls = 0

    async def find_by_role(self, role):
        self.find_calls += 1
        return await super().find_by_role(role)


class CountingPolicyRuleRepository(InMemoryPolicyRuleRepository):
    """In-memory rule store that counts reads."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.find_calls = 0

    async def find_by_resource_type(self, resource_type):
        self.find_calls += 1
        return await super().find_by_resource_type(resource_type)


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


@pytest.fixture
def permission_repository():
    return CountingPermissionRepository(default_role_permissions())


@pytest.fixture
def policy_rule_repository():
    return CountingPolicyRuleRepository(default_policy_rules())


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def admin():
    return Actor(id=1, role=Role.ADMIN)


@pytest.fixture
def counselor():
    return Actor(id=2, role=Role.EDUCATION_COUNSELOR, department="dep1")


@pytest.fixture
def assigned_inquiry():
    """Inquiry in dep1 assigned to the counselor fixture."""
    return inquiry(
        id=1,
        author_id=3,
        department_id="dep1",
        status="open",
        assigned_to_id=2,
        question_target=QuestionTarget.CONSULTANT_INQUIRY,
    )
