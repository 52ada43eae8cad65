"""
Domain catalog for the counselling back office.

Roles, actions and resource types are configuration data for the engine:
this module holds the shipped defaults (the RBAC grant table and the seed
ABAC rules) together with the role and inquiry helper predicates used by
the supplemental condition strategies.
"""

from typing import Any, Dict, List, Optional
from enum import Enum

from .models import Actor, Resource, RolePermission, PolicyRule, ConditionType


class Role(str, Enum):
    """Back-office roles."""
    ADMIN = "admin"
    EDUCATION_COUNSELOR = "education_counselor"
    EDUCATION_COUNSELOR_LEADER = "education_counselor_leader"
    LEARNING_MANAGER = "learning_manager"
    LEARNING_MANAGER_LEADER = "learning_manager_leader"


class ResourceType(str, Enum):
    """Resource type tags."""
    INQUIRY = "inquiry"
    STUDENT = "student"
    CONSULTATION = "consultation"


class InquiryAction(str, Enum):
    CREATE = "inquiry:create"
    READ = "inquiry:read"
    UPDATE = "inquiry:update"
    DELETE = "inquiry:delete"
    ASSIGN = "inquiry:assign"
    RESOLVE = "inquiry:resolve"
    MODIFY_ASSIGNEE = "inquiry:modify_assignee"


class StudentAction(str, Enum):
    CREATE = "student:create"
    READ = "student:read"
    UPDATE = "student:update"
    DELETE = "student:delete"
    ASSIGN_CONSULTANT = "student:assign_consultant"


class ConsultationAction(str, Enum):
    CREATE = "consultation:create"
    READ = "consultation:read"
    UPDATE = "consultation:update"
    DELETE = "consultation:delete"
    SCHEDULE = "consultation:schedule"
    COMPLETE = "consultation:complete"


class QuestionTarget(str, Enum):
    """Who an inquiry is addressed to."""
    CONSULTANT_INQUIRY = "consultant_inquiry"
    TM_INQUIRY = "tm_inquiry"
    GENERAL_INQUIRY = "general_inquiry"


class InquiryStatus(str, Enum):
    OPEN = "open"
    IN_PROGRESS = "in-progress"
    CLOSED = "closed"


# Supplemental condition kinds registered by the default registry.
ACTOR_DEPARTMENT_MATCH = "actor_department_match"
ROLE_NOT = "role_not"
ROLE_IN = "role_in"
ASSIGNEE_OR_UNASSIGNED = "assignee_or_unassigned"
MODIFY_ASSIGNEE = "modify_assignee"


ROLE_PERMISSIONS: Dict[Role, Dict[ResourceType, List[str]]] = {
    Role.ADMIN: {
        ResourceType.INQUIRY: [
            InquiryAction.CREATE,
            InquiryAction.READ,
            InquiryAction.UPDATE,
            InquiryAction.DELETE,
            InquiryAction.ASSIGN,
            InquiryAction.RESOLVE,
        ],
        ResourceType.STUDENT: [
            StudentAction.CREATE,
            StudentAction.READ,
            StudentAction.UPDATE,
            StudentAction.DELETE,
            StudentAction.ASSIGN_CONSULTANT,
        ],
        ResourceType.CONSULTATION: [
            ConsultationAction.CREATE,
            ConsultationAction.READ,
            ConsultationAction.UPDATE,
            ConsultationAction.DELETE,
        ],
    },
    Role.LEARNING_MANAGER: {
        ResourceType.INQUIRY: [
            InquiryAction.CREATE,
            InquiryAction.READ,
            InquiryAction.UPDATE,
        ],
        ResourceType.CONSULTATION: [
            ConsultationAction.CREATE,
            ConsultationAction.READ,
            ConsultationAction.UPDATE,
        ],
    },
    Role.LEARNING_MANAGER_LEADER: {
        ResourceType.INQUIRY: [
            InquiryAction.CREATE,
            InquiryAction.READ,
            InquiryAction.UPDATE,
            InquiryAction.ASSIGN,
        ],
        ResourceType.CONSULTATION: [
            ConsultationAction.CREATE,
            ConsultationAction.READ,
            ConsultationAction.UPDATE,
            ConsultationAction.DELETE,
        ],
    },
    Role.EDUCATION_COUNSELOR: {
        ResourceType.INQUIRY: [
            InquiryAction.READ,
            InquiryAction.UPDATE,
            InquiryAction.RESOLVE,
        ],
        ResourceType.STUDENT: [
            StudentAction.READ,
        ],
        ResourceType.CONSULTATION: [
            ConsultationAction.CREATE,
            ConsultationAction.READ,
            ConsultationAction.UPDATE,
            ConsultationAction.COMPLETE,
        ],
    },
    Role.EDUCATION_COUNSELOR_LEADER: {
        ResourceType.INQUIRY: [
            InquiryAction.READ,
            InquiryAction.UPDATE,
            InquiryAction.RESOLVE,
            InquiryAction.ASSIGN,
        ],
        ResourceType.CONSULTATION: [
            ConsultationAction.CREATE,
            ConsultationAction.READ,
            ConsultationAction.UPDATE,
            ConsultationAction.DELETE,
        ],
    },
}


# Role helpers

def is_education_counselor(role: str) -> bool:
    return role in (Role.EDUCATION_COUNSELOR, Role.EDUCATION_COUNSELOR_LEADER)


def is_learning_manager(role: str) -> bool:
    return role in (Role.LEARNING_MANAGER, Role.LEARNING_MANAGER_LEADER)


def is_leader(role: str) -> bool:
    return role in (Role.EDUCATION_COUNSELOR_LEADER, Role.LEARNING_MANAGER_LEADER)


# Permission helpers

def can_update(role: str) -> bool:
    return is_education_counselor(role) or is_learning_manager(role)


def can_resolve(role: str) -> bool:
    return is_education_counselor(role)


def can_assign(role: str) -> bool:
    return role == Role.ADMIN or is_leader(role)


# Inquiry helpers

def is_education_counselor_inquiry(target: Optional[str]) -> bool:
    return target == QuestionTarget.CONSULTANT_INQUIRY


def is_learning_manager_inquiry(target: Optional[str]) -> bool:
    return target == QuestionTarget.TM_INQUIRY


def can_modify_assignee(
    modifier: Actor,
    assignee: Actor,
    current_target: Optional[str],
    new_target: Optional[str],
) -> bool:
    """Whether ``modifier`` may hand an inquiry over to ``assignee``.

    Admins always may. A leader may only reassign within their own team,
    and only while the inquiry stays addressed to that team.
    """
    if modifier.role == Role.ADMIN:
        return True

    counselor_leader_reassigning = (
        modifier.role == Role.EDUCATION_COUNSELOR_LEADER
        and is_education_counselor(assignee.role)
        and is_education_counselor_inquiry(current_target)
        and is_education_counselor_inquiry(new_target)
    )

    manager_leader_reassigning = (
        modifier.role == Role.LEARNING_MANAGER_LEADER
        and is_learning_manager(assignee.role)
        and is_learning_manager_inquiry(current_target)
        and is_learning_manager_inquiry(new_target)
    )

    return counselor_leader_reassigning or manager_leader_reassigning


# Resource constructors

def inquiry(
    id: int,
    author_id: int,
    department_id: str,
    status: str = InquiryStatus.OPEN,
    question_target: str = QuestionTarget.GENERAL_INQUIRY,
    assigned_to_id: Optional[int] = None,
    is_urgent: bool = False,
    **extra: Any,
) -> Resource:
    """Build an inquiry resource."""
    attributes = {
        "author_id": author_id,
        "department_id": department_id,
        "status": str(getattr(status, "value", status)),
        "question_target": str(getattr(question_target, "value", question_target)),
        "assigned_to_id": assigned_to_id,
        "is_urgent": is_urgent,
    }
    attributes.update(extra)
    return Resource(id=id, resource_type=ResourceType.INQUIRY, attributes=attributes)


def student(id: int, **attributes: Any) -> Resource:
    return Resource(id=id, resource_type=ResourceType.STUDENT, attributes=attributes)


def consultation(id: int, **attributes: Any) -> Resource:
    return Resource(id=id, resource_type=ResourceType.CONSULTATION, attributes=attributes)


# Seed data

def default_role_permissions() -> List[RolePermission]:
    """Flatten the grant table into RBAC grant records."""
    return [
        RolePermission(role=role, resource_type=resource_type, action=action)
        for role, by_type in ROLE_PERMISSIONS.items()
        for resource_type, actions in by_type.items()
        for action in actions
    ]


_COUNSELOR_ROLES = ",".join([Role.EDUCATION_COUNSELOR.value, Role.EDUCATION_COUNSELOR_LEADER.value])
_UPDATER_ROLES = ",".join([
    Role.EDUCATION_COUNSELOR.value,
    Role.EDUCATION_COUNSELOR_LEADER.value,
    Role.LEARNING_MANAGER.value,
    Role.LEARNING_MANAGER_LEADER.value,
])
_ASSIGNER_ROLES = ",".join([
    Role.ADMIN.value,
    Role.EDUCATION_COUNSELOR_LEADER.value,
    Role.LEARNING_MANAGER_LEADER.value,
])


def default_policy_rules() -> List[PolicyRule]:
    """ABAC rules shipped with the engine for inquiries."""
    return [
        # Staff read inquiries of their own department.
        PolicyRule(ResourceType.INQUIRY, InquiryAction.READ, ACTOR_DEPARTMENT_MATCH,
                   priority=100, group="inquiry-read-own-department"),
        PolicyRule(ResourceType.INQUIRY, InquiryAction.READ, ROLE_NOT, Role.ADMIN,
                   priority=100, group="inquiry-read-own-department"),
        # Counsellors and managers update inquiries that are theirs or unassigned.
        PolicyRule(ResourceType.INQUIRY, InquiryAction.UPDATE, ROLE_IN, _UPDATER_ROLES,
                   priority=100, group="inquiry-update-assignee"),
        PolicyRule(ResourceType.INQUIRY, InquiryAction.UPDATE, ASSIGNEE_OR_UNASSIGNED,
                   priority=100, group="inquiry-update-assignee"),
        # Counsellors resolve inquiries assigned to them.
        PolicyRule(ResourceType.INQUIRY, InquiryAction.RESOLVE, ROLE_IN, _COUNSELOR_ROLES,
                   priority=100, group="inquiry-resolve-assignee"),
        PolicyRule(ResourceType.INQUIRY, InquiryAction.RESOLVE, ConditionType.ASSIGNEE_CHECK,
                   priority=100, group="inquiry-resolve-assignee"),
        PolicyRule(ResourceType.INQUIRY, InquiryAction.DELETE, ConditionType.ROLE_CHECK, Role.ADMIN,
                   priority=100),
        PolicyRule(ResourceType.INQUIRY, InquiryAction.ASSIGN, ROLE_IN, _ASSIGNER_ROLES,
                   priority=100),
        PolicyRule(ResourceType.INQUIRY, InquiryAction.MODIFY_ASSIGNEE, MODIFY_ASSIGNEE,
                   priority=100),
    ]
