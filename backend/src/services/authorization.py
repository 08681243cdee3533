"""
Purpose: Role + ownership rules for every task operation, and listing scopes
Depends on: Task model, enums, errors
Used by: TaskService, DepartmentService, AuthService

Rules are evaluated role-first, then against the ownership fields of the
*stored* task (assigned_by / assigned_to), never against anything the client
sent. Writes that fail a rule raise ForbiddenError; listings are narrowed by
the principal's scope instead.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from loguru import logger
from sqlalchemy import or_, true

from backend.src.models.enums import Role
from backend.src.models.task import Task
from backend.src.utils.errors import ForbiddenError


@dataclass(frozen=True)
class Principal:
    """The authenticated actor: id, role and optional department id"""
    id: int
    role: str
    department: Optional[int] = None

    @classmethod
    def from_user(cls, user) -> 'Principal':
        return cls(id=user.id, role=user.role, department=user.department_id)

    @property
    def is_admin(self) -> bool:
        return self.role == Role.SUPER_ADMIN.value

    @property
    def is_manager(self) -> bool:
        return self.role == Role.MANAGER.value

    @property
    def is_team_member(self) -> bool:
        return self.role == Role.TEAM_MEMBER.value


class Operation(str, Enum):
    READ = 'read'
    CREATE = 'create'
    UPDATE = 'update'
    DELETE = 'delete'
    UPDATE_STATUS = 'update-status'
    SUBMIT = 'submit'
    REVIEW = 'review'
    COMMENT = 'comment'
    RECALCULATE_PRIORITY = 'recalculate-priority'
    MANAGE_DEPARTMENTS = 'manage-departments'
    MANAGE_ROLES = 'manage-roles'
    VIEW_SUBMISSION_FEED = 'view-submission-feed'
    VIEW_STATUS_FEED = 'view-status-feed'
    VIEW_PERFORMANCE = 'view-performance'


# ============================================================================
# LISTING SCOPES
# ============================================================================

class TaskScope:
    """Which tasks a principal can see. One variant per role."""

    def __init__(self, principal: Principal):
        self.principal = principal

    def clause(self):
        """SQLAlchemy filter expression for this scope"""
        raise NotImplementedError

    def contains(self, task: Task) -> bool:
        """In-memory equivalent of clause() for a loaded task"""
        raise NotImplementedError

    def apply(self, query):
        """Scope a Task query; archived tasks are always excluded"""
        return query.filter(self.clause(), Task.is_archived.is_(False))


class AdminScope(TaskScope):
    def clause(self):
        return true()

    def contains(self, task):
        return True


class ManagerScope(TaskScope):
    """Tasks the manager assigned, plus their department's in department-aware deployments"""

    def __init__(self, principal, department_aware=False):
        super().__init__(principal)
        self.department_aware = department_aware and principal.department is not None

    def clause(self):
        if self.department_aware:
            return or_(Task.assigned_by == self.principal.id,
                       Task.department_id == self.principal.department)
        return Task.assigned_by == self.principal.id

    def contains(self, task):
        if task.assigned_by == self.principal.id:
            return True
        return self.department_aware and task.department_id == self.principal.department


class TeamMemberScope(TaskScope):
    def clause(self):
        return Task.assigned_to == self.principal.id

    def contains(self, task):
        return task.assigned_to == self.principal.id


def scope_for(principal: Principal, department_aware: bool = False) -> TaskScope:
    if principal.is_admin:
        return AdminScope(principal)
    if principal.is_manager:
        return ManagerScope(principal, department_aware)
    if principal.is_team_member:
        return TeamMemberScope(principal)
    raise ForbiddenError(f"Unknown role '{principal.role}'")


# ============================================================================
# AUTHORIZATION GATE
# ============================================================================

class AuthorizationGate:
    """
    Predicates over (principal, operation, task).

    ``check`` returns the reason a call is refused, or None when it is allowed;
    ``can`` and ``authorize`` are the boolean and raising forms.
    """

    def __init__(self, department_aware: bool = False):
        self.department_aware = department_aware

    def check(self, principal: Principal, operation: Operation, task: Optional[Task] = None) -> Optional[str]:
        if operation in (Operation.MANAGE_DEPARTMENTS, Operation.MANAGE_ROLES):
            if not principal.is_admin:
                return 'Only Super Admin can manage departments and roles'
            return None

        if operation in (Operation.VIEW_SUBMISSION_FEED, Operation.VIEW_PERFORMANCE):
            if principal.is_team_member:
                return 'Only managers can view submissions and team performance'
            return None

        if operation == Operation.VIEW_STATUS_FEED:
            if not principal.is_team_member:
                return 'Only team members can access task status notifications'
            return None

        if operation == Operation.CREATE:
            if principal.is_team_member:
                return 'Team members cannot create tasks'
            if not (principal.is_manager or principal.is_admin):
                return f"Role '{principal.role}' cannot create tasks"
            return None

        if task is None:
            return f'Operation {operation.value} needs a task'

        if operation in (Operation.READ, Operation.COMMENT):
            if scope_for(principal, self.department_aware).contains(task):
                return None
            return 'Not authorized to access this task'

        if operation == Operation.SUBMIT:
            if task.assigned_to != principal.id:
                return 'Only the assigned team member can submit a solution'
            return None

        if operation == Operation.REVIEW:
            if principal.is_team_member:
                return 'Team members cannot review submissions'
            if task.assigned_by != principal.id:
                return 'Only the manager who assigned this task can review it'
            return None

        if operation == Operation.UPDATE_STATUS:
            if principal.is_team_member:
                if task.assigned_to != principal.id:
                    return 'You can only update tasks assigned to you'
                return None
            return self._owner_rule(principal, task, 'update')

        if operation in (Operation.UPDATE, Operation.DELETE, Operation.RECALCULATE_PRIORITY):
            if principal.is_team_member:
                return f'Team members cannot {operation.value.replace("-", " ")} tasks'
            verb = 'update' if operation != Operation.DELETE else 'delete'
            return self._owner_rule(principal, task, verb)

        return f'Unknown operation {operation.value}'

    @staticmethod
    def _owner_rule(principal, task, verb):
        if principal.is_admin:
            return None
        if principal.is_manager and task.assigned_by == principal.id:
            return None
        return f'Only the manager who created this task can {verb} it'

    def can(self, principal, operation, task=None) -> bool:
        return self.check(principal, operation, task) is None

    def authorize(self, principal, operation, task=None) -> None:
        reason = self.check(principal, operation, task)
        if reason is not None:
            logger.warning(
                "Denied {} for user {} ({}) on task {}: {}",
                operation.value, principal.id, principal.role,
                task.id if task is not None else '-', reason,
            )
            raise ForbiddenError(reason)

    def scope(self, principal: Principal) -> TaskScope:
        return scope_for(principal, self.department_aware)
