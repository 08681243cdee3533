"""
Purpose: Department lookups used by the task core, plus membership management
Depends on: Department, User and Task models, AuthorizationGate, db
Used by: TaskService (is_active), AuthService (joining at registration), API routes

Membership lives on users.department_id, so adding or removing a member is a
write to the User row and a department's member count is always a query.
Capacity (max_members) is checked when a member is added, never retroactively.
"""

from typing import Any, Dict, List, Optional

from loguru import logger

from backend.src.extensions import db
from backend.src.models.department import Department
from backend.src.models.enums import Role, TaskStatus
from backend.src.models.task import Task
from backend.src.models.user import User
from backend.src.services.authorization import AuthorizationGate, Operation, Principal
from backend.src.utils.errors import ConflictError, InvariantViolation, NotFoundError, ValidationError


DEFAULT_MAX_MEMBERS = 5
MAX_MEMBERS_LIMIT = 100


class DepartmentService:
    """Department collaborator and SUPER_ADMIN-only membership management"""

    def __init__(self, gate: Optional[AuthorizationGate] = None):
        self.gate = gate or AuthorizationGate()

    # ------------------------------------------------------------------
    # Lookups consumed by the task core
    # ------------------------------------------------------------------

    @staticmethod
    def get_department(department_id: int) -> Department:
        department = db.session.get(Department, department_id)
        if department is None:
            raise NotFoundError(f"Department with ID {department_id} not found")
        return department

    def is_active(self, department_id: int) -> bool:
        return bool(self.get_department(department_id).is_active)

    def member_count(self, department_id: int) -> int:
        self.get_department(department_id)
        return User.query.filter(User.department_id == department_id).count()

    def max_members(self, department_id: int) -> int:
        return self.get_department(department_id).max_members

    def ensure_can_join(self, department: Department) -> None:
        """Raise ValidationError unless one more member fits"""
        if not department.is_active:
            raise ValidationError('This department is currently inactive')
        if self.member_count(department.id) >= department.max_members:
            raise ValidationError(
                f'Department has reached maximum capacity ({department.max_members} members)'
            )

    @staticmethod
    def check_invariants(department: Department) -> None:
        """The head, when set, must be one of the members"""
        if department.head_id is None:
            return
        head = db.session.get(User, department.head_id)
        if head is None or head.department_id != department.id:
            raise InvariantViolation(
                f'Department {department.id} head {department.head_id} is not a member'
            )

    # ------------------------------------------------------------------
    # Management (SUPER_ADMIN only)
    # ------------------------------------------------------------------

    @staticmethod
    def _get_user(user_id: Any) -> User:
        try:
            user_id = int(user_id)
        except (TypeError, ValueError):
            raise ValidationError('user_id must be an integer')
        user = db.session.get(User, user_id)
        if user is None:
            raise NotFoundError(f"User with ID {user_id} not found")
        return user

    def _join(self, department: Department, user: User) -> None:
        if user.role == Role.SUPER_ADMIN.value:
            raise ValidationError('Super Admin cannot belong to a department')
        if user.department_id == department.id:
            raise ValidationError('User is already a member of this department')
        if user.department_id is not None:
            previous = db.session.get(Department, user.department_id)
            if previous is not None and previous.head_id == user.id:
                raise ValidationError(
                    f"User heads department '{previous.name}'; assign a new head there first"
                )
        self.ensure_can_join(department)
        user.department_id = department.id

    @staticmethod
    def _validate_name(name: Any, current: Optional[Department] = None) -> str:
        name = name.strip() if isinstance(name, str) else ''
        if not name:
            raise ValidationError("Field 'name' is required")
        if len(name) > 100:
            raise ValidationError('Department name cannot exceed 100 characters')
        clash = Department.query.filter(Department.name == name).first()
        if clash is not None and clash is not current:
            raise ValidationError('Department with this name already exists')
        return name

    @staticmethod
    def _validate_max_members(max_members: Any) -> int:
        if isinstance(max_members, bool) or not isinstance(max_members, int) \
                or not 1 <= max_members <= MAX_MEMBERS_LIMIT:
            raise ValidationError(f'max_members must be an integer between 1 and {MAX_MEMBERS_LIMIT}')
        return max_members

    def list_departments(self) -> List[Department]:
        """Active departments, newest first"""
        return (
            Department.query
            .filter(Department.is_active.is_(True))
            .order_by(Department.created_at.desc(), Department.id.desc())
            .all()
        )

    def create_department(self, principal: Principal, data: Dict[str, Any]) -> Department:
        self.gate.authorize(principal, Operation.MANAGE_DEPARTMENTS)

        name = self._validate_name(data.get('name'))
        max_members = self._validate_max_members(data.get('max_members', DEFAULT_MAX_MEMBERS))

        department = Department(
            name=name,
            description=data.get('description'),
            color=data.get('color') or '#3b82f6',
            max_members=max_members,
            created_by=principal.id,
        )
        db.session.add(department)
        db.session.flush()

        if data.get('head_id') is not None:
            self._assign_head(department, self._get_user(data['head_id']))

        self.check_invariants(department)
        db.session.commit()
        logger.info("Department {} '{}' created by {}", department.id, department.name, principal.id)
        return department

    def update_department(self, principal: Principal, department_id: int, data: Dict[str, Any]) -> Department:
        """
        Edit name, description, color, capacity and/or head.

        Capacity cannot drop below the current member count. A new head is
        handled exactly like set_head.
        """
        self.gate.authorize(principal, Operation.MANAGE_DEPARTMENTS)
        department = self.get_department(department_id)
        if not department.is_active:
            raise ValidationError('This department is currently inactive')

        if 'name' in data:
            department.name = self._validate_name(data['name'], current=department)
        if 'description' in data:
            department.description = data['description']
        if data.get('color'):
            department.color = data['color']
        if 'max_members' in data:
            max_members = self._validate_max_members(data['max_members'])
            members = self.member_count(department.id)
            if max_members < members:
                raise ValidationError(
                    f'max_members cannot be lower than the current member count ({members})'
                )
            department.max_members = max_members
        if data.get('head_id') is not None:
            self._assign_head(department, self._get_user(data['head_id']))

        db.session.flush()
        self.check_invariants(department)
        db.session.commit()
        logger.info("Department {} updated by {}: {}", department.id, principal.id, sorted(data))
        return department

    def add_member(self, principal: Principal, department_id: int, user_id: Any) -> Department:
        self.gate.authorize(principal, Operation.MANAGE_DEPARTMENTS)
        department = self.get_department(department_id)
        user = self._get_user(user_id)

        self._join(department, user)
        db.session.commit()
        logger.info("User {} joined department {}", user.id, department.id)
        return department

    def remove_member(self, principal: Principal, department_id: int, user_id: Any) -> Department:
        self.gate.authorize(principal, Operation.MANAGE_DEPARTMENTS)
        department = self.get_department(department_id)
        user = self._get_user(user_id)

        if user.department_id != department.id:
            raise ValidationError('User is not a member of this department')
        if department.head_id == user.id:
            raise ValidationError('Cannot remove department head. Please assign a new head first.')

        user.department_id = None
        db.session.commit()
        logger.info("User {} left department {}", user.id, department.id)
        return department

    def _assign_head(self, department: Department, user: User) -> None:
        if user.department_id != department.id:
            self._join(department, user)

        if department.head_id is not None and department.head_id != user.id:
            old_head = db.session.get(User, department.head_id)
            if old_head is not None and old_head.role == Role.MANAGER.value:
                old_head.role = Role.TEAM_MEMBER.value

        department.head_id = user.id
        user.role = Role.MANAGER.value

    def set_head(self, principal: Principal, department_id: int, user_id: Any) -> Department:
        self.gate.authorize(principal, Operation.MANAGE_DEPARTMENTS)
        department = self.get_department(department_id)
        if not department.is_active:
            raise ValidationError('This department is currently inactive')

        self._assign_head(department, self._get_user(user_id))
        db.session.flush()
        self.check_invariants(department)
        db.session.commit()
        logger.info("User {} now heads department {}", department.head_id, department.id)
        return department

    def delete_department(self, principal: Principal, department_id: int) -> Department:
        """
        Soft-delete a department.

        Blocked while the department has tasks that are not Done. Members are
        detached and demoted to TEAM_MEMBER.
        """
        self.gate.authorize(principal, Operation.MANAGE_DEPARTMENTS)
        department = self.get_department(department_id)

        active_tasks = Task.query.filter(
            Task.department_id == department.id,
            Task.status != TaskStatus.DONE.value,
        ).count()
        if active_tasks > 0:
            raise ConflictError(
                f'Cannot delete department with {active_tasks} active tasks. '
                'Please complete or reassign them first.'
            )

        for member in User.query.filter(User.department_id == department.id).all():
            member.department_id = None
            if member.role != Role.SUPER_ADMIN.value:
                member.role = Role.TEAM_MEMBER.value

        department.head_id = None
        department.is_active = False
        db.session.commit()
        logger.info("Department {} deactivated by {}", department.id, principal.id)
        return department
