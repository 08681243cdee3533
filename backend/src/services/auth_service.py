"""
Purpose: Registration, login, role changes and principal lookup
Depends on: User model, DepartmentService, flask_jwt_extended, db
Used by: Auth API routes, task/department routes (principal lookup)

Bootstrap admins: emails listed in BOOTSTRAP_ADMIN_EMAILS are always
SUPER_ADMIN with no department. The rule is re-applied on every register and
login, so a pinned account heals itself if its row was edited.
"""

from typing import Any, Dict, Iterable, Optional

from flask_jwt_extended import create_access_token
from loguru import logger

from backend.src.extensions import db
from backend.src.models.department import Department
from backend.src.models.enums import Role, values
from backend.src.models.user import User
from backend.src.services.authorization import AuthorizationGate, Operation, Principal
from backend.src.services.department_service import DepartmentService
from backend.src.utils.errors import (
    AuthenticationError,
    ConflictError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
)
from backend.src.utils.validators import password_errors, validate_profile_data, validate_user_data


class AuthService:

    def __init__(self, bootstrap_admins: Iterable[str] = (),
                 departments: Optional[DepartmentService] = None,
                 gate: Optional[AuthorizationGate] = None):
        self.bootstrap_admins = {email.strip().lower() for email in bootstrap_admins if email.strip()}
        self.departments = departments or DepartmentService()
        self.gate = gate or AuthorizationGate()

    def is_bootstrap_admin(self, email: str) -> bool:
        return (email or '').strip().lower() in self.bootstrap_admins

    def _pin_admin(self, user: User) -> bool:
        """Force SUPER_ADMIN/no department on pinned accounts. Returns True if anything changed."""
        if not self.is_bootstrap_admin(user.email):
            return False
        if user.role == Role.SUPER_ADMIN.value and user.department_id is None:
            return False
        user.role = Role.SUPER_ADMIN.value
        self._leave_department(user)
        return True

    @staticmethod
    def _leave_department(user: User) -> None:
        """Detach a user from their department, vacating the head seat if they held it"""
        if user.department_id is None:
            return
        department = db.session.get(Department, user.department_id)
        if department is not None and department.head_id == user.id:
            department.head_id = None
        user.department_id = None

    def register(self, data: Dict[str, Any]) -> User:
        """
        Create a TEAM_MEMBER account (SUPER_ADMIN for pinned emails).

        A department_id, if given, must name an active department with room
        for one more member.
        """
        data = validate_user_data(data)

        if User.query.filter(User.email == data['email']).first() is not None:
            raise ConflictError('User already exists with this email')

        department_id = None
        if data.get('department_id') is not None and not self.is_bootstrap_admin(data['email']):
            department = self.departments.get_department(data['department_id'])
            self.departments.ensure_can_join(department)
            department_id = department.id

        user = User(
            name=data['name'],
            email=data['email'],
            role=Role.TEAM_MEMBER.value,
            department_id=department_id,
        )
        user.set_password(data['password'])
        self._pin_admin(user)

        db.session.add(user)
        db.session.commit()
        logger.info("Registered user {} as {}", user.id, user.role)
        return user

    def login(self, email: Any, password: Any) -> User:
        if not isinstance(email, str) or not isinstance(password, str) or not email.strip() or not password:
            raise ValidationError('Please provide email and password')
        email = email.strip().lower()
        user = User.query.filter(User.email == email).first()
        if user is None or not user.check_password(password):
            raise AuthenticationError('Invalid email or password')
        if not user.is_active:
            raise ForbiddenError('Account is inactive')

        if self._pin_admin(user):
            logger.warning("Re-asserted SUPER_ADMIN role for pinned account {}", user.id)
            db.session.commit()
        return user

    @staticmethod
    def issue_token(user: User) -> str:
        return create_access_token(identity=str(user.id), additional_claims={'role': user.role})

    @staticmethod
    def principal_for(user_id: Any) -> Principal:
        """Build the principal from the stored user, never from token claims"""
        try:
            user = db.session.get(User, int(user_id))
        except (TypeError, ValueError):
            user = None
        if user is None or not user.is_active:
            raise NotFoundError('User not found. Please login again.')
        return Principal.from_user(user)

    def change_role(self, principal: Principal, user_id: Any, role: Any) -> User:
        """Promote or demote a user (SUPER_ADMIN only)"""
        self.gate.authorize(principal, Operation.MANAGE_ROLES)
        if role not in values(Role):
            raise ValidationError(f"Role must be one of: {', '.join(sorted(values(Role)))}")

        user = db.session.get(User, int(user_id)) if str(user_id).isdigit() else None
        if user is None:
            raise NotFoundError(f"User with ID {user_id} not found")
        if self.is_bootstrap_admin(user.email) and role != Role.SUPER_ADMIN.value:
            raise ValidationError('The bootstrap admin account cannot be demoted')

        user.role = role
        if role == Role.SUPER_ADMIN.value:
            self._leave_department(user)
        db.session.commit()
        logger.info("User {} role set to {} by {}", user.id, role, principal.id)
        return user

    @staticmethod
    def _current_user(principal: Principal) -> User:
        user = db.session.get(User, principal.id)
        if user is None:
            raise NotFoundError('User not found. Please login again.')
        return user

    def update_profile(self, principal: Principal, data: Dict[str, Any]) -> User:
        """Change the caller's own name and/or email"""
        updates = validate_profile_data(data)
        user = self._current_user(principal)

        email = updates.get('email')
        if email is not None and email != user.email:
            if User.query.filter(User.email == email).first() is not None:
                raise ConflictError('User already exists with this email')
            if self.is_bootstrap_admin(email):
                raise ValidationError('This email address is reserved')

        for field, value in updates.items():
            setattr(user, field, value)
        db.session.commit()
        logger.info("User {} updated profile fields {}", user.id, sorted(updates))
        return user

    def update_password(self, principal: Principal, current_password: Any, new_password: Any) -> User:
        """
        Replace the caller's password after re-checking the current one.

        Raises:
            ValidationError: Missing or unacceptable new password
            AuthenticationError: Current password is wrong
        """
        if not isinstance(current_password, str) or not current_password:
            raise ValidationError("Field 'current_password' is required")
        errors = password_errors(new_password)
        if errors:
            raise ValidationError('; '.join(errors))

        user = self._current_user(principal)
        if not user.check_password(current_password):
            raise AuthenticationError('Current password is incorrect')

        user.set_password(new_password)
        db.session.commit()
        logger.info("User {} changed password", user.id)
        return user
