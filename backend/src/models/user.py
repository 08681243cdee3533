"""
Purpose: User model for authentication and task assignment.
Depends on: SQLALchemy, werkzeug.security
Used by: Auth service, department service, task service
"""
from werkzeug.security import generate_password_hash, check_password_hash

from backend.src.extensions import db
from backend.src.models.enums import Role
from backend.src.utils import utcnow


class User(db.Model):
    """
    User Model - Represents people who create, receive and review tasks.

    Fields:
        - id: Primary key
        - name: Display name
        - email: Unique email address (login identifier)
        - password_hash: Hashed password (never store plain passwords)
        - role: SUPER_ADMIN, MANAGER or TEAM_MEMBER
        - department_id: Department membership (optional)
        - is_active: Whether account is active
        - created_at / updated_at: Timestamps
    """

    __tablename__ = 'users'

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)

    name = db.Column(db.String(80), nullable=False)
    email = db.Column(db.String(120), unique=True, nullable=False, index=True)

    # Password stored as hash (NEVER store plaintext passwords)
    password_hash = db.Column(db.String(255), nullable=False)

    role = db.Column(db.String(20), nullable=False, default=Role.TEAM_MEMBER.value, index=True)

    # Membership is owned by this column; Department.members reads it back
    department_id = db.Column(db.Integer, db.ForeignKey('departments.id', ondelete='SET NULL'),
                              nullable=True, index=True)

    is_active = db.Column(db.Boolean, default=True, nullable=False)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    def set_password(self, password):
        """
        Hash and store password securely.

        Args:
            password (str): Plain text password from user input
        """
        self.password_hash = generate_password_hash(password)

    def check_password(self, password):
        """
        Verify password against stored hash.

        Args:
            password (str): Plain text password to verify

        Returns:
            bool: True if password matches, False otherwise
        """
        return check_password_hash(self.password_hash, password)

    def to_dict(self, include_email=False):
        """
        Convert User to dictionary (exclude sensitive data by default).

        Args:
            include_email (bool): Whether to include email in response

        Returns:
            dict: Safe user data for API responses
        """
        data = {
            'id': self.id,
            'name': self.name,
            'role': self.role,
            'department_id': self.department_id,
            'is_active': self.is_active,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }

        # Only include email if explicitly requested (e.g., for own profile)
        if include_email:
            data['email'] = self.email

        return data

    def __repr__(self):
        """String representation for debugging"""
        return f'<User {self.id}: {self.email} ({self.role})>'
