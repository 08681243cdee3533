from backend.src.extensions import db
from backend.src.utils import utcnow


class Department(db.Model):
    """
    Department Model - A group of users a manager heads.

    Fields:
        - id: Primary key
        - name: Unique department name (max 100 chars)
        - description / color: Presentation details
        - head_id: User id of the department head; must be one of the members
        - members: Users whose department_id points here
        - max_members: Capacity, enforced when a member is added
        - is_active: False once soft-deleted
        - created_by: SUPER_ADMIN who created it
    """
    __tablename__ = 'departments'

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    name = db.Column(db.String(100), unique=True, nullable=False, index=True)
    description = db.Column(db.String(500), nullable=True)
    color = db.Column(db.String(20), nullable=False, default='#3b82f6')

    # Plain column: users.department_id already references this table and a
    # second foreign key back to users would make the pair cyclic
    head_id = db.Column(db.Integer, nullable=True, index=True)

    max_members = db.Column(db.Integer, nullable=False, default=5)
    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)
    created_by = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    members = db.relationship(
        'User',
        foreign_keys='User.department_id',
        backref='department',
        lazy='selectin',
    )

    @property
    def member_ids(self):
        return {member.id for member in self.members}

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'description': self.description,
            'color': self.color,
            'head_id': self.head_id,
            'members': sorted(self.member_ids),
            'member_count': len(self.members),
            'max_members': self.max_members,
            'is_active': self.is_active,
            'created_by': self.created_by,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f'<Department {self.id}: {self.name}>'
