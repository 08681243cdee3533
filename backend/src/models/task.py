from datetime import datetime
from typing import Optional

from sqlalchemy import and_

from backend.src.extensions import db
from backend.src.models.enums import Category, Priority, SubmissionStatus, TaskStatus
from backend.src.utils import utcnow


class Task(db.Model):
    """
    Task Model - A unit of work a manager assigns to a team member.

    Fields:
        - id: Primary key (auto-generated)
        - title / description: Task content (title required, max 200 chars)
        - category: Work, Personal, Urgent, Important or Other
        - tags: Ordered list of unique strings
        - estimated_time / actual_time: Minutes
        - user_id: Creator
        - assigned_by: Manager/admin who created the task
        - assigned_to: Team member responsible for it
        - department_id: Department the task belongs to (optional)
        - status: To-Do, In-Progress or Done (Overdue is derived, never stored)
        - priority / ai_priority_score: Derived from the priority engine
        - deadline / completed_at / completed_before_deadline: Deadline tracking
        - submitted_code / submitted_files / submission_status / submission_date /
          manager_feedback / revision_history: Review workflow
        - comments / subtasks / attachments: Collaboration
        - is_archived / reminder_sent: Flags
        - version: Optimistic concurrency token
    """
    __tablename__ = 'tasks'

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)

    # Content
    title = db.Column(db.String(200), nullable=False, index=True)
    description = db.Column(db.Text, nullable=True)
    category = db.Column(db.String(20), nullable=False, default=Category.OTHER.value, index=True)
    tags = db.Column(db.JSON, nullable=False, default=list)
    estimated_time = db.Column(db.Float, nullable=True)
    actual_time = db.Column(db.Float, nullable=True)

    # Ownership
    user_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    assigned_by = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True)
    assigned_to = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True)
    department_id = db.Column(db.Integer, db.ForeignKey('departments.id', ondelete='SET NULL'),
                              nullable=True, index=True)

    # Status and priority
    status = db.Column(db.String(20), nullable=False, default=TaskStatus.TODO.value, index=True)
    priority = db.Column(db.String(10), nullable=False, default=Priority.MEDIUM.value, index=True)
    ai_priority_score = db.Column(db.Integer, nullable=False, default=50)

    # Deadline tracking
    deadline = db.Column(db.DateTime, nullable=True, index=True)
    completed_at = db.Column(db.DateTime, nullable=True)
    # Tri-state: True, False or NULL (unknown)
    completed_before_deadline = db.Column(db.Boolean, nullable=True, default=None)

    # Submission workflow
    submitted_code = db.Column(db.Text, nullable=True)
    submitted_files = db.Column(db.JSON, nullable=False, default=list)
    submission_status = db.Column(db.String(20), nullable=False,
                                  default=SubmissionStatus.NOT_SUBMITTED.value, index=True)
    submission_date = db.Column(db.DateTime, nullable=True)
    manager_feedback = db.Column(db.Text, nullable=True)
    revision_history = db.Column(db.JSON, nullable=False, default=list)

    # Collaboration
    comments = db.Column(db.JSON, nullable=False, default=list)
    subtasks = db.Column(db.JSON, nullable=False, default=list)
    attachments = db.Column(db.JSON, nullable=False, default=list)

    # Flags
    is_archived = db.Column(db.Boolean, nullable=False, default=False, index=True)
    reminder_sent = db.Column(db.Boolean, nullable=False, default=False)

    version = db.Column(db.Integer, nullable=False)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    # Every ORM UPDATE carries "AND version = ?" so concurrent writers collide
    __mapper_args__ = {'version_id_col': version}

    assignee = db.relationship('User', foreign_keys=[assigned_to], lazy='joined')
    assigner = db.relationship('User', foreign_keys=[assigned_by], lazy='joined')

    def is_overdue(self, now: Optional[datetime] = None) -> bool:
        now = now or utcnow()
        return (
            self.deadline is not None
            and self.deadline < now
            and self.status != TaskStatus.DONE.value
        )

    def effective_status(self, now: Optional[datetime] = None) -> str:
        """Stored status with the Overdue overlay applied"""
        if self.is_overdue(now):
            return TaskStatus.OVERDUE.value
        return self.status

    @classmethod
    def overdue_clause(cls, now: datetime):
        """SQL form of is_overdue, for filtering the virtual Overdue status"""
        return and_(
            cls.deadline.isnot(None),
            cls.deadline < now,
            cls.status != TaskStatus.DONE.value,
        )

    @property
    def has_submission(self) -> bool:
        return bool(self.submitted_code) or bool(self.submitted_files)

    @property
    def progress(self) -> int:
        """Percent of subtasks completed (or 100/0 by status when there are none)"""
        if not self.subtasks:
            return 100 if self.status == TaskStatus.DONE.value else 0
        done = sum(1 for subtask in self.subtasks if subtask.get('completed'))
        return round(done / len(self.subtasks) * 100)

    def scoring_attributes(self) -> dict:
        """The fields the priority engine reads"""
        return {
            'deadline': self.deadline,
            'category': self.category,
            'estimated_time': self.estimated_time,
            'tags': self.tags or [],
            'priority': self.priority,
            'title': self.title,
            'description': self.description,
        }

    def to_dict(self, now: Optional[datetime] = None):
        """
        Convert Task object to dictionary for JSON serialization.

        The reported status is the effective one, so an unfinished task past
        its deadline reads as Overdue without anything being stored.
        """
        return {
            'id': self.id,
            'title': self.title,
            'description': self.description,
            'category': self.category,
            'tags': list(self.tags or []),
            'estimated_time': self.estimated_time,
            'actual_time': self.actual_time,
            'user_id': self.user_id,
            'assigned_by': self.assigned_by,
            'assigned_to': self.assigned_to,
            'assignee': {
                'id': self.assignee.id,
                'name': self.assignee.name,
                'email': self.assignee.email,
                'role': self.assignee.role,
            } if self.assignee else None,
            'assigner': {
                'id': self.assigner.id,
                'name': self.assigner.name,
                'email': self.assigner.email,
                'role': self.assigner.role,
            } if self.assigner else None,
            'department_id': self.department_id,
            'status': self.effective_status(now),
            'priority': self.priority,
            'ai_priority_score': self.ai_priority_score,
            'deadline': self.deadline.isoformat() if self.deadline else None,
            'completed_at': self.completed_at.isoformat() if self.completed_at else None,
            'completed_before_deadline': self.completed_before_deadline,
            'submitted_code': self.submitted_code,
            'submitted_files': list(self.submitted_files or []),
            'submission_status': self.submission_status,
            'submission_date': self.submission_date.isoformat() if self.submission_date else None,
            'manager_feedback': self.manager_feedback,
            'revision_history': list(self.revision_history or []),
            'comments': list(self.comments or []),
            'subtasks': list(self.subtasks or []),
            'attachments': list(self.attachments or []),
            'progress': self.progress,
            'is_archived': self.is_archived,
            'reminder_sent': self.reminder_sent,
            'version': self.version,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        """String representation for debugging"""
        return f'<Task {self.id}: {self.title} ({self.status})>'
