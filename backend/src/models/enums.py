"""
Enumerations for roles, task status, priority, category and submission state.

All of them mix in ``str`` so members compare equal to the raw values stored
in the database and sent over the wire ('To-Do' == TaskStatus.TODO).
"""

from enum import Enum


class Role(str, Enum):
    SUPER_ADMIN = 'SUPER_ADMIN'
    MANAGER = 'MANAGER'
    TEAM_MEMBER = 'TEAM_MEMBER'


class TaskStatus(str, Enum):
    TODO = 'To-Do'
    IN_PROGRESS = 'In-Progress'
    DONE = 'Done'
    # Derived at read time, never stored
    OVERDUE = 'Overdue'


# Values a caller may write into Task.status
WRITABLE_STATUSES = {TaskStatus.TODO.value, TaskStatus.IN_PROGRESS.value, TaskStatus.DONE.value}


class Priority(str, Enum):
    HIGH = 'High'
    MEDIUM = 'Medium'
    LOW = 'Low'


class Category(str, Enum):
    WORK = 'Work'
    PERSONAL = 'Personal'
    URGENT = 'Urgent'
    IMPORTANT = 'Important'
    OTHER = 'Other'


class SubmissionStatus(str, Enum):
    NOT_SUBMITTED = 'Not Submitted'
    PENDING_REVIEW = 'Pending Review'
    ACCEPTED = 'Accepted'
    REJECTED = 'Rejected'


def values(enum_cls):
    """Set of raw string values for an enum class"""
    return {member.value for member in enum_cls}
