"""
Purpose: Fire-and-forget notifications and the deadline reminder scan
Depends on: Task model, db, loguru
Used by: TaskService (after commit), `flask send-reminders`, notification routes

Delivery itself is out of scope: LogNotifier writes the notification to the
log. Whatever notifier is configured gets wrapped in SafeNotifier so a failed
delivery can never fail the task operation that triggered it.
"""

from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from loguru import logger

from backend.src.extensions import db
from backend.src.models.enums import SubmissionStatus, TaskStatus
from backend.src.models.task import Task
from backend.src.services.authorization import AuthorizationGate, Operation, Principal
from backend.src.utils import utcnow
from backend.src.utils.errors import ConflictError, NotFoundError, ValidationError


TASK_ASSIGNED = 'task_assigned'
SUBMISSION_RECEIVED = 'submission_received'
SUBMISSION_ACCEPTED = 'submission_accepted'
SUBMISSION_REJECTED = 'submission_rejected'
DEADLINE_REMINDER = 'deadline_reminder'

# Look-back/look-ahead of the in-app notification feeds
FEED_DAYS = 7

REVIEWED = (SubmissionStatus.ACCEPTED.value, SubmissionStatus.REJECTED.value)


class Notifier:
    def notify(self, kind: str, task: Task, recipient_id: Optional[int]) -> None:
        raise NotImplementedError


class LogNotifier(Notifier):
    """Writes notifications to the application log"""

    def notify(self, kind, task, recipient_id):
        logger.info("Notification {} for user {}: task {} '{}'", kind, recipient_id, task.id, task.title)


class SafeNotifier(Notifier):
    """Swallows and logs delivery failures of the wrapped notifier"""

    def __init__(self, inner: Notifier):
        self.inner = inner

    def notify(self, kind, task, recipient_id):
        if recipient_id is None:
            return
        try:
            self.inner.notify(kind, task, recipient_id)
        except Exception:
            logger.exception("Notification {} for task {} failed", kind, task.id)


class NotificationService:
    """
    Deadline reminders, run periodically by an external scheduler, and the
    read-only feeds behind /api/notifications.
    """

    def __init__(self, notifier: Notifier, window_hours: int = 24,
                 gate: Optional[AuthorizationGate] = None):
        self.notifier = notifier
        self.window = timedelta(hours=window_hours)
        self.gate = gate or AuthorizationGate()

    def claim_reminder(self, task_id: int) -> bool:
        """
        Set reminder_sent if it is still false.

        Returns True only for the caller whose UPDATE flipped the flag, so two
        overlapping scans never remind twice.
        """
        claimed = (
            Task.query
            .filter(Task.id == task_id, Task.reminder_sent.is_(False))
            .update({Task.reminder_sent: True}, synchronize_session=False)
        )
        db.session.commit()
        return claimed == 1

    def upcoming_tasks(self, now: datetime) -> List[Task]:
        return (
            Task.query
            .filter(
                Task.status != TaskStatus.DONE.value,
                Task.deadline.isnot(None),
                Task.deadline >= now,
                Task.deadline <= now + self.window,
                Task.reminder_sent.is_(False),
                Task.is_archived.is_(False),
            )
            .order_by(Task.deadline.asc())
            .all()
        )

    def check_deadlines(self, now: Optional[datetime] = None) -> int:
        """
        Send one reminder per task due within the window.

        Returns:
            int: Number of reminders sent by this scan
        """
        now = now or utcnow()
        tasks = self.upcoming_tasks(now)
        logger.info("Found {} tasks with approaching deadlines", len(tasks))

        sent = 0
        for task in tasks:
            if not self.claim_reminder(task.id):
                continue
            self.notifier.notify(DEADLINE_REMINDER, task, task.assigned_to)
            sent += 1

        logger.info("Deadline check completed, {} reminders sent", sent)
        return sent

    # ------------------------------------------------------------------
    # Feeds
    # ------------------------------------------------------------------

    @staticmethod
    def _feed_item(task: Task, *fields: str) -> Dict[str, Any]:
        item = {'id': task.id, 'title': task.title}
        for field in fields:
            value = getattr(task, field)
            item[field] = value.isoformat() if isinstance(value, datetime) else value
        return item

    def upcoming_deadlines(self, principal: Principal, now: Optional[datetime] = None,
                           days: int = FEED_DAYS) -> List[Dict[str, Any]]:
        """Open tasks in the principal's scope due within the next `days` days, soonest first"""
        now = now or utcnow()
        tasks = (
            self.gate.scope(principal).apply(Task.query)
            .filter(
                Task.status != TaskStatus.DONE.value,
                Task.deadline.isnot(None),
                Task.deadline >= now,
                Task.deadline <= now + timedelta(days=days),
            )
            .order_by(Task.deadline.asc())
            .all()
        )
        return [self._feed_item(t, 'deadline', 'priority', 'status', 'assigned_to', 'assigned_by')
                for t in tasks]

    def submission_feed(self, principal: Principal, now: Optional[datetime] = None,
                        days: int = FEED_DAYS) -> Dict[str, Any]:
        """Pending submissions on tasks the principal assigned, plus recent reviews"""
        self.gate.authorize(principal, Operation.VIEW_SUBMISSION_FEED)
        now = now or utcnow()
        mine = Task.query.filter(Task.assigned_by == principal.id, Task.is_archived.is_(False))

        pending = (
            mine.filter(Task.submission_status == SubmissionStatus.PENDING_REVIEW.value)
            .order_by(Task.submission_date.desc())
            .all()
        )
        reviewed = (
            mine.filter(
                Task.submission_status.in_(REVIEWED),
                Task.submission_date >= now - timedelta(days=days),
            )
            .order_by(Task.submission_date.desc())
            .all()
        )
        return {
            'pending_count': len(pending),
            'pending_submissions': [self._feed_item(t, 'submission_date', 'assigned_to') for t in pending],
            'recent_reviews': [
                self._feed_item(t, 'submission_date', 'submission_status', 'assigned_to') for t in reviewed
            ],
        }

    def status_feed(self, principal: Principal, now: Optional[datetime] = None,
                    days: int = FEED_DAYS) -> List[Dict[str, Any]]:
        """Reviews of the team member's own submissions in the last `days` days"""
        self.gate.authorize(principal, Operation.VIEW_STATUS_FEED)
        now = now or utcnow()
        tasks = (
            Task.query
            .filter(
                Task.assigned_to == principal.id,
                Task.is_archived.is_(False),
                Task.submission_status.in_(REVIEWED),
                Task.submission_date >= now - timedelta(days=days),
            )
            .order_by(Task.submission_date.desc())
            .all()
        )
        return [
            self._feed_item(t, 'submission_date', 'submission_status', 'manager_feedback', 'assigned_by')
            for t in tasks
        ]

    def send_reminder(self, principal: Principal, task_id: Any) -> Task:
        """Remind the assignee of a task on demand; bypasses reminder_sent"""
        try:
            task = db.session.get(Task, int(task_id))
        except (TypeError, ValueError):
            task = None
        if task is None:
            raise NotFoundError(f"Task with ID {task_id} not found")
        self.gate.authorize(principal, Operation.READ, task)
        if task.deadline is None:
            raise ValidationError('Task has no deadline to be reminded of')
        if task.status == TaskStatus.DONE.value:
            raise ConflictError('Task is already done')

        self.notifier.notify(DEADLINE_REMINDER, task, task.assigned_to)
        logger.info("Manual reminder for task {} sent by {}", task.id, principal.id)
        return task
