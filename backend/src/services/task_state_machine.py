"""
Purpose: Status and submission transitions, with their derived-field updates
Depends on: Task model, enums, validators, errors
Used by: TaskService

Status:      To-Do -> In-Progress -> Done, with Overdue as a read-time overlay
Submission:  Not Submitted -> Pending Review -> Accepted | Rejected
             Rejected -> Pending Review (resubmission); Accepted is final

Methods mutate the Task in place and never touch the session; persisting is
the caller's job. Every method validates before it mutates, so a failed call
leaves the task unchanged.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from loguru import logger

from backend.src.models.enums import Role, SubmissionStatus, TaskStatus
from backend.src.models.task import Task
from backend.src.utils import utcnow
from backend.src.utils.errors import ConflictError, ForbiddenError, ValidationError
from backend.src.utils.validators import validate_files, validate_status


DEFAULT_ACCEPT_FEEDBACK = 'Great work! Your submission has been accepted.'


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


class TaskStateMachine:
    """Transitions for Task.status and Task.submission_status"""

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def transition(self, task: Task, new_status: Any, principal=None, now: Optional[datetime] = None) -> Task:
        """
        Apply an explicit status write.

        Args:
            task: Task to mutate
            new_status: To-Do, In-Progress or Done (Overdue is rejected)
            principal: Acting principal; team members cannot move a task out of
                Overdue except into Done. None means a system transition.
            now: Clock value used for the overdue check and completion stamps

        Raises:
            ValidationError: Unknown status or a direct Overdue write
            ForbiddenError: Team member trying to clear an overdue task
            ConflictError: Task has an accepted submission and would leave Done
        """
        now = now or utcnow()
        new_status = validate_status(new_status)

        if (principal is not None
                and principal.role == Role.TEAM_MEMBER.value
                and task.is_overdue(now)
                and new_status != TaskStatus.DONE.value):
            raise ForbiddenError('Cannot manually change overdue status')

        if (task.submission_status == SubmissionStatus.ACCEPTED.value
                and task.status == TaskStatus.DONE.value
                and new_status != TaskStatus.DONE.value):
            raise ConflictError('Task has an accepted submission and cannot be reopened')

        self._apply_status(task, new_status, now)
        return task

    def _apply_status(self, task: Task, new_status: str, now: datetime) -> None:
        old_status = task.status
        task.status = new_status

        if new_status == TaskStatus.DONE.value and old_status != TaskStatus.DONE.value:
            task.completed_at = now
            if task.deadline is not None:
                task.completed_before_deadline = now <= task.deadline
            else:
                task.completed_before_deadline = None
        elif old_status == TaskStatus.DONE.value and new_status != TaskStatus.DONE.value:
            # The on-time flag describes a completion that no longer stands
            task.completed_at = None
            task.completed_before_deadline = None

        if old_status != new_status:
            logger.info("Task {} status {} -> {}", task.id, old_status, new_status)

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    @staticmethod
    def _snapshot(task: Task, status: str, feedback: Optional[str], now: datetime) -> Dict[str, Any]:
        return {
            'submitted_code': task.submitted_code,
            'submitted_files': list(task.submitted_files or []),
            'submission_date': _iso(task.submission_date),
            'status': status,
            'feedback': feedback,
            'reviewed_at': _iso(now),
        }

    @staticmethod
    def _append_revision(task: Task, entry: Dict[str, Any]) -> None:
        # Replace the list rather than mutating it so earlier entries are untouched
        history: List[Dict[str, Any]] = list(task.revision_history or [])
        history.append(entry)
        task.revision_history = history

    def submit(self, task: Task, code: Optional[str] = None, files: Any = None,
               now: Optional[datetime] = None) -> Task:
        """
        Record a new submission, archiving the previous one first.

        Raises:
            ValidationError: Neither code nor files supplied
            ConflictError: The task's submission was already accepted
        """
        now = now or utcnow()
        code = code.strip() if isinstance(code, str) else None
        files = validate_files(files)
        if not code and not files:
            raise ValidationError('Please provide code or upload files')
        if task.submission_status == SubmissionStatus.ACCEPTED.value:
            raise ConflictError('Submission was already accepted')

        if task.has_submission:
            self._append_revision(
                task,
                self._snapshot(task, task.submission_status, task.manager_feedback, now),
            )

        task.submitted_code = code or None
        task.submitted_files = files
        task.submission_status = SubmissionStatus.PENDING_REVIEW.value
        task.submission_date = now
        task.manager_feedback = None
        logger.info("Task {} submission received (revisions: {})", task.id, len(task.revision_history or []))
        return task

    def _require_pending(self, task: Task) -> None:
        if task.submission_status != SubmissionStatus.PENDING_REVIEW.value:
            raise ConflictError(
                f"Task has no pending submission (submission status is '{task.submission_status}')"
            )

    def accept(self, task: Task, feedback: Optional[str] = None, now: Optional[datetime] = None) -> Task:
        """Accept the pending submission and complete the task"""
        now = now or utcnow()
        self._require_pending(task)

        task.submission_status = SubmissionStatus.ACCEPTED.value
        feedback = feedback.strip() if isinstance(feedback, str) else ''
        task.manager_feedback = feedback or DEFAULT_ACCEPT_FEEDBACK
        self._apply_status(task, TaskStatus.DONE.value, now)
        logger.info("Task {} submission accepted", task.id)
        return task

    def reject(self, task: Task, feedback: Optional[str], now: Optional[datetime] = None) -> Task:
        """
        Reject the pending submission and send the task back to In-Progress.

        Raises:
            ConflictError: No pending submission
            ValidationError: Empty feedback
        """
        now = now or utcnow()
        self._require_pending(task)
        feedback = feedback.strip() if isinstance(feedback, str) else ''
        if not feedback:
            raise ValidationError('Feedback is required when rejecting a submission')

        self._append_revision(task, self._snapshot(task, SubmissionStatus.REJECTED.value, feedback, now))
        task.submission_status = SubmissionStatus.REJECTED.value
        task.manager_feedback = feedback
        self._apply_status(task, TaskStatus.IN_PROGRESS.value, now)
        logger.info("Task {} submission rejected", task.id)
        return task
