"""
Purpose: Business logic for task operations (CRUD, status, review, comments)
Depends on: Task/User models, AuthorizationGate, PriorityEngine, TaskStateMachine,
            DepartmentService, notifier, db
Used by: API routes
Task Service Layer - Contains all business logic for task operations.
Separates business rules from API routes for better testability and reusability.

Every write follows the same path:
    load (404) -> authorize against the stored row (403) -> validate (400)
    -> score / transition -> commit (409 on a concurrent write) -> notify
"""

from datetime import timedelta
from typing import Any, Callable, Dict, Iterable, List, Optional

from loguru import logger
from sqlalchemy import and_, not_, or_
from sqlalchemy.orm.exc import StaleDataError

from backend.src.extensions import db
from backend.src.models.enums import Category, Priority, Role, TaskStatus, values
from backend.src.models.task import Task
from backend.src.models.user import User
from backend.src.services import notification_service as notifications
from backend.src.services.authorization import AuthorizationGate, Operation, Principal
from backend.src.services.department_service import DepartmentService
from backend.src.services.notification_service import LogNotifier, Notifier, SafeNotifier
from backend.src.services.priority_engine import PriorityScorer, RuleBasedScorer, recommend
from backend.src.services.task_state_machine import TaskStateMachine
from backend.src.utils import utcnow
from backend.src.utils.errors import ConflictError, NotFoundError, TaskManagerError, ValidationError
from backend.src.utils.validators import validate_comment, validate_task_data


# Changing any of these re-scores the task
SCORING_FIELDS = {'deadline', 'category', 'estimated_time', 'tags'}

SORT_OPTIONS = {'priority', 'deadline', 'created'}

MAX_PERIOD_DAYS = 365


class TaskService:
    """Service class for task-related business operations"""

    def __init__(
        self,
        gate: Optional[AuthorizationGate] = None,
        scorer: Optional[PriorityScorer] = None,
        state_machine: Optional[TaskStateMachine] = None,
        departments: Optional[DepartmentService] = None,
        notifier: Optional[Notifier] = None,
        max_per_page: int = 100,
        clock: Callable = utcnow,
    ):
        self.gate = gate or AuthorizationGate()
        self.scorer = scorer or RuleBasedScorer()
        self.state_machine = state_machine or TaskStateMachine()
        self.departments = departments or DepartmentService(self.gate)
        notifier = notifier or LogNotifier()
        self.notifier = notifier if isinstance(notifier, SafeNotifier) else SafeNotifier(notifier)
        self.max_per_page = max_per_page
        self.clock = clock

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _load(task_id: Any) -> Task:
        try:
            task = db.session.get(Task, int(task_id))
        except (TypeError, ValueError):
            task = None
        if task is None:
            raise NotFoundError(f"Task with ID {task_id} not found")
        return task

    @staticmethod
    def _commit() -> None:
        """Commit, turning a lost optimistic-concurrency race into a ConflictError"""
        try:
            db.session.commit()
        except StaleDataError:
            db.session.rollback()
            logger.warning("Concurrent modification detected, transaction rolled back")
            raise ConflictError('Task was modified concurrently; reload and retry')

    @staticmethod
    def _require_user(user_id: int, field: str) -> User:
        user = db.session.get(User, user_id)
        if user is None or not user.is_active:
            raise NotFoundError(f"{field} user with ID {user_id} not found")
        return user

    def _require_assignee(self, user_id: int) -> User:
        """Tasks are only ever assigned to an active team member"""
        user = self._require_user(user_id, 'Assignee')
        if user.role != Role.TEAM_MEMBER.value:
            raise ValidationError('Tasks can only be assigned to team members')
        return user

    def _require_active_department(self, department_id: int) -> None:
        if not self.departments.is_active(department_id):
            raise ValidationError('This department is currently inactive')

    def _apply_score(self, task: Task, attrs: Dict[str, Any], now) -> None:
        score, tier = self.scorer.score_and_tier(attrs, now)
        task.ai_priority_score = score
        task.priority = tier

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------

    def create_task(self, principal: Principal, data: Dict[str, Any]) -> Task:
        """
        Create a new task and assign it.

        Args:
            principal: Acting manager or admin
            data: Dictionary with task fields (title and assigned_to required)

        Returns:
            Task: Created task object, scored and tiered

        Raises:
            ForbiddenError: Principal cannot create tasks
            ValidationError: If validation fails
            NotFoundError: Assignee or department doesn't exist
        """
        self.gate.authorize(principal, Operation.CREATE)
        if not data:
            raise ValidationError('No data provided')
        if not data.get('assigned_to'):
            raise ValidationError('Please assign this task to a team member')
        validated = validate_task_data(data, required_fields=['title', 'assigned_to'])
        now = self.clock()

        self._require_assignee(validated['assigned_to'])

        # A manager's own department wins over anything supplied
        if principal.department is not None:
            validated['department_id'] = principal.department
        if validated.get('department_id') is not None:
            self._require_active_department(validated['department_id'])

        task = Task(
            title=validated['title'],
            description=validated.get('description'),
            category=validated.get('category') or Category.OTHER.value,
            tags=validated.get('tags', []),
            estimated_time=validated.get('estimated_time'),
            actual_time=validated.get('actual_time'),
            deadline=validated.get('deadline'),
            subtasks=validated.get('subtasks', []),
            attachments=validated.get('attachments', []),
            is_archived=validated.get('is_archived', False),
            department_id=validated.get('department_id'),
            user_id=principal.id,
            assigned_by=principal.id,
            assigned_to=validated['assigned_to'],
            status=TaskStatus.TODO.value,
            submitted_files=[],
            revision_history=[],
            comments=[],
        )
        # Caller-supplied priority is only a scoring hint; the tier replaces it
        attrs = task.scoring_attributes()
        attrs['priority'] = validated.get('priority')
        self._apply_score(task, attrs, now)

        db.session.add(task)
        self._commit()
        logger.info("Task {} created by {} for {} (score {})",
                    task.id, principal.id, task.assigned_to, task.ai_priority_score)

        self.notifier.notify(notifications.TASK_ASSIGNED, task, task.assigned_to)
        return task

    def get_task(self, principal: Principal, task_id: Any) -> Task:
        task = self._load(task_id)
        self.gate.authorize(principal, Operation.READ, task)
        return task

    def list_tasks(
        self,
        principal: Principal,
        status: Optional[str] = None,
        priority: Optional[str] = None,
        category: Optional[str] = None,
        search: Optional[str] = None,
        sort_by: Optional[str] = None,
        page: int = 1,
        per_page: int = 20,
    ) -> Dict[str, Any]:
        """
        Get the principal's filtered and paginated tasks.

        The principal's scope is always applied and archived tasks are never
        returned. Filtering on Overdue selects unfinished tasks past their
        deadline; filtering on To-Do/In-Progress leaves those out.

        Returns:
            dict: Contains 'tasks', 'total', 'page', 'per_page', 'pages'
        """
        now = self.clock()
        query = self.gate.scope(principal).apply(Task.query)

        if status:
            if status not in values(TaskStatus):
                raise ValidationError(f"Status must be one of: {', '.join(sorted(values(TaskStatus)))}")
            if status == TaskStatus.OVERDUE.value:
                query = query.filter(Task.overdue_clause(now))
            else:
                query = query.filter(and_(Task.status == status, not_(Task.overdue_clause(now))))

        if priority:
            query = query.filter(Task.priority == priority)

        if category:
            query = query.filter(Task.category == category)

        if search:
            pattern = f"%{search.strip()}%"
            query = query.filter(or_(Task.title.ilike(pattern), Task.description.ilike(pattern)))

        if sort_by and sort_by not in SORT_OPTIONS:
            raise ValidationError(f"sort_by must be one of: {', '.join(sorted(SORT_OPTIONS))}")
        if sort_by == 'priority':
            query = query.order_by(Task.ai_priority_score.desc(), Task.deadline.asc().nullslast())
        elif sort_by == 'deadline':
            query = query.order_by(Task.deadline.asc().nullslast(), Task.created_at.desc())
        else:
            query = query.order_by(Task.created_at.desc(), Task.id.desc())

        per_page = max(1, min(per_page, self.max_per_page))
        pagination = query.paginate(page=max(page, 1), per_page=per_page, error_out=False)

        return {
            'tasks': [task.to_dict(now) for task in pagination.items],
            'total': pagination.total,
            'page': pagination.page,
            'per_page': pagination.per_page,
            'pages': pagination.pages,
        }

    def update_task(self, principal: Principal, task_id: Any, data: Dict[str, Any]) -> Task:
        """
        Full edit of a task by its manager (or an admin).

        Status, ownership and submission fields cannot be set here. When the
        patch touches deadline, category, estimated_time, tags or priority the
        score and tier are recomputed on the merged view before persisting.

        Raises:
            NotFoundError: Task not found
            ForbiddenError: Principal doesn't own the task
            ValidationError: If validation fails
        """
        task = self._load(task_id)
        self.gate.authorize(principal, Operation.UPDATE, task)
        if not data:
            raise ValidationError('No data provided')

        validated = validate_task_data(data)
        now = self.clock()

        if 'assigned_to' in validated:
            if validated['assigned_to'] is None:
                raise ValidationError('assigned_to cannot be empty')
            self._require_assignee(validated['assigned_to'])
        if validated.get('department_id') is not None:
            self._require_active_department(validated['department_id'])
        if 'category' in validated and validated['category'] is None:
            validated['category'] = Category.OTHER.value
        for field in ('tags', 'subtasks', 'attachments'):
            if field in validated and validated[field] is None:
                validated[field] = []

        reassigned = 'assigned_to' in validated and validated['assigned_to'] != task.assigned_to

        # A supplied priority is only a hint, so it also forces a rescore
        if (SCORING_FIELDS | {'priority'}) & set(validated):
            merged = task.scoring_attributes()
            merged.update({key: validated[key] for key in merged if key in validated})
            self._apply_score(task, merged, now)
            validated.pop('priority', None)

        for field, value in validated.items():
            if hasattr(task, field):
                setattr(task, field, value)

        self._commit()
        logger.info("Task {} updated by {}: {}", task.id, principal.id, sorted(validated))

        if reassigned:
            self.notifier.notify(notifications.TASK_ASSIGNED, task, task.assigned_to)
        return task

    def delete_task(self, principal: Principal, task_id: Any) -> bool:
        """
        Permanently delete a task.

        Raises:
            NotFoundError: Task not found
            ForbiddenError: Principal doesn't own the task
        """
        task = self._load(task_id)
        self.gate.authorize(principal, Operation.DELETE, task)

        db.session.delete(task)
        self._commit()
        logger.info("Task {} deleted by {}", task_id, principal.id)
        return True

    # ------------------------------------------------------------------
    # Status and priority
    # ------------------------------------------------------------------

    def update_status(self, principal: Principal, task_id: Any, status: Any) -> Task:
        task = self._load(task_id)
        self.gate.authorize(principal, Operation.UPDATE_STATUS, task)
        self.state_machine.transition(task, status, principal, self.clock())
        self._commit()
        return task

    def bulk_update_status(self, principal: Principal, updates: Iterable[Dict[str, Any]]) -> List[Task]:
        """
        Apply several status changes in one transaction (Kanban drag and drop).

        Each item is authorized and transitioned exactly like update_status;
        if any item fails, none are applied.
        """
        if not isinstance(updates, (list, tuple)) or not updates:
            raise ValidationError('tasks must be a non-empty list of {id, status}')

        now = self.clock()
        changed = []
        try:
            for item in updates:
                if not isinstance(item, dict) or 'id' not in item:
                    raise ValidationError('Each entry needs an id and a status')
                task = self._load(item['id'])
                self.gate.authorize(principal, Operation.UPDATE_STATUS, task)
                self.state_machine.transition(task, item.get('status'), principal, now)
                changed.append(task)
        except TaskManagerError:
            db.session.rollback()
            raise

        self._commit()
        return changed

    def compute_priority(self, principal: Principal, attrs: Dict[str, Any]) -> Dict[str, Any]:
        """Score arbitrary task attributes without touching any task"""
        score, tier = self.scorer.score_and_tier(attrs or {}, self.clock())
        return {'ai_priority_score': score, 'priority': tier}

    def recalculate_priority(self, principal: Principal, task_id: Any) -> Task:
        task = self._load(task_id)
        self.gate.authorize(principal, Operation.RECALCULATE_PRIORITY, task)
        self._apply_score(task, task.scoring_attributes(), self.clock())
        self._commit()
        return task

    # ------------------------------------------------------------------
    # Submission workflow
    # ------------------------------------------------------------------

    def submit_solution(self, principal: Principal, task_id: Any,
                        code: Optional[str] = None, files: Any = None) -> Task:
        task = self._load(task_id)
        self.gate.authorize(principal, Operation.SUBMIT, task)
        self.state_machine.submit(task, code, files, self.clock())
        self._commit()
        self.notifier.notify(notifications.SUBMISSION_RECEIVED, task, task.assigned_by)
        return task

    def accept_submission(self, principal: Principal, task_id: Any, feedback: Optional[str] = None) -> Task:
        task = self._load(task_id)
        self.gate.authorize(principal, Operation.REVIEW, task)
        self.state_machine.accept(task, feedback, self.clock())
        self._commit()
        self.notifier.notify(notifications.SUBMISSION_ACCEPTED, task, task.assigned_to)
        return task

    def reject_submission(self, principal: Principal, task_id: Any, feedback: Optional[str]) -> Task:
        task = self._load(task_id)
        self.gate.authorize(principal, Operation.REVIEW, task)
        self.state_machine.reject(task, feedback, self.clock())
        self._commit()
        self.notifier.notify(notifications.SUBMISSION_REJECTED, task, task.assigned_to)
        return task

    # ------------------------------------------------------------------
    # Collaboration
    # ------------------------------------------------------------------

    def add_comment(self, principal: Principal, task_id: Any, text: Any) -> Task:
        """Anyone who can read the task may comment on it"""
        task = self._load(task_id)
        self.gate.authorize(principal, Operation.COMMENT, task)
        text = validate_comment(text)

        comments = list(task.comments or [])
        comments.append({
            'user_id': principal.id,
            'text': text,
            'created_at': self.clock().isoformat(),
        })
        task.comments = comments
        self._commit()
        return task

    # ------------------------------------------------------------------
    # Read-only aggregation
    # ------------------------------------------------------------------

    def get_recommendations(self, principal: Principal, limit: int = 5) -> Dict[str, Any]:
        tasks = (
            self.gate.scope(principal).apply(Task.query)
            .filter(Task.status != TaskStatus.DONE.value)
            .all()
        )
        if not tasks:
            return {'recommendations': [], 'message': 'No tasks to analyze'}
        return {
            'recommendations': recommend(tasks, self.clock(), limit),
            'message': 'Focus on these high-priority tasks first',
        }

    def get_overview(self, principal: Principal) -> Dict[str, Any]:
        """Counts by effective status and priority over the principal's scope"""
        now = self.clock()
        tasks = self.gate.scope(principal).apply(Task.query).all()

        by_status = {status: 0 for status in (s.value for s in TaskStatus)}
        by_priority = {priority: 0 for priority in (p.value for p in Priority)}
        high_priority_open = 0
        for task in tasks:
            by_status[task.effective_status(now)] += 1
            by_priority[task.priority] = by_priority.get(task.priority, 0) + 1
            if task.priority == Priority.HIGH.value and task.status != TaskStatus.DONE.value:
                high_priority_open += 1

        total = len(tasks)
        completed = by_status[TaskStatus.DONE.value]
        return {
            'total_tasks': total,
            'by_status': by_status,
            'by_priority': by_priority,
            'high_priority_open': high_priority_open,
            'completion_rate': round(completed / total * 100) if total else 0,
        }

    # ------------------------------------------------------------------
    # Analytics
    # ------------------------------------------------------------------

    @staticmethod
    def _period(days: Any) -> int:
        if isinstance(days, bool) or not isinstance(days, int) or not 1 <= days <= MAX_PERIOD_DAYS:
            raise ValidationError(f'days must be an integer between 1 and {MAX_PERIOD_DAYS}')
        return days

    def get_member_performance(self, principal: Principal, member_id: Any) -> Dict[str, Any]:
        """
        One team member's record over the tasks the principal can see.

        Managers see only the tasks they assigned to the member; admins see all
        of the member's tasks. Rates are percentages rounded to two decimals.
        """
        self.gate.authorize(principal, Operation.VIEW_PERFORMANCE)
        member = self._require_user(member_id, 'Team member')
        now = self.clock()
        tasks = (
            self.gate.scope(principal).apply(Task.query)
            .filter(Task.assigned_to == member.id)
            .all()
        )

        by_status = {status: 0 for status in values(TaskStatus)}
        for task in tasks:
            by_status[task.effective_status(now)] += 1

        total = len(tasks)
        completed = by_status[TaskStatus.DONE.value]
        on_time = sum(1 for t in tasks if t.status == TaskStatus.DONE.value and t.completed_before_deadline is True)
        late = sum(1 for t in tasks if t.status == TaskStatus.DONE.value and t.completed_before_deadline is False)
        return {
            'member_id': member.id,
            'total_tasks': total,
            'completed_tasks': completed,
            'in_progress_tasks': by_status[TaskStatus.IN_PROGRESS.value],
            'todo_tasks': by_status[TaskStatus.TODO.value],
            'overdue_tasks': by_status[TaskStatus.OVERDUE.value],
            'completed_before_deadline': on_time,
            'completed_after_deadline': late,
            'completion_rate': round(completed / total * 100, 2) if total else 0,
            'on_time_rate': round(on_time / completed * 100, 2) if completed else 0,
        }

    def get_productivity(self, principal: Principal, days: Any = 7) -> Dict[str, Any]:
        """Tasks completed in the last `days` days, per day, with average actual time"""
        days = self._period(days)
        since = self.clock() - timedelta(days=days)
        tasks = (
            self.gate.scope(principal).apply(Task.query)
            .filter(Task.status == TaskStatus.DONE.value, Task.completed_at >= since)
            .all()
        )

        daily = {}
        for task in tasks:
            day = task.completed_at.date().isoformat()
            daily[day] = daily.get(day, 0) + 1

        timed = [t.actual_time for t in tasks if t.actual_time]
        return {
            'period_days': days,
            'total_completed': len(tasks),
            'daily_completion': dict(sorted(daily.items())),
            'avg_completion_time': round(sum(timed) / len(timed)) if timed else 0,
        }

    def get_completion_rates(self, principal: Principal, days: Any = 30) -> List[Dict[str, Any]]:
        """Completion rate of tasks created in the last `days` days, grouped by ISO week"""
        days = self._period(days)
        since = self.clock() - timedelta(days=days)
        tasks = (
            self.gate.scope(principal).apply(Task.query)
            .filter(Task.created_at >= since)
            .all()
        )

        weeks = {}
        for task in tasks:
            year, week, _ = task.created_at.isocalendar()
            bucket = weeks.setdefault(f'{year}-W{week:02d}', {'total': 0, 'completed': 0})
            bucket['total'] += 1
            if task.status == TaskStatus.DONE.value:
                bucket['completed'] += 1

        return [
            {'week': week, 'total': data['total'], 'completed': data['completed'],
             'rate': round(data['completed'] / data['total'] * 100)}
            for week, data in sorted(weeks.items())
        ]
