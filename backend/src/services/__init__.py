"""
Service layer wiring.

build_services() assembles the services from the Flask config; the app
factory stores the result in app.extensions['taskmanager'] and routes reach
it through get_services().
"""

from dataclasses import dataclass

from flask import current_app


@dataclass
class Services:
    tasks: 'TaskService'
    departments: 'DepartmentService'
    auth: 'AuthService'
    notifications: 'NotificationService'


def build_services(config) -> Services:
    from backend.src.services.auth_service import AuthService
    from backend.src.services.authorization import AuthorizationGate
    from backend.src.services.department_service import DepartmentService
    from backend.src.services.notification_service import LogNotifier, NotificationService, SafeNotifier
    from backend.src.services.priority_engine import build_scorer
    from backend.src.services.task_service import TaskService

    gate = AuthorizationGate(department_aware=config.get('DEPARTMENT_AWARE_LISTING', False))
    departments = DepartmentService(gate)
    notifier = SafeNotifier(LogNotifier())

    return Services(
        tasks=TaskService(
            gate=gate,
            scorer=build_scorer(config.get('PRIORITY_SCORER')),
            departments=departments,
            notifier=notifier,
            max_per_page=config.get('MAX_ITEMS_PER_PAGE', 100),
        ),
        departments=departments,
        auth=AuthService(
            bootstrap_admins=config.get('BOOTSTRAP_ADMIN_EMAILS', ()),
            departments=departments,
            gate=gate,
        ),
        notifications=NotificationService(notifier, config.get('REMINDER_WINDOW_HOURS', 24), gate=gate),
    )


def get_services() -> Services:
    return current_app.extensions['taskmanager']
