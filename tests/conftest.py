"""
Pytest configuration and fixtures for the Task Manager API tests

Every test gets a fresh `testing` app (in-memory SQLite) with the tables
created, a small org chart and principals for each role.

Run:  pytest tests/ -v
"""
import pytest
from flask_jwt_extended import create_access_token

from backend.app import create_app
from backend.src.extensions import db
from backend.src.models.department import Department
from backend.src.models.enums import Role
from backend.src.models.task import Task
from backend.src.models.user import User
from backend.src.services.authorization import AuthorizationGate, Principal
from backend.src.services.department_service import DepartmentService
from backend.src.services.notification_service import Notifier
from backend.src.services.task_service import TaskService
from backend.src.utils import utcnow

PASSWORD = 'password123'


class RecordingNotifier(Notifier):
    """Collects notifications instead of delivering them"""

    def __init__(self):
        self.sent = []

    def notify(self, kind, task, recipient_id):
        self.sent.append((kind, task.id, recipient_id))

    def kinds(self):
        return [kind for kind, _, _ in self.sent]


def make_user(name, email, role=Role.TEAM_MEMBER.value, department_id=None):
    user = User(name=name, email=email, role=role, department_id=department_id)
    user.set_password(PASSWORD)
    db.session.add(user)
    db.session.commit()
    return user


@pytest.fixture
def app():
    """Create a fresh app with empty tables for each test"""
    app = create_app('testing')
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def services(app):
    return app.extensions['taskmanager']


@pytest.fixture
def org(app):
    """
    Engineering department headed by `manager` with `member` and `member2`;
    `other_manager` and `outsider` belong to Design. `admin` has no department.
    """
    admin = make_user('Admin User', 'admin@example.com', Role.SUPER_ADMIN.value)

    engineering = Department(name='Engineering', max_members=5, created_by=admin.id)
    design = Department(name='Design', max_members=3, created_by=admin.id)
    db.session.add_all([engineering, design])
    db.session.commit()

    manager = make_user('Maya Manager', 'manager@example.com', Role.MANAGER.value, engineering.id)
    member = make_user('Tom Member', 'member@example.com', department_id=engineering.id)
    member2 = make_user('Tina Member', 'member2@example.com', department_id=engineering.id)
    other_manager = make_user('Otto Manager', 'other@example.com', Role.MANAGER.value, design.id)
    outsider = make_user('Olga Outsider', 'outsider@example.com', department_id=design.id)

    engineering.head_id = manager.id
    design.head_id = other_manager.id
    db.session.commit()

    return {
        'admin': admin,
        'manager': manager,
        'member': member,
        'member2': member2,
        'other_manager': other_manager,
        'outsider': outsider,
        'engineering': engineering,
        'design': design,
    }


@pytest.fixture
def principals(org):
    return {key: Principal.from_user(value) for key, value in org.items() if isinstance(value, User)}


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def task_service(app, notifier):
    gate = AuthorizationGate()
    return TaskService(gate=gate, departments=DepartmentService(gate), notifier=notifier)


@pytest.fixture
def make_task(org):
    """Insert a task directly, bypassing the service (for arranging state)"""

    def _make_task(title='Sample task', assigned_by=None, assigned_to=None, **fields):
        assigned_by = assigned_by or org['manager']
        assigned_to = assigned_to or org['member']
        task = Task(
            title=title,
            user_id=assigned_by.id,
            assigned_by=assigned_by.id,
            assigned_to=assigned_to.id,
            department_id=fields.pop('department_id', assigned_by.department_id),
            **fields
        )
        db.session.add(task)
        db.session.commit()
        return task

    return _make_task


@pytest.fixture
def auth_headers(app):
    def _headers(user):
        token = create_access_token(identity=str(user.id), additional_claims={'role': user.role})
        return {'Authorization': f'Bearer {token}'}

    return _headers


@pytest.fixture
def now():
    return utcnow()

