"""
Registration, login, bootstrap admin pinning and role changes
"""
import pytest

from backend.src.extensions import db
from backend.src.models.department import Department
from backend.src.models.user import User
from backend.src.utils.errors import (
    AuthenticationError,
    ConflictError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
)


@pytest.fixture
def auth(services):
    return services.auth


def register_data(**fields):
    data = {'name': 'New Person', 'email': 'new@example.com', 'password': 'password123'}
    data.update(fields)
    return data


class TestRegister:

    def test_registers_team_member(self, auth, org):
        user = auth.register(register_data(email='New@Example.com'))
        assert user.role == 'TEAM_MEMBER'
        assert user.email == 'new@example.com'
        assert user.check_password('password123')

    def test_duplicate_email(self, auth, org):
        with pytest.raises(ConflictError):
            auth.register(register_data(email='member@example.com'))

    def test_validation_errors_are_joined(self, auth):
        with pytest.raises(ValidationError) as excinfo:
            auth.register({'name': 'X', 'email': 'not-an-email', 'password': 'short'})
        message = excinfo.value.message
        assert 'Name must be at least 2 characters' in message
        assert 'Invalid email format' in message
        assert 'Password must be at least 8 characters' in message

    def test_join_department_with_room(self, auth, org):
        user = auth.register(register_data(department_id=org['engineering'].id))
        assert user.department_id == org['engineering'].id

    def test_full_department_rejected(self, auth, org):
        auth.register(register_data(email='third@example.com', department_id=org['design'].id))
        with pytest.raises(ValidationError, match='maximum capacity'):
            auth.register(register_data(department_id=org['design'].id))

    @pytest.mark.parametrize('field, value', [('password', 12345678), ('email', ['a@b.co']), ('name', 42)])
    def test_non_string_fields_are_rejected(self, auth, field, value):
        with pytest.raises(ValidationError, match='must be a string'):
            auth.register(register_data(**{field: value}))

    def test_bootstrap_admin_is_pinned(self, auth, org):
        user = auth.register(register_data(email='root@example.com', department_id=org['engineering'].id))
        assert user.role == 'SUPER_ADMIN'
        assert user.department_id is None


class TestLogin:

    def test_login(self, auth, org):
        user = auth.login('MEMBER@example.com', 'password123')
        assert user.id == org['member'].id

    def test_wrong_password(self, auth, org):
        with pytest.raises(AuthenticationError, match='Invalid email or password'):
            auth.login('member@example.com', 'wrong-password')

    def test_unknown_email(self, auth, org):
        with pytest.raises(AuthenticationError, match='Invalid email or password'):
            auth.login('nobody@example.com', 'password123')

    @pytest.mark.parametrize('email, password', [(123, 'x'), ('member@example.com', 12345678), (None, None), ('  ', 'password123')])
    def test_malformed_credentials(self, auth, org, email, password):
        with pytest.raises(ValidationError, match='Please provide email and password'):
            auth.login(email, password)

    def test_inactive_account(self, auth, org):
        org['member'].is_active = False
        db.session.commit()
        with pytest.raises(ForbiddenError):
            auth.login('member@example.com', 'password123')

    def test_login_re_pins_bootstrap_admin(self, auth, org):
        root = auth.register(register_data(email='root@example.com'))
        root.role = 'TEAM_MEMBER'
        root.department_id = org['design'].id
        db.session.commit()

        user = auth.login('root@example.com', 'password123')
        assert user.role == 'SUPER_ADMIN'
        assert user.department_id is None

    def test_issue_token(self, auth, org):
        assert isinstance(auth.issue_token(org['member']), str)


class TestPrincipalAndRoles:

    def test_principal_for(self, auth, org):
        principal = auth.principal_for(str(org['manager'].id))
        assert principal.role == 'MANAGER'
        assert principal.department == org['engineering'].id

    def test_principal_for_missing_user(self, auth, org):
        with pytest.raises(NotFoundError):
            auth.principal_for('9999')
        with pytest.raises(NotFoundError):
            auth.principal_for(None)

    def test_admin_changes_role(self, auth, principals, org):
        user = auth.change_role(principals['admin'], org['member'].id, 'MANAGER')
        assert user.role == 'MANAGER'

    def test_promotion_to_admin_leaves_department(self, auth, principals, org):
        user = auth.change_role(principals['admin'], org['manager'].id, 'SUPER_ADMIN')
        assert user.department_id is None
        assert db.session.get(Department, org['engineering'].id).head_id is None

    def test_manager_cannot_change_roles(self, auth, principals, org):
        with pytest.raises(ForbiddenError):
            auth.change_role(principals['manager'], org['member'].id, 'MANAGER')

    def test_unknown_role(self, auth, principals, org):
        with pytest.raises(ValidationError):
            auth.change_role(principals['admin'], org['member'].id, 'OWNER')

    def test_bootstrap_admin_cannot_be_demoted(self, auth, principals, org):
        root = auth.register(register_data(email='root@example.com'))
        with pytest.raises(ValidationError, match='cannot be demoted'):
            auth.change_role(principals['admin'], root.id, 'TEAM_MEMBER')
        assert db.session.get(User, root.id).role == 'SUPER_ADMIN'


class TestProfileAndPassword:

    def test_update_profile(self, auth, principals, org):
        user = auth.update_profile(principals['member'], {'name': ' Tom Renamed ', 'email': 'Tom@Example.com'})
        assert user.name == 'Tom Renamed'
        assert user.email == 'tom@example.com'
        assert auth.login('tom@example.com', 'password123').id == org['member'].id

    def test_profile_email_must_be_free(self, auth, principals, org):
        with pytest.raises(ConflictError):
            auth.update_profile(principals['member'], {'email': 'manager@example.com'})

    def test_cannot_claim_bootstrap_email(self, auth, principals, org):
        with pytest.raises(ValidationError, match='reserved'):
            auth.update_profile(principals['member'], {'email': 'root@example.com'})

    def test_profile_needs_a_field(self, auth, principals, org):
        with pytest.raises(ValidationError, match='Nothing to update'):
            auth.update_profile(principals['member'], {'role': 'SUPER_ADMIN'})
        assert db.session.get(User, org['member'].id).role == 'TEAM_MEMBER'

    def test_update_password(self, auth, principals, org):
        auth.update_password(principals['member'], 'password123', 'brand-new-secret')
        assert auth.login('member@example.com', 'brand-new-secret').id == org['member'].id
        with pytest.raises(AuthenticationError):
            auth.login('member@example.com', 'password123')

    def test_wrong_current_password(self, auth, principals, org):
        with pytest.raises(AuthenticationError, match='Current password is incorrect'):
            auth.update_password(principals['member'], 'not-my-password', 'brand-new-secret')

    @pytest.mark.parametrize('new_password', ['short', 12345678, None])
    def test_new_password_is_validated(self, auth, principals, org, new_password):
        with pytest.raises(ValidationError):
            auth.update_password(principals['member'], 'password123', new_password)
        assert db.session.get(User, org['member'].id).check_password('password123')
