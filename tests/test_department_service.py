"""
Department membership, capacity and head management
"""
import pytest

from backend.src.extensions import db
from backend.src.models.department import Department
from backend.src.models.user import User
from backend.src.utils.errors import (
    ConflictError,
    ForbiddenError,
    InvariantViolation,
    NotFoundError,
    ValidationError,
)


@pytest.fixture
def departments(services):
    return services.departments


class TestLookups:

    def test_member_count_and_capacity(self, departments, org):
        assert departments.member_count(org['engineering'].id) == 3
        assert departments.max_members(org['design'].id) == 3
        assert departments.is_active(org['engineering'].id) is True

    def test_unknown_department(self, departments, org):
        with pytest.raises(NotFoundError):
            departments.is_active(4242)


class TestCreateDepartment:

    def test_admin_creates_with_head(self, departments, principals, org):
        department = departments.create_department(principals['admin'], {
            'name': 'Support',
            'max_members': 4,
            'head_id': org['outsider'].id,
        })
        outsider = db.session.get(User, org['outsider'].id)
        assert department.head_id == outsider.id
        assert outsider.department_id == department.id
        assert outsider.role == 'MANAGER'
        assert department.max_members == 4

    def test_manager_cannot_create(self, departments, principals):
        with pytest.raises(ForbiddenError):
            departments.create_department(principals['manager'], {'name': 'Rogue'})

    def test_duplicate_name(self, departments, principals, org):
        with pytest.raises(ValidationError, match='already exists'):
            departments.create_department(principals['admin'], {'name': 'Engineering'})

    @pytest.mark.parametrize('max_members', [0, 101, 'ten', True])
    def test_bad_capacity(self, departments, principals, org, max_members):
        with pytest.raises(ValidationError):
            departments.create_department(principals['admin'], {'name': 'Ops', 'max_members': max_members})


class TestListAndUpdate:

    def test_list_active_departments(self, departments, principals, org):
        departments.delete_department(principals['admin'], org['design'].id)
        assert [d.name for d in departments.list_departments()] == ['Engineering']

    def test_update_fields(self, departments, principals, org):
        department = departments.update_department(principals['admin'], org['engineering'].id, {
            'name': 'Platform',
            'description': 'Core services',
            'max_members': 8,
        })
        assert (department.name, department.description, department.max_members) == ('Platform', 'Core services', 8)

    def test_keeping_own_name_is_not_a_duplicate(self, departments, principals, org):
        department = departments.update_department(principals['admin'], org['engineering'].id,
                                                   {'name': 'Engineering'})
        assert department.name == 'Engineering'
        with pytest.raises(ValidationError, match='already exists'):
            departments.update_department(principals['admin'], org['engineering'].id, {'name': 'Design'})

    def test_capacity_cannot_drop_below_members(self, departments, principals, org):
        with pytest.raises(ValidationError, match='current member count'):
            departments.update_department(principals['admin'], org['engineering'].id, {'max_members': 2})
        assert db.session.get(Department, org['engineering'].id).max_members == 5

    def test_update_head(self, departments, principals, org):
        department = departments.update_department(principals['admin'], org['engineering'].id,
                                                   {'head_id': org['member2'].id})
        assert department.head_id == org['member2'].id
        assert db.session.get(User, org['manager'].id).role == 'TEAM_MEMBER'

    def test_manager_cannot_update(self, departments, principals, org):
        with pytest.raises(ForbiddenError):
            departments.update_department(principals['manager'], org['engineering'].id, {'name': 'Mine'})


class TestMembership:

    def test_capacity_is_enforced_on_add(self, departments, principals, org):
        design = org['design']
        departments.add_member(principals['admin'], design.id, org['member2'].id)
        assert departments.member_count(design.id) == 3

        with pytest.raises(ValidationError, match='maximum capacity'):
            departments.add_member(principals['admin'], design.id, org['member'].id)
        assert db.session.get(User, org['member'].id).department_id == org['engineering'].id

        departments.remove_member(principals['admin'], design.id, org['member2'].id)
        departments.add_member(principals['admin'], design.id, org['member'].id)
        assert departments.member_count(design.id) == 3
        assert db.session.get(User, org['member'].id).department_id == design.id

    def test_already_a_member(self, departments, principals, org):
        with pytest.raises(ValidationError, match='already a member'):
            departments.add_member(principals['admin'], org['engineering'].id, org['member'].id)

    def test_head_must_be_replaced_before_moving(self, departments, principals, org):
        with pytest.raises(ValidationError, match='heads department'):
            departments.add_member(principals['admin'], org['design'].id, org['manager'].id)

    def test_super_admin_cannot_join(self, departments, principals, org):
        with pytest.raises(ValidationError, match='Super Admin'):
            departments.add_member(principals['admin'], org['design'].id, org['admin'].id)

    def test_remove_member(self, departments, principals, org):
        department = departments.remove_member(principals['admin'], org['engineering'].id, org['member2'].id)
        assert org['member2'].id not in department.member_ids
        assert db.session.get(User, org['member2'].id).department_id is None

    def test_cannot_remove_head(self, departments, principals, org):
        with pytest.raises(ValidationError, match='department head'):
            departments.remove_member(principals['admin'], org['engineering'].id, org['manager'].id)

    def test_cannot_remove_non_member(self, departments, principals, org):
        with pytest.raises(ValidationError, match='not a member'):
            departments.remove_member(principals['admin'], org['engineering'].id, org['outsider'].id)


class TestHead:

    def test_set_head_swaps_roles(self, departments, principals, org):
        department = departments.set_head(principals['admin'], org['engineering'].id, org['member'].id)
        assert department.head_id == org['member'].id
        assert db.session.get(User, org['member'].id).role == 'MANAGER'
        assert db.session.get(User, org['manager'].id).role == 'TEAM_MEMBER'

    def test_head_must_be_a_member(self, departments, org):
        engineering = db.session.get(Department, org['engineering'].id)
        engineering.head_id = org['outsider'].id
        with pytest.raises(InvariantViolation):
            departments.check_invariants(engineering)


class TestDeleteDepartment:

    def test_blocked_by_open_tasks(self, departments, principals, org, make_task):
        make_task('Still open')
        with pytest.raises(ConflictError, match='active tasks'):
            departments.delete_department(principals['admin'], org['engineering'].id)

    def test_soft_delete_detaches_members(self, departments, principals, org, make_task):
        make_task('Finished', status='Done')
        department = departments.delete_department(principals['admin'], org['engineering'].id)

        assert department.is_active is False
        assert department.head_id is None
        manager = db.session.get(User, org['manager'].id)
        assert manager.department_id is None
        assert manager.role == 'TEAM_MEMBER'
        assert departments.member_count(department.id) == 0
