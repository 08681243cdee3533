"""
Department API Routes (SUPER_ADMIN only for writes)

- GET    /api/departments                          → Active departments
- POST   /api/departments                          → Create department
- GET    /api/departments/<id>                     → Department details
- PUT    /api/departments/<id>                     → Edit name, capacity, head
- DELETE /api/departments/<id>                     → Soft delete (blocked by active tasks)
- POST   /api/departments/<id>/members             → Add member (capacity checked)
- DELETE /api/departments/<id>/members/<user_id>   → Remove member
- PUT    /api/departments/<id>/head                → Assign department head
"""

from flask import jsonify
from flask_jwt_extended import jwt_required

from backend.src.api import api_bp, current_principal, json_body
from backend.src.services import get_services


@api_bp.route('/departments', methods=['GET'])
@jwt_required()
def list_departments():
    current_principal()
    departments = get_services().departments.list_departments()
    return jsonify({
        'departments': [department.to_dict() for department in departments],
        'count': len(departments)
    }), 200


@api_bp.route('/departments', methods=['POST'])
@jwt_required()
def create_department():
    """
    Request Body (JSON):
        {
            "name": "Engineering",        # Required, unique
            "description": "...",         # Optional
            "max_members": 10,            # Optional, 1-100 (default 5)
            "head_id": 4                  # Optional, becomes MANAGER
        }
    """
    department = get_services().departments.create_department(current_principal(), json_body())
    return jsonify({
        'message': 'Department created successfully',
        'department': department.to_dict()
    }), 201


@api_bp.route('/departments/<int:department_id>', methods=['GET'])
@jwt_required()
def get_department(department_id):
    current_principal()
    department = get_services().departments.get_department(department_id)
    return jsonify({'department': department.to_dict()}), 200


@api_bp.route('/departments/<int:department_id>', methods=['PUT'])
@jwt_required()
def update_department(department_id):
    """
    Request Body (JSON), every field optional:
        {
            "name": "Platform",
            "description": "...",
            "color": "#10b981",
            "max_members": 8,             # Not below the current member count
            "head_id": 4
        }
    """
    department = get_services().departments.update_department(current_principal(), department_id, json_body())
    return jsonify({
        'message': 'Department updated successfully',
        'department': department.to_dict()
    }), 200


@api_bp.route('/departments/<int:department_id>', methods=['DELETE'])
@jwt_required()
def delete_department(department_id):
    get_services().departments.delete_department(current_principal(), department_id)
    return jsonify({'message': 'Department deleted successfully'}), 200


@api_bp.route('/departments/<int:department_id>/members', methods=['POST'])
@jwt_required()
def add_member(department_id):
    """
    Request Body (JSON):
        { "user_id": 7 }

    Error Responses:
        400 - Department full, inactive, or user already a member
        404 - Department or user not found
    """
    data = json_body()
    department = get_services().departments.add_member(current_principal(), department_id, data.get('user_id'))
    return jsonify({
        'message': 'Member added to department successfully',
        'department': department.to_dict()
    }), 200


@api_bp.route('/departments/<int:department_id>/members/<int:user_id>', methods=['DELETE'])
@jwt_required()
def remove_member(department_id, user_id):
    department = get_services().departments.remove_member(current_principal(), department_id, user_id)
    return jsonify({
        'message': 'Member removed from department successfully',
        'department': department.to_dict()
    }), 200


@api_bp.route('/departments/<int:department_id>/head', methods=['PUT'])
@jwt_required()
def set_head(department_id):
    data = json_body()
    department = get_services().departments.set_head(current_principal(), department_id, data.get('user_id'))
    return jsonify({
        'message': 'Department head updated successfully',
        'department': department.to_dict()
    }), 200
