"""
Auth API Routes

- POST /api/auth/register     → Create account, returns JWT
- POST /api/auth/login        → Exchange credentials for JWT
- GET  /api/auth/me           → Current user
- PUT  /api/auth/profile      → Change own name/email
- PUT  /api/auth/password     → Change own password
- PUT  /api/users/<id>/role   → Promote/demote a user (SUPER_ADMIN only)
"""

from flask import jsonify
from flask_jwt_extended import jwt_required

from backend.src.api import api_bp, current_principal, json_body
from backend.src.extensions import db
from backend.src.models.user import User
from backend.src.services import get_services


@api_bp.route('/auth/register', methods=['POST'])
def register():
    """
    Register a new user.

    Request Body (JSON):
        {
            "name": "Jane Doe",
            "email": "jane@example.com",
            "password": "password123",
            "department_id": 2            # Optional, must have free capacity
        }

    Success Response (201):
        { "user": {...}, "token": "<jwt>" }
    """
    auth = get_services().auth
    user = auth.register(json_body())
    return jsonify({
        'user': user.to_dict(include_email=True),
        'token': auth.issue_token(user)
    }), 201


@api_bp.route('/auth/login', methods=['POST'])
def login():
    """
    Login with email and password.

    Success Response (200):
        { "user": {...}, "token": "<jwt>" }
    Error Responses:
        400 - Email or password missing
        401 - Invalid email or password
        403 - Account inactive
    """
    data = json_body()
    auth = get_services().auth
    user = auth.login(data.get('email'), data.get('password'))
    return jsonify({
        'user': user.to_dict(include_email=True),
        'token': auth.issue_token(user)
    }), 200


@api_bp.route('/auth/me', methods=['GET'])
@jwt_required()
def me():
    principal = current_principal()
    user = db.session.get(User, principal.id)
    return jsonify({'user': user.to_dict(include_email=True)}), 200


@api_bp.route('/auth/profile', methods=['PUT'])
@jwt_required()
def update_profile():
    """
    Request Body (JSON):
        { "name": "Jane Smith", "email": "jane.smith@example.com" }   # either or both
    """
    user = get_services().auth.update_profile(current_principal(), json_body())
    return jsonify({
        'message': 'Profile updated successfully',
        'user': user.to_dict(include_email=True)
    }), 200


@api_bp.route('/auth/password', methods=['PUT'])
@jwt_required()
def update_password():
    """
    Request Body (JSON):
        { "current_password": "password123", "new_password": "another-secret" }

    Error Responses:
        400 - New password too short or missing fields
        401 - Current password is incorrect
    """
    data = json_body()
    get_services().auth.update_password(
        current_principal(), data.get('current_password'), data.get('new_password')
    )
    return jsonify({'message': 'Password updated successfully'}), 200


@api_bp.route('/users/<int:user_id>/role', methods=['PUT'])
@jwt_required()
def change_role(user_id):
    """
    Change a user's role.

    Request Body (JSON):
        { "role": "MANAGER" }     # SUPER_ADMIN | MANAGER | TEAM_MEMBER
    """
    data = json_body()
    user = get_services().auth.change_role(current_principal(), user_id, data.get('role'))
    return jsonify({
        'message': 'Role updated successfully',
        'user': user.to_dict()
    }), 200
