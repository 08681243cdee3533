"""
API Package Initialization Module

This module creates the main API blueprint that serves as the entry point
for all API routes in the application. All route modules are imported here
and registered to the blueprint.
"""

from flask import Blueprint, request
from flask_jwt_extended import get_jwt_identity

from backend.src.services import get_services
from backend.src.utils.errors import ValidationError

# Create the main API blueprint with URL prefix '/api'
# Example: A route '/tasks' becomes '/api/tasks'
api_bp = Blueprint('api', __name__, url_prefix='/api')


def current_principal():
    """
    Principal for the authenticated request.

    Role and department come from the stored user, not from the token claims,
    so a demoted user loses access on their next request.
    """
    return get_services().auth.principal_for(get_jwt_identity())


def json_body(required=True):
    """Parsed JSON request body; a missing body is a ValidationError when required"""
    data = request.get_json(silent=True)
    if data is None:
        if required:
            raise ValidationError('No data provided')
        return {}
    if not isinstance(data, dict):
        raise ValidationError('Request body must be a JSON object')
    return data


# Import route modules to register them with the blueprint
# The imports must come AFTER blueprint creation to avoid circular imports
from backend.src.api import analytics_routes  # noqa: E402,F401  Productivity and performance
from backend.src.api import auth_routes  # noqa: E402,F401  Authentication and user management
from backend.src.api import department_routes  # noqa: E402,F401  Department management
from backend.src.api import notification_routes  # noqa: E402,F401  Notification feeds
from backend.src.api import task_routes  # noqa: E402,F401  Task management endpoints

__all__ = ['api_bp', 'current_principal', 'json_body']
