"""
Purpose: Error taxonomy shared by every service
Depends on: nothing
Used by: services, API error handler in app.py

Every failure a service raises is one of these. The API layer maps them to
JSON bodies of the form {"error": <kind>, "message": <reason>}.
"""


class TaskManagerError(Exception):
    """Base class for all domain errors"""

    status_code = 500
    kind = 'Error'

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self):
        return {'error': self.kind, 'message': self.message}


class NotFoundError(TaskManagerError):
    """A task, department or user id does not resolve"""
    status_code = 404
    kind = 'NotFound'


class ForbiddenError(TaskManagerError):
    """An authorization rule was violated; the message names the rule"""
    status_code = 403
    kind = 'Forbidden'


class ValidationError(TaskManagerError):
    """Malformed input (missing title, empty feedback, capacity exceeded...)"""
    status_code = 400
    kind = 'ValidationError'


class ConflictError(TaskManagerError):
    """A state precondition failed or the row changed underneath us"""
    status_code = 409
    kind = 'ConflictError'


class InvariantViolation(TaskManagerError):
    """Stored data broke an invariant. Never expected from a well-behaved caller."""
    status_code = 500
    kind = 'InvariantViolation'


class AuthenticationError(TaskManagerError):
    """Credentials did not match"""
    status_code = 401
    kind = 'AuthenticationError'
