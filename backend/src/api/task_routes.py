"""
Task API Routes - RESTful Endpoints for Task Management

This module defines all HTTP endpoints for task operations following REST conventions:
- POST   /api/tasks                      → Create new task (MANAGER / SUPER_ADMIN)
- GET    /api/tasks                      → List visible tasks (filtering & pagination)
- GET    /api/tasks/<id>                 → Get single task by ID
- PUT    /api/tasks/<id>                 → Update existing task
- DELETE /api/tasks/<id>                 → Delete task
- PUT    /api/tasks/<id>/status          → Change status
- PUT    /api/tasks/<id>/priority        → Recompute priority score
- POST   /api/tasks/priority/preview     → Score attributes without saving
- POST   /api/tasks/<id>/submit          → Submit a solution (assignee)
- POST   /api/tasks/<id>/accept          → Accept the pending submission
- POST   /api/tasks/<id>/reject          → Reject the pending submission
- POST   /api/tasks/<id>/comments        → Add a comment
- PUT    /api/tasks/bulk/update-order    → Kanban bulk status change
- GET    /api/tasks/recommendations      → Top open tasks to work on
- GET    /api/tasks/overview             → Counts by status and priority

Authentication:
All endpoints require a valid JWT token in the Authorization header:
    Authorization: Bearer <your-jwt-token>

Response Format:
    Success: { "message": "...", "task": {...} } or { "tasks": [...] }
    Error:   { "error": "<kind>", "message": "<reason>" }

Errors raised by the service layer are turned into responses by the
application's TaskManagerError handler, so routes only deal with the happy path.
"""

from flask import current_app, jsonify, request
from flask_jwt_extended import jwt_required

from backend.src.api import api_bp, current_principal, json_body
from backend.src.services import get_services


def _tasks():
    return get_services().tasks


# ============================================================================
# CREATE / LIST
# ============================================================================

@api_bp.route('/tasks', methods=['POST'])
@jwt_required()
def create_task():
    """
    Create a new task and assign it to a team member.

    Request Body (JSON):
        {
            "title": "Fix login bug",                      # Required, max 200 chars
            "description": "Users can't log in on Safari", # Optional
            "category": "Urgent",                          # Optional: Work|Personal|Urgent|Important|Other
            "tags": ["bug", "critical"],                   # Optional
            "estimated_time": 45,                          # Optional, minutes
            "deadline": "2024-12-31T23:59:59Z",            # Optional, ISO 8601
            "priority": "High",                            # Optional scoring hint
            "assigned_to": 5                               # Required, user ID
        }

    Success Response (201):
        { "message": "Task created successfully", "task": {...} }

    The stored priority is always the computed tier, never the hint.
    """
    principal = current_principal()
    task = _tasks().create_task(principal, json_body(required=False))
    return jsonify({
        'message': 'Task created successfully',
        'task': task.to_dict()
    }), 201


@api_bp.route('/tasks', methods=['GET'])
@jwt_required()
def get_tasks():
    """
    Retrieve the caller's visible tasks, paginated.

    Query Parameters (all optional):
        status    - To-Do|In-Progress|Done|Overdue (Overdue is derived from the deadline)
        priority  - High|Medium|Low
        category  - Task category
        search    - Case-insensitive match on title or description
        sort_by   - priority|deadline|created (default created)
        page      - Page number (default: 1)
        per_page  - Items per page (default: ITEMS_PER_PAGE, capped at MAX_ITEMS_PER_PAGE)

    Success Response (200):
        { "tasks": [...], "total": 45, "page": 1, "per_page": 20, "pages": 3 }
    """
    principal = current_principal()
    result = _tasks().list_tasks(
        principal,
        status=request.args.get('status'),
        priority=request.args.get('priority'),
        category=request.args.get('category'),
        search=request.args.get('search'),
        sort_by=request.args.get('sort_by'),
        page=request.args.get('page', 1, type=int),
        per_page=request.args.get('per_page', current_app.config['ITEMS_PER_PAGE'], type=int),
    )
    return jsonify(result), 200


# ============================================================================
# AGGREGATES AND BULK OPERATIONS
# ============================================================================

@api_bp.route('/tasks/recommendations', methods=['GET'])
@jwt_required()
def get_recommendations():
    limit = request.args.get('limit', 5, type=int)
    return jsonify(_tasks().get_recommendations(current_principal(), limit=max(1, min(limit, 20)))), 200


@api_bp.route('/tasks/overview', methods=['GET'])
@jwt_required()
def get_overview():
    return jsonify(_tasks().get_overview(current_principal())), 200


@api_bp.route('/tasks/priority/preview', methods=['POST'])
@jwt_required()
def preview_priority():
    """
    Score task attributes without creating anything (used by the task form).

    Request Body (JSON):
        { "category": "Urgent", "estimated_time": 45, "tags": ["bug"] }

    Success Response (200):
        { "ai_priority_score": 80, "priority": "High" }
    """
    principal = current_principal()
    return jsonify(_tasks().compute_priority(principal, json_body(required=False))), 200


@api_bp.route('/tasks/bulk/update-order', methods=['PUT'])
@jwt_required()
def bulk_update_status():
    """
    Request Body (JSON):
        { "tasks": [ { "id": 1, "status": "Done" }, { "id": 2, "status": "In-Progress" } ] }

    All changes are applied or none are.
    """
    data = json_body()
    tasks = _tasks().bulk_update_status(current_principal(), data.get('tasks'))
    return jsonify({
        'message': 'Tasks updated successfully',
        'tasks': [task.to_dict() for task in tasks]
    }), 200


# ============================================================================
# SINGLE TASK
# ============================================================================

@api_bp.route('/tasks/<int:task_id>', methods=['GET'])
@jwt_required()
def get_task(task_id):
    task = _tasks().get_task(current_principal(), task_id)
    return jsonify({'task': task.to_dict()}), 200


@api_bp.route('/tasks/<int:task_id>', methods=['PUT'])
@jwt_required()
def update_task(task_id):
    """
    Edit a task (its manager or SUPER_ADMIN).

    Request Body (JSON): any subset of the create fields. Status and
    submission fields are rejected; use the dedicated endpoints instead.
    Changing deadline, category, estimated_time or tags re-scores the task.
    """
    task = _tasks().update_task(current_principal(), task_id, json_body(required=False))
    return jsonify({
        'message': 'Task updated successfully',
        'task': task.to_dict()
    }), 200


@api_bp.route('/tasks/<int:task_id>', methods=['DELETE'])
@jwt_required()
def delete_task(task_id):
    _tasks().delete_task(current_principal(), task_id)
    return jsonify({'message': 'Task deleted successfully'}), 200


@api_bp.route('/tasks/<int:task_id>/status', methods=['PUT'])
@jwt_required()
def update_task_status(task_id):
    """
    Request Body (JSON):
        { "status": "In-Progress" }     # To-Do|In-Progress|Done

    Error Responses:
        400 - Unknown status, or Overdue (derived, cannot be set)
        403 - Not allowed to change this task
        409 - Task is accepted and cannot leave Done
    """
    data = json_body()
    task = _tasks().update_status(current_principal(), task_id, data.get('status'))
    return jsonify({
        'message': 'Task status updated successfully',
        'task': task.to_dict()
    }), 200


@api_bp.route('/tasks/<int:task_id>/priority', methods=['PUT'])
@jwt_required()
def recalculate_priority(task_id):
    task = _tasks().recalculate_priority(current_principal(), task_id)
    return jsonify({
        'message': 'Priority recalculated successfully',
        'task': task.to_dict()
    }), 200


# ============================================================================
# SUBMISSION WORKFLOW
# ============================================================================

@api_bp.route('/tasks/<int:task_id>/submit', methods=['POST'])
@jwt_required()
def submit_solution(task_id):
    """
    Submit work for review (the assignee only).

    Request Body (JSON):
        {
            "code": "def fix(): ...",                                  # Optional
            "files": [ { "name": "fix.py", "url": "https://..." } ]   # Optional
        }
    At least one of code or files is required.
    """
    data = json_body()
    task = _tasks().submit_solution(current_principal(), task_id, data.get('code'), data.get('files'))
    return jsonify({
        'message': 'Solution submitted successfully',
        'task': task.to_dict()
    }), 200


@api_bp.route('/tasks/<int:task_id>/accept', methods=['POST'])
@jwt_required()
def accept_submission(task_id):
    data = json_body(required=False)
    task = _tasks().accept_submission(current_principal(), task_id, data.get('feedback'))
    return jsonify({
        'message': 'Submission accepted',
        'task': task.to_dict()
    }), 200


@api_bp.route('/tasks/<int:task_id>/reject', methods=['POST'])
@jwt_required()
def reject_submission(task_id):
    """
    Request Body (JSON):
        { "feedback": "Please add tests" }     # Required
    """
    data = json_body()
    task = _tasks().reject_submission(current_principal(), task_id, data.get('feedback'))
    return jsonify({
        'message': 'Submission rejected',
        'task': task.to_dict()
    }), 200


@api_bp.route('/tasks/<int:task_id>/comments', methods=['POST'])
@jwt_required()
def add_comment(task_id):
    data = json_body()
    task = _tasks().add_comment(current_principal(), task_id, data.get('text'))
    return jsonify({
        'message': 'Comment added successfully',
        'task': task.to_dict()
    }), 201
