"""
Notification API Routes - in-app feeds built from task state

- GET  /api/notifications/upcoming              → Open tasks due in the next N days
- GET  /api/notifications/submissions           → Pending and recently reviewed submissions (managers)
- GET  /api/notifications/task-status           → Recent reviews of my submissions (team members)
- POST /api/notifications/send-reminder/<id>    → Remind the assignee now
"""

from flask import jsonify, request
from flask_jwt_extended import jwt_required

from backend.src.api import api_bp, current_principal
from backend.src.services import get_services
from backend.src.services.notification_service import FEED_DAYS


@api_bp.route('/notifications/upcoming', methods=['GET'])
@jwt_required()
def upcoming_deadlines():
    """
    Query Parameters:
        days - Look-ahead in days (default: 7)

    Success Response (200):
        { "tasks": [{"id": 1, "title": "...", "deadline": "...", ...}], "count": 1 }
    """
    days = request.args.get('days', FEED_DAYS, type=int)
    tasks = get_services().notifications.upcoming_deadlines(current_principal(), days=days)
    return jsonify({'tasks': tasks, 'count': len(tasks)}), 200


@api_bp.route('/notifications/submissions', methods=['GET'])
@jwt_required()
def submission_notifications():
    feed = get_services().notifications.submission_feed(current_principal())
    return jsonify(feed), 200


@api_bp.route('/notifications/task-status', methods=['GET'])
@jwt_required()
def task_status_notifications():
    updates = get_services().notifications.status_feed(current_principal())
    return jsonify({'task_updates': updates, 'count': len(updates)}), 200


@api_bp.route('/notifications/send-reminder/<int:task_id>', methods=['POST'])
@jwt_required()
def send_reminder(task_id):
    get_services().notifications.send_reminder(current_principal(), task_id)
    return jsonify({'message': 'Reminder sent successfully'}), 200
