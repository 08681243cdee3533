"""
Analytics API Routes

- GET /api/analytics/productivity            → Completions per day over a period
- GET /api/analytics/completion-rate         → Weekly completion rate of tasks created in a period
- GET /api/team/<member_id>/performance      → One team member's record (managers / admins)
"""

from flask import jsonify, request
from flask_jwt_extended import jwt_required

from backend.src.api import api_bp, current_principal
from backend.src.services import get_services


@api_bp.route('/analytics/productivity', methods=['GET'])
@jwt_required()
def productivity():
    """
    Query Parameters:
        days - Period in days (default: 7, max: 365)

    Success Response (200):
        {
            "productivity": {
                "period_days": 7,
                "total_completed": 3,
                "daily_completion": {"2024-05-01": 2, "2024-05-02": 1},
                "avg_completion_time": 40      # minutes, over tasks with actual_time
            }
        }
    """
    days = request.args.get('days', 7, type=int)
    return jsonify({'productivity': get_services().tasks.get_productivity(current_principal(), days)}), 200


@api_bp.route('/analytics/completion-rate', methods=['GET'])
@jwt_required()
def completion_rate():
    """
    Query Parameters:
        days - Period in days (default: 30, max: 365)

    Success Response (200):
        { "completion_rates": [{"week": "2024-W18", "total": 4, "completed": 3, "rate": 75}] }
    """
    days = request.args.get('days', 30, type=int)
    rates = get_services().tasks.get_completion_rates(current_principal(), days)
    return jsonify({'completion_rates': rates}), 200


@api_bp.route('/team/<int:member_id>/performance', methods=['GET'])
@jwt_required()
def member_performance(member_id):
    performance = get_services().tasks.get_member_performance(current_principal(), member_id)
    return jsonify({'performance': performance}), 200
