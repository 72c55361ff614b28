"""Platform admin routes for escalated disputes."""

from flask import Blueprint, request, jsonify
from chama_disputes.services import escalation
from chama_disputes.services.errors import InvalidArgument
from chama_disputes.utils.auth import platform_admin_required
from chama_disputes.utils.dates import parse_datetime
from chama_disputes.utils.request_params import field, json_body

admin_bp = Blueprint('admin', __name__)


def _date_arg(*names):
    for name in names:
        value = request.args.get(name)
        if value:
            try:
                return parse_datetime(value)
            except ValueError:
                raise InvalidArgument(f'{names[0]} must be an ISO-8601 date')
    return None


@admin_bp.route('/escalated', methods=['GET'])
@platform_admin_required
def list_escalated(current_user_id):
    """Escalated disputes awaiting platform review, oldest first.

    Query params:
        - limit: page size (default 50, max 200)
        - offset: rows to skip
    """
    limit = min(max(request.args.get('limit', 50, type=int), 1), 200)
    offset = max(request.args.get('offset', 0, type=int), 0)
    return jsonify(escalation.list_escalated_disputes(limit=limit, offset=offset)), 200


@admin_bp.route('/<int:dispute_id>/review', methods=['PUT'])
@platform_admin_required
def review_dispute(current_user_id, dispute_id):
    """Record the platform decision on an escalated dispute.

    Body:
        decision: 'resolve' | 'reject'
        resolutionType: required when resolving
        notes: str (optional)
        platformAction: object (optional)
    """
    data = json_body(request)
    dispute = escalation.review_escalated_dispute(
        current_user_id, dispute_id,
        decision=field(data, 'decision'),
        resolution_type=field(data, 'resolutionType', 'resolution_type'),
        notes=field(data, 'notes'),
        platform_action=field(data, 'platformAction', 'platform_action')
    )
    return jsonify({
        'message': 'Escalated dispute reviewed',
        'dispute': dispute.to_dict()
    }), 200


@admin_bp.route('/analytics', methods=['GET'])
@platform_admin_required
def get_analytics(current_user_id):
    """Platform-wide dispute analytics.

    Query params:
        - startDate, endDate: ISO-8601 bounds on the filing date
    """
    start_date = _date_arg('startDate', 'start_date')
    end_date = _date_arg('endDate', 'end_date')
    if start_date and end_date and start_date > end_date:
        raise InvalidArgument('startDate must be before endDate')

    return jsonify({'analytics': escalation.dispute_analytics(start_date, end_date)}), 200
