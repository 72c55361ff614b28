"""In-app notification inbox for dispute events."""

from flask import Blueprint, request, jsonify
from sqlalchemy import func

from chama_disputes import db
from chama_disputes.models import Notification
from chama_disputes.utils import token_required, utcnow

notifications_bp = Blueprint('notifications', __name__)


def _inbox(user_id):
    query = Notification.query.filter_by(user_id=user_id)

    dispute_id = request.args.get('disputeId', type=int) or request.args.get('dispute_id', type=int)
    if dispute_id:
        query = query.filter_by(related_type='dispute', related_id=dispute_id)

    notification_type = request.args.get('type')
    if notification_type:
        query = query.filter_by(type=notification_type)

    return query


@notifications_bp.route('', methods=['GET'])
@token_required
def get_notifications(current_user_id):
    """Get the current user's notifications, newest first.

    Query params:
        - unread_only: If 'true', only return unread notifications
        - disputeId: only notifications about one dispute
        - type: a NotificationType value
        - page: Page number (default 1)
        - per_page: Results per page (default 20, max 100)
    """
    page = max(request.args.get('page', 1, type=int), 1)
    per_page = min(max(request.args.get('per_page', 20, type=int), 1), 100)

    query = _inbox(current_user_id)
    if request.args.get('unread_only', 'false').lower() == 'true':
        query = query.filter_by(is_read=False)

    result = query.order_by(Notification.created_at.desc(), Notification.id.desc()).paginate(
        page=page, per_page=per_page, error_out=False
    )

    return jsonify({
        'notifications': [n.to_dict() for n in result.items],
        'total': result.total,
        'page': page,
        'per_page': per_page,
        'has_more': result.has_next,
        'unread_count': Notification.query.filter_by(user_id=current_user_id, is_read=False).count()
    }), 200


@notifications_bp.route('/unread-count', methods=['GET'])
@token_required
def get_unread_count(current_user_id):
    """Unread total plus a per-dispute breakdown for badges."""
    rows = db.session.query(Notification.related_id, func.count(Notification.id)).filter(
        Notification.user_id == current_user_id,
        Notification.is_read == False,  # noqa: E712
        Notification.related_type == 'dispute'
    ).group_by(Notification.related_id).all()

    return jsonify({
        'unread_count': Notification.query.filter_by(user_id=current_user_id, is_read=False).count(),
        'by_dispute': {str(dispute_id): count for dispute_id, count in rows}
    }), 200


@notifications_bp.route('/<int:notification_id>/read', methods=['POST'])
@token_required
def mark_as_read(current_user_id, notification_id):
    notification = Notification.query.get(notification_id)

    if not notification:
        return jsonify({'error': 'Notification not found'}), 404
    if notification.user_id != current_user_id:
        return jsonify({'error': 'Unauthorized'}), 403

    notification.mark_as_read()
    db.session.commit()

    return jsonify({
        'message': 'Notification marked as read',
        'notification': notification.to_dict()
    }), 200


@notifications_bp.route('/read-all', methods=['POST'])
@token_required
def mark_all_as_read(current_user_id):
    """Mark unread notifications as read.

    Query params (optional):
        - disputeId: only those about one dispute
        - type: only one NotificationType
    """
    try:
        updated_count = _inbox(current_user_id).filter_by(is_read=False).update(
            {'is_read': True, 'read_at': utcnow()},
            synchronize_session=False
        )
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    return jsonify({
        'message': f'Marked {updated_count} notification(s) as read',
        'updated_count': updated_count
    }), 200
