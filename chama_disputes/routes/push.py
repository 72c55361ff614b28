"""Web push subscriptions for dispute alerts."""

import os
from flask import Blueprint, request, jsonify

from chama_disputes import db
from chama_disputes.models import PushSubscription
from chama_disputes.utils.auth import token_required
from chama_disputes.utils.request_params import bool_field, field, json_body

push_bp = Blueprint('push', __name__)


def _active_subscriptions(user_id):
    return PushSubscription.query.filter_by(user_id=user_id, is_active=True)


@push_bp.route('/vapid-public-key', methods=['GET'])
def get_vapid_public_key():
    """Public key the browser needs to subscribe. No auth required."""
    public_key = os.getenv('VAPID_PUBLIC_KEY', '')
    if not public_key:
        return jsonify({'error': 'Push notifications not configured'}), 503
    return jsonify({'publicKey': public_key}), 200


@push_bp.route('/subscribe', methods=['POST'])
@token_required
def subscribe(current_user_id):
    """Register this browser for dispute alerts.

    Body:
        endpoint: push service URL
        keys: {"p256dh": "...", "auth": "..."}
        deviceName: str (optional)
        notifyDisputes: bool (optional, default true)

    An endpoint already on file is re-bound to the caller and reactivated.
    """
    data = json_body(request)
    endpoint = data.get('endpoint')
    keys = data.get('keys') or {}

    if not endpoint or not keys.get('p256dh') or not keys.get('auth'):
        return jsonify({'error': 'Missing required subscription data'}), 400

    subscription = PushSubscription.query.filter_by(endpoint=endpoint).first()
    created = subscription is None
    if created:
        subscription = PushSubscription(endpoint=endpoint)
        db.session.add(subscription)

    subscription.user_id = current_user_id
    subscription.p256dh_key = keys['p256dh']
    subscription.auth_key = keys['auth']
    subscription.device_name = field(data, 'deviceName', 'device_name')
    subscription.notify_disputes = bool_field(data, 'notifyDisputes', 'notify_disputes', default=True)
    subscription.is_active = True
    subscription.failed_count = 0
    db.session.commit()

    return jsonify({
        'message': 'Subscribed to push notifications' if created else 'Subscription updated',
        'subscription_id': subscription.id
    }), 201 if created else 200


@push_bp.route('/unsubscribe', methods=['POST'])
@token_required
def unsubscribe(current_user_id):
    """Deactivate the caller's subscription for an endpoint. Body: endpoint."""
    endpoint = json_body(request).get('endpoint')
    if not endpoint:
        return jsonify({'error': 'Endpoint required'}), 400

    subscription = PushSubscription.query.filter_by(endpoint=endpoint, user_id=current_user_id).first()
    if not subscription:
        return jsonify({'error': 'Subscription not found'}), 404

    subscription.is_active = False
    db.session.commit()
    return jsonify({'message': 'Unsubscribed successfully'}), 200


@push_bp.route('/preferences', methods=['PUT'])
@token_required
def update_preferences(current_user_id):
    """Turn dispute alerts on or off on every device. Body: notifyDisputes."""
    data = json_body(request)
    if field(data, 'notifyDisputes', 'notify_disputes') is None:
        return jsonify({'error': 'notifyDisputes is required'}), 400

    notify_disputes = bool_field(data, 'notifyDisputes', 'notify_disputes')
    updated = _active_subscriptions(current_user_id).update(
        {'notify_disputes': notify_disputes}, synchronize_session=False
    )
    db.session.commit()

    return jsonify({'notify_disputes': notify_disputes, 'updated_count': updated}), 200


@push_bp.route('/subscriptions', methods=['GET'])
@token_required
def get_subscriptions(current_user_id):
    subscriptions = _active_subscriptions(current_user_id).all()
    return jsonify({
        'subscriptions': [s.to_dict() for s in subscriptions],
        'count': len(subscriptions)
    }), 200
