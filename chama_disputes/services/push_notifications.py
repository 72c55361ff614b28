"""Push notification service for sending web push notifications."""

import os
import json
import logging
from pywebpush import webpush, WebPushException
from chama_disputes import db
from chama_disputes.models import PushSubscription

logger = logging.getLogger(__name__)

# VAPID keys - these should be set in environment variables
VAPID_PRIVATE_KEY = os.getenv('VAPID_PRIVATE_KEY', '')
VAPID_PUBLIC_KEY = os.getenv('VAPID_PUBLIC_KEY', '')
VAPID_CLAIMS = {
    'sub': os.getenv('VAPID_SUBJECT', 'mailto:support@chama.example')
}

# Consecutive delivery failures before a device is switched off
MAX_FAILURES = 3


def is_push_configured() -> bool:
    return bool(VAPID_PRIVATE_KEY and VAPID_PUBLIC_KEY)


def send_push_notification(user_id: int, title: str, body: str,
                           url: str = None, tag: str = None,
                           require_interaction: bool = False) -> dict:
    """
    Send push notification to all devices registered for a user.

    Args:
        user_id: The user to send notification to
        title: Notification title
        body: Notification body text
        url: URL to open when notification is clicked (optional)
        tag: Tag for grouping/replacing notifications (optional)
        require_interaction: Keep the notification on screen until dismissed

    Returns:
        dict with 'sent' count and 'failed' count
    """
    if not is_push_configured():
        logger.debug('[PUSH] VAPID keys not configured - skipping push notification')
        return {'sent': 0, 'failed': 0, 'error': 'VAPID keys not configured'}

    subscriptions = PushSubscription.query.filter_by(
        user_id=user_id,
        is_active=True,
        notify_disputes=True
    ).all()

    if not subscriptions:
        logger.debug(f'[PUSH] No active subscriptions for user {user_id}')
        return {'sent': 0, 'failed': 0, 'error': 'No active subscriptions'}

    payload = {
        'title': str(title) if title else '',
        'body': str(body) if body else '',
        'icon': '/icons/icon-192x192.png',
        'badge': '/icons/badge-72x72.png',
        'tag': str(tag) if tag else 'dispute',
        'requireInteraction': bool(require_interaction),
        'data': {
            'url': str(url) if url else '/'
        }
    }

    try:
        payload_json = json.dumps(payload)
    except (TypeError, ValueError) as e:
        logger.error(f'[PUSH] Failed to serialize payload: {type(e).__name__}: {e}')
        return {'sent': 0, 'failed': len(subscriptions), 'error': f'Payload serialization error: {e}'}

    sent = failed = 0

    for subscription in subscriptions:
        try:
            webpush(
                subscription_info=subscription.get_subscription_info(),
                data=payload_json,
                vapid_private_key=VAPID_PRIVATE_KEY,
                vapid_claims=VAPID_CLAIMS
            )
        except WebPushException as e:
            failed += 1
            subscription.failed_count = (subscription.failed_count or 0) + 1
            gone = e.response is not None and e.response.status_code in (404, 410)
            logger.error(f'[PUSH] Subscription {subscription.id} failed ({subscription.failed_count}x): {e}')

            if gone or subscription.failed_count >= MAX_FAILURES:
                logger.warning(f'[PUSH] Deactivating subscription {subscription.id}')
                subscription.is_active = False
        else:
            subscription.mark_used()
            sent += 1

    try:
        db.session.commit()
    except Exception as commit_error:
        logger.error(f'[PUSH] Failed to update subscriptions: {commit_error}')
        db.session.rollback()

    result = {'sent': sent, 'failed': failed}
    logger.info(f'[PUSH] user {user_id} "{title}": {result}')
    return result
