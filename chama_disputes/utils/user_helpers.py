"""Shared user-related helper functions."""

import logging

logger = logging.getLogger(__name__)


def get_display_name(user):
    """
    Get the best display name for a user.

    Priority:
    1. first + last name (if available)
    2. username (if available)
    3. 'Someone' (fallback)

    Args:
        user: User model instance or None

    Returns:
        str: The best available display name
    """
    if not user:
        return 'Someone'
    full_name = f"{user.first_name or ''} {user.last_name or ''}".strip()
    if full_name:
        return full_name
    return user.username or 'Someone'


def send_safe(send_func, *args, **kwargs):
    """
    Call a notification channel, handling errors gracefully.

    Delivery failures should never cause the lifecycle operation that
    triggered them to fail. This wrapper catches any exception, logs it
    and returns None.

    Usage:
        send_safe(
            send_push_notification,
            user_id=member_id,
            title='Vote on Dispute',
            body='Voting has started',
        )
    """
    try:
        return send_func(*args, **kwargs)
    except Exception as e:
        logger.error(f'Notification channel error (non-critical) in {getattr(send_func, "__name__", send_func)}: {e}')
        return None
