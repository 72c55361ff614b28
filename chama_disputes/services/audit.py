"""Audit trail writer for dispute lifecycle actions."""

import logging
from chama_disputes import db
from chama_disputes.models import DisputeAuditLog

logger = logging.getLogger(__name__)


def record(dispute_id, action, actor_user_id=None, from_status=None, to_status=None, **details):
    """Stage an audit row in the current session.

    The caller commits it together with the change it describes.
    actor_user_id=None marks a system action (scanner, auto-escalation).
    """
    entry = DisputeAuditLog(
        dispute_id=dispute_id,
        actor_user_id=actor_user_id,
        action=action,
        from_status=from_status,
        to_status=to_status,
        details=details or None
    )
    db.session.add(entry)
    logger.debug(f'Audit {action} on dispute {dispute_id} by {actor_user_id or "system"}')
    return entry


def history(dispute_id):
    return DisputeAuditLog.query.filter_by(dispute_id=dispute_id).order_by(
        DisputeAuditLog.created_at.asc(), DisputeAuditLog.id.asc()
    ).all()
