"""Escalation of disputes to platform review, the review queue and analytics."""

import logging
from collections import defaultdict
from datetime import timedelta

from sqlalchemy import func

from chama_disputes import db
from chama_disputes.models import (
    Dispute, DisputeStatus, DisputeType, DisputeEscalation, EscalationStatus, ResolutionType,
)
from chama_disputes.services import audit, membership
from chama_disputes.services import dispute_notifications as notifications
from chama_disputes.services.errors import Forbidden, InvalidArgument, InvalidTransition, NotFound
from chama_disputes.utils.dates import utcnow

logger = logging.getLogger(__name__)

SYSTEM_QUORUM_REASON = 'quorum not reached'


class ReviewDecision:
    RESOLVE = 'resolve'
    REJECT = 'reject'

    ALL = [RESOLVE, REJECT]


def escalate(dispute, actor_id, reason) -> bool:
    """Move a dispute to platform review.

    Uses a conditional update on the dispute's current status, so when two
    callers race only the first one escalates. Returns False (and changes
    nothing) when the dispute left that status in the meantime.

    Args:
        dispute: the Dispute being escalated
        actor_id: escalating user, or None for a system escalation
        reason: free text shown to platform admins
    """
    if dispute.is_terminal or dispute.status == DisputeStatus.ESCALATED:
        raise InvalidTransition(dispute.status, 'escalate')

    now = utcnow()
    old_status = dispute.status

    updated = Dispute.query.filter(
        Dispute.id == dispute.id,
        Dispute.status == old_status
    ).update({
        'status': DisputeStatus.ESCALATED,
        'escalated_at': now,
        'discussion_deadline': None,
        'voting_deadline': None,
        'updated_at': now,
    }, synchronize_session=False)

    if not updated:
        db.session.rollback()
        logger.info(f'Dispute {dispute.id} already left "{old_status}", escalation skipped')
        return False

    db.session.add(DisputeEscalation(
        dispute_id=dispute.id,
        escalated_by_user_id=actor_id,
        reason=reason,
        escalated_at=now
    ))
    audit.record(
        dispute.id, 'escalated', actor_id,
        from_status=old_status, to_status=DisputeStatus.ESCALATED, reason=reason
    )
    db.session.commit()
    db.session.refresh(dispute)

    logger.info(f'Dispute {dispute.id} escalated from "{old_status}" by {actor_id or "system"}: {reason}')
    notifications.notify_dispute_escalated(dispute, reason)
    return True


def review_escalated_dispute(admin_id, dispute_id, decision, resolution_type=None,
                             notes=None, platform_action=None):
    """Record the platform's decision on an escalated dispute.

    'resolve' closes it as resolved with the given resolution_type,
    'reject' closes it as rejected.
    """
    if not membership.is_platform_admin(admin_id):
        raise Forbidden('Only platform admins can review escalated disputes')

    dispute = Dispute.query.get(dispute_id)
    if not dispute:
        raise NotFound('Dispute not found')

    if decision not in ReviewDecision.ALL:
        raise InvalidArgument(f'Invalid decision. Must be one of: {ReviewDecision.ALL}')
    if dispute.status != DisputeStatus.ESCALATED:
        raise InvalidTransition(dispute.status, 'review')

    now = utcnow()
    values = {
        'platform_resolution': notes,
        'updated_at': now,
    }
    if decision == ReviewDecision.RESOLVE:
        if resolution_type not in ResolutionType.ALL:
            raise InvalidArgument(f'Invalid resolution type. Must be one of: {ResolutionType.ALL}')
        values.update({
            'status': DisputeStatus.RESOLVED,
            'resolution_type': resolution_type,
            'resolution_notes': notes,
            'resolved_by_user_id': admin_id,
            'resolved_at': now,
        })
    else:
        values['status'] = DisputeStatus.REJECTED

    updated = Dispute.query.filter(
        Dispute.id == dispute.id,
        Dispute.status == DisputeStatus.ESCALATED
    ).update(values, synchronize_session=False)
    if not updated:
        db.session.rollback()
        db.session.refresh(dispute)
        raise InvalidTransition(dispute.status, 'review')

    pending = DisputeEscalation.query.filter_by(
        dispute_id=dispute.id, status=EscalationStatus.PENDING
    ).all()
    for escalation in pending:
        escalation.status = EscalationStatus.REVIEWED
        escalation.reviewed_by_user_id = admin_id
        escalation.reviewed_at = now
        escalation.decision = decision
        escalation.decision_notes = notes
        escalation.platform_action = platform_action

    audit.record(
        dispute.id, 'escalation_reviewed', admin_id,
        from_status=DisputeStatus.ESCALATED, to_status=values['status'],
        decision=decision, resolution_type=resolution_type, notes=notes
    )
    db.session.commit()
    db.session.refresh(dispute)

    logger.info(f'Platform admin {admin_id} reviewed dispute {dispute.id}: {decision}')
    notifications.notify_escalation_reviewed(dispute, decision)
    return dispute


def list_escalated_disputes(limit=50, offset=0):
    """Escalated disputes awaiting review, oldest escalation first."""
    query = Dispute.query.filter_by(status=DisputeStatus.ESCALATED).order_by(
        Dispute.escalated_at.asc(), Dispute.id.asc()
    )
    total = query.count()
    disputes = query.offset(offset).limit(limit).all()

    items = []
    for dispute in disputes:
        data = dispute.to_dict()
        pending = dispute.escalations.filter_by(status=EscalationStatus.PENDING).order_by(
            DisputeEscalation.escalated_at.desc()
        ).first()
        data['escalation'] = pending.to_dict() if pending else None
        items.append(data)

    return {'disputes': items, 'total': total, 'limit': limit, 'offset': offset}


def _round(value, digits=2):
    return round(value, digits) if value is not None else None


def dispute_analytics(start_date=None, end_date=None):
    """Platform-wide dispute metrics for disputes created in [start_date, end_date]."""
    filters = []
    if start_date:
        filters.append(Dispute.created_at >= start_date)
    if end_date:
        filters.append(Dispute.created_at <= end_date)

    def grouped(column):
        rows = db.session.query(column, func.count(Dispute.id)).filter(*filters).group_by(column).all()
        return {key: count for key, count in rows}

    total = Dispute.query.filter(*filters).count()
    by_type = grouped(Dispute.dispute_type)
    by_status = grouped(Dispute.status)
    by_priority = grouped(Dispute.priority)

    resolved = by_status.get(DisputeStatus.RESOLVED, 0)
    escalated_ever = Dispute.query.filter(*filters).filter(Dispute.escalated_at.isnot(None)).count()

    # Average time from filing to resolution, overall and per type
    resolved_rows = db.session.query(
        Dispute.dispute_type, Dispute.created_at, Dispute.resolved_at
    ).filter(*filters).filter(
        Dispute.status == DisputeStatus.RESOLVED,
        Dispute.resolved_at.isnot(None)
    ).all()

    durations = defaultdict(list)
    for dispute_type, created_at, resolved_at in resolved_rows:
        durations[dispute_type].append((resolved_at - created_at).total_seconds() / 86400)
    all_durations = [d for values in durations.values() for d in values]

    resolution_by_type = {
        dispute_type: {
            'label': DisputeType.LABELS.get(dispute_type, dispute_type),
            'resolved': len(durations.get(dispute_type, [])),
            'avg_resolution_days': _round(
                sum(durations[dispute_type]) / len(durations[dispute_type])
            ) if durations.get(dispute_type) else None,
        }
        for dispute_type in DisputeType.ALL
    }

    # Daily filings over the last 30 days of the window
    trend_end = end_date or utcnow()
    trend_start = trend_end - timedelta(days=30)
    if start_date and start_date > trend_start:
        trend_start = start_date
    day = func.date(Dispute.created_at)
    trend_rows = db.session.query(day, func.count(Dispute.id)).filter(
        Dispute.created_at >= trend_start,
        Dispute.created_at <= trend_end
    ).group_by(day).order_by(day).all()
    daily_trends = [{'date': str(date_val), 'count': count} for date_val, count in trend_rows]

    return {
        'total': total,
        'by_type': by_type,
        'by_status': by_status,
        'by_priority': by_priority,
        'resolution_rate': _round(resolved / total * 100, 1) if total else 0,
        'escalation_rate': _round(escalated_ever / total * 100, 1) if total else 0,
        'avg_resolution_days': _round(sum(all_durations) / len(all_durations)) if all_durations else None,
        'resolution_by_type': resolution_by_type,
        'daily_trends': daily_trends,
        'start_date': start_date.isoformat() if start_date else None,
        'end_date': end_date.isoformat() if end_date else None,
    }
