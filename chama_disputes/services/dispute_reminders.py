"""Deadline scanner for disputes.

check_approaching_deadlines() runs hourly and reminds people whose input
is still missing before a discussion or voting deadline.
check_overdue_disputes() runs daily, closes voting that ran past its
deadline and tells officers about discussions left open too long.

Both are safe to run repeatedly: DisputeReminder rows remember who was
told what and when, and finalize() is a no-op on a dispute that already
left voting. A failure on one dispute is logged and the pass moves on.
"""

import logging
from datetime import timedelta

from flask import current_app

from chama_disputes import db
from chama_disputes.models import (
    Dispute, DisputeStatus, DisputeComment, DisputeReminder, ReminderPhase,
)
from chama_disputes.services import disputes
from chama_disputes.services import dispute_notifications as notifications
from chama_disputes.services.redis_client import acquire_scan_lock, release_scan_lock
from chama_disputes.utils.dates import utcnow

logger = logging.getLogger(__name__)


def _due_recipients(dispute_id, user_ids, phase, now, interval_hours):
    """Subset of user_ids not reminded about this dispute and phase within the interval."""
    if not user_ids:
        return []
    cutoff = now - timedelta(hours=interval_hours)
    sent = {
        r.user_id: r.last_sent_at
        for r in DisputeReminder.query.filter(
            DisputeReminder.dispute_id == dispute_id,
            DisputeReminder.phase == phase,
            DisputeReminder.user_id.in_(user_ids)
        ).all()
    }
    return [uid for uid in user_ids if uid not in sent or sent[uid] <= cutoff]


def _mark_sent(dispute_id, user_ids, phase, now):
    existing = {
        r.user_id: r
        for r in DisputeReminder.query.filter(
            DisputeReminder.dispute_id == dispute_id,
            DisputeReminder.phase == phase,
            DisputeReminder.user_id.in_(user_ids)
        ).all()
    }
    for user_id in user_ids:
        reminder = existing.get(user_id)
        if reminder:
            reminder.last_sent_at = now
        else:
            db.session.add(DisputeReminder(
                dispute_id=dispute_id, user_id=user_id, phase=phase, last_sent_at=now
            ))


def _hours_left(deadline, now):
    return max(int((deadline - now).total_seconds() // 3600), 0)


def _discussion_targets(dispute, now):
    """Participants who have not commented recently."""
    since = now - timedelta(hours=current_app.config['DISPUTE_RECENT_COMMENT_HOURS'])
    recent = {
        row.user_id
        for row in DisputeComment.query.filter(
            DisputeComment.dispute_id == dispute.id,
            DisputeComment.created_at >= since
        ).all()
    }
    return [uid for uid in notifications.dispute_participants(dispute) if uid not in recent]


def _voting_targets(dispute):
    """Eligible voters who have not voted yet."""
    voted = {vote.user_id for vote in dispute.votes.all()}
    return [uid for uid in disputes.eligible_voter_ids(dispute) if uid not in voted]


def _remind(dispute, phase, targets, now, interval_hours, send):
    due = _due_recipients(dispute.id, targets, phase, now, interval_hours)
    if not due:
        return 0
    _mark_sent(dispute.id, due, phase, now)
    db.session.commit()
    send(due)
    return len(due)


def check_approaching_deadlines(now=None):
    """Remind participants about discussion and voting deadlines inside the window."""
    now = now or utcnow()
    config = current_app.config
    summary = {'checked': 0, 'reminded': 0, 'errors': 0, 'skipped': False}

    token = acquire_scan_lock('approaching', config['DISPUTE_SCAN_LOCK_TTL'])
    if token is None:
        logger.info('[SCANNER] Another process is checking approaching deadlines, skipping')
        summary['skipped'] = True
        return summary

    try:
        window_end = now + timedelta(hours=config['DISPUTE_REMINDER_WINDOW_HOURS'])
        interval = config['DISPUTE_REMINDER_INTERVAL_HOURS']

        candidates = Dispute.query.filter(
            ((Dispute.status == DisputeStatus.DISCUSSION)
             & (Dispute.discussion_deadline > now)
             & (Dispute.discussion_deadline <= window_end))
            | ((Dispute.status == DisputeStatus.VOTING)
               & (Dispute.voting_deadline > now)
               & (Dispute.voting_deadline <= window_end))
        ).order_by(Dispute.id).all()
        candidate_ids = [d.id for d in candidates]

        for dispute_id in candidate_ids:
            summary['checked'] += 1
            try:
                dispute = Dispute.query.get(dispute_id)
                if dispute.status == DisputeStatus.DISCUSSION:
                    hours = _hours_left(dispute.discussion_deadline, now)
                    summary['reminded'] += _remind(
                        dispute, ReminderPhase.DISCUSSION, _discussion_targets(dispute, now), now, interval,
                        lambda due: notifications.notify_discussion_reminder(dispute, due, hours)
                    )
                elif dispute.status == DisputeStatus.VOTING:
                    hours = _hours_left(dispute.voting_deadline, now)
                    summary['reminded'] += _remind(
                        dispute, ReminderPhase.VOTING, _voting_targets(dispute), now, interval,
                        lambda due: notifications.notify_voting_reminder(dispute, due, hours)
                    )
            except Exception as e:
                db.session.rollback()
                summary['errors'] += 1
                logger.error(f'[SCANNER] Reminder check failed for dispute {dispute_id}: {e}')
    finally:
        release_scan_lock('approaching', token)

    logger.info(f'[SCANNER] Approaching deadlines: {summary}')
    return summary


def check_overdue_disputes(now=None):
    """Finalize voting past its deadline and flag overdue discussions to officers."""
    now = now or utcnow()
    config = current_app.config
    summary = {'finalized': 0, 'resolved': 0, 'escalated': 0, 'overdue_notices': 0,
               'errors': 0, 'skipped': False}

    token = acquire_scan_lock('overdue', config['DISPUTE_SCAN_LOCK_TTL'])
    if token is None:
        logger.info('[SCANNER] Another process is checking overdue disputes, skipping')
        summary['skipped'] = True
        return summary

    try:
        voting_ids = [d.id for d in Dispute.query.filter(
            Dispute.status == DisputeStatus.VOTING,
            Dispute.voting_deadline <= now
        ).order_by(Dispute.voting_deadline).all()]

        for dispute_id in voting_ids:
            try:
                dispute = disputes.finalize(dispute_id, now=now)
                if dispute.status == DisputeStatus.RESOLVED:
                    summary['resolved'] += 1
                elif dispute.status == DisputeStatus.ESCALATED:
                    summary['escalated'] += 1
                if dispute.status != DisputeStatus.VOTING:
                    summary['finalized'] += 1
            except Exception as e:
                db.session.rollback()
                summary['errors'] += 1
                logger.error(f'[SCANNER] Finalize failed for dispute {dispute_id}: {e}')

        discussion_ids = [d.id for d in Dispute.query.filter(
            Dispute.status == DisputeStatus.DISCUSSION,
            Dispute.discussion_deadline <= now
        ).order_by(Dispute.discussion_deadline).all()]

        for dispute_id in discussion_ids:
            try:
                dispute = Dispute.query.get(dispute_id)
                summary['overdue_notices'] += _remind(
                    dispute, ReminderPhase.DISCUSSION_OVERDUE, notifications.chama_officers(dispute),
                    now, config['DISPUTE_OVERDUE_INTERVAL_HOURS'],
                    lambda due: notifications.notify_overdue_dispute(dispute, due, 'discussion')
                )
            except Exception as e:
                db.session.rollback()
                summary['errors'] += 1
                logger.error(f'[SCANNER] Overdue notice failed for dispute {dispute_id}: {e}')
    finally:
        release_scan_lock('overdue', token)

    logger.info(f'[SCANNER] Overdue disputes: {summary}')
    return summary
