"""Notification gateway for dispute events.

notify() fans a templated message out to each recipient as an in-app
notification, a web push and (for templates that warrant it) an email.
It is fire-and-forget: every failure is logged and swallowed, and nothing
here touches dispute state. Callers must commit their own changes before
calling in, because a failed notification rolls the session back.
"""

import logging
from chama_disputes import db
from chama_disputes.models import Notification, NotificationType, User, DisputeType
from chama_disputes.services import membership
from chama_disputes.services.email import email_service
from chama_disputes.services.push_notifications import send_push_notification
from chama_disputes.utils.user_helpers import get_display_name, send_safe

logger = logging.getLogger(__name__)


TEMPLATES = {
    'dispute_filed': {
        'type': NotificationType.DISPUTE_FILED,
        'title': 'New Dispute Filed',
        'message': 'A new {dispute_type_label} has been filed in your chama: "{dispute_title}". '
                   'Please review and take part in the resolution process.',
        'email': True,
    },
    'status_changed': {
        'type': NotificationType.DISPUTE_STATUS_CHANGED,
        'title': 'Dispute Status Updated',
        'message': 'The dispute "{dispute_title}" moved from {old_status_label} to {status_label}.',
        'email': True,
    },
    'discussion_started': {
        'type': NotificationType.DISPUTE_DISCUSSION_STARTED,
        'title': 'Dispute Discussion Open',
        'message': 'Discussion is open for the dispute "{dispute_title}" until {deadline}. Add your comments.',
        'email': False,
    },
    'voting_started': {
        'type': NotificationType.DISPUTE_VOTING_STARTED,
        'title': 'Vote on Dispute',
        'message': 'Voting has started for the dispute "{dispute_title}". Deadline: {deadline}. '
                   'Please cast your vote.',
        'email': True,
        'require_interaction': True,
    },
    'dispute_resolved': {
        'type': NotificationType.DISPUTE_RESOLVED,
        'title': 'Dispute Resolved',
        'message': 'The dispute "{dispute_title}" has been resolved: {resolution_label}.',
        'email': True,
    },
    'dispute_escalated': {
        'type': NotificationType.DISPUTE_ESCALATED,
        'title': 'Dispute Escalated',
        'message': 'The dispute "{dispute_title}" has been escalated to platform review. Reason: {reason}',
        'email': True,
    },
    'escalation_reviewed': {
        'type': NotificationType.DISPUTE_ESCALATION_REVIEWED,
        'title': 'Platform Review Complete',
        'message': 'The platform has reviewed the dispute "{dispute_title}". Decision: {status_label}.',
        'email': True,
    },
    'evidence_added': {
        'type': NotificationType.DISPUTE_EVIDENCE_ADDED,
        'title': 'New Dispute Evidence',
        'message': '{actor_name} added evidence "{evidence_title}" to the dispute "{dispute_title}".',
        'email': False,
    },
    'comment_added': {
        'type': NotificationType.DISPUTE_COMMENT_ADDED,
        'title': 'New Dispute Comment',
        'message': '{actor_name} commented on the dispute "{dispute_title}".',
        'email': False,
    },
    'voting_reminder': {
        'type': NotificationType.DISPUTE_VOTE_REMINDER,
        'title': 'Voting Deadline Reminder',
        'message': 'The voting deadline for dispute "{dispute_title}" is in {deadline_text}. '
                   'Please cast your vote.',
        'email': True,
        'require_interaction': True,
    },
    'discussion_reminder': {
        'type': NotificationType.DISPUTE_DISCUSSION_REMINDER,
        'title': 'Discussion Deadline Reminder',
        'message': 'The discussion deadline for dispute "{dispute_title}" is in {deadline_text}. '
                   'Please add your comments if you have any.',
        'email': True,
    },
    'dispute_overdue': {
        'type': NotificationType.DISPUTE_OVERDUE,
        'title': 'Overdue Dispute',
        'message': 'The dispute "{dispute_title}" has passed its {phase} deadline. '
                   'Please move it to the next phase.',
        'email': True,
    },
}


def notify(recipients, template, payload) -> int:
    """Deliver a templated dispute message to each recipient.

    Args:
        recipients: iterable of user ids (duplicates and None are skipped)
        template: key into TEMPLATES
        payload: values for the template; 'dispute_id' links the notification

    Returns:
        Number of in-app notifications created (0 on any failure)
    """
    try:
        entry = TEMPLATES[template]
        title = entry['title']
        message = entry['message'].format(**payload)
    except (KeyError, IndexError) as e:
        logger.error(f'Cannot render dispute notification "{template}": missing {e}')
        return 0

    user_ids = []
    for user_id in recipients:
        if user_id is not None and user_id not in user_ids:
            user_ids.append(user_id)
    if not user_ids:
        return 0

    dispute_id = payload.get('dispute_id')

    try:
        for user_id in user_ids:
            notification = Notification(
                user_id=user_id,
                type=entry['type'],
                title=title,
                message=message,
                related_type='dispute',
                related_id=dispute_id
            )
            notification.set_data(payload)
            db.session.add(notification)
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.error(f'Failed to store "{template}" notifications for dispute {dispute_id}: {e}')
        return 0

    for user_id in user_ids:
        send_safe(
            send_push_notification,
            user_id=user_id,
            title=title,
            body=message,
            url=f'/disputes/{dispute_id}' if dispute_id else None,
            tag=f'dispute-{dispute_id}-{template}',
            require_interaction=entry.get('require_interaction', False)
        )

    if entry.get('email'):
        users = User.query.filter(User.id.in_(user_ids)).all()
        for user in users:
            if user.email:
                send_safe(
                    email_service.send_dispute_email,
                    to_email=user.email,
                    recipient_name=get_display_name(user),
                    subject=f'{title}: {payload.get("dispute_title", "")}',
                    message=message,
                    dispute_id=dispute_id
                )

    logger.info(f'Notified {len(user_ids)} user(s) with "{template}" for dispute {dispute_id}')
    return len(user_ids)


# ============ RECIPIENT HELPERS ============

def dispute_participants(dispute) -> list:
    """Filer, accused and the chama's officers."""
    ids = [dispute.filed_by_user_id, dispute.filed_against_user_id]
    ids.extend(chama_officers(dispute))
    return [uid for uid in dict.fromkeys(ids) if uid is not None]


def chama_members(dispute) -> list:
    return membership.active_member_ids(dispute.chama_id)


def chama_officers(dispute) -> list:
    return membership.officer_ids(dispute.chama_id)


def platform_admins() -> list:
    return membership.platform_admin_ids()


def _label(value):
    return value.replace('_', ' ').title() if value else ''


def deadline_text(hours_left):
    if hours_left < 1:
        return 'less than an hour'
    if hours_left == 1:
        return '1 hour'
    return f'{hours_left} hours'


def base_payload(dispute, **extra) -> dict:
    payload = {
        'dispute_id': dispute.id,
        'chama_id': dispute.chama_id,
        'dispute_title': dispute.title,
        'dispute_type': dispute.dispute_type,
        'dispute_type_label': DisputeType.LABELS.get(dispute.dispute_type, dispute.dispute_type).lower(),
        'status': dispute.status,
        'status_label': _label(dispute.status),
    }
    payload.update(extra)
    return payload


# ============ EVENT HELPERS ============

def notify_dispute_filed(dispute):
    recipients = [uid for uid in chama_members(dispute) if uid != dispute.filed_by_user_id]
    return notify(recipients, 'dispute_filed', base_payload(dispute))


def notify_status_change(dispute, old_status):
    payload = base_payload(dispute, old_status=old_status, old_status_label=_label(old_status))
    return notify(dispute_participants(dispute), 'status_changed', payload)


def notify_discussion_started(dispute):
    payload = base_payload(dispute, deadline=_format_deadline(dispute.discussion_deadline))
    return notify(chama_members(dispute), 'discussion_started', payload)


def notify_voting_started(dispute):
    payload = base_payload(
        dispute,
        deadline=_format_deadline(dispute.voting_deadline),
        required_votes=dispute.required_votes
    )
    return notify(chama_members(dispute), 'voting_started', payload)


def notify_dispute_resolved(dispute):
    payload = base_payload(
        dispute,
        resolution_type=dispute.resolution_type,
        resolution_label=_label(dispute.resolution_type)
    )
    return notify(dispute_participants(dispute), 'dispute_resolved', payload)


def notify_dispute_escalated(dispute, reason):
    recipients = platform_admins() + dispute_participants(dispute)
    return notify(recipients, 'dispute_escalated', base_payload(dispute, reason=reason))


def notify_escalation_reviewed(dispute, decision):
    payload = base_payload(dispute, decision=decision)
    return notify(dispute_participants(dispute), 'escalation_reviewed', payload)


def notify_evidence_added(dispute, evidence, actor_name):
    recipients = [uid for uid in dispute_participants(dispute) if uid != evidence.submitted_by_user_id]
    payload = base_payload(dispute, evidence_title=evidence.title, actor_name=actor_name)
    return notify(recipients, 'evidence_added', payload)


def notify_comment_added(dispute, comment, actor_name):
    recipients = [uid for uid in dispute_participants(dispute) if uid != comment.user_id]
    payload = base_payload(dispute, actor_name=actor_name)
    return notify(recipients, 'comment_added', payload)


def notify_voting_reminder(dispute, user_ids, hours_left):
    payload = base_payload(dispute, deadline_text=deadline_text(hours_left), hours_left=hours_left)
    return notify(user_ids, 'voting_reminder', payload)


def notify_discussion_reminder(dispute, user_ids, hours_left):
    payload = base_payload(dispute, deadline_text=deadline_text(hours_left), hours_left=hours_left)
    return notify(user_ids, 'discussion_reminder', payload)


def notify_overdue_dispute(dispute, user_ids, phase):
    return notify(user_ids, 'dispute_overdue', base_payload(dispute, phase=phase))


def _format_deadline(value):
    if not value:
        return 'TBD'
    return value.strftime('%Y-%m-%d %H:%M UTC')
