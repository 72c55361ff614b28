"""Dispute lifecycle: filing, discussion, voting, resolution and escalation.

Every operation takes the caller's user id explicitly, checks the caller's
capabilities in the chama, validates the transition against the dispute's
current status and then commits. Notifications are sent only after the
commit, through the notification gateway.

State changes use a conditional UPDATE on the status the check saw, so two
concurrent requests cannot both move the same dispute.
"""

import logging
from datetime import timedelta
from decimal import Decimal, InvalidOperation

from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from chama_disputes import db
from chama_disputes.models import (
    Dispute, DisputeStatus, DisputeType, DisputePriority, ResolutionType,
    DisputeEvidence, DisputeComment, DisputeVote, EvidenceType, VoteDecision, User,
)
from chama_disputes.services import audit, escalation, membership, storage, voting
from chama_disputes.services import dispute_notifications as notifications
from chama_disputes.services.errors import (
    Conflict, Forbidden, InvalidArgument, InvalidTransition, NotFound,
)
from chama_disputes.services.membership import Capability
from chama_disputes.utils.dates import utcnow
from chama_disputes.utils.user_helpers import get_display_name, send_safe

logger = logging.getLogger(__name__)

RELATED_FIELDS = (
    'related_transaction_id',
    'related_loan_id',
    'related_contribution_id',
    'related_payout_id',
)


# ============ HELPERS ============

def _get_or_404(dispute_id) -> Dispute:
    dispute = Dispute.query.get(dispute_id)
    if not dispute:
        raise NotFound('Dispute not found')
    return dispute


def _require_viewer(dispute, user_id):
    """Chama members, the parties themselves and platform admins may look at a dispute."""
    caps = membership.capabilities(dispute.chama_id, user_id)
    if user_id in dispute.party_ids():
        return caps
    membership.require(
        caps, Capability.CHAMA_MEMBER, Capability.PLATFORM_ADMIN,
        message='You are not a member of this chama'
    )
    return caps


def _require_future(deadline, field='deadline'):
    if deadline is None:
        raise InvalidArgument(f'{field} is required')
    if deadline <= utcnow():
        raise InvalidArgument(f'{field} must be in the future')


def _transition(dispute, values, action, actor_id, operation, raise_on_conflict=True, **details):
    """Apply a status change if the dispute is still in the status we checked.

    Returns the previous status, or None when another writer got there
    first and raise_on_conflict is False.
    """
    old_status = dispute.status
    values = dict(values, updated_at=utcnow())

    updated = Dispute.query.filter(
        Dispute.id == dispute.id,
        Dispute.status == old_status
    ).update(values, synchronize_session=False)

    if not updated:
        db.session.rollback()
        db.session.refresh(dispute)
        if raise_on_conflict:
            raise InvalidTransition(dispute.status, operation)
        return None

    audit.record(
        dispute.id, action, actor_id,
        from_status=old_status, to_status=values.get('status', old_status), **details
    )
    db.session.commit()
    db.session.refresh(dispute)

    logger.info(f'Dispute {dispute.id}: {old_status} -> {dispute.status} ({action} by {actor_id or "system"})')
    return old_status


def eligible_voter_ids(dispute) -> list:
    """Active chama members allowed to vote on the dispute."""
    member_ids = membership.active_member_ids(dispute.chama_id)
    if current_app.config.get('DISPUTE_ALLOW_PARTY_VOTES'):
        return member_ids
    parties = dispute.party_ids()
    return [uid for uid in member_ids if uid not in parties]


def vote_summary(dispute) -> dict:
    return voting.tally(dispute.votes.all(), dispute.required_votes, dispute.dispute_type).to_dict()


def _parse_amount(value):
    if value is None or value == '':
        return None
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise InvalidArgument('amount_disputed must be a number')
    if amount < 0:
        raise InvalidArgument('amount_disputed cannot be negative')
    return amount


# ============ FILING AND QUERIES ============

def file_dispute(filer_id, chama_id, dispute_type, title, description='',
                 filed_against_user_id=None, priority=None, amount_disputed=None,
                 metadata=None, **related):
    """Open a new dispute in the 'filed' status.

    related accepts the related_* reference ids (transaction, loan,
    contribution, payout); they are stored as given.
    """
    if not membership.is_active_member(chama_id, filer_id):
        raise Forbidden('Only active chama members can file disputes')

    title = (title or '').strip()
    if not title:
        raise InvalidArgument('Title is required')
    if dispute_type not in DisputeType.ALL:
        raise InvalidArgument(f'Invalid dispute type. Must be one of: {DisputeType.ALL}')

    priority = priority or DisputePriority.NORMAL
    if priority not in DisputePriority.ALL:
        raise InvalidArgument(f'Invalid priority. Must be one of: {DisputePriority.ALL}')

    if filed_against_user_id is not None:
        if filed_against_user_id == filer_id:
            raise InvalidArgument('You cannot file a dispute against yourself')
        if not membership.is_known_member(chama_id, filed_against_user_id):
            raise InvalidArgument('The accused user is not a member of this chama')

    unknown = set(related) - set(RELATED_FIELDS)
    if unknown:
        raise InvalidArgument(f'Unknown fields: {sorted(unknown)}')

    dispute = Dispute(
        chama_id=chama_id,
        filed_by_user_id=filer_id,
        filed_against_user_id=filed_against_user_id,
        dispute_type=dispute_type,
        title=title,
        description=(description or '').strip(),
        priority=priority,
        amount_disputed=_parse_amount(amount_disputed),
        status=DisputeStatus.FILED,
        extra=metadata or None,
        **{field: (str(value) if value is not None else None) for field, value in related.items()}
    )
    db.session.add(dispute)
    db.session.flush()

    audit.record(dispute.id, 'filed', filer_id, to_status=DisputeStatus.FILED)
    db.session.commit()

    logger.info(f'Dispute {dispute.id} filed in chama {chama_id} by user {filer_id} ({dispute_type})')
    notifications.notify_dispute_filed(dispute)
    return dispute


def get_dispute(user_id, dispute_id) -> Dispute:
    dispute = _get_or_404(dispute_id)
    _require_viewer(dispute, user_id)
    return dispute


def list_chama_disputes(user_id, chama_id, status=None, limit=20, offset=0):
    """Disputes of a chama, newest first. Returns (disputes, total)."""
    caps = membership.capabilities(chama_id, user_id)
    membership.require(
        caps, Capability.CHAMA_MEMBER, Capability.PLATFORM_ADMIN,
        message='You are not a member of this chama'
    )
    if status and status not in DisputeStatus.ALL:
        raise InvalidArgument(f'Invalid status. Must be one of: {DisputeStatus.ALL}')

    query = Dispute.query.filter_by(chama_id=chama_id)
    if status:
        query = query.filter_by(status=status)

    total = query.count()
    disputes = query.order_by(Dispute.created_at.desc(), Dispute.id.desc()).offset(offset).limit(limit).all()
    return disputes, total


def list_user_disputes(user_id, chama_id=None, status=None):
    """Disputes the user filed or was named in."""
    if status and status not in DisputeStatus.ALL:
        raise InvalidArgument(f'Invalid status. Must be one of: {DisputeStatus.ALL}')

    query = Dispute.query.filter(
        (Dispute.filed_by_user_id == user_id) | (Dispute.filed_against_user_id == user_id)
    )
    if chama_id is not None:
        query = query.filter(Dispute.chama_id == chama_id)
    if status:
        query = query.filter(Dispute.status == status)
    return query.order_by(Dispute.created_at.desc(), Dispute.id.desc()).all()


def chama_dispute_stats(user_id, chama_id) -> dict:
    caps = membership.capabilities(chama_id, user_id)
    membership.require(
        caps, Capability.CHAMA_MEMBER, Capability.PLATFORM_ADMIN,
        message='You are not a member of this chama'
    )

    by_status = dict(
        db.session.query(Dispute.status, func.count(Dispute.id))
        .filter(Dispute.chama_id == chama_id)
        .group_by(Dispute.status).all()
    )
    by_type = dict(
        db.session.query(Dispute.dispute_type, func.count(Dispute.id))
        .filter(Dispute.chama_id == chama_id)
        .group_by(Dispute.dispute_type).all()
    )

    resolved = Dispute.query.filter(
        Dispute.chama_id == chama_id,
        Dispute.status == DisputeStatus.RESOLVED,
        Dispute.resolved_at.isnot(None)
    ).all()
    days = [(d.resolved_at - d.created_at).total_seconds() / 86400 for d in resolved]

    return {
        'total': sum(by_status.values()),
        'active': sum(by_status.get(s, 0) for s in DisputeStatus.ACTIVE),
        'by_status': {status: by_status.get(status, 0) for status in DisputeStatus.ALL},
        'by_type': {dispute_type: by_type.get(dispute_type, 0) for dispute_type in DisputeType.ALL},
        'avg_resolution_days': round(sum(days) / len(days), 2) if days else None,
    }


# ============ EVIDENCE AND COMMENTS ============

def add_evidence(user_id, dispute_id, title, evidence_type=EvidenceType.OTHER, description=None,
                 external_reference=None, file_data=None, file_name=None, content_type=None):
    """Attach evidence, optionally uploading a file to storage first."""
    dispute = _get_or_404(dispute_id)
    _require_viewer(dispute, user_id)
    if dispute.is_terminal:
        raise InvalidTransition(dispute.status, 'add evidence to')

    title = (title or '').strip()
    if not title:
        raise InvalidArgument('Evidence title is required')
    evidence_type = evidence_type or EvidenceType.OTHER
    if evidence_type not in EvidenceType.ALL:
        raise InvalidArgument(f'Invalid evidence type. Must be one of: {EvidenceType.ALL}')

    stored = None
    if file_data is not None:
        stored = storage.upload(
            file_data,
            file_name or 'evidence',
            content_type,
            folder=f'disputes/{dispute.id}/evidence',
            allowed_types=current_app.config['EVIDENCE_ALLOWED_TYPES'],
            max_size=current_app.config['EVIDENCE_MAX_SIZE']
        )

    evidence = DisputeEvidence(
        dispute_id=dispute.id,
        submitted_by_user_id=user_id,
        evidence_type=evidence_type,
        title=title,
        description=description,
        external_reference=external_reference,
        file_url=stored['url'] if stored else None,
        file_key=stored['key'] if stored else None,
        file_type=stored['mime_type'] if stored else None,
        file_size=stored['size'] if stored else None
    )

    try:
        db.session.add(evidence)
        db.session.flush()
        audit.record(dispute.id, 'evidence_added', user_id, evidence_id=evidence.id)
        db.session.commit()
    except Exception:
        db.session.rollback()
        if stored:
            # Don't leave an orphaned upload behind
            send_safe(storage.delete, stored['key'])
        raise

    logger.info(f'Evidence {evidence.id} added to dispute {dispute.id} by user {user_id}')
    notifications.notify_evidence_added(dispute, evidence, get_display_name(User.query.get(user_id)))
    return evidence


def list_evidence(user_id, dispute_id):
    dispute = _get_or_404(dispute_id)
    _require_viewer(dispute, user_id)
    return dispute.evidence.order_by(DisputeEvidence.created_at.asc(), DisputeEvidence.id.asc()).all()


def add_comment(user_id, dispute_id, content, parent_comment_id=None, is_internal=False):
    dispute = _get_or_404(dispute_id)
    caps = _require_viewer(dispute, user_id)
    if dispute.is_terminal:
        raise InvalidTransition(dispute.status, 'comment on')

    content = (content or '').strip()
    if not content:
        raise InvalidArgument('Comment content is required')

    if is_internal:
        membership.require(
            caps, Capability.CHAMA_OFFICER, Capability.PLATFORM_ADMIN,
            message='Only chama officers can post internal comments'
        )

    if parent_comment_id is not None:
        parent = DisputeComment.query.filter_by(id=parent_comment_id, dispute_id=dispute.id).first()
        if not parent:
            raise NotFound('Parent comment not found')

    comment = DisputeComment(
        dispute_id=dispute.id,
        user_id=user_id,
        content=content,
        parent_comment_id=parent_comment_id,
        is_internal=bool(is_internal)
    )
    db.session.add(comment)
    db.session.commit()

    if not comment.is_internal:
        notifications.notify_comment_added(dispute, comment, get_display_name(User.query.get(user_id)))
    return comment


def list_comments(user_id, dispute_id):
    """Flat comment list in creation order. Internal comments are for officers only."""
    dispute = _get_or_404(dispute_id)
    caps = _require_viewer(dispute, user_id)

    query = dispute.comments
    if not caps.intersection({Capability.CHAMA_OFFICER, Capability.PLATFORM_ADMIN}):
        query = query.filter(DisputeComment.is_internal == False)  # noqa: E712
    return query.order_by(DisputeComment.created_at.asc(), DisputeComment.id.asc()).all()


# ============ PHASE TRANSITIONS ============

def start_discussion(user_id, dispute_id, deadline):
    dispute = _get_or_404(dispute_id)
    caps = membership.capabilities(dispute.chama_id, user_id)
    membership.require(caps, Capability.CHAMA_OFFICER, message='Only chama officers can start discussion')

    if dispute.status != DisputeStatus.FILED:
        raise InvalidTransition(dispute.status, 'start discussion for')
    _require_future(deadline, 'Discussion deadline')

    _transition(
        dispute,
        {'status': DisputeStatus.DISCUSSION, 'discussion_deadline': deadline},
        'discussion_started', user_id, 'start discussion for',
        deadline=deadline.isoformat()
    )
    notifications.notify_discussion_started(dispute)
    return dispute


def start_voting(user_id, dispute_id, deadline, required_votes=None):
    dispute = _get_or_404(dispute_id)
    caps = membership.capabilities(dispute.chama_id, user_id)
    membership.require(caps, Capability.CHAMA_OFFICER, message='Only chama officers can start voting')

    if dispute.status != DisputeStatus.DISCUSSION:
        raise InvalidTransition(dispute.status, 'start voting for')
    _require_future(deadline, 'Voting deadline')

    if required_votes is None:
        required_votes = voting.default_required_votes(len(eligible_voter_ids(dispute)))
    elif isinstance(required_votes, bool) or not isinstance(required_votes, int) or required_votes < 1:
        raise InvalidArgument('required_votes must be a positive integer')

    _transition(
        dispute,
        {
            'status': DisputeStatus.VOTING,
            'voting_deadline': deadline,
            'discussion_deadline': None,
            'required_votes': required_votes,
        },
        'voting_started', user_id, 'start voting for',
        deadline=deadline.isoformat(), required_votes=required_votes
    )
    notifications.notify_voting_started(dispute)
    return dispute


def cast_vote(user_id, dispute_id, decision, reason=None):
    """Record a member's vote, then finalize at once if quorum is reached.

    Returns (vote, dispute); the dispute reflects any finalization.
    """
    dispute = _get_or_404(dispute_id)
    if not membership.is_active_member(dispute.chama_id, user_id):
        raise Forbidden('Only active chama members can vote')

    if dispute.status != DisputeStatus.VOTING:
        raise InvalidTransition(dispute.status, 'vote on')
    if dispute.voting_deadline and dispute.voting_deadline <= utcnow():
        raise Conflict('The voting deadline has passed')

    if user_id in dispute.party_ids() and not current_app.config.get('DISPUTE_ALLOW_PARTY_VOTES'):
        raise Forbidden('Parties to a dispute cannot vote on it')

    if decision not in VoteDecision.ALL:
        raise InvalidArgument(f'Invalid vote. Must be one of: {VoteDecision.ALL}')

    if DisputeVote.query.filter_by(dispute_id=dispute.id, user_id=user_id).first():
        raise Conflict('You have already voted on this dispute')

    vote = DisputeVote(dispute_id=dispute.id, user_id=user_id, decision=decision, reason=reason)
    try:
        db.session.add(vote)
        db.session.commit()
    except IntegrityError:
        # Lost a race against our own earlier request
        db.session.rollback()
        raise Conflict('You have already voted on this dispute')

    logger.info(f'User {user_id} voted "{decision}" on dispute {dispute.id}')

    result = voting.tally(dispute.votes.all(), dispute.required_votes, dispute.dispute_type)
    if result.quorum_reached:
        finalize(dispute.id)
        db.session.refresh(dispute)
    return vote, dispute


def list_votes(user_id, dispute_id):
    dispute = _get_or_404(dispute_id)
    _require_viewer(dispute, user_id)
    return dispute.votes.order_by(DisputeVote.cast_at.asc(), DisputeVote.id.asc()).all()


def get_history(user_id, dispute_id):
    """Audit trail of a dispute, oldest first."""
    dispute = _get_or_404(dispute_id)
    _require_viewer(dispute, user_id)
    return audit.history(dispute.id)


def finalize(dispute_id, now=None):
    """Close voting if quorum is reached or the deadline has passed.

    Quorum resolves the dispute with the tally's outcome. A passed deadline
    without quorum escalates it to platform review. Calling this again, or
    concurrently, is a no-op for everyone but the first caller.
    """
    dispute = _get_or_404(dispute_id)
    if dispute.status != DisputeStatus.VOTING:
        return dispute

    now = now or utcnow()
    result = voting.tally(dispute.votes.all(), dispute.required_votes, dispute.dispute_type)

    if result.quorum_reached:
        old_status = _transition(
            dispute,
            {
                'status': DisputeStatus.RESOLVED,
                'resolution_type': result.outcome,
                'resolution_notes': (
                    f'Decided by member vote: {result.votes_for} for, '
                    f'{result.votes_against} against, {result.votes_abstain} abstain'
                ),
                'resolved_at': now,
                'voting_deadline': None,
            },
            'vote_finalized', None, 'finalize', raise_on_conflict=False,
            tally=result.to_dict()
        )
        if old_status is not None:
            notifications.notify_dispute_resolved(dispute)
        return dispute

    if dispute.voting_deadline and dispute.voting_deadline <= now:
        escalation.escalate(dispute, None, escalation.SYSTEM_QUORUM_REASON)
        db.session.refresh(dispute)

    return dispute


def resolve_dispute(user_id, dispute_id, resolution_type, notes=None):
    dispute = _get_or_404(dispute_id)
    caps = membership.capabilities(dispute.chama_id, user_id)
    membership.require(caps, Capability.CHAMA_OFFICER, message='Only chama officers can resolve disputes')

    if dispute.status not in DisputeStatus.ACTIVE:
        raise InvalidTransition(dispute.status, 'resolve')
    if resolution_type not in ResolutionType.ALL:
        raise InvalidArgument(f'Invalid resolution type. Must be one of: {ResolutionType.ALL}')

    _transition(
        dispute,
        {
            'status': DisputeStatus.RESOLVED,
            'resolution_type': resolution_type,
            'resolution_notes': notes,
            'resolved_by_user_id': user_id,
            'resolved_at': utcnow(),
            'discussion_deadline': None,
            'voting_deadline': None,
        },
        'resolved', user_id, 'resolve',
        resolution_type=resolution_type
    )
    notifications.notify_dispute_resolved(dispute)
    return dispute


def escalate_dispute(user_id, dispute_id, reason):
    dispute = _get_or_404(dispute_id)
    caps = membership.capabilities(dispute.chama_id, user_id)
    if user_id != dispute.filed_by_user_id:
        membership.require(
            caps, Capability.CHAMA_OFFICER,
            message='Only chama officers or the filer can escalate a dispute'
        )

    reason = (reason or '').strip()
    if not reason:
        raise InvalidArgument('Escalation reason is required')

    if not escalation.escalate(dispute, user_id, reason):
        db.session.refresh(dispute)
        raise InvalidTransition(dispute.status, 'escalate')
    return dispute


def update_dispute_status(user_id, dispute_id, status, notes=None, resolution_type=None, deadline=None):
    """Administrative override of a dispute's status.

    An override into discussion or voting opens that phase with `deadline`,
    or DISPUTE_OVERRIDE_PHASE_HOURS from now when none is given, so the
    deadline scanner picks the dispute up again.
    """
    dispute = _get_or_404(dispute_id)
    caps = membership.capabilities(dispute.chama_id, user_id)
    membership.require(
        caps, Capability.CHAMA_ADMIN, Capability.PLATFORM_ADMIN,
        message='Only chama admins can change dispute status'
    )

    if status not in DisputeStatus.ALL:
        raise InvalidArgument(f'Invalid status. Must be one of: {DisputeStatus.ALL}')
    if dispute.is_terminal:
        raise InvalidTransition(dispute.status, 'change the status of')
    if status == dispute.status:
        raise InvalidArgument(f'Dispute is already in "{status}" status')

    if status == DisputeStatus.ESCALATED:
        return _escalate_as_admin(dispute, user_id, notes)

    values = {'status': status, 'discussion_deadline': None, 'voting_deadline': None}
    if status in (DisputeStatus.DISCUSSION, DisputeStatus.VOTING):
        if deadline is None:
            hours = current_app.config.get('DISPUTE_OVERRIDE_PHASE_HOURS', 72)
            deadline = utcnow() + timedelta(hours=hours)
        else:
            _require_future(deadline)
        values[f'{status}_deadline'] = deadline
    if status == DisputeStatus.VOTING and dispute.required_votes is None:
        values['required_votes'] = voting.default_required_votes(len(eligible_voter_ids(dispute)))

    if status == DisputeStatus.RESOLVED:
        if resolution_type not in ResolutionType.ALL:
            raise InvalidArgument(f'Invalid resolution type. Must be one of: {ResolutionType.ALL}')
        values.update({
            'resolution_type': resolution_type,
            'resolution_notes': notes,
            'resolved_by_user_id': user_id,
            'resolved_at': utcnow(),
        })

    old_status = _transition(
        dispute, values, 'status_override', user_id, 'change the status of',
        admin_user_id=user_id, notes=notes
    )
    notifications.notify_status_change(dispute, old_status)
    return dispute


def _escalate_as_admin(dispute, user_id, notes=None):
    if not escalation.escalate(dispute, user_id, notes or 'Escalated by chama admin'):
        db.session.refresh(dispute)
        raise InvalidTransition(dispute.status, 'escalate')
    return dispute
