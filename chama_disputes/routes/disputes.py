"""Dispute routes for chama member conflicts."""

from flask import Blueprint, request, jsonify
from chama_disputes import limiter
from chama_disputes.models import DisputeType, DisputeStatus, ResolutionType, EvidenceType
from chama_disputes.services import disputes as dispute_service
from chama_disputes.services.errors import InvalidArgument
from chama_disputes.utils.auth import token_required
from chama_disputes.utils.request_params import (
    field, datetime_field, int_field, bool_field, json_body,
)

disputes_bp = Blueprint('disputes', __name__)


def _dispute_json(dispute):
    return dispute.to_dict(vote_counts=dispute_service.vote_summary(dispute))


@disputes_bp.route('/types', methods=['GET'])
@token_required
def get_dispute_types(current_user_id):
    """Get dispute types, statuses and resolution types for client pickers."""
    return jsonify({
        'types': [{'value': t, 'label': DisputeType.LABELS[t]} for t in DisputeType.ALL],
        'statuses': DisputeStatus.ALL,
        'resolution_types': ResolutionType.ALL,
        'evidence_types': EvidenceType.ALL,
    }), 200


@disputes_bp.route('', methods=['POST'])
@limiter.limit("10 per minute")
@token_required
def create_dispute(current_user_id):
    """File a new dispute in a chama.

    Body:
        chamaId: int
        disputeType: str - one of DisputeType.ALL
        title: str
        description: str
        filedAgainstUserId: int (optional)
        priority, amountDisputed, relatedTransactionId, relatedLoanId,
        relatedContributionId, relatedPayoutId, metadata (optional)
    """
    data = json_body(request)

    chama_id = int_field(data, 'chamaId', 'chama_id')
    if chama_id is None:
        raise InvalidArgument('chamaId is required')

    dispute = dispute_service.file_dispute(
        filer_id=current_user_id,
        chama_id=chama_id,
        dispute_type=field(data, 'disputeType', 'dispute_type'),
        title=field(data, 'title'),
        description=field(data, 'description', default=''),
        filed_against_user_id=int_field(data, 'filedAgainstUserId', 'filed_against_user_id'),
        priority=field(data, 'priority'),
        amount_disputed=field(data, 'amountDisputed', 'amount_disputed'),
        metadata=field(data, 'metadata'),
        related_transaction_id=field(data, 'relatedTransactionId', 'related_transaction_id'),
        related_loan_id=field(data, 'relatedLoanId', 'related_loan_id'),
        related_contribution_id=field(data, 'relatedContributionId', 'related_contribution_id'),
        related_payout_id=field(data, 'relatedPayoutId', 'related_payout_id'),
    )

    return jsonify({
        'message': 'Dispute filed successfully',
        'dispute': dispute.to_dict()
    }), 201


@disputes_bp.route('/<int:dispute_id>', methods=['GET'])
@token_required
def get_dispute(current_user_id, dispute_id):
    """Get a dispute with its vote tally."""
    dispute = dispute_service.get_dispute(current_user_id, dispute_id)
    return jsonify({'dispute': _dispute_json(dispute)}), 200


@disputes_bp.route('/chama/<int:chama_id>', methods=['GET'])
@token_required
def list_chama_disputes(current_user_id, chama_id):
    """List a chama's disputes.

    Query params:
        - status: filter by status
        - limit: page size (default 20, max 100)
        - offset: rows to skip (default 0)
    """
    limit = min(max(request.args.get('limit', 20, type=int), 1), 100)
    offset = max(request.args.get('offset', 0, type=int), 0)

    disputes, total = dispute_service.list_chama_disputes(
        current_user_id, chama_id,
        status=request.args.get('status') or None,
        limit=limit,
        offset=offset
    )

    return jsonify({
        'disputes': [d.to_dict() for d in disputes],
        'total': total,
        'limit': limit,
        'offset': offset,
    }), 200


@disputes_bp.route('/chama/<int:chama_id>/stats', methods=['GET'])
@token_required
def get_chama_stats(current_user_id, chama_id):
    return jsonify({'stats': dispute_service.chama_dispute_stats(current_user_id, chama_id)}), 200


@disputes_bp.route('/user/my-disputes', methods=['GET'])
@token_required
def get_my_disputes(current_user_id):
    """Disputes the current user filed or was named in.

    Query params:
        - chamaId: limit to one chama
        - status: filter by status
    """
    chama_id = request.args.get('chamaId', type=int) or request.args.get('chama_id', type=int)
    disputes = dispute_service.list_user_disputes(
        current_user_id,
        chama_id=chama_id,
        status=request.args.get('status') or None
    )

    return jsonify({
        'disputes': [d.to_dict() for d in disputes],
        'total': len(disputes)
    }), 200


# ============ EVIDENCE ============

@disputes_bp.route('/<int:dispute_id>/evidence', methods=['POST'])
@limiter.limit("20 per minute")
@token_required
def add_evidence(current_user_id, dispute_id):
    """Attach evidence to a dispute.

    Accepts JSON (title, evidenceType, description, externalReference) or
    multipart form data with the same fields plus a 'file' part.
    """
    if request.files:
        data = request.form.to_dict()
        upload = request.files.get('file')
        file_data = upload.read() if upload else None
        file_name = upload.filename if upload else None
        content_type = upload.content_type if upload else None
    else:
        data = json_body(request)
        file_data = file_name = content_type = None

    evidence = dispute_service.add_evidence(
        current_user_id, dispute_id,
        title=field(data, 'title'),
        evidence_type=field(data, 'evidenceType', 'evidence_type', EvidenceType.OTHER),
        description=field(data, 'description'),
        external_reference=field(data, 'externalReference', 'external_reference'),
        file_data=file_data,
        file_name=file_name,
        content_type=content_type
    )

    return jsonify({
        'message': 'Evidence added',
        'evidence': evidence.to_dict()
    }), 201


@disputes_bp.route('/<int:dispute_id>/evidence', methods=['GET'])
@token_required
def list_evidence(current_user_id, dispute_id):
    evidence = dispute_service.list_evidence(current_user_id, dispute_id)
    return jsonify({'evidence': [e.to_dict() for e in evidence]}), 200


# ============ COMMENTS ============

@disputes_bp.route('/<int:dispute_id>/comments', methods=['POST'])
@limiter.limit("30 per minute")
@token_required
def add_comment(current_user_id, dispute_id):
    """Comment on a dispute.

    Body:
        content: str
        parentCommentId: int (optional)
        isInternal: bool (optional, officers only)
    """
    data = json_body(request)
    comment = dispute_service.add_comment(
        current_user_id, dispute_id,
        content=field(data, 'content'),
        parent_comment_id=int_field(data, 'parentCommentId', 'parent_comment_id'),
        is_internal=bool_field(data, 'isInternal', 'is_internal')
    )
    return jsonify({
        'message': 'Comment added',
        'comment': comment.to_dict()
    }), 201


@disputes_bp.route('/<int:dispute_id>/comments', methods=['GET'])
@token_required
def list_comments(current_user_id, dispute_id):
    comments = dispute_service.list_comments(current_user_id, dispute_id)
    return jsonify({'comments': [c.to_dict() for c in comments]}), 200


# ============ LIFECYCLE ============

@disputes_bp.route('/<int:dispute_id>/start-discussion', methods=['PUT'])
@token_required
def start_discussion(current_user_id, dispute_id):
    """Open the discussion phase. Body: discussionDeadline (ISO-8601)."""
    data = json_body(request)
    dispute = dispute_service.start_discussion(
        current_user_id, dispute_id,
        deadline=datetime_field(data, 'discussionDeadline', 'discussion_deadline')
    )
    return jsonify({
        'message': 'Discussion started',
        'dispute': dispute.to_dict()
    }), 200


@disputes_bp.route('/<int:dispute_id>/start-voting', methods=['PUT'])
@token_required
def start_voting(current_user_id, dispute_id):
    """Open the voting phase.

    Body:
        votingDeadline: ISO-8601 timestamp
        requiredVotes: int (optional, defaults to a simple majority of eligible voters)
    """
    data = json_body(request)
    dispute = dispute_service.start_voting(
        current_user_id, dispute_id,
        deadline=datetime_field(data, 'votingDeadline', 'voting_deadline'),
        required_votes=int_field(data, 'requiredVotes', 'required_votes')
    )
    return jsonify({
        'message': 'Voting started',
        'dispute': _dispute_json(dispute)
    }), 200


@disputes_bp.route('/<int:dispute_id>/votes', methods=['POST'])
@limiter.limit("10 per minute")
@token_required
def cast_vote(current_user_id, dispute_id):
    """Cast a vote. Body: vote ('for' | 'against' | 'abstain'), reason (optional)."""
    data = json_body(request)
    vote, dispute = dispute_service.cast_vote(
        current_user_id, dispute_id,
        decision=field(data, 'vote', 'decision'),
        reason=field(data, 'reason')
    )
    return jsonify({
        'message': 'Vote recorded',
        'vote': vote.to_dict(),
        'dispute': _dispute_json(dispute)
    }), 201


@disputes_bp.route('/<int:dispute_id>/votes', methods=['GET'])
@token_required
def list_votes(current_user_id, dispute_id):
    votes = dispute_service.list_votes(current_user_id, dispute_id)
    dispute = dispute_service.get_dispute(current_user_id, dispute_id)
    return jsonify({
        'votes': [v.to_dict() for v in votes],
        'summary': dispute_service.vote_summary(dispute)
    }), 200


@disputes_bp.route('/<int:dispute_id>/history', methods=['GET'])
@token_required
def get_history(current_user_id, dispute_id):
    entries = dispute_service.get_history(current_user_id, dispute_id)
    return jsonify({'history': [e.to_dict() for e in entries]}), 200


@disputes_bp.route('/<int:dispute_id>/resolve', methods=['PUT'])
@token_required
def resolve_dispute(current_user_id, dispute_id):
    """Resolve a dispute. Body: resolutionType, decisionNotes (optional).

    resolutionNotes is accepted in place of decisionNotes.
    """
    data = json_body(request)
    notes = field(data, 'decisionNotes', 'decision_notes')
    if notes is None:
        notes = field(data, 'resolutionNotes', 'resolution_notes')
    dispute = dispute_service.resolve_dispute(
        current_user_id, dispute_id,
        resolution_type=field(data, 'resolutionType', 'resolution_type'),
        notes=notes
    )
    return jsonify({
        'message': 'Dispute resolved',
        'dispute': dispute.to_dict()
    }), 200


@disputes_bp.route('/<int:dispute_id>/escalate', methods=['POST'])
@limiter.limit("5 per minute")
@token_required
def escalate_dispute(current_user_id, dispute_id):
    """Escalate a dispute to platform review. Body: reason."""
    data = json_body(request)
    dispute = dispute_service.escalate_dispute(
        current_user_id, dispute_id,
        reason=field(data, 'reason')
    )
    return jsonify({
        'message': 'Dispute escalated to platform review',
        'dispute': dispute.to_dict()
    }), 200


@disputes_bp.route('/<int:dispute_id>/status', methods=['PUT'])
@token_required
def update_status(current_user_id, dispute_id):
    """Administrative status override.

    Body:
        status: target status
        notes: str (optional)
        resolutionType: required when status is 'resolved'
        deadline: ISO datetime for a discussion or voting phase (optional)
    """
    data = json_body(request)
    dispute = dispute_service.update_dispute_status(
        current_user_id, dispute_id,
        status=field(data, 'status'),
        notes=field(data, 'notes'),
        resolution_type=field(data, 'resolutionType', 'resolution_type'),
        deadline=datetime_field(data, 'deadline')
    )
    return jsonify({
        'message': 'Dispute status updated',
        'dispute': dispute.to_dict()
    }), 200
