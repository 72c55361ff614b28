"""Dispute model for chama member conflict resolution."""

from chama_disputes import db
from chama_disputes.utils.dates import utcnow, isoformat


class DisputeStatus:
    FILED = 'filed'
    DISCUSSION = 'discussion'
    VOTING = 'voting'
    RESOLVED = 'resolved'
    ESCALATED = 'escalated'
    REJECTED = 'rejected'

    ALL = [FILED, DISCUSSION, VOTING, RESOLVED, ESCALATED, REJECTED]
    TERMINAL = [RESOLVED, REJECTED]
    ACTIVE = [FILED, DISCUSSION, VOTING]


class DisputeType:
    PAYMENT_DISPUTE = 'payment_dispute'
    PAYOUT_DISPUTE = 'payout_dispute'
    MEMBERSHIP_DISPUTE = 'membership_dispute'
    LOAN_DEFAULT = 'loan_default'
    RULE_VIOLATION = 'rule_violation'

    ALL = [PAYMENT_DISPUTE, PAYOUT_DISPUTE, MEMBERSHIP_DISPUTE, LOAN_DEFAULT, RULE_VIOLATION]

    LABELS = {
        PAYMENT_DISPUTE: 'Payment Dispute',
        PAYOUT_DISPUTE: 'Payout Dispute',
        MEMBERSHIP_DISPUTE: 'Membership Dispute',
        LOAN_DEFAULT: 'Loan Default',
        RULE_VIOLATION: 'Rule Violation',
    }


class ResolutionType:
    # Outcomes produced by a member vote
    UPHELD = 'upheld'
    DISMISSED = 'dismissed'

    # Outcomes an officer or platform admin can settle on directly
    MEDIATION = 'mediation'
    REFUND = 'refund'
    REPAYMENT_PLAN = 'repayment_plan'
    MEMBER_SUSPENSION = 'member_suspension'
    MEMBER_EXPULSION = 'member_expulsion'
    CHAMA_DISSOLUTION = 'chama_dissolution'
    NO_ACTION = 'no_action'
    OTHER = 'other'

    ALL = [
        UPHELD, DISMISSED, MEDIATION, REFUND, REPAYMENT_PLAN,
        MEMBER_SUSPENSION, MEMBER_EXPULSION, CHAMA_DISSOLUTION, NO_ACTION, OTHER,
    ]


class DisputePriority:
    LOW = 'low'
    NORMAL = 'normal'
    HIGH = 'high'
    CRITICAL = 'critical'

    ALL = [LOW, NORMAL, HIGH, CRITICAL]


class Dispute(db.Model):
    """A dispute raised by a chama member.

    Rows are never deleted; the status column carries the lifecycle.
    """

    __tablename__ = 'disputes'

    id = db.Column(db.Integer, primary_key=True)
    chama_id = db.Column(db.Integer, nullable=False, index=True)

    filed_by_user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    # Absent for systemic / rule disputes
    filed_against_user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True, index=True)

    dispute_type = db.Column(db.String(30), nullable=False, index=True)
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=False, default='')
    priority = db.Column(db.String(20), nullable=False, default=DisputePriority.NORMAL)
    amount_disputed = db.Column(db.Numeric(12, 2), nullable=True)

    related_transaction_id = db.Column(db.String(64), nullable=True)
    related_loan_id = db.Column(db.String(64), nullable=True)
    related_contribution_id = db.Column(db.String(64), nullable=True)
    related_payout_id = db.Column(db.String(64), nullable=True)

    status = db.Column(db.String(20), nullable=False, default=DisputeStatus.FILED, index=True)
    discussion_deadline = db.Column(db.DateTime, nullable=True, index=True)
    voting_deadline = db.Column(db.DateTime, nullable=True, index=True)
    required_votes = db.Column(db.Integer, nullable=True)

    # Filled when resolved
    resolution_type = db.Column(db.String(30), nullable=True)
    resolution_notes = db.Column(db.Text, nullable=True)
    resolved_by_user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True)
    resolved_at = db.Column(db.DateTime, nullable=True)

    escalated_at = db.Column(db.DateTime, nullable=True, index=True)
    platform_resolution = db.Column(db.Text, nullable=True)

    extra = db.Column(db.JSON, nullable=True)

    created_at = db.Column(db.DateTime, default=utcnow, nullable=False, index=True)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    filed_by = db.relationship('User', foreign_keys=[filed_by_user_id])
    filed_against = db.relationship('User', foreign_keys=[filed_against_user_id])

    @property
    def is_terminal(self):
        return self.status in DisputeStatus.TERMINAL

    def party_ids(self):
        """Users who are a party to the dispute (filer and accused)."""
        return {uid for uid in (self.filed_by_user_id, self.filed_against_user_id) if uid}

    def to_dict(self, vote_counts=None):
        """Convert dispute to dictionary."""
        from chama_disputes.utils.user_helpers import get_display_name

        data = {
            'id': self.id,
            'chama_id': self.chama_id,
            'filed_by_user_id': self.filed_by_user_id,
            'filed_by_name': get_display_name(self.filed_by),
            'filed_against_user_id': self.filed_against_user_id,
            'filed_against_name': get_display_name(self.filed_against) if self.filed_against_user_id else None,
            'dispute_type': self.dispute_type,
            'dispute_type_label': DisputeType.LABELS.get(self.dispute_type, self.dispute_type),
            'title': self.title,
            'description': self.description,
            'priority': self.priority,
            'amount_disputed': float(self.amount_disputed) if self.amount_disputed is not None else None,
            'related_transaction_id': self.related_transaction_id,
            'related_loan_id': self.related_loan_id,
            'related_contribution_id': self.related_contribution_id,
            'related_payout_id': self.related_payout_id,
            'status': self.status,
            'discussion_deadline': isoformat(self.discussion_deadline),
            'voting_deadline': isoformat(self.voting_deadline),
            'required_votes': self.required_votes,
            'resolution_type': self.resolution_type,
            'resolution_notes': self.resolution_notes,
            'resolved_by_user_id': self.resolved_by_user_id,
            'resolved_at': isoformat(self.resolved_at),
            'escalated_at': isoformat(self.escalated_at),
            'escalated_to_platform': self.escalated_at is not None,
            'platform_resolution': self.platform_resolution,
            'metadata': self.extra or {},
            'created_at': isoformat(self.created_at),
            'updated_at': isoformat(self.updated_at),
        }
        if vote_counts is not None:
            data['votes'] = vote_counts
        return data

    def __repr__(self):
        return f'<Dispute {self.id}: Chama {self.chama_id} - {self.status}>'
