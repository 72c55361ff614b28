"""Evidence, comments and votes attached to a dispute."""

from chama_disputes import db
from chama_disputes.utils.dates import utcnow, isoformat


class EvidenceType:
    DOCUMENT = 'document'
    SCREENSHOT = 'screenshot'
    CHAT_LOG = 'chat_log'
    TRANSACTION_RECORD = 'transaction_record'
    OTHER = 'other'

    ALL = [DOCUMENT, SCREENSHOT, CHAT_LOG, TRANSACTION_RECORD, OTHER]


class VoteDecision:
    FOR = 'for'
    AGAINST = 'against'
    ABSTAIN = 'abstain'

    ALL = [FOR, AGAINST, ABSTAIN]


class DisputeEvidence(db.Model):
    """Evidence submitted for a dispute. Append-only."""

    __tablename__ = 'dispute_evidence'

    id = db.Column(db.Integer, primary_key=True)
    dispute_id = db.Column(db.Integer, db.ForeignKey('disputes.id'), nullable=False, index=True)
    submitted_by_user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)

    evidence_type = db.Column(db.String(30), nullable=False, default=EvidenceType.OTHER)
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)

    # Opaque references into the file storage backend
    file_url = db.Column(db.String(500), nullable=True)
    file_key = db.Column(db.String(300), nullable=True)
    file_type = db.Column(db.String(100), nullable=True)
    file_size = db.Column(db.Integer, nullable=True)
    external_reference = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    dispute = db.relationship('Dispute', backref=db.backref('evidence', lazy='dynamic'))
    submitted_by = db.relationship('User')

    def to_dict(self):
        from chama_disputes.utils.user_helpers import get_display_name

        return {
            'id': self.id,
            'dispute_id': self.dispute_id,
            'submitted_by_user_id': self.submitted_by_user_id,
            'submitted_by_name': get_display_name(self.submitted_by),
            'evidence_type': self.evidence_type,
            'title': self.title,
            'description': self.description,
            'file_url': self.file_url,
            'file_type': self.file_type,
            'file_size': self.file_size,
            'external_reference': self.external_reference,
            'created_at': isoformat(self.created_at),
        }

    def __repr__(self):
        return f'<DisputeEvidence {self.id} for Dispute {self.dispute_id}>'


class DisputeComment(db.Model):
    """Discussion comment on a dispute.

    Comments are listed flat in creation order; parent_comment_id only
    records what a comment replies to.
    """

    __tablename__ = 'dispute_comments'

    id = db.Column(db.Integer, primary_key=True)
    dispute_id = db.Column(db.Integer, db.ForeignKey('disputes.id'), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    parent_comment_id = db.Column(db.Integer, db.ForeignKey('dispute_comments.id'), nullable=True)
    content = db.Column(db.Text, nullable=False)
    is_internal = db.Column(db.Boolean, default=False, nullable=False)  # Officers only
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    dispute = db.relationship('Dispute', backref=db.backref('comments', lazy='dynamic'))
    user = db.relationship('User')

    def to_dict(self):
        from chama_disputes.utils.user_helpers import get_display_name

        return {
            'id': self.id,
            'dispute_id': self.dispute_id,
            'user_id': self.user_id,
            'user_name': get_display_name(self.user),
            'parent_comment_id': self.parent_comment_id,
            'content': self.content,
            'is_internal': self.is_internal,
            'created_at': isoformat(self.created_at),
        }

    def __repr__(self):
        return f'<DisputeComment {self.id} on Dispute {self.dispute_id}>'


class DisputeVote(db.Model):
    """A member's vote on a dispute in the voting phase."""

    __tablename__ = 'dispute_votes'
    # One vote per member per dispute, enforced by the database
    __table_args__ = (
        db.UniqueConstraint('dispute_id', 'user_id', name='uq_dispute_votes_dispute_user'),
    )

    id = db.Column(db.Integer, primary_key=True)
    dispute_id = db.Column(db.Integer, db.ForeignKey('disputes.id'), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    decision = db.Column(db.String(10), nullable=False)
    reason = db.Column(db.Text, nullable=True)
    cast_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    dispute = db.relationship('Dispute', backref=db.backref('votes', lazy='dynamic'))
    user = db.relationship('User')

    def to_dict(self):
        from chama_disputes.utils.user_helpers import get_display_name

        return {
            'id': self.id,
            'dispute_id': self.dispute_id,
            'user_id': self.user_id,
            'user_name': get_display_name(self.user),
            'decision': self.decision,
            'reason': self.reason,
            'cast_at': isoformat(self.cast_at),
        }

    def __repr__(self):
        return f'<DisputeVote {self.decision} by User {self.user_id} on Dispute {self.dispute_id}>'
