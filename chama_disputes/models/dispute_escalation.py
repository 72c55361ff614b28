"""Escalation of a dispute to platform review."""

from chama_disputes import db
from chama_disputes.utils.dates import utcnow, isoformat


class EscalationStatus:
    PENDING = 'pending'
    REVIEWED = 'reviewed'


class DisputeEscalation(db.Model):
    __tablename__ = 'dispute_escalations'

    id = db.Column(db.Integer, primary_key=True)
    dispute_id = db.Column(db.Integer, db.ForeignKey('disputes.id'), nullable=False, index=True)

    # None when the system escalated it (voting closed without quorum)
    escalated_by_user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True)
    reason = db.Column(db.Text, nullable=False)
    escalated_at = db.Column(db.DateTime, default=utcnow, nullable=False, index=True)

    status = db.Column(db.String(20), default=EscalationStatus.PENDING, nullable=False, index=True)
    reviewed_by_user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True)
    reviewed_at = db.Column(db.DateTime, nullable=True)
    decision = db.Column(db.String(20), nullable=True)  # 'resolve' or 'reject'
    decision_notes = db.Column(db.Text, nullable=True)
    platform_action = db.Column(db.JSON, nullable=True)

    dispute = db.relationship('Dispute', backref=db.backref('escalations', lazy='dynamic'))

    def to_dict(self):
        return {
            'id': self.id,
            'dispute_id': self.dispute_id,
            'escalated_by_user_id': self.escalated_by_user_id,
            'reason': self.reason,
            'escalated_at': isoformat(self.escalated_at),
            'status': self.status,
            'reviewed_by_user_id': self.reviewed_by_user_id,
            'reviewed_at': isoformat(self.reviewed_at),
            'decision': self.decision,
            'decision_notes': self.decision_notes,
            'platform_action': self.platform_action or {},
        }

    def __repr__(self):
        return f'<DisputeEscalation {self.id} for Dispute {self.dispute_id}: {self.status}>'
