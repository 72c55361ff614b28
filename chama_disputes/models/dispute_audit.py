"""Audit trail of dispute lifecycle actions."""

from chama_disputes import db
from chama_disputes.utils.dates import utcnow, isoformat


class DisputeAuditLog(db.Model):
    __tablename__ = 'dispute_audit_logs'

    id = db.Column(db.Integer, primary_key=True)
    dispute_id = db.Column(db.Integer, db.ForeignKey('disputes.id'), nullable=False, index=True)
    actor_user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True)  # None = system
    action = db.Column(db.String(50), nullable=False)
    from_status = db.Column(db.String(20), nullable=True)
    to_status = db.Column(db.String(20), nullable=True)
    details = db.Column(db.JSON, nullable=True)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    def to_dict(self):
        return {
            'id': self.id,
            'dispute_id': self.dispute_id,
            'actor_user_id': self.actor_user_id,
            'action': self.action,
            'from_status': self.from_status,
            'to_status': self.to_status,
            'details': self.details or {},
            'created_at': isoformat(self.created_at),
        }

    def __repr__(self):
        return f'<DisputeAuditLog {self.action} Dispute {self.dispute_id}>'
