"""Notification model for in-app user notifications."""

import json
from chama_disputes import db
from chama_disputes.utils.dates import utcnow, isoformat


class Notification(db.Model):
    """Model for storing user notifications."""

    __tablename__ = 'notifications'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    type = db.Column(db.String(50), nullable=False)  # see NotificationType
    title = db.Column(db.String(200), nullable=False)
    message = db.Column(db.Text, nullable=False)

    # Dynamic data for i18n - stores values like dispute_title, chama_id, deadline
    # Frontend uses this + type to render localized notifications
    data = db.Column(db.Text, nullable=True)  # JSON string

    # Related entity info (for navigation)
    related_type = db.Column(db.String(50))  # 'dispute'
    related_id = db.Column(db.Integer)

    is_read = db.Column(db.Boolean, default=False)
    read_at = db.Column(db.DateTime)

    created_at = db.Column(db.DateTime, default=utcnow)

    user = db.relationship('User', backref=db.backref('notifications', lazy='dynamic'))

    def __repr__(self):
        return f'<Notification {self.id} for User {self.user_id}: {self.type}>'

    def set_data(self, data_dict: dict):
        """Set the data field from a dictionary."""
        self.data = json.dumps(data_dict, default=str) if data_dict else None

    def get_data(self) -> dict:
        """Get the data field as a dictionary."""
        if self.data:
            try:
                return json.loads(self.data)
            except (json.JSONDecodeError, TypeError):
                return {}
        return {}

    def to_dict(self):
        return {
            'id': self.id,
            'user_id': self.user_id,
            'type': self.type,
            'title': self.title,
            'message': self.message,
            'data': self.get_data(),
            'related_type': self.related_type,
            'related_id': self.related_id,
            'is_read': self.is_read,
            'read_at': isoformat(self.read_at),
            'created_at': isoformat(self.created_at),
        }

    def mark_as_read(self):
        self.is_read = True
        self.read_at = utcnow()


# Notification type constants
class NotificationType:
    DISPUTE_FILED = 'dispute_filed'
    DISPUTE_STATUS_CHANGED = 'dispute_status_changed'
    DISPUTE_DISCUSSION_STARTED = 'dispute_discussion_started'
    DISPUTE_VOTING_STARTED = 'dispute_voting_started'
    DISPUTE_RESOLVED = 'dispute_resolved'
    DISPUTE_ESCALATED = 'dispute_escalated'
    DISPUTE_ESCALATION_REVIEWED = 'dispute_escalation_reviewed'
    DISPUTE_EVIDENCE_ADDED = 'dispute_evidence_added'
    DISPUTE_COMMENT_ADDED = 'dispute_comment_added'
    DISPUTE_VOTE_REMINDER = 'dispute_vote_reminder'
    DISPUTE_DISCUSSION_REMINDER = 'dispute_discussion_reminder'
    DISPUTE_OVERDUE = 'dispute_overdue'
