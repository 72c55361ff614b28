"""Sent-markers for deadline reminders."""

from chama_disputes import db
from chama_disputes.utils.dates import utcnow


class ReminderPhase:
    DISCUSSION = 'discussion'
    VOTING = 'voting'
    DISCUSSION_OVERDUE = 'discussion_overdue'


class DisputeReminder(db.Model):
    """Last time a recipient was reminded about a dispute in a given phase.

    The scanner consults this before notifying so repeated runs inside the
    same window do not notify the same person twice.
    """

    __tablename__ = 'dispute_reminders'
    __table_args__ = (
        db.UniqueConstraint('dispute_id', 'user_id', 'phase', name='uq_dispute_reminders_target'),
    )

    id = db.Column(db.Integer, primary_key=True)
    dispute_id = db.Column(db.Integer, db.ForeignKey('disputes.id'), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    phase = db.Column(db.String(30), nullable=False)
    last_sent_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    def __repr__(self):
        return f'<DisputeReminder {self.phase} Dispute {self.dispute_id} User {self.user_id}>'
