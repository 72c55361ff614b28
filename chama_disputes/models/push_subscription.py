"""Push subscription model for web push notifications."""

from chama_disputes import db
from chama_disputes.utils.dates import utcnow, isoformat


class PushSubscription(db.Model):
    """Stores user push notification subscriptions.

    Each user can have multiple subscriptions (different devices/browsers).
    The subscription contains the endpoint URL and encryption keys needed
    to send push notifications via the Web Push protocol.
    """
    __tablename__ = 'push_subscriptions'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)

    endpoint = db.Column(db.Text, nullable=False, unique=True)

    # Encryption keys for Web Push
    p256dh_key = db.Column(db.Text, nullable=False)
    auth_key = db.Column(db.Text, nullable=False)

    device_name = db.Column(db.String(100), nullable=True)  # e.g., "Chrome on Android"

    # Opt-out switch for dispute alerts (votes, reminders, resolutions)
    notify_disputes = db.Column(db.Boolean, default=True)

    is_active = db.Column(db.Boolean, default=True)
    last_used_at = db.Column(db.DateTime, nullable=True)
    failed_count = db.Column(db.Integer, default=0)

    created_at = db.Column(db.DateTime, default=utcnow)

    user = db.relationship('User', backref=db.backref('push_subscriptions', lazy='dynamic'))

    def __repr__(self):
        return f'<PushSubscription {self.id} user={self.user_id}>'

    def to_dict(self):
        return {
            'id': self.id,
            'device_name': self.device_name,
            'notify_disputes': self.notify_disputes,
            'is_active': self.is_active,
            'created_at': isoformat(self.created_at),
            'last_used_at': isoformat(self.last_used_at),
        }

    def get_subscription_info(self):
        """Return subscription info in format needed by pywebpush."""
        return {
            'endpoint': self.endpoint,
            'keys': {
                'p256dh': self.p256dh_key,
                'auth': self.auth_key
            }
        }

    def mark_used(self):
        self.last_used_at = utcnow()
        self.failed_count = 0
