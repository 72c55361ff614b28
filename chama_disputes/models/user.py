"""User model.

Accounts are owned by the platform's account service; this service keeps
the columns it needs for display, notification delivery and admin checks.
"""

from chama_disputes import db
from chama_disputes.utils.dates import utcnow, isoformat


class User(db.Model):
    """Platform user."""

    __tablename__ = 'users'

    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(80), unique=True, nullable=False, index=True)
    email = db.Column(db.String(120), unique=True, nullable=True, index=True)
    phone = db.Column(db.String(20), nullable=True)
    first_name = db.Column(db.String(80), nullable=True)
    last_name = db.Column(db.String(80), nullable=True)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    is_admin = db.Column(db.Boolean, default=False, nullable=False)  # Platform admin
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    @property
    def full_name(self):
        return f"{self.first_name or ''} {self.last_name or ''}".strip() or self.username

    def to_dict(self):
        return {
            'id': self.id,
            'username': self.username,
            'email': self.email,
            'first_name': self.first_name,
            'last_name': self.last_name,
            'is_active': self.is_active,
            'is_admin': self.is_admin,
            'created_at': isoformat(self.created_at),
        }

    def __repr__(self):
        return f'<User {self.username}>'
