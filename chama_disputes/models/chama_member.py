"""Chama membership records."""

from chama_disputes import db
from chama_disputes.utils.dates import utcnow


class ChamaRole:
    ADMIN = 'admin'
    TREASURER = 'treasurer'
    SECRETARY = 'secretary'
    MEMBER = 'member'

    OFFICERS = [ADMIN, TREASURER, SECRETARY]


class ChamaMember(db.Model):
    """A user's membership in a chama.

    Maintained by the chama management side of the platform; the dispute
    services only read it.
    """

    __tablename__ = 'chama_members'
    __table_args__ = (
        db.UniqueConstraint('chama_id', 'user_id', name='uq_chama_members_chama_user'),
    )

    id = db.Column(db.Integer, primary_key=True)
    chama_id = db.Column(db.Integer, nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    role = db.Column(db.String(20), default=ChamaRole.MEMBER, nullable=False)
    status = db.Column(db.String(20), default='active', nullable=False)  # 'active', 'suspended', 'left'
    joined_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    user = db.relationship('User', backref=db.backref('memberships', lazy='dynamic'))

    def __repr__(self):
        return f'<ChamaMember Chama {self.chama_id} User {self.user_id}: {self.role}>'
