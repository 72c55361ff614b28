"""Database models for the chama disputes service."""

from .user import User
from .chama_member import ChamaMember, ChamaRole
from .notification import Notification, NotificationType
from .push_subscription import PushSubscription
from .dispute import Dispute, DisputeStatus, DisputeType, ResolutionType, DisputePriority
from .dispute_records import (
    DisputeEvidence,
    DisputeComment,
    DisputeVote,
    EvidenceType,
    VoteDecision,
)
from .dispute_escalation import DisputeEscalation, EscalationStatus
from .dispute_reminder import DisputeReminder, ReminderPhase
from .dispute_audit import DisputeAuditLog

__all__ = [
    'User',
    'ChamaMember',
    'ChamaRole',
    'Notification',
    'NotificationType',
    'PushSubscription',
    'Dispute',
    'DisputeStatus',
    'DisputeType',
    'ResolutionType',
    'DisputePriority',
    'DisputeEvidence',
    'DisputeComment',
    'DisputeVote',
    'EvidenceType',
    'VoteDecision',
    'DisputeEscalation',
    'EscalationStatus',
    'DisputeReminder',
    'ReminderPhase',
    'DisputeAuditLog',
]
