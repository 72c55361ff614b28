"""Chama membership lookups and capability checks.

Every dispute operation resolves the caller's capabilities once, then
checks the one it needs:

    caps = capabilities(dispute.chama_id, user_id)
    require(caps, Capability.CHAMA_OFFICER, 'Only chama officers can start voting')
"""

import logging
from flask import current_app
from chama_disputes.models import User, ChamaMember, ChamaRole
from chama_disputes.services.errors import Forbidden

logger = logging.getLogger(__name__)

ACTIVE = 'active'


class Capability:
    CHAMA_MEMBER = 'chama_member'
    CHAMA_OFFICER = 'chama_officer'
    CHAMA_ADMIN = 'chama_admin'
    PLATFORM_ADMIN = 'platform_admin'


def get_membership(chama_id, user_id):
    """Active membership row for the user, or None."""
    return ChamaMember.query.filter_by(chama_id=chama_id, user_id=user_id, status=ACTIVE).first()


def is_active_member(chama_id, user_id) -> bool:
    return get_membership(chama_id, user_id) is not None


def is_known_member(chama_id, user_id) -> bool:
    """True for any membership row, active or not."""
    return ChamaMember.query.filter_by(chama_id=chama_id, user_id=user_id).first() is not None


def role(chama_id, user_id):
    """Role of an active member, or None if the user is not an active member."""
    membership = get_membership(chama_id, user_id)
    return membership.role if membership else None


def is_platform_admin(user_id) -> bool:
    """Check if user is a platform admin (by flag or email whitelist)."""
    user = User.query.get(user_id)
    if not user or not user.is_active:
        return False
    if user.is_admin:
        return True
    return bool(user.email) and user.email in current_app.config.get('PLATFORM_ADMIN_EMAILS', [])


def capabilities(chama_id, user_id) -> set:
    """Resolve the caller's capability set for a chama."""
    caps = set()
    member_role = role(chama_id, user_id)
    if member_role is not None:
        caps.add(Capability.CHAMA_MEMBER)
        if member_role in ChamaRole.OFFICERS:
            caps.add(Capability.CHAMA_OFFICER)
        if member_role == ChamaRole.ADMIN:
            caps.add(Capability.CHAMA_ADMIN)
    if is_platform_admin(user_id):
        caps.add(Capability.PLATFORM_ADMIN)
    return caps


def require(caps, *needed, message='You do not have permission to perform this action'):
    """Raise Forbidden unless caps holds at least one of the needed capabilities."""
    if not caps.intersection(needed):
        raise Forbidden(message)


def active_member_ids(chama_id) -> list:
    rows = ChamaMember.query.filter_by(chama_id=chama_id, status=ACTIVE).all()
    return [m.user_id for m in rows]


def officer_ids(chama_id) -> list:
    rows = ChamaMember.query.filter(
        ChamaMember.chama_id == chama_id,
        ChamaMember.status == ACTIVE,
        ChamaMember.role.in_(ChamaRole.OFFICERS),
    ).all()
    return [m.user_id for m in rows]


def platform_admin_ids() -> list:
    query = User.query.filter(User.is_active == True)  # noqa: E712
    emails = current_app.config.get('PLATFORM_ADMIN_EMAILS', [])
    if emails:
        query = query.filter((User.is_admin == True) | (User.email.in_(emails)))  # noqa: E712
    else:
        query = query.filter(User.is_admin == True)  # noqa: E712
    return [u.id for u in query.all()]
