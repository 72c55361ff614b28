"""Shared utilities for the chama disputes backend.

This package contains reusable utilities that are shared across
route and service modules.
"""

from chama_disputes.utils.auth import token_required, platform_admin_required
from chama_disputes.utils.user_helpers import get_display_name, send_safe
from chama_disputes.utils.dates import utcnow, parse_datetime

__all__ = [
    'token_required',
    'platform_admin_required',
    'get_display_name',
    'send_safe',
    'utcnow',
    'parse_datetime',
]
