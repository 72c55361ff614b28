"""Shared authentication utilities.

Tokens are issued by the platform's account service; this module only
verifies them. The JWT carries the caller in a `user_id` claim.
"""

from functools import wraps
from flask import request, jsonify, current_app
import jwt


def _decode_token(auth_header):
    # Support both "Bearer <token>" and raw token formats
    token = auth_header.split(' ')[1] if ' ' in auth_header else auth_header
    payload = jwt.decode(token, current_app.config['JWT_SECRET_KEY'], algorithms=['HS256'])
    return payload['user_id']


def token_required(f):
    """
    Decorator to require valid JWT token.

    Extracts user_id from JWT token and passes it as the first argument
    to the decorated function.

    Usage:
        @disputes_bp.route('/<int:dispute_id>')
        @token_required
        def get_dispute(current_user_id, dispute_id):
            ...
    """
    @wraps(f)
    def decorated(*args, **kwargs):
        auth_header = request.headers.get('Authorization')

        if not auth_header:
            return jsonify({'error': 'Token is missing'}), 401

        try:
            current_user_id = _decode_token(auth_header)
        except jwt.ExpiredSignatureError:
            return jsonify({'error': 'Token has expired'}), 401
        except (jwt.InvalidTokenError, KeyError, IndexError):
            return jsonify({'error': 'Token is invalid'}), 401

        return f(current_user_id, *args, **kwargs)
    return decorated


def platform_admin_required(f):
    """Decorator that combines token_required + platform admin check."""
    @wraps(f)
    @token_required
    def decorated(current_user_id, *args, **kwargs):
        from chama_disputes.services.membership import is_platform_admin

        if not is_platform_admin(current_user_id):
            return jsonify({'error': 'Admin access required'}), 403
        return f(current_user_id, *args, **kwargs)
    return decorated
