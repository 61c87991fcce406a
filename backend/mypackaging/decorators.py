# Overview: Request decorators for API routes; bearer-token authentication and role checks.

from functools import wraps

from flask import g, jsonify, request

from .models import Role
from .services import session_service


def _is_authenticated() -> bool:
    return hasattr(g, 'current_user')


def require_auth(f):
    """
    Require a valid bearer session token.

    Sets g.current_user to the authenticated User.
    Returns 401 for a missing, invalid, expired or revoked token.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        auth_header = request.headers.get("Authorization")

        if not auth_header or not auth_header.startswith("Bearer "):
            return jsonify({"error": "Authentication required"}), 401

        token = auth_header.split(" ", 1)[1]
        user = session_service.validate_session(token)

        if not user:
            return jsonify({"error": "Invalid or expired token"}), 401

        g.current_user = user
        g.session_token = token
        return f(*args, **kwargs)

    return decorated_function


def require_role(minimum: Role):
    """
    Require at least `minimum` (staff < manager < admin).

    Must be stacked under @require_auth.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not _is_authenticated():
                return jsonify({"error": "Authentication required"}), 401

            if not g.current_user.has_role(minimum):
                return jsonify({
                    "error": "Permission denied",
                    "required_role": minimum.value,
                }), 403

            return f(*args, **kwargs)

        return decorated_function
    return decorator


def current_actor() -> str:
    """Attribution string written on every ledger record."""
    return g.current_user.email
