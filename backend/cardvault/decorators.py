# Overview: Request decorators for API routes: authentication and the admin/impersonation gate.

from functools import wraps
from flask import current_app, request, jsonify, g

from .permissions import allow_elevated
from .services import session_service


def _is_authenticated() -> bool:
    return hasattr(g, 'current_user') and hasattr(g, 'session_context')


def _log_denied(reason: str) -> None:
    current_app.logger.warning(
        "Access denied: %s user=%s path=%s ip=%s",
        reason,
        g.current_user.id if _is_authenticated() else None,
        request.path,
        request.remote_addr,
    )


def bearer_token() -> str | None:
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    return auth_header.split(" ", 1)[1]


def require_auth(f):
    """
    Require authentication.

    Sets the following Flask g attributes:
    - g.current_user: the authenticated User (the impersonated user while
      impersonating)
    - g.session_context: the full SessionContext

    SECURITY: Returns 401 if:
    - No Authorization header
    - Invalid, expired or revoked token
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = bearer_token()
        if not token:
            return jsonify({"error": "Authentication required"}), 401

        context = session_service.validate_session(token)
        if not context:
            return jsonify({"error": "Invalid or expired token"}), 401

        g.current_user = context.user
        g.session_context = context

        return f(*args, **kwargs)

    return decorated_function


def require_admin(f):
    """
    Require an admin acting as themselves.

    Impersonation sessions are refused even when the impersonating user is
    an admin: admin tooling always runs under the admin's own session.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not _is_authenticated():
            return jsonify({"error": "Authentication required"}), 401
        if g.session_context.is_impersonating or not g.current_user.is_admin:
            _log_denied("admin required")
            return jsonify({"error": "Admin access required"}), 403
        return f(*args, **kwargs)
    return decorated_function


def require_elevated(f):
    """
    Admin/impersonation gate.

    Passes admins and any impersonating session. Grants nothing on
    individual cards, vouchers or gift cards.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not _is_authenticated():
            return jsonify({"error": "Authentication required"}), 401
        if not allow_elevated(g.current_user, g.session_context.session):
            _log_denied("elevated session required")
            return jsonify({"error": "Not authorized"}), 403
        return f(*args, **kwargs)
    return decorated_function


def require_impersonation(f):
    """Require a session that is currently impersonating another user."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not _is_authenticated():
            return jsonify({"error": "Authentication required"}), 401
        if not g.session_context.is_impersonating:
            return jsonify({"error": "Session is not impersonating"}), 400
        return f(*args, **kwargs)
    return decorated_function


def feature_flag_guard(blueprint, flag: str) -> None:
    """Answer 404 for every route of blueprint while config[flag] is off."""
    @blueprint.before_request
    def _feature_enabled():
        if not current_app.config.get(flag, True):
            return jsonify({"error": "Not found"}), 404
