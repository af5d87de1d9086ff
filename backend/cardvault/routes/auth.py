# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

# backend/cardvault/routes/auth.py
"""
Authentication API routes

- Registration (when ENABLE_REGISTRATION and ENABLE_LOCAL_LOGIN are on)
- Email/password login issuing bearer session tokens
- Logout (revokes the presented token)
- Current identity, including impersonation state
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..decorators import require_auth, bearer_token
from ..errors import ServiceError, error_response
from ..services import auth_service, session_service


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


def _local_login_enabled() -> bool:
    return current_app.config.get("ENABLE_LOCAL_LOGIN", True)


@auth_bp.post("/register")
def register_route():
    """
    Self-registration.

    Request body: {email, password, first_name?, last_name?}
    Emails listed in ADMIN_EMAILS become admins.
    """
    if not _local_login_enabled() or not current_app.config.get("ENABLE_REGISTRATION", True):
        return jsonify({"error": "Registration is disabled"}), 403

    data = request.get_json(silent=True) or {}
    try:
        user = auth_service.create_user(
            email=data.get("email"),
            password=data.get("password"),
            first_name=data.get("first_name") or "",
            last_name=data.get("last_name") or "",
        )
        return jsonify({"user": user.to_dict()}), 201
    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to register user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/login")
def login_route():
    """
    Authenticate user and create session token.

    Token must be included in Authorization header for protected routes.
    """
    if not _local_login_enabled():
        return jsonify({"error": "Local login is disabled"}), 403

    try:
        data = request.get_json(silent=True) or {}
        email = data.get("email")
        password = data.get("password")

        if not email or not password:
            return jsonify({"error": "email and password required"}), 400

        user = auth_service.authenticate(email, password)
        if not user:
            current_app.logger.warning("Failed login for %s from %s", email, request.remote_addr)
            return jsonify({"error": "Invalid credentials"}), 401

        session, token = session_service.create_session(
            user_id=user.id,
            user_agent=request.headers.get("User-Agent"),
            ip_address=request.remote_addr,
        )

        return jsonify({
            "user": user.to_dict(),
            "token": token,
            "session": session.to_dict(),
            "message": "Login successful"
        }), 200

    except Exception:
        current_app.logger.exception("Failed to login user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/logout")
@require_auth
def logout_route():
    try:
        session_service.revoke_session(bearer_token(), reason="User logout")
        return jsonify({"message": "Logged out"}), 200
    except Exception:
        current_app.logger.exception("Failed to logout user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.get("/me")
@require_auth
def me_route():
    context = g.session_context
    original = context.session.original_user
    return jsonify({
        "user": g.current_user.to_dict(),
        "session": context.session.to_dict(),
        "is_impersonating": context.is_impersonating,
        "original_user": original.to_public_dict() if original else None,
        "is_elevated": context.is_elevated,
    })
