# Overview: Flask API routes for admin operations; parses input and returns JSON responses.

# backend/cardvault/routes/admin.py
"""
Admin routes.

Provides endpoints for:
- User management (list, create, change role)
- Audit log browsing
- Restoring soft-deleted resources
- Impersonation (start / stop)

Everything except "stop impersonation" requires an admin acting under
their own session.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_auth, require_admin, require_impersonation
from ..errors import ServiceError, error_response
from ..services import admin_service, audit_service, session_service
from ..services.audit_service import request_provenance

admin_bp = Blueprint("admin", __name__, url_prefix="/api/admin")


# =============================================================================
# USER MANAGEMENT
# =============================================================================

@admin_bp.get("/users")
@require_auth
@require_admin
def list_users_route():
    """
    List users.

    Query params:
    - search: email / first / last name
    - page, per_page
    """
    page = request.args.get("page", 1, type=int)
    per_page = request.args.get("per_page", 50, type=int)
    try:
        users, total = admin_service.list_users(
            search=request.args.get("search"), page=page, per_page=per_page
        )
        return jsonify({
            "items": [u.to_dict() for u in users],
            "count": total,
            "page": page,
        })
    except Exception:
        current_app.logger.exception("Failed to list users")
        return jsonify({"error": "Internal server error"}), 500


@admin_bp.post("/users")
@require_auth
@require_admin
def create_user_route():
    data = request.get_json(silent=True) or {}
    ip_address, user_agent = request_provenance()
    try:
        user = admin_service.create_local_user(
            g.current_user.id,
            email=data.get("email"),
            password=data.get("password"),
            first_name=data.get("first_name") or "",
            last_name=data.get("last_name") or "",
            role=data.get("role") or "user",
            ip_address=ip_address,
            user_agent=user_agent,
        )
        return jsonify(user.to_dict()), 201
    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create user")
        return jsonify({"error": "Internal server error"}), 500


@admin_bp.patch("/users/<int:user_id>/role")
@require_auth
@require_admin
def update_role_route(user_id: int):
    data = request.get_json(silent=True) or {}
    ip_address, user_agent = request_provenance()
    try:
        user = admin_service.update_user_role(
            g.current_user,
            user_id,
            data.get("role"),
            ip_address=ip_address,
            user_agent=user_agent,
        )
        return jsonify(user.to_dict()), 200
    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to change role of user %s", user_id)
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# AUDIT LOG / RESTORE
# =============================================================================

@admin_bp.get("/audit-logs")
@require_auth
@require_admin
def list_audit_logs_route():
    """
    Query params: user_id, resource_type, resource_id, action, date_from,
    date_to, search, page, per_page
    """
    page = request.args.get("page", 1, type=int)
    try:
        entries, total = audit_service.list_audit_logs(
            user_id=request.args.get("user_id", type=int),
            resource_type=request.args.get("resource_type"),
            resource_id=request.args.get("resource_id", type=int),
            action=request.args.get("action"),
            date_from=request.args.get("date_from"),
            date_to=request.args.get("date_to"),
            search=request.args.get("search"),
            page=page,
            per_page=request.args.get("per_page", type=int),
        )
        return jsonify({
            "items": [entry.to_dict() for entry in entries],
            "count": total,
            "page": page,
        })
    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list audit logs")
        return jsonify({"error": "Internal server error"}), 500


@admin_bp.post("/restore")
@require_auth
@require_admin
def restore_route():
    """
    Restore a soft-deleted resource.

    Request body: {"resource_type": "cards", "resource_id": 12}
    """
    data = request.get_json(silent=True) or {}
    resource_id = data.get("resource_id")
    if isinstance(resource_id, bool) or not isinstance(resource_id, int):
        return jsonify({"error": "resource_id must be an integer"}), 400

    ip_address, user_agent = request_provenance()
    try:
        resource = audit_service.restore_resource(
            data.get("resource_type") or "",
            resource_id,
            actor_user_id=g.current_user.id,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        return jsonify(resource.to_dict()), 200
    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to restore %s", data.get("resource_type"))
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# IMPERSONATION
# =============================================================================

@admin_bp.post("/impersonate/<int:user_id>")
@require_auth
@require_admin
def start_impersonation_route(user_id: int):
    try:
        session, token = session_service.start_impersonation(
            g.session_context,
            user_id,
            user_agent=request.headers.get("User-Agent"),
            ip_address=request.remote_addr,
        )
        return jsonify({
            "token": token,
            "session": session.to_dict(),
            "user": session.user.to_dict(),
        }), 200
    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to start impersonating user %s", user_id)
        return jsonify({"error": "Internal server error"}), 500


@admin_bp.post("/impersonate/stop")
@require_auth
@require_impersonation
def stop_impersonation_route():
    try:
        session, token = session_service.stop_impersonation(
            g.session_context,
            user_agent=request.headers.get("User-Agent"),
            ip_address=request.remote_addr,
        )
        return jsonify({
            "token": token,
            "session": session.to_dict(),
            "user": session.user.to_dict(),
        }), 200
    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to stop impersonation")
        return jsonify({"error": "Internal server error"}), 500
