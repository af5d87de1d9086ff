# Overview: Flask API routes for the caller's own notifications.

"""
Notification Routes

    GET    /api/notifications              list (page, per_page, unread=1)
    GET    /api/notifications/count        unread count
    POST   /api/notifications/<id>/read    mark one read
    POST   /api/notifications/read-all     mark all read
    DELETE /api/notifications/<id>         dismiss

Answers 404 while ENABLE_NOTIFICATIONS is off.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_auth, feature_flag_guard
from ..errors import ServiceError, error_response
from ..services import notification_service

notifications_bp = Blueprint("notifications", __name__, url_prefix="/api/notifications")
feature_flag_guard(notifications_bp, "ENABLE_NOTIFICATIONS")


@notifications_bp.get("")
@require_auth
def list_notifications_route():
    page = request.args.get("page", 1, type=int)
    per_page = request.args.get("per_page", type=int)
    unread_only = request.args.get("unread", "").lower() in {"1", "true", "yes"}
    try:
        items, total = notification_service.list_notifications(
            g.current_user.id, unread_only=unread_only, page=page, per_page=per_page
        )
        return jsonify({
            "items": [n.to_dict() for n in items],
            "count": total,
            "unread_count": notification_service.unread_count(g.current_user.id),
            "page": page,
        })
    except Exception:
        current_app.logger.exception("Failed to list notifications")
        return jsonify({"error": "Internal server error"}), 500


@notifications_bp.get("/count")
@require_auth
def unread_count_route():
    try:
        return jsonify({"count": notification_service.unread_count(g.current_user.id)})
    except Exception:
        current_app.logger.exception("Failed to count notifications")
        return jsonify({"error": "Internal server error"}), 500


@notifications_bp.post("/<int:notification_id>/read")
@require_auth
def mark_read_route(notification_id: int):
    try:
        notification = notification_service.mark_read(g.current_user.id, notification_id)
        return jsonify({
            "notification": notification.to_dict(),
            "unread_count": notification_service.unread_count(g.current_user.id),
        })
    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to mark notification %s read", notification_id)
        return jsonify({"error": "Internal server error"}), 500


@notifications_bp.post("/read-all")
@require_auth
def mark_all_read_route():
    try:
        changed = notification_service.mark_all_read(g.current_user.id)
        return jsonify({"marked": changed, "unread_count": 0})
    except Exception:
        current_app.logger.exception("Failed to mark notifications read")
        return jsonify({"error": "Internal server error"}), 500


@notifications_bp.delete("/<int:notification_id>")
@require_auth
def delete_notification_route(notification_id: int):
    try:
        notification_service.delete_notification(g.current_user.id, notification_id)
        return jsonify({"message": "Deleted", "id": notification_id})
    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete notification %s", notification_id)
        return jsonify({"error": "Internal server error"}), 500
