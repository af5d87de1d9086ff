# Overview: Flask API routes for cards, vouchers and gift cards; one blueprint per type.

"""
Resource Routes

    GET    /api/<type>                 owned + shared, with permissions
    POST   /api/<type>                 create (caller becomes owner)
    GET    /api/<type>/<id>            view
    PATCH  /api/<type>/<id>            can_edit
    DELETE /api/<type>/<id>            can_delete (soft delete, audited)
    POST   /api/<type>/<id>/transfer   owner only
    GET    /api/<type>/favorites       caller's favorites still visible
    POST   /api/<type>/<id>/favorite   toggle (view access)

<type> is cards, vouchers or gift-cards. Each blueprint answers 404 while
its ENABLE_* flag is off. Invisible resources answer 404, visible ones
lacking the capability answer 403.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_auth, feature_flag_guard
from ..errors import ServiceError, error_response
from ..services import favorite_service, resource_service
from ..services.audit_service import request_provenance

# resource type -> (url segment, feature flag)
RESOURCE_ROUTES = {
    "cards": ("cards", "ENABLE_CARDS"),
    "vouchers": ("vouchers", "ENABLE_VOUCHERS"),
    "gift_cards": ("gift-cards", "ENABLE_GIFT_CARDS"),
}


def serialize(resource, perms) -> dict:
    data = resource.to_dict()
    data["permissions"] = perms.to_dict()
    return data


def make_resource_blueprint(resource_type: str) -> Blueprint:
    segment, flag = RESOURCE_ROUTES[resource_type]
    bp = Blueprint(resource_type, __name__, url_prefix=f"/api/{segment}")
    feature_flag_guard(bp, flag)

    @bp.get("")
    @require_auth
    def list_route():
        try:
            rows = resource_service.list_visible(resource_type, g.current_user.id)
            return jsonify({
                "items": [serialize(resource, perms) for resource, perms in rows],
                "count": len(rows),
            })
        except ServiceError as e:
            return error_response(e)
        except Exception:
            current_app.logger.exception("Failed to list %s", resource_type)
            return jsonify({"error": "Internal server error"}), 500

    @bp.get("/favorites")
    @require_auth
    def list_favorites_route():
        try:
            rows = favorite_service.list_favorites(resource_type, g.current_user.id)
            return jsonify({
                "items": [serialize(resource, perms) for resource, perms in rows],
                "count": len(rows),
            })
        except ServiceError as e:
            return error_response(e)
        except Exception:
            current_app.logger.exception("Failed to list favorite %s", resource_type)
            return jsonify({"error": "Internal server error"}), 500

    @bp.post("")
    @require_auth
    def create_route():
        data = request.get_json(silent=True) or {}
        try:
            resource = resource_service.create_resource(resource_type, g.current_user.id, data)
            _, perms = resource_service.get_resource(resource_type, g.current_user.id, resource.id)
            return jsonify(serialize(resource, perms)), 201
        except ServiceError as e:
            return error_response(e)
        except Exception:
            current_app.logger.exception("Failed to create %s", resource_type)
            return jsonify({"error": "Internal server error"}), 500

    @bp.get("/<int:resource_id>")
    @require_auth
    def get_route(resource_id: int):
        try:
            resource, perms = resource_service.get_resource(
                resource_type, g.current_user.id, resource_id
            )
            return jsonify(serialize(resource, perms))
        except ServiceError as e:
            return error_response(e)
        except Exception:
            current_app.logger.exception("Failed to get %s %s", resource_type, resource_id)
            return jsonify({"error": "Internal server error"}), 500

    @bp.patch("/<int:resource_id>")
    @require_auth
    def update_route(resource_id: int):
        data = request.get_json(silent=True) or {}
        try:
            resource_service.update_resource(resource_type, g.current_user.id, resource_id, data)
            resource, perms = resource_service.get_resource(
                resource_type, g.current_user.id, resource_id
            )
            return jsonify(serialize(resource, perms))
        except ServiceError as e:
            return error_response(e)
        except Exception:
            current_app.logger.exception("Failed to update %s %s", resource_type, resource_id)
            return jsonify({"error": "Internal server error"}), 500

    @bp.delete("/<int:resource_id>")
    @require_auth
    def delete_route(resource_id: int):
        ip_address, user_agent = request_provenance()
        try:
            resource_service.delete_resource(
                resource_type,
                g.current_user.id,
                resource_id,
                ip_address=ip_address,
                user_agent=user_agent,
            )
            return jsonify({"message": "Deleted", "id": resource_id}), 200
        except ServiceError as e:
            return error_response(e)
        except Exception:
            current_app.logger.exception("Failed to delete %s %s", resource_type, resource_id)
            return jsonify({"error": "Internal server error"}), 500

    @bp.post("/<int:resource_id>/transfer")
    @require_auth
    def transfer_route(resource_id: int):
        """
        Transfer ownership.

        Request body: {"new_owner_id": int}
        All active shares are revoked.
        """
        data = request.get_json(silent=True) or {}
        ip_address, user_agent = request_provenance()
        try:
            resource = resource_service.transfer_ownership(
                resource_type,
                g.current_user.id,
                resource_id,
                data.get("new_owner_id"),
                ip_address=ip_address,
                user_agent=user_agent,
            )
            return jsonify(resource.to_dict()), 200
        except ServiceError as e:
            return error_response(e)
        except Exception:
            current_app.logger.exception("Failed to transfer %s %s", resource_type, resource_id)
            return jsonify({"error": "Internal server error"}), 500

    @bp.post("/<int:resource_id>/favorite")
    @require_auth
    def toggle_favorite_route(resource_id: int):
        """Toggle the caller's favorite flag; needs view access."""
        try:
            is_favorite = favorite_service.toggle_favorite(resource_type, g.current_user.id, resource_id)
            return jsonify({"id": resource_id, "is_favorite": is_favorite}), 200
        except ServiceError as e:
            return error_response(e)
        except Exception:
            current_app.logger.exception("Failed to toggle favorite on %s %s", resource_type, resource_id)
            return jsonify({"error": "Internal server error"}), 500

    return bp


cards_bp = make_resource_blueprint("cards")
vouchers_bp = make_resource_blueprint("vouchers")
gift_cards_bp = make_resource_blueprint("gift_cards")
