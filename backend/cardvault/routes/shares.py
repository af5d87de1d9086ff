# Overview: Flask API routes for resource shares; owner-only management per resource type.

"""
Share Routes

    GET    /api/<type>/<id>/shares                 list (owner)
    POST   /api/<type>/<id>/shares                 create (owner)
    PATCH  /api/<type>/<id>/shares/<share_id>      update flags (owner; not vouchers)
    DELETE /api/<type>/<id>/shares/<share_id>      revoke (owner, audited)
    GET    /api/shared-users                       people the caller shares with

Voucher shares are read-only: PATCH answers 405.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_auth, feature_flag_guard
from ..errors import ServiceError, error_response
from ..services import share_service
from ..services.audit_service import request_provenance
from .resources import RESOURCE_ROUTES


def make_share_blueprint(resource_type: str) -> Blueprint:
    segment, flag = RESOURCE_ROUTES[resource_type]
    manager = share_service.get_share_manager(resource_type)
    bp = Blueprint(f"{resource_type}_shares", __name__, url_prefix=f"/api/{segment}")
    feature_flag_guard(bp, flag)

    @bp.get("/<int:resource_id>/shares")
    @require_auth
    def list_shares_route(resource_id: int):
        try:
            manager.require_owner(resource_id, g.current_user.id)
            shares = manager.list(resource_id)
            return jsonify({"items": [s.to_dict() for s in shares], "count": len(shares)})
        except ServiceError as e:
            return error_response(e)
        except Exception:
            current_app.logger.exception("Failed to list shares of %s %s", resource_type, resource_id)
            return jsonify({"error": "Internal server error"}), 500

    @bp.post("/<int:resource_id>/shares")
    @require_auth
    def create_share_route(resource_id: int):
        """
        Share with another user.

        Request body:
        {
            "email": "friend@example.com",   // required
            "can_edit": false,
            "can_delete": false,
            "can_edit_transactions": false   // gift cards only
        }
        """
        data = request.get_json(silent=True) or {}
        try:
            share = manager.create(
                g.current_user.id,
                resource_id,
                data.get("email"),
                can_edit=data.get("can_edit", False),
                can_delete=data.get("can_delete", False),
                can_edit_transactions=data.get("can_edit_transactions", False),
            )
            return jsonify(manager.view(share).to_dict()), 201
        except ServiceError as e:
            return error_response(e)
        except Exception:
            current_app.logger.exception("Failed to share %s %s", resource_type, resource_id)
            return jsonify({"error": "Internal server error"}), 500

    @bp.patch("/<int:resource_id>/shares/<int:share_id>")
    @require_auth
    def update_share_route(resource_id: int, share_id: int):
        data = request.get_json(silent=True) or {}
        ip_address, user_agent = request_provenance()
        try:
            share = manager.update(
                g.current_user.id,
                share_id,
                can_edit=data.get("can_edit"),
                can_delete=data.get("can_delete"),
                can_edit_transactions=data.get("can_edit_transactions"),
                resource_id=resource_id,
                ip_address=ip_address,
                user_agent=user_agent,
            )
            return jsonify(manager.view(share).to_dict()), 200
        except ServiceError as e:
            return error_response(e)
        except Exception:
            current_app.logger.exception("Failed to update share %s", share_id)
            return jsonify({"error": "Internal server error"}), 500

    @bp.delete("/<int:resource_id>/shares/<int:share_id>")
    @require_auth
    def delete_share_route(resource_id: int, share_id: int):
        ip_address, user_agent = request_provenance()
        try:
            manager.delete(
                g.current_user.id,
                share_id,
                resource_id=resource_id,
                ip_address=ip_address,
                user_agent=user_agent,
            )
            return jsonify({"message": "Share revoked", "id": share_id}), 200
        except ServiceError as e:
            return error_response(e)
        except Exception:
            current_app.logger.exception("Failed to revoke share %s", share_id)
            return jsonify({"error": "Internal server error"}), 500

    return bp


card_shares_bp = make_share_blueprint("cards")
voucher_shares_bp = make_share_blueprint("vouchers")
gift_card_shares_bp = make_share_blueprint("gift_cards")

shared_users_bp = Blueprint("shared_users", __name__, url_prefix="/api/shared-users")


@shared_users_bp.get("")
@require_auth
def list_shared_users_route():
    """
    Distinct users the caller currently shares anything with.

    Query parameters:
    - search: filter by email, first or last name
    """
    try:
        users = share_service.list_shared_users(g.current_user.id, request.args.get("search"))
        return jsonify({"items": [u.to_public_dict() for u in users], "count": len(users)})
    except Exception:
        current_app.logger.exception("Failed to list shared users")
        return jsonify({"error": "Internal server error"}), 500
