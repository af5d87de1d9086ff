# Overview: Flask API routes for merchants; reads for everyone, writes behind the elevated gate.

"""
Merchant Routes

SECURITY:
- Listing requires authentication
- Create/update/delete require an elevated session: an admin, or any
  session impersonating another user
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_auth, require_elevated
from ..errors import ServiceError, error_response
from ..services import merchant_service
from ..services.audit_service import request_provenance

merchants_bp = Blueprint("merchants", __name__, url_prefix="/api/merchants")


@merchants_bp.get("")
@require_auth
def list_merchants_route():
    try:
        merchants = merchant_service.list_merchants(search=request.args.get("search"))
        return jsonify({"items": [m.to_dict() for m in merchants], "count": len(merchants)})
    except Exception:
        current_app.logger.exception("Failed to list merchants")
        return jsonify({"error": "Internal server error"}), 500


@merchants_bp.post("")
@require_auth
@require_elevated
def create_merchant_route():
    data = request.get_json(silent=True) or {}
    try:
        merchant = merchant_service.create_merchant(data)
        return jsonify(merchant.to_dict()), 201
    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create merchant")
        return jsonify({"error": "Internal server error"}), 500


@merchants_bp.patch("/<int:merchant_id>")
@require_auth
@require_elevated
def update_merchant_route(merchant_id: int):
    data = request.get_json(silent=True) or {}
    try:
        merchant = merchant_service.update_merchant(merchant_id, data)
        return jsonify(merchant.to_dict()), 200
    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update merchant %s", merchant_id)
        return jsonify({"error": "Internal server error"}), 500


@merchants_bp.delete("/<int:merchant_id>")
@require_auth
@require_elevated
def delete_merchant_route(merchant_id: int):
    ip_address, user_agent = request_provenance()
    try:
        merchant_service.delete_merchant(
            merchant_id,
            actor_user_id=g.current_user.id,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        return jsonify({"message": "Deleted", "id": merchant_id}), 200
    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete merchant %s", merchant_id)
        return jsonify({"error": "Internal server error"}), 500
