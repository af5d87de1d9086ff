# Overview: Flask API routes for gift card transactions; every change goes through the balance guard.

"""
Gift Card Transaction Routes

    GET    /api/gift-cards/<id>/transactions            view
    POST   /api/gift-cards/<id>/transactions            can_edit_transactions
    PATCH  /api/gift-cards/<id>/transactions/<tx_id>    can_edit_transactions
    DELETE /api/gift-cards/<id>/transactions/<tx_id>    can_edit_transactions (audited)

A debit that would overdraw the card answers 422 with the available
balance, the attempted amount and the balance it would have produced.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_auth, feature_flag_guard
from ..errors import ServiceError, ValidationError, error_response
from ..services import balance_service
from ..services.audit_service import request_provenance
from ..services.authz_service import load_with_capability
from ..time_utils import parse_iso_datetime

gift_card_transactions_bp = Blueprint(
    "gift_card_transactions", __name__, url_prefix="/api/gift-cards"
)
feature_flag_guard(gift_card_transactions_bp, "ENABLE_GIFT_CARDS")


def _transaction_date(data: dict):
    try:
        return parse_iso_datetime(data.get("transaction_date"))
    except (TypeError, ValueError, AttributeError):
        raise ValidationError("transaction_date must be an ISO-8601 datetime")


def _balance_payload(tx, gift_card_id: int) -> dict:
    gift_card, _ = load_with_capability("gift_cards", g.current_user.id, gift_card_id, "view")
    return {
        "transaction": tx.to_dict(),
        "current_balance_cents": gift_card.current_balance_cents,
    }


@gift_card_transactions_bp.get("/<int:gift_card_id>/transactions")
@require_auth
def list_transactions_route(gift_card_id: int):
    try:
        gift_card, _ = load_with_capability("gift_cards", g.current_user.id, gift_card_id, "view")
        transactions = balance_service.list_transactions(gift_card.id)
        return jsonify({
            "items": [tx.to_dict() for tx in transactions],
            "count": len(transactions),
            "current_balance_cents": gift_card.current_balance_cents,
        })
    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list transactions of gift card %s", gift_card_id)
        return jsonify({"error": "Internal server error"}), 500


@gift_card_transactions_bp.post("/<int:gift_card_id>/transactions")
@require_auth
def create_transaction_route(gift_card_id: int):
    """
    Record a debit.

    Request body:
    {
        "amount_cents": 1250,                  // required, positive
        "description": "Groceries",
        "transaction_date": "2024-05-01T10:00:00Z"
    }
    """
    data = request.get_json(silent=True) or {}
    try:
        load_with_capability("gift_cards", g.current_user.id, gift_card_id, "edit_transactions")
        tx = balance_service.add_transaction(
            gift_card_id,
            data.get("amount_cents"),
            description=data.get("description"),
            transaction_date=_transaction_date(data),
            created_by_user_id=g.current_user.id,
        )
        return jsonify(_balance_payload(tx, gift_card_id)), 201
    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to add transaction to gift card %s", gift_card_id)
        return jsonify({"error": "Internal server error"}), 500


@gift_card_transactions_bp.patch("/<int:gift_card_id>/transactions/<int:transaction_id>")
@require_auth
def update_transaction_route(gift_card_id: int, transaction_id: int):
    data = request.get_json(silent=True) or {}
    try:
        load_with_capability("gift_cards", g.current_user.id, gift_card_id, "edit_transactions")
        tx = balance_service.update_transaction(
            gift_card_id,
            transaction_id,
            amount_cents=data.get("amount_cents"),
            description=data.get("description"),
            transaction_date=_transaction_date(data),
        )
        return jsonify(_balance_payload(tx, gift_card_id)), 200
    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update transaction %s", transaction_id)
        return jsonify({"error": "Internal server error"}), 500


@gift_card_transactions_bp.delete("/<int:gift_card_id>/transactions/<int:transaction_id>")
@require_auth
def delete_transaction_route(gift_card_id: int, transaction_id: int):
    ip_address, user_agent = request_provenance()
    try:
        load_with_capability("gift_cards", g.current_user.id, gift_card_id, "edit_transactions")
        tx = balance_service.delete_transaction(
            gift_card_id,
            transaction_id,
            actor_user_id=g.current_user.id,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        return jsonify(_balance_payload(tx, gift_card_id)), 200
    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete transaction %s", transaction_id)
        return jsonify({"error": "Internal server error"}), 500
