# Overview: Service-layer operations for gift card transactions; guards the cached balance.

"""
Balance Consistency Guard

================================================================================
PURPOSE: keep GiftCard.current_balance_cents correct and never negative
================================================================================

INVARIANT:
    current_balance_cents == initial_balance_cents - SUM(amount_cents of
    active transactions) >= 0

Soft-deleted transactions are excluded from both the pre-check and the
recompute. A soft-deleted transaction gives its amount back; restoring it
takes the amount again and is checked like an insert.

ATOMICITY:
Every mutation locks the gift card row (SELECT ... FOR UPDATE) before it
reads the transaction sum, and commits once. Two concurrent debits on the
same card therefore cannot both pass the check. The check constraint on
gift_cards.current_balance_cents backs this up at the database level.

RULES:
1. Insert/update: reject with InsufficientBalanceError when the balance
   would drop below zero; nothing is written.
2. Any insert/update/delete/restore: recompute the cached balance from
   scratch (idempotent, self-healing against drift).
3. Initial balance change: recompute the same way; reject if the new
   initial balance cannot cover the existing active transactions.
================================================================================
"""

from __future__ import annotations

from datetime import datetime

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..errors import (
    ConflictError, InsufficientBalanceError, NotFoundError, ServiceError, ValidationError,
)
from ..models import GiftCard, GiftCardTransaction
from ..time_utils import utcnow
from .concurrency import flush_or_conflict, lock_for_update, run_with_retry
from . import audit_service


def validate_amount(value, field: str = "amount_cents") -> int:
    """Amounts are positive integer cents (bools and floats are rejected)."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{field} must be an integer number of cents")
    if value <= 0:
        raise ValidationError(f"{field} must be positive")
    return value


def _lock_gift_card(gift_card_id: int, *, include_deleted: bool = False) -> GiftCard:
    query = db.session.query(GiftCard).filter(GiftCard.id == gift_card_id)
    if not include_deleted:
        query = query.filter(GiftCard.deleted_at.is_(None))
    gift_card = lock_for_update(query).first()
    if gift_card is None:
        raise NotFoundError()
    return gift_card


def _get_active_transaction(gift_card_id: int, transaction_id: int) -> GiftCardTransaction:
    tx = GiftCardTransaction.active().filter(
        GiftCardTransaction.id == transaction_id,
        GiftCardTransaction.gift_card_id == gift_card_id,
    ).first()
    if tx is None:
        raise NotFoundError()
    return tx


def active_transaction_total(gift_card_id: int, exclude_transaction_id: int | None = None) -> int:
    """Sum of active transaction amounts for a gift card, in cents."""
    query = db.session.query(
        db.func.coalesce(db.func.sum(GiftCardTransaction.amount_cents), 0)
    ).filter(
        GiftCardTransaction.gift_card_id == gift_card_id,
        GiftCardTransaction.deleted_at.is_(None),
    )
    if exclude_transaction_id is not None:
        query = query.filter(GiftCardTransaction.id != exclude_transaction_id)
    return int(query.scalar())


def list_transactions(gift_card_id: int) -> list[GiftCardTransaction]:
    """Active transactions of a gift card, newest first."""
    return (
        GiftCardTransaction.active()
        .filter(GiftCardTransaction.gift_card_id == gift_card_id)
        .order_by(GiftCardTransaction.transaction_date.desc(), GiftCardTransaction.id.desc())
        .all()
    )


def _ensure_covers(gift_card: GiftCard, other_total: int, amount_cents: int) -> None:
    available = gift_card.initial_balance_cents - other_total
    would_be = available - amount_cents
    if would_be < 0:
        current_app.logger.warning(
            "Rejected gift card debit: gift_card=%s available=%s attempted=%s",
            gift_card.id, available, amount_cents,
        )
        raise InsufficientBalanceError(available, amount_cents, would_be)


def recalculate_balance(gift_card: GiftCard) -> int:
    """Recompute and store the cached balance from active transactions. Does not commit."""
    db.session.flush()
    total = active_transaction_total(gift_card.id)
    gift_card.current_balance_cents = gift_card.initial_balance_cents - total
    return gift_card.current_balance_cents


def _guarded(op):
    """
    Run op with retry; roll back (releasing the row lock) on domain errors.

    Where the row lock is a no-op (SQLite), a concurrent debit can commit
    between our check and our write. The balance check constraint then
    fails the write; op runs once more so the check sees the committed
    debit and raises InsufficientBalanceError instead.
    """
    def _run():
        try:
            return op()
        except ServiceError:
            db.session.rollback()
            raise

    def _run_rechecked():
        try:
            return _run()
        except IntegrityError:
            db.session.rollback()
            current_app.logger.warning("Gift card balance changed during write; re-checking")
        try:
            return _run()
        except IntegrityError as exc:
            db.session.rollback()
            raise ConflictError("Gift card balance changed concurrently, please retry") from exc

    return run_with_retry(_run_rechecked)


def add_transaction(
    gift_card_id: int,
    amount_cents: int,
    *,
    description: str | None = None,
    transaction_date: datetime | None = None,
    created_by_user_id: int | None = None,
) -> GiftCardTransaction:
    """
    Debit a gift card.

    Raises NotFoundError for missing/deleted gift cards, ValidationError for
    non-positive amounts and InsufficientBalanceError when the debit would
    overdraw the card.
    """
    amount = validate_amount(amount_cents)

    def _op():
        gift_card = _lock_gift_card(gift_card_id)
        _ensure_covers(gift_card, active_transaction_total(gift_card.id), amount)

        tx = GiftCardTransaction(
            gift_card_id=gift_card.id,
            amount_cents=amount,
            description=description,
            transaction_date=transaction_date or utcnow(),
            created_by_user_id=created_by_user_id,
        )
        db.session.add(tx)
        recalculate_balance(gift_card)
        db.session.commit()
        return tx

    return _guarded(_op)


def update_transaction(
    gift_card_id: int,
    transaction_id: int,
    *,
    amount_cents: int | None = None,
    description: str | None = None,
    transaction_date: datetime | None = None,
) -> GiftCardTransaction:
    """Edit an active transaction; a changed amount is checked against the other debits."""
    amount = validate_amount(amount_cents) if amount_cents is not None else None

    def _op():
        gift_card = _lock_gift_card(gift_card_id)
        tx = _get_active_transaction(gift_card.id, transaction_id)

        if amount is not None and amount != tx.amount_cents:
            other_total = active_transaction_total(gift_card.id, exclude_transaction_id=tx.id)
            _ensure_covers(gift_card, other_total, amount)
            tx.amount_cents = amount
        if description is not None:
            tx.description = description
        if transaction_date is not None:
            tx.transaction_date = transaction_date

        recalculate_balance(gift_card)
        db.session.commit()
        return tx

    return _guarded(_op)


def delete_transaction(
    gift_card_id: int,
    transaction_id: int,
    *,
    actor_user_id: int | None,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> GiftCardTransaction:
    """Soft-delete a transaction, give its amount back and audit the deletion."""
    def _op():
        gift_card = _lock_gift_card(gift_card_id)
        tx = _get_active_transaction(gift_card.id, transaction_id)

        tx.soft_delete()
        audit_service.record(
            actor_user_id,
            audit_service.ACTION_DELETE,
            "gift_card_transactions",
            tx.id,
            tx.to_dict(),
            ip_address=ip_address,
            user_agent=user_agent,
        )
        recalculate_balance(gift_card)
        db.session.commit()
        return tx

    return _guarded(_op)


def apply_initial_balance(gift_card: GiftCard, initial_balance_cents: int) -> int:
    """
    Change a gift card's initial balance and recompute. Does not commit.

    The caller must hold the row lock (or be creating the card).
    """
    if isinstance(initial_balance_cents, bool) or not isinstance(initial_balance_cents, int):
        raise ValidationError("initial_balance_cents must be an integer number of cents")
    if initial_balance_cents < 0:
        raise ValidationError("initial_balance_cents must not be negative")

    spent = active_transaction_total(gift_card.id) if gift_card.id else 0
    would_be = initial_balance_cents - spent
    if would_be < 0:
        raise InsufficientBalanceError(
            gift_card.current_balance_cents,
            spent,
            would_be,
            message=f"Initial balance cannot be lower than the {spent / 100:.2f} already spent",
        )

    gift_card.initial_balance_cents = initial_balance_cents
    if gift_card.id:
        return recalculate_balance(gift_card)
    gift_card.current_balance_cents = initial_balance_cents
    return initial_balance_cents


def set_initial_balance(
    gift_card_id: int,
    initial_balance_cents: int,
    *,
    changes: dict | None = None,
    conflict_message: str = "Gift card with this card number already exists",
) -> GiftCard:
    """
    Change the initial balance under the row lock and commit.

    changes are other validated field updates applied in the same
    transaction, so a rejected balance leaves the whole edit unapplied.
    """
    def _op():
        gift_card = _lock_gift_card(gift_card_id)
        apply_initial_balance(gift_card, initial_balance_cents)
        for key, value in (changes or {}).items():
            setattr(gift_card, key, value)
        flush_or_conflict(conflict_message)
        db.session.commit()
        return gift_card

    return _guarded(_op)


def restore_transaction(tx: GiftCardTransaction) -> None:
    """
    Undelete a transaction for the restore flow, re-checking the balance.

    Does not commit; the restore flow commits together with its audit entry.
    """
    gift_card = _lock_gift_card(tx.gift_card_id, include_deleted=True)
    _ensure_covers(gift_card, active_transaction_total(gift_card.id), tx.amount_cents)
    tx.undelete()
    recalculate_balance(gift_card)


def recalculate_all(gift_card_id: int | None = None) -> list[tuple[int, int, int]]:
    """
    Recompute cached balances (all gift cards, or one).

    Returns (gift_card_id, old_cents, new_cents) for every card whose cached
    value had drifted.
    """
    query = db.session.query(GiftCard)
    if gift_card_id is not None:
        query = query.filter(GiftCard.id == gift_card_id)

    drifted = []
    for gift_card in lock_for_update(query.order_by(GiftCard.id)).all():
        old = gift_card.current_balance_cents
        new = recalculate_balance(gift_card)
        if new < 0:
            db.session.rollback()
            raise InsufficientBalanceError(
                old, 0, new,
                message=f"Gift card {gift_card.id} transactions exceed its initial balance",
            )
        if old != new:
            drifted.append((gift_card.id, old, new))

    db.session.commit()
    return drifted
