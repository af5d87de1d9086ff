from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z
from .mixins import SoftDeleteMixin


class GiftCard(SoftDeleteMixin, db.Model):
    """
    Gift card with a cached balance.

    INVARIANT: current_balance_cents == initial_balance_cents minus the sum
    of active (non soft-deleted) transaction amounts, and never negative.
    Only balance_service writes current_balance_cents; the check constraint
    is the last line of defence against a writer that bypasses it.
    """
    __tablename__ = "gift_cards"
    __table_args__ = (
        db.Index(
            "uq_gift_cards_user_card_number",
            "user_id",
            "card_number",
            unique=True,
            sqlite_where=db.text("user_id IS NOT NULL AND deleted_at IS NULL"),
            postgresql_where=db.text("user_id IS NOT NULL AND deleted_at IS NULL"),
        ),
        db.CheckConstraint("initial_balance_cents >= 0", name="ck_gift_cards_initial_balance_non_negative"),
        db.CheckConstraint("current_balance_cents >= 0", name="ck_gift_cards_current_balance_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    merchant_id = db.Column(db.Integer, db.ForeignKey("merchants.id"), nullable=True, index=True)
    merchant_name = db.Column(db.String(120), nullable=False, default="")

    card_number = db.Column(db.String(64), nullable=False)
    initial_balance_cents = db.Column(db.Integer, nullable=False)
    current_balance_cents = db.Column(db.Integer, nullable=False)
    currency = db.Column(db.String(3), nullable=False, default="CHF")
    pin = db.Column(db.String(32), nullable=True)
    expires_at = db.Column(db.DateTime(timezone=True), nullable=True)
    status = db.Column(db.String(16), nullable=False, default="active")
    barcode_type = db.Column(db.String(32), nullable=False, default="CODE128")
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    owner = db.relationship("User", backref=db.backref("gift_cards", lazy=True))
    merchant = db.relationship("Merchant")

    def __repr__(self) -> str:
        return f"<GiftCard id={self.id} balance={self.current_balance_cents}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "merchant_id": self.merchant_id,
            "merchant_name": self.merchant.name if self.merchant else self.merchant_name,
            "card_number": self.card_number,
            "initial_balance_cents": self.initial_balance_cents,
            "current_balance_cents": self.current_balance_cents,
            "currency": self.currency,
            "pin": self.pin,
            "expires_at": to_utc_z(self.expires_at) if self.expires_at else None,
            "status": self.status,
            "barcode_type": self.barcode_type,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "deleted_at": self._deleted_at_z(),
        }


class GiftCardTransaction(SoftDeleteMixin, db.Model):
    """
    Debit against a gift card.

    amount_cents is positive; the balance is initial minus the sum of
    active amounts. Soft-deleting a transaction gives its amount back.
    """
    __tablename__ = "gift_card_transactions"
    __table_args__ = (
        db.Index("ix_gift_card_transactions_card_active", "gift_card_id", "deleted_at"),
        db.CheckConstraint("amount_cents > 0", name="ck_gift_card_transactions_amount_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    gift_card_id = db.Column(db.Integer, db.ForeignKey("gift_cards.id"), nullable=False, index=True)
    amount_cents = db.Column(db.Integer, nullable=False)
    description = db.Column(db.Text, nullable=True)
    transaction_date = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    gift_card = db.relationship("GiftCard", backref=db.backref("transactions", lazy=True))
    created_by = db.relationship("User", foreign_keys=[created_by_user_id])

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "gift_card_id": self.gift_card_id,
            "amount_cents": self.amount_cents,
            "description": self.description,
            "transaction_date": to_utc_z(self.transaction_date),
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "deleted_at": self._deleted_at_z(),
        }


class GiftCardShare(SoftDeleteMixin, db.Model):
    """Grant on one gift card; the only share type with can_edit_transactions."""
    __tablename__ = "gift_card_shares"
    __table_args__ = (
        db.Index(
            "uq_gift_card_shares_active_pair",
            "gift_card_id",
            "shared_with_id",
            unique=True,
            sqlite_where=db.text("deleted_at IS NULL"),
            postgresql_where=db.text("deleted_at IS NULL"),
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    gift_card_id = db.Column(db.Integer, db.ForeignKey("gift_cards.id"), nullable=False, index=True)
    shared_with_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    can_edit = db.Column(db.Boolean, nullable=False, default=False)
    can_delete = db.Column(db.Boolean, nullable=False, default=False)
    can_edit_transactions = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    gift_card = db.relationship("GiftCard", backref=db.backref("shares", lazy=True))
    shared_with = db.relationship("User", foreign_keys=[shared_with_id])

    @property
    def resource_id(self) -> int:
        return self.gift_card_id

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "gift_card_id": self.gift_card_id,
            "shared_with_id": self.shared_with_id,
            "can_edit": self.can_edit,
            "can_delete": self.can_delete,
            "can_edit_transactions": self.can_edit_transactions,
            "created_at": to_utc_z(self.created_at),
            "deleted_at": self._deleted_at_z(),
        }
