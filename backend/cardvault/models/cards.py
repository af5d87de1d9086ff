from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z
from .mixins import SoftDeleteMixin


class Card(SoftDeleteMixin, db.Model):
    """
    Loyalty card.

    user_id is nullable so an admin can keep a card whose owner is gone.
    A user cannot hold the same card number twice; different users can
    (family cards).
    """
    __tablename__ = "cards"
    __table_args__ = (
        db.Index(
            "uq_cards_user_card_number",
            "user_id",
            "card_number",
            unique=True,
            sqlite_where=db.text("user_id IS NOT NULL AND deleted_at IS NULL"),
            postgresql_where=db.text("user_id IS NOT NULL AND deleted_at IS NULL"),
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    merchant_id = db.Column(db.Integer, db.ForeignKey("merchants.id"), nullable=True, index=True)
    merchant_name = db.Column(db.String(120), nullable=False, default="")  # free-text fallback

    program = db.Column(db.String(120), nullable=False)
    card_number = db.Column(db.String(64), nullable=False)
    barcode_type = db.Column(db.String(32), nullable=False, default="CODE128")
    status = db.Column(db.String(16), nullable=False, default="active")
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    owner = db.relationship("User", backref=db.backref("cards", lazy=True))
    merchant = db.relationship("Merchant")

    def __repr__(self) -> str:
        return f"<Card id={self.id} program={self.program!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "merchant_id": self.merchant_id,
            "merchant_name": self.merchant.name if self.merchant else self.merchant_name,
            "program": self.program,
            "card_number": self.card_number,
            "barcode_type": self.barcode_type,
            "status": self.status,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "deleted_at": self._deleted_at_z(),
        }


class CardShare(SoftDeleteMixin, db.Model):
    """Grant of view (and optionally edit/delete) on one card to one user."""
    __tablename__ = "card_shares"
    __table_args__ = (
        db.Index(
            "uq_card_shares_active_pair",
            "card_id",
            "shared_with_id",
            unique=True,
            sqlite_where=db.text("deleted_at IS NULL"),
            postgresql_where=db.text("deleted_at IS NULL"),
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    card_id = db.Column(db.Integer, db.ForeignKey("cards.id"), nullable=False, index=True)
    shared_with_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    can_edit = db.Column(db.Boolean, nullable=False, default=False)
    can_delete = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    card = db.relationship("Card", backref=db.backref("shares", lazy=True))
    shared_with = db.relationship("User", foreign_keys=[shared_with_id])

    @property
    def resource_id(self) -> int:
        return self.card_id

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "card_id": self.card_id,
            "shared_with_id": self.shared_with_id,
            "can_edit": self.can_edit,
            "can_delete": self.can_delete,
            "created_at": to_utc_z(self.created_at),
            "deleted_at": self._deleted_at_z(),
        }
