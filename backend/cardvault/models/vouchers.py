from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z
from .mixins import SoftDeleteMixin


VOUCHER_TYPES = {"percentage", "fixed_amount", "points_multiplier"}
USAGE_LIMIT_TYPES = {
    "single_use",
    "one_per_customer",
    "multiple_use_with_card",
    "multiple_use_without_card",
    "unlimited",
}


class Voucher(SoftDeleteMixin, db.Model):
    """
    Discount voucher with a validity window.

    Voucher shares are always read-only: recipients can view, never edit
    or delete.
    """
    __tablename__ = "vouchers"
    __table_args__ = (
        db.Index(
            "uq_vouchers_user_code",
            "user_id",
            "code",
            unique=True,
            sqlite_where=db.text("user_id IS NOT NULL AND deleted_at IS NULL"),
            postgresql_where=db.text("user_id IS NOT NULL AND deleted_at IS NULL"),
        ),
        db.CheckConstraint("valid_until >= valid_from", name="ck_vouchers_validity_window"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    merchant_id = db.Column(db.Integer, db.ForeignKey("merchants.id"), nullable=True, index=True)
    merchant_name = db.Column(db.String(120), nullable=False, default="")

    code = db.Column(db.String(64), nullable=False)
    voucher_type = db.Column(db.String(32), nullable=False)
    value = db.Column(db.Numeric(10, 2), nullable=False)
    description = db.Column(db.Text, nullable=True)
    min_purchase_amount_cents = db.Column(db.Integer, nullable=False, default=0)

    valid_from = db.Column(db.DateTime(timezone=True), nullable=False)
    valid_until = db.Column(db.DateTime(timezone=True), nullable=False)
    usage_limit_type = db.Column(db.String(32), nullable=False, default="single_use")
    barcode_type = db.Column(db.String(32), nullable=False, default="CODE128")

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    owner = db.relationship("User", backref=db.backref("vouchers", lazy=True))
    merchant = db.relationship("Merchant")

    def __repr__(self) -> str:
        return f"<Voucher id={self.id} code={self.code!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "merchant_id": self.merchant_id,
            "merchant_name": self.merchant.name if self.merchant else self.merchant_name,
            "code": self.code,
            "voucher_type": self.voucher_type,
            "value": str(self.value) if self.value is not None else None,
            "description": self.description,
            "min_purchase_amount_cents": self.min_purchase_amount_cents,
            "valid_from": to_utc_z(self.valid_from),
            "valid_until": to_utc_z(self.valid_until),
            "usage_limit_type": self.usage_limit_type,
            "barcode_type": self.barcode_type,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "deleted_at": self._deleted_at_z(),
        }


class VoucherShare(SoftDeleteMixin, db.Model):
    """Read-only grant of one voucher to one user; the flags stay False."""
    __tablename__ = "voucher_shares"
    __table_args__ = (
        db.Index(
            "uq_voucher_shares_active_pair",
            "voucher_id",
            "shared_with_id",
            unique=True,
            sqlite_where=db.text("deleted_at IS NULL"),
            postgresql_where=db.text("deleted_at IS NULL"),
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    voucher_id = db.Column(db.Integer, db.ForeignKey("vouchers.id"), nullable=False, index=True)
    shared_with_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    can_edit = db.Column(db.Boolean, nullable=False, default=False)
    can_delete = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    voucher = db.relationship("Voucher", backref=db.backref("shares", lazy=True))
    shared_with = db.relationship("User", foreign_keys=[shared_with_id])

    @property
    def resource_id(self) -> int:
        return self.voucher_id

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "voucher_id": self.voucher_id,
            "shared_with_id": self.shared_with_id,
            "can_edit": self.can_edit,
            "can_delete": self.can_delete,
            "created_at": to_utc_z(self.created_at),
            "deleted_at": self._deleted_at_z(),
        }
