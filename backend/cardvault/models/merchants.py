from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z
from .mixins import SoftDeleteMixin


class Merchant(SoftDeleteMixin, db.Model):
    """
    Retailer or brand referenced by cards, vouchers and gift cards.

    Merchant CRUD sits behind the elevated gate (admins, or any session
    that is impersonating another user).
    """
    __tablename__ = "merchants"
    __table_args__ = (
        db.Index(
            "uq_merchants_active_name",
            "name",
            unique=True,
            sqlite_where=db.text("deleted_at IS NULL"),
            postgresql_where=db.text("deleted_at IS NULL"),
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    color = db.Column(db.String(16), nullable=True)
    website = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def __repr__(self) -> str:
        return f"<Merchant id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "color": self.color,
            "website": self.website,
            "created_at": to_utc_z(self.created_at),
            "deleted_at": self._deleted_at_z(),
        }
