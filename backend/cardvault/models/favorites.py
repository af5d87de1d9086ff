from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z
from .mixins import SoftDeleteMixin


class Favorite(SoftDeleteMixin, db.Model):
    """
    A user's bookmark on a card, voucher or gift card (owned or shared).

    One row per (user, resource); un-favoriting soft-deletes it and
    favoriting again brings the same row back.
    """
    __tablename__ = "favorites"
    __table_args__ = (
        db.UniqueConstraint("user_id", "resource_type", "resource_id", name="uq_favorites_user_resource"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    resource_type = db.Column(db.String(32), nullable=False)
    resource_id = db.Column(db.Integer, nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "resource_type": self.resource_type,
            "resource_id": self.resource_id,
            "created_at": to_utc_z(self.created_at),
        }
