from __future__ import annotations

from ..extensions import db
from ..time_utils import utcnow, to_utc_z
from .mixins import SoftDeleteMixin


TYPE_SHARE_RECEIVED = "share_received"
TYPE_TRANSFER_RECEIVED = "transfer_received"


class Notification(SoftDeleteMixin, db.Model):
    """
    In-app notice for a user who received a share or an ownership transfer.

    details holds who triggered it (from_user_id, from_user_name) and, for
    shares, the granted flags. Notifications are informational only: they
    grant nothing, and a later revoke does not remove them.
    """
    __tablename__ = "notifications"
    __table_args__ = (
        db.Index("ix_notifications_user_unread", "user_id", "is_read"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    type = db.Column(db.String(32), nullable=False)
    resource_type = db.Column(db.String(32), nullable=False)
    resource_id = db.Column(db.Integer, nullable=False)
    details = db.Column(db.JSON, nullable=False, default=dict)

    is_read = db.Column(db.Boolean, nullable=False, default=False)
    read_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def __repr__(self) -> str:
        return f"<Notification id={self.id} user_id={self.user_id} type={self.type}>"

    def mark_read(self) -> None:
        if not self.is_read:
            self.is_read = True
            self.read_at = utcnow()

    def to_dict(self) -> dict:
        details = self.details or {}
        return {
            "id": self.id,
            "type": self.type,
            "resource_type": self.resource_type,
            "resource_id": self.resource_id,
            "from_user_id": details.get("from_user_id"),
            "from_user_name": details.get("from_user_name", "Unknown user"),
            "permissions": details.get("permissions"),
            "is_read": self.is_read,
            "read_at": to_utc_z(self.read_at),
            "created_at": to_utc_z(self.created_at),
        }
