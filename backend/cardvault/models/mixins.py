from __future__ import annotations

from ..extensions import db
from ..time_utils import utcnow, to_utc_z


class SoftDeleteMixin:
    """
    Nullable deleted_at timestamp instead of hard deletes.

    Soft-deleted rows are excluded from active() queries and can only come
    back through the admin restore flow.
    """
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True, index=True)

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    def soft_delete(self) -> None:
        self.deleted_at = utcnow()

    def undelete(self) -> None:
        self.deleted_at = None

    @classmethod
    def active(cls):
        return db.session.query(cls).filter(cls.deleted_at.is_(None))

    def _deleted_at_z(self):
        return to_utc_z(self.deleted_at) if self.deleted_at else None
