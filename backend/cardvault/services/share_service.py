# Overview: Service-layer operations for resource shares; one manager per shareable type.

"""
Share Manager

One ShareManager per resource type, parameterised by the type's policy
(see resource_types.py). Cards, vouchers and gift cards behave the same
except:

- vouchers: shares are view-only; flags are forced False and update is
  not available (UnsupportedOperationError)
- gift cards: shares additionally carry can_edit_transactions

OWNERSHIP: only the resource owner may create, update, delete or list
shares. A share recipient asking for these operations gets
ForbiddenError; anyone else gets NotFoundError.

UNIQUENESS: at most one active share per (resource, user). The pre-check
gives a friendly ConflictError; the partial unique index catches the
concurrent case and is translated to the same error.

NOTIFY: the recipient of a new share gets a best-effort notification.

AUDIT: update and delete are recorded together with the mutation (single
commit). The actor is the owner performing the change.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from flask import current_app

from ..extensions import db
from ..errors import (
    ConflictError, NotFoundError, UnsupportedOperationError, UserNotFoundError, ValidationError,
)
from ..models import User
from ..resource_types import RESOURCE_TYPES, ResourceType, get_resource_type
from ..time_utils import to_utc_z
from . import audit_service, notification_service
from .authz_service import (
    find_active_share, load_active_resource, permissions_for, require_capability,
)
from .concurrency import flush_or_conflict


@dataclass
class ShareView:
    """A share plus the recipient's display information."""
    id: int
    resource_id: int
    shared_with_id: int
    shared_with_email: str
    shared_with_name: str
    can_edit: bool
    can_delete: bool
    can_edit_transactions: bool
    created_at: datetime | None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "resource_id": self.resource_id,
            "shared_with_id": self.shared_with_id,
            "shared_with_email": self.shared_with_email,
            "shared_with_name": self.shared_with_name,
            "can_edit": self.can_edit,
            "can_delete": self.can_delete,
            "can_edit_transactions": self.can_edit_transactions,
            "created_at": to_utc_z(self.created_at),
        }


def _as_bool(value, field: str) -> bool:
    if not isinstance(value, bool):
        raise ValidationError(f"{field} must be a boolean")
    return value


class ShareManager:
    def __init__(self, policy: ResourceType):
        self.policy = policy

    def __repr__(self) -> str:
        return f"<ShareManager {self.policy.name}>"

    # -- helpers -----------------------------------------------------------

    def _flags(self, can_edit, can_delete, can_edit_transactions) -> dict:
        can_edit = _as_bool(can_edit, "can_edit")
        can_delete = _as_bool(can_delete, "can_delete")
        can_edit_transactions = _as_bool(can_edit_transactions, "can_edit_transactions")

        if not self.policy.shares_editable:
            return {"can_edit": False, "can_delete": False}

        flags = {"can_edit": can_edit, "can_delete": can_delete}
        if self.policy.supports_transactions:
            flags["can_edit_transactions"] = can_edit_transactions
        return flags

    def _snapshot_flags(self, share) -> dict:
        flags = {"can_edit": share.can_edit, "can_delete": share.can_delete}
        if self.policy.supports_transactions:
            flags["can_edit_transactions"] = share.can_edit_transactions
        return flags

    def _require_owner(self, resource_id: int, user_id: int):
        resource = load_active_resource(self.policy, resource_id)
        require_capability(permissions_for(self.policy, resource, user_id), "owner")
        return resource

    def _load_owned_share(self, owner_user_id: int, share_id: int, resource_id: int | None):
        share_model = self.policy.share_model
        share = share_model.active().filter(share_model.id == share_id).first()
        if share is None:
            raise NotFoundError()
        if resource_id is not None and share.resource_id != resource_id:
            raise NotFoundError()

        self._require_owner(share.resource_id, owner_user_id)
        return share

    def view(self, share, user: User | None = None) -> ShareView:
        user = user or share.shared_with
        return ShareView(
            id=share.id,
            resource_id=share.resource_id,
            shared_with_id=user.id,
            shared_with_email=user.email,
            shared_with_name=user.display_name,
            can_edit=share.can_edit,
            can_delete=share.can_delete,
            can_edit_transactions=bool(getattr(share, "can_edit_transactions", False)),
            created_at=share.created_at,
        )

    # -- operations --------------------------------------------------------

    def create(
        self,
        owner_user_id: int,
        resource_id: int,
        shared_with_email: str,
        can_edit: bool = False,
        can_delete: bool = False,
        can_edit_transactions: bool = False,
    ):
        """
        Share a resource with another user, identified by email.

        Raises:
            NotFoundError: resource absent, deleted or invisible to the caller
            ForbiddenError: caller can see the resource but is not its owner
            UserNotFoundError: no user with that email
            ValidationError: sharing with the owner, or non-boolean flags
            ConflictError: an active share for this user already exists
        """
        resource = self._require_owner(resource_id, owner_user_id)
        flags = self._flags(can_edit, can_delete, can_edit_transactions)

        email = (shared_with_email or "").strip().lower()
        target = db.session.query(User).filter(User.email == email).first() if email else None
        if target is None:
            raise UserNotFoundError()
        if target.id == resource.user_id:
            raise ValidationError(f"Cannot share a {self.policy.label.lower()} with its owner")

        if find_active_share(self.policy, resource.id, target.id):
            raise ConflictError(f"{self.policy.label} is already shared with this user")

        share = self.policy.share_model(shared_with_id=target.id, **flags)
        setattr(share, self.policy.share_fk, resource.id)
        db.session.add(share)
        flush_or_conflict(f"{self.policy.label} is already shared with this user")
        db.session.commit()

        current_app.logger.info(
            "Shared %s %s with user %s", self.policy.name, resource.id, target.id
        )
        notification_service.notify_share(
            target.id, owner_user_id, self.policy.name, resource.id, self._snapshot_flags(share)
        )
        return share

    def update(
        self,
        owner_user_id: int,
        share_id: int,
        can_edit: bool | None = None,
        can_delete: bool | None = None,
        can_edit_transactions: bool | None = None,
        resource_id: int | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ):
        """
        Change a share's flags (owner only).

        Raises UnsupportedOperationError for read-only share types.
        """
        if not self.policy.shares_editable:
            raise UnsupportedOperationError(
                f"{self.policy.label} shares are read-only and cannot be updated"
            )

        share = self._load_owned_share(owner_user_id, share_id, resource_id)
        # None keeps the current value
        flags = self._flags(
            share.can_edit if can_edit is None else can_edit,
            share.can_delete if can_delete is None else can_delete,
            getattr(share, "can_edit_transactions", False)
            if can_edit_transactions is None else can_edit_transactions,
        )

        before = self._snapshot_flags(share)
        for key, value in flags.items():
            setattr(share, key, value)
        after = self._snapshot_flags(share)

        audit_service.record(
            owner_user_id,
            audit_service.ACTION_UPDATE,
            self.policy.share_type_name,
            share.id,
            {
                "resource_id": share.resource_id,
                "shared_with_id": share.shared_with_id,
                "before": before,
                "after": after,
            },
            ip_address=ip_address,
            user_agent=user_agent,
        )
        db.session.commit()
        return share

    def delete(
        self,
        owner_user_id: int,
        share_id: int,
        resource_id: int | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ):
        """Revoke a share: soft-delete plus one audit entry, committed together."""
        share = self._load_owned_share(owner_user_id, share_id, resource_id)

        share.soft_delete()
        audit_service.record(
            owner_user_id,
            audit_service.ACTION_DELETE,
            self.policy.share_type_name,
            share.id,
            share.to_dict(),
            ip_address=ip_address,
            user_agent=user_agent,
        )
        db.session.commit()

        current_app.logger.info(
            "Revoked %s share %s (actor=%s)", self.policy.name, share.id, owner_user_id
        )
        return share

    def list(self, resource_id: int) -> list[ShareView]:
        """
        Active shares of a resource, newest first.

        Does not check ownership; routes call require_owner() first.
        """
        share_model = self.policy.share_model
        rows = (
            db.session.query(share_model, User)
            .join(User, User.id == share_model.shared_with_id)
            .filter(
                self.policy.share_fk_column == resource_id,
                share_model.deleted_at.is_(None),
            )
            .order_by(share_model.created_at.desc(), share_model.id.desc())
            .all()
        )
        return [self.view(share, user) for share, user in rows]

    def require_owner(self, resource_id: int, user_id: int):
        """Load the resource, raising NotFound/Forbidden unless user_id owns it."""
        return self._require_owner(resource_id, user_id)


card_shares = ShareManager(RESOURCE_TYPES["cards"])
voucher_shares = ShareManager(RESOURCE_TYPES["vouchers"])
gift_card_shares = ShareManager(RESOURCE_TYPES["gift_cards"])

_MANAGERS = {
    "cards": card_shares,
    "vouchers": voucher_shares,
    "gift_cards": gift_card_shares,
}


def get_share_manager(resource_type: str) -> ShareManager:
    get_resource_type(resource_type)
    return _MANAGERS[resource_type]


def list_shared_users(owner_user_id: int, search: str | None = None) -> list[User]:
    """
    Distinct users the owner currently shares any active resource with.

    search matches email, first name or last name (case-insensitive).
    """
    user_ids = set()
    for policy in RESOURCE_TYPES.values():
        model, share_model = policy.model, policy.share_model
        rows = (
            db.session.query(share_model.shared_with_id)
            .join(model, policy.share_fk_column == model.id)
            .filter(
                model.user_id == owner_user_id,
                model.deleted_at.is_(None),
                share_model.deleted_at.is_(None),
            )
            .distinct()
            .all()
        )
        user_ids.update(row[0] for row in rows)

    if not user_ids:
        return []

    query = db.session.query(User).filter(User.id.in_(user_ids))
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(db.or_(
            User.email.ilike(pattern),
            User.first_name.ilike(pattern),
            User.last_name.ilike(pattern),
        ))
    return query.order_by(User.email).all()
