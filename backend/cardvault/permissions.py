# Overview: Pure permission model; computes per-request capabilities on one resource.

"""
Permission model.

Pure logic, no database access: given who owns a resource, the caller's
active share (if any) and the resource type's policy, compute what the
caller may do. Results are never cached; share edits take effect on the
next request.

RULES:
1. Owner: everything, is_owner=True.
2. Active share: view, plus the share's flags. Read-only share policies
   (vouchers) drop edit/delete; can_edit_transactions only exists where
   the type supports transactions (gift cards).
3. Otherwise: no access (None). Callers report this as "not found".

Admin role and impersonation never widen these capabilities. They only
open the elevated gate (merchant CRUD) and admin routes.
"""

from __future__ import annotations

from dataclasses import dataclass, asdict

from .resource_types import ResourceType


@dataclass(frozen=True)
class ResourcePermissions:
    can_view: bool = False
    can_edit: bool = False
    can_delete: bool = False
    can_edit_transactions: bool = False
    is_owner: bool = False

    def to_dict(self) -> dict:
        return asdict(self)


def owner_permissions(policy: ResourceType) -> ResourcePermissions:
    return ResourcePermissions(
        can_view=True,
        can_edit=True,
        can_delete=True,
        can_edit_transactions=policy.supports_transactions,
        is_owner=True,
    )


def compute_permissions(
    owner_id: int | None,
    user_id: int,
    share,
    policy: ResourceType,
) -> ResourcePermissions | None:
    """
    Compute the caller's capabilities on one resource.

    owner_id: the resource's user_id (None for orphaned resources)
    share: the caller's share row for this resource, or None. Soft-deleted
        shares are treated as absent.
    policy: the resource type's capability policy

    Returns None when the caller has no access at all.
    """
    if owner_id is not None and owner_id == user_id:
        return owner_permissions(policy)

    if share is None or share.deleted_at is not None:
        return None

    if not policy.shares_editable:
        return ResourcePermissions(can_view=True)

    can_edit_transactions = False
    if policy.supports_transactions:
        can_edit_transactions = bool(getattr(share, "can_edit_transactions", False))

    return ResourcePermissions(
        can_view=True,
        can_edit=bool(share.can_edit),
        can_delete=bool(share.can_delete),
        can_edit_transactions=can_edit_transactions,
        is_owner=False,
    )


def allow_elevated(user, session) -> bool:
    """
    Admin/impersonation gate.

    True for admins, and for any session that is impersonating another
    account. Used for merchant CRUD only; it is not a resource access
    bypass.
    """
    if user is not None and user.is_admin:
        return True
    return session is not None and session.original_user_id is not None
