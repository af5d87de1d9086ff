# Overview: Resource access checker; loads ownership/share rows and applies the permission model.

"""
Authorization service.

One check per resource type plus a generic check_access(). Each call
loads the resource and, for non-owners, the caller's active share, then
applies permissions.compute_permissions.

INFORMATION HIDING: a resource that does not exist, is soft-deleted, or
is neither owned by nor shared with the caller raises NotFoundError. The
caller cannot tell these cases apart. ForbiddenError is reserved for
callers who can see the resource but lack a specific capability.

Read-only and uncached: every call hits the database so a revoked or
edited share takes effect immediately.
"""

from __future__ import annotations

from ..extensions import db
from ..errors import NotFoundError, ForbiddenError
from ..permissions import ResourcePermissions, compute_permissions
from ..resource_types import ResourceType, CARDS, VOUCHERS, GIFT_CARDS, get_resource_type


CAPABILITIES = {"view", "edit", "delete", "edit_transactions", "owner"}


def load_active_resource(policy: ResourceType, resource_id: int):
    """Fetch a non-deleted resource or raise NotFoundError."""
    resource = policy.model.active().filter(policy.model.id == resource_id).first()
    if resource is None:
        raise NotFoundError()
    return resource


def find_active_share(policy: ResourceType, resource_id: int, user_id: int):
    return (
        policy.share_model.active()
        .filter(
            policy.share_fk_column == resource_id,
            policy.share_model.shared_with_id == user_id,
        )
        .first()
    )


def permissions_for(policy: ResourceType, resource, user_id: int) -> ResourcePermissions:
    """Compute permissions for an already-loaded resource."""
    share = None
    if resource.user_id != user_id:
        share = find_active_share(policy, resource.id, user_id)

    perms = compute_permissions(resource.user_id, user_id, share, policy)
    if perms is None:
        raise NotFoundError()
    return perms


def check_access(resource_type: str, user_id: int, resource_id: int) -> ResourcePermissions:
    """
    Return the caller's permissions on a resource.

    Raises:
        UnsupportedResourceTypeError: unknown resource_type
        NotFoundError: missing, soft-deleted, or not visible to user_id
    """
    policy = get_resource_type(resource_type)
    resource = load_active_resource(policy, resource_id)
    return permissions_for(policy, resource, user_id)


def check_card_access(user_id: int, card_id: int) -> ResourcePermissions:
    return check_access(CARDS.name, user_id, card_id)


def check_voucher_access(user_id: int, voucher_id: int) -> ResourcePermissions:
    return check_access(VOUCHERS.name, user_id, voucher_id)


def check_gift_card_access(user_id: int, gift_card_id: int) -> ResourcePermissions:
    return check_access(GIFT_CARDS.name, user_id, gift_card_id)


def require_capability(perms: ResourcePermissions, capability: str) -> None:
    """
    Raise ForbiddenError unless perms grants capability.

    capability: one of view, edit, delete, edit_transactions, owner
    """
    if capability not in CAPABILITIES:
        raise ValueError(f"Unknown capability '{capability}'")

    granted = {
        "view": perms.can_view,
        "edit": perms.can_edit,
        "delete": perms.can_delete,
        "edit_transactions": perms.can_edit_transactions,
        "owner": perms.is_owner,
    }[capability]

    if not granted:
        raise ForbiddenError()


def load_with_capability(resource_type: str, user_id: int, resource_id: int, capability: str):
    """
    Load a resource and require a capability on it in one step.

    Returns (resource, permissions). NotFoundError when invisible,
    ForbiddenError when visible but lacking the capability.
    """
    policy = get_resource_type(resource_type)
    resource = load_active_resource(policy, resource_id)
    perms = permissions_for(policy, resource, user_id)
    require_capability(perms, capability)
    return resource, perms


def visible_resource_ids(resource_type: str, user_id: int) -> list[int]:
    """IDs of active resources the user owns or has an active share on."""
    policy = get_resource_type(resource_type)
    model = policy.model

    owned = db.session.query(model.id).filter(
        model.user_id == user_id,
        model.deleted_at.is_(None),
    )
    shared = (
        db.session.query(model.id)
        .join(policy.share_model, policy.share_fk_column == model.id)
        .filter(
            policy.share_model.shared_with_id == user_id,
            policy.share_model.deleted_at.is_(None),
            model.deleted_at.is_(None),
        )
    )
    return sorted({row[0] for row in owned.union(shared).all()})
