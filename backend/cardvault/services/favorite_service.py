# Overview: Service-layer operations for per-user favorites on visible cards, vouchers and gift cards.

"""
Favorites

Any user who can view a resource (owner or share recipient) may mark it
as a favorite. Favorites are personal: the owner's favorites and a
recipient's favorites on the same card are separate rows.

A favorite does not outlive access in practice: list_favorites only
returns resources the user can still view, so a revoked share or a
transfer hides the favorite without deleting it.
"""

from __future__ import annotations

from ..extensions import db
from ..models import Favorite
from ..permissions import ResourcePermissions
from ..resource_types import get_resource_type
from .authz_service import check_access, permissions_for, visible_resource_ids
from .concurrency import flush_or_conflict


def _find(resource_type: str, user_id: int, resource_id: int) -> Favorite | None:
    return (
        db.session.query(Favorite)
        .filter(
            Favorite.user_id == user_id,
            Favorite.resource_type == resource_type,
            Favorite.resource_id == resource_id,
        )
        .first()
    )


def toggle_favorite(resource_type: str, user_id: int, resource_id: int) -> bool:
    """
    Flip the favorite flag; returns True when the resource is now a favorite.

    Raises NotFoundError when the resource is not visible to user_id.
    """
    policy = get_resource_type(resource_type)
    check_access(policy.name, user_id, resource_id)

    favorite = _find(policy.name, user_id, resource_id)
    if favorite is None:
        db.session.add(Favorite(user_id=user_id, resource_type=policy.name, resource_id=resource_id))
        is_favorite = True
    elif favorite.is_deleted:
        favorite.undelete()
        is_favorite = True
    else:
        favorite.soft_delete()
        is_favorite = False

    flush_or_conflict("Favorite was changed concurrently, please retry")
    db.session.commit()
    return is_favorite


def is_favorite(resource_type: str, user_id: int, resource_id: int) -> bool:
    favorite = _find(get_resource_type(resource_type).name, user_id, resource_id)
    return favorite is not None and not favorite.is_deleted


def list_favorites(resource_type: str, user_id: int) -> list[tuple[object, ResourcePermissions]]:
    """Favorited resources the user can still view, with permissions, newest favorite first."""
    policy = get_resource_type(resource_type)
    visible = set(visible_resource_ids(policy.name, user_id))

    rows = (
        Favorite.active()
        .filter(Favorite.user_id == user_id, Favorite.resource_type == policy.name)
        .order_by(Favorite.id.desc())
        .all()
    )
    ids = [row.resource_id for row in rows if row.resource_id in visible]
    if not ids:
        return []

    by_id = {r.id: r for r in policy.model.active().filter(policy.model.id.in_(ids)).all()}
    return [
        (by_id[resource_id], permissions_for(policy, by_id[resource_id], user_id))
        for resource_id in ids
        if resource_id in by_id
    ]
