# Overview: Service-layer operations for in-app notifications about received shares and transfers.

"""
Notification Service

Recipients of a share or an ownership transfer get a notification. The
notifications carry no permissions: access is always decided by the
access checker against live share rows.

BEST EFFORT: notify_share / notify_transfer run after the share or
transfer has committed. A failure is logged at warning level and
never undoes or fails the operation that triggered it.

OWNERSHIP: users read, mark and delete only their own notifications.
Anyone else's notification id answers NotFoundError.
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..errors import NotFoundError
from ..models import Notification, User
from ..models.notifications import TYPE_SHARE_RECEIVED, TYPE_TRANSFER_RECEIVED


MAX_PER_PAGE = 100


def _actor_details(actor_user_id: int) -> dict:
    actor = db.session.get(User, actor_user_id)
    return {
        "from_user_id": actor_user_id,
        "from_user_name": actor.display_name if actor else "Unknown user",
    }


def _create(recipient_id: int, notification_type: str, resource_type: str, resource_id: int, details: dict):
    if not current_app.config.get("ENABLE_NOTIFICATIONS", True):
        return None
    try:
        notification = Notification(
            user_id=recipient_id,
            type=notification_type,
            resource_type=resource_type,
            resource_id=resource_id,
            details=details,
        )
        db.session.add(notification)
        db.session.commit()
        return notification
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.warning(
            "Failed to create %s notification for user %s (%s %s)",
            notification_type, recipient_id, resource_type, resource_id,
            exc_info=True,
        )
        return None


def notify_share(
    recipient_id: int,
    actor_user_id: int,
    resource_type: str,
    resource_id: int,
    permissions: dict,
) -> Notification | None:
    """Tell recipient_id that actor_user_id shared a resource with them."""
    details = _actor_details(actor_user_id)
    details["permissions"] = dict(permissions)
    return _create(recipient_id, TYPE_SHARE_RECEIVED, resource_type, resource_id, details)


def notify_transfer(
    recipient_id: int,
    actor_user_id: int,
    resource_type: str,
    resource_id: int,
) -> Notification | None:
    """Tell recipient_id they now own a resource transferred by actor_user_id."""
    return _create(
        recipient_id, TYPE_TRANSFER_RECEIVED, resource_type, resource_id, _actor_details(actor_user_id)
    )


def _own_active(user_id: int):
    return Notification.active().filter(Notification.user_id == user_id)


def list_notifications(
    user_id: int,
    *,
    unread_only: bool = False,
    page: int = 1,
    per_page: int | None = None,
) -> tuple[list[Notification], int]:
    """Newest-first notifications of user_id. Returns (items, total_count)."""
    if per_page is None:
        per_page = current_app.config.get("NOTIFICATION_PAGE_SIZE", 20)
    per_page = max(1, min(per_page, MAX_PER_PAGE))
    page = max(1, page)

    query = _own_active(user_id)
    if unread_only:
        query = query.filter(Notification.is_read.is_(False))

    total = query.count()
    items = (
        query.order_by(Notification.created_at.desc(), Notification.id.desc())
        .limit(per_page)
        .offset((page - 1) * per_page)
        .all()
    )
    return items, total


def unread_count(user_id: int) -> int:
    return _own_active(user_id).filter(Notification.is_read.is_(False)).count()


def _get_own(user_id: int, notification_id: int) -> Notification:
    notification = _own_active(user_id).filter(Notification.id == notification_id).first()
    if notification is None:
        raise NotFoundError()
    return notification


def mark_read(user_id: int, notification_id: int) -> Notification:
    """Mark one notification read. Marking it again is a no-op."""
    notification = _get_own(user_id, notification_id)
    notification.mark_read()
    db.session.commit()
    return notification


def mark_all_read(user_id: int) -> int:
    """Mark every unread notification of user_id read; returns how many changed."""
    unread = _own_active(user_id).filter(Notification.is_read.is_(False)).all()
    for notification in unread:
        notification.mark_read()
    db.session.commit()
    return len(unread)


def delete_notification(user_id: int, notification_id: int) -> Notification:
    notification = _get_own(user_id, notification_id)
    notification.soft_delete()
    db.session.commit()
    return notification

