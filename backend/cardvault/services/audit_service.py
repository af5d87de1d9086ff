# Overview: Service-layer operations for the audit trail and admin restore.

"""
Audit Recorder

WHY: Privileged mutations (soft-deletes, share revocations, role changes,
ownership transfers, restores) must be attributable after the fact.

ATOMICITY: record() only adds the entry to the current unit of work. The
caller commits the mutation and its audit entry together, so a crash
between the two can neither lose the trail nor leave an unaudited
mutation. If the audit insert fails the whole operation rolls back.

IMMUTABLE: there is no update or delete path for AuditLog rows.
"""

from __future__ import annotations

from flask import current_app, has_request_context, request

from ..extensions import db
from ..errors import (
    ConflictError, NotDeletedError, NotFoundError, UnsupportedResourceTypeError, ValidationError,
)
from ..models import AuditLog, GiftCardTransaction
from ..resource_types import AUDITABLE_TYPES, RESTORABLE_MODELS, SHARE_POLICIES
from ..time_utils import end_of_day, parse_iso_datetime, utcnow
from .concurrency import flush_or_conflict


ACTION_CREATE = "create"
ACTION_UPDATE = "update"
ACTION_DELETE = "delete"
ACTION_RESTORE = "restore"
ACTION_ROLE_CHANGE = "role_change"
ACTION_TRANSFER = "transfer"

VALID_ACTIONS = {
    ACTION_CREATE,
    ACTION_UPDATE,
    ACTION_DELETE,
    ACTION_RESTORE,
    ACTION_ROLE_CHANGE,
    ACTION_TRANSFER,
}

MAX_PER_PAGE = 200


def request_provenance() -> tuple[str | None, str | None]:
    """(ip_address, user_agent) of the current request, or (None, None) outside one."""
    if not has_request_context():
        return None, None
    return request.remote_addr, request.headers.get("User-Agent")


def record(
    actor_user_id: int | None,
    action: str,
    resource_type: str,
    resource_id: int,
    snapshot: dict,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> AuditLog:
    """
    Append an audit entry to the current transaction.

    Does not commit. Raises UnsupportedResourceTypeError for unknown
    resource types and ValidationError for unknown actions or an empty
    snapshot.
    """
    if resource_type not in AUDITABLE_TYPES:
        raise UnsupportedResourceTypeError(f"Unsupported resource type: {resource_type}")
    if action not in VALID_ACTIONS:
        raise ValidationError(f"Invalid audit action '{action}'")
    if not snapshot:
        raise ValidationError("Audit snapshot must not be empty")

    entry = AuditLog(
        user_id=actor_user_id,
        action=action,
        resource_type=resource_type,
        resource_id=resource_id,
        resource_data=snapshot,
        ip_address=ip_address,
        user_agent=(user_agent or "")[:512] or None,
        created_at=utcnow(),
    )
    db.session.add(entry)
    return entry


def list_audit_logs(
    *,
    user_id: int | None = None,
    resource_type: str | None = None,
    resource_id: int | None = None,
    action: str | None = None,
    date_from: str | None = None,
    date_to: str | None = None,
    search: str | None = None,
    page: int = 1,
    per_page: int | None = None,
) -> tuple[list[AuditLog], int]:
    """
    Newest-first audit entries with filters and pagination.

    date_from / date_to are ISO dates; date_to is inclusive of the whole day.
    search matches against the JSON snapshot text.

    Returns (entries, total_count).
    """
    if per_page is None:
        per_page = current_app.config.get("AUDIT_LOG_PAGE_SIZE", 50)
    per_page = max(1, min(per_page, MAX_PER_PAGE))
    page = max(1, page)

    query = db.session.query(AuditLog)

    if user_id is not None:
        query = query.filter(AuditLog.user_id == user_id)
    if resource_type:
        query = query.filter(AuditLog.resource_type == resource_type)
    if resource_id is not None:
        query = query.filter(AuditLog.resource_id == resource_id)
    if action:
        query = query.filter(AuditLog.action == action)

    try:
        start = parse_iso_datetime(date_from)
        end = parse_iso_datetime(date_to)
    except ValueError:
        raise ValidationError("date_from and date_to must be ISO-8601 dates")
    if start:
        query = query.filter(AuditLog.created_at >= start)
    if end:
        query = query.filter(AuditLog.created_at <= end_of_day(end))

    if search:
        query = query.filter(db.cast(AuditLog.resource_data, db.Text).ilike(f"%{search}%"))

    total = query.count()
    entries = (
        query.order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
        .limit(per_page)
        .offset((page - 1) * per_page)
        .all()
    )
    return entries, total


def _ensure_share_recipient_is_not_owner(policy, share) -> None:
    # Ownership may have moved to the recipient (transfer) since the revoke
    resource = db.session.get(policy.model, share.resource_id)
    if resource is not None and resource.user_id == share.shared_with_id:
        raise ConflictError(
            f"Cannot restore a share: the recipient now owns this {policy.label.lower()}"
        )


def restore_resource(
    resource_type: str,
    resource_id: int,
    *,
    actor_user_id: int | None,
    ip_address: str | None = None,
    user_agent: str | None = None,
):
    """
    Bring back a soft-deleted resource and record one "restore" entry.

    Raises:
        UnsupportedResourceTypeError: resource_type is not restorable
        NotFoundError: no row with that id (deleted or not)
        NotDeletedError: the row is live
        ConflictError: restoring would duplicate an active share pair or
            an owner's card number / voucher code, or bring back a share
            with the resource's current owner
        InsufficientBalanceError: restoring a transaction would overdraw
            its gift card
    """
    model = RESTORABLE_MODELS.get(resource_type)
    if model is None:
        raise UnsupportedResourceTypeError(f"Unsupported resource type: {resource_type}")

    resource = db.session.query(model).filter(model.id == resource_id).first()
    if resource is None:
        raise NotFoundError()
    if not resource.is_deleted:
        raise NotDeletedError()

    if model is GiftCardTransaction:
        # Deferred import: balance_service records audit entries itself
        from . import balance_service
        balance_service.restore_transaction(resource)
    else:
        if model in SHARE_POLICIES:
            _ensure_share_recipient_is_not_owner(SHARE_POLICIES[model], resource)
        resource.undelete()
    flush_or_conflict("Restoring would duplicate an active record")

    record(
        actor_user_id,
        ACTION_RESTORE,
        resource_type,
        resource.id,
        resource.to_dict(),
        ip_address=ip_address,
        user_agent=user_agent,
    )

    db.session.commit()

    current_app.logger.info(
        "Restored %s %s (actor=%s)", resource_type, resource_id, actor_user_id
    )
    return resource
