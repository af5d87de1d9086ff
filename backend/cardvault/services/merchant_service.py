# Overview: Service-layer operations for merchants; shared catalogue behind the elevated gate.

"""
Merchant Service

Merchants are a shared catalogue: every authenticated user can list them,
only elevated sessions (admins, or impersonation sessions) may create,
update or delete. The gate is applied by the routes; these functions
assume it already passed.

Names are unique among active merchants. Deletion is soft and audited.
"""

from __future__ import annotations

from ..extensions import db
from ..errors import ConflictError, NotFoundError
from ..models import Merchant
from ..validation import ModelValidationPolicy, validate_payload
from . import audit_service
from .concurrency import flush_or_conflict


MERCHANT_POLICY = ModelValidationPolicy(
    writable_fields={"name", "color", "website"},
    required_on_create={"name"},
)


def _get_active(merchant_id: int) -> Merchant:
    merchant = Merchant.active().filter(Merchant.id == merchant_id).first()
    if merchant is None:
        raise NotFoundError()
    return merchant


def _check_name(name: str, exclude_id: int | None = None) -> None:
    query = Merchant.active().filter(db.func.lower(Merchant.name) == name.lower())
    if exclude_id is not None:
        query = query.filter(Merchant.id != exclude_id)
    if query.first():
        raise ConflictError("Merchant with this name already exists")


def list_merchants(search: str | None = None) -> list[Merchant]:
    query = Merchant.active()
    if search:
        query = query.filter(Merchant.name.ilike(f"%{search.strip()}%"))
    return query.order_by(Merchant.name).all()


def create_merchant(payload: dict) -> Merchant:
    patch = validate_payload(model=Merchant, payload=payload, policy=MERCHANT_POLICY, partial=False)
    _check_name(patch["name"])

    merchant = Merchant(**patch)
    db.session.add(merchant)
    flush_or_conflict("Merchant with this name already exists")
    db.session.commit()
    return merchant


def update_merchant(merchant_id: int, payload: dict) -> Merchant:
    merchant = _get_active(merchant_id)
    patch = validate_payload(model=Merchant, payload=payload, policy=MERCHANT_POLICY, partial=True)
    if "name" in patch:
        _check_name(patch["name"], exclude_id=merchant.id)

    for key, value in patch.items():
        setattr(merchant, key, value)

    flush_or_conflict("Merchant with this name already exists")
    db.session.commit()
    return merchant


def delete_merchant(
    merchant_id: int,
    actor_user_id: int,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> Merchant:
    """Soft-delete a merchant; resources referencing it keep the reference."""
    merchant = _get_active(merchant_id)

    merchant.soft_delete()
    audit_service.record(
        actor_user_id,
        audit_service.ACTION_DELETE,
        "merchants",
        merchant.id,
        merchant.to_dict(),
        ip_address=ip_address,
        user_agent=user_agent,
    )
    db.session.commit()
    return merchant
