# Overview: Service-layer CRUD and ownership transfer for cards, vouchers and gift cards.

"""
Resource Service

CRUD for the three shareable resource types, driven by the resource type
registry. Every operation goes through the access checker first:

    list / get       view (owner or any active share)
    update           can_edit
    delete           can_delete (soft delete + audit)
    transfer         owner only (revokes every active share + audit)

RULES:
- A user cannot own two active cards/gift cards with the same number, or
  two active vouchers with the same code. Different users can.
- Gift card balances are never written directly: the initial balance goes
  through balance_service, which recomputes the cached balance.
- Soft-deleted resources keep their shares; they come back together on
  restore.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

from flask import current_app

from ..extensions import db
from ..errors import ConflictError, UserNotFoundError, ValidationError
from ..models import Merchant, User
from ..permissions import ResourcePermissions
from ..resource_types import CARDS, VOUCHERS, GIFT_CARDS, ResourceType, get_resource_type
from ..validation import (
    ModelValidationPolicy, validate_payload,
    enforce_rules_card, enforce_rules_voucher, enforce_rules_gift_card,
)
from . import audit_service, balance_service, notification_service
from .authz_service import load_with_capability, permissions_for, visible_resource_ids
from .concurrency import flush_or_conflict


@dataclass(frozen=True)
class ResourceRules:
    validation: ModelValidationPolicy
    unique_field: str
    enforce: Callable


_COMMON_FIELDS = {"merchant_id", "merchant_name", "barcode_type"}

RULES = {
    CARDS.name: ResourceRules(
        validation=ModelValidationPolicy(
            writable_fields=_COMMON_FIELDS | {"program", "card_number", "status", "notes"},
            required_on_create={"program", "card_number"},
        ),
        unique_field="card_number",
        enforce=lambda patch, existing=None: enforce_rules_card(patch),
    ),
    VOUCHERS.name: ResourceRules(
        validation=ModelValidationPolicy(
            writable_fields=_COMMON_FIELDS | {
                "code", "voucher_type", "value", "description", "min_purchase_amount_cents",
                "valid_from", "valid_until", "usage_limit_type",
            },
            required_on_create={"code", "voucher_type", "value", "valid_from", "valid_until"},
        ),
        unique_field="code",
        enforce=enforce_rules_voucher,
    ),
    GIFT_CARDS.name: ResourceRules(
        validation=ModelValidationPolicy(
            writable_fields=_COMMON_FIELDS | {
                "card_number", "initial_balance_cents", "currency", "pin", "expires_at",
                "status", "notes",
            },
            required_on_create={"card_number", "initial_balance_cents"},
        ),
        unique_field="card_number",
        enforce=lambda patch, existing=None: enforce_rules_gift_card(patch),
    ),
}


def _duplicate_message(policy: ResourceType, rules: ResourceRules) -> str:
    return f"{policy.label} with this {rules.unique_field.replace('_', ' ')} already exists"


def _check_merchant(patch: dict) -> None:
    merchant_id = patch.get("merchant_id")
    if merchant_id is None:
        return
    exists = Merchant.active().filter(Merchant.id == merchant_id).first()
    if not exists:
        raise ValidationError("Merchant not found")


def _check_unique(
    policy: ResourceType,
    rules: ResourceRules,
    owner_id: int,
    value,
    exclude_id: int | None = None,
) -> None:
    model = policy.model
    column = getattr(model, rules.unique_field)
    query = model.active().filter(model.user_id == owner_id, column == value)
    if exclude_id is not None:
        query = query.filter(model.id != exclude_id)
    if query.first():
        raise ConflictError(_duplicate_message(policy, rules))


def create_resource(resource_type: str, owner_user_id: int, payload: dict):
    """
    Create a resource owned by owner_user_id.

    Gift cards start with current balance == initial balance.

    Raises ValidationError for bad payloads, ConflictError for a duplicate
    number/code.
    """
    policy = get_resource_type(resource_type)
    rules = RULES[policy.name]

    patch = validate_payload(
        model=policy.model, payload=payload, policy=rules.validation, partial=False
    )
    rules.enforce(patch)
    _check_merchant(patch)
    _check_unique(policy, rules, owner_user_id, patch[rules.unique_field])

    initial_balance = patch.pop("initial_balance_cents", None)
    resource = policy.model(user_id=owner_user_id, **patch)
    if policy.supports_transactions:
        balance_service.apply_initial_balance(resource, initial_balance)

    db.session.add(resource)
    flush_or_conflict(_duplicate_message(policy, rules))
    db.session.commit()

    current_app.logger.info(
        "Created %s %s for user %s", policy.name, resource.id, owner_user_id
    )
    return resource


def list_visible(resource_type: str, user_id: int) -> list[tuple[object, ResourcePermissions]]:
    """Owned and shared resources with the caller's permissions, newest first."""
    policy = get_resource_type(resource_type)
    ids = visible_resource_ids(policy.name, user_id)
    if not ids:
        return []

    model = policy.model
    resources = (
        model.active()
        .filter(model.id.in_(ids))
        .order_by(model.created_at.desc(), model.id.desc())
        .all()
    )
    return [(resource, permissions_for(policy, resource, user_id)) for resource in resources]


def get_resource(resource_type: str, user_id: int, resource_id: int):
    """Returns (resource, permissions); NotFoundError if not visible."""
    return load_with_capability(resource_type, user_id, resource_id, "view")


def update_resource(resource_type: str, user_id: int, resource_id: int, payload: dict):
    """
    Patch a resource. Requires can_edit.

    A gift card's initial_balance_cents is applied through the balance
    guard under a row lock; current_balance_cents is not writable.
    """
    policy = get_resource_type(resource_type)
    rules = RULES[policy.name]
    resource, _ = load_with_capability(policy.name, user_id, resource_id, "edit")

    patch = validate_payload(
        model=policy.model, payload=payload, policy=rules.validation, partial=True
    )
    rules.enforce(patch, resource)
    _check_merchant(patch)
    if rules.unique_field in patch and resource.user_id is not None:
        _check_unique(policy, rules, resource.user_id, patch[rules.unique_field], exclude_id=resource.id)

    if "initial_balance_cents" in patch:
        return balance_service.set_initial_balance(
            resource.id,
            patch.pop("initial_balance_cents"),
            changes=patch,
            conflict_message=_duplicate_message(policy, rules),
        )

    for key, value in patch.items():
        setattr(resource, key, value)

    flush_or_conflict(_duplicate_message(policy, rules))
    db.session.commit()
    return resource


def delete_resource(
    resource_type: str,
    user_id: int,
    resource_id: int,
    ip_address: str | None = None,
    user_agent: str | None = None,
):
    """Soft-delete a resource (requires can_delete) and audit it."""
    policy = get_resource_type(resource_type)
    resource, _ = load_with_capability(policy.name, user_id, resource_id, "delete")

    resource.soft_delete()
    audit_service.record(
        user_id,
        audit_service.ACTION_DELETE,
        policy.name,
        resource.id,
        resource.to_dict(),
        ip_address=ip_address,
        user_agent=user_agent,
    )
    db.session.commit()

    current_app.logger.info("Deleted %s %s (actor=%s)", policy.name, resource.id, user_id)
    return resource


def transfer_ownership(
    resource_type: str,
    user_id: int,
    resource_id: int,
    new_owner_id,
    ip_address: str | None = None,
    user_agent: str | None = None,
):
    """
    Hand a resource to another user.

    RULES:
    - Only the owner may transfer
    - The new owner must exist and differ from the current owner
    - Every active share is revoked (the new owner decides who sees it)
    - The new owner must not already hold the same number/code

    One "transfer" audit entry records both owners and the revoked shares.
    The new owner gets a best-effort notification.
    """
    policy = get_resource_type(resource_type)
    rules = RULES[policy.name]
    resource, _ = load_with_capability(policy.name, user_id, resource_id, "owner")

    if isinstance(new_owner_id, bool) or not isinstance(new_owner_id, int):
        raise ValidationError("new_owner_id must be an integer")

    new_owner = db.session.get(User, new_owner_id)
    if new_owner is None:
        raise UserNotFoundError()
    if new_owner.id == resource.user_id:
        raise ValidationError(f"{policy.label} already belongs to this user")

    _check_unique(
        policy, rules, new_owner.id, getattr(resource, rules.unique_field), exclude_id=resource.id
    )

    shares = policy.share_model.active().filter(policy.share_fk_column == resource.id).all()
    for share in shares:
        share.soft_delete()

    previous_owner_id = resource.user_id
    resource.user_id = new_owner.id

    audit_service.record(
        user_id,
        audit_service.ACTION_TRANSFER,
        policy.name,
        resource.id,
        {
            "from_user_id": previous_owner_id,
            "to_user_id": new_owner.id,
            "revoked_share_ids": [share.id for share in shares],
            "resource": resource.to_dict(),
        },
        ip_address=ip_address,
        user_agent=user_agent,
    )
    flush_or_conflict(_duplicate_message(policy, rules))
    db.session.commit()

    current_app.logger.info(
        "Transferred %s %s from user %s to user %s",
        policy.name, resource.id, previous_owner_id, new_owner.id,
    )
    notification_service.notify_transfer(new_owner.id, user_id, policy.name, resource.id)
    return resource
