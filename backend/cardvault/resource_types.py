# Overview: Capability policy table for the three shareable resource types.

"""
Resource type registry.

Cards, vouchers and gift cards share almost all of their sharing and
access logic. The differences are captured here as data and read by the
permission model, the access checker and the share manager:

    type        shares editable   transactions capability
    cards       yes               no
    vouchers    no (read-only)    no
    gift_cards  yes               yes
"""

from __future__ import annotations

from dataclasses import dataclass

from .errors import UnsupportedResourceTypeError
from .models import (
    Card, CardShare, Voucher, VoucherShare, GiftCard, GiftCardShare,
    GiftCardTransaction, Merchant,
)


@dataclass(frozen=True)
class ResourceType:
    name: str                    # table-style name used in audit entries and restore
    label: str                   # human-readable, for messages
    model: type
    share_model: type
    share_fk: str                # column on share_model pointing at model.id
    shares_editable: bool        # False: shares are view-only and cannot be updated
    supports_transactions: bool  # True: can_edit_transactions is meaningful

    @property
    def share_type_name(self) -> str:
        return self.share_model.__tablename__

    @property
    def share_fk_column(self):
        return getattr(self.share_model, self.share_fk)


CARDS = ResourceType(
    name="cards",
    label="Card",
    model=Card,
    share_model=CardShare,
    share_fk="card_id",
    shares_editable=True,
    supports_transactions=False,
)

VOUCHERS = ResourceType(
    name="vouchers",
    label="Voucher",
    model=Voucher,
    share_model=VoucherShare,
    share_fk="voucher_id",
    shares_editable=False,
    supports_transactions=False,
)

GIFT_CARDS = ResourceType(
    name="gift_cards",
    label="Gift Card",
    model=GiftCard,
    share_model=GiftCardShare,
    share_fk="gift_card_id",
    shares_editable=True,
    supports_transactions=True,
)

RESOURCE_TYPES = {rt.name: rt for rt in (CARDS, VOUCHERS, GIFT_CARDS)}

# share model -> the policy of the resource it grants access to
SHARE_POLICIES = {rt.share_model: rt for rt in RESOURCE_TYPES.values()}

# Everything the admin restore flow can bring back
RESTORABLE_MODELS = {
    "cards": Card,
    "vouchers": Voucher,
    "gift_cards": GiftCard,
    "card_shares": CardShare,
    "voucher_shares": VoucherShare,
    "gift_card_shares": GiftCardShare,
    "gift_card_transactions": GiftCardTransaction,
    "merchants": Merchant,
}

# Everything that may appear as AuditLog.resource_type
AUDITABLE_TYPES = set(RESTORABLE_MODELS) | {"users"}


def get_resource_type(name: str) -> ResourceType:
    rt = RESOURCE_TYPES.get(name)
    if rt is None:
        raise UnsupportedResourceTypeError(f"Unsupported resource type: {name}")
    return rt
