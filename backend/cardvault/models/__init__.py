from .users import User
from .sessions import SessionToken
from .merchants import Merchant
from .cards import Card, CardShare
from .vouchers import Voucher, VoucherShare
from .gift_cards import GiftCard, GiftCardTransaction, GiftCardShare
from .audit import AuditLog
from .notifications import Notification
from .favorites import Favorite

__all__ = [
    'User', 'SessionToken', 'Merchant',
    'Card', 'CardShare',
    'Voucher', 'VoucherShare',
    'GiftCard', 'GiftCardTransaction', 'GiftCardShare',
    'AuditLog', 'Notification', 'Favorite',
]
