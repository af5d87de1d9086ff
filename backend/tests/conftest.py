"""
Pytest fixtures for cardvault backend tests.

Provides test database setup, users (owner, friend, stranger, admin),
one resource of each shareable type, and the test client.
"""

from datetime import datetime
from decimal import Decimal

import pytest

from cardvault import create_app
from cardvault.extensions import db
from cardvault.models import Card, Voucher, GiftCard, CardShare, VoucherShare, GiftCardShare, User
from cardvault.services.auth_service import hash_password
from cardvault.services.session_service import create_session


PASSWORD = "Password123!"

_password_hash = None


def password_hash() -> str:
    """bcrypt is slow on purpose; hash the shared test password once."""
    global _password_hash
    if _password_hash is None:
        _password_hash = hash_password(PASSWORD)
    return _password_hash


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'ADMIN_EMAILS': [],
        'ENABLE_CARDS': True,
        'ENABLE_VOUCHERS': True,
        'ENABLE_GIFT_CARDS': True,
        'ENABLE_LOCAL_LOGIN': True,
        'ENABLE_REGISTRATION': True,
        'ENABLE_NOTIFICATIONS': True,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


def make_user(db_session, email: str, role: str = "user", auth_provider: str = "local") -> User:
    user = User(
        email=email,
        password_hash=password_hash() if auth_provider == "local" else None,
        first_name=email.split("@")[0].capitalize(),
        last_name="Tester",
        role=role,
        auth_provider=auth_provider,
    )
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def owner(db_session):
    """Owns every resource fixture below."""
    return make_user(db_session, "owner@example.com")


@pytest.fixture(scope='function')
def friend(db_session):
    """Receives shares in the tests."""
    return make_user(db_session, "friend@example.com")


@pytest.fixture(scope='function')
def stranger(db_session):
    """Neither owns nor has any share on anything."""
    return make_user(db_session, "stranger@example.com")


@pytest.fixture(scope='function')
def admin(db_session):
    return make_user(db_session, "admin@example.com", role="admin")


@pytest.fixture(scope='function')
def card(db_session, owner):
    card = Card(user_id=owner.id, program="Migros Cumulus", card_number="2501234567890")
    db_session.add(card)
    db_session.commit()
    return card


@pytest.fixture(scope='function')
def voucher(db_session, owner):
    voucher = Voucher(
        user_id=owner.id,
        code="SPRING-10",
        voucher_type="fixed_amount",
        value=Decimal("10.00"),
        valid_from=datetime(2024, 1, 1),
        valid_until=datetime(2030, 12, 31),
    )
    db_session.add(voucher)
    db_session.commit()
    return voucher


@pytest.fixture(scope='function')
def gift_card(db_session, owner):
    """Gift card with 50.00 and no transactions."""
    gift_card = GiftCard(
        user_id=owner.id,
        card_number="GC-0001",
        initial_balance_cents=5000,
        current_balance_cents=5000,
    )
    db_session.add(gift_card)
    db_session.commit()
    return gift_card


def share_card(db_session, card, user, can_edit=False, can_delete=False) -> CardShare:
    share = CardShare(card_id=card.id, shared_with_id=user.id, can_edit=can_edit, can_delete=can_delete)
    db_session.add(share)
    db_session.commit()
    return share


def share_voucher(db_session, voucher, user) -> VoucherShare:
    share = VoucherShare(voucher_id=voucher.id, shared_with_id=user.id)
    db_session.add(share)
    db_session.commit()
    return share


def share_gift_card(
    db_session, gift_card, user, can_edit=False, can_delete=False, can_edit_transactions=False
) -> GiftCardShare:
    share = GiftCardShare(
        gift_card_id=gift_card.id,
        shared_with_id=user.id,
        can_edit=can_edit,
        can_delete=can_delete,
        can_edit_transactions=can_edit_transactions,
    )
    db_session.add(share)
    db_session.commit()
    return share


def login_token(user: User, original_user: User | None = None) -> str:
    """Open a session directly, skipping the password check."""
    _, token = create_session(
        user.id,
        user_agent="pytest",
        ip_address="127.0.0.1",
        original_user_id=original_user.id if original_user else None,
    )
    return token


def get_auth_token(client, email: str, password: str = PASSWORD) -> str:
    """Helper to get auth token for a user through the login route."""
    response = client.post('/api/auth/login', json={
        'email': email,
        'password': password
    })
    if response.status_code == 200:
        return response.json.get('token')
    return None


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}
