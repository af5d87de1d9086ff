"""
HTTP-level tests.

Verifies:
- Unauthenticated requests return 401
- Invisible resources answer 404, visible-but-not-allowed 403
- Voucher share updates answer 405
- Overdrawing a gift card answers 422 with balance details
- Merchant writes pass only for admins and impersonating sessions
- Admin routes refuse impersonation sessions
- Disabled features answer 404
- Notifications and favorites are per caller
"""

import pytest

from cardvault.models import AuditLog, Card

from conftest import PASSWORD, auth_headers, get_auth_token, login_token, share_card, share_voucher


@pytest.fixture
def owner_headers(owner):
    return auth_headers(login_token(owner))


@pytest.fixture
def friend_headers(friend):
    return auth_headers(login_token(friend))


@pytest.fixture
def stranger_headers(stranger):
    return auth_headers(login_token(stranger))


@pytest.fixture
def admin_headers(admin):
    return auth_headers(login_token(admin))


@pytest.fixture
def impersonation_headers(admin, friend):
    """Admin acting as friend."""
    return auth_headers(login_token(friend, original_user=admin))


# =============================================================================
# UNAUTHENTICATED ACCESS - 401
# =============================================================================


class TestUnauthenticatedAccess:
    """All protected endpoints return 401 without a token."""

    @pytest.mark.parametrize(
        "method,path",
        [
            ("GET", "/api/auth/me"),
            ("POST", "/api/auth/logout"),
            ("GET", "/api/cards"),
            ("POST", "/api/cards"),
            ("GET", "/api/vouchers/1"),
            ("GET", "/api/gift-cards"),
            ("GET", "/api/gift-cards/1/transactions"),
            ("GET", "/api/cards/1/shares"),
            ("GET", "/api/shared-users"),
            ("GET", "/api/merchants"),
            ("POST", "/api/merchants"),
            ("GET", "/api/admin/users"),
            ("GET", "/api/admin/audit-logs"),
            ("POST", "/api/admin/restore"),
            ("POST", "/api/admin/impersonate/stop"),
            ("GET", "/api/notifications"),
            ("POST", "/api/notifications/read-all"),
            ("GET", "/api/cards/favorites"),
            ("POST", "/api/cards/1/favorite"),
        ],
    )
    def test_requires_auth(self, client, db_session, method, path):
        resp = getattr(client, method.lower())(path)
        assert resp.status_code == 401, f"{method} {path} returned {resp.status_code}"

    def test_garbage_token(self, client, db_session):
        resp = client.get("/api/cards", headers=auth_headers("not-a-token"))
        assert resp.status_code == 401


# =============================================================================
# AUTH
# =============================================================================


class TestAuthRoutes:

    def test_register_login_me_logout(self, client, db_session):
        resp = client.post("/api/auth/register", json={
            "email": "New@Example.com", "password": PASSWORD, "first_name": "New",
        })
        assert resp.status_code == 201
        assert resp.json["user"]["email"] == "new@example.com"
        assert resp.json["user"]["role"] == "user"

        token = get_auth_token(client, "new@example.com")
        assert token

        me = client.get("/api/auth/me", headers=auth_headers(token))
        assert me.status_code == 200
        assert me.json["is_impersonating"] is False
        assert me.json["is_elevated"] is False

        assert client.post("/api/auth/logout", headers=auth_headers(token)).status_code == 200
        assert client.get("/api/auth/me", headers=auth_headers(token)).status_code == 401

    def test_duplicate_registration(self, client, owner):
        resp = client.post("/api/auth/register", json={"email": owner.email, "password": PASSWORD})
        assert resp.status_code == 409

    def test_weak_password(self, client, db_session):
        resp = client.post("/api/auth/register", json={"email": "weak@example.com", "password": "short"})
        assert resp.status_code == 400

    def test_wrong_password(self, client, owner):
        resp = client.post("/api/auth/login", json={"email": owner.email, "password": "Wrong123!"})
        assert resp.status_code == 401
        assert resp.json["error"] == "Invalid credentials"

    def test_registration_disabled(self, app, client, db_session, monkeypatch):
        monkeypatch.setitem(app.config, "ENABLE_REGISTRATION", False)
        resp = client.post("/api/auth/register", json={"email": "x@example.com", "password": PASSWORD})
        assert resp.status_code == 403

    def test_local_login_disabled(self, app, client, owner, monkeypatch):
        monkeypatch.setitem(app.config, "ENABLE_LOCAL_LOGIN", False)
        resp = client.post("/api/auth/login", json={"email": owner.email, "password": PASSWORD})
        assert resp.status_code == 403


# =============================================================================
# RESOURCES - 404 vs 403
# =============================================================================


class TestResourceRoutes:

    def test_create_and_list(self, client, owner_headers):
        resp = client.post("/api/cards", json={"program": "Cumulus", "card_number": "42"}, headers=owner_headers)
        assert resp.status_code == 201
        assert resp.json["permissions"]["is_owner"] is True

        listing = client.get("/api/cards", headers=owner_headers)
        assert listing.json["count"] == 1

    def test_validation_error(self, client, owner_headers):
        resp = client.post("/api/cards", json={"program": "Cumulus"}, headers=owner_headers)
        assert resp.status_code == 400

    def test_stranger_sees_404(self, client, card, stranger_headers):
        resp = client.get(f"/api/cards/{card.id}", headers=stranger_headers)
        assert resp.status_code == 404
        assert resp.json == {"error": "Not found"}

    def test_missing_and_hidden_look_the_same(self, client, card, stranger_headers):
        hidden = client.get(f"/api/cards/{card.id}", headers=stranger_headers)
        missing = client.get("/api/cards/999999", headers=stranger_headers)
        assert hidden.status_code == missing.status_code == 404
        assert hidden.json == missing.json

    def test_viewer_gets_403_on_edit(self, client, db_session, card, friend, friend_headers):
        share_card(db_session, card, friend)
        assert client.get(f"/api/cards/{card.id}", headers=friend_headers).status_code == 200
        resp = client.patch(f"/api/cards/{card.id}", json={"notes": "x"}, headers=friend_headers)
        assert resp.status_code == 403

    def test_delete_is_audited(self, client, db_session, card, owner_headers):
        resp = client.delete(f"/api/cards/{card.id}", headers=owner_headers,
                             environ_base={"REMOTE_ADDR": "203.0.113.7"})
        assert resp.status_code == 200
        entry = db_session.query(AuditLog).one()
        assert entry.ip_address == "203.0.113.7"
        assert client.get(f"/api/cards/{card.id}", headers=owner_headers).status_code == 404

    def test_transfer(self, client, db_session, card, stranger, owner_headers, stranger_headers):
        resp = client.post(f"/api/cards/{card.id}/transfer", json={"new_owner_id": stranger.id},
                           headers=owner_headers)
        assert resp.status_code == 200
        assert client.get(f"/api/cards/{card.id}", headers=stranger_headers).json["permissions"]["is_owner"]

    def test_admin_gets_404_on_user_resources(self, client, card, admin_headers):
        assert client.get(f"/api/cards/{card.id}", headers=admin_headers).status_code == 404

    def test_feature_flag_off(self, app, client, voucher, owner_headers, monkeypatch):
        monkeypatch.setitem(app.config, "ENABLE_VOUCHERS", False)
        assert client.get("/api/vouchers", headers=owner_headers).status_code == 404
        assert client.get(f"/api/vouchers/{voucher.id}/shares", headers=owner_headers).status_code == 404


# =============================================================================
# SHARES
# =============================================================================


class TestShareRoutes:

    def test_owner_manages_shares(self, client, card, friend, owner_headers, friend_headers):
        resp = client.post(f"/api/cards/{card.id}/shares", json={"email": friend.email, "can_edit": True},
                           headers=owner_headers)
        assert resp.status_code == 201
        share_id = resp.json["id"]

        listing = client.get(f"/api/cards/{card.id}/shares", headers=owner_headers)
        assert [s["id"] for s in listing.json["items"]] == [share_id]

        resp = client.patch(f"/api/cards/{card.id}/shares/{share_id}", json={"can_delete": True},
                            headers=owner_headers)
        assert resp.status_code == 200
        assert resp.json["can_edit"] is True and resp.json["can_delete"] is True

        assert client.delete(f"/api/cards/{card.id}/shares/{share_id}", headers=owner_headers).status_code == 200
        assert client.get(f"/api/cards/{card.id}", headers=friend_headers).status_code == 404

    def test_recipient_cannot_list_shares(self, client, db_session, card, friend, friend_headers):
        share_card(db_session, card, friend)
        assert client.get(f"/api/cards/{card.id}/shares", headers=friend_headers).status_code == 403

    def test_unknown_email(self, client, card, owner_headers):
        resp = client.post(f"/api/cards/{card.id}/shares", json={"email": "ghost@example.com"},
                           headers=owner_headers)
        assert resp.status_code == 400
        assert resp.json["error"] == "User not found"

    def test_duplicate_share(self, client, db_session, card, friend, owner_headers):
        share_card(db_session, card, friend)
        resp = client.post(f"/api/cards/{card.id}/shares", json={"email": friend.email}, headers=owner_headers)
        assert resp.status_code == 409

    def test_voucher_share_patch_is_405(self, client, db_session, voucher, friend, owner_headers):
        share = share_voucher(db_session, voucher, friend)
        resp = client.patch(f"/api/vouchers/{voucher.id}/shares/{share.id}", json={"can_edit": True},
                            headers=owner_headers)
        assert resp.status_code == 405

    def test_shared_users(self, client, db_session, card, friend, owner_headers):
        share_card(db_session, card, friend)
        resp = client.get("/api/shared-users", headers=owner_headers)
        assert resp.json["items"] == [friend.to_public_dict()]


# =============================================================================
# NOTIFICATIONS & FAVORITES
# =============================================================================


class TestNotificationRoutes:

    def test_share_shows_up_in_recipients_inbox(self, client, card, friend, owner_headers, friend_headers):
        resp = client.post(f"/api/cards/{card.id}/shares", json={"email": friend.email}, headers=owner_headers)
        assert resp.status_code == 201

        inbox = client.get("/api/notifications", headers=friend_headers)
        assert inbox.status_code == 200
        assert inbox.json["count"] == 1
        assert inbox.json["unread_count"] == 1
        notification_id = inbox.json["items"][0]["id"]
        assert inbox.json["items"][0]["resource_id"] == card.id

        assert client.get("/api/notifications", headers=owner_headers).json["count"] == 0
        assert client.post(f"/api/notifications/{notification_id}/read",
                           headers=owner_headers).status_code == 404

        read = client.post(f"/api/notifications/{notification_id}/read", headers=friend_headers)
        assert read.status_code == 200
        assert read.json["unread_count"] == 0
        assert client.get("/api/notifications/count", headers=friend_headers).json == {"count": 0}

    def test_read_all_and_dismiss(self, client, card, friend, owner_headers, friend_headers):
        client.post(f"/api/cards/{card.id}/shares", json={"email": friend.email}, headers=owner_headers)
        notification_id = client.get("/api/notifications", headers=friend_headers).json["items"][0]["id"]

        assert client.post("/api/notifications/read-all", headers=friend_headers).json["marked"] == 1
        assert client.delete(f"/api/notifications/{notification_id}", headers=friend_headers).status_code == 200
        assert client.get("/api/notifications", headers=friend_headers).json["count"] == 0

    def test_disabled(self, app, client, owner_headers, monkeypatch):
        monkeypatch.setitem(app.config, "ENABLE_NOTIFICATIONS", False)
        assert client.get("/api/notifications", headers=owner_headers).status_code == 404


class TestFavoriteRoutes:

    def test_toggle_and_list(self, client, card, owner_headers):
        resp = client.post(f"/api/cards/{card.id}/favorite", headers=owner_headers)
        assert resp.status_code == 200
        assert resp.json == {"id": card.id, "is_favorite": True}

        listing = client.get("/api/cards/favorites", headers=owner_headers)
        assert listing.json["count"] == 1
        assert listing.json["items"][0]["permissions"]["is_owner"] is True

        assert client.post(f"/api/cards/{card.id}/favorite", headers=owner_headers).json["is_favorite"] is False
        assert client.get("/api/cards/favorites", headers=owner_headers).json["count"] == 0

    def test_stranger_gets_404(self, client, card, stranger_headers):
        assert client.post(f"/api/cards/{card.id}/favorite", headers=stranger_headers).status_code == 404


# =============================================================================
# GIFT CARD TRANSACTIONS
# =============================================================================


class TestTransactionRoutes:

    def test_debit_and_overdraw(self, client, gift_card, owner_headers):
        url = f"/api/gift-cards/{gift_card.id}/transactions"
        resp = client.post(url, json={"amount_cents": 3000, "description": "Groceries"}, headers=owner_headers)
        assert resp.status_code == 201
        assert resp.json["current_balance_cents"] == 2000

        resp = client.post(url, json={"amount_cents": 2500}, headers=owner_headers)
        assert resp.status_code == 422
        assert resp.json["current_balance_cents"] == 2000
        assert resp.json["attempted_cents"] == 2500
        assert resp.json["would_be_cents"] == -500

        listing = client.get(url, headers=owner_headers)
        assert listing.json["count"] == 1
        assert listing.json["current_balance_cents"] == 2000

    def test_update_and_delete(self, client, gift_card, owner_headers):
        url = f"/api/gift-cards/{gift_card.id}/transactions"
        tx_id = client.post(url, json={"amount_cents": 1000}, headers=owner_headers).json["transaction"]["id"]

        resp = client.patch(f"{url}/{tx_id}", json={"amount_cents": 1500}, headers=owner_headers)
        assert resp.status_code == 200
        assert resp.json["current_balance_cents"] == 3500

        resp = client.delete(f"{url}/{tx_id}", headers=owner_headers)
        assert resp.status_code == 200
        assert resp.json["current_balance_cents"] == 5000

    def test_share_without_transaction_flag(self, client, db_session, gift_card, friend, friend_headers):
        from conftest import share_gift_card

        share_gift_card(db_session, gift_card, friend, can_edit=True)
        url = f"/api/gift-cards/{gift_card.id}/transactions"
        assert client.get(url, headers=friend_headers).status_code == 200
        assert client.post(url, json={"amount_cents": 100}, headers=friend_headers).status_code == 403

    def test_bad_transaction_date(self, client, gift_card, owner_headers):
        resp = client.post(f"/api/gift-cards/{gift_card.id}/transactions",
                           json={"amount_cents": 100, "transaction_date": "yesterday"}, headers=owner_headers)
        assert resp.status_code == 400


# =============================================================================
# MERCHANTS - ELEVATED GATE
# =============================================================================


class TestMerchantRoutes:

    def test_anyone_can_read(self, client, owner_headers):
        assert client.get("/api/merchants", headers=owner_headers).status_code == 200

    def test_regular_user_cannot_write(self, client, owner_headers):
        resp = client.post("/api/merchants", json={"name": "Coop"}, headers=owner_headers)
        assert resp.status_code == 403

    def test_admin_can_write(self, client, admin_headers):
        resp = client.post("/api/merchants", json={"name": "Coop"}, headers=admin_headers)
        assert resp.status_code == 201
        merchant_id = resp.json["id"]
        resp = client.patch(f"/api/merchants/{merchant_id}", json={"website": "https://coop.ch"},
                            headers=admin_headers)
        assert resp.status_code == 200
        assert client.delete(f"/api/merchants/{merchant_id}", headers=admin_headers).status_code == 200

    def test_impersonating_session_can_write(self, client, impersonation_headers):
        resp = client.post("/api/merchants", json={"name": "Migros"}, headers=impersonation_headers)
        assert resp.status_code == 201

    def test_duplicate_name_case_insensitive(self, client, admin_headers):
        client.post("/api/merchants", json={"name": "Denner"}, headers=admin_headers)
        resp = client.post("/api/merchants", json={"name": "DENNER"}, headers=admin_headers)
        assert resp.status_code == 409


# =============================================================================
# ADMIN & IMPERSONATION
# =============================================================================


class TestAdminRoutes:

    def test_regular_user_denied(self, client, owner_headers):
        assert client.get("/api/admin/users", headers=owner_headers).status_code == 403

    def test_impersonation_session_denied(self, client, impersonation_headers):
        assert client.get("/api/admin/users", headers=impersonation_headers).status_code == 403

    def test_list_users(self, client, owner, admin_headers):
        resp = client.get("/api/admin/users?search=owner", headers=admin_headers)
        assert resp.status_code == 200
        assert resp.json["count"] == 1

    def test_role_change(self, client, owner, admin_headers):
        resp = client.patch(f"/api/admin/users/{owner.id}/role", json={"role": "admin"}, headers=admin_headers)
        assert resp.status_code == 200
        assert resp.json["role"] == "admin"

        logs = client.get("/api/admin/audit-logs?action=role_change", headers=admin_headers)
        assert logs.json["count"] == 1

    def test_own_role_change_forbidden(self, client, admin, admin_headers):
        resp = client.patch(f"/api/admin/users/{admin.id}/role", json={"role": "user"}, headers=admin_headers)
        assert resp.status_code == 403

    def test_restore(self, client, db_session, card, admin_headers, owner_headers):
        card.soft_delete()
        db_session.commit()

        resp = client.post("/api/admin/restore", json={"resource_type": "cards", "resource_id": card.id},
                           headers=admin_headers)
        assert resp.status_code == 200
        assert client.get(f"/api/cards/{card.id}", headers=owner_headers).status_code == 200

        again = client.post("/api/admin/restore", json={"resource_type": "cards", "resource_id": card.id},
                            headers=admin_headers)
        assert again.status_code == 400

    def test_restore_bad_id(self, client, admin_headers):
        resp = client.post("/api/admin/restore", json={"resource_type": "cards", "resource_id": "1"},
                           headers=admin_headers)
        assert resp.status_code == 400


class TestImpersonation:

    def test_full_cycle(self, client, db_session, admin, friend, admin_headers):
        admin_card = Card(user_id=admin.id, program="Admin's own", card_number="A-1")
        db_session.add(admin_card)
        db_session.commit()

        resp = client.post(f"/api/admin/impersonate/{friend.id}", headers=admin_headers)
        assert resp.status_code == 200
        assert resp.json["user"]["id"] == friend.id
        imp_headers = auth_headers(resp.json["token"])

        me = client.get("/api/auth/me", headers=imp_headers).json
        assert me["is_impersonating"] is True
        assert me["is_elevated"] is True
        assert me["original_user"]["id"] == admin.id

        # Acting as friend: the admin's own card is invisible
        assert client.get(f"/api/cards/{admin_card.id}", headers=imp_headers).status_code == 404

        resp = client.post("/api/admin/impersonate/stop", headers=imp_headers)
        assert resp.status_code == 200
        assert resp.json["user"]["id"] == admin.id
        assert client.get("/api/auth/me", headers=imp_headers).status_code == 401

        admin_again = auth_headers(resp.json["token"])
        assert client.get(f"/api/cards/{admin_card.id}", headers=admin_again).status_code == 200

    def test_cannot_impersonate_self(self, client, admin, admin_headers):
        assert client.post(f"/api/admin/impersonate/{admin.id}", headers=admin_headers).status_code == 400

    def test_stop_without_impersonating(self, client, admin_headers):
        assert client.post("/api/admin/impersonate/stop", headers=admin_headers).status_code == 400

    def test_missing_target(self, client, admin_headers):
        assert client.post("/api/admin/impersonate/999999", headers=admin_headers).status_code == 404


class TestHealth:

    def test_health(self, client, db_session):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json["status"] == "healthy"
        assert resp.json["features"]["cards"] is True
