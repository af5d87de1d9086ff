"""
Audit recorder, restore and admin service tests.
"""

from datetime import timedelta

import pytest

from cardvault.errors import (
    ConflictError, ForbiddenError, InsufficientBalanceError, NotDeletedError,
    NotFoundError, UnsupportedResourceTypeError, ValidationError,
)
from cardvault.extensions import db
from cardvault.models import AuditLog, Card, CardShare, GiftCard, GiftCardTransaction, User
from cardvault.services import admin_service, audit_service, balance_service
from cardvault.time_utils import utcnow

from conftest import make_user, share_card


# =============================================================================
# RECORD
# =============================================================================


class TestRecord:

    def test_record_does_not_commit(self, db_session, card, owner):
        audit_service.record(owner.id, "delete", "cards", card.id, card.to_dict())
        db_session.rollback()
        assert db_session.query(AuditLog).count() == 0

    def test_record_commits_with_caller(self, db_session, card, owner):
        audit_service.record(owner.id, "delete", "cards", card.id, {"id": card.id},
                             ip_address="192.0.2.1", user_agent="x" * 600)
        db_session.commit()
        entry = db_session.query(AuditLog).one()
        assert entry.resource_data == {"id": card.id}
        assert len(entry.user_agent) == 512

    def test_unknown_resource_type(self, db_session, owner):
        with pytest.raises(UnsupportedResourceTypeError):
            audit_service.record(owner.id, "delete", "sessions", 1, {"id": 1})

    def test_unknown_action(self, db_session, owner):
        with pytest.raises(ValidationError):
            audit_service.record(owner.id, "archive", "cards", 1, {"id": 1})

    def test_empty_snapshot(self, db_session, owner):
        with pytest.raises(ValidationError):
            audit_service.record(owner.id, "delete", "cards", 1, {})


# =============================================================================
# LIST
# =============================================================================


class TestListAuditLogs:

    def _seed(self, db_session, owner, admin):
        for i in range(3):
            audit_service.record(owner.id, "delete", "cards", i + 1, {"program": f"program-{i}"})
        audit_service.record(admin.id, "role_change", "users", owner.id, {"email": owner.email})
        db_session.commit()

    def test_newest_first(self, db_session, owner, admin):
        self._seed(db_session, owner, admin)
        entries, total = audit_service.list_audit_logs()
        assert total == 4
        assert entries[0].action == "role_change"

    def test_filters(self, db_session, owner, admin):
        self._seed(db_session, owner, admin)
        entries, total = audit_service.list_audit_logs(user_id=owner.id, resource_type="cards")
        assert total == 3
        entries, total = audit_service.list_audit_logs(resource_id=2, action="delete")
        assert [e.resource_id for e in entries] == [2]
        entries, total = audit_service.list_audit_logs(search="program-1")
        assert total == 1

    def test_pagination(self, db_session, owner, admin):
        self._seed(db_session, owner, admin)
        entries, total = audit_service.list_audit_logs(page=2, per_page=3)
        assert total == 4
        assert len(entries) == 1

    def test_date_range(self, db_session, owner, admin):
        self._seed(db_session, owner, admin)
        today = utcnow().date()
        _, total = audit_service.list_audit_logs(date_from=today.isoformat(), date_to=today.isoformat())
        assert total == 4
        tomorrow = (today + timedelta(days=1)).isoformat()
        _, total = audit_service.list_audit_logs(date_from=tomorrow)
        assert total == 0

    def test_bad_date(self, db_session):
        with pytest.raises(ValidationError):
            audit_service.list_audit_logs(date_from="last tuesday")


# =============================================================================
# RESTORE
# =============================================================================


class TestRestore:

    def test_restore_card(self, db_session, card, admin, owner):
        card.soft_delete()
        db_session.commit()

        restored = audit_service.restore_resource("cards", card.id, actor_user_id=admin.id)
        assert restored.deleted_at is None
        entry = db_session.query(AuditLog).one()
        assert (entry.action, entry.user_id, entry.resource_id) == ("restore", admin.id, card.id)

    def test_restored_card_brings_shares_back(self, db_session, card, admin, friend):
        from cardvault.services import authz_service

        share_card(db_session, card, friend)
        card.soft_delete()
        db_session.commit()
        audit_service.restore_resource("cards", card.id, actor_user_id=admin.id)
        assert authz_service.check_card_access(friend.id, card.id).can_view

    def test_not_deleted(self, db_session, card, admin):
        with pytest.raises(NotDeletedError):
            audit_service.restore_resource("cards", card.id, actor_user_id=admin.id)

    def test_missing(self, db_session, admin):
        with pytest.raises(NotFoundError):
            audit_service.restore_resource("cards", 424242, actor_user_id=admin.id)

    def test_unsupported_type(self, db_session, admin):
        with pytest.raises(UnsupportedResourceTypeError):
            audit_service.restore_resource("users", admin.id, actor_user_id=admin.id)

    def test_restore_share_conflicts_with_active_share(self, db_session, card, admin, friend):
        old = share_card(db_session, card, friend)
        old.soft_delete()
        db_session.commit()
        share_card(db_session, card, friend, can_edit=True)

        with pytest.raises(ConflictError):
            audit_service.restore_resource("card_shares", old.id, actor_user_id=admin.id)
        assert db_session.get(CardShare, old.id).deleted_at is not None
        assert db_session.query(AuditLog).count() == 0

    def test_restore_share_with_recipient_who_now_owns_the_card(self, db_session, card, owner, admin, friend):
        from cardvault.services import resource_service

        share = share_card(db_session, card, friend)
        resource_service.transfer_ownership("cards", owner.id, card.id, friend.id)
        assert db_session.get(CardShare, share.id).deleted_at is not None

        with pytest.raises(ConflictError):
            audit_service.restore_resource("card_shares", share.id, actor_user_id=admin.id)
        db_session.rollback()
        assert db_session.get(CardShare, share.id).deleted_at is not None
        assert db_session.query(AuditLog).filter_by(action="restore").count() == 0

    def test_restore_share_after_plain_revoke(self, db_session, card, owner, admin, friend):
        from cardvault.services import share_service

        share = share_card(db_session, card, friend)
        share_service.card_shares.delete(owner.id, share.id)

        restored = audit_service.restore_resource("card_shares", share.id, actor_user_id=admin.id)
        assert restored.deleted_at is None
        assert restored.shared_with_id != card.user_id

    def test_restore_duplicate_card_number(self, db_session, card, owner, admin):
        card.soft_delete()
        db_session.commit()
        db_session.add(Card(user_id=owner.id, program="Again", card_number=card.card_number))
        db_session.commit()

        with pytest.raises(ConflictError):
            audit_service.restore_resource("cards", card.id, actor_user_id=admin.id)

    def test_restore_transaction_goes_through_balance_guard(self, db_session, gift_card, owner, admin):
        tx = balance_service.add_transaction(gift_card.id, 3000)
        balance_service.delete_transaction(gift_card.id, tx.id, actor_user_id=owner.id)
        balance_service.add_transaction(gift_card.id, 4000)

        with pytest.raises(InsufficientBalanceError):
            audit_service.restore_resource("gift_card_transactions", tx.id, actor_user_id=admin.id)
        db_session.rollback()
        assert db_session.get(GiftCardTransaction, tx.id).deleted_at is not None

    def test_restore_transaction_recomputes_balance(self, db_session, gift_card, owner, admin):
        tx = balance_service.add_transaction(gift_card.id, 3000)
        balance_service.delete_transaction(gift_card.id, tx.id, actor_user_id=owner.id)

        audit_service.restore_resource("gift_card_transactions", tx.id, actor_user_id=admin.id)
        db.session.expire_all()
        assert db_session.get(GiftCard, gift_card.id).current_balance_cents == 2000


# =============================================================================
# ADMIN SERVICE
# =============================================================================


class TestRoleChange:

    def test_promote_is_audited(self, db_session, admin, owner):
        admin_service.update_user_role(admin, owner.id, "admin", ip_address="203.0.113.9")
        assert db_session.get(User, owner.id).role == "admin"

        entry = db_session.query(AuditLog).one()
        assert entry.action == "role_change"
        assert entry.resource_type == "users"
        assert entry.resource_data == {"email": owner.email, "old_role": "user", "new_role": "admin"}

    def test_same_role_is_a_no_op(self, db_session, admin, owner):
        admin_service.update_user_role(admin, owner.id, "user")
        assert db_session.query(AuditLog).count() == 0

    def test_cannot_change_own_role(self, db_session, admin):
        with pytest.raises(ForbiddenError):
            admin_service.update_user_role(admin, admin.id, "user")

    def test_oauth_user_role_is_managed_elsewhere(self, db_session, admin):
        oauth_user = make_user(db_session, "sso@example.com", auth_provider="oauth")
        with pytest.raises(ForbiddenError):
            admin_service.update_user_role(admin, oauth_user.id, "admin")

    def test_invalid_role(self, db_session, admin, owner):
        with pytest.raises(ValidationError):
            admin_service.update_user_role(admin, owner.id, "superuser")

    def test_missing_user(self, db_session, admin):
        with pytest.raises(NotFoundError):
            admin_service.update_user_role(admin, 987654, "admin")


class TestAdminUsers:

    def test_create_local_user_is_audited(self, db_session, admin):
        user = admin_service.create_local_user(
            admin.id, "New.Person@Example.com", "Str0ng!Pass", first_name="New"
        )
        assert user.email == "new.person@example.com"
        entry = db_session.query(AuditLog).one()
        assert (entry.action, entry.resource_type, entry.resource_id) == ("create", "users", user.id)

    def test_list_users_search(self, db_session, admin, owner, friend):
        users, total = admin_service.list_users(search="friend")
        assert total == 1
        assert users[0].id == friend.id
