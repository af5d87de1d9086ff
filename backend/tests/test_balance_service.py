"""
Gift card balance guard tests.

The cached balance must always equal the initial balance minus active
transactions, and must never go negative.
"""

import pytest

from cardvault.errors import ConflictError, InsufficientBalanceError, NotFoundError, ValidationError
from cardvault.extensions import db
from cardvault.models import AuditLog, GiftCard, GiftCardTransaction
from cardvault.services import balance_service


def balance_of(gift_card_id: int) -> int:
    db.session.expire_all()
    return db.session.get(GiftCard, gift_card_id).current_balance_cents


# =============================================================================
# ADD
# =============================================================================


class TestAddTransaction:

    def test_debits_reduce_balance(self, gift_card, owner):
        balance_service.add_transaction(gift_card.id, 3000, created_by_user_id=owner.id)
        assert balance_of(gift_card.id) == 2000

    def test_overdraw_is_rejected_with_details(self, gift_card):
        balance_service.add_transaction(gift_card.id, 3000)

        with pytest.raises(InsufficientBalanceError) as exc_info:
            balance_service.add_transaction(gift_card.id, 2500)

        err = exc_info.value
        assert (err.current_cents, err.attempted_cents, err.would_be_cents) == (2000, 2500, -500)
        assert err.status_code == 422
        assert err.to_dict()["would_be_cents"] == -500
        assert balance_of(gift_card.id) == 2000
        assert GiftCardTransaction.active().count() == 1

    def test_exact_balance_reaches_zero(self, gift_card):
        balance_service.add_transaction(gift_card.id, 5000)
        assert balance_of(gift_card.id) == 0

    @pytest.mark.parametrize("amount", [0, -100, 12.5, "100", True])
    def test_amount_must_be_positive_integer(self, gift_card, amount):
        with pytest.raises(ValidationError):
            balance_service.add_transaction(gift_card.id, amount)

    def test_deleted_gift_card(self, db_session, gift_card):
        gift_card.soft_delete()
        db_session.commit()
        with pytest.raises(NotFoundError):
            balance_service.add_transaction(gift_card.id, 100)

    def test_debit_committed_between_check_and_write(self, db_session, gift_card, monkeypatch):
        # SQLite ignores FOR UPDATE: another writer can commit after our check passed
        real_check = balance_service._ensure_covers
        checks = []

        def check_then_other_writer_debits(card, other_total, amount):
            real_check(card, other_total, amount)
            checks.append(amount)
            if len(checks) == 1:
                db_session.add(GiftCardTransaction(gift_card_id=card.id, amount_cents=4000))
                card.current_balance_cents = 1000
                db_session.commit()

        monkeypatch.setattr(balance_service, "_ensure_covers", check_then_other_writer_debits)

        with pytest.raises(InsufficientBalanceError) as exc_info:
            balance_service.add_transaction(gift_card.id, 4000)

        err = exc_info.value
        assert (err.current_cents, err.attempted_cents, err.would_be_cents) == (1000, 4000, -3000)
        assert balance_of(gift_card.id) == 1000
        assert GiftCardTransaction.active().count() == 1

    def test_persistent_constraint_failure_is_a_conflict(self, gift_card, monkeypatch):
        def corrupt(card):
            card.current_balance_cents = -1
            return -1

        monkeypatch.setattr(balance_service, "recalculate_balance", corrupt)

        with pytest.raises(ConflictError):
            balance_service.add_transaction(gift_card.id, 100)
        assert balance_of(gift_card.id) == 5000
        assert GiftCardTransaction.active().count() == 0


# =============================================================================
# UPDATE / DELETE
# =============================================================================


class TestUpdateTransaction:

    def test_amount_checked_against_other_debits(self, gift_card):
        balance_service.add_transaction(gift_card.id, 1000)
        tx = balance_service.add_transaction(gift_card.id, 1000)

        balance_service.update_transaction(gift_card.id, tx.id, amount_cents=4000)
        assert balance_of(gift_card.id) == 0

        with pytest.raises(InsufficientBalanceError) as exc_info:
            balance_service.update_transaction(gift_card.id, tx.id, amount_cents=4001)
        assert exc_info.value.current_cents == 4000
        assert balance_of(gift_card.id) == 0

    def test_description_only(self, gift_card):
        tx = balance_service.add_transaction(gift_card.id, 700, description="coffee")
        balance_service.update_transaction(gift_card.id, tx.id, description="lunch")
        assert db.session.get(GiftCardTransaction, tx.id).description == "lunch"
        assert balance_of(gift_card.id) == 4300

    def test_transaction_of_other_card(self, db_session, gift_card, owner):
        other = GiftCard(user_id=owner.id, card_number="GC-0002",
                         initial_balance_cents=100, current_balance_cents=100)
        db_session.add(other)
        db_session.commit()
        tx = balance_service.add_transaction(gift_card.id, 100)
        with pytest.raises(NotFoundError):
            balance_service.update_transaction(other.id, tx.id, amount_cents=50)


class TestDeleteTransaction:

    def test_delete_gives_amount_back_and_audits(self, db_session, gift_card, owner):
        tx = balance_service.add_transaction(gift_card.id, 1500)
        balance_service.delete_transaction(gift_card.id, tx.id, actor_user_id=owner.id)

        assert balance_of(gift_card.id) == 5000
        entry = db_session.query(AuditLog).one()
        assert (entry.action, entry.resource_type, entry.resource_id) == (
            "delete", "gift_card_transactions", tx.id
        )
        assert entry.resource_data["amount_cents"] == 1500

    def test_deleted_transaction_is_hidden(self, gift_card, owner):
        kept = balance_service.add_transaction(gift_card.id, 100)
        gone = balance_service.add_transaction(gift_card.id, 200)
        balance_service.delete_transaction(gift_card.id, gone.id, actor_user_id=owner.id)
        assert [tx.id for tx in balance_service.list_transactions(gift_card.id)] == [kept.id]

        with pytest.raises(NotFoundError):
            balance_service.delete_transaction(gift_card.id, gone.id, actor_user_id=owner.id)


# =============================================================================
# INITIAL BALANCE / RECOMPUTE
# =============================================================================


class TestInitialBalance:

    def test_raise_initial_balance(self, gift_card):
        balance_service.add_transaction(gift_card.id, 1000)
        balance_service.set_initial_balance(gift_card.id, 8000)
        assert balance_of(gift_card.id) == 7000

    def test_cannot_go_below_spent(self, gift_card):
        balance_service.add_transaction(gift_card.id, 3000)
        with pytest.raises(InsufficientBalanceError):
            balance_service.set_initial_balance(gift_card.id, 2999)
        assert db.session.get(GiftCard, gift_card.id).initial_balance_cents == 5000

    def test_negative_initial_balance(self, gift_card):
        with pytest.raises(ValidationError):
            balance_service.set_initial_balance(gift_card.id, -1)

    def test_new_card_starts_full(self):
        gift_card = GiftCard(card_number="NEW")
        balance_service.apply_initial_balance(gift_card, 1234)
        assert gift_card.current_balance_cents == 1234


class TestRecalculateAll:

    def test_heals_drift(self, db_session, gift_card):
        balance_service.add_transaction(gift_card.id, 500)
        db_session.query(GiftCard).filter(GiftCard.id == gift_card.id).update(
            {"current_balance_cents": 1}
        )
        db_session.commit()

        drifted = balance_service.recalculate_all()
        assert drifted == [(gift_card.id, 1, 4500)]
        assert balance_of(gift_card.id) == 4500

    def test_no_drift(self, gift_card):
        balance_service.add_transaction(gift_card.id, 500)
        assert balance_service.recalculate_all(gift_card.id) == []

    def test_recompute_matches_active_sum(self, gift_card, owner):
        amounts = [100, 250, 999, 1]
        txs = [balance_service.add_transaction(gift_card.id, a) for a in amounts]
        balance_service.delete_transaction(gift_card.id, txs[1].id, actor_user_id=owner.id)

        expected = 5000 - (100 + 999 + 1)
        assert balance_of(gift_card.id) == expected
        assert balance_service.active_transaction_total(gift_card.id) == 1100
