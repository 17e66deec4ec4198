"""Unit tests for CreditService ledger mutations and queries."""

from decimal import Decimal
from unittest.mock import patch

import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from marketplace.errors import (
    InsufficientFundsError,
    InternalError,
    NotFoundError,
    ValidationError,
)
from marketplace.models import CreditTransaction, TransactionReason, TransactionType, User
from marketplace.services.credit_service import ENTRY_RULES, CreditService, EntryKind


def _entries(db_session, user):
    return (
        db_session.execute(
            select(CreditTransaction)
            .where(CreditTransaction.user_id == user.id)
            .order_by(CreditTransaction.id)
        )
        .scalars()
        .all()
    )


class TestGrant:
    """Tests for CreditService.grant."""

    def test_grant_increases_balance_and_appends_entry(self, db_session, make_user, admin):
        user = make_user()

        result = CreditService(db_session).grant(user.id, "25.00", "gift", "Welcome", admin=admin)

        assert result.new_balance == Decimal("25.00")
        entry = result.transaction
        assert entry.amount == Decimal("25.00")
        assert entry.balance_after == Decimal("25.00")
        assert entry.type == TransactionType.ADMIN_GRANT
        assert entry.reason == TransactionReason.GIFT
        assert entry.admin_id == admin.id
        assert entry.meta == {"admin_email": admin.email, "admin_username": admin.username}
        db_session.refresh(user)
        assert user.credits == Decimal("25.00")

    @pytest.mark.parametrize("amount", ["0", "0.00", "-5", "10000.01"])
    def test_grant_rejects_amount_out_of_bounds(self, db_session, make_user, admin, amount):
        user = make_user()

        with pytest.raises(ValidationError):
            CreditService(db_session).grant(user.id, amount, "gift", admin=admin)

        assert _entries(db_session, user) == []

    def test_grant_accepts_bounds(self, db_session, make_user, admin):
        user = make_user()
        service = CreditService(db_session)

        service.grant(user.id, "0.01", "giveaway", admin=admin)
        result = service.grant(user.id, "10000", "giveaway", admin=admin)

        assert result.new_balance == Decimal("10000.01")

    @pytest.mark.parametrize("reason", ["purchase", "payment", "other", "bonus", ""])
    def test_grant_rejects_non_grant_reasons(self, db_session, make_user, admin, reason):
        user = make_user()

        with pytest.raises(ValidationError):
            CreditService(db_session).grant(user.id, "5", reason, admin=admin)

    def test_grant_rejects_long_description(self, db_session, make_user, admin):
        user = make_user()

        with pytest.raises(ValidationError):
            CreditService(db_session).grant(user.id, "5", "gift", "x" * 501, admin=admin)

    def test_grant_unknown_user(self, db_session, admin):
        with pytest.raises(NotFoundError):
            CreditService(db_session).grant(9999, "5", "gift", admin=admin)

    def test_float_amounts_keep_cents(self, db_session, make_user, admin):
        user = make_user()

        result = CreditService(db_session).grant(user.id, 0.1, "gift", admin=admin)

        assert result.new_balance == Decimal("0.10")


class TestDeduct:
    """Tests for CreditService.deduct."""

    def test_deduct_stores_negative_admin_grant(self, db_session, make_user, admin):
        user = make_user(credits="0.00")
        service = CreditService(db_session)
        service.grant(user.id, "50", "gift", admin=admin)

        result = service.deduct(user.id, "20", "Chargeback", admin=admin)

        assert result.new_balance == Decimal("30.00")
        entry = result.transaction
        assert entry.amount == Decimal("-20.00")
        assert entry.type == TransactionType.ADMIN_GRANT
        assert entry.reason == TransactionReason.OTHER
        assert entry.description == "Chargeback"
        assert entry.is_debit
        assert entry.formatted_amount == "-$20.00"

    def test_deduct_keeps_known_reason(self, db_session, make_user, admin):
        user = make_user()
        service = CreditService(db_session)
        service.grant(user.id, "10", "gift", admin=admin)

        result = service.deduct(user.id, "4", "refund", "Reversed refund", admin=admin)

        assert result.transaction.reason == TransactionReason.REFUND
        assert result.transaction.description == "Reversed refund"

    def test_deduct_more_than_balance_fails_without_entry(self, db_session, make_user, admin):
        user = make_user()
        service = CreditService(db_session)
        service.grant(user.id, "10", "gift", admin=admin)

        with pytest.raises(InsufficientFundsError):
            service.deduct(user.id, "10.01", admin=admin)

        assert len(_entries(db_session, user)) == 1
        assert service.get_balance(user.id) == Decimal("10.00")

    def test_deduct_entire_balance(self, db_session, make_user, admin):
        user = make_user()
        service = CreditService(db_session)
        service.grant(user.id, "10", "gift", admin=admin)

        result = service.deduct(user.id, "10", admin=admin)

        assert result.new_balance == Decimal("0.00")

    def test_deduct_requires_positive_amount(self, db_session, make_user, admin):
        user = make_user()

        with pytest.raises(ValidationError):
            CreditService(db_session).deduct(user.id, "0", admin=admin)


class TestPurchaseAndRefund:
    """Tests for checkout debits and refunds."""

    def test_debit_for_purchase_links_order(self, db_session, make_user, make_order, admin):
        user = make_user()
        service = CreditService(db_session)
        service.grant(user.id, "30", "gift", admin=admin)
        order = make_order(user, "12.50")

        result = service.debit_for_purchase(user.id, "12.50", order)

        entry = result.transaction
        assert entry.type == TransactionType.PAYMENT
        assert entry.reason == TransactionReason.PAYMENT
        assert entry.amount == Decimal("-12.50")
        assert entry.order_id == order.id
        assert entry.description == f"Payment for order {order.order_number}"
        assert entry.admin_id is None
        assert result.new_balance == Decimal("17.50")

    def test_debit_for_purchase_guards_balance(self, db_session, make_user, make_order):
        user = make_user()
        order = make_order(user, "5")

        with pytest.raises(InsufficientFundsError):
            CreditService(db_session).debit_for_purchase(user.id, "5", order)

    def test_apply_credits_clamps_to_balance(self, db_session, make_user, make_order, admin):
        user = make_user()
        service = CreditService(db_session)
        service.grant(user.id, "8", "gift", admin=admin)
        order = make_order(user, "20")

        application = service.apply_credits_to_order(user.id, order)

        assert application.credits_used == Decimal("8.00")
        assert application.remaining_amount == Decimal("12.00")
        assert application.new_balance == Decimal("0.00")
        assert application.transaction.amount == Decimal("-8.00")

    def test_apply_credits_clamps_to_order_total(self, db_session, make_user, make_order, admin):
        user = make_user()
        service = CreditService(db_session)
        service.grant(user.id, "100", "gift", admin=admin)
        order = make_order(user, "20")

        application = service.apply_credits_to_order(user.id, order)

        assert application.credits_used == Decimal("20.00")
        assert application.remaining_amount == Decimal("0.00")
        assert application.new_balance == Decimal("80.00")

    def test_apply_credits_with_empty_balance_writes_nothing(
        self, db_session, make_user, make_order
    ):
        user = make_user()
        order = make_order(user, "20")

        application = CreditService(db_session).apply_credits_to_order(user.id, order)

        assert application.credits_used == Decimal("0.00")
        assert application.remaining_amount == Decimal("20.00")
        assert application.transaction is None
        assert _entries(db_session, user) == []

    def test_refund_adds_credit(self, db_session, make_user, make_order):
        user = make_user()
        order = make_order(user, "15")

        result = CreditService(db_session).refund(user.id, "15", order=order)

        assert result.transaction.type == TransactionType.REFUND
        assert result.transaction.reason == TransactionReason.REFUND
        assert result.transaction.amount == Decimal("15.00")
        assert result.transaction.description == f"Refund for order {order.order_number}"
        assert result.new_balance == Decimal("15.00")


class TestRollback:
    """Failed writes leave balance and ledger untouched."""

    def test_database_failure_rolls_back(self, db_session, make_user, admin):
        user = make_user()
        user_id = user.id
        service = CreditService(db_session)
        # No read transaction open, so only the write commit fails
        db_session.rollback()

        with patch.object(
            db_session, "commit", side_effect=OperationalError("COMMIT", {}, Exception("disk I/O"))
        ):
            with pytest.raises(InternalError):
                service.grant(user_id, "5", "gift", admin=admin)

        assert service.get_balance(user_id) == Decimal("0.00")
        assert _entries(db_session, user) == []


class TestQueries:
    """Tests for history, listings and statistics."""

    def test_history_newest_first_and_paginated(self, db_session, make_user, admin):
        user = make_user()
        service = CreditService(db_session)
        for amount in ("1", "2", "3"):
            service.grant(user.id, amount, "gift", admin=admin)

        page = service.get_history(user.id, page=1, per_page=2)

        assert page.total == 3
        assert page.last_page == 2
        assert [entry.amount for entry in page.items] == [Decimal("3.00"), Decimal("2.00")]

    def test_history_unknown_user(self, db_session):
        with pytest.raises(NotFoundError):
            CreditService(db_session).get_history(424242)

    def test_list_users_orders_by_credits_and_searches(self, db_session, make_user):
        make_user(email="alice@example.com", credits="5")
        make_user(email="bob@example.com", credits="50")
        make_user(email="carol@sample.org", credits="20")
        service = CreditService(db_session)

        everyone = service.list_users()
        matches = service.list_users(search="EXAMPLE")

        assert [u.email for u in everyone.items] == [
            "bob@example.com",
            "carol@sample.org",
            "alice@example.com",
        ]
        assert {u.email for u in matches.items} == {"alice@example.com", "bob@example.com"}
        assert matches.total == 2

    def test_entry_rules_signs(self):
        assert ENTRY_RULES[EntryKind.GRANT] == (TransactionType.ADMIN_GRANT, 1)
        assert ENTRY_RULES[EntryKind.DEDUCT] == (TransactionType.ADMIN_GRANT, -1)
        assert ENTRY_RULES[EntryKind.PAYMENT][1] == -1
        assert ENTRY_RULES[EntryKind.REFUND][1] == 1

    def test_balance_unknown_user(self, db_session):
        with pytest.raises(NotFoundError):
            CreditService(db_session).get_balance(1234)

    def test_user_credits_default_zero(self, db_session):
        user = User(username="fresh", email="fresh@example.com")
        db_session.add(user)
        db_session.commit()

        assert CreditService(db_session).get_balance(user.id) == Decimal("0.00")
