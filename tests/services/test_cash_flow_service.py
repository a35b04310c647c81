"""
Tests for CashFlowIntegrationService.

Covers:
- Comprehensive report figures on a seeded shop
- Empty shop defaults and unavailable metrics
- Customer dues as assets, including wallets with no user row
- Best-effort sync: success paths and swallowed failures
"""

from datetime import UTC, date, datetime
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import select

from cashflow_config.schema import CashFlowConfig
from cashflow_engines.cash_flow import HealthStatus
from cashflow_kernel.models.cashflow import Transaction
from cashflow_kernel.models.party import User
from cashflow_kernel.models.wallet import CustomerWallet
from cashflow_services.cash_flow_service import CashFlowIntegrationService
from cashflow_services.wallet_ledger_service import WalletLedgerService


@pytest.fixture
def cash_flow(session, codec, clock):
    return CashFlowIntegrationService(session, codec, clock=clock)


@pytest.fixture
def wallets(session, codec, clock):
    return WalletLedgerService(session, codec, clock=clock)


@pytest.fixture
def seeded_shop(cash_flow, wallets, shop, customer):
    cash_flow.balances.reset_cash_balance(shop.id, "1000")
    ledger = cash_flow.ledger
    ledger.create_transaction(
        shop.id, "December sales", "200", "ORDER_PAYMENT", "SALES",
        when=datetime(2023, 12, 10, tzinfo=UTC),
    )
    ledger.create_transaction(
        shop.id, "December stock", "40", "EXPENSE_PAYMENT", "STOCK_PURCHASE",
        when=datetime(2023, 12, 11, tzinfo=UTC),
    )
    ledger.create_transaction(
        shop.id, "Internet", "50", "EXPENSE_PAYMENT", "INTERNET",
        when=datetime(2024, 1, 5, tzinfo=UTC),
    )
    ledger.create_transaction(
        shop.id, "Morning sales", "250", "ORDER_PAYMENT", "SALES",
        when=datetime(2024, 1, 15, 9, 0, tzinfo=UTC),
    )
    cash_flow.scheduler.create_upcoming_payment(shop.id, "Overdue rent", "100", date(2024, 1, 10))
    cash_flow.scheduler.create_upcoming_payment(shop.id, "Wages", "300", date(2024, 1, 20))
    wallets.record_wallet_transaction(customer.id, shop.id, "ORDER_PAYMENT", "50")
    wallets.record_wallet_transaction(customer.id, shop.id, "DUE_PAYMENT", "30")
    return shop


class TestComprehensiveReport:
    def test_seeded_shop(self, cash_flow, seeded_shop, clock, captured_logs):
        report = cash_flow.get_comprehensive_cash_flow(seeded_shop.id)

        assert report.generated_at == clock.now()
        assert report.current_balance == Decimal("1000")
        assert report.total_income == Decimal("250")
        assert report.total_expenses == Decimal("50")
        assert report.total_upcoming == Decimal("400")
        assert report.projected_balance == Decimal("600")
        assert report.customer_dues.total_dues == Decimal("20")
        assert report.adjusted_balance == Decimal("620")
        assert report.health_status is HealthStatus.HEALTHY

        assert [p.description for p in report.upcoming_payments] == ["Overdue rent", "Wages"]
        assert report.days_until_next_payment == 5
        assert report.daily_target == Decimal("80.00")
        assert report.daily_progress.value == Decimal("313")

        assert [t.month for t in report.monthly_trends] == ["2023-12", "2024-01"]
        assert report.income_growth.value == Decimal("25")
        assert report.expense_growth.value == Decimal("25")

        assert report.transaction_count == 4
        assert report.recent_transactions[0].description == "Morning sales"
        assert report.transaction_summary["EXPENSE_PAYMENT"].total == Decimal("90")

        generated = [r for r in captured_logs() if r["message"] == "cash_flow_report_generated"]
        assert generated[0]["health_status"] == "HEALTHY"

    def test_to_dict_shape(self, cash_flow, seeded_shop):
        payload = cash_flow.get_comprehensive_cash_flow(seeded_shop.id).to_dict()

        assert payload["health_status"] == "HEALTHY"
        assert payload["customer_dues"]["count"] == 1
        assert payload["customer_dues"]["dues_list"][0]["customer_name"] == "Dana Customer"
        assert payload["transactions"]["count"] == 4
        assert payload["transactions"]["summary"]["ORDER_PAYMENT"] == {
            "count": 2,
            "total": Decimal("450"),
        }
        assert payload["income_growth"]["available"] is True

    def test_recent_transactions_are_limited(self, session, codec, clock, shop):
        cash_flow = CashFlowIntegrationService(
            session, codec, clock=clock, config=CashFlowConfig(recent_transactions_limit=2),
        )
        for day in range(1, 6):
            cash_flow.ledger.create_transaction(
                shop.id, f"Sale {day}", "1", "ORDER_PAYMENT", "SALES",
                when=datetime(2024, 1, day, tzinfo=UTC),
            )

        report = cash_flow.get_comprehensive_cash_flow(shop.id)

        assert [e.description for e in report.recent_transactions] == ["Sale 5", "Sale 4"]
        assert report.transaction_count == 5

    def test_empty_shop(self, cash_flow, shop):
        report = cash_flow.get_comprehensive_cash_flow(shop.id)

        assert report.current_balance == Decimal("0")
        assert report.total_upcoming == Decimal("0")
        assert report.adjusted_balance == Decimal("0")
        assert report.health_status is HealthStatus.AT_RISK
        assert report.days_until_next_payment == 30
        assert report.daily_target == Decimal("0")
        assert report.daily_progress.available is False
        assert report.income_growth.available is False
        assert report.expense_growth.reason == "fewer than two months of transactions"

    def test_only_overdue_payments_use_default_horizon(self, cash_flow, shop):
        cash_flow.scheduler.create_upcoming_payment(shop.id, "Late", "90", date(2024, 1, 1))

        report = cash_flow.get_comprehensive_cash_flow(shop.id)

        assert report.total_upcoming == Decimal("90")
        assert report.days_until_next_payment == 30
        assert report.daily_target == Decimal("3.00")


class TestCustomerDues:
    def test_dues_and_credits(self, cash_flow, wallets, session, shop, customer):
        creditor = User(name="Credit Customer", email="credit@example.com")
        session.add(creditor)
        session.commit()
        wallets.record_wallet_transaction(customer.id, shop.id, "ORDER_PAYMENT", "75")
        wallets.record_wallet_transaction(creditor.id, shop.id, "EXTRA_PAYMENT", "10")

        dues = cash_flow.get_customer_dues_as_assets(shop.id)

        assert dues.total_dues == Decimal("75")
        [due] = dues.dues
        assert due.customer_id == customer.id
        assert due.customer_name == "Dana Customer"
        assert due.contact_info == "+1-555-0100"

    def test_partial_due_payment_leaves_remainder_owed(self, cash_flow, wallets, shop, customer):
        wallets.record_wallet_transaction(customer.id, shop.id, "ORDER_PAYMENT", "50")
        wallets.record_wallet_transaction(customer.id, shop.id, "DUE_PAYMENT", "30")

        dues = cash_flow.get_customer_dues_as_assets(shop.id)

        [due] = dues.dues
        assert due.customer_id == customer.id
        assert due.due_amount == Decimal("20")
        assert dues.total_dues == Decimal("20")

    def test_wallet_without_user_row(self, cash_flow, session, codec, shop):
        session.add(
            CustomerWallet(
                customer_id=uuid4(),
                shop_id=shop.id,
                balance=codec.encrypt(Decimal("-5")),
                loyalty_points=codec.encrypt_points(0),
            )
        )
        session.commit()

        [due] = cash_flow.get_customer_dues_as_assets(shop.id).dues

        assert due.customer_name == "Unknown Customer"
        assert due.contact_info == "No contact info"
        assert due.due_amount == Decimal("5")


class TestSync:
    def test_order_payment_synced(self, cash_flow, session, clock, shop, customer, make_order):
        order = make_order(shop.id, customer.id, payments=[("CASH", "42.50")], total="42.50")
        payment = order.payments[0]

        outcome = cash_flow.sync_order_payment(order.id, payment, shop.id, order.order_number, customer.id)

        assert outcome.synced is True
        entry = cash_flow.ledger.get_transaction(outcome.transaction_id)
        assert entry.description == f"Order #ORD-1 Payment (Customer ID: {customer.id})"
        assert entry.type == "ORDER_PAYMENT"
        assert entry.category == "SALES"
        assert entry.amount == Decimal("42.50")
        assert entry.date == clock.now()

    def test_walk_in_description(self, cash_flow, shop, make_order):
        order = make_order(shop.id, payments=[("CARD", "5")])

        outcome = cash_flow.sync_order_payment(order.id, order.payments[0], shop.id, "ORD-1")

        assert cash_flow.ledger.get_transaction(outcome.transaction_id).description == "Order #ORD-1 Payment"

    def test_due_payment_synced(self, cash_flow, clock, shop, customer):
        outcome = cash_flow.sync_due_payment(customer.id, shop.id, Decimal("30"))

        entry = cash_flow.ledger.get_transaction(outcome.transaction_id)
        assert entry.description == "Due Payment from Dana Customer"
        assert entry.type == "DUE_PAYMENT"
        assert entry.category == "SALES"

    def test_due_payment_unknown_customer_name(self, cash_flow, shop):
        outcome = cash_flow.sync_due_payment(uuid4(), shop.id, Decimal("30"))
        assert cash_flow.ledger.get_transaction(outcome.transaction_id).description == "Due Payment from Customer"

    def test_order_sync_failure_is_swallowed(
        self, cash_flow, session, monkeypatch, shop, make_order, captured_logs,
    ):
        order = make_order(shop.id, payments=[("CASH", "10")])

        def broken(**kwargs):
            raise RuntimeError("ledger down")

        monkeypatch.setattr(cash_flow.ledger, "append_transaction", broken)
        outcome = cash_flow.sync_order_payment(order.id, order.payments[0], shop.id, "ORD-1")

        assert outcome.synced is False
        assert "ledger down" in outcome.error
        assert session.scalars(select(Transaction)).all() == []
        failed = [r for r in captured_logs() if r["message"] == "order_payment_sync_failed"]
        assert failed[0]["order_id"] == str(order.id)

    def test_unloadable_payment_row_is_swallowed(
        self, cash_flow, session, shop, make_order, captured_logs,
    ):
        order = make_order(shop.id, payments=[("CASH", "10")])
        payment = order.payments[0]
        payment_id = payment.id
        session.expire(payment)
        session.expunge(payment)

        outcome = cash_flow.sync_order_payment(order.id, payment, shop.id, "ORD-1")

        assert outcome.synced is False
        assert outcome.transaction_id is None
        assert session.scalars(select(Transaction)).all() == []
        [failed] = [r for r in captured_logs() if r["message"] == "order_payment_sync_failed"]
        assert failed["payment_id"] == str(payment_id)

    def test_due_sync_failure_is_swallowed(self, cash_flow, shop, customer, captured_logs):
        outcome = cash_flow.sync_due_payment(customer.id, shop.id, "-3")

        assert outcome.synced is False
        assert outcome.transaction_id is None
        assert any(r["message"] == "due_payment_sync_failed" for r in captured_logs())
