"""
Tests for ShopBalanceService.

Covers:
- Missing ShopBalance row yields zeros
- Discrepancy between cached cash and the payment ledger is reported and
  logged, never corrected
- Per-method totals across orders
- apply_payment / reset_cash_balance write paths
- Membership-based access check
"""

from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import select

from cashflow_kernel.exceptions import InvalidAmountError
from cashflow_kernel.models.cashflow import ShopBalance
from cashflow_kernel.models.party import Shop
from cashflow_services.shop_balance_service import ShopBalanceService


@pytest.fixture
def service(session, codec, clock):
    return ShopBalanceService(session, codec, clock=clock)


def _seed_balance(session, codec, shop_id, cash="0", card="0", bank="0"):
    session.add(
        ShopBalance(
            shop_id=shop_id,
            cash_balance=codec.encrypt(Decimal(cash)),
            card_balance=codec.encrypt(Decimal(card)),
            bank_balance=codec.encrypt(Decimal(bank)),
        )
    )
    session.commit()


class TestGetShopBalance:
    def test_missing_row_yields_zeros(self, service, shop, make_order):
        make_order(shop.id, payments=[("CASH", "100")])

        report = service.get_shop_balance(shop.id)

        assert report.balance.as_mapping() == {
            "cash_balance": Decimal("0"),
            "card_balance": Decimal("0"),
            "bank_balance": Decimal("0"),
        }
        assert report.payments == ()
        assert report.is_consistent

    def test_cash_discrepancy_is_reported_not_corrected(
        self, service, session, codec, shop, make_order, captured_logs,
    ):
        _seed_balance(session, codec, shop.id, cash="1000")
        make_order(shop.id, payments=[("CASH", "500")], order_number="ORD-1")
        make_order(shop.id, payments=[("CASH", "450")], order_number="ORD-2")

        report = service.get_shop_balance(shop.id)

        assert report.calculated_totals["CASH"] == Decimal("950")
        assert len(report.discrepancies) == 1
        finding = report.discrepancies[0]
        assert finding.field == "cash_balance"
        assert finding.difference == Decimal("50")

        logged = [r for r in captured_logs() if r["message"] == "shop_balance_discrepancy"]
        assert logged and logged[0]["difference"] == "50.00"

        # The cache is untouched
        assert service.get_current_balance(shop.id) == Decimal("1000")

    def test_consistent_shop(self, service, session, codec, shop, make_order):
        _seed_balance(session, codec, shop.id, cash="20", card="30")
        make_order(shop.id, payments=[("CASH", "20"), ("CARD", "30"), ("WALLET", "5")])

        report = service.get_shop_balance(shop.id)

        assert report.is_consistent
        assert report.calculated_totals["WALLET"] == Decimal("5")
        assert {p.method for p in report.payments} == {"CASH", "CARD", "WALLET"}
        assert all(p.order_number == "ORD-1" for p in report.payments)

    def test_other_shops_payments_are_excluded(self, service, session, codec, shop, make_order):
        other = Shop(name="Other")
        session.add(other)
        session.commit()
        _seed_balance(session, codec, shop.id, cash="10")
        make_order(shop.id, payments=[("CASH", "10")])
        make_order(other.id, payments=[("CASH", "999")], order_number="ORD-9")

        assert service.get_shop_balance(shop.id).is_consistent

    def test_undecodable_field_does_not_hide_others(self, service, session, codec, shop):
        session.add(
            ShopBalance(
                shop_id=shop.id,
                cash_balance="corrupted!",
                card_balance=codec.encrypt("12"),
                bank_balance=codec.encrypt("3"),
            )
        )
        session.commit()

        balance = service.get_shop_balance(shop.id).balance

        assert balance.cash_balance == Decimal("0")
        assert balance.card_balance == Decimal("12")
        assert balance.bank_balance == Decimal("3")


class TestWritePaths:
    def test_apply_payment_creates_and_increments(self, service, session, shop):
        service.apply_payment(shop.id, "CASH", Decimal("10"))
        service.apply_payment(shop.id, "CASH", Decimal("5.25"))
        service.apply_payment(shop.id, "WALLET", Decimal("99"))
        session.commit()

        rows = session.scalars(select(ShopBalance).where(ShopBalance.shop_id == shop.id)).all()
        assert len(rows) == 1
        assert service.get_current_balance(shop.id) == Decimal("15.25")

    def test_reset_cash_balance(self, service, session, codec, shop, captured_logs):
        _seed_balance(session, codec, shop.id, cash="40", card="7")

        balances = service.reset_cash_balance(shop.id, "1250.00")

        assert balances.cash_balance == Decimal("1250.00")
        assert balances.card_balance == Decimal("7")
        reset = [r for r in captured_logs() if r["message"] == "shop_cash_balance_reset"]
        assert reset[0]["level"] == "WARNING"
        assert reset[0]["previous"] == "40.00"

    def test_reset_rejects_non_numeric(self, service, shop):
        with pytest.raises(InvalidAmountError):
            service.reset_cash_balance(shop.id, "lots")


class TestAccess:
    def test_member_has_access(self, service, owner, shop):
        assert service.verify_user_shop_access(owner.id, shop.id) is True

    def test_stranger_has_no_access(self, service, shop):
        assert service.verify_user_shop_access(uuid4(), shop.id) is False
