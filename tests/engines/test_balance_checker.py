"""Tests for shop balance totals and discrepancy detection."""

from decimal import Decimal

from cashflow_engines.balance_checker import (
    PaymentLine,
    find_discrepancies,
    total_by_method,
)

TOLERANCE = Decimal("0.01")


class TestTotalByMethod:
    def test_all_methods_present(self):
        totals = total_by_method([])
        assert totals == {
            "CASH": Decimal("0"),
            "CARD": Decimal("0"),
            "BANK": Decimal("0"),
            "WALLET": Decimal("0"),
        }

    def test_sums_per_method(self):
        totals = total_by_method([
            PaymentLine("CASH", Decimal("500")),
            PaymentLine("CASH", Decimal("450")),
            PaymentLine("CARD", Decimal("20.25")),
            PaymentLine("WALLET", Decimal("5")),
        ])

        assert totals["CASH"] == Decimal("950")
        assert totals["CARD"] == Decimal("20.25")
        assert totals["WALLET"] == Decimal("5")


class TestFindDiscrepancies:
    def test_cash_mismatch_reported(self):
        findings = find_discrepancies(
            {"cash_balance": Decimal("1000"), "card_balance": Decimal("0"), "bank_balance": Decimal("0")},
            {"CASH": Decimal("950")},
            TOLERANCE,
        )

        assert len(findings) == 1
        assert findings[0].field == "cash_balance"
        assert findings[0].difference == Decimal("50")
        assert findings[0].to_dict()["method"] == "CASH"

    def test_within_tolerance_is_clean(self):
        findings = find_discrepancies(
            {"cash_balance": Decimal("100.01")},
            {"CASH": Decimal("100")},
            TOLERANCE,
        )
        assert findings == []

    def test_wallet_has_no_sub_balance(self):
        findings = find_discrepancies({}, {"WALLET": Decimal("75")}, TOLERANCE)
        assert findings == []
