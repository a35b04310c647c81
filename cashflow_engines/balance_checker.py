"""
Module: cashflow_engines.balance_checker
Responsibility:
    Recompute a shop's per-method totals from its payment ledger and compare
    them with the cached ShopBalance sub-balances.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - A discrepancy is a finding, never a correction: this module returns
      findings and has no way to change the cached values.
    - Only differences strictly greater than the tolerance are reported.
    - WALLET payments are totalled but have no cached sub-balance to
      compare against.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, Mapping

from cashflow_engines.tracer import traced_engine
from cashflow_kernel.models.order import PaymentMethod

_ZERO = Decimal("0")

# Cached sub-balance field -> payment method it mirrors.
SUB_BALANCE_METHODS: tuple[tuple[str, str], ...] = (
    ("cash_balance", PaymentMethod.CASH.value),
    ("card_balance", PaymentMethod.CARD.value),
    ("bank_balance", PaymentMethod.BANK.value),
)


@dataclass(frozen=True)
class PaymentLine:
    method: str
    amount: Decimal


@dataclass(frozen=True)
class BalanceDiscrepancy:
    field: str
    method: str
    cached: Decimal
    calculated: Decimal

    @property
    def difference(self) -> Decimal:
        return self.cached - self.calculated

    def to_dict(self) -> dict[str, object]:
        return {
            "field": self.field,
            "method": self.method,
            "cached": self.cached,
            "calculated": self.calculated,
            "difference": self.difference,
        }


def empty_totals() -> dict[str, Decimal]:
    return {method.value: _ZERO for method in PaymentMethod}


@traced_engine("balance_totals", "1.0")
def total_by_method(payments: Iterable[PaymentLine]) -> dict[str, Decimal]:
    """Sum payment amounts per method.  All four methods are always present."""
    totals = empty_totals()
    for line in payments:
        totals[line.method] = totals.get(line.method, _ZERO) + line.amount
    return totals


@traced_engine("balance_checker", "1.0")
def find_discrepancies(
    cached: Mapping[str, Decimal],
    calculated: Mapping[str, Decimal],
    tolerance: Decimal,
) -> list[BalanceDiscrepancy]:
    """Compare each cached sub-balance with its recomputed method total."""
    findings: list[BalanceDiscrepancy] = []
    for field, method in SUB_BALANCE_METHODS:
        cached_value = cached.get(field, _ZERO)
        calculated_value = calculated.get(method, _ZERO)
        if abs(cached_value - calculated_value) > tolerance:
            findings.append(
                BalanceDiscrepancy(
                    field=field,
                    method=method,
                    cached=cached_value,
                    calculated=calculated_value,
                )
            )
    return findings
