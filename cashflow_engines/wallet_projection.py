"""
Module: cashflow_engines.wallet_projection
Responsibility:
    Derive a customer wallet's balance, loyalty points and per-order
    modification buckets from its append-only movement history, and
    classify wallet balances into dues and credits.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  Amounts arrive already
    decrypted; this module never sees ciphertext.

Invariants enforced:
    - balance == sum(sign(type) * amount) over balance-affecting movements
      (ORDER_PAYMENT -1, DUE_PAYMENT +1, EXTRA_PAYMENT +1).
    - loyalty_points == sum of LOYALTY_POINTS amounts.
    - Per-order buckets only include movements tagged with that order; an
      order with no movements gets four zero buckets.

Usage:
    movements = [WalletMovement("ORDER_PAYMENT", Decimal("50"), order_id)]
    projection = project_wallet(movements)   # balance == Decimal("-50")
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Sequence
from uuid import UUID

from cashflow_engines.tracer import traced_engine
from cashflow_kernel.models.wallet import WalletTransactionType

_ZERO = Decimal("0")


@dataclass(frozen=True)
class WalletMovement:
    """A decrypted wallet transaction.  ``amount`` is a non-negative magnitude."""

    type: str
    amount: Decimal
    order_id: UUID | None = None

    @property
    def signed_amount(self) -> Decimal:
        return self.amount * WalletTransactionType(self.type).balance_sign


@dataclass(frozen=True)
class WalletProjection:
    balance: Decimal
    loyalty_points: int

    @property
    def due_amount(self) -> Decimal:
        return -self.balance if self.balance < 0 else _ZERO

    @property
    def extra_balance(self) -> Decimal:
        return self.balance if self.balance > 0 else _ZERO


@dataclass(frozen=True)
class WalletModifications:
    """How one order moved the wallet."""

    wallet_used: Decimal = _ZERO
    due_paid: Decimal = _ZERO
    extra_added: Decimal = _ZERO
    loyalty_gained: Decimal = _ZERO

    @property
    def net_balance_effect(self) -> Decimal:
        return self.due_paid + self.extra_added - self.wallet_used

    def to_dict(self) -> dict[str, Decimal]:
        return {
            "wallet_used": self.wallet_used,
            "due_paid": self.due_paid,
            "extra_added": self.extra_added,
            "loyalty_gained": self.loyalty_gained,
        }


@traced_engine("wallet_projection", "1.0")
def project_wallet(movements: Iterable[WalletMovement]) -> WalletProjection:
    """Recompute balance and points from the full movement history."""
    balance = _ZERO
    points = _ZERO
    for movement in movements:
        if movement.type == WalletTransactionType.LOYALTY_POINTS.value:
            points += movement.amount
        else:
            balance += movement.signed_amount
    return WalletProjection(
        balance=balance,
        loyalty_points=int(points.to_integral_value(rounding=ROUND_HALF_UP)),
    )


def modifications_for(movements: Iterable[WalletMovement]) -> WalletModifications:
    """Reduce movements into the four buckets."""
    totals: dict[str, Decimal] = defaultdict(lambda: _ZERO)
    for movement in movements:
        totals[movement.type] += movement.amount
    return WalletModifications(
        wallet_used=totals[WalletTransactionType.ORDER_PAYMENT.value],
        due_paid=totals[WalletTransactionType.DUE_PAYMENT.value],
        extra_added=totals[WalletTransactionType.EXTRA_PAYMENT.value],
        loyalty_gained=totals[WalletTransactionType.LOYALTY_POINTS.value],
    )


def modifications_by_order(
    movements: Iterable[WalletMovement],
    order_ids: Sequence[UUID],
) -> dict[UUID, WalletModifications]:
    """Bucket movements per order.  Every requested order gets an entry."""
    grouped: dict[UUID, list[WalletMovement]] = defaultdict(list)
    for movement in movements:
        if movement.order_id is not None:
            grouped[movement.order_id].append(movement)
    return {order_id: modifications_for(grouped.get(order_id, ())) for order_id in order_ids}


# ---------------------------------------------------------------------------
# Dues
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class WalletBalance:
    customer_id: UUID
    balance: Decimal
    customer_name: str = "Unknown Customer"
    contact_info: str = "No contact info"


@dataclass(frozen=True)
class CustomerDue:
    customer_id: UUID
    customer_name: str
    contact_info: str
    balance: Decimal
    due_amount: Decimal
    is_due: bool

    def to_dict(self) -> dict[str, object]:
        return {
            "customer_id": self.customer_id,
            "customer_name": self.customer_name,
            "contact_info": self.contact_info,
            "balance": self.balance,
            "due_amount": self.due_amount,
            "is_due": self.is_due,
        }


@dataclass(frozen=True)
class DuesSummary:
    total_dues: Decimal
    dues: tuple[CustomerDue, ...] = field(default_factory=tuple)

    @property
    def count(self) -> int:
        return len(self.dues)

    def to_dict(self) -> dict[str, object]:
        return {
            "total_dues": self.total_dues,
            "dues_list": [d.to_dict() for d in self.dues],
            "count": self.count,
        }


@traced_engine("customer_dues", "1.0")
def summarize_dues(balances: Iterable[WalletBalance]) -> DuesSummary:
    """Negative wallet balances are dues owed to the shop; sum and list them."""
    dues: list[CustomerDue] = []
    total = _ZERO
    for wb in balances:
        if wb.balance >= 0:
            continue
        due_amount = -wb.balance
        total += due_amount
        dues.append(
            CustomerDue(
                customer_id=wb.customer_id,
                customer_name=wb.customer_name,
                contact_info=wb.contact_info,
                balance=wb.balance,
                due_amount=due_amount,
                is_due=True,
            )
        )
    return DuesSummary(total_dues=total, dues=tuple(dues))
