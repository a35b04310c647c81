"""
ShopBalanceService -- cached shop balances checked against the payment ledger.

Responsibility:
    Decrypt a shop's cached cash/card/bank sub-balances, independently
    recompute per-method totals from every payment on the shop's orders,
    and report any difference above tolerance as a finding.  Also owns the
    two write paths that touch the cache: per-payment increments during
    order settlement and the administrative cash reset.

Architecture position:
    Services -- imperative shell over ``cashflow_engines.balance_checker``.

Invariants enforced:
    - The cache is never auto-corrected from the ledger.  Discrepancies are
      logged as ``shop_balance_discrepancy`` and returned.
    - Each sub-balance is decoded independently; one bad field resolves to
      0 without hiding the other two.
    - A shop without a ShopBalance row yields an all-zero report.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from cashflow_engines.balance_checker import (
    BalanceDiscrepancy,
    PaymentLine,
    empty_totals,
    find_discrepancies,
    total_by_method,
)
from cashflow_kernel.crypto import AmountCodec
from cashflow_kernel.db.types import ZERO, money_from_any
from cashflow_kernel.db.unit_of_work import DEFAULT_TIMEOUT_SECONDS
from cashflow_kernel.domain.clock import Clock
from cashflow_kernel.exceptions import InvalidAmountError
from cashflow_kernel.models.cashflow import ShopBalance
from cashflow_kernel.models.order import Order, Payment, PaymentMethod
from cashflow_services.access import MembershipAccessChecker, ShopAccessChecker
from cashflow_services.base import BaseService

_METHOD_FIELDS = {
    PaymentMethod.CASH.value: "cash_balance",
    PaymentMethod.CARD.value: "card_balance",
    PaymentMethod.BANK.value: "bank_balance",
}

DEFAULT_TOLERANCE = Decimal("1.00")


@dataclass(frozen=True)
class SubBalances:
    cash_balance: Decimal = ZERO
    card_balance: Decimal = ZERO
    bank_balance: Decimal = ZERO

    def as_mapping(self) -> dict[str, Decimal]:
        return {
            "cash_balance": self.cash_balance,
            "card_balance": self.card_balance,
            "bank_balance": self.bank_balance,
        }


@dataclass(frozen=True)
class PaymentView:
    id: UUID
    order_id: UUID
    order_number: str
    customer_id: UUID | None
    amount: Decimal
    method: str
    reference: str | None
    created_at: datetime


@dataclass(frozen=True)
class ShopBalanceReport:
    shop_id: UUID
    balance: SubBalances
    payments: tuple[PaymentView, ...] = ()
    calculated_totals: dict[str, Decimal] = field(default_factory=empty_totals)
    discrepancies: tuple[BalanceDiscrepancy, ...] = ()

    @property
    def is_consistent(self) -> bool:
        return not self.discrepancies


class ShopBalanceService(BaseService):
    """Read-side reconciler plus the cache's sanctioned write paths."""

    _logger_name = "services.shop_balance"

    def __init__(
        self,
        session: Session,
        codec: AmountCodec,
        clock: Clock | None = None,
        tolerance: Decimal = DEFAULT_TOLERANCE,
        access: ShopAccessChecker | None = None,
        logger: logging.Logger | None = None,
        uow_timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    ):
        super().__init__(session, clock, logger, uow_timeout_seconds)
        self.codec = codec
        self.tolerance = tolerance
        self.access = access or MembershipAccessChecker(session)

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    def get_shop_balance(self, shop_id: UUID) -> ShopBalanceReport:
        row = self._balance_row(shop_id)
        if row is None:
            self.logger.info("shop_balance_missing", extra={"shop_id": str(shop_id)})
            return ShopBalanceReport(shop_id=shop_id, balance=SubBalances())

        balance = self._decode_balances(row)
        payments = self._payments_for_shop(shop_id)
        calculated = total_by_method(
            PaymentLine(method=p.method, amount=p.amount) for p in payments
        )
        findings = find_discrepancies(balance.as_mapping(), calculated, self.tolerance)
        for finding in findings:
            self.logger.warning(
                "shop_balance_discrepancy",
                extra={
                    "shop_id": str(shop_id),
                    "field": finding.field,
                    "cached": finding.cached,
                    "calculated": finding.calculated,
                    "difference": finding.difference,
                    "tolerance": self.tolerance,
                },
            )

        return ShopBalanceReport(
            shop_id=shop_id,
            balance=balance,
            payments=tuple(payments),
            calculated_totals=calculated,
            discrepancies=tuple(findings),
        )

    def get_current_balance(self, shop_id: UUID) -> Decimal:
        """Headline balance: the cash sub-balance, 0 for a shop with no row."""
        row = self._balance_row(shop_id)
        if row is None:
            return ZERO
        return self.codec.decrypt(row.cash_balance)

    def verify_user_shop_access(self, user_id: UUID, shop_id: UUID) -> bool:
        return self.access.has_access(user_id, shop_id)

    # ------------------------------------------------------------------
    # Write side
    # ------------------------------------------------------------------

    def apply_payment(self, shop_id: UUID, method: str, amount: Decimal) -> None:
        """
        Increment the sub-balance mirroring ``method`` by ``amount``.

        Runs inside the caller's unit of work (flush only).  WALLET
        payments move no shop money and are ignored.
        """
        field_name = _METHOD_FIELDS.get(method)
        if field_name is None:
            return
        row = self._balance_row(shop_id) or self._create_row(shop_id)
        current = self.codec.decrypt(getattr(row, field_name))
        setattr(row, field_name, self.codec.encrypt(current + amount))
        self.session.flush()

    def reset_cash_balance(self, shop_id: UUID, new_balance: object) -> SubBalances:
        """
        Administrative override of the cached cash sub-balance.

        This is the only sanctioned way to change the cache without a
        payment; it is logged at warning level with both values.
        """
        try:
            amount = money_from_any(new_balance)
        except ValueError as exc:
            raise InvalidAmountError("new_balance", new_balance, str(exc)) from exc

        with self._unit_of_work("reset_cash_balance"):
            row = self._balance_row(shop_id) or self._create_row(shop_id)
            previous = self.codec.decrypt(row.cash_balance)
            row.cash_balance = self.codec.encrypt(amount)

        self.logger.warning(
            "shop_cash_balance_reset",
            extra={"shop_id": str(shop_id), "previous": previous, "new_balance": amount},
        )
        return self._decode_balances(row)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _balance_row(self, shop_id: UUID) -> ShopBalance | None:
        return self.session.scalar(select(ShopBalance).where(ShopBalance.shop_id == shop_id))

    def _create_row(self, shop_id: UUID) -> ShopBalance:
        zero = self.codec.encrypt(ZERO)
        row = ShopBalance(
            shop_id=shop_id,
            cash_balance=zero,
            card_balance=zero,
            bank_balance=zero,
        )
        self.session.add(row)
        self.session.flush()
        return row

    def _decode_balances(self, row: ShopBalance) -> SubBalances:
        cash, card, bank = self.codec.decrypt_many(
            [row.cash_balance, row.card_balance, row.bank_balance]
        )
        return SubBalances(cash_balance=cash, card_balance=card, bank_balance=bank)

    def _payments_for_shop(self, shop_id: UUID) -> list[PaymentView]:
        rows = self.session.execute(
            select(Payment, Order.order_number, Order.customer_id)
            .join(Order, Payment.order_id == Order.id)
            .where(Order.shop_id == shop_id)
            .order_by(Payment.created_at.desc(), Payment.id)
        ).all()
        amounts = self.codec.decrypt_many([payment.amount for payment, _, _ in rows])
        return [
            PaymentView(
                id=payment.id,
                order_id=payment.order_id,
                order_number=order_number,
                customer_id=customer_id,
                amount=amount,
                method=payment.method,
                reference=payment.reference,
                created_at=payment.created_at,
            )
            for (payment, order_number, customer_id), amount in zip(rows, amounts)
        ]
