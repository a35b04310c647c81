"""
CashFlowIntegrationService -- bridges orders and wallets into the shop's
cash-flow ledger and assembles the comprehensive cash-flow report.

Responsibility:
    - Best-effort sync of order payments and due payments into the
      transaction ledger.
    - Customer dues (negative wallet balances) as shop assets.
    - The comprehensive report: balance, monthly income/expense, trends,
      dues, outstanding obligations, projections and health.

Architecture position:
    Services -- composes ShopBalanceService, TransactionLedgerService and
    PaymentSchedulerService with the pure ``cashflow_engines.cash_flow``
    aggregations.

Invariants enforced:
    - Sync calls run in their own unit of work after the caller's write
      committed.  Their failures are logged and returned as a SyncOutcome,
      never raised.
    - projected_balance = current - total_upcoming
    - adjusted_balance = current + total_dues - total_upcoming
    - Growth and progress figures that cannot be computed are reported as
      unavailable metrics.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, time, timedelta
from decimal import Decimal
from uuid import UUID

from sqlalchemy import inspect, select
from sqlalchemy.orm import Session

from cashflow_config.schema import CashFlowConfig
from cashflow_engines.cash_flow import (
    HealthStatus,
    LedgerEntry,
    Metric,
    MonthlyTrend,
    TypeSummary,
    daily_progress,
    daily_target,
    days_until,
    growth_metrics,
    health_status,
    month_start,
    monthly_trends,
    next_month_start,
    period_total,
    summarize_by_type,
)
from cashflow_engines.wallet_projection import DuesSummary, WalletBalance, summarize_dues
from cashflow_kernel.crypto import AmountCodec
from cashflow_kernel.db.types import ZERO
from cashflow_kernel.db.unit_of_work import DEFAULT_TIMEOUT_SECONDS
from cashflow_kernel.domain.clock import Clock, ensure_utc
from cashflow_kernel.models.cashflow import TransactionCategory, TransactionType
from cashflow_kernel.models.order import Payment
from cashflow_kernel.models.party import User
from cashflow_kernel.models.wallet import CustomerWallet
from cashflow_services.base import BaseService
from cashflow_services.payment_scheduler_service import (
    PaymentSchedulerService,
    UpcomingPaymentView,
)
from cashflow_services.shop_balance_service import ShopBalanceService
from cashflow_services.transaction_ledger_service import TransactionLedgerService


def _row_id(row: Payment) -> UUID | None:
    """Primary key from the identity map; never loads the row."""
    identity = inspect(row).identity
    return identity[0] if identity else None


@dataclass(frozen=True)
class SyncOutcome:
    """Result of a best-effort ledger sync."""

    synced: bool
    transaction_id: UUID | None = None
    error: str | None = None


@dataclass(frozen=True)
class CashFlowReport:
    shop_id: UUID
    generated_at: datetime
    current_balance: Decimal
    total_income: Decimal
    total_expenses: Decimal
    projected_balance: Decimal
    adjusted_balance: Decimal
    health_status: HealthStatus
    customer_dues: DuesSummary
    upcoming_payments: tuple[UpcomingPaymentView, ...]
    total_upcoming: Decimal
    recent_transactions: tuple[LedgerEntry, ...]
    transaction_summary: dict[str, TypeSummary]
    monthly_trends: tuple[MonthlyTrend, ...]
    transaction_count: int
    daily_target: Decimal
    days_until_next_payment: int
    daily_progress: Metric
    income_growth: Metric
    expense_growth: Metric

    def to_dict(self) -> dict[str, object]:
        return {
            "shop_id": self.shop_id,
            "generated_at": self.generated_at,
            "current_balance": self.current_balance,
            "total_income": self.total_income,
            "total_expenses": self.total_expenses,
            "projected_balance": self.projected_balance,
            "adjusted_balance": self.adjusted_balance,
            "health_status": self.health_status.value,
            "customer_dues": self.customer_dues.to_dict(),
            "upcoming_payments": [
                {
                    "id": p.id,
                    "description": p.description,
                    "amount": p.amount,
                    "due_date": p.due_date,
                    "payment_type": p.payment_type,
                    "is_priority": p.is_priority,
                }
                for p in self.upcoming_payments
            ],
            "total_upcoming": self.total_upcoming,
            "transactions": {
                "recent": [e.to_dict() for e in self.recent_transactions],
                "summary": {
                    t: {"count": s.count, "total": s.total}
                    for t, s in self.transaction_summary.items()
                },
                "monthly_trends": [t.to_dict() for t in self.monthly_trends],
                "count": self.transaction_count,
            },
            "daily_target": self.daily_target,
            "days_until_next_payment": self.days_until_next_payment,
            "daily_progress": self.daily_progress.to_dict(),
            "income_growth": self.income_growth.to_dict(),
            "expense_growth": self.expense_growth.to_dict(),
        }


class CashFlowIntegrationService(BaseService):
    _logger_name = "services.cash_flow"

    def __init__(
        self,
        session: Session,
        codec: AmountCodec,
        clock: Clock | None = None,
        config: CashFlowConfig | None = None,
        ledger: TransactionLedgerService | None = None,
        balances: ShopBalanceService | None = None,
        scheduler: PaymentSchedulerService | None = None,
        logger: logging.Logger | None = None,
        uow_timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    ):
        super().__init__(session, clock, logger, uow_timeout_seconds)
        self.codec = codec
        self.config = config or CashFlowConfig()
        self.ledger = ledger or TransactionLedgerService(
            session, codec, self.clock, uow_timeout_seconds=uow_timeout_seconds,
        )
        self.balances = balances or ShopBalanceService(
            session, codec, self.clock, uow_timeout_seconds=uow_timeout_seconds,
        )
        self.scheduler = scheduler or PaymentSchedulerService(
            session, codec, self.clock, ledger=self.ledger,
            uow_timeout_seconds=uow_timeout_seconds,
        )

    # ------------------------------------------------------------------
    # Best-effort sync
    # ------------------------------------------------------------------

    def sync_order_payment(
        self,
        order_id: UUID,
        payment: Payment,
        shop_id: UUID,
        order_number: str,
        customer_id: UUID | None = None,
    ) -> SyncOutcome:
        """Record one tendered payment as ORDER_PAYMENT / SALES income."""
        description = (
            f"Order #{order_number} Payment (Customer ID: {customer_id})"
            if customer_id
            else f"Order #{order_number} Payment"
        )
        payment_id = _row_id(payment)
        try:
            with self._unit_of_work("sync_order_payment"):
                txn = self.ledger.append_transaction(
                    shop_id=shop_id,
                    description=description,
                    amount=self.codec.decrypt(payment.amount),
                    type=TransactionType.ORDER_PAYMENT.value,
                    category=TransactionCategory.SALES.value,
                    when=payment.created_at,
                )
        except Exception as exc:
            self.logger.error(
                "order_payment_sync_failed",
                extra={
                    "order_id": str(order_id),
                    "payment_id": str(payment_id),
                    "shop_id": str(shop_id),
                    "error": str(exc),
                },
                exc_info=True,
            )
            return SyncOutcome(synced=False, error=str(exc) or type(exc).__name__)

        self.logger.info(
            "order_payment_synced",
            extra={
                "order_id": str(order_id),
                "payment_id": str(payment_id),
                "transaction_id": str(txn.id),
            },
        )
        return SyncOutcome(synced=True, transaction_id=txn.id)

    def sync_due_payment(
        self,
        customer_id: UUID,
        shop_id: UUID,
        amount: object,
        when: datetime | None = None,
    ) -> SyncOutcome:
        """Record a customer's due payment as DUE_PAYMENT / SALES income."""
        try:
            customer = self.session.get(User, customer_id)
            name = customer.name if customer is not None and customer.name else "Customer"
            with self._unit_of_work("sync_due_payment"):
                txn = self.ledger.append_transaction(
                    shop_id=shop_id,
                    description=f"Due Payment from {name}",
                    amount=amount,
                    type=TransactionType.DUE_PAYMENT.value,
                    category=TransactionCategory.SALES.value,
                    when=ensure_utc(when) if when else self.clock.now(),
                )
        except Exception as exc:
            self.logger.error(
                "due_payment_sync_failed",
                extra={
                    "customer_id": str(customer_id),
                    "shop_id": str(shop_id),
                    "error": str(exc),
                },
                exc_info=True,
            )
            return SyncOutcome(synced=False, error=str(exc) or type(exc).__name__)

        self.logger.info(
            "due_payment_synced",
            extra={
                "customer_id": str(customer_id),
                "shop_id": str(shop_id),
                "transaction_id": str(txn.id),
            },
        )
        return SyncOutcome(synced=True, transaction_id=txn.id)

    # ------------------------------------------------------------------
    # Dues
    # ------------------------------------------------------------------

    def get_customer_dues_as_assets(self, shop_id: UUID) -> DuesSummary:
        """Every negative wallet balance in the shop, as money owed to it."""
        rows = self.session.execute(
            select(CustomerWallet, User)
            .outerjoin(User, CustomerWallet.customer_id == User.id)
            .where(CustomerWallet.shop_id == shop_id)
            .order_by(CustomerWallet.created_at, CustomerWallet.id)
        ).all()
        balances = self.codec.decrypt_many([wallet.balance for wallet, _ in rows])
        summary = summarize_dues(
            WalletBalance(
                customer_id=wallet.customer_id,
                balance=balance,
                customer_name=(user.name if user is not None and user.name else "Unknown Customer"),
                contact_info=(user.contact_info if user is not None else "No contact info"),
            )
            for (wallet, user), balance in zip(rows, balances)
        )
        self.logger.debug(
            "customer_dues_computed",
            extra={
                "shop_id": str(shop_id),
                "wallet_count": len(rows),
                "due_count": summary.count,
                "total_dues": summary.total_dues,
            },
        )
        return summary

    # ------------------------------------------------------------------
    # Report
    # ------------------------------------------------------------------

    def get_comprehensive_cash_flow(self, shop_id: UUID) -> CashFlowReport:
        now = self.clock.now()
        today = self.clock.today()
        income_types = self.config.income_types
        expense_types = self.config.expense_types

        current_balance = self.balances.get_current_balance(shop_id)
        entries = self.ledger.entries_for_shop(shop_id)

        this_month, next_month = month_start(now), next_month_start(now)
        total_income = period_total(entries, income_types, this_month, next_month)
        total_expenses = period_total(entries, expense_types, this_month, next_month)

        trends = monthly_trends(entries, income_types, expense_types)
        income_growth, expense_growth = growth_metrics(trends)

        dues = self.get_customer_dues_as_assets(shop_id)
        upcoming = self.scheduler.outstanding_for_shop(shop_id)
        total_upcoming = sum((p.amount for p in upcoming), ZERO)

        projected = current_balance - total_upcoming
        adjusted = current_balance + dues.total_dues - total_upcoming

        next_due = next((p for p in upcoming if p.due_date >= today), None)
        days = (
            days_until(now, next_due.due_date)
            if next_due is not None
            else self.config.default_days_until_next_payment
        )
        target = daily_target(total_upcoming, days)

        day_start = datetime.combine(today, time.min, tzinfo=now.tzinfo)
        today_income = period_total(entries, income_types, day_start, day_start + timedelta(days=1))
        progress = daily_progress(today_income, target)

        report = CashFlowReport(
            shop_id=shop_id,
            generated_at=now,
            current_balance=current_balance,
            total_income=total_income,
            total_expenses=total_expenses,
            projected_balance=projected,
            adjusted_balance=adjusted,
            health_status=health_status(adjusted),
            customer_dues=dues,
            upcoming_payments=tuple(upcoming),
            total_upcoming=total_upcoming,
            recent_transactions=tuple(entries[: self.config.recent_transactions_limit]),
            transaction_summary=summarize_by_type(entries),
            monthly_trends=tuple(trends),
            transaction_count=len(entries),
            daily_target=target,
            days_until_next_payment=days,
            daily_progress=progress,
            income_growth=income_growth,
            expense_growth=expense_growth,
        )
        self.logger.info(
            "cash_flow_report_generated",
            extra={
                "shop_id": str(shop_id),
                "transaction_count": report.transaction_count,
                "health_status": report.health_status.value,
                "adjusted_balance": report.adjusted_balance,
            },
        )
        return report
