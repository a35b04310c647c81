"""
Module: cashflow_kernel.models.cashflow
Responsibility: The shop money ledger -- cached shop balances, ledger
    transactions, recurring payment templates and upcoming obligations.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - ShopBalance is a cached projection; Payment and Transaction rows are
      the source of truth.  One ShopBalance per shop (uq_shop_balance_shop).
    - Transaction rows are append-only in normal flow.  Correction and
      deletion exist only as explicit administrative operations.
    - RecurringPayment.next_date only moves forward.
    - An UpcomingPayment is deleted exactly when its realised Transaction
      is written (same unit of work).
"""

from datetime import date, datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import Boolean, Date, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from cashflow_kernel.db.base import TrackedBase, UTCDateTime
from cashflow_kernel.db.types import EncryptedAmount


class TransactionType(str, Enum):
    ORDER_PAYMENT = "ORDER_PAYMENT"
    DUE_PAYMENT = "DUE_PAYMENT"
    EXTRA_PAYMENT = "EXTRA_PAYMENT"
    REFUND = "REFUND"
    EXPENSE_PAYMENT = "EXPENSE_PAYMENT"


class TransactionCategory(str, Enum):
    SHOP_RENT = "SHOP_RENT"
    UTILITIES = "UTILITIES"
    STOCK_PURCHASE = "STOCK_PURCHASE"
    STAFF_WAGES = "STAFF_WAGES"
    MARKETING = "MARKETING"
    SALES = "SALES"
    SERVICE_FEES = "SERVICE_FEES"
    DELIVERY_CHARGES = "DELIVERY_CHARGES"
    VAT_PAYMENT = "VAT_PAYMENT"
    INSURANCE = "INSURANCE"
    EQUIPMENT = "EQUIPMENT"
    INTERNET = "INTERNET"
    POS_SYSTEM_FEE = "POS_SYSTEM_FEE"
    OTHER = "OTHER"


class PaymentFrequency(str, Enum):
    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    BIWEEKLY = "BIWEEKLY"
    MONTHLY = "MONTHLY"
    QUARTERLY = "QUARTERLY"
    ANNUALLY = "ANNUALLY"


class PaymentType(str, Enum):
    ONE_TIME = "ONE_TIME"
    RECURRING = "RECURRING"


class ShopBalance(TrackedBase):
    __tablename__ = "shop_balances"

    __table_args__ = (
        UniqueConstraint("shop_id", name="uq_shop_balance_shop"),
    )

    shop_id: Mapped[UUID] = mapped_column(ForeignKey("shops.id"), nullable=False)
    cash_balance: Mapped[EncryptedAmount] = mapped_column(nullable=False, default="0")
    card_balance: Mapped[EncryptedAmount] = mapped_column(nullable=False, default="0")
    bank_balance: Mapped[EncryptedAmount] = mapped_column(nullable=False, default="0")


class Transaction(TrackedBase):
    """One money movement in a shop's cash-flow ledger."""

    __tablename__ = "transactions"

    __table_args__ = (
        Index("idx_transactions_shop_date", "shop_id", "date"),
        Index("idx_transactions_shop_type", "shop_id", "type"),
    )

    description: Mapped[str] = mapped_column(String(1000), nullable=False)
    amount: Mapped[EncryptedAmount] = mapped_column(nullable=False)
    date: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    shop_id: Mapped[UUID] = mapped_column(ForeignKey("shops.id"), nullable=False)
    type: Mapped[str] = mapped_column(String(30), nullable=False)
    category: Mapped[str] = mapped_column(String(30), nullable=False)
    is_recurring: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    recurring_payment: Mapped["RecurringPayment | None"] = relationship(
        back_populates="transaction", uselist=False,
    )

    def __repr__(self) -> str:
        return f"<Transaction {self.id} {self.type}/{self.category} shop={self.shop_id}>"


class RecurringPayment(TrackedBase):
    """Template for an obligation that repeats on a fixed cadence."""

    __tablename__ = "recurring_payments"

    __table_args__ = (
        Index("idx_recurring_next_date", "next_date"),
        Index("idx_recurring_shop", "shop_id"),
    )

    description: Mapped[str] = mapped_column(String(1000), nullable=False)
    amount: Mapped[EncryptedAmount] = mapped_column(nullable=False)
    frequency: Mapped[str] = mapped_column(String(20), nullable=False)
    next_date: Mapped[date] = mapped_column(Date, nullable=False)
    shop_id: Mapped[UUID] = mapped_column(ForeignKey("shops.id"), nullable=False)
    transaction_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("transactions.id", ondelete="SET NULL"), nullable=True,
    )

    transaction: Mapped["Transaction | None"] = relationship(back_populates="recurring_payment")

    def __repr__(self) -> str:
        return f"<RecurringPayment {self.id} {self.frequency} next={self.next_date}>"


class UpcomingPayment(TrackedBase):
    """A concrete, dated obligation still owed by the shop."""

    __tablename__ = "upcoming_payments"

    __table_args__ = (
        Index("idx_upcoming_shop_due", "shop_id", "due_date"),
    )

    description: Mapped[str] = mapped_column(String(1000), nullable=False)
    amount: Mapped[EncryptedAmount] = mapped_column(nullable=False)
    due_date: Mapped[date] = mapped_column(Date, nullable=False)
    payment_type: Mapped[str] = mapped_column(String(20), default=PaymentType.ONE_TIME.value, nullable=False)
    is_priority: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    shop_id: Mapped[UUID] = mapped_column(ForeignKey("shops.id"), nullable=False)
    # Explicit category wins over the configured payment-type mapping.
    category: Mapped[str | None] = mapped_column(String(30), nullable=True)
    # Cadence used when a standalone RECURRING payment rolls itself forward.
    frequency: Mapped[str | None] = mapped_column(String(20), nullable=True)
    # Set when the scheduler produced this row; that template owns the next cycle.
    recurring_payment_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("recurring_payments.id", ondelete="SET NULL"), nullable=True,
    )

    def __repr__(self) -> str:
        return f"<UpcomingPayment {self.id} {self.payment_type} due={self.due_date}>"
