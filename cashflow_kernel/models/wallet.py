"""
Module: cashflow_kernel.models.wallet
Responsibility: Customer wallets and their append-only transaction history.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - One wallet per (customer_id, shop_id) (uq_wallet_customer_shop).
    - CustomerWallet.balance and loyalty_points are cached projections of
      the WalletTransaction rows for the same pair; they are rewritten
      only by WalletLedgerService after appending a transaction.
    - WalletTransaction.amount is a non-negative magnitude; the sign of
      its effect on the balance is a function of ``type`` (see
      WalletTransactionType.balance_sign).
"""

from datetime import datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from cashflow_kernel.db.base import TrackedBase, UTCDateTime
from cashflow_kernel.db.types import EncryptedAmount


class WalletTransactionType(str, Enum):
    """Kinds of wallet movement.

    ORDER_PAYMENT   wallet spent on an order (balance goes down, may go
                    negative: that is a due)
    DUE_PAYMENT     customer pays off a due (balance goes up)
    EXTRA_PAYMENT   overpayment parked in the wallet (balance goes up)
    LOYALTY_POINTS  points earned; affects loyalty_points, not balance
    """

    ORDER_PAYMENT = "ORDER_PAYMENT"
    DUE_PAYMENT = "DUE_PAYMENT"
    EXTRA_PAYMENT = "EXTRA_PAYMENT"
    LOYALTY_POINTS = "LOYALTY_POINTS"

    @property
    def balance_sign(self) -> int:
        if self is WalletTransactionType.ORDER_PAYMENT:
            return -1
        if self is WalletTransactionType.LOYALTY_POINTS:
            return 0
        return 1


class CustomerWallet(TrackedBase):
    __tablename__ = "customer_wallets"

    __table_args__ = (
        UniqueConstraint("customer_id", "shop_id", name="uq_wallet_customer_shop"),
        Index("idx_wallets_shop", "shop_id"),
    )

    customer_id: Mapped[UUID] = mapped_column(ForeignKey("users.id"), nullable=False)
    shop_id: Mapped[UUID] = mapped_column(ForeignKey("shops.id"), nullable=False)
    balance: Mapped[EncryptedAmount] = mapped_column(nullable=False, default="0")
    loyalty_points: Mapped[EncryptedAmount] = mapped_column(nullable=False, default="0")

    def __repr__(self) -> str:
        return f"<CustomerWallet customer={self.customer_id} shop={self.shop_id}>"


class WalletTransaction(TrackedBase):
    """Immutable wallet movement, optionally tied to the order that caused it."""

    __tablename__ = "wallet_transactions"

    __table_args__ = (
        Index("idx_wallet_tx_pair", "customer_id", "shop_id"),
        Index("idx_wallet_tx_order", "order_id"),
    )

    customer_id: Mapped[UUID] = mapped_column(ForeignKey("users.id"), nullable=False)
    shop_id: Mapped[UUID] = mapped_column(ForeignKey("shops.id"), nullable=False)
    type: Mapped[str] = mapped_column(String(20), nullable=False)
    amount: Mapped[EncryptedAmount] = mapped_column(nullable=False)
    order_id: Mapped[UUID | None] = mapped_column(ForeignKey("orders.id"), nullable=True)
    occurred_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)

    def __repr__(self) -> str:
        return f"<WalletTransaction {self.type} customer={self.customer_id} order={self.order_id}>"
