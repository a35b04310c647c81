"""
Module: cashflow_kernel.models.order
Responsibility: Orders, their line items, tendered payments and the
    products they reference.
Architecture position: Kernel > Models.  May import from db/ only.

Every monetary column is an EncryptedAmount string; decode it through the
amount codec, never with ``Decimal(...)`` directly.
"""

from enum import Enum
from uuid import UUID

from sqlalchemy import ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from cashflow_kernel.db.base import TrackedBase
from cashflow_kernel.db.types import EncryptedAmount


class OrderStatus(str, Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    REFUNDED = "REFUNDED"


class PaymentMethod(str, Enum):
    CASH = "CASH"
    CARD = "CARD"
    BANK = "BANK"
    WALLET = "WALLET"


class Product(TrackedBase):
    __tablename__ = "products"

    shop_id: Mapped[UUID] = mapped_column(ForeignKey("shops.id"), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    warranty_months: Mapped[int | None] = mapped_column(Integer, nullable=True)


class Order(TrackedBase):
    """A completed (or otherwise) sale at a shop."""

    __tablename__ = "orders"

    __table_args__ = (
        Index("idx_orders_customer_shop", "customer_id", "shop_id"),
        Index("idx_orders_shop_status", "shop_id", "status"),
    )

    order_number: Mapped[str] = mapped_column(String(50), nullable=False)
    shop_id: Mapped[UUID] = mapped_column(ForeignKey("shops.id"), nullable=False)
    customer_id: Mapped[UUID | None] = mapped_column(ForeignKey("users.id"), nullable=True)
    status: Mapped[str] = mapped_column(String(20), default=OrderStatus.COMPLETED.value, nullable=False)

    subtotal: Mapped[EncryptedAmount] = mapped_column(nullable=False)
    discount: Mapped[EncryptedAmount] = mapped_column(nullable=False, default="0")
    total: Mapped[EncryptedAmount] = mapped_column(nullable=False)
    paid: Mapped[EncryptedAmount] = mapped_column(nullable=False)
    payment_due: Mapped[EncryptedAmount] = mapped_column(nullable=False, default="0")
    note: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    items: Mapped[list["OrderItem"]] = relationship(
        back_populates="order", cascade="all, delete-orphan",
    )
    payments: Mapped[list["Payment"]] = relationship(
        back_populates="order", cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<Order {self.order_number} shop={self.shop_id} status={self.status}>"


class OrderItem(TrackedBase):
    __tablename__ = "order_items"

    order_id: Mapped[UUID] = mapped_column(ForeignKey("orders.id"), nullable=False)
    product_id: Mapped[UUID] = mapped_column(ForeignKey("products.id"), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    original_price: Mapped[EncryptedAmount] = mapped_column(nullable=False)
    selling_price: Mapped[EncryptedAmount] = mapped_column(nullable=False)

    order: Mapped["Order"] = relationship(back_populates="items")
    product: Mapped["Product"] = relationship()


class Payment(TrackedBase):
    """One tender against an order.  Source of truth for shop balances."""

    __tablename__ = "payments"

    __table_args__ = (
        Index("idx_payments_order", "order_id"),
    )

    order_id: Mapped[UUID] = mapped_column(ForeignKey("orders.id"), nullable=False)
    amount: Mapped[EncryptedAmount] = mapped_column(nullable=False)
    method: Mapped[str] = mapped_column(String(20), nullable=False)
    reference: Mapped[str | None] = mapped_column(String(200), nullable=True)

    order: Mapped["Order"] = relationship(back_populates="payments")

    def __repr__(self) -> str:
        return f"<Payment {self.id} {self.method} order={self.order_id}>"
