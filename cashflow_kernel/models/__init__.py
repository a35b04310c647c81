"""ORM models for the cash-flow ledger."""

from cashflow_kernel.models.cashflow import (
    PaymentFrequency,
    PaymentType,
    RecurringPayment,
    ShopBalance,
    Transaction,
    TransactionCategory,
    TransactionType,
    UpcomingPayment,
)
from cashflow_kernel.models.order import (
    Order,
    OrderItem,
    OrderStatus,
    Payment,
    PaymentMethod,
    Product,
)
from cashflow_kernel.models.party import Shop, User, UserRole, UserShop
from cashflow_kernel.models.wallet import (
    CustomerWallet,
    WalletTransaction,
    WalletTransactionType,
)

__all__ = [
    "User",
    "UserRole",
    "Shop",
    "UserShop",
    "Product",
    "Order",
    "OrderItem",
    "OrderStatus",
    "Payment",
    "PaymentMethod",
    "CustomerWallet",
    "WalletTransaction",
    "WalletTransactionType",
    "ShopBalance",
    "Transaction",
    "TransactionType",
    "TransactionCategory",
    "RecurringPayment",
    "PaymentFrequency",
    "UpcomingPayment",
    "PaymentType",
]
