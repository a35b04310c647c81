"""
cashflow_services -- Package init and public API.

Responsibility:
    Request-scoped services that compose the pure engines
    (cashflow_engines/) with a SQLAlchemy session, the amount codec and an
    injected clock.  This is the only layer that holds sessions.

Architecture position:
    Services -- imperative shell over engines + kernel.

    Dependency direction (enforced by tests/architecture/test_layer_boundary.py):
        cashflow_services/ -> cashflow_engines/  (allowed)
        cashflow_services/ -> cashflow_kernel/   (allowed)
        cashflow_services/ -> cashflow_config/   (allowed)
        cashflow_engines/  -> cashflow_services/ (FORBIDDEN)
        cashflow_kernel/   -> cashflow_services/ (FORBIDDEN)

Invariants enforced:
    - Services are stateless between calls; every collaborator is passed
      to the constructor.
    - Public writes commit through ``unit_of_work``.
"""

from cashflow_services.access import MembershipAccessChecker, ShopAccessChecker
from cashflow_services.cash_flow_service import (
    CashFlowIntegrationService,
    CashFlowReport,
    SyncOutcome,
)
from cashflow_services.order_settlement_service import (
    LineItem,
    OrderSettlementService,
    SettledOrder,
    Tender,
)
from cashflow_services.pagination import Page
from cashflow_services.payment_scheduler_service import (
    PaymentSchedulerService,
    PaymentSettlement,
    RecurringPaymentView,
    UpcomingPaymentView,
)
from cashflow_services.shop_balance_service import ShopBalanceReport, ShopBalanceService
from cashflow_services.transaction_ledger_service import TransactionLedgerService
from cashflow_services.wallet_ledger_service import (
    OrderHistory,
    ShopHistory,
    ShopWarranty,
    WalletLedgerService,
    WalletVerification,
)

__all__ = [
    "CashFlowIntegrationService",
    "CashFlowReport",
    "LineItem",
    "MembershipAccessChecker",
    "OrderHistory",
    "OrderSettlementService",
    "Page",
    "PaymentSchedulerService",
    "PaymentSettlement",
    "RecurringPaymentView",
    "SettledOrder",
    "ShopAccessChecker",
    "ShopBalanceReport",
    "ShopBalanceService",
    "ShopHistory",
    "ShopWarranty",
    "SyncOutcome",
    "Tender",
    "TransactionLedgerService",
    "UpcomingPaymentView",
    "WalletLedgerService",
    "WalletVerification",
]
