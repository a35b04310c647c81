"""
Module: cashflow_engines
Responsibility:
    Package entrypoint re-exporting the pure calculation engines used by
    the cash-flow services.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May import cashflow_kernel enums and types only.
    MUST NOT import cashflow_services or cashflow_config.

Invariants enforced:
    - Purity: engines never read the clock.  "Now" and "today" are
      parameters supplied by services.
    - Decimal-only arithmetic for all amounts.
    - Determinism: identical inputs always produce identical outputs.
"""

from cashflow_engines.balance_checker import (
    BalanceDiscrepancy,
    PaymentLine,
    find_discrepancies,
    total_by_method,
)
from cashflow_engines.cash_flow import (
    HealthStatus,
    LedgerEntry,
    Metric,
    MonthlyTrend,
    TypeSummary,
    growth_metrics,
    health_status,
    monthly_trends,
    summarize_by_type,
)
from cashflow_engines.recurrence import add_months, advance, resolve_frequency
from cashflow_engines.wallet_projection import (
    DuesSummary,
    WalletBalance,
    WalletModifications,
    WalletMovement,
    WalletProjection,
    modifications_by_order,
    project_wallet,
    summarize_dues,
)
from cashflow_engines.warranty import SoldItem, WarrantyClassification, classify_warranties

__all__ = [
    "advance",
    "add_months",
    "resolve_frequency",
    "WalletMovement",
    "WalletProjection",
    "WalletModifications",
    "WalletBalance",
    "DuesSummary",
    "project_wallet",
    "modifications_by_order",
    "summarize_dues",
    "PaymentLine",
    "BalanceDiscrepancy",
    "total_by_method",
    "find_discrepancies",
    "LedgerEntry",
    "TypeSummary",
    "MonthlyTrend",
    "Metric",
    "HealthStatus",
    "summarize_by_type",
    "monthly_trends",
    "growth_metrics",
    "health_status",
    "SoldItem",
    "WarrantyClassification",
    "classify_warranties",
]
