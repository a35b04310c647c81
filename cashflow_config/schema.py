"""
Cash-flow ledger configuration schema.

Frozen dataclasses parsed from YAML by the loader.  Every section validates
itself in ``__post_init__`` so an invalid file fails at load time, never
halfway through a sweep.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

from cashflow_kernel.models.cashflow import (
    PaymentFrequency,
    PaymentType,
    TransactionCategory,
    TransactionType,
)

# ---------------------------------------------------------------------------
# Codec
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CodecConfig:
    """Envelope-encryption settings for stored amounts.

    ``envelope_key`` is resolved by the loader from the environment variable
    named by ``envelope_key_env``; None means plaintext mode.
    """

    envelope_key_env: str = "CASHFLOW_ENVELOPE_KEY"
    envelope_key: str | None = field(default=None, repr=False)
    allow_insecure_local_fallback: bool = False
    fanout_workers: int = 8
    fanout_timeout_seconds: float = 10.0

    def __post_init__(self) -> None:
        if self.fanout_workers < 1:
            raise ValueError("codec.fanout_workers must be >= 1")
        if self.fanout_timeout_seconds <= 0:
            raise ValueError("codec.fanout_timeout_seconds must be positive")


# ---------------------------------------------------------------------------
# Reconciliation
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ReconciliationConfig:
    tolerance: Decimal = Decimal("1.00")  # currency units

    def __post_init__(self) -> None:
        if self.tolerance < 0:
            raise ValueError("reconciliation.tolerance cannot be negative")


# ---------------------------------------------------------------------------
# Scheduler
# ---------------------------------------------------------------------------

_DEFAULT_CATEGORY_MAP: tuple[tuple[str, str], ...] = (
    (PaymentType.RECURRING.value, TransactionCategory.UTILITIES.value),
    (PaymentType.ONE_TIME.value, TransactionCategory.SHOP_RENT.value),
)


@dataclass(frozen=True)
class SchedulerConfig:
    """Recurring-payment sweep and mark-as-paid settings.

    ``category_by_payment_type`` must cover every PaymentType exactly once.
    """

    default_frequency: str = PaymentFrequency.MONTHLY.value
    category_by_payment_type: tuple[tuple[str, str], ...] = _DEFAULT_CATEGORY_MAP

    def __post_init__(self) -> None:
        if self.default_frequency not in PaymentFrequency.__members__:
            raise ValueError(f"scheduler.default_frequency unknown: {self.default_frequency}")

        keys = [k for k, _ in self.category_by_payment_type]
        if len(keys) != len(set(keys)):
            raise ValueError("scheduler.category_by_payment_type has duplicate payment types")
        missing = set(PaymentType.__members__) - set(keys)
        if missing:
            raise ValueError(
                f"scheduler.category_by_payment_type missing: {sorted(missing)}"
            )
        unknown = set(keys) - set(PaymentType.__members__)
        if unknown:
            raise ValueError(
                f"scheduler.category_by_payment_type unknown payment types: {sorted(unknown)}"
            )
        for payment_type, category in self.category_by_payment_type:
            if category not in TransactionCategory.__members__:
                raise ValueError(
                    f"scheduler.category_by_payment_type[{payment_type}] "
                    f"unknown category: {category}"
                )

    def category_for(self, payment_type: str) -> str:
        for key, category in self.category_by_payment_type:
            if key == payment_type:
                return category
        raise KeyError(payment_type)


# ---------------------------------------------------------------------------
# Cash-flow report
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CashFlowConfig:
    income_types: tuple[str, ...] = (
        TransactionType.ORDER_PAYMENT.value,
        TransactionType.DUE_PAYMENT.value,
        TransactionType.EXTRA_PAYMENT.value,
    )
    expense_types: tuple[str, ...] = (
        TransactionType.REFUND.value,
        TransactionType.EXPENSE_PAYMENT.value,
    )
    recent_transactions_limit: int = 10
    default_days_until_next_payment: int = 30

    def __post_init__(self) -> None:
        for name in (*self.income_types, *self.expense_types):
            if name not in TransactionType.__members__:
                raise ValueError(f"cash_flow: unknown transaction type {name}")
        overlap = set(self.income_types) & set(self.expense_types)
        if overlap:
            raise ValueError(f"cash_flow: types both income and expense: {sorted(overlap)}")
        if self.recent_transactions_limit < 0:
            raise ValueError("cash_flow.recent_transactions_limit cannot be negative")
        if self.default_days_until_next_payment < 1:
            raise ValueError("cash_flow.default_days_until_next_payment must be >= 1")


# ---------------------------------------------------------------------------
# Unit of work
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class UnitOfWorkConfig:
    timeout_seconds: float = 10.0

    def __post_init__(self) -> None:
        if self.timeout_seconds <= 0:
            raise ValueError("unit_of_work.timeout_seconds must be positive")


# ---------------------------------------------------------------------------
# Root
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LedgerConfig:
    """The complete runtime configuration.  Obtain via ``get_active_config()``."""

    config_id: str
    version: int
    codec: CodecConfig = field(default_factory=CodecConfig)
    reconciliation: ReconciliationConfig = field(default_factory=ReconciliationConfig)
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)
    cash_flow: CashFlowConfig = field(default_factory=CashFlowConfig)
    unit_of_work: UnitOfWorkConfig = field(default_factory=UnitOfWorkConfig)
    checksum: str = ""
