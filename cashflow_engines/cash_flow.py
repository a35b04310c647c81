"""
Module: cashflow_engines.cash_flow
Responsibility:
    Aggregations behind the cash-flow report: per-type summaries, monthly
    income/expense trends, growth and progress metrics, balance
    projections and health classification.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  Amounts are decrypted
    and "now" is supplied by the caller.

Invariants enforced:
    - Month keys are zero-padded ``YYYY-MM``; lexicographic order is
      chronological order, so trends sort on the key alone.
    - A metric that cannot be computed from data is returned as
      ``Metric.unavailable(reason)``, never as a placeholder number.
    - health_status is HEALTHY iff adjusted balance > 0.
"""

from __future__ import annotations

import math
from collections import defaultdict
from dataclasses import dataclass
from datetime import UTC, date, datetime, time
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Collection, Iterable
from uuid import UUID

from cashflow_engines.tracer import traced_engine

_ZERO = Decimal("0")
_HUNDRED = Decimal("100")
_SECONDS_PER_DAY = 86400


class HealthStatus(str, Enum):
    HEALTHY = "HEALTHY"
    AT_RISK = "AT_RISK"


@dataclass(frozen=True)
class LedgerEntry:
    """A decrypted Transaction row."""

    id: UUID
    description: str
    amount: Decimal
    date: datetime
    type: str
    category: str
    is_recurring: bool = False

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "description": self.description,
            "amount": self.amount,
            "date": self.date,
            "type": self.type,
            "category": self.category,
            "is_recurring": self.is_recurring,
        }


@dataclass(frozen=True)
class TypeSummary:
    count: int
    total: Decimal


@dataclass(frozen=True)
class MonthlyTrend:
    month: str
    income: Decimal
    expense: Decimal

    @property
    def net(self) -> Decimal:
        return self.income - self.expense

    def to_dict(self) -> dict[str, object]:
        return {"month": self.month, "income": self.income, "expense": self.expense, "net": self.net}


@dataclass(frozen=True)
class Metric:
    """A derived figure that may not be computable from the data at hand."""

    value: Decimal | None
    available: bool
    reason: str | None = None

    @classmethod
    def of(cls, value: Decimal) -> Metric:
        return cls(value=value, available=True)

    @classmethod
    def unavailable(cls, reason: str) -> Metric:
        return cls(value=None, available=False, reason=reason)

    def to_dict(self) -> dict[str, object]:
        return {"value": self.value, "available": self.available, "reason": self.reason}


def month_key(moment: datetime | date) -> str:
    return f"{moment.year:04d}-{moment.month:02d}"


def month_start(moment: datetime) -> datetime:
    return datetime(moment.year, moment.month, 1, tzinfo=moment.tzinfo or UTC)


def next_month_start(moment: datetime) -> datetime:
    if moment.month == 12:
        return datetime(moment.year + 1, 1, 1, tzinfo=moment.tzinfo or UTC)
    return datetime(moment.year, moment.month + 1, 1, tzinfo=moment.tzinfo or UTC)


def summarize_by_type(entries: Iterable[LedgerEntry]) -> dict[str, TypeSummary]:
    counts: dict[str, int] = defaultdict(int)
    totals: dict[str, Decimal] = defaultdict(lambda: _ZERO)
    for entry in entries:
        counts[entry.type] += 1
        totals[entry.type] += entry.amount
    return {t: TypeSummary(count=counts[t], total=totals[t]) for t in sorted(counts)}


@traced_engine("monthly_trends", "1.0")
def monthly_trends(
    entries: Iterable[LedgerEntry],
    income_types: Collection[str],
    expense_types: Collection[str],
) -> list[MonthlyTrend]:
    """Income and expense per month, oldest first.  Other types are ignored."""
    income: dict[str, Decimal] = defaultdict(lambda: _ZERO)
    expense: dict[str, Decimal] = defaultdict(lambda: _ZERO)
    months: set[str] = set()
    for entry in entries:
        key = month_key(entry.date)
        months.add(key)
        if entry.type in income_types:
            income[key] += entry.amount
        elif entry.type in expense_types:
            expense[key] += entry.amount
    return [MonthlyTrend(month=m, income=income[m], expense=expense[m]) for m in sorted(months)]


def period_total(
    entries: Iterable[LedgerEntry],
    types: Collection[str],
    start: datetime,
    end: datetime,
) -> Decimal:
    """Sum of ``types`` with ``start <= date < end``."""
    return sum(
        (e.amount for e in entries if e.type in types and start <= e.date < end),
        _ZERO,
    )


def percent_change(current: Decimal, previous: Decimal) -> Metric:
    if previous == 0:
        return Metric.unavailable("previous month total is zero")
    change = (current - previous) / previous * _HUNDRED
    return Metric.of(change.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


@traced_engine("growth", "1.0")
def growth_metrics(trends: list[MonthlyTrend]) -> tuple[Metric, Metric]:
    """(income_growth, expense_growth) between the two latest populated months."""
    if len(trends) < 2:
        reason = "fewer than two months of transactions"
        return Metric.unavailable(reason), Metric.unavailable(reason)
    previous, current = trends[-2], trends[-1]
    return (
        percent_change(current.income, previous.income),
        percent_change(current.expense, previous.expense),
    )


def days_until(now: datetime, due: date) -> int:
    """Whole days from ``now`` to the start of ``due`` (UTC), rounded up."""
    due_start = datetime.combine(due, time.min, tzinfo=UTC)
    return math.ceil((due_start - now).total_seconds() / _SECONDS_PER_DAY)


def daily_target(total_upcoming: Decimal, days: int) -> Decimal:
    """Income needed per day to cover upcoming payments; 0 when nothing is owed."""
    if total_upcoming <= 0 or days <= 0:
        return _ZERO
    return (total_upcoming / Decimal(days)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def daily_progress(today_income: Decimal, target: Decimal) -> Metric:
    """Today's income as a percentage of the daily target."""
    if target <= 0:
        return Metric.unavailable("no daily target")
    return Metric.of(
        (today_income / target * _HUNDRED).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    )


def health_status(adjusted_balance: Decimal) -> HealthStatus:
    return HealthStatus.HEALTHY if adjusted_balance > 0 else HealthStatus.AT_RISK
