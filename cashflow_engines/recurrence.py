"""
Module: cashflow_engines.recurrence
Responsibility:
    Calendar-aware date arithmetic for payment frequencies.  ``advance`` is
    the single frequency-resolution function used by both the recurring
    sweep and the mark-as-paid roll-forward.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - Month-based frequencies add calendar months, never fixed day counts.
    - The day of month is clamped to the last day of the target month
      (2024-01-31 + 1 month = 2024-02-29).
    - Unknown or missing frequencies resolve to MONTHLY.

Clamping is not reversible: a template on the 31st that is advanced
month by month drifts to the 29th/30th after February and stays there,
because each step only sees the previous date.  Callers that need a
stable anchor day must keep it themselves and use ``add_months`` from it.
"""

from __future__ import annotations

import calendar
from datetime import date, timedelta

from cashflow_engines.tracer import traced_engine
from cashflow_kernel.models.cashflow import PaymentFrequency

_DAY_STEPS: dict[PaymentFrequency, int] = {
    PaymentFrequency.DAILY: 1,
    PaymentFrequency.WEEKLY: 7,
    PaymentFrequency.BIWEEKLY: 14,
}

_MONTH_STEPS: dict[PaymentFrequency, int] = {
    PaymentFrequency.MONTHLY: 1,
    PaymentFrequency.QUARTERLY: 3,
    PaymentFrequency.ANNUALLY: 12,
}


def resolve_frequency(
    value: str | PaymentFrequency | None,
    default: PaymentFrequency = PaymentFrequency.MONTHLY,
) -> PaymentFrequency:
    """Map a stored frequency string to the enum; unknown -> ``default``."""
    if isinstance(value, PaymentFrequency):
        return value
    if value is None:
        return default
    try:
        return PaymentFrequency(str(value).strip().upper())
    except ValueError:
        return default


def add_months(start: date, months: int) -> date:
    """Add calendar months, clamping the day to the target month's length."""
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(start.day, last_day))


@traced_engine("recurrence", "1.0", fingerprint_fields=("current", "frequency"))
def advance(current: date, frequency: str | PaymentFrequency | None) -> date:
    """Next occurrence after ``current`` for ``frequency``."""
    freq = resolve_frequency(frequency)
    if freq in _DAY_STEPS:
        return current + timedelta(days=_DAY_STEPS[freq])
    return add_months(current, _MONTH_STEPS[freq])
