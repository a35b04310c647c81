"""
Module: cashflow_engines.warranty
Responsibility:
    Classify sold line items as under or out of warranty.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  "Now" is a parameter.

Invariants enforced:
    - warranty_end = order date + warranty_months calendar months, with the
      day clamped to the month end.
    - Active iff now <= warranty_end (the end instant is still covered).
    - Items whose product declares no warranty (None or <= 0) are skipped.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Iterable
from uuid import UUID

from cashflow_engines.recurrence import add_months
from cashflow_engines.tracer import traced_engine


@dataclass(frozen=True)
class SoldItem:
    order_id: UUID
    order_number: str
    order_date: datetime
    product_name: str
    warranty_months: int | None


@dataclass(frozen=True)
class WarrantyItem:
    order_id: UUID
    order_number: str
    order_date: datetime
    product_name: str
    warranty_months: int
    warranty_end_date: datetime
    is_warranty_active: bool

    def to_dict(self) -> dict[str, object]:
        return {
            "order_id": self.order_id,
            "order_number": self.order_number,
            "order_date": self.order_date,
            "product_name": self.product_name,
            "warranty_months": self.warranty_months,
            "warranty_end_date": self.warranty_end_date,
            "is_warranty_active": self.is_warranty_active,
        }


@dataclass(frozen=True)
class WarrantyClassification:
    active: tuple[WarrantyItem, ...]
    expired: tuple[WarrantyItem, ...]

    def to_dict(self) -> dict[str, list[dict[str, object]]]:
        return {
            "active_warranty": [i.to_dict() for i in self.active],
            "expired_warranty": [i.to_dict() for i in self.expired],
        }


def warranty_end(order_date: datetime, months: int) -> datetime:
    end_day = add_months(order_date.date(), months)
    return order_date.replace(year=end_day.year, month=end_day.month, day=end_day.day)


@traced_engine("warranty", "1.0")
def classify_warranties(items: Iterable[SoldItem], now: datetime) -> WarrantyClassification:
    active: list[WarrantyItem] = []
    expired: list[WarrantyItem] = []
    for item in items:
        if not item.warranty_months or item.warranty_months <= 0:
            continue
        end = warranty_end(item.order_date, item.warranty_months)
        classified = WarrantyItem(
            order_id=item.order_id,
            order_number=item.order_number,
            order_date=item.order_date,
            product_name=item.product_name,
            warranty_months=item.warranty_months,
            warranty_end_date=end,
            is_warranty_active=now <= end,
        )
        (active if classified.is_warranty_active else expired).append(classified)
    return WarrantyClassification(active=tuple(active), expired=tuple(expired))
