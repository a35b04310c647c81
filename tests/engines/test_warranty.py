"""Tests for warranty classification."""

from datetime import UTC, datetime
from uuid import uuid4

from cashflow_engines.warranty import SoldItem, classify_warranties, warranty_end


def _item(order_date: datetime, months: int | None, name: str = "Charger") -> SoldItem:
    return SoldItem(
        order_id=uuid4(),
        order_number="ORD-1",
        order_date=order_date,
        product_name=name,
        warranty_months=months,
    )


class TestWarrantyEnd:
    def test_clamps_to_month_end(self):
        end = warranty_end(datetime(2023, 8, 31, 10, 0, tzinfo=UTC), 6)
        assert end == datetime(2024, 2, 29, 10, 0, tzinfo=UTC)


class TestClassifyWarranties:
    def test_active_and_expired(self):
        now = datetime(2024, 1, 15, 12, 0, tzinfo=UTC)
        fresh = _item(datetime(2023, 6, 1, tzinfo=UTC), 12, "Fresh")
        stale = _item(datetime(2022, 6, 1, tzinfo=UTC), 12, "Stale")

        result = classify_warranties([fresh, stale], now)

        assert [i.product_name for i in result.active] == ["Fresh"]
        assert [i.product_name for i in result.expired] == ["Stale"]
        assert result.active[0].warranty_end_date == datetime(2024, 6, 1, tzinfo=UTC)

    def test_end_instant_is_still_covered(self):
        sold = datetime(2023, 1, 15, 12, 0, tzinfo=UTC)
        result = classify_warranties([_item(sold, 12)], datetime(2024, 1, 15, 12, 0, tzinfo=UTC))
        assert len(result.active) == 1

    def test_items_without_warranty_are_skipped(self):
        now = datetime(2024, 1, 15, tzinfo=UTC)
        result = classify_warranties(
            [_item(now, None), _item(now, 0), _item(now, -3)],
            now,
        )

        assert result.active == ()
        assert result.expired == ()
        assert result.to_dict() == {"active_warranty": [], "expired_warranty": []}
