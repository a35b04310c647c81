"""
Tests for the unit_of_work scope.

Covers:
- Commit on success
- Rollback and wrapping of unexpected exceptions
- Typed kernel errors pass through unchanged
- Late commit rejected with UnitOfWorkTimeoutError
"""

import pytest
from sqlalchemy import func, select

from cashflow_kernel.db.unit_of_work import unit_of_work
from cashflow_kernel.exceptions import (
    ShopNotFoundError,
    UnitOfWorkError,
    UnitOfWorkTimeoutError,
)
from cashflow_kernel.models.party import Shop


def _shop_count(session) -> int:
    return session.scalar(select(func.count()).select_from(Shop))


class TestUnitOfWork:
    def test_commits_on_success(self, session, captured_logs):
        with unit_of_work(session, "create_shop"):
            session.add(Shop(name="Kiosk"))

        session.rollback()
        assert _shop_count(session) == 1
        assert any(
            r["message"] == "unit_of_work_committed" and r["operation"] == "create_shop"
            for r in captured_logs()
        )

    def test_unexpected_error_rolls_back_and_wraps(self, session):
        with pytest.raises(UnitOfWorkError) as exc_info:
            with unit_of_work(session, "create_shop"):
                session.add(Shop(name="Kiosk"))
                session.flush()
                raise RuntimeError("disk full")

        assert exc_info.value.operation == "create_shop"
        assert isinstance(exc_info.value.__cause__, RuntimeError)
        assert _shop_count(session) == 0

    def test_kernel_error_passes_through(self, session, captured_logs):
        with pytest.raises(ShopNotFoundError):
            with unit_of_work(session, "lookup"):
                session.add(Shop(name="Kiosk"))
                raise ShopNotFoundError("missing")

        assert _shop_count(session) == 0
        rejected = [r for r in captured_logs() if r["message"] == "unit_of_work_rejected"]
        assert rejected and rejected[0]["exc_code"] == "SHOP_NOT_FOUND"

    def test_late_commit_is_rejected(self, session):
        with pytest.raises(UnitOfWorkTimeoutError) as exc_info:
            with unit_of_work(session, "slow_write", timeout_seconds=-1):
                session.add(Shop(name="Kiosk"))

        assert exc_info.value.code == "UNIT_OF_WORK_TIMEOUT"
        assert _shop_count(session) == 0
