"""
Pytest fixtures for the cash-flow ledger test suite.

Provides:
- A fresh in-memory SQLite database per test (schema created from the models)
- DeterministicClock pinned to 2024-01-15 12:00 UTC
- Plaintext and Fernet envelope AmountCodec instances
- Seed helpers for shops, users, products and orders
- ``captured_logs`` for asserting on structured log output
"""

import json
import logging
from datetime import UTC, datetime
from decimal import Decimal
from io import StringIO
from typing import Generator
from uuid import UUID

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

import cashflow_kernel.models  # noqa: F401
from cashflow_kernel.crypto import AmountCodec, FernetEnvelopeCipher
from cashflow_kernel.db.base import Base
from cashflow_kernel.domain.clock import DeterministicClock
from cashflow_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from cashflow_kernel.models.order import Order, OrderStatus, Payment, Product
from cashflow_kernel.models.party import Shop, User, UserRole, UserShop

TEST_MASTER_KEY = FernetEnvelopeCipher.generate_master_key()


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture cashflow_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, balance_service):
            balance_service.get_shop_balance(shop_id)
            logs = captured_logs()
            assert any(r["message"] == "shop_balance_discrepancy" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("cashflow_kernel")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)


# =============================================================================
# Database
# =============================================================================


@pytest.fixture
def engine():
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(eng)
    yield eng
    Base.metadata.drop_all(eng)
    eng.dispose()


@pytest.fixture
def session(engine) -> Generator[Session, None, None]:
    factory = sessionmaker(bind=engine, expire_on_commit=False)
    sess = factory()
    yield sess
    sess.rollback()
    sess.close()


# =============================================================================
# Clock and codecs
# =============================================================================


@pytest.fixture
def clock() -> DeterministicClock:
    return DeterministicClock(datetime(2024, 1, 15, 12, 0, tzinfo=UTC))


@pytest.fixture
def plaintext_codec() -> AmountCodec:
    return AmountCodec(None)


@pytest.fixture
def envelope_codec() -> AmountCodec:
    return AmountCodec(FernetEnvelopeCipher(TEST_MASTER_KEY))


@pytest.fixture(params=["plaintext", "envelope"])
def codec(request, plaintext_codec, envelope_codec) -> AmountCodec:
    """Runs the test once per codec mode."""
    return plaintext_codec if request.param == "plaintext" else envelope_codec


# =============================================================================
# Seed helpers
# =============================================================================


@pytest.fixture
def shop(session) -> Shop:
    row = Shop(name="Corner Electronics")
    session.add(row)
    session.commit()
    return row


@pytest.fixture
def owner(session, shop) -> User:
    row = User(name="Shop Owner", email="owner@example.com", role=UserRole.SHOP_OWNER.value)
    session.add(row)
    session.flush()
    session.add(UserShop(user_id=row.id, shop_id=shop.id))
    session.commit()
    return row


@pytest.fixture
def customer(session) -> User:
    row = User(
        name="Dana Customer",
        email="dana@example.com",
        contact_number="+1-555-0100",
        role=UserRole.CUSTOMER.value,
    )
    session.add(row)
    session.commit()
    return row


@pytest.fixture
def product(session, shop) -> Product:
    row = Product(shop_id=shop.id, name="Phone charger", warranty_months=12)
    session.add(row)
    session.commit()
    return row


@pytest.fixture
def make_order(session, codec, clock):
    """
    Insert a COMPLETED order with the given payments directly.

    Usage::

        order = make_order(shop.id, customer.id, payments=[("CASH", "950")])
    """

    def _make(
        shop_id: UUID,
        customer_id: UUID | None = None,
        payments: list[tuple[str, str]] = (),
        total: str = "0",
        created_at: datetime | None = None,
        order_number: str = "ORD-1",
    ) -> Order:
        when = created_at or clock.now()
        order = Order(
            order_number=order_number,
            shop_id=shop_id,
            customer_id=customer_id,
            status=OrderStatus.COMPLETED.value,
            subtotal=codec.encrypt(Decimal(total)),
            discount=codec.encrypt(Decimal("0")),
            total=codec.encrypt(Decimal(total)),
            paid=codec.encrypt(sum((Decimal(a) for _, a in payments), Decimal("0"))),
            payment_due=codec.encrypt(Decimal("0")),
            created_at=when,
        )
        session.add(order)
        session.flush()
        for method, amount in payments:
            session.add(
                Payment(
                    order_id=order.id,
                    amount=codec.encrypt(Decimal(amount)),
                    method=method,
                    created_at=when,
                )
            )
        session.commit()
        return order

    return _make
