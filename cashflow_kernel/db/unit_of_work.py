"""
Module: cashflow_kernel.db.unit_of_work
Responsibility: Atomic, time-bounded scope for multi-row writes inside a
    caller-owned session.
Architecture position: Kernel > DB.

Invariants enforced:
    - All effects inside the scope are committed together or not at all.
    - A scope that outlives its window is rolled back and fails visibly
      with UnitOfWorkTimeoutError instead of committing late.
    - On PostgreSQL the same window is pushed down as a transaction-local
      ``statement_timeout`` so a blocked statement cannot hang.

Failure modes:
    - UnitOfWorkTimeoutError: the window elapsed before commit.
    - UnitOfWorkError: any other exception inside the scope; the original
      exception is chained.  Typed kernel errors (NotFound, validation) are
      re-raised unchanged so callers keep their client-visible meaning.
"""

import time
from contextlib import contextmanager
from typing import Generator

from sqlalchemy import text
from sqlalchemy.orm import Session

from cashflow_kernel.exceptions import (
    CashflowKernelError,
    UnitOfWorkError,
    UnitOfWorkTimeoutError,
)
from cashflow_kernel.logging_config import get_logger

logger = get_logger("db.unit_of_work")

DEFAULT_TIMEOUT_SECONDS = 10.0


@contextmanager
def unit_of_work(
    session: Session,
    operation: str,
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
) -> Generator[Session, None, None]:
    """
    Run a block of writes atomically, then commit.

    Usage:
        with unit_of_work(session, "mark_upcoming_payment_as_paid"):
            session.add(txn)
            session.delete(upcoming)
    """
    started = time.monotonic()
    if session.get_bind().dialect.name == "postgresql":
        session.execute(
            text("SET LOCAL statement_timeout = :ms"),
            {"ms": int(timeout_seconds * 1000)},
        )
    try:
        yield session
        session.flush()
        elapsed = time.monotonic() - started
        if elapsed > timeout_seconds:
            raise UnitOfWorkTimeoutError(operation, elapsed, timeout_seconds)
        session.commit()
    except UnitOfWorkError:
        session.rollback()
        logger.error("unit_of_work_rolled_back", extra={"operation": operation}, exc_info=True)
        raise
    except CashflowKernelError:
        session.rollback()
        logger.warning("unit_of_work_rejected", extra={"operation": operation}, exc_info=True)
        raise
    except Exception as exc:
        session.rollback()
        logger.error("unit_of_work_rolled_back", extra={"operation": operation}, exc_info=True)
        raise UnitOfWorkError(operation, str(exc) or type(exc).__name__) from exc
    logger.debug(
        "unit_of_work_committed",
        extra={"operation": operation, "elapsed_ms": round((time.monotonic() - started) * 1000, 2)},
    )
