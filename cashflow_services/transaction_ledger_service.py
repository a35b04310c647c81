"""
TransactionLedgerService -- the shop's record of every money movement.

Responsibility:
    Append ledger transactions (optionally spawning a RecurringPayment
    template), list and read them decrypted, and carry the two explicit
    administrative paths: correction and deletion.

Architecture position:
    Services -- imperative shell.  Other services append through
    ``append_transaction`` inside their own unit of work.

Invariants enforced:
    - Amounts are stored through the AmountCodec and are non-negative
      magnitudes; the direction comes from the transaction type.
    - A recurring transaction with frequency and next date creates its
      template in the same unit of work, pointing back at the transaction.
    - Correction and deletion are logged; deletion at warning level since
      it breaks the append-only history.
"""

import logging
from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from cashflow_engines.cash_flow import LedgerEntry
from cashflow_kernel.crypto import AmountCodec
from cashflow_kernel.db.types import money_from_any
from cashflow_kernel.db.unit_of_work import DEFAULT_TIMEOUT_SECONDS
from cashflow_kernel.domain.clock import Clock, ensure_utc
from cashflow_kernel.exceptions import (
    InvalidAmountError,
    TransactionNotFoundError,
    ValidationError,
)
from cashflow_kernel.models.cashflow import (
    PaymentFrequency,
    RecurringPayment,
    Transaction,
    TransactionCategory,
    TransactionType,
)
from cashflow_services.base import BaseService
from cashflow_services.pagination import DEFAULT_PAGE_SIZE, Page, check_page


def parse_amount(field: str, value: object) -> Decimal:
    """Validate a write-path amount: finite and not negative."""
    try:
        amount = money_from_any(value)
    except ValueError as exc:
        raise InvalidAmountError(field, value, str(exc)) from exc
    if amount < 0:
        raise InvalidAmountError(field, value, "must not be negative")
    return amount


def parse_enum(enum_cls, field: str, value: object) -> str:
    try:
        return enum_cls(value).value
    except ValueError as exc:
        raise ValidationError(f"Unknown {field}: {value}") from exc


class TransactionLedgerService(BaseService):
    _logger_name = "services.transaction_ledger"

    def __init__(
        self,
        session: Session,
        codec: AmountCodec,
        clock: Clock | None = None,
        logger: logging.Logger | None = None,
        uow_timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    ):
        super().__init__(session, clock, logger, uow_timeout_seconds)
        self.codec = codec

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def append_transaction(
        self,
        shop_id: UUID,
        description: str,
        amount: object,
        type: str,
        category: str,
        when: datetime | None = None,
        is_recurring: bool = False,
    ) -> Transaction:
        """Add one ledger row.  Flush only; the caller owns the unit of work."""
        value = parse_amount("amount", amount)
        txn = Transaction(
            shop_id=shop_id,
            description=description,
            amount=self.codec.encrypt(value),
            date=ensure_utc(when) if when else self.clock.now(),
            type=parse_enum(TransactionType, "transaction type", type),
            category=parse_enum(TransactionCategory, "transaction category", category),
            is_recurring=is_recurring,
        )
        self.session.add(txn)
        self.session.flush()
        return txn

    def create_transaction(
        self,
        shop_id: UUID,
        description: str,
        amount: object,
        type: str,
        category: str,
        when: datetime | None = None,
        is_recurring: bool = False,
        frequency: str | None = None,
        next_date: date | None = None,
    ) -> LedgerEntry:
        """
        Append a transaction.

        When ``is_recurring`` is set and both ``frequency`` and
        ``next_date`` are given, a RecurringPayment originating from this
        transaction is created in the same unit of work.
        """
        with self._unit_of_work("create_transaction"):
            txn = self.append_transaction(
                shop_id, description, amount, type, category, when, is_recurring,
            )
            recurring_id = None
            if is_recurring and frequency and next_date:
                template = RecurringPayment(
                    description=txn.description,
                    amount=txn.amount,
                    frequency=parse_enum(PaymentFrequency, "frequency", frequency),
                    next_date=next_date,
                    shop_id=shop_id,
                    transaction_id=txn.id,
                )
                self.session.add(template)
                self.session.flush()
                recurring_id = template.id

        self.logger.info(
            "transaction_created",
            extra={
                "transaction_id": str(txn.id),
                "shop_id": str(shop_id),
                "type": txn.type,
                "category": txn.category,
                "recurring_payment_id": str(recurring_id) if recurring_id else None,
            },
        )
        return self.to_entry(txn)

    def update_transaction(
        self,
        transaction_id: UUID,
        description: str | None = None,
        amount: object | None = None,
        when: datetime | None = None,
        category: str | None = None,
    ) -> LedgerEntry:
        """Administrative correction of description, amount, date or category."""
        changed: list[str] = []
        with self._unit_of_work("update_transaction"):
            txn = self._get_row(transaction_id)
            if description is not None:
                txn.description = description
                changed.append("description")
            if amount is not None:
                txn.amount = self.codec.encrypt(parse_amount("amount", amount))
                changed.append("amount")
            if when is not None:
                txn.date = ensure_utc(when)
                changed.append("date")
            if category is not None:
                txn.category = parse_enum(TransactionCategory, "transaction category", category)
                changed.append("category")

        self.logger.info(
            "transaction_corrected",
            extra={"transaction_id": str(transaction_id), "changed_fields": changed},
        )
        return self.to_entry(txn)

    def delete_transaction(self, transaction_id: UUID) -> None:
        """Administrative removal.  Breaks the append-only history; logged."""
        with self._unit_of_work("delete_transaction"):
            txn = self._get_row(transaction_id)
            shop_id = txn.shop_id
            self.session.delete(txn)

        self.logger.warning(
            "transaction_deleted",
            extra={"transaction_id": str(transaction_id), "shop_id": str(shop_id)},
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_transaction(self, transaction_id: UUID) -> LedgerEntry:
        return self.to_entry(self._get_row(transaction_id))

    def get_transactions(
        self,
        shop_id: UUID | None = None,
        type: str | None = None,
        category: str | None = None,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
        page: int = 1,
        limit: int = DEFAULT_PAGE_SIZE,
    ) -> Page[LedgerEntry]:
        """Filtered, newest-first page of transactions."""
        offset, limit = check_page(page, limit)
        conditions = []
        if shop_id is not None:
            conditions.append(Transaction.shop_id == shop_id)
        if type is not None:
            conditions.append(Transaction.type == type)
        if category is not None:
            conditions.append(Transaction.category == category)
        if start_date is not None:
            conditions.append(Transaction.date >= start_date)
        if end_date is not None:
            conditions.append(Transaction.date <= end_date)

        total = self.session.scalar(
            select(func.count()).select_from(Transaction).where(*conditions)
        ) or 0
        rows = self.session.scalars(
            select(Transaction)
            .where(*conditions)
            .order_by(Transaction.date.desc(), Transaction.id)
            .offset(offset)
            .limit(limit)
        ).all()
        return Page(data=self.to_entries(rows), total=total, page=page, limit=limit)

    def entries_for_shop(self, shop_id: UUID) -> list[LedgerEntry]:
        """Every transaction of the shop, newest first, decrypted."""
        rows = self.session.scalars(
            select(Transaction)
            .where(Transaction.shop_id == shop_id)
            .order_by(Transaction.date.desc(), Transaction.id)
        ).all()
        return self.to_entries(rows)

    def to_entry(self, txn: Transaction) -> LedgerEntry:
        return self.to_entries([txn])[0]

    def to_entries(self, rows) -> list[LedgerEntry]:
        rows = list(rows)
        amounts = self.codec.decrypt_many([t.amount for t in rows])
        return [
            LedgerEntry(
                id=t.id,
                description=t.description,
                amount=amount,
                date=t.date,
                type=t.type,
                category=t.category,
                is_recurring=t.is_recurring,
            )
            for t, amount in zip(rows, amounts)
        ]

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _get_row(self, transaction_id: UUID) -> Transaction:
        txn = self.session.get(Transaction, transaction_id)
        if txn is None:
            raise TransactionNotFoundError(str(transaction_id))
        return txn
