"""
PaymentSchedulerService -- recurring templates and the obligations they spawn.

Responsibility:
    Turn due RecurringPayment templates into UpcomingPayment rows, settle
    upcoming payments into the transaction ledger, and provide CRUD for
    both kinds of row.

Architecture position:
    Services -- imperative shell over ``cashflow_engines.recurrence``.
    Realised transactions go through ``TransactionLedgerService``.

Invariants enforced:
    - One sweep creates exactly one UpcomingPayment per due template and
      advances that template's next_date exactly once.
    - mark-as-paid writes the realised transaction, the roll-forward and
      the delete in one unit of work: all three happen or none does.
    - Only standalone RECURRING payments roll themselves forward; rows
      produced by a template leave the next cycle to the template.
    - A single ``advance`` function computes every next date.

The sweep is not single-flight.  Callers running it on a schedule must
make sure two sweeps never overlap.
"""

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from cashflow_config.schema import SchedulerConfig
from cashflow_engines.cash_flow import LedgerEntry
from cashflow_engines.recurrence import advance, resolve_frequency
from cashflow_kernel.crypto import AmountCodec
from cashflow_kernel.db.unit_of_work import DEFAULT_TIMEOUT_SECONDS
from cashflow_kernel.domain.clock import Clock
from cashflow_kernel.exceptions import (
    RecurringPaymentNotFoundError,
    TransactionNotFoundError,
    UpcomingPaymentNotFoundError,
    ValidationError,
)
from cashflow_kernel.models.cashflow import (
    PaymentFrequency,
    PaymentType,
    RecurringPayment,
    Transaction,
    TransactionCategory,
    TransactionType,
    UpcomingPayment,
)
from cashflow_services.base import BaseService
from cashflow_services.pagination import DEFAULT_PAGE_SIZE, Page, check_page
from cashflow_services.transaction_ledger_service import (
    TransactionLedgerService,
    parse_amount,
    parse_enum,
)


@dataclass(frozen=True)
class UpcomingPaymentView:
    id: UUID
    description: str
    amount: Decimal
    due_date: date
    payment_type: str
    is_priority: bool
    shop_id: UUID
    category: str | None = None
    frequency: str | None = None
    recurring_payment_id: UUID | None = None


@dataclass(frozen=True)
class RecurringPaymentView:
    id: UUID
    description: str
    amount: Decimal
    frequency: str
    next_date: date
    shop_id: UUID
    transaction_id: UUID | None


@dataclass(frozen=True)
class PaymentSettlement:
    """Outcome of marking an upcoming payment as paid."""

    paid_payment_id: UUID
    transaction: LedgerEntry
    next_payment: UpcomingPaymentView | None = None


class PaymentSchedulerService(BaseService):
    _logger_name = "services.payment_scheduler"

    def __init__(
        self,
        session: Session,
        codec: AmountCodec,
        clock: Clock | None = None,
        config: SchedulerConfig | None = None,
        ledger: TransactionLedgerService | None = None,
        logger: logging.Logger | None = None,
        uow_timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    ):
        super().__init__(session, clock, logger, uow_timeout_seconds)
        self.codec = codec
        self.config = config or SchedulerConfig()
        self.ledger = ledger or TransactionLedgerService(
            session, codec, self.clock, uow_timeout_seconds=uow_timeout_seconds,
        )

    @property
    def default_frequency(self) -> PaymentFrequency:
        return PaymentFrequency(self.config.default_frequency)

    # ------------------------------------------------------------------
    # Sweep
    # ------------------------------------------------------------------

    def process_recurring_payments(self) -> int:
        """
        Materialise every template due on or before today.

        Returns:
            Number of UpcomingPayment rows created.
        """
        today = self.clock.today()
        created = 0
        with self._unit_of_work("process_recurring_payments"):
            due = self.session.scalars(
                select(RecurringPayment)
                .where(RecurringPayment.next_date <= today)
                .order_by(RecurringPayment.next_date, RecurringPayment.id)
            ).all()
            for template in due:
                frequency = resolve_frequency(template.frequency, self.default_frequency)
                upcoming = UpcomingPayment(
                    description=template.description,
                    amount=template.amount,
                    due_date=template.next_date,
                    payment_type=PaymentType.RECURRING.value,
                    is_priority=True,
                    shop_id=template.shop_id,
                    frequency=frequency.value,
                    recurring_payment_id=template.id,
                )
                self.session.add(upcoming)
                previous = template.next_date
                template.next_date = advance(previous, frequency)
                created += 1
                self.logger.debug(
                    "recurring_payment_scheduled",
                    extra={
                        "recurring_payment_id": str(template.id),
                        "shop_id": str(template.shop_id),
                        "due_date": previous,
                        "next_date": template.next_date,
                    },
                )

        self.logger.info(
            "recurring_sweep_completed",
            extra={"as_of": today, "created_count": created},
        )
        return created

    # ------------------------------------------------------------------
    # Mark as paid
    # ------------------------------------------------------------------

    def mark_upcoming_payment_as_paid(self, payment_id: UUID) -> PaymentSettlement:
        """
        Settle an upcoming payment.

        Writes an EXPENSE_PAYMENT transaction, schedules the next
        occurrence for a standalone RECURRING payment, and deletes the
        paid row, all in one unit of work.

        Raises:
            UpcomingPaymentNotFoundError: No such upcoming payment.
            UnitOfWorkError: Any step failed; nothing was written.
        """
        with self._unit_of_work("mark_upcoming_payment_as_paid"):
            payment = self._get_upcoming_row(payment_id)
            is_recurring = payment.payment_type == PaymentType.RECURRING.value
            txn = self.ledger.append_transaction(
                shop_id=payment.shop_id,
                description=payment.description,
                amount=self.codec.decrypt(payment.amount),
                type=TransactionType.EXPENSE_PAYMENT.value,
                category=self._category_for(payment),
                is_recurring=is_recurring,
            )
            next_payment = None
            if is_recurring and payment.recurring_payment_id is None:
                next_payment = self._roll_forward(payment)
            shop_id = payment.shop_id
            self.session.delete(payment)

        self.logger.info(
            "upcoming_payment_paid",
            extra={
                "upcoming_payment_id": str(payment_id),
                "shop_id": str(shop_id),
                "transaction_id": str(txn.id),
                "next_payment_id": str(next_payment.id) if next_payment else None,
            },
        )
        return PaymentSettlement(
            paid_payment_id=payment_id,
            transaction=self.ledger.to_entry(txn),
            next_payment=self._to_upcoming_view(next_payment) if next_payment else None,
        )

    def _category_for(self, payment: UpcomingPayment) -> str:
        if payment.category:
            return payment.category
        return self.config.category_for(payment.payment_type)

    def _roll_forward(self, payment: UpcomingPayment) -> UpcomingPayment:
        frequency = resolve_frequency(payment.frequency, self.default_frequency)
        following = UpcomingPayment(
            description=payment.description,
            amount=payment.amount,
            due_date=advance(payment.due_date, frequency),
            payment_type=payment.payment_type,
            is_priority=payment.is_priority,
            shop_id=payment.shop_id,
            category=payment.category,
            frequency=frequency.value,
        )
        self.session.add(following)
        self.session.flush()
        return following

    # ------------------------------------------------------------------
    # Upcoming payment CRUD
    # ------------------------------------------------------------------

    def create_upcoming_payment(
        self,
        shop_id: UUID,
        description: str,
        amount: object,
        due_date: date,
        is_recurring: bool = False,
        frequency: str | None = None,
        category: str | None = None,
    ) -> UpcomingPaymentView:
        """Recurring obligations are created as priority payments."""
        with self._unit_of_work("create_upcoming_payment"):
            payment = UpcomingPayment(
                description=description,
                amount=self.codec.encrypt(parse_amount("amount", amount)),
                due_date=due_date,
                payment_type=(PaymentType.RECURRING if is_recurring else PaymentType.ONE_TIME).value,
                is_priority=is_recurring,
                shop_id=shop_id,
                category=parse_enum(TransactionCategory, "category", category) if category else None,
                frequency=parse_enum(PaymentFrequency, "frequency", frequency) if frequency else None,
            )
            self.session.add(payment)

        self.logger.info(
            "upcoming_payment_created",
            extra={
                "upcoming_payment_id": str(payment.id),
                "shop_id": str(shop_id),
                "payment_type": payment.payment_type,
            },
        )
        return self._to_upcoming_view(payment)

    def get_upcoming_payment(self, payment_id: UUID) -> UpcomingPaymentView:
        return self._to_upcoming_view(self._get_upcoming_row(payment_id))

    def get_upcoming_payments(
        self,
        shop_id: UUID | None = None,
        payment_type: str | None = None,
        is_priority: bool | None = None,
        start_date: date | None = None,
        end_date: date | None = None,
        page: int = 1,
        limit: int = DEFAULT_PAGE_SIZE,
    ) -> Page[UpcomingPaymentView]:
        """Filtered page of upcoming payments, soonest due first."""
        offset, limit = check_page(page, limit)
        conditions = []
        if shop_id is not None:
            conditions.append(UpcomingPayment.shop_id == shop_id)
        if payment_type is not None:
            conditions.append(UpcomingPayment.payment_type == payment_type)
        if is_priority is not None:
            conditions.append(UpcomingPayment.is_priority == is_priority)
        if start_date is not None:
            conditions.append(UpcomingPayment.due_date >= start_date)
        if end_date is not None:
            conditions.append(UpcomingPayment.due_date <= end_date)

        total = self.session.scalar(
            select(func.count()).select_from(UpcomingPayment).where(*conditions)
        ) or 0
        rows = self.session.scalars(
            select(UpcomingPayment)
            .where(*conditions)
            .order_by(UpcomingPayment.due_date, UpcomingPayment.id)
            .offset(offset)
            .limit(limit)
        ).all()
        return Page(data=self._to_upcoming_views(rows), total=total, page=page, limit=limit)

    def outstanding_for_shop(self, shop_id: UUID) -> list[UpcomingPaymentView]:
        """Every unpaid obligation of the shop, overdue ones included."""
        rows = self.session.scalars(
            select(UpcomingPayment)
            .where(UpcomingPayment.shop_id == shop_id)
            .order_by(UpcomingPayment.due_date, UpcomingPayment.id)
        ).all()
        return self._to_upcoming_views(rows)

    def update_upcoming_payment(
        self,
        payment_id: UUID,
        description: str | None = None,
        amount: object | None = None,
        due_date: date | None = None,
        is_priority: bool | None = None,
        category: str | None = None,
        frequency: str | None = None,
    ) -> UpcomingPaymentView:
        with self._unit_of_work("update_upcoming_payment"):
            payment = self._get_upcoming_row(payment_id)
            if description is not None:
                payment.description = description
            if amount is not None:
                payment.amount = self.codec.encrypt(parse_amount("amount", amount))
            if due_date is not None:
                payment.due_date = due_date
            if is_priority is not None:
                payment.is_priority = is_priority
            if category is not None:
                payment.category = parse_enum(TransactionCategory, "category", category)
            if frequency is not None:
                payment.frequency = parse_enum(PaymentFrequency, "frequency", frequency)

        self.logger.info("upcoming_payment_updated", extra={"upcoming_payment_id": str(payment_id)})
        return self._to_upcoming_view(payment)

    def delete_upcoming_payment(self, payment_id: UUID) -> None:
        with self._unit_of_work("delete_upcoming_payment"):
            self.session.delete(self._get_upcoming_row(payment_id))
        self.logger.info("upcoming_payment_deleted", extra={"upcoming_payment_id": str(payment_id)})

    # ------------------------------------------------------------------
    # Recurring payment CRUD
    # ------------------------------------------------------------------

    def create_recurring_payment(
        self,
        shop_id: UUID,
        description: str,
        amount: object,
        frequency: str,
        next_date: date,
        transaction_id: UUID | None = None,
    ) -> RecurringPaymentView:
        """
        Create a template.

        Without ``transaction_id`` an origin transaction (DUE_PAYMENT /
        OTHER, flagged recurring) is written in the same unit of work.
        """
        value = parse_amount("amount", amount)
        frequency_value = parse_enum(PaymentFrequency, "frequency", frequency)
        with self._unit_of_work("create_recurring_payment"):
            if transaction_id is not None:
                if self.session.get(Transaction, transaction_id) is None:
                    raise TransactionNotFoundError(str(transaction_id))
            else:
                origin = self.ledger.append_transaction(
                    shop_id=shop_id,
                    description=description,
                    amount=value,
                    type=TransactionType.DUE_PAYMENT.value,
                    category=TransactionCategory.OTHER.value,
                    is_recurring=True,
                )
                transaction_id = origin.id
            template = RecurringPayment(
                description=description,
                amount=self.codec.encrypt(value),
                frequency=frequency_value,
                next_date=next_date,
                shop_id=shop_id,
                transaction_id=transaction_id,
            )
            self.session.add(template)

        self.logger.info(
            "recurring_payment_created",
            extra={
                "recurring_payment_id": str(template.id),
                "shop_id": str(shop_id),
                "frequency": frequency_value,
                "transaction_id": str(transaction_id),
            },
        )
        return self._to_recurring_view(template)

    def get_recurring_payment(self, recurring_id: UUID) -> RecurringPaymentView:
        return self._to_recurring_view(self._get_recurring_row(recurring_id))

    def get_recurring_payments(
        self,
        shop_id: UUID | None = None,
        frequency: str | None = None,
        page: int = 1,
        limit: int = DEFAULT_PAGE_SIZE,
    ) -> Page[RecurringPaymentView]:
        offset, limit = check_page(page, limit)
        conditions = []
        if shop_id is not None:
            conditions.append(RecurringPayment.shop_id == shop_id)
        if frequency is not None:
            conditions.append(
                RecurringPayment.frequency == parse_enum(PaymentFrequency, "frequency", frequency)
            )
        total = self.session.scalar(
            select(func.count()).select_from(RecurringPayment).where(*conditions)
        ) or 0
        rows = self.session.scalars(
            select(RecurringPayment)
            .where(*conditions)
            .order_by(RecurringPayment.next_date, RecurringPayment.id)
            .offset(offset)
            .limit(limit)
        ).all()
        amounts = self.codec.decrypt_many([r.amount for r in rows])
        return Page(
            data=[self._to_recurring_view(r, a) for r, a in zip(rows, amounts)],
            total=total,
            page=page,
            limit=limit,
        )

    def update_recurring_payment(
        self,
        recurring_id: UUID,
        description: str | None = None,
        amount: object | None = None,
        frequency: str | None = None,
        next_date: date | None = None,
    ) -> RecurringPaymentView:
        """Edit a template.  ``next_date`` may only move forward."""
        with self._unit_of_work("update_recurring_payment"):
            template = self._get_recurring_row(recurring_id)
            if description is not None:
                template.description = description
            if amount is not None:
                template.amount = self.codec.encrypt(parse_amount("amount", amount))
            if frequency is not None:
                template.frequency = parse_enum(PaymentFrequency, "frequency", frequency)
            if next_date is not None:
                if next_date < template.next_date:
                    raise ValidationError(
                        f"next_date cannot move backwards ({template.next_date} -> {next_date})"
                    )
                template.next_date = next_date

        self.logger.info("recurring_payment_updated", extra={"recurring_payment_id": str(recurring_id)})
        return self._to_recurring_view(template)

    def delete_recurring_payment(self, recurring_id: UUID) -> None:
        """Remove a template; payments it already produced become standalone."""
        with self._unit_of_work("delete_recurring_payment"):
            template = self._get_recurring_row(recurring_id)
            self.session.execute(
                update(UpcomingPayment)
                .where(UpcomingPayment.recurring_payment_id == recurring_id)
                .values(recurring_payment_id=None)
            )
            self.session.delete(template)
        self.logger.info("recurring_payment_deleted", extra={"recurring_payment_id": str(recurring_id)})

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _get_upcoming_row(self, payment_id: UUID) -> UpcomingPayment:
        payment = self.session.get(UpcomingPayment, payment_id)
        if payment is None:
            raise UpcomingPaymentNotFoundError(str(payment_id))
        return payment

    def _get_recurring_row(self, recurring_id: UUID) -> RecurringPayment:
        template = self.session.get(RecurringPayment, recurring_id)
        if template is None:
            raise RecurringPaymentNotFoundError(str(recurring_id))
        return template

    def _to_upcoming_view(self, payment: UpcomingPayment) -> UpcomingPaymentView:
        return self._to_upcoming_views([payment])[0]

    def _to_upcoming_views(self, rows) -> list[UpcomingPaymentView]:
        rows = list(rows)
        amounts = self.codec.decrypt_many([p.amount for p in rows])
        return [
            UpcomingPaymentView(
                id=p.id,
                description=p.description,
                amount=amount,
                due_date=p.due_date,
                payment_type=p.payment_type,
                is_priority=p.is_priority,
                shop_id=p.shop_id,
                category=p.category,
                frequency=p.frequency,
                recurring_payment_id=p.recurring_payment_id,
            )
            for p, amount in zip(rows, amounts)
        ]

    def _to_recurring_view(
        self,
        template: RecurringPayment,
        amount: Decimal | None = None,
    ) -> RecurringPaymentView:
        return RecurringPaymentView(
            id=template.id,
            description=template.description,
            amount=amount if amount is not None else self.codec.decrypt(template.amount),
            frequency=template.frequency,
            next_date=template.next_date,
            shop_id=template.shop_id,
            transaction_id=template.transaction_id,
        )
