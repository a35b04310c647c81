"""
OrderSettlementService -- turns a checkout into ledger rows.

Responsibility:
    Price an order, validate the tenders, and write the order, its items,
    its payments, the shop balance increments and the wallet movements in
    one unit of work.  After commit, each non-wallet payment is synced to
    the cash-flow ledger on a best-effort basis.
    Also resolves walk-in customers and serves the shop-side decrypted
    order reads.

Architecture position:
    Services -- orchestrates ShopBalanceService, WalletLedgerService and
    CashFlowIntegrationService.

Invariants enforced:
    - tendered >= total + due_payment, otherwise InsufficientPaymentError
      before anything is written.
    - Only CASH/CARD/BANK payments move the shop balance cache; WALLET
      tenders become ORDER_PAYMENT wallet movements tagged with the order.
    - Wallet operations (wallet tender, due payment, loyalty points)
      require a customer.
    - A failed ledger sync never undoes a committed order.
"""

import logging
import secrets
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Sequence
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from cashflow_kernel.crypto import AmountCodec
from cashflow_kernel.db.types import ZERO, round_money
from cashflow_kernel.db.unit_of_work import DEFAULT_TIMEOUT_SECONDS
from cashflow_kernel.domain.clock import Clock
from cashflow_kernel.exceptions import (
    InsufficientPaymentError,
    OrderNotFoundError,
    ProductNotFoundError,
    ShopNotFoundError,
    UserNotFoundError,
    ValidationError,
)
from cashflow_kernel.logging_config import LogContext
from cashflow_kernel.models.order import (
    Order,
    OrderItem,
    OrderStatus,
    Payment,
    PaymentMethod,
    Product,
)
from cashflow_kernel.models.party import Shop, User, UserRole
from cashflow_kernel.models.wallet import WalletTransactionType
from cashflow_services.access import ShopAccessChecker
from cashflow_services.base import BaseService
from cashflow_services.cash_flow_service import CashFlowIntegrationService, SyncOutcome
from cashflow_services.shop_balance_service import ShopBalanceService
from cashflow_services.transaction_ledger_service import parse_amount, parse_enum
from cashflow_services.wallet_ledger_service import OrderView, WalletLedgerService

_HUNDRED = Decimal("100")


@dataclass(frozen=True)
class LineItem:
    product_id: UUID
    selling_price: Decimal
    original_price: Decimal | None = None
    quantity: int = 1


@dataclass(frozen=True)
class Tender:
    method: str
    amount: Decimal
    reference: str | None = None


@dataclass(frozen=True)
class SettledOrder:
    order_id: UUID
    order_number: str
    subtotal: Decimal
    discount: Decimal
    total: Decimal
    paid: Decimal
    payment_due: Decimal
    extra: Decimal
    sync_outcomes: tuple[SyncOutcome, ...] = ()


class OrderSettlementService(BaseService):
    _logger_name = "services.order_settlement"

    def __init__(
        self,
        session: Session,
        codec: AmountCodec,
        clock: Clock | None = None,
        balances: ShopBalanceService | None = None,
        wallets: WalletLedgerService | None = None,
        sync: CashFlowIntegrationService | None = None,
        access: ShopAccessChecker | None = None,
        logger: logging.Logger | None = None,
        uow_timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    ):
        super().__init__(session, clock, logger, uow_timeout_seconds)
        self.codec = codec
        self.balances = balances or ShopBalanceService(
            session, codec, self.clock, access=access, uow_timeout_seconds=uow_timeout_seconds,
        )
        self.wallets = wallets or WalletLedgerService(
            session, codec, self.clock, access=access, uow_timeout_seconds=uow_timeout_seconds,
        )
        self.sync = sync or CashFlowIntegrationService(
            session, codec, self.clock, balances=self.balances,
            uow_timeout_seconds=uow_timeout_seconds,
        )
        self.access = self.balances.access

    def resolve_customer(
        self,
        name: str | None = None,
        email: str | None = None,
        phone: str | None = None,
    ) -> UUID | None:
        """
        Find a walk-in customer by email, then by phone, or register one.

        Returns None when no details are given.
        """
        if not (name or email or phone):
            return None
        customer = None
        if email:
            customer = self.session.scalar(select(User).where(User.email == email))
        if customer is None and phone:
            customer = self.session.scalar(
                select(User)
                .where(User.contact_number == phone)
                .order_by(User.created_at, User.id)
                .limit(1)
            )
        if customer is not None:
            return customer.id

        with self._unit_of_work("resolve_customer"):
            customer = User(
                name=name or "Guest Customer",
                email=email,
                contact_number=phone,
                role=UserRole.CUSTOMER.value,
            )
            self.session.add(customer)
            self.session.flush()
            customer_id = customer.id
        self.logger.info("customer_registered", extra={"customer_id": str(customer_id)})
        return customer_id

    def settle_order(
        self,
        shop_id: UUID,
        items: Sequence[LineItem],
        tenders: Sequence[Tender],
        customer_id: UUID | None = None,
        customer_name: str | None = None,
        customer_email: str | None = None,
        customer_phone: str | None = None,
        discount: object = 0,
        discount_is_percentage: bool = False,
        due_payment: object = 0,
        store_extra_in_wallet: bool = False,
        loyalty_points: int = 0,
        note: str | None = None,
        order_number: str | None = None,
        actor_id: UUID | None = None,
    ) -> SettledOrder:
        """
        Record a completed sale.

        Args:
            shop_id: Selling shop.
            items: Line items; ``selling_price`` is per unit.
            tenders: Payments handed over, by method.
            customer_id: Required for any wallet effect.
            customer_name, customer_email, customer_phone: Walk-in details,
                resolved through ``resolve_customer`` when no ``customer_id``
                is given.
            discount: Fixed amount, or a percentage of the subtotal when
                ``discount_is_percentage`` is set.
            due_payment: Part of the tendered money that pays off the
                customer's existing due.
            store_extra_in_wallet: Park any overpayment in the wallet.
            loyalty_points: Points earned on this order.
            note: Free text stored on the order.
            order_number: Defaults to ``ORD-<epoch ms>-<nnn>``.
            actor_id: When given, must be a member of the shop.

        Raises:
            ValidationError: Empty order, bad tender, or a wallet effect
                without a customer.
            InsufficientPaymentError: Tendered < total + due_payment.
            UnitOfWorkError: Persisting failed; nothing was written.
        """
        if actor_id is not None:
            self.access.require_access(actor_id, shop_id)
        if not items:
            raise ValidationError("An order needs at least one item")
        if not tenders:
            raise ValidationError("An order needs at least one payment")

        subtotal = sum(
            (parse_amount("selling_price", i.selling_price) * i.quantity for i in items), ZERO,
        )
        discount_value = parse_amount("discount", discount)
        if discount_is_percentage:
            discount_value = round_money(subtotal * discount_value / _HUNDRED)
        if discount_value > subtotal:
            raise ValidationError(f"Discount {discount_value} exceeds subtotal {subtotal}")
        total = subtotal - discount_value

        methods = [parse_enum(PaymentMethod, "payment method", t.method) for t in tenders]
        amounts = [parse_amount("payment amount", t.amount) for t in tenders]
        paid = sum(amounts, ZERO)
        due_value = parse_amount("due_payment", due_payment)
        wallet_used = sum(
            (a for m, a in zip(methods, amounts) if m == PaymentMethod.WALLET.value), ZERO,
        )

        if customer_id is None:
            customer_id = self.resolve_customer(customer_name, customer_email, customer_phone)
        if customer_id is None and (wallet_used > 0 or due_value > 0 or loyalty_points > 0):
            raise ValidationError("Wallet payments, due payments and loyalty points need a customer")
        if loyalty_points < 0:
            raise ValidationError("loyalty_points cannot be negative")

        required = total + due_value
        if paid < required:
            raise InsufficientPaymentError(str(paid), str(required))
        extra = paid - required

        now = self.clock.now()
        number = order_number or f"ORD-{int(now.timestamp() * 1000)}-{secrets.randbelow(1000):03d}"

        with LogContext.bind(shop_id=shop_id, actor_id=actor_id, customer_id=customer_id):
            with self._unit_of_work("settle_order"):
                self._check_references(shop_id, customer_id, items)

                payment_due = ZERO
                if wallet_used > 0:
                    available = self.wallets.projection_for(customer_id, shop_id).balance
                    payment_due = max(wallet_used - max(available, ZERO), ZERO)

                order = Order(
                    order_number=number,
                    shop_id=shop_id,
                    customer_id=customer_id,
                    status=OrderStatus.COMPLETED.value,
                    subtotal=self.codec.encrypt(subtotal),
                    discount=self.codec.encrypt(discount_value),
                    total=self.codec.encrypt(total),
                    paid=self.codec.encrypt(paid),
                    payment_due=self.codec.encrypt(payment_due),
                    note=note,
                    created_at=now,
                )
                self.session.add(order)
                self.session.flush()

                for item in items:
                    selling = parse_amount("selling_price", item.selling_price)
                    original = (
                        parse_amount("original_price", item.original_price)
                        if item.original_price is not None
                        else selling
                    )
                    self.session.add(
                        OrderItem(
                            order_id=order.id,
                            product_id=item.product_id,
                            quantity=item.quantity,
                            original_price=self.codec.encrypt(original),
                            selling_price=self.codec.encrypt(selling),
                            created_at=now,
                        )
                    )

                payments: list[Payment] = []
                for tender, method, amount in zip(tenders, methods, amounts):
                    payment = Payment(
                        order_id=order.id,
                        amount=self.codec.encrypt(amount),
                        method=method,
                        reference=tender.reference,
                        created_at=now,
                    )
                    self.session.add(payment)
                    payments.append(payment)
                    self.balances.apply_payment(shop_id, method, amount)

                self._wallet_effects(
                    order, customer_id, shop_id, wallet_used, due_value,
                    extra if store_extra_in_wallet else ZERO, loyalty_points,
                )

            self.logger.info(
                "order_settled",
                extra={
                    "order_id": str(order.id),
                    "order_number": number,
                    "total": total,
                    "paid": paid,
                    "payment_due": payment_due,
                    "extra": extra,
                    "payment_count": len(payments),
                },
            )

            outcomes = tuple(
                self.sync.sync_order_payment(order.id, payment, shop_id, number, customer_id)
                for payment in payments
                if payment.method != PaymentMethod.WALLET.value
            )

        return SettledOrder(
            order_id=order.id,
            order_number=number,
            subtotal=subtotal,
            discount=discount_value,
            total=total,
            paid=paid,
            payment_due=payment_due,
            extra=extra,
            sync_outcomes=outcomes,
        )

    def get_orders(
        self,
        shop_id: UUID,
        actor_id: UUID | None = None,
        customer_id: UUID | None = None,
        status: str | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[OrderView]:
        """Shop-side order list, newest first, with decrypted amounts."""
        if actor_id is not None:
            self.access.require_access(actor_id, shop_id)
        conditions = [Order.shop_id == shop_id]
        if customer_id is not None:
            conditions.append(Order.customer_id == customer_id)
        if status is not None:
            conditions.append(Order.status == parse_enum(OrderStatus, "order status", status))
        if start is not None:
            conditions.append(Order.created_at >= start)
        if end is not None:
            conditions.append(Order.created_at <= end)
        orders = self.session.scalars(
            select(Order)
            .where(*conditions)
            .options(
                selectinload(Order.items).selectinload(OrderItem.product),
                selectinload(Order.payments),
            )
            .order_by(Order.created_at.desc(), Order.id)
        ).all()
        return self.wallets.order_views(orders)

    def get_order(self, order_id: UUID, actor_id: UUID | None = None) -> OrderView:
        order = self.session.get(Order, order_id)
        if order is None:
            raise OrderNotFoundError(str(order_id))
        if actor_id is not None:
            self.access.require_access(actor_id, order.shop_id)
        [view] = self.wallets.order_views([order])
        return view

    def _check_references(
        self,
        shop_id: UUID,
        customer_id: UUID | None,
        items: Sequence[LineItem],
    ) -> None:
        if self.session.get(Shop, shop_id) is None:
            raise ShopNotFoundError(str(shop_id))
        if customer_id is not None and self.session.get(User, customer_id) is None:
            raise UserNotFoundError(str(customer_id))
        for item in items:
            if self.session.get(Product, item.product_id) is None:
                raise ProductNotFoundError(str(item.product_id))
            if item.quantity < 1:
                raise ValidationError(f"Quantity must be >= 1, got {item.quantity}")

    def _wallet_effects(
        self,
        order: Order,
        customer_id: UUID | None,
        shop_id: UUID,
        wallet_used: Decimal,
        due_paid: Decimal,
        extra_added: Decimal,
        loyalty_points: int,
    ) -> None:
        if customer_id is None:
            return
        movements = (
            (WalletTransactionType.ORDER_PAYMENT, wallet_used),
            (WalletTransactionType.DUE_PAYMENT, due_paid),
            (WalletTransactionType.EXTRA_PAYMENT, extra_added),
            (WalletTransactionType.LOYALTY_POINTS, Decimal(loyalty_points)),
        )
        for kind, amount in movements:
            if amount > 0:
                self.wallets.append_movement(
                    customer_id, shop_id, kind.value, amount, order_id=order.id, when=order.created_at,
                )
