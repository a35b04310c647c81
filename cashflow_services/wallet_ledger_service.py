"""
WalletLedgerService -- customer wallets as projections of their history.

Responsibility:
    Append wallet movements and rewrite the cached balance/points from the
    full history; answer order-history and warranty queries for one shop
    or for every shop the caller may see.

Architecture position:
    Services -- imperative shell over ``cashflow_engines.wallet_projection``
    and ``cashflow_engines.warranty``.

Invariants enforced:
    - decrypt(wallet.balance) == sum of signed movement amounts after every
      append (the cache is recomputed, never incremented).
    - Every returned order carries wallet_modifications; orders without
      wallet movements get four zero buckets.
    - Multi-shop queries isolate each shop: a failure becomes an entry
      with ``error`` set, the other shops are still returned.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Callable, Sequence, TypeVar
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from cashflow_engines.wallet_projection import (
    WalletModifications,
    WalletMovement,
    WalletProjection,
    modifications_by_order,
    project_wallet,
)
from cashflow_engines.warranty import SoldItem, WarrantyClassification, classify_warranties
from cashflow_kernel.crypto import AmountCodec
from cashflow_kernel.db.unit_of_work import DEFAULT_TIMEOUT_SECONDS
from cashflow_kernel.domain.clock import Clock, ensure_utc
from cashflow_kernel.exceptions import WalletNotFoundError
from cashflow_kernel.logging_config import LogContext
from cashflow_kernel.models.order import Order, OrderItem, OrderStatus
from cashflow_kernel.models.wallet import (
    CustomerWallet,
    WalletTransaction,
    WalletTransactionType,
)
from cashflow_services.access import MembershipAccessChecker, ShopAccessChecker
from cashflow_services.base import BaseService
from cashflow_services.transaction_ledger_service import parse_amount, parse_enum

if TYPE_CHECKING:
    from cashflow_services.cash_flow_service import CashFlowIntegrationService

T = TypeVar("T")


# ---------------------------------------------------------------------------
# Views
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class WalletMovementView:
    id: UUID
    type: str
    amount: Decimal
    order_id: UUID | None
    occurred_at: datetime


@dataclass(frozen=True)
class WalletView:
    id: UUID
    customer_id: UUID
    shop_id: UUID
    balance: Decimal
    loyalty_points: int
    transactions: tuple[WalletMovementView, ...] = ()


@dataclass(frozen=True)
class OrderItemView:
    id: UUID
    product_id: UUID
    product_name: str
    quantity: int
    original_price: Decimal
    selling_price: Decimal
    warranty_months: int | None


@dataclass(frozen=True)
class OrderPaymentView:
    id: UUID
    amount: Decimal
    method: str
    reference: str | None
    created_at: datetime


@dataclass(frozen=True)
class OrderView:
    id: UUID
    order_number: str
    shop_id: UUID
    customer_id: UUID | None
    status: str
    subtotal: Decimal
    discount: Decimal
    total: Decimal
    paid: Decimal
    payment_due: Decimal
    note: str | None
    created_at: datetime
    items: tuple[OrderItemView, ...]
    payments: tuple[OrderPaymentView, ...]
    wallet_modifications: WalletModifications


@dataclass(frozen=True)
class OrderHistory:
    wallet: WalletView | None
    orders: tuple[OrderView, ...] = ()


@dataclass(frozen=True)
class ShopHistory:
    shop_id: UUID
    wallet: WalletView | None
    orders: tuple[OrderView, ...] = ()
    error: str | None = None


@dataclass(frozen=True)
class ShopWarranty:
    shop_id: UUID
    warranty: WarrantyClassification = field(
        default_factory=lambda: WarrantyClassification(active=(), expired=())
    )
    error: str | None = None


@dataclass(frozen=True)
class WalletVerification:
    customer_id: UUID
    shop_id: UUID
    cached_balance: Decimal
    projected_balance: Decimal
    cached_points: int
    projected_points: int

    @property
    def is_consistent(self) -> bool:
        return (
            self.cached_balance == self.projected_balance
            and self.cached_points == self.projected_points
        )


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


class WalletLedgerService(BaseService):
    _logger_name = "services.wallet_ledger"

    def __init__(
        self,
        session: Session,
        codec: AmountCodec,
        clock: Clock | None = None,
        access: ShopAccessChecker | None = None,
        sync: CashFlowIntegrationService | None = None,
        logger: logging.Logger | None = None,
        uow_timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    ):
        super().__init__(session, clock, logger, uow_timeout_seconds)
        self.codec = codec
        self.access = access or MembershipAccessChecker(session)
        self.sync = sync

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def ensure_wallet(self, customer_id: UUID, shop_id: UUID) -> CustomerWallet:
        """Return the wallet for the pair, creating an empty one.  Flush only."""
        wallet = self._wallet_row(customer_id, shop_id)
        if wallet is None:
            wallet = CustomerWallet(
                customer_id=customer_id,
                shop_id=shop_id,
                balance=self.codec.encrypt(Decimal("0")),
                loyalty_points=self.codec.encrypt_points(0),
            )
            self.session.add(wallet)
            self.session.flush()
            self.logger.info(
                "wallet_created",
                extra={"customer_id": str(customer_id), "shop_id": str(shop_id)},
            )
        return wallet

    def append_movement(
        self,
        customer_id: UUID,
        shop_id: UUID,
        type: str,
        amount: object,
        order_id: UUID | None = None,
        when: datetime | None = None,
    ) -> WalletTransaction:
        """Append one movement and refresh the projection.  Flush only."""
        wallet = self.ensure_wallet(customer_id, shop_id)
        movement = WalletTransaction(
            customer_id=customer_id,
            shop_id=shop_id,
            type=parse_enum(WalletTransactionType, "wallet transaction type", type),
            amount=self.codec.encrypt(parse_amount("amount", amount)),
            order_id=order_id,
            occurred_at=ensure_utc(when) if when else self.clock.now(),
        )
        self.session.add(movement)
        self.session.flush()
        self._refresh_projection(wallet)
        return movement

    def record_wallet_transaction(
        self,
        customer_id: UUID,
        shop_id: UUID,
        type: str,
        amount: object,
        order_id: UUID | None = None,
    ) -> WalletProjection:
        """Append a movement in its own unit of work; returns the new projection."""
        with self._unit_of_work("record_wallet_transaction"):
            movement = self.append_movement(customer_id, shop_id, type, amount, order_id)
            wallet = self._wallet_row(customer_id, shop_id)
            projection = self._decode_wallet(wallet)

        self.logger.info(
            "wallet_transaction_recorded",
            extra={
                "customer_id": str(customer_id),
                "shop_id": str(shop_id),
                "wallet_tx_id": str(movement.id),
                "type": movement.type,
                "order_id": str(order_id) if order_id else None,
            },
        )
        return projection

    def pay_due(
        self,
        customer_id: UUID,
        shop_id: UUID,
        amount: object,
        when: datetime | None = None,
    ) -> WalletProjection:
        """
        Record a customer paying off (part of) their due.

        The wallet write commits first; the cash-flow ledger entry is then
        synced best-effort, so a sync failure never undoes the payment.
        """
        value = parse_amount("amount", amount)
        paid_at = ensure_utc(when) if when else self.clock.now()
        with LogContext.bind(customer_id=customer_id, shop_id=shop_id):
            projection = self.record_wallet_transaction(
                customer_id, shop_id, WalletTransactionType.DUE_PAYMENT.value, value,
            )
            if self.sync is not None:
                self.sync.sync_due_payment(customer_id, shop_id, value, paid_at)
        return projection

    # ------------------------------------------------------------------
    # Verification
    # ------------------------------------------------------------------

    def projection_for(self, customer_id: UUID, shop_id: UUID) -> WalletProjection:
        """Balance and points recomputed from history; zeros without a wallet."""
        return project_wallet(self._movements(customer_id, shop_id))

    def verify_wallet(self, customer_id: UUID, shop_id: UUID) -> WalletVerification:
        """Compare the cached balance/points with a fresh projection."""
        wallet = self._wallet_row(customer_id, shop_id)
        if wallet is None:
            raise WalletNotFoundError(str(customer_id), str(shop_id))
        cached = self._decode_wallet(wallet)
        projected = project_wallet(self._movements(customer_id, shop_id))
        result = WalletVerification(
            customer_id=customer_id,
            shop_id=shop_id,
            cached_balance=cached.balance,
            projected_balance=projected.balance,
            cached_points=cached.loyalty_points,
            projected_points=projected.loyalty_points,
        )
        if not result.is_consistent:
            self.logger.warning(
                "wallet_projection_mismatch",
                extra={
                    "customer_id": str(customer_id),
                    "shop_id": str(shop_id),
                    "cached_balance": cached.balance,
                    "projected_balance": projected.balance,
                    "cached_points": cached.loyalty_points,
                    "projected_points": projected.loyalty_points,
                },
            )
        return result

    # ------------------------------------------------------------------
    # Order history
    # ------------------------------------------------------------------

    def get_order_history(self, customer_id: UUID, shop_id: UUID) -> OrderHistory:
        """Decrypted wallet and COMPLETED orders with per-order wallet buckets."""
        wallet = self._wallet_row(customer_id, shop_id)
        if wallet is None:
            return OrderHistory(wallet=None, orders=())

        movement_rows = self._movement_rows(customer_id, shop_id)
        amounts = self.codec.decrypt_many([m.amount for m in movement_rows])
        movement_views = tuple(
            WalletMovementView(
                id=m.id,
                type=m.type,
                amount=amount,
                order_id=m.order_id,
                occurred_at=m.occurred_at,
            )
            for m, amount in zip(movement_rows, amounts)
        )
        decoded = self._decode_wallet(wallet)
        wallet_view = WalletView(
            id=wallet.id,
            customer_id=customer_id,
            shop_id=shop_id,
            balance=decoded.balance,
            loyalty_points=decoded.loyalty_points,
            transactions=movement_views,
        )

        orders = self._completed_orders(customer_id, shop_id)
        buckets = modifications_by_order(
            (WalletMovement(type=v.type, amount=v.amount, order_id=v.order_id) for v in movement_views),
            [o.id for o in orders],
        )
        return OrderHistory(
            wallet=wallet_view,
            orders=tuple(self._order_view(o, buckets[o.id]) for o in orders),
        )

    def get_history_for_all_shops(
        self,
        requesting_user_id: UUID,
        customer_id: UUID,
    ) -> list[ShopHistory]:
        """Per-shop histories for every shop the caller may see."""
        results: list[ShopHistory] = []
        for shop_id in self.visible_shops(requesting_user_id, customer_id):
            history, error = self._isolated(
                "shop_history_failed",
                shop_id,
                lambda s=shop_id: self.get_order_history(customer_id, s),
            )
            if history is None:
                results.append(ShopHistory(shop_id=shop_id, wallet=None, orders=(), error=error))
            else:
                results.append(
                    ShopHistory(shop_id=shop_id, wallet=history.wallet, orders=history.orders)
                )
        return results

    # ------------------------------------------------------------------
    # Warranty
    # ------------------------------------------------------------------

    def get_warranty_items(self, customer_id: UUID, shop_id: UUID) -> WarrantyClassification:
        orders = self._completed_orders(customer_id, shop_id)
        sold = [
            SoldItem(
                order_id=order.id,
                order_number=order.order_number,
                order_date=order.created_at,
                product_name=item.product.name,
                warranty_months=item.product.warranty_months,
            )
            for order in orders
            for item in order.items
        ]
        return classify_warranties(sold, now=self.clock.now())

    def get_warranty_items_for_all_shops(
        self,
        requesting_user_id: UUID,
        customer_id: UUID,
    ) -> list[ShopWarranty]:
        results: list[ShopWarranty] = []
        for shop_id in self.visible_shops(requesting_user_id, customer_id):
            warranty, error = self._isolated(
                "shop_warranty_failed",
                shop_id,
                lambda s=shop_id: self.get_warranty_items(customer_id, s),
            )
            if warranty is None:
                results.append(ShopWarranty(shop_id=shop_id, error=error))
            else:
                results.append(ShopWarranty(shop_id=shop_id, warranty=warranty))
        return results

    def order_views(self, orders: Sequence[Order]) -> list[OrderView]:
        """Decrypted views of arbitrary orders, with their wallet buckets."""
        order_ids = [o.id for o in orders]
        rows = (
            list(
                self.session.scalars(
                    select(WalletTransaction).where(WalletTransaction.order_id.in_(order_ids))
                )
            )
            if order_ids
            else []
        )
        amounts = self.codec.decrypt_many([m.amount for m in rows])
        buckets = modifications_by_order(
            (
                WalletMovement(type=m.type, amount=amount, order_id=m.order_id)
                for m, amount in zip(rows, amounts)
            ),
            order_ids,
        )
        return [self._order_view(o, buckets[o.id]) for o in orders]

    # ------------------------------------------------------------------
    # Shop visibility
    # ------------------------------------------------------------------

    def visible_shops(self, requesting_user_id: UUID, customer_id: UUID) -> list[UUID]:
        """
        A customer viewing themself sees every shop where they have an order
        or a wallet; anyone else sees their own membership list.
        """
        if requesting_user_id != customer_id:
            return self.access.shops_for(requesting_user_id)
        order_shops = self.session.scalars(
            select(Order.shop_id).where(Order.customer_id == customer_id).distinct()
        )
        wallet_shops = self.session.scalars(
            select(CustomerWallet.shop_id).where(CustomerWallet.customer_id == customer_id)
        )
        return sorted(set(order_shops) | set(wallet_shops), key=str)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _isolated(
        self,
        event: str,
        shop_id: UUID,
        fetch: Callable[[], T],
    ) -> tuple[T | None, str | None]:
        try:
            return fetch(), None
        except Exception as exc:
            self.logger.error(
                event,
                extra={"shop_id": str(shop_id), "error": str(exc) or type(exc).__name__},
                exc_info=True,
            )
            return None, str(exc) or type(exc).__name__

    def _wallet_row(self, customer_id: UUID, shop_id: UUID) -> CustomerWallet | None:
        return self.session.scalar(
            select(CustomerWallet).where(
                CustomerWallet.customer_id == customer_id,
                CustomerWallet.shop_id == shop_id,
            )
        )

    def _movement_rows(self, customer_id: UUID, shop_id: UUID) -> list[WalletTransaction]:
        return list(
            self.session.scalars(
                select(WalletTransaction)
                .where(
                    WalletTransaction.customer_id == customer_id,
                    WalletTransaction.shop_id == shop_id,
                )
                .order_by(WalletTransaction.occurred_at.desc(), WalletTransaction.id)
            )
        )

    def _movements(self, customer_id: UUID, shop_id: UUID) -> list[WalletMovement]:
        rows = self._movement_rows(customer_id, shop_id)
        amounts = self.codec.decrypt_many([m.amount for m in rows])
        return [
            WalletMovement(type=m.type, amount=amount, order_id=m.order_id)
            for m, amount in zip(rows, amounts)
        ]

    def _refresh_projection(self, wallet: CustomerWallet) -> WalletProjection:
        projection = project_wallet(self._movements(wallet.customer_id, wallet.shop_id))
        wallet.balance = self.codec.encrypt(projection.balance)
        wallet.loyalty_points = self.codec.encrypt_points(projection.loyalty_points)
        self.session.flush()
        return projection

    def _decode_wallet(self, wallet: CustomerWallet) -> WalletProjection:
        return WalletProjection(
            balance=self.codec.decrypt(wallet.balance),
            loyalty_points=self.codec.decrypt_points(wallet.loyalty_points),
        )

    def _completed_orders(self, customer_id: UUID, shop_id: UUID) -> list[Order]:
        return list(
            self.session.scalars(
                select(Order)
                .where(
                    Order.customer_id == customer_id,
                    Order.shop_id == shop_id,
                    Order.status == OrderStatus.COMPLETED.value,
                )
                .options(
                    selectinload(Order.items).selectinload(OrderItem.product),
                    selectinload(Order.payments),
                )
                .order_by(Order.created_at.desc(), Order.id)
            )
        )

    def _order_view(self, order: Order, buckets: WalletModifications) -> OrderView:
        items = list(order.items)
        payments = list(order.payments)
        header = [order.subtotal, order.discount, order.total, order.paid, order.payment_due]
        prices = [p for item in items for p in (item.original_price, item.selling_price)]
        values = self.codec.decrypt_many(header + prices + [p.amount for p in payments])

        subtotal, discount, total, paid, payment_due = values[:5]
        price_values = values[5:5 + len(prices)]
        payment_values = values[5 + len(prices):]

        return OrderView(
            id=order.id,
            order_number=order.order_number,
            shop_id=order.shop_id,
            customer_id=order.customer_id,
            status=order.status,
            subtotal=subtotal,
            discount=discount,
            total=total,
            paid=paid,
            payment_due=payment_due,
            note=order.note,
            created_at=order.created_at,
            items=tuple(
                OrderItemView(
                    id=item.id,
                    product_id=item.product_id,
                    product_name=item.product.name,
                    quantity=item.quantity,
                    original_price=price_values[2 * i],
                    selling_price=price_values[2 * i + 1],
                    warranty_months=item.product.warranty_months,
                )
                for i, item in enumerate(items)
            ),
            payments=tuple(
                OrderPaymentView(
                    id=p.id,
                    amount=amount,
                    method=p.method,
                    reference=p.reference,
                    created_at=p.created_at,
                )
                for p, amount in zip(payments, payment_values)
            ),
            wallet_modifications=buckets,
        )
