"""Order workflow: create, cancel, read and advance orders.

Every mutation runs as one transaction through ``run_in_transaction``;
notifications go out only after the commit and can never undo a transition.
"""

import uuid
from collections.abc import Sequence
from datetime import timedelta
from decimal import Decimal
from typing import Optional, Protocol

from libs.common.datetime_utils import utc_now
from libs.common.errors import (
    BadRequestError,
    ForbiddenError,
    InsufficientStockError,
    InvalidStateError,
    NotFoundError,
)
from libs.common.logging import get_logger
from libs.common.notifications import (
    NotificationEvent,
    NotificationKind,
    Notifier,
    notify_safely,
)
from libs.db.transaction import run_in_transaction
from services.store_service.models import Order, OrderStatus
from services.store_service.services import inventory_store, order_ledger
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)

MAX_PAGE_SIZE = 100
ESTIMATED_DELIVERY_DAYS = 7

# Admin fulfillment steps: current status -> the only status it may advance to.
FULFILLMENT_STEPS = {
    OrderStatus.PROCESSING: OrderStatus.SHIPPED,
    OrderStatus.SHIPPED: OrderStatus.DELIVERED,
}
FULFILLMENT_NOTIFICATIONS = {
    OrderStatus.SHIPPED: NotificationKind.ORDER_SHIPPED,
    OrderStatus.DELIVERED: NotificationKind.ORDER_DELIVERED,
}


class OrderLine(Protocol):
    part_id: uuid.UUID
    quantity: int


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _validate_lines(items: Sequence[OrderLine]) -> list[tuple[uuid.UUID, int]]:
    if not items:
        raise BadRequestError("Order must contain at least one item")
    lines = []
    for item in items:
        if item.quantity is None or item.quantity <= 0:
            raise BadRequestError(
                f"Quantity for part {item.part_id} must be greater than zero"
            )
        lines.append((item.part_id, item.quantity))
    return lines


def _check_owner(order: Optional[Order], order_id: uuid.UUID, user_id: str) -> Order:
    if order is None:
        raise NotFoundError(f"Order {order_id} not found")
    if order.user_id != user_id:
        raise ForbiddenError("Not authorized to access this order")
    return order


# ---------------------------------------------------------------------------
# Create / cancel
# ---------------------------------------------------------------------------


async def create_order(
    db: AsyncSession,
    *,
    user_id: str,
    items: Sequence[OrderLine],
    notifier: Optional[Notifier] = None,
) -> Order:
    """Reserve stock for every line and record a PENDING order.

    Quantities for a part listed more than once are summed before the stock
    check. Nothing is written unless every part can be reserved.
    """
    lines = _validate_lines(items)
    requested = inventory_store.sum_quantities(lines)

    async def _work(session: AsyncSession) -> uuid.UUID:
        parts = await inventory_store.get_parts_by_ids(session, requested)
        missing = [part_id for part_id in requested if part_id not in parts]
        if missing:
            raise NotFoundError(f"Part {missing[0]} not found")

        for part_id, quantity in requested.items():
            part = parts[part_id]
            if part.stock < quantity:
                raise InsufficientStockError(
                    f'Insufficient stock for "{part.title}". '
                    f"Available: {part.stock}, Requested: {quantity}"
                )

        total = sum(
            (order_ledger.line_total(parts[part_id].price, quantity)
             for part_id, quantity in lines),
            Decimal("0"),
        )
        order_id = uuid.uuid4()
        order = await order_ledger.insert_order(
            session, order_id=order_id, user_id=user_id, total=total
        )
        await inventory_store.reserve_stock(session, requested, order_id=order_id)
        await order_ledger.insert_order_items(
            session, order, [(parts[part_id], quantity) for part_id, quantity in lines]
        )
        return order_id

    order_id = await run_in_transaction(db, _work, operation="order creation")
    order = await order_ledger.get_order(db, order_id)

    logger.info(
        "Created order %s for user %s: %d item(s), total %s",
        order.id,
        user_id,
        len(order.items),
        order.total,
    )
    notify_safely(
        notifier,
        NotificationEvent(
            kind=NotificationKind.ORDER_CONFIRMATION,
            order_id=order.id,
            recipient=user_id,
            context={
                "total": str(order.total),
                "item_count": len(order.items),
                "items": [
                    {"title": item.part_title, "quantity": item.quantity}
                    for item in order.items
                ],
                "estimated_delivery": (
                    utc_now() + timedelta(days=ESTIMATED_DELIVERY_DAYS)
                ).date().isoformat(),
            },
        ),
    )
    return order


async def cancel_order(
    db: AsyncSession,
    *,
    order_id: uuid.UUID,
    requesting_user_id: str,
    notifier: Optional[Notifier] = None,
) -> Order:
    """Cancel a PENDING order and give back exactly what it reserved."""

    async def _work(session: AsyncSession) -> Order:
        order = await order_ledger.get_order(session, order_id, for_update=True)
        order = _check_owner(order, order_id, requesting_user_id)
        if order.status != OrderStatus.PENDING:
            raise InvalidStateError(
                f"Cannot cancel order with status: {order.status.value}. "
                "Only pending orders can be cancelled."
            )

        reserved = inventory_store.sum_quantities(
            (item.part_id, item.quantity) for item in order.items
        )
        await inventory_store.release_stock(session, reserved, order_id=order.id)
        order_ledger.apply_status(order, OrderStatus.CANCELLED)
        return order

    order = await run_in_transaction(db, _work, operation="order cancellation")

    logger.info("Cancelled order %s for user %s", order.id, requesting_user_id)
    notify_safely(
        notifier,
        NotificationEvent(
            kind=NotificationKind.ORDER_CANCELLED,
            order_id=order.id,
            recipient=order.user_id,
            context={"total": str(order.total)},
        ),
    )
    return order


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


async def get_order(db: AsyncSession, *, order_id: uuid.UUID, user_id: str) -> Order:
    order = await order_ledger.get_order(db, order_id)
    return _check_owner(order, order_id, user_id)


async def list_orders(
    db: AsyncSession, *, user_id: str, page: int = 1, page_size: int = 20
) -> dict:
    """A page of the user's orders, newest first."""
    if page < 1:
        raise BadRequestError("page must be at least 1")
    if page_size < 1 or page_size > MAX_PAGE_SIZE:
        raise BadRequestError(f"page_size must be between 1 and {MAX_PAGE_SIZE}")

    orders, total = await order_ledger.list_orders_for_user(
        db, user_id, offset=(page - 1) * page_size, limit=page_size
    )
    return {
        "items": orders,
        "page": page,
        "page_size": page_size,
        "total": total,
        "has_more": page * page_size < total,
    }


# ---------------------------------------------------------------------------
# Status transitions
# ---------------------------------------------------------------------------


async def begin_checkout(
    db: AsyncSession, *, order_id: uuid.UUID, user_id: str
) -> Order:
    """Move a PENDING order to PENDING_PAYMENT so a payment can be opened."""

    async def _work(session: AsyncSession) -> Order:
        order = await order_ledger.get_order(session, order_id, for_update=True)
        order = _check_owner(order, order_id, user_id)
        if order.status == OrderStatus.PENDING_PAYMENT:
            return order
        if order.status != OrderStatus.PENDING:
            raise InvalidStateError(
                f"Cannot check out order with status: {order.status.value}"
            )
        order_ledger.apply_status(order, OrderStatus.PENDING_PAYMENT)
        logger.info("Order %s is awaiting payment", order.id)
        return order

    return await run_in_transaction(db, _work, operation="checkout")


async def advance_fulfillment(
    db: AsyncSession,
    *,
    order_id: uuid.UUID,
    new_status: OrderStatus,
    notifier: Optional[Notifier] = None,
) -> Order:
    """Admin-only: PROCESSING -> SHIPPED -> DELIVERED, one step at a time."""

    async def _work(session: AsyncSession) -> Order:
        order = await order_ledger.get_order(session, order_id, for_update=True)
        if order is None:
            raise NotFoundError(f"Order {order_id} not found")
        if FULFILLMENT_STEPS.get(order.status) != new_status:
            raise InvalidStateError(
                f"Cannot move order from {order.status.value} to {new_status.value}"
            )
        order_ledger.apply_status(order, new_status)
        return order

    order = await run_in_transaction(db, _work, operation="fulfillment update")

    logger.info("Order %s moved to %s", order.id, order.status.value)
    notify_safely(
        notifier,
        NotificationEvent(
            kind=FULFILLMENT_NOTIFICATIONS[new_status],
            order_id=order.id,
            recipient=order.user_id,
            context={"status": new_status.value},
        ),
    )
    return order
