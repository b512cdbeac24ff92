"""Order ledger: persistence helpers for orders and their items."""

import uuid
from decimal import Decimal
from typing import Optional

from libs.common.datetime_utils import utc_now
from services.store_service.models import Order, OrderItem, OrderStatus, Part
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

# Timestamp column stamped when an order enters each status.
_STATUS_TIMESTAMPS = {
    OrderStatus.PROCESSING: "paid_at",
    OrderStatus.CANCELLED: "cancelled_at",
    OrderStatus.REFUNDED: "refunded_at",
    OrderStatus.SHIPPED: "shipped_at",
    OrderStatus.DELIVERED: "delivered_at",
}

CENTS = Decimal("0.01")


def line_total(unit_price: Decimal, quantity: int) -> Decimal:
    return (Decimal(unit_price) * quantity).quantize(CENTS)


async def insert_order(
    db: AsyncSession, *, order_id: uuid.UUID, user_id: str, total: Decimal
) -> Order:
    order = Order(
        id=order_id,
        user_id=user_id,
        status=OrderStatus.PENDING,
        total=total.quantize(CENTS),
    )
    db.add(order)
    await db.flush()
    return order


async def insert_order_items(
    db: AsyncSession, order: Order, lines: list[tuple[Part, int]]
) -> list[OrderItem]:
    """Snapshot each (part, quantity) line onto the order."""
    items = []
    for part, quantity in lines:
        item = OrderItem(
            order_id=order.id,
            part_id=part.id,
            vendor_id=part.vendor_id,
            part_title=part.title,
            quantity=quantity,
            unit_price=part.price,
            line_total=line_total(part.price, quantity),
        )
        db.add(item)
        items.append(item)
    await db.flush()
    return items


async def get_order(
    db: AsyncSession,
    order_id: uuid.UUID,
    *,
    with_items: bool = True,
    for_update: bool = False,
) -> Optional[Order]:
    """Fetch one order, optionally locking its row for the current transaction."""
    query = select(Order).where(Order.id == order_id)
    if with_items:
        query = query.options(selectinload(Order.items))
    if for_update:
        query = query.with_for_update()
    result = await db.execute(query.execution_options(populate_existing=True))
    return result.scalar_one_or_none()


async def list_orders_for_user(
    db: AsyncSession, user_id: str, *, offset: int, limit: int
) -> tuple[list[Order], int]:
    """One page of a user's orders, newest first, plus the total count."""
    total = (
        await db.execute(
            select(func.count()).select_from(Order).where(Order.user_id == user_id)
        )
    ).scalar_one()

    result = await db.execute(
        select(Order)
        .where(Order.user_id == user_id)
        .options(selectinload(Order.items))
        .order_by(Order.created_at.desc(), Order.id.desc())
        .offset(offset)
        .limit(limit)
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all()), total


def apply_status(order: Order, status: OrderStatus) -> None:
    """Move an order to ``status`` and stamp the matching timestamp.

    Legality of the transition is checked by the calling workflow while it
    holds the order's row lock.
    """
    now = utc_now()
    order.status = status
    order.updated_at = now
    column = _STATUS_TIMESTAMPS.get(status)
    if column:
        setattr(order, column, now)
