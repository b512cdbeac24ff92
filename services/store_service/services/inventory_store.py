"""Inventory store: part lookups and conditional stock reservation/release.

Stock only moves through ``reserve_stock`` and ``release_stock``. Both must be
called inside a workflow transaction (``libs.db.transaction``) and touch parts
in sorted id order so concurrent orders always lock rows in the same sequence.
"""

import uuid
from collections.abc import Iterable
from typing import Optional

from libs.common.datetime_utils import utc_now
from libs.common.errors import ConflictError, InsufficientStockError
from libs.common.logging import get_logger
from services.store_service.models import (
    InventoryMovement,
    InventoryMovementType,
    Part,
)
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)


def sum_quantities(lines: Iterable[tuple[uuid.UUID, int]]) -> dict[uuid.UUID, int]:
    """Collapse (part_id, quantity) lines into per-part totals, sorted by id."""
    totals: dict[uuid.UUID, int] = {}
    for part_id, quantity in lines:
        totals[part_id] = totals.get(part_id, 0) + quantity
    return {part_id: totals[part_id] for part_id in sorted(totals)}


async def get_parts_by_ids(
    db: AsyncSession, part_ids: Iterable[uuid.UUID]
) -> dict[uuid.UUID, Part]:
    """Load every requested part in one query, keyed by id."""
    ids = set(part_ids)
    if not ids:
        return {}
    result = await db.execute(
        select(Part)
        .where(Part.id.in_(ids))
        .execution_options(populate_existing=True)
    )
    return {part.id: part for part in result.scalars().all()}


async def get_stock(db: AsyncSession, part_id: uuid.UUID) -> Optional[int]:
    """Current stock straight from the store, or None for an unknown part."""
    result = await db.execute(select(Part.stock).where(Part.id == part_id))
    return result.scalar_one_or_none()


async def reserve_stock(
    db: AsyncSession, quantities: dict[uuid.UUID, int], *, order_id: uuid.UUID
) -> None:
    """Decrement each part by its quantity, all or nothing.

    Each decrement is conditional on sufficient stock at write time, so a
    concurrent reservation that got there first makes this one fail instead
    of driving stock negative. The caller's transaction rolls back any
    decrements already applied.
    """
    for part_id in sorted(quantities):
        quantity = quantities[part_id]
        result = await db.execute(
            update(Part)
            .where(Part.id == part_id, Part.stock >= quantity)
            .values(stock=Part.stock - quantity, updated_at=utc_now())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            available = await get_stock(db, part_id)
            logger.info(
                "Reservation for order %s rejected: part %s has %s, needs %d",
                order_id,
                part_id,
                available,
                quantity,
            )
            raise InsufficientStockError(
                f"Insufficient stock for part {part_id}. "
                f"Available: {available or 0}, Requested: {quantity}"
            )
        db.add(
            InventoryMovement(
                part_id=part_id,
                movement_type=InventoryMovementType.RESERVATION,
                quantity=-quantity,
                order_id=order_id,
            )
        )


async def release_stock(
    db: AsyncSession, quantities: dict[uuid.UUID, int], *, order_id: uuid.UUID
) -> None:
    """Give back exactly the given quantities (an order's own reservation)."""
    for part_id in sorted(quantities):
        quantity = quantities[part_id]
        result = await db.execute(
            update(Part)
            .where(Part.id == part_id)
            .values(stock=Part.stock + quantity, updated_at=utc_now())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise ConflictError(f"Part {part_id} no longer exists")
        db.add(
            InventoryMovement(
                part_id=part_id,
                movement_type=InventoryMovementType.RELEASE,
                quantity=quantity,
                order_id=order_id,
            )
        )
