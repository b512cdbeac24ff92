"""Store Service models package."""

from services.store_service.models.catalog import Part, Vendor
from services.store_service.models.commerce import Order, OrderItem
from services.store_service.models.enums import (
    TERMINAL_ORDER_STATUSES,
    InventoryMovementType,
    OrderStatus,
)
from services.store_service.models.inventory import InventoryMovement

__all__ = [
    "InventoryMovement",
    "InventoryMovementType",
    "Order",
    "OrderItem",
    "OrderStatus",
    "Part",
    "TERMINAL_ORDER_STATUSES",
    "Vendor",
]
