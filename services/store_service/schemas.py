"""Pydantic schemas for store service."""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from services.store_service.models import OrderStatus

# ============================================================================
# ORDER REQUEST SCHEMAS
# ============================================================================


class OrderItemRequest(BaseModel):
    part_id: uuid.UUID
    # Positivity is enforced by the order workflow so it reports BadRequest
    quantity: int


class CreateOrderRequest(BaseModel):
    items: list[OrderItemRequest] = Field(default_factory=list)


class FulfillmentUpdate(BaseModel):
    status: OrderStatus


# ============================================================================
# ORDER RESPONSE SCHEMAS
# ============================================================================


class OrderItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    part_id: uuid.UUID
    vendor_id: uuid.UUID
    part_title: str
    quantity: int
    unit_price: Decimal
    line_total: Decimal


class OrderResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    user_id: str
    status: OrderStatus
    total: Decimal

    paid_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    refunded_at: Optional[datetime] = None
    shipped_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    items: list[OrderItemResponse] = []


class OrderPage(BaseModel):
    items: list[OrderResponse]
    page: int
    page_size: int
    total: int
    has_more: bool


class CancelOrderResponse(BaseModel):
    message: str
    order: OrderResponse
