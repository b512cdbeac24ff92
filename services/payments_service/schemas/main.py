import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from services.payments_service.models import PaymentMethod, PaymentStatus
from services.store_service.models import OrderStatus


class CreatePaymentRequest(BaseModel):
    order_id: uuid.UUID
    amount: Decimal = Field(gt=0, max_digits=12, decimal_places=2)
    method: PaymentMethod
    currency: Optional[str] = Field(default=None, min_length=3, max_length=8)
    mobile_money_phone: Optional[str] = None  # Required by some mobile money gateways


class PaymentCreatedResponse(BaseModel):
    payment_id: uuid.UUID
    order_id: uuid.UUID
    status: PaymentStatus
    amount: Decimal
    currency: str
    expires_at: datetime


class VerifyPaymentRequest(BaseModel):
    """Gateway callback body."""

    status: PaymentStatus
    transaction_ref: Optional[str] = None
    error_message: Optional[str] = None


class PaymentStatusResult(BaseModel):
    payment_id: uuid.UUID
    payment_status: PaymentStatus
    order_status: OrderStatus


class RefundPaymentRequest(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=500)


class RefundResponse(PaymentStatusResult):
    refunded_amount: Decimal
    refunded_at: Optional[datetime] = None


class PaymentResponse(BaseModel):
    id: uuid.UUID
    order_id: uuid.UUID
    user_id: str
    amount: Decimal
    currency: str
    method: PaymentMethod
    status: PaymentStatus
    transaction_ref: Optional[str] = None
    created_at: datetime
    completed_at: Optional[datetime] = None
    refunded_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)
