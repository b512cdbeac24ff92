"""Payments Service schemas package."""

from services.payments_service.schemas.main import (
    CreatePaymentRequest,
    PaymentCreatedResponse,
    PaymentResponse,
    PaymentStatusResult,
    RefundPaymentRequest,
    RefundResponse,
    VerifyPaymentRequest,
)

__all__ = [
    "CreatePaymentRequest",
    "PaymentCreatedResponse",
    "PaymentResponse",
    "PaymentStatusResult",
    "RefundPaymentRequest",
    "RefundResponse",
    "VerifyPaymentRequest",
]
