"""Payments Service models package."""

# Payments reference market_orders; make sure the store tables are registered.
import services.store_service.models  # noqa: F401
from services.payments_service.models.core import Payment
from services.payments_service.models.enums import PaymentMethod, PaymentStatus

__all__ = [
    "Payment",
    "PaymentMethod",
    "PaymentStatus",
]
