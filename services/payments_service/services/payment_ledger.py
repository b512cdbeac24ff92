"""Payment ledger: persistence helpers for payment attempts."""

import uuid
from decimal import Decimal
from typing import Any, Optional

from libs.common.datetime_utils import utc_now
from services.payments_service.models import Payment, PaymentMethod, PaymentStatus
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession


async def insert_payment(
    db: AsyncSession,
    *,
    order_id: uuid.UUID,
    amount: Decimal,
    currency: str,
    method: PaymentMethod,
    metadata: Optional[dict[str, Any]] = None,
) -> Payment:
    payment = Payment(
        order_id=order_id,
        amount=amount,
        currency=currency,
        method=method,
        status=PaymentStatus.PENDING,
        payment_metadata=metadata or None,
    )
    db.add(payment)
    await db.flush()
    return payment


async def get_payment(
    db: AsyncSession, payment_id: uuid.UUID, *, for_update: bool = False
) -> Optional[Payment]:
    query = select(Payment).where(Payment.id == payment_id)
    if for_update:
        query = query.with_for_update()
    result = await db.execute(query.execution_options(populate_existing=True))
    return result.scalar_one_or_none()


async def count_payments_for_order(db: AsyncSession, order_id: uuid.UUID) -> int:
    result = await db.execute(
        select(func.count()).select_from(Payment).where(Payment.order_id == order_id)
    )
    return result.scalar_one()


def _merge_metadata(payment: Payment, **values: Any) -> None:
    # Reassign rather than mutate so the JSON column is flagged dirty.
    merged = dict(payment.payment_metadata or {})
    merged.update({k: v for k, v in values.items() if v is not None})
    payment.payment_metadata = merged or None


def mark_completed(payment: Payment, transaction_ref: Optional[str]) -> None:
    now = utc_now()
    payment.status = PaymentStatus.COMPLETED
    payment.completed_at = now
    payment.updated_at = now
    if transaction_ref:
        payment.transaction_ref = transaction_ref


def mark_failed(
    payment: Payment, error_message: Optional[str], transaction_ref: Optional[str]
) -> None:
    payment.status = PaymentStatus.FAILED
    payment.updated_at = utc_now()
    if transaction_ref:
        payment.transaction_ref = transaction_ref
    _merge_metadata(payment, failure_reason=error_message or "Payment failed")


def mark_refunded(payment: Payment, reason: Optional[str]) -> None:
    now = utc_now()
    payment.status = PaymentStatus.REFUNDED
    payment.refunded_at = now
    payment.updated_at = now
    _merge_metadata(payment, refund_reason=reason or "Refund requested")
