"""Payment workflow: open, verify, refund and look up payments.

Payment and order rows are locked together (payment first, then order) so a
gateway callback, a refund and a replayed callback for the same payment are
serialized. Replays of a transition that already happened return the current
result without writing or notifying again. The cache is a read accelerator
only; every decision is taken from the ledger.
"""

import uuid
from decimal import Decimal, InvalidOperation
from typing import Optional, Union

from libs.common.config import get_settings
from libs.common.datetime_utils import utc_in
from libs.common.errors import (
    BadRequestError,
    InvalidStateError,
    NotFoundError,
)
from libs.common.idempotency_cache import (
    IdempotencyCache,
    cache_delete,
    cache_get,
    cache_set,
    payment_cache_key,
)
from libs.common.logging import get_logger
from libs.common.notifications import (
    NotificationEvent,
    NotificationKind,
    Notifier,
    notify_safely,
)
from libs.db.transaction import run_in_transaction
from services.payments_service.models import Payment, PaymentMethod, PaymentStatus
from services.payments_service.schemas import (
    PaymentCreatedResponse,
    PaymentResponse,
    PaymentStatusResult,
    RefundResponse,
)
from services.payments_service.services import payment_ledger
from services.store_service.models import Order, OrderStatus
from services.store_service.services import order_ledger
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)

VERIFIABLE_STATUSES = frozenset({PaymentStatus.COMPLETED, PaymentStatus.FAILED})
# Statuses no transition leaves; a read may cache these without going stale.
FINAL_STATUSES = frozenset({PaymentStatus.FAILED, PaymentStatus.REFUNDED})


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _to_response(payment: Payment, user_id: str) -> PaymentResponse:
    return PaymentResponse(
        id=payment.id,
        order_id=payment.order_id,
        user_id=user_id,
        amount=payment.amount,
        currency=payment.currency,
        method=payment.method,
        status=payment.status,
        transaction_ref=payment.transaction_ref,
        created_at=payment.created_at,
        completed_at=payment.completed_at,
        refunded_at=payment.refunded_at,
    )


async def _cache_payment(
    cache: Optional[IdempotencyCache], payment: Payment, user_id: str
) -> bool:
    return await cache_set(
        cache,
        payment_cache_key(payment.id),
        _to_response(payment, user_id).model_dump(mode="json"),
        get_settings().PAYMENT_CACHE_TTL_SECONDS,
    )


async def _refresh_cache(
    cache: Optional[IdempotencyCache], payment: Payment, user_id: str
) -> None:
    """Replace the cached copy after a transition, or drop it if that fails."""
    if cache is None or await _cache_payment(cache, payment, user_id):
        return
    key = payment_cache_key(payment.id)
    if not await cache_delete(cache, key):
        logger.error("Cache entry %s may be stale after a status change", key)


def _parse_amount(amount: Union[Decimal, float, int, str]) -> Decimal:
    try:
        value = Decimal(str(amount))
    except InvalidOperation:
        raise BadRequestError(f"Invalid payment amount: {amount}")
    if not value.is_finite() or value <= 0:
        raise BadRequestError(f"Invalid payment amount: {amount}")
    return value.quantize(order_ledger.CENTS)


def _parse_method(method: Union[PaymentMethod, str]) -> PaymentMethod:
    try:
        return PaymentMethod(method)
    except ValueError:
        raise BadRequestError(f"Unsupported payment method: {method}")


async def _lock_payment_and_order(
    session: AsyncSession, payment_id: uuid.UUID
) -> tuple[Payment, Order]:
    payment = await payment_ledger.get_payment(session, payment_id, for_update=True)
    if payment is None:
        raise NotFoundError(f"Payment {payment_id} not found")
    order = await order_ledger.get_order(
        session, payment.order_id, with_items=False, for_update=True
    )
    if order is None:
        raise NotFoundError(f"Order {payment.order_id} not found")
    return payment, order


# ---------------------------------------------------------------------------
# Create
# ---------------------------------------------------------------------------


async def create_payment(
    db: AsyncSession,
    *,
    order_id: uuid.UUID,
    amount: Union[Decimal, float, int, str],
    method: Union[PaymentMethod, str],
    user_id: str,
    currency: Optional[str] = None,
    mobile_money_phone: Optional[str] = None,
    cache: Optional[IdempotencyCache] = None,
) -> PaymentCreatedResponse:
    """Open a PENDING payment for an order that is awaiting payment."""
    settings = get_settings()
    value = _parse_amount(amount)
    payment_method = _parse_method(method)
    if payment_method == PaymentMethod.MOBILE_MONEY and not mobile_money_phone:
        raise BadRequestError("mobile_money_phone is required for mobile money")

    async def _work(session: AsyncSession) -> Payment:
        order = await order_ledger.get_order(
            session, order_id, with_items=False, for_update=True
        )
        if order is None:
            raise NotFoundError(f"Order {order_id} not found")
        if order.user_id != user_id:
            raise BadRequestError("Order does not belong to user")
        if order.status != OrderStatus.PENDING_PAYMENT:
            raise InvalidStateError(
                f"Order is not awaiting payment (status: {order.status.value})"
            )
        if value != order.total:
            raise BadRequestError("Payment amount does not match order total")

        metadata = {}
        if mobile_money_phone:
            metadata["mobile_money_phone"] = mobile_money_phone
        return await payment_ledger.insert_payment(
            session,
            order_id=order.id,
            amount=value,
            currency=currency or settings.DEFAULT_CURRENCY,
            method=payment_method,
            metadata=metadata,
        )

    payment = await run_in_transaction(db, _work, operation="payment creation")
    await _cache_payment(cache, payment, user_id)

    logger.info(
        "Opened payment %s for order %s: %s %s via %s",
        payment.id,
        order_id,
        payment.amount,
        payment.currency,
        payment.method.value,
    )
    return PaymentCreatedResponse(
        payment_id=payment.id,
        order_id=payment.order_id,
        status=payment.status,
        amount=payment.amount,
        currency=payment.currency,
        expires_at=utc_in(settings.PAYMENT_CACHE_TTL_SECONDS),
    )


# ---------------------------------------------------------------------------
# Gateway verification
# ---------------------------------------------------------------------------


async def update_payment_status(
    db: AsyncSession,
    *,
    payment_id: uuid.UUID,
    new_status: Union[PaymentStatus, str],
    transaction_ref: Optional[str] = None,
    error_message: Optional[str] = None,
    cache: Optional[IdempotencyCache] = None,
    notifier: Optional[Notifier] = None,
) -> PaymentStatusResult:
    """Apply a gateway result to a payment and its order.

    Safe under at-least-twice delivery: a payment already in ``new_status``
    is returned as is with no writes and no notification.
    """
    try:
        target = PaymentStatus(new_status)
    except ValueError:
        target = None
    if target not in VERIFIABLE_STATUSES:
        raise BadRequestError(
            f"Payment status can only be set to completed or failed, got {new_status}"
        )

    async def _work(session: AsyncSession) -> tuple[Payment, Order, bool]:
        payment, order = await _lock_payment_and_order(session, payment_id)
        if payment.status == target:
            return payment, order, False
        if payment.status != PaymentStatus.PENDING:
            raise InvalidStateError(
                f"Payment is already {payment.status.value}; cannot mark it {target.value}"
            )

        if target == PaymentStatus.COMPLETED:
            if order.status != OrderStatus.PENDING_PAYMENT:
                raise InvalidStateError(
                    f"Order is not awaiting payment (status: {order.status.value})"
                )
            payment_ledger.mark_completed(payment, transaction_ref)
            order_ledger.apply_status(order, OrderStatus.PROCESSING)
        else:
            payment_ledger.mark_failed(payment, error_message, transaction_ref)
        return payment, order, True

    payment, order, applied = await run_in_transaction(
        db, _work, operation="payment verification"
    )
    result = PaymentStatusResult(
        payment_id=payment.id,
        payment_status=payment.status,
        order_status=order.status,
    )
    if not applied:
        logger.info(
            "Payment %s already %s; ignoring repeated callback",
            payment.id,
            payment.status.value,
        )
        return result

    await _refresh_cache(cache, payment, order.user_id)

    if payment.status == PaymentStatus.COMPLETED:
        logger.info(
            "Payment %s completed (ref=%s); order %s is now processing",
            payment.id,
            payment.transaction_ref,
            order.id,
        )
        event = NotificationEvent(
            kind=NotificationKind.PAYMENT_SUCCESS,
            order_id=order.id,
            payment_id=payment.id,
            recipient=order.user_id,
            context={
                "amount": str(payment.amount),
                "currency": payment.currency,
                "transaction_ref": payment.transaction_ref,
            },
        )
    else:
        logger.warning(
            "Payment %s failed for order %s: %s",
            payment.id,
            order.id,
            (payment.payment_metadata or {}).get("failure_reason"),
        )
        event = NotificationEvent(
            kind=NotificationKind.PAYMENT_FAILED,
            order_id=order.id,
            payment_id=payment.id,
            recipient=order.user_id,
            context={
                "amount": str(payment.amount),
                "currency": payment.currency,
                "reason": (payment.payment_metadata or {}).get("failure_reason"),
            },
        )
    notify_safely(notifier, event)
    return result


# ---------------------------------------------------------------------------
# Refund
# ---------------------------------------------------------------------------


async def refund_payment(
    db: AsyncSession,
    *,
    payment_id: uuid.UUID,
    requesting_user_id: Optional[str],
    reason: Optional[str] = None,
    cache: Optional[IdempotencyCache] = None,
    notifier: Optional[Notifier] = None,
) -> RefundResponse:
    """Refund a completed payment and move its order to REFUNDED.

    ``requesting_user_id=None`` is a trusted admin caller. Payments on orders
    the caller does not own are reported as missing.
    """

    async def _work(session: AsyncSession) -> tuple[Payment, Order, bool]:
        payment, order = await _lock_payment_and_order(session, payment_id)
        if requesting_user_id is not None and order.user_id != requesting_user_id:
            raise NotFoundError(f"Payment {payment_id} not found")
        if payment.status == PaymentStatus.REFUNDED:
            return payment, order, False
        if payment.status != PaymentStatus.COMPLETED:
            raise InvalidStateError(
                f"Cannot refund payment with status: {payment.status.value}"
            )
        if order.status != OrderStatus.PROCESSING:
            raise InvalidStateError(
                f"Cannot refund order with status: {order.status.value}"
            )
        payment_ledger.mark_refunded(payment, reason)
        order_ledger.apply_status(order, OrderStatus.REFUNDED)
        return payment, order, True

    payment, order, applied = await run_in_transaction(db, _work, operation="refund")
    result = RefundResponse(
        payment_id=payment.id,
        payment_status=payment.status,
        order_status=order.status,
        refunded_amount=payment.amount,
        refunded_at=payment.refunded_at,
    )
    if not applied:
        logger.info("Payment %s already refunded", payment.id)
        return result

    await _refresh_cache(cache, payment, order.user_id)
    logger.info(
        "Refunded payment %s (%s %s) for order %s",
        payment.id,
        payment.amount,
        payment.currency,
        order.id,
    )
    notify_safely(
        notifier,
        NotificationEvent(
            kind=NotificationKind.REFUND_PROCESSED,
            order_id=order.id,
            payment_id=payment.id,
            recipient=order.user_id,
            context={
                "amount": str(payment.amount),
                "currency": payment.currency,
                "reason": (payment.payment_metadata or {}).get("refund_reason"),
            },
        ),
    )
    return result


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


async def lookup_payment(
    db: AsyncSession,
    *,
    payment_id: uuid.UUID,
    cache: Optional[IdempotencyCache] = None,
) -> PaymentResponse:
    """Cache-first lookup; a miss always falls back to the ledger.

    Only final statuses are written back. A non-final status read here could
    be overwritten by a concurrent transition before the write lands.
    """
    cached = await cache_get(cache, payment_cache_key(payment_id))
    if cached:
        try:
            return PaymentResponse.model_validate(cached)
        except ValueError:
            logger.warning("Discarding malformed cache entry for payment %s", payment_id)

    payment = await payment_ledger.get_payment(db, payment_id)
    if payment is None:
        raise NotFoundError(f"Payment {payment_id} not found")
    order = await order_ledger.get_order(db, payment.order_id, with_items=False)
    if payment.status in FINAL_STATUSES:
        await _cache_payment(cache, payment, order.user_id)
    return _to_response(payment, order.user_id)


async def get_payment(
    db: AsyncSession,
    *,
    payment_id: uuid.UUID,
    user_id: str,
    cache: Optional[IdempotencyCache] = None,
) -> PaymentResponse:
    """A payment as seen by its owner; other users get NotFound."""
    payment = await lookup_payment(db, payment_id=payment_id, cache=cache)
    if payment.user_id != user_id:
        raise NotFoundError(f"Payment {payment_id} not found")
    return payment
