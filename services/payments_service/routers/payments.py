"""Payments router: open payments, gateway verification, refunds, lookups."""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status
from libs.auth.dependencies import get_current_user
from libs.auth.models import AuthUser
from libs.common.idempotency_cache import IdempotencyCache, get_idempotency_cache
from libs.common.logging import get_logger
from libs.common.notifications import Notifier, get_notifier
from libs.db.session import get_async_db
from pydantic import ValidationError
from services.payments_service.schemas import (
    CreatePaymentRequest,
    PaymentCreatedResponse,
    PaymentResponse,
    PaymentStatusResult,
    RefundPaymentRequest,
    RefundResponse,
    VerifyPaymentRequest,
)
from services.payments_service.services import payment_workflow
from services.payments_service.services.gateway_signature import (
    SIGNATURE_HEADER,
    verify_gateway_signature,
)
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)

router = APIRouter(prefix="/payments", tags=["payments"])


@router.post(
    "", response_model=PaymentCreatedResponse, status_code=status.HTTP_201_CREATED
)
async def create_payment(
    payload: CreatePaymentRequest,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
    cache: IdempotencyCache = Depends(get_idempotency_cache),
):
    """Open a pending payment for an order awaiting payment."""
    return await payment_workflow.create_payment(
        db,
        order_id=payload.order_id,
        amount=payload.amount,
        method=payload.method,
        user_id=current_user.user_id,
        currency=payload.currency,
        mobile_money_phone=payload.mobile_money_phone,
        cache=cache,
    )


@router.get("/{payment_id}", response_model=PaymentResponse)
async def get_payment(
    payment_id: uuid.UUID,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
    cache: IdempotencyCache = Depends(get_idempotency_cache),
):
    return await payment_workflow.get_payment(
        db, payment_id=payment_id, user_id=current_user.user_id, cache=cache
    )


@router.post("/{payment_id}/verify", response_model=PaymentStatusResult)
async def verify_payment(
    payment_id: uuid.UUID,
    request: Request,
    db: AsyncSession = Depends(get_async_db),
    cache: IdempotencyCache = Depends(get_idempotency_cache),
    notifier: Optional[Notifier] = Depends(get_notifier),
):
    """
    Gateway callback (no user auth; verified by x-gateway-signature).
    Gateways may deliver the same result more than once; repeats return the
    current state without side effects.
    """
    raw = await request.body()
    signature = request.headers.get(SIGNATURE_HEADER)
    if not signature or not verify_gateway_signature(raw, signature):
        logger.warning("Rejected unsigned callback for payment %s", payment_id)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid signature"
        )
    try:
        payload = VerifyPaymentRequest.model_validate_json(raw or b"{}")
    except ValidationError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=e.errors(include_url=False, include_context=False),
        )

    return await payment_workflow.update_payment_status(
        db,
        payment_id=payment_id,
        new_status=payload.status,
        transaction_ref=payload.transaction_ref,
        error_message=payload.error_message,
        cache=cache,
        notifier=notifier,
    )


@router.post("/{payment_id}/refund", response_model=RefundResponse)
async def refund_payment(
    payment_id: uuid.UUID,
    payload: Optional[RefundPaymentRequest] = None,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
    cache: IdempotencyCache = Depends(get_idempotency_cache),
    notifier: Optional[Notifier] = Depends(get_notifier),
):
    """Refund a completed payment. Admins may refund any payment."""
    return await payment_workflow.refund_payment(
        db,
        payment_id=payment_id,
        requesting_user_id=None if current_user.is_admin else current_user.user_id,
        reason=payload.reason if payload else None,
        cache=cache,
        notifier=notifier,
    )
