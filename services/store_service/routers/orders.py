"""Store orders router: place, list, view, cancel and check out orders."""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from libs.auth.dependencies import get_current_user
from libs.auth.models import AuthUser
from libs.common.notifications import Notifier, get_notifier
from libs.db.session import get_async_db
from services.store_service.schemas import (
    CancelOrderResponse,
    CreateOrderRequest,
    OrderPage,
    OrderResponse,
)
from services.store_service.services import order_workflow
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(tags=["store"])


@router.post(
    "/orders", response_model=OrderResponse, status_code=status.HTTP_201_CREATED
)
async def create_order(
    payload: CreateOrderRequest,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
    notifier: Optional[Notifier] = Depends(get_notifier),
):
    """Place an order, reserving stock for every line."""
    order = await order_workflow.create_order(
        db,
        user_id=current_user.user_id,
        items=payload.items,
        notifier=notifier,
    )
    return OrderResponse.model_validate(order)


@router.get("/orders", response_model=OrderPage)
async def list_my_orders(
    page: int = Query(1),
    page_size: int = Query(20),
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    """Current user's orders, newest first."""
    result = await order_workflow.list_orders(
        db, user_id=current_user.user_id, page=page, page_size=page_size
    )
    return OrderPage(
        items=[OrderResponse.model_validate(order) for order in result["items"]],
        page=result["page"],
        page_size=result["page_size"],
        total=result["total"],
        has_more=result["has_more"],
    )


@router.get("/orders/{order_id}", response_model=OrderResponse)
async def get_my_order(
    order_id: uuid.UUID,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    order = await order_workflow.get_order(
        db, order_id=order_id, user_id=current_user.user_id
    )
    return OrderResponse.model_validate(order)


@router.delete("/orders/{order_id}", response_model=CancelOrderResponse)
async def cancel_my_order(
    order_id: uuid.UUID,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
    notifier: Optional[Notifier] = Depends(get_notifier),
):
    """Cancel a pending order and return its reserved stock."""
    order = await order_workflow.cancel_order(
        db,
        order_id=order_id,
        requesting_user_id=current_user.user_id,
        notifier=notifier,
    )
    return CancelOrderResponse(
        message="Order cancelled successfully",
        order=OrderResponse.model_validate(order),
    )


@router.post("/orders/{order_id}/checkout", response_model=OrderResponse)
async def checkout_order(
    order_id: uuid.UUID,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    """Mark a pending order as awaiting payment."""
    order = await order_workflow.begin_checkout(
        db, order_id=order_id, user_id=current_user.user_id
    )
    return OrderResponse.model_validate(order)
