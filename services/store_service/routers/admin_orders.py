"""Admin store router: order fulfillment."""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends
from libs.auth.dependencies import require_admin
from libs.auth.models import AuthUser
from libs.common.notifications import Notifier, get_notifier
from libs.db.session import get_async_db
from services.store_service.schemas import FulfillmentUpdate, OrderResponse
from services.store_service.services import order_workflow
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(tags=["admin-store"])


@router.patch("/orders/{order_id}/fulfillment", response_model=OrderResponse)
async def update_fulfillment(
    order_id: uuid.UUID,
    payload: FulfillmentUpdate,
    _admin: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
    notifier: Optional[Notifier] = Depends(get_notifier),
):
    """Advance a paid order: processing -> shipped -> delivered."""
    order = await order_workflow.advance_fulfillment(
        db, order_id=order_id, new_status=payload.status, notifier=notifier
    )
    return OrderResponse.model_validate(order)
