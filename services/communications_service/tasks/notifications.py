"""Deliver order/payment notification jobs as emails."""

import hashlib
import json
from typing import Any, Optional

from libs.common.config import get_settings
from libs.common.email import send_email
from libs.common.logging import get_logger
from libs.common.notifications import NotificationEvent
from services.communications_service.templates.orders import render_notification

logger = get_logger(__name__)


def dedup_key(event: NotificationEvent) -> str:
    """email:dedup:{recipient}:{kind}:{digest of the event body}"""
    fingerprint = json.dumps(
        {
            "order_id": str(event.order_id),
            "payment_id": str(event.payment_id) if event.payment_id else None,
            "context": event.context,
        },
        sort_keys=True,
        default=str,
    )
    digest = hashlib.sha256(fingerprint.encode("utf-8")).hexdigest()[:16]
    return f"email:dedup:{event.recipient}:{event.kind.value}:{digest}"


def resolve_recipient(event: NotificationEvent) -> str:
    return event.context.get("email") or event.recipient


async def _claim(redis: Any, event: NotificationEvent) -> bool:
    """Return False if the same email already went out recently."""
    key = dedup_key(event)
    try:
        claimed = await redis.set(
            key, "1", ex=get_settings().NOTIFICATION_DEDUP_TTL_SECONDS, nx=True
        )
    except Exception as e:
        # Dedup is best-effort; deliver rather than drop.
        logger.warning("Dedup check failed for %s: %s", key, e)
        return True
    return bool(claimed)


async def deliver_notification(
    payload: dict[str, Any], *, redis: Optional[Any] = None
) -> bool:
    """Render and send one notification. Returns False if it was skipped."""
    event = NotificationEvent.model_validate(payload)

    if redis is not None and not await _claim(redis, event):
        logger.info(
            "Skipping duplicate %s notification for order %s",
            event.kind.value,
            event.order_id,
        )
        return False

    email = render_notification(event)
    sent = await send_email(
        to_email=resolve_recipient(event),
        subject=email.subject,
        body=email.body,
        html_body=email.html_body,
    )
    logger.info(
        "Delivered %s notification for order %s (sent=%s)",
        event.kind.value,
        event.order_id,
        sent,
    )
    return sent
