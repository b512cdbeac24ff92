"""Fire-and-forget notification dispatch for order and payment transitions.

Workflows call ``notifier.send(event)`` after their transaction has committed.
``send`` never blocks and never raises into the caller: ``QueuedNotifier``
puts the event on a bounded in-process queue that a background task drains
into a ``NotificationSender`` (ARQ enqueue in production). A full queue drops
the event with a warning; a failing sender is logged and the worker moves on.

Usage:
    notifier = QueuedNotifier(ArqNotificationSender())
    notifier.start()
    ...
    notifier.send(NotificationEvent(kind=NotificationKind.ORDER_CONFIRMATION, ...))
    ...
    await notifier.stop()
"""

import asyncio
import enum
import uuid
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Awaitable, Callable, Optional, Protocol

from arq import ArqRedis, create_pool
from fastapi import FastAPI, Request
from pydantic import BaseModel, Field

from libs.common.arq_config import get_redis_settings
from libs.common.config import get_settings
from libs.common.logging import get_logger

logger = get_logger(__name__)

SEND_NOTIFICATION_JOB = "task_send_notification"


class NotificationKind(str, enum.Enum):
    ORDER_CONFIRMATION = "order_confirmation"
    ORDER_CANCELLED = "order_cancelled"
    PAYMENT_SUCCESS = "payment_success"
    PAYMENT_FAILED = "payment_failed"
    REFUND_PROCESSED = "refund_processed"
    ORDER_SHIPPED = "order_shipped"
    ORDER_DELIVERED = "order_delivered"


class NotificationEvent(BaseModel):
    kind: NotificationKind
    order_id: uuid.UUID
    payment_id: Optional[uuid.UUID] = None
    recipient: str
    context: dict[str, Any] = Field(default_factory=dict)


class Notifier(Protocol):
    def send(self, event: NotificationEvent) -> None: ...


NotificationSender = Callable[[NotificationEvent], Awaitable[None]]


def notify_safely(notifier: Optional[Notifier], event: NotificationEvent) -> None:
    """Hand an event to the notifier, logging and discarding any failure."""
    if notifier is None:
        return
    try:
        notifier.send(event)
    except Exception as e:
        logger.error(
            "Failed to dispatch %s notification for order %s: %s",
            event.kind.value,
            event.order_id,
            e,
        )


class QueuedNotifier:
    """Bounded queue + single background worker feeding a sender."""

    def __init__(self, sender: NotificationSender, maxsize: Optional[int] = None):
        if maxsize is None:
            maxsize = get_settings().NOTIFICATION_QUEUE_MAXSIZE
        self._sender = sender
        self._queue: asyncio.Queue[NotificationEvent] = asyncio.Queue(maxsize=maxsize)
        self._worker: Optional[asyncio.Task] = None

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def send(self, event: NotificationEvent) -> None:
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            logger.warning(
                "Notification queue full, dropping %s for order %s",
                event.kind.value,
                event.order_id,
            )

    def start(self) -> None:
        if self._worker is None or self._worker.done():
            self._worker = asyncio.create_task(self._run())

    async def join(self) -> None:
        """Wait until every queued event has been handed to the sender."""
        await self._queue.join()

    async def stop(self) -> None:
        if self._worker is None:
            return
        await self._queue.join()
        self._worker.cancel()
        try:
            await self._worker
        except asyncio.CancelledError:
            pass
        self._worker = None

    async def _run(self) -> None:
        while True:
            event = await self._queue.get()
            try:
                await self._sender(event)
            except Exception as e:
                logger.error(
                    "Notification %s for order %s failed: %s",
                    event.kind.value,
                    event.order_id,
                    e,
                )
            finally:
                self._queue.task_done()


class ArqNotificationSender:
    """Enqueue notifications as ARQ jobs for the communications worker."""

    def __init__(self) -> None:
        self._pool: Optional[ArqRedis] = None

    async def _get_pool(self) -> ArqRedis:
        if self._pool is None:
            self._pool = await create_pool(get_redis_settings())
        return self._pool

    async def __call__(self, event: NotificationEvent) -> None:
        pool = await self._get_pool()
        await pool.enqueue_job(SEND_NOTIFICATION_JOB, event.model_dump(mode="json"))
        logger.debug("Enqueued %s for order %s", event.kind.value, event.order_id)

    async def close(self) -> None:
        if self._pool is not None:
            await self._pool.aclose()
            self._pool = None


async def log_notification(event: NotificationEvent) -> None:
    """Sender used when no queue backend is configured."""
    logger.info(
        "Notification %s -> %s (order=%s payment=%s)",
        event.kind.value,
        event.recipient,
        event.order_id,
        event.payment_id,
    )


# ---------------------------------------------------------------------------
# FastAPI wiring
# ---------------------------------------------------------------------------


def build_sender() -> NotificationSender:
    if get_settings().NOTIFICATION_BACKEND == "log":
        return log_notification
    return ArqNotificationSender()


@asynccontextmanager
async def notifier_lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Run a ``QueuedNotifier`` for the lifetime of an app."""
    sender = build_sender()
    notifier = QueuedNotifier(sender)
    notifier.start()
    app.state.notifier = notifier
    try:
        yield
    finally:
        await notifier.stop()
        if isinstance(sender, ArqNotificationSender):
            await sender.close()
        app.state.notifier = None


def get_notifier(request: Request) -> Optional[Notifier]:
    """FastAPI dependency returning the app's notifier, if one is running."""
    return getattr(request.app.state, "notifier", None)
