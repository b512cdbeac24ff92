"""ARQ worker for communications service background tasks.

Consumes notification jobs enqueued by the store and payments services.
Run with: arq services.communications_service.worker.WorkerSettings
"""

from libs.common.arq_config import get_redis_settings
from libs.common.logging import configure_logging, get_logger
from libs.common.notifications import SEND_NOTIFICATION_JOB

logger = get_logger(__name__)


# ── Wrapper functions (ARQ requires top-level async callables) ──


async def task_send_notification(ctx: dict, payload: dict):
    """Render and email one order/payment notification."""
    from services.communications_service.tasks import deliver_notification

    logger.info("Running: %s (job %s)", SEND_NOTIFICATION_JOB, ctx.get("job_id"))
    return await deliver_notification(payload, redis=ctx.get("redis"))


async def startup(ctx: dict):
    configure_logging()
    logger.info("Communications worker started")


# ── Worker configuration ──


class WorkerSettings:
    """ARQ worker settings."""

    redis_settings = get_redis_settings()

    # Register all task functions so ARQ can discover them
    functions = [
        task_send_notification,
    ]

    on_startup = startup
    max_tries = 3
