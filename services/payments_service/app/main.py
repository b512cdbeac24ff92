"""FastAPI application for the Payments Service."""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from libs.common.errors import register_error_handlers
from libs.common.logging import configure_logging
from libs.common.notifications import notifier_lifespan
from libs.common.redis import close_redis, ping_redis
from services.payments_service.routers import payments_router


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    async with notifier_lifespan(app):
        yield
    await close_redis()


def create_app() -> FastAPI:
    """Create and configure the Payments Service FastAPI app."""
    app = FastAPI(
        title="Auto-Parts Marketplace Payments Service",
        version="0.1.0",
        description="Payment processing for auto-parts marketplace orders.",
        lifespan=lifespan,
    )
    register_error_handlers(app)

    @app.get("/health", tags=["system"])
    async def health_check() -> dict[str, str]:
        """Health check endpoint; Redis is reported but not required."""
        redis_state = "ok" if await ping_redis() else "unavailable"
        return {"status": "ok", "service": "payments", "redis": redis_state}

    app.include_router(payments_router)

    return app


app = create_app()
