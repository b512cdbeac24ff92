"""FastAPI application for the Store Service."""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from libs.common.errors import register_error_handlers
from libs.common.logging import configure_logging
from libs.common.notifications import notifier_lifespan
from services.store_service.routers import admin_orders_router, orders_router


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    async with notifier_lifespan(app):
        yield


def create_app() -> FastAPI:
    """Create and configure the Store Service FastAPI app."""
    app = FastAPI(
        title="Auto-Parts Marketplace Store Service",
        version="0.1.0",
        description="Orders and inventory reservations for the auto-parts marketplace.",
        lifespan=lifespan,
    )
    register_error_handlers(app)

    @app.get("/health", tags=["system"])
    async def health_check() -> dict[str, str]:
        """Health check endpoint."""
        return {"status": "ok", "service": "store"}

    # Customer order routes
    app.include_router(orders_router, prefix="/store")

    # Admin routes (fulfillment)
    app.include_router(admin_orders_router, prefix="/admin/store")

    return app


app = create_app()
