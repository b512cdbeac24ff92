"""Domain error taxonomy shared by the store and payments services.

Workflows raise these instead of ``HTTPException`` so they stay usable outside
a request. ``register_error_handlers`` renders them for FastAPI apps as
``{"kind": ..., "detail": ...}`` with the mapped status code.
"""

from fastapi import FastAPI, Request, status
from starlette.responses import JSONResponse


class MarketplaceError(Exception):
    """Base class for client-visible workflow errors."""

    kind = "Error"
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, str]:
        return {"kind": self.kind, "detail": self.message}


class NotFoundError(MarketplaceError):
    kind = "NotFound"
    status_code = status.HTTP_404_NOT_FOUND


class ForbiddenError(MarketplaceError):
    kind = "Forbidden"
    status_code = status.HTTP_403_FORBIDDEN


class InvalidStateError(MarketplaceError):
    kind = "InvalidState"
    status_code = status.HTTP_400_BAD_REQUEST


class InsufficientStockError(MarketplaceError):
    kind = "InsufficientStock"
    status_code = status.HTTP_400_BAD_REQUEST


class ConflictError(MarketplaceError):
    kind = "Conflict"
    status_code = status.HTTP_409_CONFLICT


class BadRequestError(MarketplaceError):
    kind = "BadRequest"
    status_code = status.HTTP_400_BAD_REQUEST


class StoreUnavailableError(MarketplaceError):
    """The store could not complete the transaction; nothing was applied."""

    kind = "StoreUnavailable"
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE


async def marketplace_error_handler(
    request: Request, exc: MarketplaceError
) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


def register_error_handlers(app: FastAPI) -> None:
    """Attach the taxonomy handler to a FastAPI app."""
    app.add_exception_handler(MarketplaceError, marketplace_error_handler)
