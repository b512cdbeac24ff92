"""Communications service tasks package."""

from services.communications_service.tasks.notifications import (
    deliver_notification,
)

__all__ = [
    "deliver_notification",
]
