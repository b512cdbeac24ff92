"""UTC timestamp helpers for models and workflows.

Every stored timestamp is timezone-aware UTC:

    paid_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    order.paid_at = utc_now()
"""

from datetime import datetime, timedelta, timezone


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def utc_in(seconds: int) -> datetime:
    """Aware UTC datetime ``seconds`` from now (cache and payment expiries)."""
    return utc_now() + timedelta(seconds=seconds)
