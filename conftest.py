import os

# Settings are read at import time by libs.db.config; point everything at
# throwaway local backends before any application module is imported.
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./.pytest-market.db")
os.environ.setdefault("ENVIRONMENT", "local")
os.environ.setdefault("NOTIFICATION_BACKEND", "log")
os.environ.setdefault("AUTH_JWT_SECRET", "test-jwt-secret")
os.environ.setdefault("PAYMENT_WEBHOOK_SECRET", "test-webhook-secret")

from libs.common.config import get_settings  # noqa: E402

# Clear cached settings to reload with the test env vars
get_settings.cache_clear()
