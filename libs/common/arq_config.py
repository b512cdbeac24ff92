"""ARQ connection settings for the notification queue.

The store and payments services enqueue ``task_send_notification`` jobs on the
same Redis the communications worker listens to.
"""

from arq.connections import RedisSettings
from libs.common.config import get_settings


def get_redis_settings() -> RedisSettings:
    """ARQ ``RedisSettings`` built from ``REDIS_URL``.

    Connection attempts are kept short: enqueueing happens on the notifier's
    background task and must not stall it while Redis is down.
    """
    redis_settings = RedisSettings.from_dsn(get_settings().REDIS_URL)
    redis_settings.conn_timeout = 2
    redis_settings.conn_retries = 1
    return redis_settings
