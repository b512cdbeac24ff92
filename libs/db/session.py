from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession

from libs.db.config import AsyncSessionLocal


async def get_async_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Request-scoped session for the order and payment routers.

    Workflows commit through ``run_in_transaction``; a transaction left open
    by a failed request is rolled back here before the session is closed.
    """
    session = AsyncSessionLocal()
    try:
        yield session
    finally:
        if session.in_transaction():
            await session.rollback()
        await session.close()
