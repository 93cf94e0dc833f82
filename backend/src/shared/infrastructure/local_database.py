"""Embedded on-device database holding the document log and the sync queue.

The tables live on their own metadata so the device store never picks up the
remote service's schema (and the other way around).
"""

import logging

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from shared.config import settings

logger = logging.getLogger(__name__)


class LocalBase(DeclarativeBase):
    pass


def create_local_engine(url: str | None = None) -> AsyncEngine:
    return create_async_engine(url or settings.LOCAL_DATABASE_URL, echo=False)


def create_local_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def init_local_database(engine: AsyncEngine) -> None:
    # Register every local table on LocalBase.metadata before create_all.
    import collaboration.infrastructure.models  # noqa: F401
    import sync_queue.infrastructure.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(LocalBase.metadata.create_all)
    logger.info("Local database ready at %s", engine.url.render_as_string(hide_password=True))
