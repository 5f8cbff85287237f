"""
Async database engine & per-request session.

``get_db`` yields one ``AsyncSession`` per request: committed when the
handler returns, rolled back when it raises (including cancellation),
so a request either persists all of its changes or none of them.
"""

import logging
from collections.abc import AsyncIterator

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm.exc import StaleDataError

from account_service.core.config import settings
from account_service.core.errors import ConflictError, VersionConflict

logger = logging.getLogger(__name__)


def _engine_kwargs(url: str) -> dict:
    kwargs: dict = {"echo": False}
    if url.startswith("postgresql+asyncpg"):
        kwargs["pool_timeout"] = settings.DB_POOL_TIMEOUT_SECONDS
        kwargs["connect_args"] = {"command_timeout": settings.DB_COMMAND_TIMEOUT_SECONDS}
    return kwargs


engine = create_async_engine(settings.DATABASE_URL, **_engine_kwargs(settings.DATABASE_URL))
SessionLocal = async_sessionmaker(engine, expire_on_commit=False)


async def get_db() -> AsyncIterator[AsyncSession]:
    async with SessionLocal() as session:
        try:
            yield session
            await session.commit()
        except BaseException:
            await session.rollback()
            raise


async def flush_or_conflict(db: AsyncSession, *, conflict: ConflictError | None = None) -> None:
    """
    Flush pending changes, translating storage-level conflicts.

    - ``StaleDataError``: the row's ``version`` moved on since it was
      loaded → ``VersionConflict``.
    - ``IntegrityError``: a unique constraint fired → ``conflict`` (or a
      generic ``ConflictError``).
    """
    try:
        await db.flush()
    except StaleDataError:
        await db.rollback()
        raise VersionConflict()
    except IntegrityError as exc:
        await db.rollback()
        logger.info("Integrity violation on flush: %s", exc.orig)
        raise conflict or ConflictError("Record conflicts with existing data")
