import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import Request
from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.orm import declarative_base

from shopfront.core.errors import TransientStoreError

logger = logging.getLogger(__name__)

Base = declarative_base()

class Database:
    """Owns the engine and session factory for one application instance."""

    def __init__(self, url: str, echo: bool = False):
        self.engine = create_async_engine(url, echo=echo)
        self.sessionmaker = async_sessionmaker(self.engine, expire_on_commit=False, class_=AsyncSession)

    async def create_all(self):
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def dispose(self):
        await self.engine.dispose()

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        async with self.sessionmaker() as session:
            yield session

    @asynccontextmanager
    async def unit_of_work(self) -> AsyncIterator[AsyncSession]:
        """
        Yields a session inside an open transaction.

        The transaction commits when the block completes and rolls back on any
        exception, including cancellation. Lost connections and other
        operational failures surface as ``TransientStoreError``.
        """
        try:
            async with self.sessionmaker() as session:
                async with session.begin():
                    yield session
        except DBAPIError as exc:
            if isinstance(exc, OperationalError) or exc.connection_invalidated:
                logger.error(f"Unit of work aborted by store failure: {exc}")
                raise TransientStoreError("The data store is temporarily unavailable, please retry") from exc
            raise

def get_database(request: Request) -> Database:
    return request.app.state.database

async def get_db(request: Request):
    async with get_database(request).session() as session:
        yield session
