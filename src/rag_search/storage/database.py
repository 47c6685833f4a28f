"""Blob table with SQLAlchemy async support (SQLite for local, Postgres for prod)."""

from __future__ import annotations

from typing import Mapping

from sqlalchemy import Column, DateTime, LargeBinary, String, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from rag_search.errors import BlobNotFoundError, PersistenceError


class Base(DeclarativeBase):
    """Base class for all ORM models."""
    pass


class BlobORM(Base):
    """Blobs table - one row per object store key."""

    __tablename__ = "blobs"

    key = Column(String, primary_key=True)
    data = Column(LargeBinary, nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )


def _is_sqlite(url: str) -> bool:
    return url.startswith("sqlite")


class SqlObjectStore:
    """
    Object store backed by a single SQL table.

    write_blobs commits every key in one transaction, so the document
    and embedding records are always replaced together.
    """

    def __init__(self, database_url: str, echo: bool = False):
        self.database_url = database_url
        self.echo = echo
        self._engine: AsyncEngine | None = None
        self._session_factory: async_sessionmaker | None = None

    async def _get_session_factory(self) -> async_sessionmaker:
        if self._session_factory is None:
            engine_kwargs = {"echo": self.echo}

            # Pooling options should NOT be forced on SQLite.
            if not _is_sqlite(self.database_url):
                engine_kwargs.update(
                    {
                        "pool_pre_ping": True,
                        "pool_size": 5,
                        "max_overflow": 5,
                    }
                )

            self._engine = create_async_engine(self.database_url, **engine_kwargs)
            async with self._engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
            self._session_factory = async_sessionmaker(self._engine, expire_on_commit=False)
        return self._session_factory

    async def read_blob(self, key: str) -> bytes:
        try:
            factory = await self._get_session_factory()
            async with factory() as session:
                result = await session.execute(select(BlobORM.data).where(BlobORM.key == key))
                data = result.scalar_one_or_none()
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to read blob {key}: {e}") from e

        if data is None:
            raise BlobNotFoundError(key)
        return bytes(data)

    async def write_blob(self, key: str, data: bytes) -> None:
        await self.write_blobs({key: data})

    async def write_blobs(self, blobs: Mapping[str, bytes]) -> None:
        try:
            factory = await self._get_session_factory()
            async with factory() as session:
                async with session.begin():
                    for key, data in blobs.items():
                        await session.merge(BlobORM(key=key, data=data))
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to write blobs {list(blobs)}: {e}") from e

    async def close(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None
            self._session_factory = None
