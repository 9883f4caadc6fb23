"""Base repository: session scoping and tenant-scoped lookups shared by SQL repositories."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any, Generic, TypeVar

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.infrastructure.persistence.database import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseRepository(Generic[ModelType]):
    """Base repository holding a session factory instead of a session.

    Every operation opens its own short-lived session, so repositories are
    safe to share between concurrently running executions. Writes run in a
    transaction that commits on success and rolls back on exception.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        model: type[ModelType],
    ) -> None:
        self.session_factory = session_factory
        self.model = model

    @asynccontextmanager
    async def _read(self) -> AsyncIterator[AsyncSession]:
        """Session for read operations (no commit)."""
        async with self.session_factory() as session:
            yield session

    @asynccontextmanager
    async def _write(self) -> AsyncIterator[AsyncSession]:
        """Session with a transaction: commits on success, rolls back on exception."""
        async with self.session_factory() as session:
            async with session.begin():
                yield session

    async def _get_scoped(
        self, session: AsyncSession, entity_id: str, tenant_id: str
    ) -> ModelType | None:
        """Return a row by id only if it belongs to tenant_id."""
        model: Any = self.model
        result = await session.execute(
            select(self.model).where(model.id == entity_id, model.tenant_id == tenant_id)
        )
        return result.scalar_one_or_none()
