"""Generic async repository.

Repositories wrap one ``AsyncSession`` and never commit: the store method
that opened the session owns the transaction. Writes are flushed right
away so constraint violations surface at the call that caused them.
"""
from __future__ import annotations

from typing import Any, Generic, TypeVar
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from textback_agent.db.base import Base

ModelT = TypeVar("ModelT", bound=Base)


class BaseRepository(Generic[ModelT]):
    """CRUD over one mapped model.

    Subclasses bind the model::

        class ContactRepository(BaseRepository[ContactModel]):
            def __init__(self, session: AsyncSession):
                super().__init__(ContactModel, session)
    """

    def __init__(self, model: type[ModelT], session: AsyncSession):
        self._model = model
        self._session = session

    @property
    def session(self) -> AsyncSession:
        return self._session

    def _where(self, stmt, filters: dict[str, Any]):
        # Column equality only; unknown names are a programming error
        for name, value in filters.items():
            stmt = stmt.where(getattr(self._model, name) == value)
        return stmt

    async def get(self, id: UUID | str) -> ModelT | None:
        return await self._session.get(self._model, UUID(str(id)))

    async def find_one(self, **filters: Any) -> ModelT | None:
        result = await self._session.execute(self._where(select(self._model), filters).limit(1))
        return result.scalars().first()

    async def create(self, obj_in: ModelT) -> ModelT:
        self._session.add(obj_in)
        await self._session.flush()
        await self._session.refresh(obj_in)
        return obj_in

    async def update(self, id: UUID | str, values: dict[str, Any]) -> ModelT | None:
        """Set attributes on one row; None when the row does not exist."""
        row = await self.get(id)
        if row is None:
            return None
        for name, value in values.items():
            setattr(row, name, value)
        await self._session.flush()
        return row

    async def delete(self, id: UUID | str) -> bool:
        row = await self.get(id)
        if row is None:
            return False
        await self._session.delete(row)
        await self._session.flush()
        return True

    async def bulk_update(self, filters: dict[str, Any], updates: dict[str, Any]) -> int:
        """Conditional UPDATE; returns the matched row count.

        Filtering on the current value (e.g. ``status``) makes this a
        compare-and-swap.
        """
        stmt = self._where(update(self._model), filters).values(**updates)
        result = await self._session.execute(stmt)
        await self._session.flush()
        return result.rowcount
