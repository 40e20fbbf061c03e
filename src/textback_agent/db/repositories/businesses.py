"""Business, contact book and block list repositories."""
from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from textback_agent.core.phone import normalize_phone, phones_match
from textback_agent.db.models.business import BlockedNumberModel, BusinessModel, ContactModel
from textback_agent.db.repositories.base import BaseRepository


def _suffix_pattern(phone: str) -> str | None:
    digits = normalize_phone(phone)
    if not digits:
        return None
    return f"%{digits[-10:]}"


class BusinessRepository(BaseRepository[BusinessModel]):
    """Repository for business profile lookups."""

    def __init__(self, session: AsyncSession):
        super().__init__(BusinessModel, session)

    async def get_by_slug(self, slug: str) -> BusinessModel | None:
        return await self.find_one(slug=slug)

    async def get_by_phone(self, phone: str) -> BusinessModel | None:
        """Resolve a provisioned number, tolerating formatting differences."""
        pattern = _suffix_pattern(phone)
        if pattern is None:
            return None
        stmt = select(BusinessModel).where(BusinessModel.phone_number.like(pattern))
        result = await self._session.execute(stmt)
        for business in result.scalars().all():
            if phones_match(business.phone_number, phone):
                return business
        return None


class _PhoneListRepository(BaseRepository):
    async def contains(self, business_id: UUID, phone: str) -> bool:
        pattern = _suffix_pattern(phone)
        if pattern is None:
            return False
        stmt = select(self._model.phone_number).where(
            self._model.business_id == business_id,
            self._model.phone_number.like(pattern),
        )
        result = await self._session.execute(stmt)
        return any(phones_match(stored, phone) for stored in result.scalars().all())


class ContactRepository(_PhoneListRepository):
    """Contact book: known customers of a business."""

    def __init__(self, session: AsyncSession):
        super().__init__(ContactModel, session)


class BlockedNumberRepository(_PhoneListRepository):
    """Numbers a business never wants contacted automatically."""

    def __init__(self, session: AsyncSession):
        super().__init__(BlockedNumberModel, session)
