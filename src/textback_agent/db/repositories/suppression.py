"""Suppression log and outreach cooldown repositories."""
from __future__ import annotations

from datetime import datetime
from typing import Sequence
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from textback_agent.db.models.suppression import OutreachLogModel, SuppressionRecordModel
from textback_agent.db.repositories.base import BaseRepository


class SuppressionRecordRepository(BaseRepository[SuppressionRecordModel]):
    def __init__(self, session: AsyncSession):
        super().__init__(SuppressionRecordModel, session)

    async def list_for_business(
        self,
        business_id: UUID,
        limit: int = 200,
    ) -> Sequence[SuppressionRecordModel]:
        stmt = (
            select(SuppressionRecordModel)
            .where(SuppressionRecordModel.business_id == business_id)
            .order_by(SuppressionRecordModel.created_at.desc())
            .limit(limit)
        )
        result = await self._session.execute(stmt)
        return result.scalars().all()


class OutreachLogRepository(BaseRepository[OutreachLogModel]):
    """Last automated outreach per (business, normalized phone)."""

    def __init__(self, session: AsyncSession):
        super().__init__(OutreachLogModel, session)

    async def last_sent_at(self, business_id: UUID, phone: str) -> datetime | None:
        entry = await self.find_one(business_id=business_id, phone_number=phone)
        return entry.last_sent_at if entry else None

    async def upsert(self, business_id: UUID, phone: str, at: datetime) -> None:
        entry = await self.find_one(business_id=business_id, phone_number=phone)
        if entry is None:
            await self.create(
                OutreachLogModel(business_id=business_id, phone_number=phone, last_sent_at=at)
            )
        else:
            entry.last_sent_at = at
            await self._session.flush()
