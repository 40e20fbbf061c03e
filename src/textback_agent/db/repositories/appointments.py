"""Appointment Repository.

Specialized repository for appointment scheduling queries.
"""
from __future__ import annotations

from datetime import datetime
from typing import Sequence
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from textback_agent.db.models.appointment import AppointmentModel
from textback_agent.db.repositories.base import BaseRepository
from textback_agent.domain import AppointmentStatus


class AppointmentRepository(BaseRepository[AppointmentModel]):
    """Repository for appointment database operations."""

    def __init__(self, session: AsyncSession):
        super().__init__(AppointmentModel, session)

    async def get_confirmed_between(
        self,
        business_id: UUID,
        start: datetime,
        end: datetime,
    ) -> Sequence[AppointmentModel]:
        """Confirmed appointments starting in ``[start, end)``.

        Callers widen the window by the longest appointment plus buffer so
        appointments that start earlier but still overlap are included.
        """
        stmt = (
            select(AppointmentModel)
            .where(
                AppointmentModel.business_id == business_id,
                AppointmentModel.status == AppointmentStatus.CONFIRMED.value,
                AppointmentModel.scheduled_at >= start,
                AppointmentModel.scheduled_at < end,
            )
            .order_by(AppointmentModel.scheduled_at)
        )
        result = await self._session.execute(stmt)
        return result.scalars().all()

    async def get_for_business(
        self,
        business_id: UUID,
        *,
        status: AppointmentStatus | None = None,
        limit: int = 200,
    ) -> Sequence[AppointmentModel]:
        stmt = select(AppointmentModel).where(AppointmentModel.business_id == business_id)
        if status is not None:
            stmt = stmt.where(AppointmentModel.status == status.value)
        stmt = stmt.order_by(AppointmentModel.scheduled_at).limit(limit)
        result = await self._session.execute(stmt)
        return result.scalars().all()

    async def get_confirmed_for_conversation(
        self,
        conversation_id: UUID,
    ) -> AppointmentModel | None:
        return await self.find_one(
            conversation_id=conversation_id,
            status=AppointmentStatus.CONFIRMED.value,
        )
