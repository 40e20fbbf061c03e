"""Conversation and message repositories."""
from __future__ import annotations

from datetime import datetime
from typing import Sequence
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from textback_agent.db.models.conversation import ConversationModel, MessageModel
from textback_agent.db.repositories.base import BaseRepository
from textback_agent.domain import ConversationStatus, MessageDirection


class ConversationRepository(BaseRepository[ConversationModel]):
    """Repository for conversation lifecycle queries."""

    def __init__(self, session: AsyncSession):
        super().__init__(ConversationModel, session)

    async def get_active(
        self,
        business_id: UUID,
        caller_phone: str,
    ) -> ConversationModel | None:
        """The single active row for a caller, expired or not."""
        stmt = select(ConversationModel).where(
            ConversationModel.business_id == business_id,
            ConversationModel.caller_phone == caller_phone,
            ConversationModel.status == ConversationStatus.ACTIVE.value,
        )
        result = await self._session.execute(stmt)
        return result.scalars().first()

    async def get_latest(
        self,
        business_id: UUID,
        caller_phone: str,
        since: datetime,
    ) -> ConversationModel | None:
        """Most recently touched conversation created after ``since``."""
        stmt = (
            select(ConversationModel)
            .where(
                ConversationModel.business_id == business_id,
                ConversationModel.caller_phone == caller_phone,
                ConversationModel.created_at >= since,
            )
            .order_by(ConversationModel.last_message_at.desc())
            .limit(1)
        )
        result = await self._session.execute(stmt)
        return result.scalars().first()

    async def increment_if_open(
        self,
        conversation_id: UUID,
        at: datetime,
        max_messages: int | None,
    ) -> bool:
        """Compare-and-swap the message counter.

        Only an active conversation below ``max_messages`` is incremented;
        with no cap the counter moves regardless of status.
        """
        stmt = update(ConversationModel).where(ConversationModel.id == conversation_id)
        if max_messages is not None:
            stmt = stmt.where(
                ConversationModel.status == ConversationStatus.ACTIVE.value,
                ConversationModel.message_count < max_messages,
            )
        stmt = stmt.values(
            message_count=ConversationModel.message_count + 1,
            last_message_at=at,
        )
        result = await self._session.execute(stmt)
        return result.rowcount == 1

    async def transition(
        self,
        conversation_id: UUID,
        expected: ConversationStatus,
        target: ConversationStatus,
        **fields: object,
    ) -> bool:
        """Move ``expected`` to ``target`` atomically; False if the status moved on."""
        stmt = (
            update(ConversationModel)
            .where(
                ConversationModel.id == conversation_id,
                ConversationModel.status == expected.value,
            )
            .values(status=target.value, **fields)
        )
        result = await self._session.execute(stmt)
        return result.rowcount == 1


class MessageRepository(BaseRepository[MessageModel]):
    """Repository for the append-only message log."""

    def __init__(self, session: AsyncSession):
        super().__init__(MessageModel, session)

    async def list_for_conversation(
        self,
        conversation_id: UUID,
        limit: int | None = None,
    ) -> Sequence[MessageModel]:
        """Messages in creation order; with ``limit`` only the newest ones."""
        stmt = select(MessageModel).where(MessageModel.conversation_id == conversation_id)
        if limit is not None:
            stmt = stmt.order_by(MessageModel.created_at.desc(), MessageModel.id).limit(limit)
            result = await self._session.execute(stmt)
            return list(reversed(result.scalars().all()))
        stmt = stmt.order_by(MessageModel.created_at)
        result = await self._session.execute(stmt)
        return result.scalars().all()

    async def find_recent_inbound(
        self,
        conversation_id: UUID,
        content: str,
        since: datetime,
    ) -> MessageModel | None:
        stmt = select(MessageModel).where(
            MessageModel.conversation_id == conversation_id,
            MessageModel.direction == MessageDirection.INBOUND.value,
            MessageModel.content == content,
            MessageModel.created_at >= since,
        )
        result = await self._session.execute(stmt.limit(1))
        return result.scalars().first()
