"""Conversation and message ORM models."""
from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import ForeignKey, Index, Integer, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column

from textback_agent.db.base import Base, UUIDMixin
from textback_agent.domain import Conversation, ConversationStatus, Message, MessageDirection


class ConversationModel(Base, UUIDMixin):
    """Text conversation between one caller and one business.

    The partial unique index keeps at most one ``active`` row per
    (business, caller); stale active rows are closed before a new one
    is inserted.
    """

    __tablename__ = "conversations"

    business_id: Mapped[UUID] = mapped_column(
        ForeignKey("businesses.id", ondelete="CASCADE"),
        nullable=False,
    )
    caller_phone: Mapped[str] = mapped_column(String(50), nullable=False)
    status: Mapped[str] = mapped_column(
        String(30),
        nullable=False,
        default=ConversationStatus.ACTIVE.value,
        comment="active, appointment_booked, needs_review, completed, no_response",
    )
    caller_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    intent: Mapped[str | None] = mapped_column(String(100), nullable=True)
    service_requested: Mapped[str | None] = mapped_column(String(255), nullable=True)
    summary: Mapped[str | None] = mapped_column(Text, nullable=True)
    message_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    created_at: Mapped[datetime] = mapped_column(nullable=False)
    last_message_at: Mapped[datetime] = mapped_column(nullable=False)

    __table_args__ = (
        Index("ix_conversations_business_caller", "business_id", "caller_phone"),
        Index(
            "uq_conversations_one_active",
            "business_id",
            "caller_phone",
            unique=True,
            sqlite_where=text("status = 'active'"),
            postgresql_where=text("status = 'active'"),
        ),
    )

    def to_domain(self) -> Conversation:
        return Conversation(
            id=self.id,
            business_id=self.business_id,
            caller_phone=self.caller_phone,
            status=ConversationStatus(self.status),
            caller_name=self.caller_name,
            intent=self.intent,
            service_requested=self.service_requested,
            summary=self.summary,
            message_count=self.message_count,
            created_at=self.created_at,
            last_message_at=self.last_message_at,
        )


class MessageModel(Base, UUIDMixin):
    """Single SMS in a conversation. Append-only."""

    __tablename__ = "messages"

    conversation_id: Mapped[UUID] = mapped_column(
        ForeignKey("conversations.id", ondelete="CASCADE"),
        nullable=False,
    )
    direction: Mapped[str] = mapped_column(
        String(10),
        nullable=False,
        comment="inbound or outbound",
    )
    content: Mapped[str] = mapped_column(Text, nullable=False)
    provider_message_id: Mapped[str | None] = mapped_column(
        String(100),
        nullable=True,
        index=True,
    )
    provider_status: Mapped[str | None] = mapped_column(
        String(30),
        nullable=True,
        comment="queued, sent, delivered, failed, undelivered, received",
    )
    created_at: Mapped[datetime] = mapped_column(nullable=False)

    __table_args__ = (
        Index("ix_messages_conversation_created", "conversation_id", "created_at"),
    )

    def to_domain(self) -> Message:
        return Message(
            id=self.id,
            conversation_id=self.conversation_id,
            direction=MessageDirection(self.direction),
            content=self.content,
            provider_message_id=self.provider_message_id,
            provider_status=self.provider_status,
            created_at=self.created_at,
        )
