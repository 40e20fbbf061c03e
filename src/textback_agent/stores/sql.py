"""SQLAlchemy-backed stores.

Each public method opens its own session and runs as one transaction,
composing the session-bound repositories.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from textback_agent.core.exceptions import SlotTakenError
from textback_agent.core.log import get_logger
from textback_agent.core.phone import normalize_phone
from textback_agent.db.models import (
    AppointmentModel,
    ConversationModel,
    MessageModel,
    SuppressionRecordModel,
)
from textback_agent.db.repositories import (
    AppointmentRepository,
    BlockedNumberRepository,
    BusinessRepository,
    ContactRepository,
    ConversationRepository,
    MessageRepository,
    OutreachLogRepository,
    SuppressionRecordRepository,
)
from textback_agent.domain import (
    Appointment,
    AppointmentStatus,
    Business,
    Conversation,
    ConversationStatus,
    Message,
    SuppressionRecord,
)
from textback_agent.stores.base import (
    MAX_APPOINTMENT_SPAN,
    AppointmentStore,
    BusinessStore,
    ConversationStore,
    SuppressionStore,
    overlaps,
)

log = get_logger(__name__)


class _SQLStore:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory


class SQLBusinessStore(_SQLStore, BusinessStore):
    async def get(self, business_id: UUID) -> Business | None:
        async with self._session_factory() as session:
            business = await BusinessRepository(session).get(business_id)
            return business.to_domain() if business else None

    async def get_by_slug(self, slug: str) -> Business | None:
        async with self._session_factory() as session:
            business = await BusinessRepository(session).get_by_slug(slug)
            return business.to_domain() if business else None

    async def get_by_phone(self, phone: str) -> Business | None:
        async with self._session_factory() as session:
            business = await BusinessRepository(session).get_by_phone(phone)
            return business.to_domain() if business else None


class SQLSuppressionStore(_SQLStore, SuppressionStore):
    async def is_blocked(self, business_id: UUID, phone: str) -> bool:
        async with self._session_factory() as session:
            return await BlockedNumberRepository(session).contains(business_id, phone)

    async def is_contact(self, business_id: UUID, phone: str) -> bool:
        async with self._session_factory() as session:
            return await ContactRepository(session).contains(business_id, phone)

    async def last_outreach_at(self, business_id: UUID, phone: str) -> datetime | None:
        async with self._session_factory() as session:
            return await OutreachLogRepository(session).last_sent_at(
                business_id, normalize_phone(phone)
            )

    async def record_outreach(self, business_id: UUID, phone: str, at: datetime) -> None:
        async with self._session_factory() as session:
            await OutreachLogRepository(session).upsert(business_id, normalize_phone(phone), at)
            await session.commit()

    async def add_record(self, record: SuppressionRecord) -> None:
        async with self._session_factory() as session:
            await SuppressionRecordRepository(session).create(
                SuppressionRecordModel(
                    id=record.id,
                    business_id=record.business_id,
                    caller_phone=record.caller_phone,
                    reason=record.reason.value,
                    last_outreach_at=record.last_outreach_at,
                    created_at=record.created_at,
                )
            )
            await session.commit()

    async def list_records(self, business_id: UUID) -> list[SuppressionRecord]:
        async with self._session_factory() as session:
            rows = await SuppressionRecordRepository(session).list_for_business(business_id)
            return [row.to_domain() for row in rows]


class SQLConversationStore(_SQLStore, ConversationStore):
    async def get(self, conversation_id: UUID) -> Conversation | None:
        async with self._session_factory() as session:
            conversation = await ConversationRepository(session).get(conversation_id)
            return conversation.to_domain() if conversation else None

    async def get_or_create_active(
        self,
        business_id: UUID,
        caller_phone: str,
        now: datetime,
        timeout: timedelta,
    ) -> tuple[Conversation, bool]:
        try:
            async with self._session_factory() as session:
                repo = ConversationRepository(session)
                current = await repo.get_active(business_id, caller_phone)

                if current is not None and current.created_at >= now - timeout:
                    return current.to_domain(), False

                if current is not None:
                    await repo.transition(
                        current.id,
                        ConversationStatus.ACTIVE,
                        ConversationStatus.COMPLETED,
                        summary="Conversation expired",
                    )
                    log.info(
                        "Expired conversation closed",
                        conversation_id=str(current.id),
                        business_id=str(business_id),
                    )

                created = await repo.create(
                    ConversationModel(
                        business_id=business_id,
                        caller_phone=caller_phone,
                        status=ConversationStatus.ACTIVE.value,
                        message_count=0,
                        created_at=now,
                        last_message_at=now,
                    )
                )
                await session.commit()
                return created.to_domain(), True

        except IntegrityError:
            # Another writer inserted the active row first.
            async with self._session_factory() as session:
                current = await ConversationRepository(session).get_active(
                    business_id, caller_phone
                )
                if current is None:
                    raise
                return current.to_domain(), False

    async def get_latest(
        self,
        business_id: UUID,
        caller_phone: str,
        since: datetime,
    ) -> Conversation | None:
        async with self._session_factory() as session:
            conversation = await ConversationRepository(session).get_latest(
                business_id, caller_phone, since
            )
            return conversation.to_domain() if conversation else None

    async def append_message(
        self,
        message: Message,
        max_messages: int | None = None,
    ) -> bool:
        async with self._session_factory() as session:
            accepted = await ConversationRepository(session).increment_if_open(
                message.conversation_id, message.created_at, max_messages
            )
            if not accepted:
                await session.rollback()
                return False

            await MessageRepository(session).create(
                MessageModel(
                    id=message.id,
                    conversation_id=message.conversation_id,
                    direction=message.direction.value,
                    content=message.content,
                    provider_message_id=message.provider_message_id,
                    provider_status=message.provider_status,
                    created_at=message.created_at,
                )
            )
            await session.commit()
            return True

    async def find_recent_inbound(
        self,
        conversation_id: UUID,
        content: str,
        since: datetime,
    ) -> Message | None:
        async with self._session_factory() as session:
            message = await MessageRepository(session).find_recent_inbound(
                conversation_id, content, since
            )
            return message.to_domain() if message else None

    async def list_messages(
        self,
        conversation_id: UUID,
        limit: int | None = None,
    ) -> list[Message]:
        async with self._session_factory() as session:
            rows = await MessageRepository(session).list_for_conversation(conversation_id, limit)
            return [row.to_domain() for row in rows]

    async def transition(
        self,
        conversation_id: UUID,
        expected: ConversationStatus,
        target: ConversationStatus,
        **fields: Any,
    ) -> bool:
        async with self._session_factory() as session:
            moved = await ConversationRepository(session).transition(
                conversation_id, expected, target, **fields
            )
            await session.commit()
            return moved

    async def set_caller_name(self, conversation_id: UUID, name: str) -> bool:
        async with self._session_factory() as session:
            updated = await ConversationRepository(session).bulk_update(
                {"id": conversation_id, "caller_name": None},
                {"caller_name": name},
            )
            await session.commit()
            return updated == 1

    async def update_message_delivery(
        self,
        message_id: UUID,
        provider_message_id: str | None,
        provider_status: str | None,
    ) -> None:
        async with self._session_factory() as session:
            await MessageRepository(session).update(
                message_id,
                {"provider_message_id": provider_message_id, "provider_status": provider_status},
            )
            await session.commit()

    async def update_status_by_provider_id(
        self,
        provider_message_id: str,
        provider_status: str,
    ) -> bool:
        async with self._session_factory() as session:
            updated = await MessageRepository(session).bulk_update(
                {"provider_message_id": provider_message_id},
                {"provider_status": provider_status},
            )
            await session.commit()
            return updated > 0


class SQLAppointmentStore(_SQLStore, AppointmentStore):
    async def get(self, appointment_id: UUID) -> Appointment | None:
        async with self._session_factory() as session:
            appointment = await AppointmentRepository(session).get(appointment_id)
            return appointment.to_domain() if appointment else None

    async def list_confirmed_between(
        self,
        business_id: UUID,
        start: datetime,
        end: datetime,
    ) -> list[Appointment]:
        async with self._session_factory() as session:
            rows = await AppointmentRepository(session).get_confirmed_between(
                business_id, start, end
            )
            return [row.to_domain() for row in rows]

    async def list_for_business(self, business_id: UUID) -> list[Appointment]:
        async with self._session_factory() as session:
            rows = await AppointmentRepository(session).get_for_business(business_id)
            return [row.to_domain() for row in rows]

    async def get_confirmed_for_conversation(
        self,
        conversation_id: UUID,
    ) -> Appointment | None:
        async with self._session_factory() as session:
            row = await AppointmentRepository(session).get_confirmed_for_conversation(
                conversation_id
            )
            return row.to_domain() if row else None

    async def insert_if_free(self, appointment: Appointment, buffer: timedelta) -> Appointment:
        start, end = appointment.scheduled_at, appointment.ends_at
        try:
            async with self._session_factory() as session:
                repo = AppointmentRepository(session)
                nearby = await repo.get_confirmed_between(
                    appointment.business_id,
                    start - buffer - MAX_APPOINTMENT_SPAN,
                    end + buffer,
                )
                for existing in nearby:
                    other = existing.to_domain()
                    if overlaps(start, end, other.scheduled_at, other.ends_at, buffer):
                        raise SlotTakenError(
                            "That time slot is no longer available",
                            details={"slot_start": start.isoformat()},
                        )

                created = await repo.create(AppointmentModel.from_domain(appointment))
                await session.commit()
                return created.to_domain()

        except IntegrityError as e:
            raise SlotTakenError(
                "That time slot is no longer available",
                details={"slot_start": start.isoformat()},
                cause=e,
            ) from e

    async def set_status(
        self,
        appointment_id: UUID,
        status: AppointmentStatus,
        expected: AppointmentStatus | None = None,
    ) -> bool:
        filters: dict[str, Any] = {"id": appointment_id}
        if expected is not None:
            filters["status"] = expected.value
        async with self._session_factory() as session:
            updated = await AppointmentRepository(session).bulk_update(
                filters, {"status": status.value}
            )
            await session.commit()
            return updated == 1

    async def set_calendar_event(self, appointment_id: UUID, event_id: str | None) -> None:
        async with self._session_factory() as session:
            await AppointmentRepository(session).bulk_update(
                {"id": appointment_id}, {"calendar_event_id": event_id}
            )
            await session.commit()

    async def delete(self, appointment_id: UUID) -> bool:
        async with self._session_factory() as session:
            deleted = await AppointmentRepository(session).delete(appointment_id)
            await session.commit()
            return deleted
