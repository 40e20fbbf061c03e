"""Service wiring.

Builds the engine components over one set of stores and collaborators.
The API, the CLI and the tests all go through ``build_services``.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from textback_agent.ai.base import CompletionProvider
from textback_agent.config import Settings
from textback_agent.core.locks import KeyedLock
from textback_agent.engine.missed_call import MissedCallHandler
from textback_agent.engine.orchestrator import Messenger, ResponseOrchestrator, utc_now
from textback_agent.engine.scheduler import SlotScheduler
from textback_agent.engine.sessions import SessionConfig, SessionManager
from textback_agent.engine.suppression import SuppressionEngine
from textback_agent.integrations.calendar.base import CalendarIntegration
from textback_agent.integrations.sms.base import SMSGateway
from textback_agent.stores.base import (
    AppointmentStore,
    BusinessStore,
    ConversationStore,
    SuppressionStore,
)


@dataclass
class Stores:
    businesses: BusinessStore
    suppression: SuppressionStore
    conversations: ConversationStore
    appointments: AppointmentStore

    @classmethod
    def sql(cls, session_factory: async_sessionmaker[AsyncSession]) -> "Stores":
        from textback_agent.stores.sql import (
            SQLAppointmentStore,
            SQLBusinessStore,
            SQLConversationStore,
            SQLSuppressionStore,
        )

        return cls(
            businesses=SQLBusinessStore(session_factory),
            suppression=SQLSuppressionStore(session_factory),
            conversations=SQLConversationStore(session_factory),
            appointments=SQLAppointmentStore(session_factory),
        )

    @classmethod
    def memory(cls) -> "Stores":
        from textback_agent.stores.memory import (
            InMemoryAppointmentStore,
            InMemoryBusinessStore,
            InMemoryConversationStore,
            InMemorySuppressionStore,
        )

        return cls(
            businesses=InMemoryBusinessStore(),
            suppression=InMemorySuppressionStore(),
            conversations=InMemoryConversationStore(),
            appointments=InMemoryAppointmentStore(),
        )


@dataclass
class Services:
    stores: Stores
    sms: SMSGateway
    calendar: CalendarIntegration | None
    ai: CompletionProvider
    sessions: SessionManager
    suppression: SuppressionEngine
    scheduler: SlotScheduler
    messenger: Messenger
    orchestrator: ResponseOrchestrator
    missed_calls: MissedCallHandler
    clock: Callable[[], datetime]


def build_services(
    settings: Settings,
    stores: Stores,
    sms: SMSGateway,
    ai: CompletionProvider,
    calendar: CalendarIntegration | None = None,
    clock: Callable[[], datetime] = utc_now,
) -> Services:
    locks = KeyedLock()

    sessions = SessionManager(
        stores.conversations,
        SessionConfig.from_settings(settings.conversation),
        locks=locks,
    )
    suppression = SuppressionEngine(stores.suppression, settings.suppression.cooldown_days)
    scheduler = SlotScheduler(
        stores.appointments,
        calendar=calendar,
        default_calendar_id=settings.calendar.google.calendar_id,
        reconcile_grace=timedelta(minutes=settings.booking.reconcile_grace_minutes),
        locks=locks,
    )
    messenger = Messenger(sessions, sms)
    orchestrator = ResponseOrchestrator(
        stores.businesses,
        sessions,
        scheduler,
        ai,
        messenger,
        history_limit=settings.conversation.history_limit,
        ai_timeout=settings.ai.timeout_seconds,
        fallback_message=settings.ai.fallback_message,
        clock=clock,
    )
    missed_calls = MissedCallHandler(
        stores.businesses,
        suppression,
        sessions,
        messenger,
        clock=clock,
    )

    return Services(
        stores=stores,
        sms=sms,
        calendar=calendar,
        ai=ai,
        sessions=sessions,
        suppression=suppression,
        scheduler=scheduler,
        messenger=messenger,
        orchestrator=orchestrator,
        missed_calls=missed_calls,
        clock=clock,
    )
