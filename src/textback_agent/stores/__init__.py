"""Repository interfaces consumed by the engine, with SQL and in-memory implementations."""

from textback_agent.stores.base import (
    AppointmentStore,
    BusinessStore,
    ConversationStore,
    SuppressionStore,
)

__all__ = [
    "AppointmentStore",
    "BusinessStore",
    "ConversationStore",
    "SuppressionStore",
]
