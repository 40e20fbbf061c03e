"""Session-bound repositories. Callers own commit and rollback."""

from textback_agent.db.repositories.appointments import AppointmentRepository
from textback_agent.db.repositories.base import BaseRepository
from textback_agent.db.repositories.businesses import (
    BlockedNumberRepository,
    BusinessRepository,
    ContactRepository,
)
from textback_agent.db.repositories.conversations import (
    ConversationRepository,
    MessageRepository,
)
from textback_agent.db.repositories.suppression import (
    OutreachLogRepository,
    SuppressionRecordRepository,
)

__all__ = [
    "AppointmentRepository",
    "BaseRepository",
    "BlockedNumberRepository",
    "BusinessRepository",
    "ContactRepository",
    "ConversationRepository",
    "MessageRepository",
    "OutreachLogRepository",
    "SuppressionRecordRepository",
]
