"""ORM models. Importing this package registers every table with Base.metadata."""

from textback_agent.db.models.appointment import AppointmentModel
from textback_agent.db.models.business import BlockedNumberModel, BusinessModel, ContactModel
from textback_agent.db.models.conversation import ConversationModel, MessageModel
from textback_agent.db.models.suppression import OutreachLogModel, SuppressionRecordModel

__all__ = [
    "AppointmentModel",
    "BlockedNumberModel",
    "BusinessModel",
    "ContactModel",
    "ConversationModel",
    "MessageModel",
    "OutreachLogModel",
    "SuppressionRecordModel",
]
