"""SMS gateway integrations."""

from textback_agent.integrations.sms.base import (
    MockSMSGateway,
    SMSGateway,
    SMSMessage,
    SMSResult,
    SMSStatus,
)
from textback_agent.integrations.sms.factory import get_sms_gateway, reset_sms_gateway

__all__ = [
    "MockSMSGateway",
    "SMSGateway",
    "SMSMessage",
    "SMSResult",
    "SMSStatus",
    "get_sms_gateway",
    "reset_sms_gateway",
]
