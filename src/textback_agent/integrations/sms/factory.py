"""SMS Gateway Factory.

Supported providers:
- twilio: REST API with delivery status webhooks
- mock: For development and testing
"""

from __future__ import annotations

from textback_agent.config import get_settings
from textback_agent.core.log import get_logger
from textback_agent.integrations.sms.base import MockSMSGateway, SMSGateway

log = get_logger(__name__)

_sms_gateway: SMSGateway | None = None


def get_sms_gateway() -> SMSGateway:
    """Get the configured SMS gateway (singleton)."""
    global _sms_gateway

    if _sms_gateway is not None:
        return _sms_gateway

    settings = get_settings()
    provider = settings.sms.provider.lower()
    log.info("Initializing SMS gateway", provider=provider)

    if provider == "twilio":
        twilio_config = settings.sms.twilio

        if not twilio_config.account_sid or not twilio_config.auth_token:
            log.warning("Twilio credentials not configured, using mock SMS")
            _sms_gateway = MockSMSGateway()
        else:
            from textback_agent.integrations.sms.twilio import TwilioSMSGateway

            _sms_gateway = TwilioSMSGateway(
                account_sid=twilio_config.account_sid,
                auth_token=twilio_config.auth_token,
                from_number=twilio_config.from_number,
                status_callback_url=twilio_config.status_callback_url or None,
                messaging_service_sid=twilio_config.messaging_service_sid or None,
            )
            log.info(
                "Twilio SMS gateway initialized",
                status_callback=bool(twilio_config.status_callback_url),
            )

    else:
        if provider != "mock":
            log.warning("Unknown SMS provider, using mock", provider=provider)
        _sms_gateway = MockSMSGateway()

    return _sms_gateway


def reset_sms_gateway() -> None:
    """Reset the SMS gateway (for testing)."""
    global _sms_gateway
    _sms_gateway = None
