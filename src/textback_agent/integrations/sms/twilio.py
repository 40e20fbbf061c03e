"""Twilio Programmable Messaging.

``TwilioSMSGateway`` posts to the Messages resource of the REST API;
``TwilioWebhookHandler`` reads the form bodies Twilio posts back for
inbound messages and delivery status changes.

API reference: https://www.twilio.com/docs/messaging/api/message-resource
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

import httpx

from textback_agent.core.log import get_logger
from textback_agent.core.retry import RetryConfig, retry_async
from textback_agent.integrations.sms.base import (
    SMSGateway,
    SMSMessage,
    SMSResult,
    SMSStatus,
)

log = get_logger(__name__)

API_BASE = "https://api.twilio.com/2010-04-01"

# queued -> sending -> sent -> delivered | undelivered | failed
TWILIO_STATUS_MAP: dict[str, SMSStatus] = {
    "accepted": SMSStatus.PENDING,
    "scheduled": SMSStatus.PENDING,
    "queued": SMSStatus.PENDING,
    "sending": SMSStatus.PENDING,
    "sent": SMSStatus.SENT,
    "delivered": SMSStatus.DELIVERED,
    "received": SMSStatus.RECEIVED,
    "failed": SMSStatus.FAILED,
    "undelivered": SMSStatus.FAILED,
    "canceled": SMSStatus.FAILED,
}

# A connect failure never reached Twilio; a timeout may have, so it is not retried.
SEND_RETRY_CONFIG = RetryConfig(
    max_attempts=2,
    base_delay=1.0,
    max_delay=5.0,
    retryable_exceptions=(httpx.ConnectError,),
)


class TwilioSMSGateway(SMSGateway):
    """Sends texts through one Twilio account.

    The sender is the message's ``from_number`` (the business number), else
    the configured default. A Messaging Service SID, when set, replaces the
    sender entirely and lets Twilio pick the number.
    """

    def __init__(
        self,
        account_sid: str,
        auth_token: str,
        from_number: str = "",
        status_callback_url: str | None = None,
        messaging_service_sid: str | None = None,
        timeout: float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
        retry_config: RetryConfig | None = None,
    ):
        self.account_sid = account_sid
        self.from_number = from_number
        self.status_callback_url = status_callback_url
        self.messaging_service_sid = messaging_service_sid
        self.retry_config = retry_config or SEND_RETRY_CONFIG

        self._client = httpx.AsyncClient(
            base_url=f"{API_BASE}/Accounts/{account_sid}",
            auth=(account_sid, auth_token),
            timeout=timeout,
            headers={"Accept": "application/json"},
            transport=transport,
        )

    def _form_for(self, message: SMSMessage) -> dict[str, str]:
        form = {"To": self.normalize_phone(message.to), "Body": message.body}
        if self.messaging_service_sid:
            form["MessagingServiceSid"] = self.messaging_service_sid
        else:
            form["From"] = message.from_number or self.from_number
        if self.status_callback_url:
            form["StatusCallback"] = self.status_callback_url
        return form

    @staticmethod
    def _failure(error_message: str) -> SMSResult:
        return SMSResult(
            success=False,
            status=SMSStatus.FAILED,
            provider="twilio",
            error_message=error_message,
        )

    def _interpret(self, response: httpx.Response, to: str) -> SMSResult:
        try:
            payload = response.json() if response.content else {}
        except ValueError:
            payload = {}

        if response.is_success:
            status = payload.get("status", "queued")
            log.info("SMS sent via Twilio", message_sid=payload.get("sid"), to=to, status=status)
            return SMSResult(
                success=True,
                message_id=payload.get("sid", ""),
                status=TWILIO_STATUS_MAP.get(status, SMSStatus.PENDING),
                provider="twilio",
                sent_at=datetime.now(timezone.utc),
                segments=int(payload.get("num_segments") or 1),
            )

        # Twilio error bodies carry its own numeric code, e.g. 21211 for a bad "To"
        code = payload.get("code", response.status_code)
        reason = payload.get("message", f"HTTP {response.status_code}")
        log.error(
            "Twilio rejected SMS",
            status_code=response.status_code,
            error_code=code,
            error=reason,
            to=to,
        )
        return self._failure(f"[{code}] {reason}")

    async def send(self, message: SMSMessage) -> SMSResult:
        form = self._form_for(message)
        try:
            response = await retry_async(
                self._client.post, "/Messages.json", data=form, config=self.retry_config
            )
        except httpx.TimeoutException:
            log.error("Twilio SMS timeout", to=form["To"])
            return self._failure("Request timeout")
        except httpx.HTTPError as e:
            log.error("Twilio SMS transport error", error=str(e), to=form["To"])
            return self._failure(str(e))

        return self._interpret(response, form["To"])

    async def close(self) -> None:
        await self._client.aclose()


class TwilioWebhookHandler:
    """Reads Twilio webhook form fields.

    Older accounts still send ``SmsSid``/``SmsStatus`` next to or instead of
    ``MessageSid``/``MessageStatus``.
    """

    @staticmethod
    def parse_inbound(data: dict[str, Any]) -> dict[str, str]:
        return {
            "provider_message_id": str(data.get("MessageSid") or data.get("SmsSid") or ""),
            "from_phone": str(data.get("From", "")),
            "to_phone": str(data.get("To", "")),
            "body": str(data.get("Body", "")),
        }

    @staticmethod
    def parse_status_callback(data: dict[str, Any]) -> dict[str, Any]:
        twilio_status = data.get("MessageStatus") or data.get("SmsStatus") or "unknown"
        return {
            "provider_message_id": data.get("MessageSid") or data.get("SmsSid", ""),
            "status": TWILIO_STATUS_MAP.get(twilio_status, SMSStatus.UNKNOWN).value,
            "twilio_status": twilio_status,
            "error_code": data.get("ErrorCode"),
            "error_message": data.get("ErrorMessage"),
        }
