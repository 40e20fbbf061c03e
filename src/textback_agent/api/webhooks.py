"""Messaging and voice gateway webhooks.

Every endpoint acknowledges with 200 whatever happens downstream;
unknown numbers and processing failures are logged and dropped so the
gateway never retries a turn.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Request, Response
from pydantic import BaseModel, ConfigDict, Field

from textback_agent.api.webhook_security import verify_twilio_signature
from textback_agent.core.log import get_logger
from textback_agent.dependencies import ServicesDep
from textback_agent.engine.missed_call import MissedCallEvent
from textback_agent.engine.orchestrator import InboundEvent
from textback_agent.integrations.sms.twilio import TwilioWebhookHandler

log = get_logger(__name__)

router = APIRouter(prefix="/webhooks", tags=["Webhooks"])

EMPTY_TWIML = '<?xml version="1.0" encoding="UTF-8"?>\n<Response></Response>'


class InboundSMSEvent(BaseModel):
    """Provider-neutral inbound message event."""

    model_config = ConfigDict(populate_by_name=True)

    message_id: str | None = Field(default=None, alias="messageId")
    from_phone: str = Field(alias="fromPhone")
    to_phone: str = Field(alias="toPhone")
    body: str = ""


class WebhookResponse(BaseModel):
    status: str = "ok"
    action: str | None = None
    conversation_id: str | None = None


def _twiml() -> Response:
    return Response(content=EMPTY_TWIML, media_type="application/xml")


async def _form(request: Request) -> dict[str, Any]:
    form = await request.form()
    return {key: value for key, value in form.items()}


async def _run_turn(services, event: InboundEvent) -> WebhookResponse:
    try:
        result = await services.orchestrator.handle_inbound(event)
    except Exception as e:
        log.error(
            "Inbound processing failed",
            message_id=event.message_id,
            error=f"{type(e).__name__}: {e}",
        )
        return WebhookResponse(status="error", action="error")

    return WebhookResponse(
        action=result.action,
        conversation_id=str(result.conversation_id) if result.conversation_id else None,
    )


@router.post("/sms/inbound", dependencies=[Depends(verify_twilio_signature)])
async def twilio_inbound_sms(request: Request, services: ServicesDep) -> Response:
    """Inbound SMS from Twilio (form fields ``MessageSid``, ``From``, ``To``, ``Body``).

    Replies go out through the REST API, so the TwiML response is empty.
    """
    parsed = TwilioWebhookHandler.parse_inbound(await _form(request))
    event = InboundEvent(
        from_phone=parsed["from_phone"],
        to_phone=parsed["to_phone"],
        body=parsed["body"],
        message_id=parsed["provider_message_id"] or None,
    )
    log.info(
        "Inbound SMS received",
        message_sid=event.message_id,
        from_number=event.from_phone,
        to_number=event.to_phone,
        body_preview=event.body[:50],
    )

    await _run_turn(services, event)
    return _twiml()


@router.post("/sms/events", response_model=WebhookResponse)
async def inbound_sms_event(payload: InboundSMSEvent, services: ServicesDep) -> WebhookResponse:
    """Inbound SMS as JSON ``{messageId, fromPhone, toPhone, body}``."""
    return await _run_turn(
        services,
        InboundEvent(
            from_phone=payload.from_phone,
            to_phone=payload.to_phone,
            body=payload.body,
            message_id=payload.message_id,
        ),
    )


@router.post(
    "/sms/status",
    response_model=WebhookResponse,
    dependencies=[Depends(verify_twilio_signature)],
)
async def twilio_sms_status(request: Request, services: ServicesDep) -> WebhookResponse:
    """Delivery status callback; stores the provider status on the message."""
    parsed = TwilioWebhookHandler.parse_status_callback(await _form(request))
    provider_message_id = parsed["provider_message_id"]

    log.info(
        "Twilio SMS status webhook",
        message_sid=provider_message_id,
        status=parsed["status"],
        twilio_status=parsed["twilio_status"],
        error_code=parsed["error_code"],
    )

    if not provider_message_id:
        return WebhookResponse(action="ignored")

    try:
        updated = await services.sessions.update_delivery_status(
            provider_message_id, parsed["twilio_status"]
        )
    except Exception as e:
        log.error(
            "Failed to update SMS status",
            provider_message_id=provider_message_id,
            error=str(e),
        )
        return WebhookResponse(status="error", action="error")

    return WebhookResponse(action="status_updated" if updated else "unknown_message")


@router.post(
    "/voice/dial-status",
    response_model=WebhookResponse,
    dependencies=[Depends(verify_twilio_signature)],
)
async def voice_dial_status(request: Request, services: ServicesDep) -> WebhookResponse:
    """Dial action callback after the call was forwarded to the business.

    Form fields: ``To``, ``From``, ``DialCallStatus``, ``AnsweredBy``,
    ``DialCallDuration``.
    """
    data = await _form(request)

    duration_raw = str(data.get("DialCallDuration") or data.get("CallDuration") or "")
    event = MissedCallEvent(
        to_phone=str(data.get("To", "")),
        caller_phone=str(data.get("From", "")),
        dial_status=str(data.get("DialCallStatus") or data.get("CallStatus") or ""),
        answered_by=str(data.get("AnsweredBy", "")) or None,
        duration_seconds=int(duration_raw) if duration_raw.isdigit() else None,
    )

    log.info(
        "Dial status received",
        to=event.to_phone,
        caller=event.caller_phone,
        dial_status=event.dial_status,
        answered_by=event.answered_by,
        duration=event.duration_seconds,
    )

    try:
        result = await services.missed_calls.handle(event)
    except Exception as e:
        log.error("Dial status processing failed", error=f"{type(e).__name__}: {e}")
        return WebhookResponse(status="error", action="error")

    return WebhookResponse(
        action=result.action,
        conversation_id=str(result.conversation_id) if result.conversation_id else None,
    )
