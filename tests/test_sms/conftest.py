"""Test fixtures for SMS integration tests."""

from __future__ import annotations

import httpx
import pytest

from textback_agent.core.retry import RetryConfig


class TwilioAPI:
    """Records requests and answers them from a queue of handlers."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.responses: list = []

    def queue(self, *responses) -> None:
        self.responses.extend(responses)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        response = self.responses.pop(0) if self.responses else _created()
        if isinstance(response, Exception):
            raise response
        return response


def _created() -> httpx.Response:
    return httpx.Response(
        201,
        json={
            "sid": "SM123456789",
            "status": "queued",
            "to": "+15551234567",
            "from": "+15550001000",
            "num_segments": "1",
        },
    )


@pytest.fixture
def twilio_api() -> TwilioAPI:
    return TwilioAPI()


@pytest.fixture
async def twilio_gateway(twilio_api):
    """TwilioSMSGateway over a mock transport, without retry backoff."""
    from textback_agent.integrations.sms.twilio import TwilioSMSGateway

    gateway = TwilioSMSGateway(
        account_sid="AC123456789",
        auth_token="test_auth_token",
        from_number="+15550001000",
        status_callback_url="https://example.com/api/v1/webhooks/sms/status",
        transport=httpx.MockTransport(twilio_api),
        retry_config=RetryConfig(
            max_attempts=2,
            base_delay=0.0,
            jitter=0.0,
            retryable_exceptions=(httpx.ConnectError,),
        ),
    )
    yield gateway
    await gateway.close()
