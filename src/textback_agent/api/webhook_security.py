"""Webhook signature validation.

Twilio signs every webhook with HMAC-SHA1 over the request URL and the
sorted POST parameters. See: https://www.twilio.com/docs/usage/security
"""

from __future__ import annotations

import base64
import hashlib
import hmac
from typing import Any

from fastapi import HTTPException, Request

from textback_agent.config import get_settings
from textback_agent.core.log import get_logger

log = get_logger(__name__)


class TwilioSignatureValidator:
    """Validate Twilio webhook signatures.

    Signature calculation:
    1. Take the full URL of the request
    2. If POST, sort parameters alphabetically and append key + value to the URL
    3. Compute HMAC-SHA1 of the result using the Auth Token as key
    4. Base64 encode the result
    """

    def __init__(self, auth_token: str) -> None:
        self.auth_token = auth_token

    def compute(self, url: str, params: dict[str, Any] | None = None) -> str:
        data = url
        for key, value in sorted((params or {}).items()):
            data += str(key) + str(value)

        return base64.b64encode(
            hmac.new(
                self.auth_token.encode("utf-8"),
                data.encode("utf-8"),
                hashlib.sha1,
            ).digest()
        ).decode("utf-8")

    def validate(self, signature: str, url: str, params: dict[str, Any] | None = None) -> bool:
        if not self.auth_token:
            log.warning("Twilio auth token not configured")
            return False
        return hmac.compare_digest(self.compute(url, params), signature)


async def verify_twilio_signature(request: Request) -> None:
    """FastAPI dependency guarding Twilio form webhooks.

    No-op unless ``sms.twilio.validate_signatures`` is enabled.

    Raises:
        HTTPException: 403 if the signature does not match
    """
    twilio = get_settings().sms.twilio
    if not twilio.validate_signatures:
        return

    url = str(request.url)
    if twilio.public_base_url:
        url = twilio.public_base_url.rstrip("/") + request.url.path
        if request.url.query:
            url += f"?{request.url.query}"

    form = await request.form()
    params = {key: value for key, value in form.items()}
    signature = request.headers.get("X-Twilio-Signature", "")

    if not TwilioSignatureValidator(twilio.auth_token).validate(signature, url, params):
        log.warning("Invalid Twilio signature", path=request.url.path)
        raise HTTPException(status_code=403, detail="Invalid signature")
