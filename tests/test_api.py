"""Tests for the HTTP surface: bookings, appointments, webhooks and health."""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from textback_agent.api import webhook_security
from textback_agent.api.webhook_security import TwilioSignatureValidator
from textback_agent.dependencies import get_services
from textback_agent.domain import MessageDirection
from textback_agent.main import create_app

BUSINESS_PHONE = "+15550001000"
CALLER_PHONE = "+15551234567"

TUESDAY_10AM = "2024-01-16T10:00:00-05:00"


@pytest.fixture
def client(services):
    """Test client over in-memory engine services."""
    app = create_app()
    app.dependency_overrides[get_services] = lambda: services
    with TestClient(app) as test_client:
        yield test_client


def booking_payload(**overrides) -> dict:
    payload = {
        "customer_name": "Sarah Lee",
        "customer_phone": "(555) 123-4567",
        "service_type": "Cleaning",
        "slot_start": TUESDAY_10AM,
    }
    payload.update(overrides)
    return payload


class TestSlotsEndpoint:
    def test_lists_slots_for_today(self, client):
        response = client.get(
            "/api/v1/bookings/bright-smile/slots",
            params={"start": "2024-01-15", "end": "2024-01-15"},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["business_name"] == "Bright Smile Dental"
        assert data["timezone"] == "America/New_York"
        assert data["all_consumed_today"] is False
        # 09:00 has already started
        assert data["slots"][0]["start"] == "2024-01-15T09:30:00-05:00"
        assert data["slots"][0]["display"] == "9:30 AM"
        assert len(data["slots"]) == 15

    def test_service_labels_include_price(self, client):
        data = client.get("/api/v1/bookings/bright-smile/slots").json()

        assert data["services"] == [
            {"value": "Cleaning", "label": "Cleaning"},
            {"value": "Whitening", "label": "Whitening - $199"},
        ]

    def test_weekend_has_no_slots(self, client):
        data = client.get(
            "/api/v1/bookings/bright-smile/slots",
            params={"start": "2024-01-20", "end": "2024-01-21"},
        ).json()

        assert data["slots"] == []
        assert data["all_consumed_today"] is False

    def test_range_too_large(self, client):
        response = client.get(
            "/api/v1/bookings/bright-smile/slots",
            params={"start": "2024-01-15", "end": "2024-06-15"},
        )

        assert response.status_code == 400
        assert response.json()["error"] == "BOOKING_VALIDATION_ERROR"

    def test_unknown_business(self, client):
        response = client.get("/api/v1/bookings/nope/slots")

        assert response.status_code == 404
        assert response.json()["error"] == "BUSINESS_NOT_FOUND"


class TestCreateBookingEndpoint:
    def test_books_and_sends_confirmation(self, client, sms, stores):
        response = client.post("/api/v1/bookings/bright-smile", json=booking_payload())

        assert response.status_code == 201
        appointment = response.json()["appointment"]
        assert appointment["status"] == "confirmed"
        assert appointment["scheduled_at"] == "2024-01-16T15:00:00+00:00"
        assert appointment["service_type"] == "Cleaning"

        sent = sms.get_sent_messages()
        assert len(sent) == 1
        assert sent[0]["to"] == CALLER_PHONE
        assert sent[0]["body"].startswith("Confirmed! Your appointment with Bright Smile Dental")

    def test_booked_slot_disappears(self, client):
        client.post("/api/v1/bookings/bright-smile", json=booking_payload())

        data = client.get(
            "/api/v1/bookings/bright-smile/slots",
            params={"start": "2024-01-16", "end": "2024-01-16"},
        ).json()

        starts = [slot["start"] for slot in data["slots"]]
        assert TUESDAY_10AM not in starts
        assert len(starts) == 15

    def test_slot_taken(self, client, sms):
        client.post("/api/v1/bookings/bright-smile", json=booking_payload())

        response = client.post(
            "/api/v1/bookings/bright-smile",
            json=booking_payload(customer_name="Tom", customer_phone="+15557654321"),
        )

        assert response.status_code == 409
        assert response.json()["error"] == "SLOT_TAKEN"
        assert len(sms.get_sent_messages()) == 1

    def test_past_slot_rejected(self, client):
        response = client.post(
            "/api/v1/bookings/bright-smile",
            json=booking_payload(slot_start="2024-01-15T09:00:00-05:00"),
        )

        assert response.status_code == 400
        assert response.json()["error"] == "BOOKING_VALIDATION_ERROR"

    def test_misaligned_slot_rejected(self, client):
        response = client.post(
            "/api/v1/bookings/bright-smile",
            json=booking_payload(slot_start="2024-01-16T10:10:00-05:00"),
        )

        assert response.status_code == 400

    def test_missing_fields(self, client):
        response = client.post(
            "/api/v1/bookings/bright-smile",
            json={"customer_name": "Sarah", "slot_start": TUESDAY_10AM},
        )

        assert response.status_code == 422
        fields = {error["field"] for error in response.json()["details"]}
        assert {"customer_phone", "service_type"} <= fields

    def test_unknown_business(self, client):
        response = client.post("/api/v1/bookings/nope", json=booking_payload())

        assert response.status_code == 404


class TestAppointmentEndpoints:
    def _book(self, client) -> str:
        response = client.post("/api/v1/bookings/bright-smile", json=booking_payload())
        return response.json()["appointment"]["id"]

    def test_list(self, client):
        appointment_id = self._book(client)

        response = client.get("/api/v1/businesses/bright-smile/appointments")

        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 1
        assert data["appointments"][0]["id"] == appointment_id

    def test_cancel_sends_message(self, client, sms, stores):
        appointment_id = self._book(client)

        response = client.post(f"/api/v1/appointments/{appointment_id}/cancel")

        assert response.status_code == 200
        assert response.json()["appointment"]["status"] == "cancelled"
        assert "has been cancelled" in sms.get_sent_messages()[-1]["body"]

    def test_cancel_twice(self, client):
        appointment_id = self._book(client)
        client.post(f"/api/v1/appointments/{appointment_id}/cancel")

        response = client.post(f"/api/v1/appointments/{appointment_id}/cancel")

        assert response.status_code == 400
        assert response.json()["error"] == "APPOINTMENT_STATE_ERROR"

    def test_cancelled_slot_reopens(self, client):
        appointment_id = self._book(client)
        client.post(f"/api/v1/appointments/{appointment_id}/cancel")

        data = client.get(
            "/api/v1/bookings/bright-smile/slots",
            params={"start": "2024-01-16", "end": "2024-01-16"},
        ).json()

        assert TUESDAY_10AM in [slot["start"] for slot in data["slots"]]

    def test_delete(self, client, stores):
        appointment_id = self._book(client)

        response = client.delete(f"/api/v1/appointments/{appointment_id}")

        assert response.status_code == 204
        assert stores.appointments.appointments == {}

    def test_unknown_appointment(self, client):
        response = client.post("/api/v1/appointments/8f8a3c55-0c54-4d4f-9f5b-0c1f7d0f4a11/cancel")

        assert response.status_code == 404
        assert response.json()["error"] == "APPOINTMENT_NOT_FOUND"


class TestWebhooks:
    def test_twilio_inbound_returns_empty_twiml(self, client, sms, ai):
        ai.queue("Hi! How can we help?")

        response = client.post(
            "/api/v1/webhooks/sms/inbound",
            data={"MessageSid": "SM1", "From": CALLER_PHONE, "To": BUSINESS_PHONE, "Body": "Hello"},
        )

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("application/xml")
        assert "<Response></Response>" in response.text
        assert sms.get_sent_messages()[0]["body"] == "Hi! How can we help?"

    def test_twilio_inbound_unknown_number(self, client, sms):
        response = client.post(
            "/api/v1/webhooks/sms/inbound",
            data={"MessageSid": "SM1", "From": CALLER_PHONE, "To": "+15559990000", "Body": "Hi"},
        )

        assert response.status_code == 200
        assert sms.get_sent_messages() == []

    def test_json_event(self, client, ai):
        ai.queue("Sure thing!")

        response = client.post(
            "/api/v1/webhooks/sms/events",
            json={"messageId": "m-1", "fromPhone": CALLER_PHONE, "toPhone": BUSINESS_PHONE, "body": "Hi"},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert data["action"] == "proceed"
        assert data["conversation_id"]

    def test_json_event_duplicate(self, client, ai):
        payload = {"messageId": "m-1", "fromPhone": CALLER_PHONE, "toPhone": BUSINESS_PHONE, "body": "Hi"}
        client.post("/api/v1/webhooks/sms/events", json=payload)

        response = client.post("/api/v1/webhooks/sms/events", json=payload)

        assert response.json()["action"] == "duplicate"
        assert len(ai.calls) == 1

    def test_processing_failure_still_acknowledged(self, client, services, monkeypatch):
        async def boom(event):
            raise RuntimeError("store down")

        monkeypatch.setattr(services.orchestrator, "handle_inbound", boom)

        response = client.post(
            "/api/v1/webhooks/sms/events",
            json={"fromPhone": CALLER_PHONE, "toPhone": BUSINESS_PHONE, "body": "Hi"},
        )

        assert response.status_code == 200
        assert response.json() == {"status": "error", "action": "error", "conversation_id": None}

    def test_status_callback_updates_message(self, client, stores):
        client.post(
            "/api/v1/webhooks/voice/dial-status",
            data={"To": BUSINESS_PHONE, "From": CALLER_PHONE, "DialCallStatus": "no-answer"},
        )
        greeting = next(
            m for m in stores.conversations.messages if m.direction == MessageDirection.OUTBOUND
        )

        response = client.post(
            "/api/v1/webhooks/sms/status",
            data={"MessageSid": greeting.provider_message_id, "MessageStatus": "delivered"},
        )

        assert response.json()["action"] == "status_updated"
        assert greeting.provider_status == "delivered"

    def test_status_callback_unknown_message(self, client):
        response = client.post(
            "/api/v1/webhooks/sms/status",
            data={"MessageSid": "SMunknown", "MessageStatus": "failed"},
        )

        assert response.json()["action"] == "unknown_message"

    def test_status_callback_without_sid(self, client):
        response = client.post("/api/v1/webhooks/sms/status", data={"MessageStatus": "sent"})

        assert response.json()["action"] == "ignored"

    def test_dial_status_missed_call(self, client, sms):
        response = client.post(
            "/api/v1/webhooks/voice/dial-status",
            data={"To": BUSINESS_PHONE, "From": CALLER_PHONE, "DialCallStatus": "busy"},
        )

        assert response.json()["action"] == "greeted"
        assert sms.get_sent_messages()[0]["to"] == CALLER_PHONE

    def test_dial_status_answered(self, client, sms):
        response = client.post(
            "/api/v1/webhooks/voice/dial-status",
            data={
                "To": BUSINESS_PHONE,
                "From": CALLER_PHONE,
                "DialCallStatus": "completed",
                "AnsweredBy": "human",
                "DialCallDuration": "45",
            },
        )

        assert response.json()["action"] == "ignored"
        assert sms.get_sent_messages() == []


class TestWebhookSignatures:
    @pytest.fixture
    def signed(self, settings, monkeypatch):
        settings.sms.twilio.validate_signatures = True
        settings.sms.twilio.auth_token = "test-auth-token"
        monkeypatch.setattr(webhook_security, "get_settings", lambda: settings)
        return TwilioSignatureValidator("test-auth-token")

    def test_missing_signature_rejected(self, client, signed, sms):
        response = client.post(
            "/api/v1/webhooks/voice/dial-status",
            data={"To": BUSINESS_PHONE, "From": CALLER_PHONE, "DialCallStatus": "busy"},
        )

        assert response.status_code == 403
        assert sms.get_sent_messages() == []

    def test_valid_signature_accepted(self, client, signed):
        params = {"To": BUSINESS_PHONE, "From": CALLER_PHONE, "DialCallStatus": "busy"}
        url = "http://testserver/api/v1/webhooks/voice/dial-status"

        response = client.post(
            "/api/v1/webhooks/voice/dial-status",
            data=params,
            headers={"X-Twilio-Signature": signed.compute(url, params)},
        )

        assert response.status_code == 200
        assert response.json()["action"] == "greeted"

    def test_json_events_are_not_signature_checked(self, client, signed):
        response = client.post(
            "/api/v1/webhooks/sms/events",
            json={"fromPhone": CALLER_PHONE, "toPhone": "+15559990000", "body": "Hi"},
        )

        assert response.status_code == 200


class TestSignatureValidator:
    def test_parameter_order_does_not_matter(self):
        validator = TwilioSignatureValidator("12345")
        url = "https://example.com/api/v1/webhooks/sms/inbound"

        first = validator.compute(url, {"From": CALLER_PHONE, "Body": "Hi", "To": BUSINESS_PHONE})
        second = validator.compute(url, {"To": BUSINESS_PHONE, "From": CALLER_PHONE, "Body": "Hi"})

        assert first == second
        assert validator.validate(first, url, {"Body": "Hi", "From": CALLER_PHONE, "To": BUSINESS_PHONE})

    def test_tampered_params_rejected(self):
        validator = TwilioSignatureValidator("12345")
        url = "https://example.com/hook"
        signature = validator.compute(url, {"Body": "Hi"})

        assert validator.validate(signature, url, {"Body": "Hello"}) is False
        assert TwilioSignatureValidator("other").validate(signature, url, {"Body": "Hi"}) is False

    def test_empty_token_never_validates(self):
        assert TwilioSignatureValidator("").validate("anything", "https://example.com") is False


class TestHealth:
    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["environment"] == "test"
        assert data["checks"]["database"] == "ok"
