"""Tests for inbound channel webhooks."""

import hashlib
import hmac
import json
from unittest.mock import AsyncMock, patch

import pytest
from fastapi.testclient import TestClient

from app.api.webhooks import twilio_signature
from app.core.config import get_settings
from app.core.rate_limiter import get_inbound_rate_limiter
from app.main import app

from tests.fixtures_tenants import COMPANY_A, COMPANY_A_PHONE, HOMEOWNER_PHONE

client = TestClient(app)

SMS_URL = "http://testserver/v1/webhooks/twilio/sms"
PIPELINE = "app.api.webhooks.process_inbound_message"


def pipeline_result(route: str = "conversation", reply: str | None = "Thanks!") -> AsyncMock:
    return AsyncMock(
        return_value={"route": route, "session_id": "s1", "reply": reply, "delivered": True}
    )


def sms_form(sid: str = "SM100", body: str = "Is the tile in?") -> dict:
    return {"From": "(415) 555-0101", "To": COMPANY_A_PHONE, "Body": body, "MessageSid": sid}


@pytest.fixture
def twilio_token(monkeypatch):
    monkeypatch.setenv("TWILIO_AUTH_TOKEN", "twilio-secret")
    get_settings.cache_clear()
    return "twilio-secret"


class TestTwilioSms:
    def test_inbound_sms_is_queued_with_company_hint(self, tenants):
        pipeline = pipeline_result()

        with patch(PIPELINE, new=pipeline):
            response = client.post("/v1/webhooks/twilio/sms", data=sms_form())

        assert response.status_code == 200
        assert "<Response></Response>" in response.text
        message = pipeline.await_args.args[0]
        assert message.channel_identifier == HOMEOWNER_PHONE
        assert message.company_hint == COMPANY_A
        assert message.provider_message_id == "SM100"

    def test_replayed_message_sid_is_skipped(self, tenants):
        pipeline = pipeline_result()

        with patch(PIPELINE, new=pipeline):
            client.post("/v1/webhooks/twilio/sms", data=sms_form())
            replay = client.post("/v1/webhooks/twilio/sms", data=sms_form())

        assert replay.status_code == 200
        assert pipeline.await_count == 1
        assert len(tenants.rows("webhook_events", provider="twilio")) == 1

    def test_valid_signature_is_accepted(self, tenants, twilio_token):
        form = sms_form()
        signature = twilio_signature(SMS_URL, form, twilio_token)

        with patch(PIPELINE, new=pipeline_result()) as pipeline:
            response = client.post(
                "/v1/webhooks/twilio/sms", data=form, headers={"X-Twilio-Signature": signature}
            )

        assert response.status_code == 200
        pipeline.assert_awaited_once()

    def test_invalid_signature_is_rejected(self, tenants, twilio_token):
        with patch(PIPELINE, new=pipeline_result()) as pipeline:
            response = client.post(
                "/v1/webhooks/twilio/sms", data=sms_form(), headers={"X-Twilio-Signature": "forged"}
            )

        assert response.status_code == 401
        pipeline.assert_not_awaited()
        assert tenants.rows("webhook_events") == []

    def test_missing_sender_is_400(self, tenants):
        response = client.post("/v1/webhooks/twilio/sms", data={"Body": "hi", "MessageSid": "SM1"})
        assert response.status_code == 400


class TestInboundEmail:
    def _post(self, payload: dict, secret: str | None = None):
        body = json.dumps(payload).encode()
        headers = {"Content-Type": "application/json"}
        if secret:
            headers["X-Webhook-Signature"] = hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()
        return client.post("/v1/webhooks/email/inbound", content=body, headers=headers)

    def test_email_is_accepted(self, tenants):
        with patch(PIPELINE, new=pipeline_result()) as pipeline:
            response = self._post({"message_id": "m-1", "from": "Pat@Example.com", "text": "Any update?"})

        assert response.json() == {"status": "accepted"}
        assert pipeline.await_args.args[0].channel_identifier == "pat@example.com"

    def test_signature_required_when_secret_configured(self, tenants, monkeypatch):
        monkeypatch.setenv("INBOUND_EMAIL_WEBHOOK_SECRET", "relay-secret")
        get_settings.cache_clear()
        payload = {"message_id": "m-2", "from": "pat@example.com", "text": "Hello"}

        with patch(PIPELINE, new=pipeline_result()):
            unsigned = self._post(payload)
            signed = self._post(payload, secret="relay-secret")

        assert unsigned.status_code == 401
        assert signed.json() == {"status": "accepted"}

    def test_duplicate_email_is_acknowledged(self, tenants):
        payload = {"message_id": "m-3", "from": "pat@example.com", "text": "Hello"}

        with patch(PIPELINE, new=pipeline_result()):
            self._post(payload)
            again = self._post(payload)

        assert again.json() == {"status": "duplicate"}


class TestWebChat:
    def test_reply_is_returned_synchronously(self, tenants):
        with patch(PIPELINE, new=pipeline_result(reply="Your inspection is Friday.")) as pipeline:
            response = client.post(
                "/v1/webhooks/web/chat",
                json={"company_id": COMPANY_A, "session_key": "browser-abc123", "message": " When? "},
            )

        assert response.status_code == 200
        assert response.json()["reply"] == "Your inspection is Friday."
        message = pipeline.await_args.args[0]
        assert message.body == "When?"
        assert message.company_hint == COMPANY_A

    def test_duplicate_message_id(self, tenants):
        body = {
            "company_id": COMPANY_A,
            "session_key": "browser-abc123",
            "message": "Hi",
            "message_id": "w-1",
        }

        with patch(PIPELINE, new=pipeline_result()) as pipeline:
            client.post("/v1/webhooks/web/chat", json=body)
            again = client.post("/v1/webhooks/web/chat", json=body)

        assert again.json() == {"status": "duplicate", "reply": None}
        assert pipeline.await_count == 1

    def test_short_session_key_is_422(self, tenants):
        response = client.post(
            "/v1/webhooks/web/chat", json={"company_id": COMPANY_A, "session_key": "x", "message": "Hi"}
        )
        assert response.status_code == 422


def test_noisy_sender_is_rate_limited(tenants, monkeypatch):
    monkeypatch.setenv("INBOUND_RATE_LIMIT_PER_MINUTE", "2")
    get_settings.cache_clear()
    get_inbound_rate_limiter.cache_clear()

    with patch(PIPELINE, new=pipeline_result()) as pipeline:
        statuses = [
            client.post("/v1/webhooks/twilio/sms", data=sms_form(sid=f"SM{i}")).status_code
            for i in range(3)
        ]

    assert statuses == [200, 200, 429]
    assert pipeline.await_count == 2
