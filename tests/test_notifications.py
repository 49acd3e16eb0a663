"""Tests for booking notifications and PII redaction."""

import json
import logging

import httpx
import pytest

from booking_engine.models import Booking
from booking_engine.notifications import (
    BookingNotification,
    LogNotifier,
    WebhookNotifier,
    redact_pii,
)

from conftest import MONDAY, at, guest


@pytest.fixture
def notification():
    booking = Booking(
        id="bk_1",
        event_type_id="intro",
        host_id="grace",
        guest=guest(),
        start=at(MONDAY, 10),
        duration=30,
        created_at=at(MONDAY, 8),
        updated_at=at(MONDAY, 8),
    )
    return BookingNotification.for_booking(booking, "created")


class TestWebhookNotifier:
    async def test_posts_json_payload(self, notification):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(204)

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        notifier = WebhookNotifier("https://hooks.example.com/bookings", client=client)
        await notifier.send(notification)
        await client.aclose()

        [request] = seen
        assert request.method == "POST"
        assert str(request.url) == "https://hooks.example.com/bookings"
        body = json.loads(request.content)
        assert body["booking_id"] == "bk_1"
        assert body["change_type"] == "created"
        assert body["guest_contact"] == "ada@example.com"
        assert body["start_time"].startswith("2026-03-16T10:00:00")

    async def test_error_status_raises(self, notification):
        client = httpx.AsyncClient(
            transport=httpx.MockTransport(lambda request: httpx.Response(500))
        )
        notifier = WebhookNotifier("https://hooks.example.com/bookings", client=client)
        with pytest.raises(httpx.HTTPStatusError):
            await notifier.send(notification)
        await client.aclose()


class TestLogNotifier:
    async def test_logs_without_raw_email(self, notification, caplog):
        with caplog.at_level(logging.INFO, logger="booking_engine.notifications"):
            await LogNotifier().send(notification)
        assert "bk_1 created" in caplog.text
        assert "ada***om" in caplog.text
        assert "ada@example.com" not in caplog.text


# ── Tests: PII redaction ──────────────────────────────────────────

class TestPiiRedaction:
    """redact_pii masks sensitive data for logging."""

    def test_redacts_phone(self):
        assert redact_pii("+15551234567") == "+15***67"

    def test_redacts_short_value(self):
        assert redact_pii("abc") == "***"

    def test_redacts_empty(self):
        assert redact_pii("") == "***"

    def test_redacts_email(self):
        assert redact_pii("user@example.com") == "use***om"
