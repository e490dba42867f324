import json

import httpx
import pytest

from app.consulting.services.notification_service import (
    ENROLLED_EVENT,
    NotificationDispatcher,
)

WEBHOOK = "https://hooks.example.com/consulting"


def _dispatcher(handler, attempts=3):
    return NotificationDispatcher(
        webhook_url=WEBHOOK,
        attempts=attempts,
        transport=httpx.MockTransport(handler),
    )


class TestNotificationDispatcher:
    @pytest.mark.asyncio
    async def test_delivers_event(self):
        received = []

        def handler(request):
            received.append(request)
            return httpx.Response(200, json={"ok": True})

        delivered = await _dispatcher(handler).notify(
            "user-1", ENROLLED_EVENT, {"id": 10}
        )

        assert delivered is True
        assert len(received) == 1
        body = json.loads(received[0].read())
        assert body["event"] == ENROLLED_EVENT
        assert body["user_id"] == "user-1"
        assert body["payload"] == {"id": 10}

    @pytest.mark.asyncio
    async def test_rejected_delivery_returns_false(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(500, text="down")

        delivered = await _dispatcher(handler).notify("user-1", ENROLLED_EVENT)

        assert delivered is False
        # Only transport errors are retried
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_transport_errors_are_retried_then_swallowed(self):
        calls = []

        def handler(request):
            calls.append(request)
            raise httpx.ConnectError("refused", request=request)

        delivered = await _dispatcher(handler, attempts=3).notify("user-1", ENROLLED_EVENT)

        assert delivered is False
        assert len(calls) == 3

    @pytest.mark.asyncio
    async def test_without_webhook_nothing_is_sent(self):
        dispatcher = NotificationDispatcher(
            transport=httpx.MockTransport(lambda request: httpx.Response(200))
        )

        assert await dispatcher.notify("user-1", ENROLLED_EVENT) is False
