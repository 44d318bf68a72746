from __future__ import annotations

import asyncio
from typing import List
from urllib.parse import parse_qs

import httpx

from cryptowick.clients.twilio import TwilioNotifier
from cryptowick.core.config import Settings


def _notify(notifier: TwilioNotifier, message: str) -> bool:
    async def _run() -> bool:
        try:
            return await notifier.notify(message)
        finally:
            await notifier.aclose()

    return asyncio.run(_run())


def _settings() -> Settings:
    return Settings(
        twilio_account_sid="AC123",
        twilio_auth_token="secret",
        twilio_from_phone_number="+15550000001",
        twilio_to_phone_number="+15550000002",
    )


def test_notify_posts_message_form() -> None:
    seen: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(201, json={"sid": "SM1"})

    notifier = TwilioNotifier.from_settings(_settings(), transport=httpx.MockTransport(handler))
    assert notifier.enabled
    assert _notify(notifier, "Bought BTCUSD at 100.00") is True

    request = seen[0]
    assert request.method == "POST"
    assert request.url.path == "/2010-04-01/Accounts/AC123/Messages.json"
    assert request.headers["Authorization"].startswith("Basic ")
    form = parse_qs(request.content.decode())
    assert form == {
        "From": ["+15550000001"],
        "To": ["+15550000002"],
        "Body": ["Bought BTCUSD at 100.00"],
    }


def test_rejected_message_returns_false() -> None:
    def handler(_request: httpx.Request) -> httpx.Response:
        return httpx.Response(401, json={"message": "Authenticate"})

    notifier = TwilioNotifier.from_settings(_settings(), transport=httpx.MockTransport(handler))
    assert _notify(notifier, "Sold BTCUSD at 99.00") is False


def test_transport_failure_returns_false() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    notifier = TwilioNotifier.from_settings(_settings(), transport=httpx.MockTransport(handler))
    assert _notify(notifier, "Sold BTCUSD at 99.00") is False


def test_missing_credentials_disable_sending() -> None:
    calls: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:  # pragma: no cover - never called
        calls.append(request)
        return httpx.Response(201)

    notifier = TwilioNotifier(
        account_sid=None,
        auth_token=None,
        from_phone_number=None,
        to_phone_number=None,
        transport=httpx.MockTransport(handler),
    )
    assert not notifier.enabled
    assert _notify(notifier, "Bought BTCUSD at 100.00") is False
    assert calls == []
