from __future__ import annotations

import logging
from typing import Optional

import httpx

from cryptowick.core.config import Settings

logger = logging.getLogger(__name__)

TWILIO_API_BASE = "https://api.twilio.com/2010-04-01"


class TwilioNotifier:
    """Send trade alerts as SMS through the Twilio Messages API.

    Alerts are best effort: missing credentials only log the message and
    delivery failures are logged, never raised.
    """

    def __init__(
        self,
        *,
        account_sid: Optional[str],
        auth_token: Optional[str],
        from_phone_number: Optional[str],
        to_phone_number: Optional[str],
        timeout_seconds: float = 15,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.from_phone_number = from_phone_number
        self.to_phone_number = to_phone_number
        self._client = httpx.AsyncClient(timeout=timeout_seconds, transport=transport)

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "TwilioNotifier":
        return cls(
            account_sid=settings.twilio_account_sid,
            auth_token=settings.twilio_auth_token,
            from_phone_number=settings.twilio_from_phone_number,
            to_phone_number=settings.twilio_to_phone_number,
            transport=transport,
        )

    @property
    def enabled(self) -> bool:
        return all(
            (
                self.account_sid,
                self.auth_token,
                self.from_phone_number,
                self.to_phone_number,
            )
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def notify(self, message: str) -> bool:
        if not self.enabled:
            logger.info(
                "SMS notifications disabled; dropping alert",
                extra={"extra": {"alert": message}},
            )
            return False

        url = f"{TWILIO_API_BASE}/Accounts/{self.account_sid}/Messages.json"
        try:
            resp = await self._client.post(
                url,
                auth=(str(self.account_sid), str(self.auth_token)),
                data={
                    "From": self.from_phone_number,
                    "To": self.to_phone_number,
                    "Body": message,
                },
            )
        except httpx.HTTPError:
            logger.exception("Failed to send SMS alert")
            return False
        if resp.status_code >= 400:
            logger.warning(
                "Twilio rejected SMS alert",
                extra={"extra": {"status_code": resp.status_code, "body": resp.text}},
            )
            return False
        return True


__all__ = ["TWILIO_API_BASE", "TwilioNotifier"]
