"""Out-of-band notification channels: push (FCM), SMS (Twilio), email (Resend).

Each channel sends one message to one target and raises ``DeliveryError``
on failure. A channel is only offered by ``get_channels`` when every
setting it needs is present.
"""

from __future__ import annotations

import html
import logging
from abc import ABC, abstractmethod

import httpx

from hostelpal.core.config import settings
from hostelpal.db.enums import DeliveryChannel
from hostelpal.db.models import User
from hostelpal.services.http_service import DEFAULT_RETRY_STATUSES, request_with_retries

logger = logging.getLogger(__name__)

FCM_SEND_URL = "https://fcm.googleapis.com/fcm/send"
TWILIO_MESSAGES_URL = "https://api.twilio.com/2010-04-01/Accounts/{sid}/Messages.json"
RESEND_SEND_URL = "https://api.resend.com/emails"

CHANNEL_MAX_ATTEMPTS = 3
CHANNEL_RETRY_BASE_DELAY = 0.5
CHANNEL_RETRY_MAX_DELAY = 4.0
CHANNEL_TIMEOUT_SECONDS = 20.0
SMS_MAX_LENGTH = 320


class DeliveryError(Exception):
    """A channel could not deliver a message."""


class Channel(ABC):
    """One delivery channel."""

    name: DeliveryChannel

    @abstractmethod
    def target_for(self, user: User) -> str | None:
        """Return the user's address on this channel, if any."""

    @abstractmethod
    async def send(self, target: str, title: str, message: str, subject: str | None = None) -> None:
        """Deliver a message or raise DeliveryError."""

    async def _post(self, url: str, **kwargs) -> httpx.Response:
        try:
            async with httpx.AsyncClient(timeout=CHANNEL_TIMEOUT_SECONDS) as client:

                async def request_fn() -> httpx.Response:
                    return await client.post(url, **kwargs)

                response = await request_with_retries(
                    request_fn,
                    max_attempts=CHANNEL_MAX_ATTEMPTS,
                    base_delay=CHANNEL_RETRY_BASE_DELAY,
                    max_delay=CHANNEL_RETRY_MAX_DELAY,
                    retry_statuses=DEFAULT_RETRY_STATUSES,
                )
        except httpx.TimeoutException as exc:
            raise DeliveryError("Connection timeout") from exc
        except httpx.RequestError as exc:
            raise DeliveryError(f"Request error: {exc.__class__.__name__}") from exc

        if response.status_code >= 400:
            raise DeliveryError(f"{self.name.value} returned {response.status_code}")
        return response


class PushChannel(Channel):
    name = DeliveryChannel.PUSH

    def __init__(self, server_key: str):
        self.server_key = server_key

    def target_for(self, user: User) -> str | None:
        return user.fcm_token or None

    async def send(self, target: str, title: str, message: str, subject: str | None = None) -> None:
        response = await self._post(
            FCM_SEND_URL,
            headers={
                "Authorization": f"key={self.server_key}",
                "Content-Type": "application/json",
            },
            json={
                "to": target,
                "notification": {"title": title, "body": message},
                "priority": "high",
            },
        )
        try:
            data = response.json()
        except ValueError:
            return
        if isinstance(data, dict) and data.get("failure"):
            results = data.get("results") or [{}]
            raise DeliveryError(f"FCM rejected token: {results[0].get('error', 'unknown')}")


class SmsChannel(Channel):
    name = DeliveryChannel.SMS

    def __init__(self, account_sid: str, auth_token: str, from_number: str):
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.from_number = from_number

    def target_for(self, user: User) -> str | None:
        return user.phone_number or None

    async def send(self, target: str, title: str, message: str, subject: str | None = None) -> None:
        await self._post(
            TWILIO_MESSAGES_URL.format(sid=self.account_sid),
            auth=(self.account_sid, self.auth_token),
            data={
                "From": self.from_number,
                "To": target,
                "Body": message[:SMS_MAX_LENGTH],
            },
        )


class EmailChannel(Channel):
    name = DeliveryChannel.EMAIL

    def __init__(self, api_key: str, from_address: str):
        self.api_key = api_key
        self.from_address = from_address

    def target_for(self, user: User) -> str | None:
        return user.email or None

    async def send(self, target: str, title: str, message: str, subject: str | None = None) -> None:
        body = f"<h2>{html.escape(title)}</h2><p>{html.escape(message)}</p>"
        await self._post(
            RESEND_SEND_URL,
            headers={
                "Authorization": f"Bearer {self.api_key}",
                "Content-Type": "application/json",
            },
            json={
                "from": self.from_address,
                "to": [target],
                "subject": subject or title,
                "html": body,
                "text": f"{title}\n\n{message}",
            },
        )


def get_channels() -> dict[DeliveryChannel, Channel]:
    """Return the channels whose settings are complete."""
    channels: dict[DeliveryChannel, Channel] = {}
    if settings.push_configured:
        channels[DeliveryChannel.PUSH] = PushChannel(settings.FCM_SERVER_KEY)
    if settings.sms_configured:
        channels[DeliveryChannel.SMS] = SmsChannel(
            settings.TWILIO_ACCOUNT_SID,
            settings.TWILIO_AUTH_TOKEN,
            settings.TWILIO_FROM_NUMBER,
        )
    if settings.email_configured:
        channels[DeliveryChannel.EMAIL] = EmailChannel(
            settings.RESEND_API_KEY, settings.EMAIL_FROM
        )
    return channels
