"""Slack delivery through the Web API's ``chat.postMessage``.

The bot token arrives per request (it is part of the webhook URL), so a
client is created for each delivery rather than once at startup.

Slack reports most failures as HTTP 200 with ``{"ok": false, "error": ...}``;
those are treated the same as transport failures and raised as
DeliveryError.

API docs: https://api.slack.com/methods/chat.postMessage
"""

from __future__ import annotations

from typing import Protocol

import httpx

from release_notifier.errors import DeliveryError
from release_notifier.logging_config import get_logger
from release_notifier.schemas import SlackMessage

logger = get_logger(__name__)


class SlackClientProtocol(Protocol):
    """Interface for posting a message to Slack."""

    async def post_message(self, message: SlackMessage) -> None:
        ...


class SlackClient:
    """Posts messages with a bot token.

    Usage:
        client = SlackClient(token="xoxb-...")
        await client.post_message(message)
    """

    BASE_URL = "https://slack.com/api"

    def __init__(
        self,
        token: str,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._token = token
        self._timeout = timeout
        self._transport = transport

    async def post_message(self, message: SlackMessage) -> None:
        """Send ``message`` to its channel.

        Raises:
            DeliveryError: On connection failure, non-2xx status, or an
                ``ok: false`` response
        """
        async with httpx.AsyncClient(
            base_url=self.BASE_URL,
            headers={"Authorization": f"Bearer {self._token}"},
            timeout=self._timeout,
            transport=self._transport,
        ) as client:
            try:
                resp = await client.post("/chat.postMessage", json=message.to_payload())
            except httpx.RequestError as exc:
                logger.error(
                    "slack_delivery_failed",
                    channel=message.channel,
                    error_type=type(exc).__name__,
                )
                raise DeliveryError(f"Could not reach Slack: {exc}") from exc

        if not resp.is_success:
            logger.error(
                "slack_delivery_failed",
                channel=message.channel,
                status_code=resp.status_code,
            )
            raise DeliveryError(
                f"Slack returned HTTP {resp.status_code}",
                status_code=resp.status_code,
            )

        try:
            data = resp.json()
        except ValueError as exc:
            raise DeliveryError(
                "Slack returned a non-JSON response", status_code=resp.status_code
            ) from exc

        if not isinstance(data, dict) or not data.get("ok"):
            error = data.get("error", "unknown_error") if isinstance(data, dict) else "unknown_error"
            logger.error(
                "slack_delivery_failed",
                channel=message.channel,
                slack_error=error,
            )
            raise DeliveryError(
                f"Slack rejected the message: {error}",
                status_code=resp.status_code,
                slack_error=error,
            )

        logger.info("slack_message_posted", channel=message.channel, ts=data.get("ts"))


class MockSlackClient:
    """Records messages instead of sending them.

    Pass ``error`` to simulate a delivery failure.
    """

    def __init__(self, error: DeliveryError | None = None) -> None:
        self.messages: list[SlackMessage] = []
        self._error = error

    async def post_message(self, message: SlackMessage) -> None:
        if self._error is not None:
            raise self._error
        self.messages.append(message)
