"""
Telegram Bot API client for sending messages.

Thin wrapper over the HTTP Bot API. Every call is a single best-effort
request: no retries, failures surface as TelegramTransportError.
"""

from typing import Any, Dict, Optional

import httpx

from chatter.config import Settings
from chatter.services.errors import TelegramTransportError
from .formatting import TELEGRAM_MAX_MESSAGE_LENGTH
from chatter.logging_config import bot_logger
from .models import OutboundMessage

logger = bot_logger.getChild("telegram_api")


class TelegramClient:
    """
    Client for the Telegram Bot API.

    Owns one httpx.AsyncClient; call close() on shutdown.
    """

    def __init__(
        self,
        bot_token: str,
        api_base: str = "https://api.telegram.org",
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = f"{api_base.rstrip('/')}/bot{bot_token}"
        self.client = httpx.AsyncClient(timeout=timeout, transport=transport)
        self._me: Optional[Dict[str, Any]] = None

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs) -> "TelegramClient":
        return cls(
            settings.telegram_bot_token,
            api_base=settings.telegram_api_base,
            timeout=settings.telegram_timeout_seconds,
            **kwargs,
        )

    async def _post(self, method: str, data: Dict[str, Any]) -> httpx.Response:
        try:
            response = await self.client.post(f"{self.base_url}/{method}", data=data)
        except httpx.HTTPError as e:
            logger.error(f"Telegram {method} failed: {e}")
            raise TelegramTransportError(f"Telegram {method} failed: {e}") from e

        if response.status_code != 200:
            message = f"Telegram API error: {response.status_code} - {response.text}"
            logger.error(message)
            raise TelegramTransportError(message, response.status_code, response.text)

        return response

    async def send_message(self, message: OutboundMessage) -> None:
        """
        Send one message, form-encoded.

        Raises:
            ValueError: text exceeds the Telegram limit (chunk it first)
            TelegramTransportError: non-200 response or network failure
        """
        if len(message.text) > TELEGRAM_MAX_MESSAGE_LENGTH:
            raise ValueError(
                f"Message text is {len(message.text)} characters, "
                f"limit is {TELEGRAM_MAX_MESSAGE_LENGTH}"
            )

        payload = {
            "chat_id": str(message.chat_id),
            "text": message.text,
        }
        if message.parse_mode:
            payload["parse_mode"] = str(message.parse_mode)

        logger.info(f"Sending message to chat {message.chat_id}")
        await self._post("sendMessage", payload)
        logger.info(f"Message sent successfully to chat {message.chat_id}")

    async def send_chat_action(self, chat_id: int, action: str = "typing") -> None:
        """Send chat action (typing indicator)."""
        await self._post("sendChatAction", {"chat_id": str(chat_id), "action": action})

    async def get_me(self) -> Dict[str, Any]:
        """
        Bot identity, fetched on first use and cached.

        Nothing is fetched at startup, so a Telegram outage never blocks
        the server from coming up.
        """
        if self._me is None:
            response = await self._post("getMe", {})
            self._me = response.json().get("result", {})
        return self._me

    async def set_webhook(self, url: str, secret_token: str) -> None:
        """Register the webhook URL and the shared secret Telegram will echo back."""
        await self._post("setWebhook", {
            "url": url,
            "secret_token": secret_token,
            "allowed_updates": '["message","callback_query"]',
        })
        logger.info(f"Webhook set to {url}")

    async def delete_webhook(self) -> None:
        await self._post("deleteWebhook", {})
        logger.info("Webhook deleted")

    async def close(self):
        """Close HTTP client."""
        await self.client.aclose()
