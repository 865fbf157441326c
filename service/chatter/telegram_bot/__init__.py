"""
Telegram side of the relay.

ARCHITECTURE: Thin routing layer
- Receives webhook updates (parsed by models.Update)
- Routes commands via handlers.CommandRouter
- Formats answers for MarkdownV2 and splits them to fit Telegram's limit
- Sends replies with telegram_api.TelegramClient
"""

from .formatting import chunk, escape_and_preserve_code, split_message
from .handlers import CommandRouter
from .models import OutboundMessage, Update
from .telegram_api import TelegramClient

__all__ = [
    "chunk",
    "escape_and_preserve_code",
    "split_message",
    "CommandRouter",
    "OutboundMessage",
    "Update",
    "TelegramClient",
]
