"""
Telegram command handlers.

ARCHITECTURE: one router, no framework dispatch
- parse "/command@bot args" from the update text
- look the command up in a fixed table
- every handler replies through TelegramClient.send_message

Commands:
    /start, /help   - static info
    /ask <q>        - question with conversation history
    /context <q>    - single-shot question with the active file attached
    /clear          - forget the conversation
    /status         - workspace and bot identity, no model call

Model answers are escaped for MarkdownV2 (code blocks untouched) and then
chunked with balanced fences. Errors during model invocation become a
generic reply. A formatted message Telegram refuses is resent as plain text;
only a failed plain-text send reaches the webhook endpoint.
"""

import re
from typing import Awaitable, Callable, Optional, Protocol

from telegram.constants import ChatAction, ParseMode

from chatter.logging_config import bot_logger
from chatter.services.errors import TelegramTransportError
from chatter.services.model_bridge import ModelBridge
from .formatting import (
    CHUNK_SIZE,
    escape_and_preserve_code,
    escape_markdown,
    split_message,
    to_plain_text,
)
from .models import OutboundMessage, Update

logger = bot_logger.getChild("handlers")

_COMMAND_RE = re.compile(r"^/([A-Za-z0-9_]+)(?:@[A-Za-z0-9_]+)?(?:\s+([\s\S]*))?$")

START_TEXT = (
    "🟢 *Chatter Connected\\!*\n\n"
    "Your workspace is now connected to Telegram\\.\n\n"
    "*Available Commands:*\n"
    "/ask \\- Ask the assistant a question\n"
    "/context \\- Ask with workspace context\n"
    "/clear \\- Clear conversation history\n"
    "/status \\- Check connection status\n"
    "/help \\- Show this help message\n\n"
    "_Example: /ask How do I create a Python dataclass?_"
)

HELP_TEXT = (
    "*Chatter Help*\n\n"
    "*Commands:*\n"
    "• `/ask <question>` \\- Ask the assistant anything\n"
    "• `/context <question>` \\- Ask with current file context\n"
    "• `/clear` \\- Clear conversation history\n"
    "• `/status` \\- Check connection status\n"
    "• `/help` \\- Show this help\n\n"
    "*Tips:*\n"
    "• The assistant remembers your last few messages\n"
    "• Use /context when asking about your current code\n"
    "• Use /clear to start a fresh conversation"
)

CLEARED_TEXT = "✅ Conversation history cleared!"
UNKNOWN_COMMAND_TEXT = "❓ Unknown command. Use /help to see available commands."
FREE_TEXT_HINT = (
    "💡 Tip: Use /ask followed by your question.\n"
    "Example: /ask How do I create a class in Python?"
)
GENERIC_FAILURE_TEXT = (
    "❌ An error occurred while processing your request. "
    "Check the server logs for details."
)
EMPTY_ANSWER_TEXT = "🤷 The model returned an empty answer."


def usage_hint(command: str) -> str:
    return (
        "❓ Please provide a question.\n\n"
        f"Example: /{command} How do I implement error handling?"
    )


def parse_command(text: str) -> Optional[tuple[str, str]]:
    """
    Split "/cmd@bot rest of text" into ("cmd", "rest of text").

    Returns None for text that is not a command.
    """
    match = _COMMAND_RE.match(text.strip())
    if not match:
        return None
    return match.group(1).lower(), (match.group(2) or "").strip()


class StatusSource(Protocol):
    def workspace_name(self) -> Optional[str]:
        ...

    def active_file(self) -> Optional[str]:
        ...


class MessageSender(Protocol):
    async def send_message(self, message: OutboundMessage) -> None:
        ...


Handler = Callable[[int, int, str], Awaitable[None]]


class CommandRouter:
    """Maps inbound chat commands to actions."""

    def __init__(
        self,
        bridge: ModelBridge,
        telegram: MessageSender,
        workspace: Optional[StatusSource] = None,
    ):
        self.bridge = bridge
        self.telegram = telegram
        self.workspace = workspace
        self._handlers: dict[str, Handler] = {
            "start": self.handle_start,
            "help": self.handle_help,
            "ask": self.handle_ask,
            "context": self.handle_context,
            "clear": self.handle_clear,
            "status": self.handle_status,
        }

    async def route(self, update: Update) -> None:
        """Dispatch one authorized update."""
        chat_id = update.chat_id
        sender_id = update.sender_id
        text = update.text

        if chat_id is None or sender_id is None or text is None:
            # Callback queries and non-text messages carry nothing to answer
            logger.info(f"Ignoring update {update.update_id} without text")
            return

        parsed = parse_command(text)
        if parsed is None:
            if text.lstrip().startswith("/"):
                await self.reply(chat_id, UNKNOWN_COMMAND_TEXT)
            else:
                await self.reply(chat_id, FREE_TEXT_HINT)
            return

        command, args = parsed
        handler = self._handlers.get(command)
        if handler is None:
            logger.info(f"Unknown command /{command}")
            await self.reply(chat_id, UNKNOWN_COMMAND_TEXT)
            return

        await handler(chat_id, sender_id, args)

    async def reply(self, chat_id: int, text: str, parse_mode: Optional[str] = None) -> None:
        await self.telegram.send_message(OutboundMessage(chat_id, text, parse_mode))

    async def handle_start(self, chat_id: int, sender_id: int, args: str) -> None:
        await self.reply(chat_id, START_TEXT, ParseMode.MARKDOWN_V2)
        logger.info("User started conversation")

    async def handle_help(self, chat_id: int, sender_id: int, args: str) -> None:
        await self.reply(chat_id, HELP_TEXT, ParseMode.MARKDOWN_V2)

    async def handle_ask(self, chat_id: int, sender_id: int, args: str) -> None:
        await self._ask(chat_id, sender_id, args, include_context=False)

    async def handle_context(self, chat_id: int, sender_id: int, args: str) -> None:
        await self._ask(chat_id, sender_id, args, include_context=True)

    async def handle_clear(self, chat_id: int, sender_id: int, args: str) -> None:
        self.bridge.clear_history(sender_id)
        await self.reply(chat_id, CLEARED_TEXT)

    async def handle_status(self, chat_id: int, sender_id: int, args: str) -> None:
        workspace_name = (self.workspace.workspace_name() if self.workspace else None) or "No workspace"
        active_file = (self.workspace.active_file() if self.workspace else None) or "None"
        bot_name = await self._bot_username()
        backend = self.bridge.backend
        model = f"{backend.name} ({backend.model})" if backend else "not configured"

        await self.reply(
            chat_id,
            "*Chatter Status*\n\n"
            f"🟢 Connected as @{escape_markdown(bot_name)}\n"
            f"🤖 Model: {escape_markdown(model)}\n"
            f"📁 Workspace: {escape_markdown(workspace_name)}\n"
            f"📄 Active File: {escape_markdown(active_file)}\n"
            "💬 Ready to receive commands",
            ParseMode.MARKDOWN_V2,
        )

    async def _bot_username(self) -> str:
        get_me = getattr(self.telegram, "get_me", None)
        if get_me is None:
            return "unknown"
        try:
            me = await get_me()
        except TelegramTransportError as e:
            logger.warning(f"Could not fetch bot identity: {e}")
            return "unknown"
        return me.get("username") or "unknown"

    async def _ask(self, chat_id: int, sender_id: int, question: str, include_context: bool) -> None:
        command = "context" if include_context else "ask"
        if not question.strip():
            await self.reply(chat_id, usage_hint(command))
            return

        logger.info(f"Received /{command}: {question}")
        await self._send_typing(chat_id)

        try:
            parts = await self._answer(question, include_context, sender_id)
        except Exception:
            logger.error(f"Error handling /{command} command", exc_info=True)
            await self.reply(chat_id, GENERIC_FAILURE_TEXT)
            return

        for part in parts:
            await self._send_formatted(chat_id, part)

    async def _answer(self, question: str, include_context: bool, sender_id: int) -> list[str]:
        """Ask the model and return the MarkdownV2 message(s) to send."""
        response = await self.bridge.ask(question, include_context, session_id=sender_id)

        if not response.ok:
            return [f"⚠️ *Error*\n\n{escape_markdown(response.error)}"]

        formatted = escape_and_preserve_code(response.text)
        if not formatted.strip():
            return [escape_markdown(EMPTY_ANSWER_TEXT)]
        return split_message(formatted, CHUNK_SIZE)

    async def _send_formatted(self, chat_id: int, text: str) -> None:
        """
        Send one MarkdownV2 message, falling back to plain text if Telegram refuses it.

        Only a failure of the plain-text send propagates.
        """
        try:
            await self.reply(chat_id, text, ParseMode.MARKDOWN_V2)
            return
        except TelegramTransportError as e:
            logger.warning(f"MarkdownV2 send failed, retrying as plain text: {e}")

        await self.reply(chat_id, to_plain_text(text))

    async def _send_typing(self, chat_id: int) -> None:
        send_chat_action = getattr(self.telegram, "send_chat_action", None)
        if send_chat_action is None:
            return
        try:
            await send_chat_action(chat_id, ChatAction.TYPING)
        except TelegramTransportError as e:
            logger.warning(f"Typing indicator failed: {e}")
