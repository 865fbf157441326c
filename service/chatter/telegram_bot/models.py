from __future__ import annotations

"""
Typed views over the Telegram payloads the relay reads and writes.

Only the fields the relay needs are declared; everything else in the
update is ignored.
"""

from dataclasses import dataclass
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class TelegramUser(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: int
    is_bot: bool = False
    first_name: str = ""
    username: Optional[str] = None


class TelegramChat(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: int
    type: str = "private"


class TelegramMessage(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    message_id: int = 0
    chat: TelegramChat
    from_user: Optional[TelegramUser] = Field(None, alias="from")
    text: Optional[str] = None


class CallbackQuery(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: str
    from_user: Optional[TelegramUser] = Field(None, alias="from")
    message: Optional[TelegramMessage] = None
    data: Optional[str] = None


class Update(BaseModel):
    """Inbound webhook update."""

    model_config = ConfigDict(extra="ignore")

    update_id: int = 0
    message: Optional[TelegramMessage] = None
    callback_query: Optional[CallbackQuery] = None

    @property
    def sender_id(self) -> Optional[int]:
        """Author of the message, else author of the callback query."""
        if self.message and self.message.from_user:
            return self.message.from_user.id
        if self.callback_query and self.callback_query.from_user:
            return self.callback_query.from_user.id
        return None

    @property
    def chat_id(self) -> Optional[int]:
        if self.message:
            return self.message.chat.id
        if self.callback_query and self.callback_query.message:
            return self.callback_query.message.chat.id
        return None

    @property
    def text(self) -> Optional[str]:
        if self.message:
            return self.message.text
        return None


@dataclass(frozen=True)
class OutboundMessage:
    """A single sendMessage call. Text must already fit Telegram's limit."""
    chat_id: int
    text: str
    parse_mode: Optional[str] = None
