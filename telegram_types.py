"""
Pydantic models for the parts of a Telegram Update this bot reads.
"""
from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class _TelegramModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class User(_TelegramModel):
    id: int
    is_bot: bool = False
    first_name: str = ""
    username: Optional[str] = None


class Chat(_TelegramModel):
    id: int
    type: str = "private"


class Message(_TelegramModel):
    message_id: int
    from_user: Optional[User] = Field(None, alias="from")
    chat: Chat
    text: Optional[str] = None
    caption: Optional[str] = None
    reply_to_message: Optional["Message"] = None

    @property
    def is_group(self) -> bool:
        # 群组 / 超级群组的 chat id 为负数
        return self.chat.id < 0


class InlineQuery(_TelegramModel):
    id: str
    from_user: User = Field(..., alias="from")
    query: str = ""
    offset: str = ""


class ChosenInlineResult(_TelegramModel):
    result_id: str
    from_user: User = Field(..., alias="from")
    query: str = ""
    inline_message_id: Optional[str] = None


class Update(_TelegramModel):
    update_id: int
    message: Optional[Message] = None
    inline_query: Optional[InlineQuery] = None
    chosen_inline_result: Optional[ChosenInlineResult] = None


Message.model_rebuild()
