"""
Telegram update handlers: commands, private-chat questions and the inline flow.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Tuple

from config import Settings
from logic import compose_divination_prompt, get_divination_reply
from telegram_api import TelegramBotAPI
from telegram_types import ChosenInlineResult, InlineQuery, Message, Update
from text_utils import extract_text

logger = logging.getLogger(__name__)

PLACEHOLDER_TEXT = "🔮"
DIVINATION_COMMANDS = ("/sm", "/算命")
USAGE_TEXT = (
    "使用方法：\n"
    "1. 直接发送 /sm 问题，例如：/sm 今天运势如何？\n"
    "2. 群聊中可先引用消息后发送 /sm，对引用内容进行占卜。"
)
UNKNOWN_COMMAND_TEXT = "未知指令，请检查后重试。\n当前支持的指令：/sm（/算命）、/id"
EMPTY_QUESTION_TEXT = "请输入您想要占卜的问题内容。"


def parse_command(text: str) -> Tuple[str, Optional[str], str]:
    """
    Split ``/cmd@BotName args...``.

    Returns:
        tuple: (lower-cased command, mentioned bot or None, argument text)
    """
    head, _, rest = text.partition(" ")
    command, _, mention = head.partition("@")
    return command.lower(), (mention or None), rest.strip()


class DivinationBot:
    """Dispatches Telegram updates to the divination flow."""

    def __init__(self, settings: Settings, telegram: TelegramBotAPI):
        self.settings = settings
        self.telegram = telegram

    # ---- access control ----

    def is_allowed(self, user_id: int, chat_id: int) -> bool:
        if user_id in self.settings.user_blacklist:
            return False
        if not self.settings.user_whitelist and not self.settings.group_whitelist:
            return True
        if user_id in self.settings.user_whitelist:
            return True
        return chat_id < 0 and chat_id in self.settings.group_whitelist

    # ---- dispatch ----

    def on_update(self, update: Update) -> None:
        try:
            if update.message is not None:
                self.on_message(update.message)
            elif update.inline_query is not None:
                self.on_inline_query(update.inline_query)
            elif update.chosen_inline_result is not None:
                self.on_chosen_inline_result(update.chosen_inline_result)
        except Exception:
            logger.exception("Failed to handle update %s", update.update_id)

    def on_message(self, message: Message) -> Optional[Dict[str, Any]]:
        if message.from_user is None:
            return None
        user_id = message.from_user.id
        chat_id = message.chat.id
        text = (message.text or "").strip()
        is_command = text.startswith("/")

        command, args = "", ""
        if is_command:
            command, mention, args = parse_command(text)
            bot_username = self.settings.bot_username
            if mention and bot_username and mention.lower() != bot_username:
                return None

        if not self.is_allowed(user_id, chat_id):
            logger.info("Ignoring message from user %s in chat %s", user_id, chat_id)
            return None

        if command == "/id":
            id_info = f"用户ID: <code>{user_id}</code>"
            if user_id != chat_id:
                id_info += f"\n群组ID: <code>{chat_id}</code>"
            return self.telegram.send_plain_text(chat_id, id_info, message.message_id)

        if command in DIVINATION_COMMANDS:
            return self._on_divination_command(message, args)

        if is_command:
            # 群聊中仅响应已注册指令
            if message.is_group:
                return None
            return self.telegram.send_plain_text(chat_id, UNKNOWN_COMMAND_TEXT, message.message_id)

        if message.is_group:
            return None

        # 私聊：消息本身即为问题；若引用了消息，则占卜引用内容
        question = text
        reply_target = message.message_id
        if message.reply_to_message is not None:
            referenced = extract_text(message.reply_to_message)
            if referenced:
                question = referenced
            reply_target = message.reply_to_message.message_id
        if not question:
            return self.telegram.send_plain_text(chat_id, EMPTY_QUESTION_TEXT, message.message_id)
        return self.process_divination(question, chat_id, reply_target)

    def _on_divination_command(self, message: Message, question: str) -> Optional[Dict[str, Any]]:
        chat_id = message.chat.id
        referenced_for_ai = None

        if message.reply_to_message is not None:
            referenced = extract_text(message.reply_to_message)
            mention_self = f"@{self.settings.bot_username}" if self.settings.bot_username else ""
            has_extra_question = bool(question) and (not mention_self or question.lower() != mention_self)
            if has_extra_question:
                referenced_for_ai = referenced or None
            else:
                question = referenced

        if not question:
            return self.telegram.send_plain_text(chat_id, USAGE_TEXT, message.message_id)
        return self.process_divination(question, chat_id, message.message_id, referenced_for_ai)

    # ---- divination ----

    def divine(self, question: str, referenced_text: Optional[str] = None) -> str:
        prompt = compose_divination_prompt(question, self.settings)
        logger.info("Divination prompt:\n%s", prompt)
        return get_divination_reply(prompt, referenced_text, self.settings)

    def process_divination(
        self,
        question: str,
        chat_id: int,
        reply_to_message_id: Optional[int],
        referenced_text: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Send the 🔮 placeholder, ask the AI, then swap the placeholder for the answer."""
        placeholder = self.telegram.send_plain_text(chat_id, PLACEHOLDER_TEXT, reply_to_message_id)
        placeholder_id = (placeholder.get("result") or {}).get("message_id")

        reply = self.divine(question, referenced_text)

        if placeholder_id:
            self.telegram.edit_plain_text(chat_id, placeholder_id, reply)
            return placeholder
        return self.telegram.send_plain_text(chat_id, reply, reply_to_message_id)

    # ---- inline mode ----

    def on_inline_query(self, inline_query: InlineQuery) -> Optional[Dict[str, Any]]:
        user_id = inline_query.from_user.id
        if not self.is_allowed(user_id, user_id):
            return None
        query = inline_query.query.strip()
        if not query:
            return self.telegram.answer_inline_query_empty(inline_query.id)
        return self.telegram.answer_inline_query_divination(inline_query.id, query)

    def on_chosen_inline_result(self, result: ChosenInlineResult) -> Optional[Dict[str, Any]]:
        if result.result_id != "divination_query" or not result.inline_message_id:
            return None
        user_id = result.from_user.id
        if not self.is_allowed(user_id, user_id):
            return None
        question = result.query.strip()
        if not question:
            return None
        reply = self.divine(question)
        return self.telegram.edit_inline_message_text(result.inline_message_id, reply)
