"""
Thin Telegram Bot API wrapper (sendMessage / editMessageText / inline queries / webhooks).
"""
from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional

import requests

from text_utils import clip_utf8, escape_html

logger = logging.getLogger(__name__)

API_BASE = "https://api.telegram.org"
# Telegram 限制 callback_data 为 1-64 字节
CALLBACK_DATA_MAX_BYTES = 64


class TelegramBotAPI:
    """Calls Bot API methods with JSON bodies; failures come back as ``{"ok": False}``."""

    def __init__(self, token: str, session: Optional[requests.Session] = None, timeout: float = 30.0):
        self.token = token
        self.session = session or requests.Session()
        self.timeout = timeout

    def api_url(self, method_name: str) -> str:
        return f"{API_BASE}/bot{self.token}/{method_name}"

    def call(self, method_name: str, **params: Any) -> Dict[str, Any]:
        payload = {key: value for key, value in params.items() if value is not None}
        try:
            response = self.session.post(self.api_url(method_name), json=payload, timeout=self.timeout)
            data = response.json()
        except (requests.RequestException, ValueError) as e:
            logger.warning("Telegram %s failed: %s", method_name, e)
            return {"ok": False, "description": str(e)}

        if not data.get("ok"):
            logger.warning("Telegram %s returned error: %s", method_name, data.get("description"))
        return data

    # ---- messages ----

    def send_plain_text(self, chat_id: int, text: str, reply_to_message_id: Optional[int] = None) -> Dict[str, Any]:
        return self.call(
            "sendMessage",
            chat_id=chat_id,
            text=text,
            parse_mode="HTML",
            reply_to_message_id=reply_to_message_id or None,
        )

    def edit_plain_text(self, chat_id: int, message_id: int, text: str) -> Dict[str, Any]:
        return self.call(
            "editMessageText",
            chat_id=chat_id,
            message_id=message_id,
            text=text,
            parse_mode="HTML",
        )

    def edit_inline_message_text(self, inline_message_id: str, text: str) -> Dict[str, Any]:
        return self.call(
            "editMessageText",
            inline_message_id=inline_message_id,
            text=text,
            parse_mode="HTML",
        )

    # ---- inline mode ----

    def answer_inline_query(self, inline_query_id: str, results: List[Dict[str, Any]]) -> Dict[str, Any]:
        return self.call("answerInlineQuery", inline_query_id=inline_query_id, results=results, cache_time=0)

    def answer_inline_query_empty(self, inline_query_id: str) -> Dict[str, Any]:
        """空查询时的预设选项。"""
        results = [
            {
                "type": "article",
                "id": "clear_context",
                "title": "🧹 清除上下文",
                "description": "清除当前对话上下文",
                "input_message_content": {
                    "message_text": "🧹 上下文已清除",
                    "parse_mode": "HTML",
                },
            },
            {
                "type": "article",
                "id": "show_context",
                "title": "📋 显示上下文",
                "description": "显示当前对话上下文",
                "input_message_content": {
                    "message_text": "📋 当前无上下文",
                    "parse_mode": "HTML",
                },
            },
        ]
        return self.answer_inline_query(inline_query_id, results)

    def answer_inline_query_divination(self, inline_query_id: str, query: str) -> Dict[str, Any]:
        results = [
            {
                "type": "article",
                "id": "divination_query",
                "title": "🔮 占卜查询",
                "description": f"对\"{query}\"进行占卜",
                "input_message_content": {
                    "message_text": f"🔮 正在为您解读【{escape_html(query)}】的占卜结果...",
                    "parse_mode": "HTML",
                },
                "reply_markup": {
                    "inline_keyboard": [[
                        {
                            "text": "✅ 确认占卜",
                            "callback_data": clip_utf8(query, CALLBACK_DATA_MAX_BYTES),
                        }
                    ]]
                },
            }
        ]
        return self.answer_inline_query(inline_query_id, results)

    # ---- webhook ----

    def set_webhook(self, url: str, secret_token: Optional[str] = None) -> Dict[str, Any]:
        return self.call("setWebhook", url=url, secret_token=secret_token or None)


def describe_result(result: Dict[str, Any]) -> str:
    """``"Ok"`` for a successful call, otherwise the pretty-printed response."""
    if result.get("ok"):
        return "Ok"
    return json.dumps(result, indent=2, ensure_ascii=False)
