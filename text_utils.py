"""
Text helpers for Telegram HTML messages.
"""
from __future__ import annotations

import re
from typing import Any, Mapping, Optional

TELEGRAM_MESSAGE_LIMIT = 4096

_HTML_ESCAPES = {
    "&": "&amp;",
    "<": "&lt;",
    ">": "&gt;",
    '"': "&quot;",
    "'": "&#39;",
}
_HTML_SPECIAL_RE = re.compile(r'[&<>"\']')

_MARKDOWN_V2_SPECIAL = "_*[]()~`>#+-=|{}.!\\"


def escape_html(text: str) -> str:
    """Escape the characters Telegram's HTML parse mode treats specially."""
    if not text:
        return text
    return _HTML_SPECIAL_RE.sub(lambda m: _HTML_ESCAPES[m.group(0)], text)


def escape_markdown_v2(text: str, except_chars: str = "") -> str:
    """
    Escape MarkdownV2 special characters.

    :param except_chars: characters to leave untouched (e.g. ``"*"`` to keep bold)
    """
    if not text:
        return text
    chars = "".join(ch for ch in _MARKDOWN_V2_SPECIAL if ch not in except_chars)
    if not chars:
        return text
    pattern = re.compile("[" + re.escape(chars) + "]")
    return pattern.sub(lambda m: "\\" + m.group(0), text)


def extract_text(message: Optional[Any]) -> str:
    """Text of a message (falling back to its caption), stripped."""
    if message is None:
        return ""
    if isinstance(message, Mapping):
        text = message.get("text") or message.get("caption") or ""
    else:
        text = getattr(message, "text", None) or getattr(message, "caption", None) or ""
    return text.strip()


def clip_text(text: str, limit: int = TELEGRAM_MESSAGE_LIMIT, ellipsis: str = "…") -> str:
    """Clip text to ``limit`` characters, ending with ``ellipsis`` when cut."""
    if len(text) <= limit:
        return text
    return text[: max(limit - len(ellipsis), 0)] + ellipsis


def clip_utf8(text: str, max_bytes: int) -> str:
    """Clip text so its UTF-8 encoding fits in ``max_bytes`` (no split characters)."""
    encoded = text.encode("utf-8")
    if len(encoded) <= max_bytes:
        return text
    return encoded[:max_bytes].decode("utf-8", errors="ignore")
