"""
Divination Logic Module.
Contains the xiao-liu-ren hexagram, pillar backends, prompt building and the LLM call.
"""
from __future__ import annotations

import logging
import secrets
import time
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Sequence

from lunar_python import Solar
from openai import OpenAIError

from config import Settings, get_settings
from ganzhi import UnsupportedDate, cycle, get_full_bazi
from llm_client import get_llm_client
from text_utils import clip_text, escape_html

logger = logging.getLogger(__name__)

AI_UNAVAILABLE_REPLY = "抱歉，AI 服务暂时不可用，请稍后再试。"
AI_EMPTY_REPLY = "抱歉，AI 未能给出有效回复。"


class InvalidArgument(ValueError):
    """Raised when the hexagram is not given exactly three numbers."""


class XiaoLiuRenCalculator:
    """小六壬起卦 - 三数依次累加落宫"""

    WORDS = ("大安", "留连", "速喜", "赤口", "小吉", "空亡")

    def generate(self, numbers: Sequence[int]) -> str:
        """
        根据三个数字推算三宫。

        Args:
            numbers: 三个正整数 (月、日、时 或随机数)

        Returns:
            str: 空格分隔的三个词，如 "大安 小吉 空亡"
        """
        if numbers is None or len(numbers) != 3:
            raise InvalidArgument(f"expected exactly 3 numbers, got {numbers!r}")
        n1, n2, n3 = (int(n) for n in numbers)
        size = len(self.WORDS)

        # 第一宫起自 n1，其后每宫在前宫基础上再数 n - 1 位
        positions = (
            cycle(n1, size),
            cycle(n1 + n2 - 1, size),
            cycle(n1 + n2 + n3 - 2, size),
        )
        return " ".join(self.WORDS[p - 1] for p in positions)

    def draw_numbers(self) -> List[int]:
        """Three values in 1..6 from the system CSPRNG."""
        return [secrets.randbelow(len(self.WORDS)) + 1 for _ in range(3)]

    def cast(self) -> str:
        return self.generate(self.draw_numbers())


_XIAO_LIU_REN = XiaoLiuRenCalculator()


def generate_hexagram(numbers: Sequence[int]) -> str:
    return _XIAO_LIU_REN.generate(numbers)


# ==================== 干支时间 ====================

def calculate_bazi_lunar(moment: datetime) -> str:
    """Four pillars via lunar-python (solar terms resolved to the minute)."""
    solar = Solar.fromYmdHms(moment.year, moment.month, moment.day, moment.hour, moment.minute, 0)
    eight_char = solar.getLunar().getEightChar()
    return f"{eight_char.getYear()}年 {eight_char.getMonth()}月 {eight_char.getDay()}日 {eight_char.getTime()}时"


def format_ganzhi(moment: datetime, backend: str = "table") -> str:
    """
    Format the sexagenary timestamp for ``moment``.

    The table calculator only covers 1901-2050 and cannot place leap-month
    days; those fall back to lunar-python.
    """
    if backend == "lunar":
        return calculate_bazi_lunar(moment)
    try:
        return get_full_bazi(moment)
    except UnsupportedDate as e:
        logger.warning("Table calendar unsupported (%s), falling back to lunar-python", e)
        return calculate_bazi_lunar(moment)


def divination_now(offset_hours: float = 8.0) -> datetime:
    """Current wall-clock time at ``UTC+offset_hours`` as a naive datetime."""
    utc_now = datetime.now(timezone.utc).replace(tzinfo=None)
    return utc_now + timedelta(hours=offset_hours)


def format_divination_time(moment: datetime) -> str:
    return f"{moment.year}年{moment.month}月{moment.day}日 {moment.hour:02d}:{moment.minute:02d}"


def build_divination_prompt(question: str, hexagram: str, ganzhi_text: str, moment: datetime) -> str:
    return (
        f"所问之事：{question}\n"
        f"所得之卦：{hexagram}\n"
        f"所占之时：{ganzhi_text}\n"
        f"所测之刻：{format_divination_time(moment)}"
    )


def compose_divination_prompt(
    question: str,
    settings: Optional[Settings] = None,
    now: Optional[datetime] = None,
    numbers: Optional[Sequence[int]] = None,
) -> str:
    """Cast the hexagram, compute the pillars for ``now`` and build the AI prompt."""
    settings = settings or get_settings()
    moment = now or divination_now(settings.timezone_offset_hours)
    hexagram = generate_hexagram(numbers) if numbers is not None else _XIAO_LIU_REN.cast()
    ganzhi_text = format_ganzhi(moment, settings.pillar_backend)
    return build_divination_prompt(question, hexagram, ganzhi_text, moment)


# ==================== LLM ====================

def get_divination_reply(
    user_prompt: str,
    referenced_text: Optional[str] = None,
    settings: Optional[Settings] = None,
) -> str:
    """
    Ask the chat-completion endpoint to interpret a divination prompt.

    Args:
        user_prompt: 占卜原始信息 (see build_divination_prompt)
        referenced_text: 引用消息内容，作为额外的 user 消息
        settings: runtime settings

    Returns:
        HTML ready for Telegram: the answer in a <blockquote>, or a fallback notice.
    """
    settings = settings or get_settings()

    messages = [{"role": "system", "content": settings.ai_system_prompt}]
    if referenced_text:
        messages.append({"role": "user", "content": referenced_text})
    messages.append({"role": "user", "content": user_prompt})

    start_time = time.monotonic()

    def log_perf(message: str) -> None:
        if settings.perf_log:
            logger.info(message)

    try:
        client = get_llm_client(settings.ai_api_key, settings.ai_base_url, settings.ai_timeout)
        response = client.chat.completions.create(
            model=settings.ai_model_name,
            messages=messages,
            stream=False,
        )
    except OpenAIError as e:
        log_perf(
            f"[PERF] error model={settings.ai_model_name} "
            f"total_ms={int((time.monotonic() - start_time) * 1000)} err={e}"
        )
        logger.warning("AI request failed: %s", e)
        return AI_UNAVAILABLE_REPLY

    log_perf(f"[PERF] model={settings.ai_model_name} total_ms={int((time.monotonic() - start_time) * 1000)}")

    choices = response.choices or []
    if not choices or choices[0].message is None or not choices[0].message.content:
        return AI_EMPTY_REPLY

    content = clip_text(choices[0].message.content.strip())
    return f"<blockquote>{escape_html(content)}</blockquote>"
