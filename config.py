"""
Runtime settings, read from the environment (and a local .env file).
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Optional, Tuple

from dotenv import load_dotenv

load_dotenv(dotenv_path=Path(__file__).resolve().parent / ".env")

logger = logging.getLogger(__name__)

DEFAULT_SYSTEM_PROMPT = """你是一位精通小六壬与四柱干支的占卜师。
用户会给出所问之事、所得之卦（小六壬三宫）、所占之时（干支四柱）与所测之刻。
请结合三宫的吉凶与时辰干支，用简洁、温暖的中文给出判断与建议，控制在 300 字以内。
遇到凶象请侧重如何避险，不要制造恐慌。"""

PILLAR_BACKENDS = ("table", "lunar")


def parse_id_list(raw: Optional[str]) -> Tuple[int, ...]:
    """Parse a comma-separated list of Telegram ids, skipping invalid entries."""
    if not raw:
        return ()
    ids = []
    for item in raw.split(","):
        item = item.strip()
        if not item:
            continue
        try:
            ids.append(int(item))
        except ValueError:
            logger.warning("Ignoring invalid id in list: %r", item)
    return tuple(ids)


def normalize_safe_path(raw: Optional[str]) -> str:
    """``"/a/b/"`` -> ``"/a/b"``; empty stays empty."""
    trimmed = (raw or "").strip().strip("/")
    return f"/{trimmed}" if trimmed else ""


@dataclass(frozen=True)
class Settings:
    bot_token: str = ""
    bot_secret: str = ""
    bot_username: str = ""

    ai_api_endpoint: str = "https://api.openai.com/v1"
    ai_model_name: str = "gpt-4o-mini"
    ai_system_prompt: str = DEFAULT_SYSTEM_PROMPT
    ai_api_key: str = ""
    ai_timeout: float = 60.0

    user_whitelist: Tuple[int, ...] = field(default_factory=tuple)
    group_whitelist: Tuple[int, ...] = field(default_factory=tuple)
    user_blacklist: Tuple[int, ...] = field(default_factory=tuple)

    safe_path: str = ""
    timezone_offset_hours: float = 8.0
    pillar_backend: str = "table"
    perf_log: bool = False

    @classmethod
    def from_env(cls) -> "Settings":
        backend = os.getenv("PILLAR_BACKEND", "table").strip().lower()
        if backend not in PILLAR_BACKENDS:
            logger.warning("Unknown PILLAR_BACKEND %r, using 'table'", backend)
            backend = "table"

        return cls(
            bot_token=os.getenv("BOT_TOKEN", ""),
            bot_secret=os.getenv("BOT_SECRET", ""),
            bot_username=os.getenv("BOT_USERNAME", "").strip().lower(),
            ai_api_endpoint=os.getenv("AI_API_ENDPOINT") or cls.ai_api_endpoint,
            ai_model_name=os.getenv("AI_MODEL_NAME") or cls.ai_model_name,
            ai_system_prompt=os.getenv("AI_SYSTEM_PROMPT") or DEFAULT_SYSTEM_PROMPT,
            ai_api_key=os.getenv("AI_API_KEY", ""),
            ai_timeout=float(os.getenv("AI_TIMEOUT", "60")),
            user_whitelist=parse_id_list(os.getenv("USER_WHITELIST")),
            group_whitelist=parse_id_list(os.getenv("GROUP_WHITELIST")),
            user_blacklist=parse_id_list(os.getenv("USER_BLACKLIST")),
            safe_path=normalize_safe_path(os.getenv("SAFE_PATH")),
            timezone_offset_hours=float(os.getenv("TIMEZONE_OFFSET_HOURS", "8")),
            pillar_backend=backend,
            perf_log=os.getenv("PERF_LOG") == "1",
        )

    # 路由路径
    @property
    def webhook_path(self) -> str:
        return f"{self.safe_path}/endpoint"

    @property
    def register_webhook_path(self) -> str:
        return f"{self.safe_path}/registerWebhook"

    @property
    def unregister_webhook_path(self) -> str:
        return f"{self.safe_path}/unRegisterWebhook"

    @property
    def ai_base_url(self) -> str:
        """OpenAI SDK base URL; a full ``.../chat/completions`` endpoint is accepted too."""
        endpoint = self.ai_api_endpoint.rstrip("/")
        suffix = "/chat/completions"
        if endpoint.endswith(suffix):
            endpoint = endpoint[: -len(suffix)]
        return endpoint


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings.from_env()
