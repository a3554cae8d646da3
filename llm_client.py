"""
OpenAI-compatible chat client shared by every divination request.

Any provider exposing ``/chat/completions`` works (OpenAI, DeepSeek,
OpenRouter, a local gateway...); only the base URL and key differ.
"""
from __future__ import annotations

from functools import lru_cache
from openai import OpenAI

# Telegram retries the webhook on its own; one SDK retry is enough
DEFAULT_MAX_RETRIES = 1


@lru_cache(maxsize=8)
def get_llm_client(
    api_key: str,
    base_url: str,
    timeout: float = 60.0,
    max_retries: int = DEFAULT_MAX_RETRIES,
) -> OpenAI:
    """Client keyed by (key, base URL, timeout, retries); reused across updates."""
    return OpenAI(
        api_key=api_key,
        base_url=base_url,
        timeout=timeout,
        max_retries=max_retries,
    )
