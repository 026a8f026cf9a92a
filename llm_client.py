#!/usr/bin/env python3
"""Async OpenAI-compatible helper providing `chat_completion` with retry, refusal handling
and normalized content extraction. Returns `None` on missing credentials, exhausted retries
or content-filter rejections; callers treat `None` as "no opinion"."""
from __future__ import annotations
from typing import List, Dict, Any, Optional, Tuple

from openai import AsyncOpenAI, OpenAIError

from config import Config, get_logger
from utils import RetryHelper

logger = get_logger("llm_client")

_clients: Dict[Tuple[str, Optional[str], int], Any] = {}


def get_client(config: Config) -> Optional[Any]:
    """Instantiate and cache an async client for the configured endpoint, or None without a key."""
    if not config.OPENAI_API_KEY:
        logger.debug("OPENAI_API_KEY not set; client will not initialize")
        return None
    key = (config.OPENAI_API_KEY, config.OPENAI_BASE_URL, config.LLM_TIMEOUT)
    client = _clients.get(key)
    if client is None:
        client = AsyncOpenAI(
            api_key=config.OPENAI_API_KEY,
            base_url=config.OPENAI_BASE_URL,
            timeout=config.LLM_TIMEOUT,
            max_retries=0,
        )
        _clients[key] = client
    return client


def _extract_text(choice: Any) -> str:
    message = getattr(choice, "message", {}) or {}
    if isinstance(message, dict) and message.get("refusal"):
        return ""
    content = getattr(message, "content", None) if not isinstance(message, dict) else message.get("content")
    if isinstance(content, str):
        return content.strip()
    if isinstance(content, list):
        texts: List[str] = []
        for part in content:
            if isinstance(part, dict):
                txt = part.get("text")
                if isinstance(txt, str) and txt.strip():
                    texts.append(txt.strip())
                elif part.get("type") not in ("text", "output_text", None):
                    logger.debug("Ignoring non-text part type=%s", part.get("type"))
        return "\n".join(texts).strip()
    return ""


def _is_content_filtered(error: Exception) -> bool:
    body = getattr(error, "body", {}) or {}
    error_obj = body.get("error") if isinstance(body, dict) and isinstance(body.get("error"), dict) else body
    if not isinstance(error_obj, dict):
        return False
    return error_obj.get("code") == "content_filter"


async def chat_completion(
    messages: List[Dict[str, str]] = None,
    *,
    config: Config,
    purpose: str = "generic",
    client_override: Optional[Any] = None,
) -> Optional[str]:
    """Execute a chat completion against the configured model and return the reply text."""
    if not messages:
        logger.error("chat_completion called without messages list")
        return None

    client = client_override or get_client(config)
    if client is None:
        logger.debug("Chat client unavailable; skipping %s", purpose)
        return None

    retry_helper = RetryHelper(max_retries=config.LLM_MAX_RETRIES, base_delay=config.LLM_RETRY_DELAY_BASE)
    remaining = retry_helper.max_retries
    attempt = 0

    while attempt <= remaining:
        params: Dict[str, Any] = {
            "model": config.OPENAI_MODEL,
            "messages": messages,
        }
        try:
            resp = await client.chat.completions.create(**params)
            choices = getattr(resp, "choices", None) or []
            if not choices:
                logger.warning("No choices in %s response", purpose)
                return None
            fragments: List[str] = []
            refusal_detected = False
            for ch in choices:
                msg_obj = getattr(ch, "message", {}) or {}
                refusal_flag = msg_obj.get("refusal") if isinstance(msg_obj, dict) else getattr(msg_obj, "refusal", None)
                if refusal_flag:
                    refusal_detected = True
                    logger.warning("Refusal detected in %s response: %s", purpose, refusal_flag)
                txt = _extract_text(ch)
                if txt:
                    fragments.append(txt)
            if refusal_detected and not fragments:
                return None
            raw = "\n".join(fragments).strip()
            if not raw:
                finish_reasons = {getattr(c, "finish_reason", None) for c in choices if getattr(c, "finish_reason", None)}
                logger.warning("Empty content in %s response (finish_reasons=%s)", purpose, finish_reasons)
                return None
            return raw
        except OpenAIError as e:
            attempt += 1
            if _is_content_filtered(e):
                logger.warning("%s request rejected by content filter", purpose)
                return None
            if attempt > remaining:
                logger.warning("%s request failed after %d retries: %s", purpose, remaining, e)
                return None
            logger.warning(
                "%s transient OpenAI error: %s. Backoff %ss (attempt %d/%d)",
                purpose, e, retry_helper.calculate_delay(attempt - 1), attempt, remaining,
            )
            await retry_helper.sleep_for_attempt(attempt - 1)

    return None


__all__ = ["chat_completion", "get_client"]
