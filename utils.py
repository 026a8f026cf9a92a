#!/usr/bin/env python3
"""
Utility classes and functions for the stream processor.

This module contains shared helpers used by the extractor, the relevance
filter and the formatter: markup stripping, whitespace handling, truncation,
date normalization and retry backoff.
"""

from asyncio import sleep
from datetime import datetime
from email.utils import parsedate_to_datetime
from typing import List, Optional
from urllib.parse import urlparse
import re

from aiohttp import ClientError
from bs4 import BeautifulSoup

from config import get_logger

logger = get_logger("utils")

_WHITESPACE_RE = re.compile(r'\s+')

# Tried in order after the RFC 2822 and ISO 8601 parsers
CUSTOM_DATE_FORMATS = (
    "%Y-%m-%dT%H:%M:%SZ",
    "%Y-%m-%dT%H:%M:%S.%fZ",
    "%d %b %Y %H:%M:%S %z",
    "%d %b %Y %H:%M:%S %Z",
    "%d %b %Y %H:%M:%S",
    "%d %b %Y",
    "%B %d, %Y",
    "%Y/%m/%d %H:%M:%S",
    "%Y/%m/%d",
)

NORMALIZED_DATE_FORMAT = "%d-%m-%Y"


def strip_html(html_content: str) -> str:
    """Remove all markup from ``html_content`` and trim the result.

    Text nodes are concatenated as-is, so ``"a <br/> b"`` keeps both spaces.
    """
    if not html_content:
        return ""
    return BeautifulSoup(html_content, 'html.parser').get_text().strip()


def collapse_whitespace(text: str) -> str:
    """Replace every run of whitespace with a single space and trim."""
    if not text:
        return ""
    return _WHITESPACE_RE.sub(' ', text).strip()


def truncate_text(text: str, max_length: int, suffix: str = "...") -> str:
    """Cut ``text`` to ``max_length`` characters and append ``suffix`` when it was longer.

    Args:
        text: The text to potentially truncate
        max_length: Number of characters kept from the original text
        suffix: Marker appended after the kept characters

    Returns:
        The original text, or the first ``max_length`` characters plus ``suffix``
    """
    if not text or max_length <= 0 or len(text) <= max_length:
        return text
    return text[:max_length] + suffix


def _parse_with_email_utils(date_str: str) -> Optional[datetime]:
    try:
        return parsedate_to_datetime(date_str)
    except (TypeError, ValueError, IndexError, OverflowError):
        return None


def _parse_with_isoformat(date_str: str) -> Optional[datetime]:
    try:
        return datetime.fromisoformat(date_str)
    except ValueError:
        return None


def _parse_with_custom_formats(date_str: str) -> Optional[datetime]:
    for fmt in CUSTOM_DATE_FORMATS:
        try:
            return datetime.strptime(date_str, fmt)
        except ValueError:
            continue
    return None


def parse_date(date_str: str) -> Optional[datetime]:
    """Parse a free-text feed date, returning None when no parser accepts it.

    The calendar date is taken in the timezone the string was written in; no
    conversion to UTC happens, so a feed's "15 Mar" stays the 15th.
    """
    if not date_str or not date_str.strip():
        return None
    date_str = date_str.strip()
    parsers = (
        _parse_with_email_utils,
        _parse_with_isoformat,
        _parse_with_custom_formats,
    )
    for parser in parsers:
        parsed = parser(date_str)
        if parsed is not None:
            return parsed
    return None


def normalize_date(date_str: str) -> str:
    """Render a feed date as DD-MM-YYYY, or return it unchanged if unparseable."""
    if not date_str:
        return ""
    parsed = parse_date(date_str)
    if parsed is None:
        return date_str
    return parsed.strftime(NORMALIZED_DATE_FORMAT)


def feed_hostname(url: str) -> str:
    """Return the hostname of ``url`` or an empty string."""
    try:
        return urlparse(url).hostname or ""
    except ValueError:
        return ""


def format_client_error(error: ClientError) -> str:
    """Describe aiohttp client errors with any available status/errno."""
    parts: List[str] = [error.__class__.__name__]
    status = getattr(error, 'status', None)
    if status is not None:
        parts.append(f"status={status}")
    os_error = getattr(error, 'os_error', None)
    if os_error is not None:
        errno = getattr(os_error, 'errno', None)
        if errno is not None:
            parts.append(f"errno={errno}")
    message = str(error)
    if message:
        parts.append(message)
    return " ".join(parts)


class RetryHelper:
    """Exponential backoff between retry attempts."""

    def __init__(self, max_retries: int = 1, base_delay: float = 1.0, max_delay: float = 30.0):
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_delay = max_delay

    def calculate_delay(self, attempt: int) -> float:
        """Delay in seconds before retry ``attempt`` (0-based)."""
        return min(self.base_delay * (2 ** attempt), self.max_delay)

    async def sleep_for_attempt(self, attempt: int):
        delay = self.calculate_delay(attempt)
        if delay > 0:
            logger.debug(f"Retry delay: sleeping for {delay:.2f} seconds")
            await sleep(delay)
