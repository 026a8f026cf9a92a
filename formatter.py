#!/usr/bin/env python3
"""
Rendering of new entries for the output stream.

Two layouts are supported. The full layout is a multi-line block:

    [2024-01-01 12:00:00] https://example.com/feed.xml
    Title: ...
    Link: ...
    Content: ...            (or Description: ...)
    Published: ...
    ---

The compact layout is a single line: normalized date, content and an
optional ``[channel]`` label.
"""

from datetime import datetime
from typing import Callable, List, Optional, Tuple

from config import Config
from models import Entry
from utils import feed_hostname, normalize_date, strip_html

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"

# Channel titles with more words than this are replaced by the feed hostname
MAX_LABEL_WORDS = 2


def select_content(entry: Entry) -> Tuple[str, str]:
    """Return ``(field label, text)`` for the first non-empty content field.

    Order: filtered content, description without markup, extracted content.
    """
    if entry.filtered:
        return "Content", entry.filtered
    description = strip_html(entry.item.description)
    if description:
        return "Description", description
    extracted = entry.resolved.extracted
    if extracted:
        return "Content", extracted
    return "", ""


def channel_label(channel_title: str, feed_url: str) -> str:
    """Pick the compact label: the channel title, or the feed hostname for wordy titles."""
    title = (channel_title or "").strip()
    if not title:
        return ""
    if len(title.split(" ")) > MAX_LABEL_WORDS:
        hostname = feed_hostname(feed_url)
        if hostname:
            return hostname
    return title


class OutputFormatter:
    def __init__(self, config: Config, clock: Optional[Callable[[], datetime]] = None):
        self.full = config.FULL_OUTPUT
        self.include_channel = config.INCLUDE_CHANNEL
        self._clock = clock or datetime.now

    def format_entry(self, entry: Entry) -> str:
        """Render ``entry``; an empty string means there is nothing to emit."""
        if self.full:
            return self.format_full(entry)
        return self.format_compact(entry)

    def format_full(self, entry: Entry) -> str:
        item = entry.item
        lines: List[str] = [
            "",
            f"[{self._clock().strftime(TIMESTAMP_FORMAT)}] {entry.feed_url}",
            f"Title: {item.title}",
            f"Link: {item.link}",
        ]
        label, text = select_content(entry)
        if text:
            lines.append(f"{label}: {text}")
        if item.pub_date:
            lines.append(f"Published: {item.pub_date}")
        lines.append("---")
        return "\n".join(lines) + "\n"

    def format_compact(self, entry: Entry) -> str:
        parts: List[str] = []
        date = normalize_date(entry.item.pub_date)
        if date:
            parts.append(date)
        _, text = select_content(entry)
        if text:
            parts.append(text)
        if self.include_channel:
            label = channel_label(entry.channel_title, entry.feed_url)
            if label:
                parts.append(f"[{label}]")
        if not parts:
            return ""
        return " ".join(parts) + "\n"
