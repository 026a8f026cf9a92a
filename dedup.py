#!/usr/bin/env python3
"""
Entry identity and per-feed tracking state.

Each poller owns one FeedTrackingState. Identities are never evicted; the set
lives for as long as the process does.
"""

from asyncio import Lock
from hashlib import md5
from typing import Set

from models import Item


def item_identity(item: Item) -> str:
    """Return the dedup identity of ``item``: its guid, or its link when the guid is empty."""
    return item.guid if item.guid else item.link


def content_fingerprint(item: Item) -> str:
    """Stable key for items that carry neither a guid nor a link."""
    combined = f"{item.title}\x1f{item.description}\x1f{item.pub_date}"
    return f"md5:{md5(combined.encode('utf-8')).hexdigest()}"


class FeedTrackingState:
    """Identities already seen by one feed.

    ``seen`` and ``mark`` must only be called while holding ``lock``.
    """

    def __init__(self) -> None:
        self.lock = Lock()
        self._seen: Set[str] = set()

    @staticmethod
    def tracking_key(item: Item) -> str:
        identity = item_identity(item)
        if identity:
            return identity
        # Items with no guid and no link are told apart by their content
        return content_fingerprint(item)

    def seen(self, key: str) -> bool:
        return key in self._seen

    def mark(self, key: str) -> None:
        self._seen.add(key)

    def __len__(self) -> int:
        return len(self._seen)

    def __contains__(self, key: str) -> bool:
        return key in self._seen
