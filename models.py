#!/usr/bin/env python3
"""
Data model for parsed feeds and the values flowing through the pipeline.

Feed documents are immutable once parsed; pipeline values are transient and
never persisted.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List


@dataclass(frozen=True)
class Item:
    """One entry inside a channel. Missing fields are empty strings."""
    title: str = ""
    link: str = ""
    description: str = ""
    pub_date: str = ""
    guid: str = ""


@dataclass(frozen=True)
class Channel:
    title: str = ""
    link: str = ""
    description: str = ""
    items: List[Item] = field(default_factory=list)


@dataclass(frozen=True)
class Feed:
    channel: Channel = field(default_factory=Channel)


class Provenance(str, Enum):
    """Where resolved article text came from."""
    REMOTE_EXTRACTION = "remote-extraction"
    LOCAL_HEURISTIC = "local-heuristic"
    DESCRIPTION_ONLY = "description-only"
    NONE = "none"


@dataclass(frozen=True)
class ResolvedContent:
    text: str = ""
    provenance: Provenance = Provenance.NONE

    @property
    def extracted(self) -> str:
        """Text obtained from the article page itself, empty for description fallbacks."""
        if self.provenance in (Provenance.REMOTE_EXTRACTION, Provenance.LOCAL_HEURISTIC):
            return self.text
        return ""


@dataclass
class Entry:
    """A new item on its way to the output, with everything the formatter needs."""
    feed_url: str
    item: Item
    channel_title: str = ""
    resolved: ResolvedContent = field(default_factory=ResolvedContent)
    filtered: str = ""
