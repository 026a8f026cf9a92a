#!/usr/bin/env python3
"""
Feed document parser.

Parsing happens in two passes. The encoding declared in the XML prologue is
sniffed first and run through the charset allow-list; non-UTF-8 payloads are
decoded and re-declared as UTF-8. Only then does feedparser see the bytes, so
the structural parser never has to guess an encoding.
"""

import io
import re
from typing import Any
from xml.sax import SAXException

import feedparser

from charset import decode_stream
from config import get_logger
from errors import MalformedDocumentError
from models import Channel, Feed, Item

logger = get_logger("feed_parser")

# Only the prologue is inspected; it must be the first thing in the document
_PROLOGUE_RE = re.compile(rb'^\s*<\?xml[^>]*?\?>', re.IGNORECASE)
_ENCODING_RE = re.compile(rb'encoding\s*=\s*["\']([^"\']*)["\']', re.IGNORECASE)
_BOM = b'\xef\xbb\xbf'


def sniff_encoding(data: bytes) -> str:
    """Return the encoding declared in the XML prologue, or '' if none is declared."""
    head = data[len(_BOM):] if data.startswith(_BOM) else data
    prologue = _PROLOGUE_RE.match(head[:1024])
    if not prologue:
        return ""
    declared = _ENCODING_RE.search(prologue.group(0))
    if not declared:
        return ""
    return declared.group(1).decode('ascii', errors='replace').strip()


def _redeclare_as_utf8(text: str) -> bytes:
    """Encode decoded text as UTF-8 and make the prologue say so."""
    data = text.encode('utf-8')
    prologue = _PROLOGUE_RE.match(data)
    if not prologue:
        return data
    fixed = _ENCODING_RE.sub(b'encoding="utf-8"', prologue.group(0), count=1)
    return fixed + data[prologue.end():]


def _normalize(data: bytes) -> bytes:
    stream = io.BytesIO(data)
    reader = decode_stream(sniff_encoding(data), stream)
    if reader is stream:
        body = data[len(_BOM):] if data.startswith(_BOM) else data
        try:
            body.decode('utf-8')
        except UnicodeDecodeError as e:
            raise MalformedDocumentError(f"document is not valid UTF-8: {e}") from e
        return data
    return _redeclare_as_utf8(reader.read())


def _text(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


def parse_feed(data: bytes) -> Feed:
    """Parse raw feed bytes into a Feed.

    Raises:
        UnsupportedCharsetError: the prologue declares a charset outside the allow-list.
        MalformedDocumentError: the markup is not well-formed.
    """
    if not data or not data.strip():
        raise MalformedDocumentError("empty document")

    normalized = _normalize(data)
    parsed = feedparser.parse(normalized, sanitize_html=False, resolve_relative_uris=False)

    if parsed.get('bozo'):
        exc = parsed.get('bozo_exception')
        if isinstance(exc, SAXException):
            raise MalformedDocumentError(f"malformed document: {exc}") from exc
        # Non-structural warnings (e.g. encoding overrides) do not invalidate the feed
        logger.debug(f"Feed parsed with warning: {exc}")

    if not parsed.get('version') and not parsed.entries and not parsed.feed:
        raise MalformedDocumentError("document is not a recognizable feed")

    meta = parsed.feed
    items = [
        Item(
            title=_text(entry.get('title')),
            link=_text(entry.get('link')),
            description=_text(entry.get('summary')),
            pub_date=_text(entry.get('published')),
            guid=_text(entry.get('id')),
        )
        for entry in parsed.entries
    ]
    channel = Channel(
        title=_text(meta.get('title')),
        link=_text(meta.get('link')),
        description=_text(meta.get('subtitle')),
        items=items,
    )
    return Feed(channel=channel)
