#!/usr/bin/env python3
"""Character set normalization for feed documents.

Feeds still arrive in legacy 8-bit and Cyrillic encodings. Only an explicit
allow-list is decoded; anything else is rejected instead of guessed.
"""

import codecs
from typing import BinaryIO, Dict, TextIO, Union

from errors import UnsupportedCharsetError

# Labels that are already in canonical form and pass through untouched
PASSTHROUGH_LABELS = frozenset({"utf-8", ""})

SUPPORTED_CHARSETS: Dict[str, str] = {
    "windows-1251": "cp1251",
    "cp1251": "cp1251",
    "windows-1252": "cp1252",
    "cp1252": "cp1252",
    "iso-8859-1": "latin-1",
    "latin1": "latin-1",
    "iso-8859-2": "iso8859_2",
    "latin2": "iso8859_2",
    "iso-8859-5": "iso8859_5",
    "iso-8859-15": "iso8859_15",
    "koi8-r": "koi8_r",
    "koi8-u": "koi8_u",
    "us-ascii": "ascii",
    "ascii": "ascii",
}


def _normalize_label(label: str) -> str:
    return (label or "").strip().lower()


def is_supported(label: str) -> bool:
    """Return True if ``label`` is UTF-8, empty or on the allow-list."""
    normalized = _normalize_label(label)
    return normalized in PASSTHROUGH_LABELS or normalized in SUPPORTED_CHARSETS


def codec_for(label: str) -> str | None:
    """Return the Python codec name for ``label``, or None for pass-through labels.

    Raises:
        UnsupportedCharsetError: if the label is not on the allow-list.
    """
    normalized = _normalize_label(label)
    if normalized in PASSTHROUGH_LABELS:
        return None
    try:
        return SUPPORTED_CHARSETS[normalized]
    except KeyError:
        raise UnsupportedCharsetError(label) from None


def decode_stream(label: str, stream: BinaryIO) -> Union[BinaryIO, TextIO]:
    """Wrap ``stream`` so that reading it yields Unicode text.

    UTF-8 and the empty label return the very same stream object. Undecodable
    bytes are replaced with U+FFFD rather than aborting the whole document.
    """
    codec = codec_for(label)
    if codec is None:
        return stream
    return codecs.getreader(codec)(stream, errors="replace")

