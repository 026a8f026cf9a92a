#!/usr/bin/env python3
"""Common error types shared across modules.

Provides shared lightweight exceptions to avoid circular imports.
"""

from typing import Optional


class FeedError(Exception):
    """Base class for recoverable per-feed failures (logged, backed off, retried)."""


class FetchError(FeedError):
    """Raised when a feed cannot be retrieved (transport error or non-2xx status).

    Attributes:
        url: The feed URL that failed.
        status: HTTP status code when the server answered, otherwise None.
    """

    def __init__(self, url: str, message: str, status: Optional[int] = None):
        super().__init__(f"{message} ({url})")
        self.url = url
        self.status = status


class MalformedDocumentError(FeedError):
    """Raised when fetched bytes cannot be parsed into a feed document."""


class UnsupportedCharsetError(MalformedDocumentError):
    """Raised when a document declares a character set outside the allow-list."""

    def __init__(self, charset: str):
        super().__init__(f"unsupported charset: {charset}")
        self.charset = charset


class PromptTemplateError(Exception):
    """Raised at startup when the relevance prompt template is missing or malformed."""


__all__ = [
    "FeedError",
    "FetchError",
    "MalformedDocumentError",
    "UnsupportedCharsetError",
    "PromptTemplateError",
]
