#!/usr/bin/env python3
"""
Article content resolution.

A ContentResolver walks an ordered list of extraction strategies and keeps the
first non-empty result. Strategies share one contract, ``await
strategy.extract(link, description) -> str``, where an empty string means
"nothing here, try the next one". The default chain is:

1. DiffbotStrategy - remote article extraction, only when DIFFBOT_TOKEN is set
2. LocalPageStrategy - fetch the page and apply a main-text heuristic
3. DescriptionStrategy - the feed's own description with markup removed

Resolution never raises; a failing strategy is logged and skipped.
"""

from asyncio import get_running_loop
from functools import partial
from typing import List, Optional, Sequence

from aiohttp import ClientError, ClientSession, ClientTimeout
from bs4 import BeautifulSoup

from config import Config, get_logger
from models import Provenance, ResolvedContent
from telemetry import trace_span
from utils import collapse_whitespace, format_client_error, strip_html, truncate_text

logger = get_logger("extractor")

# Elements whose content is never part of an article body
BOILERPLATE_TAGS = ["script", "style", "nav", "footer", "header"]


def extract_main_text(html_content: str, max_length: int) -> str:
    """Pull the readable body text out of an HTML page.

    Boilerplate elements are dropped together with their content. The text of
    all top-level ``<article>`` elements is preferred, then the first
    ``<main>``, then whatever remains of the document.
    """
    if not html_content:
        return ""
    soup = BeautifulSoup(html_content, 'html.parser')
    for tag in soup(BOILERPLATE_TAGS):
        tag.decompose()

    articles = [a for a in soup.find_all('article') if a.find_parent('article') is None]
    if articles:
        text = " ".join(a.get_text(" ") for a in articles)
    else:
        main = soup.find('main')
        text = main.get_text(" ") if main is not None else soup.get_text(" ")

    return truncate_text(collapse_whitespace(text), max_length)


class ExtractionStrategy:
    """Base class for one step of the content resolution chain."""

    name = "strategy"
    provenance = Provenance.NONE

    async def extract(self, link: str, description: str) -> str:
        raise NotImplementedError


class HttpStrategy(ExtractionStrategy):
    """Shared plumbing for strategies that issue GET requests."""

    def __init__(self, config: Config, session: ClientSession):
        self.config = config
        self.session = session

    def _request_kwargs(self) -> dict:
        return {
            'headers': {'User-Agent': self.config.USER_AGENT},
            'timeout': ClientTimeout(total=self.config.HTTP_TIMEOUT),
        }


class DiffbotStrategy(HttpStrategy):
    """Remote article extraction through the Diffbot article API."""

    name = "diffbot"
    provenance = Provenance.REMOTE_EXTRACTION

    async def extract(self, link: str, description: str) -> str:
        if not link or not self.config.DIFFBOT_TOKEN:
            return ""
        params = {'token': self.config.DIFFBOT_TOKEN, 'url': link}
        async with self.session.get(self.config.DIFFBOT_ENDPOINT, params=params, **self._request_kwargs()) as response:
            if response.status != 200:
                logger.debug(f"Diffbot returned HTTP {response.status} for {link}")
                return ""
            payload = await response.json(content_type=None)

        objects = payload.get('objects') if isinstance(payload, dict) else None
        if not objects or not isinstance(objects[0], dict):
            return ""
        text = objects[0].get('text') or ""
        return truncate_text(text.strip(), self.config.MAX_LENGTH)


class LocalPageStrategy(HttpStrategy):
    """Fetch the article page and keep its main text."""

    name = "local"
    provenance = Provenance.LOCAL_HEURISTIC

    async def extract(self, link: str, description: str) -> str:
        if not link:
            return ""
        async with self.session.get(link, **self._request_kwargs()) as response:
            if not 200 <= response.status < 300:
                logger.debug(f"Article page returned HTTP {response.status} for {link}")
                return ""
            html_content = await response.text(errors='replace')

        # BeautifulSoup parsing is CPU-bound; keep it off the event loop
        loop = get_running_loop()
        return await loop.run_in_executor(
            None, partial(extract_main_text, html_content, self.config.MAX_LENGTH)
        )


class DescriptionStrategy(ExtractionStrategy):
    """Fall back to the feed's own description, stripped of markup."""

    name = "description"
    provenance = Provenance.DESCRIPTION_ONLY

    async def extract(self, link: str, description: str) -> str:
        return strip_html(description)


def default_strategies(config: Config, session: ClientSession) -> List[ExtractionStrategy]:
    strategies: List[ExtractionStrategy] = []
    if config.DIFFBOT_TOKEN:
        strategies.append(DiffbotStrategy(config, session))
    strategies.append(LocalPageStrategy(config, session))
    strategies.append(DescriptionStrategy())
    return strategies


class ContentResolver:
    """Run extraction strategies in order and keep the first non-empty text."""

    def __init__(self, strategies: Sequence[ExtractionStrategy]):
        self.strategies = list(strategies)

    @classmethod
    def from_config(cls, config: Config, session: ClientSession) -> "ContentResolver":
        return cls(default_strategies(config, session))

    @trace_span(
        "extractor.resolve",
        tracer_name="extractor",
        attr_from_args=lambda self, link, description="": {"article.url": link or ""},
    )
    async def resolve(self, link: str, description: str = "") -> ResolvedContent:
        for strategy in self.strategies:
            text = await self._run(strategy, link, description)
            if text:
                return ResolvedContent(text=text, provenance=strategy.provenance)
        return ResolvedContent(text="", provenance=Provenance.NONE)

    async def _run(self, strategy: ExtractionStrategy, link: str, description: str) -> Optional[str]:
        try:
            return await strategy.extract(link, description)
        except ClientError as e:
            logger.debug(f"{strategy.name} extraction failed for {link}: {format_client_error(e)}")
        except TimeoutError:
            logger.debug(f"{strategy.name} extraction timed out for {link}")
        except Exception as e:
            logger.warning(f"{strategy.name} extraction error for {link}: {e}")
        return None
