#!/usr/bin/env python3
"""
Per-feed polling loop.

Every configured feed gets one FeedPoller running as its own task. A cycle
fetches the feed, parses it, reconciles its items against the feed's tracking
state and sleeps for the poll interval:

    FETCHING -> PARSING -> RECONCILING -> SLEEPING -> FETCHING ...

A fetch or parse failure goes straight to SLEEPING and leaves the tracking
state untouched. The first successful cycle only records what is already in
the feed; later cycles emit whatever was not seen before, in document order.
"""

from asyncio import CancelledError, Event, FIRST_COMPLETED, TimeoutError, create_task, get_running_loop, wait, wait_for
from dataclasses import dataclass
from enum import Enum
from typing import Coroutine, List, Optional, Tuple

from aiohttp import ClientError, ClientSession, ClientTimeout

from config import Config, get_logger
from dedup import FeedTrackingState
from errors import FeedError, FetchError
from extractor import ContentResolver
from feed_parser import parse_feed
from formatter import OutputFormatter
from models import Entry, Item, ResolvedContent
from output import OutputSink
from relevance import RelevanceFilter
from telemetry import trace_span
from utils import format_client_error, strip_html

logger = get_logger("poller")


class PollerState(str, Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    PARSING = "parsing"
    RECONCILING = "reconciling"
    SLEEPING = "sleeping"
    STOPPED = "stopped"


@dataclass
class CycleResult:
    """Outcome of one poll cycle."""
    ok: bool
    new_count: int = 0
    emitted: int = 0
    error: str = ""
    stopped: bool = False


class StopRequested(Exception):
    """Raised internally when the stop event wins a race against I/O."""


class FeedPoller:
    def __init__(
        self,
        url: str,
        config: Config,
        session: ClientSession,
        sink: OutputSink,
        formatter: OutputFormatter,
        resolver: ContentResolver,
        relevance: Optional[RelevanceFilter] = None,
    ):
        self.url = url
        self.config = config
        self.session = session
        self.sink = sink
        self.formatter = formatter
        self.resolver = resolver
        self.relevance = relevance
        self.tracking = FeedTrackingState()
        self.state = PollerState.IDLE
        self.seeded = False
        self.cycles = 0

    async def fetch(self) -> bytes:
        """GET the feed and return its body.

        Raises:
            FetchError: on transport errors, timeouts and non-2xx responses.
        """
        request_kwargs = {
            'headers': {'User-Agent': self.config.USER_AGENT},
            'timeout': ClientTimeout(total=self.config.HTTP_TIMEOUT),
        }
        try:
            async with self.session.get(self.url, **request_kwargs) as response:
                if not 200 <= response.status < 300:
                    raise FetchError(self.url, f"HTTP {response.status}", status=response.status)
                return await response.read()
        except TimeoutError:
            raise FetchError(self.url, f"Timed out after {self.config.HTTP_TIMEOUT}s") from None
        except ClientError as e:
            raise FetchError(self.url, format_client_error(e)) from e

    async def _race_stop(self, coro: Coroutine, stop_event: Optional[Event]):
        """Await ``coro`` unless ``stop_event`` is set first."""
        if stop_event is None:
            return await coro
        if stop_event.is_set():
            coro.close()
            raise StopRequested()
        work = create_task(coro)
        stopper = create_task(stop_event.wait())
        try:
            await wait({work, stopper}, return_when=FIRST_COMPLETED)
        finally:
            for task in (work, stopper):
                if not task.done():
                    task.cancel()
        if work.done() and not work.cancelled():
            return work.result()
        try:
            await work
        except CancelledError:
            pass
        raise StopRequested()

    async def _reconcile(self, items: List[Item]) -> List[Item]:
        """Mark unseen items as seen and return the ones that should be emitted."""
        fresh: List[Item] = []
        async with self.tracking.lock:
            for item in items:
                key = self.tracking.tracking_key(item)
                if self.tracking.seen(key):
                    continue
                self.tracking.mark(key)
                fresh.append(item)
            seeding = not self.seeded
            self.seeded = True
        if seeding:
            logger.info(f"Tracking {len(self.tracking)} existing items for {self.url}")
            return []
        return fresh

    async def _resolve(self, item: Item) -> ResolvedContent:
        needs_content = (self.relevance is not None and self.relevance.enabled) or not strip_html(item.description)
        if not needs_content:
            return ResolvedContent()
        return await self.resolver.resolve(item.link, item.description)

    async def process_item(self, item: Item, channel_title: str) -> bool:
        """Enrich, filter, render and emit one new item. Returns True if something was emitted."""
        resolved = await self._resolve(item)
        filtered = ""
        if self.relevance is not None and self.relevance.enabled and resolved.text:
            result = await self.relevance.check(resolved.text)
            if result.suppressed:
                logger.debug(f"Suppressed off-topic item {item.link or item.title!r} from {self.url}")
                return False
            filtered = result.filtered

        entry = Entry(
            feed_url=self.url,
            item=item,
            channel_title=channel_title,
            resolved=resolved,
            filtered=filtered,
        )
        text = self.formatter.format_entry(entry)
        if not text:
            return False
        await self.sink.emit(text)
        return True

    @trace_span(
        "poller.cycle",
        tracer_name="poller",
        attr_from_args=lambda self, stop_event=None: {"feed.url": self.url},
    )
    async def poll_once(self, stop_event: Optional[Event] = None) -> CycleResult:
        """Run one fetch/parse/reconcile pass. Never raises for per-feed failures."""
        self.cycles += 1
        try:
            self.state = PollerState.FETCHING
            data = await self._race_stop(self.fetch(), stop_event)

            self.state = PollerState.PARSING
            # feedparser is CPU-bound; keep it off the event loop
            feed = await get_running_loop().run_in_executor(None, parse_feed, data)
        except StopRequested:
            return CycleResult(ok=False, stopped=True)
        except FeedError as e:
            logger.warning(f"Skipping cycle for {self.url}: {e}")
            return CycleResult(ok=False, error=str(e))

        self.state = PollerState.RECONCILING
        channel = feed.channel
        fresh = await self._reconcile(channel.items)

        emitted = 0
        for item in fresh:
            try:
                if await self.process_item(item, channel.title):
                    emitted += 1
            except Exception as e:
                logger.error(f"Failed to process item {item.link or item.guid!r} from {self.url}: {e}")
        if fresh:
            logger.debug(f"{self.url}: {len(fresh)} new items, {emitted} emitted")
        return CycleResult(ok=True, new_count=len(fresh), emitted=emitted)

    async def sleep(self, stop_event: Event) -> bool:
        """Sleep for the poll interval. Returns True if the stop event was set."""
        self.state = PollerState.SLEEPING
        try:
            await wait_for(stop_event.wait(), timeout=self.config.POLL_INTERVAL_SECONDS)
            return True
        except TimeoutError:
            return stop_event.is_set()

    async def run(self, stop_event: Event) -> None:
        """Poll until ``stop_event`` is set."""
        logger.info(f"Polling {self.url} every {self.config.POLL_INTERVAL_SECONDS:g}s")
        try:
            while not stop_event.is_set():
                result = await self.poll_once(stop_event)
                if result.stopped or await self.sleep(stop_event):
                    break
        finally:
            self.state = PollerState.STOPPED
            logger.debug(f"Poller for {self.url} stopped after {self.cycles} cycles")


def build_pollers(
    urls: List[str],
    config: Config,
    session: ClientSession,
    sink: OutputSink,
    relevance: Optional[RelevanceFilter] = None,
) -> Tuple[FeedPoller, ...]:
    """Create one poller per feed URL sharing the session, sink and formatter."""
    formatter = OutputFormatter(config)
    resolver = ContentResolver.from_config(config, session)
    return tuple(
        FeedPoller(url, config, session, sink, formatter, resolver, relevance)
        for url in urls
    )
