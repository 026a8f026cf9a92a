#!/usr/bin/env python3
"""
RSS stream processor entry point.

Polls every feed given on the command line, one task per feed, and writes new
entries to stdout or an append-mode file until interrupted:

    rssp https://example.com/feed.xml https://example.org/rss -a -t "rust"

SIGINT and SIGTERM set a shared stop event; pollers finish at their next
suspension point and the output sink drains before the process exits.
"""

import argparse
import asyncio
import signal
import sys
from typing import List, Optional, Sequence

from aiohttp import ClientSession, TCPConnector

from config import Config, get_logger, setup_logging
from errors import PromptTemplateError
from output import OutputSink
from poller import build_pollers
from relevance import RelevanceFilter, load_prompt_template
from telemetry import init_telemetry, shutdown_telemetry

__version__ = "0.0.0"

logger = get_logger("main")


def _positive_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid integer: {value!r}") from None
    if number < 1:
        raise argparse.ArgumentTypeError("must be at least 1")
    return number


def _positive_float(value: str) -> float:
    try:
        number = float(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid number: {value!r}") from None
    if number <= 0:
        raise argparse.ArgumentTypeError("must be greater than 0")
    return number


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='rssp',
        description='Poll RSS feeds and stream new entries as they appear',
    )
    parser.add_argument('uri', nargs='+',
                        help='Feed URL to poll (repeatable)')
    parser.add_argument('-o', '--output', metavar='PATH',
                        help='Append entries to PATH instead of writing to stdout')
    parser.add_argument('-f', '--full', action='store_true',
                        help='Multi-line output with title, link and timestamp')
    parser.add_argument('-a', '--authored', action='store_true',
                        help='Append the channel name (or feed hostname) to each entry')
    parser.add_argument('-m', '--max-length', type=_positive_int, metavar='N',
                        help='Truncate extracted article text to N characters (default: 2000)')
    parser.add_argument('-t', '--focus', metavar='TOPIC',
                        help='Only show entries about TOPIC, as judged by the chat model')
    parser.add_argument('-i', '--interval', type=_positive_float, metavar='SECONDS',
                        help='Seconds between polls of each feed (default: POLL_INTERVAL_SECONDS or 30)')
    parser.add_argument('-v', '--version', action='version', version=f'rssp {__version__}')
    return parser


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    return build_parser().parse_args(argv)


def build_config(args: argparse.Namespace, env=None) -> Config:
    """Combine environment configuration with command-line flags."""
    overrides = {
        'OUTPUT_PATH': args.output,
        'FULL_OUTPUT': args.full,
        'INCLUDE_CHANNEL': args.authored,
        'FOCUS_TOPIC': (args.focus or "").strip() or None,
    }
    if args.max_length is not None:
        overrides['MAX_LENGTH'] = args.max_length
    if args.interval is not None:
        overrides['POLL_INTERVAL_SECONDS'] = args.interval
    return Config(env, **overrides)


def build_relevance_filter(config: Config, client=None) -> Optional[RelevanceFilter]:
    """Return a relevance filter when a focus topic is set.

    Raises:
        PromptTemplateError: the prompt template is missing or malformed.
    """
    if not config.FOCUS_TOPIC:
        return None
    template = load_prompt_template(config.PROMPT_CONFIG_PATH)
    if not config.OPENAI_API_KEY and client is None:
        logger.warning("Focus topic set but OPENAI_API_KEY is missing; all entries will be shown")
    return RelevanceFilter(config, template, client=client)


def install_signal_handlers(stop_event: asyncio.Event) -> List[int]:
    """Set ``stop_event`` on SIGINT/SIGTERM. Returns the signals that were hooked."""
    loop = asyncio.get_running_loop()
    hooked = []
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
            hooked.append(sig)
        except (NotImplementedError, RuntimeError):
            # Not available on this platform or outside the main thread
            logger.debug(f"Cannot install handler for {sig!r}")
    return hooked


def remove_signal_handlers(signals: List[int]) -> None:
    loop = asyncio.get_running_loop()
    for sig in signals:
        loop.remove_signal_handler(sig)


async def run(
    urls: Sequence[str],
    config: Config,
    sink: OutputSink,
    relevance: Optional[RelevanceFilter] = None,
    stop_event: Optional[asyncio.Event] = None,
    session: Optional[ClientSession] = None,
) -> None:
    """Poll ``urls`` until ``stop_event`` is set, writing entries to ``sink``."""
    stop_event = stop_event or asyncio.Event()
    hooked = install_signal_handlers(stop_event)
    own_session = session is None
    if own_session:
        session = ClientSession(connector=TCPConnector(limit_per_host=4))

    await sink.start()
    try:
        pollers = build_pollers(list(urls), config, session, sink, relevance)
        results = await asyncio.gather(
            *(poller.run(stop_event) for poller in pollers),
            return_exceptions=True,
        )
        for poller, result in zip(pollers, results):
            if isinstance(result, Exception):
                logger.error(f"Poller for {poller.url} crashed: {result}")
    finally:
        remove_signal_handlers(hooked)
        await sink.stop()
        if own_session:
            await session.close()


def main(argv: Optional[Sequence[str]] = None) -> None:
    """Main entry point."""
    args = parse_args(argv)
    setup_logging()
    init_telemetry()

    config = build_config(args)
    logger.debug(f"Configuration: {config.get_config_summary()}")

    try:
        relevance = build_relevance_filter(config)
    except PromptTemplateError as e:
        logger.error(f"Cannot start with focus topic: {e}")
        sys.exit(1)

    try:
        sink = OutputSink.open(config.OUTPUT_PATH)
    except OSError as e:
        logger.error(f"Cannot open output file {config.OUTPUT_PATH}: {e}")
        sys.exit(1)

    logger.info(f"Watching {len(args.uri)} feed(s)")
    try:
        asyncio.run(run(args.uri, config, sink, relevance))
    except KeyboardInterrupt:
        logger.info("👋 Shutting down")
    finally:
        shutdown_telemetry()


if __name__ == "__main__":
    main()
