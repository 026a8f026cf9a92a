#!/usr/bin/env python3
"""
Serialized output sink.

Pollers never touch the output stream directly. They put rendered text on a
queue and a single worker task writes and flushes each message in full, so
messages from concurrent feeds cannot interleave.
"""

import sys
from asyncio import CancelledError, Queue, Task, create_task
from typing import Optional, TextIO

from config import get_logger

logger = get_logger("output")

_STOP = object()


class OutputSink:
    """A queue-fed writer for stdout or an append-mode file."""

    def __init__(self, stream: TextIO, owns_stream: bool = False, name: str = "<stream>"):
        self.stream = stream
        self.name = name
        self.owns_stream = owns_stream
        self.queue: Queue = Queue()
        self.running = False
        self.worker_task: Optional[Task] = None
        self.written = 0

    @classmethod
    def open(cls, output_path: Optional[str] = None) -> "OutputSink":
        """Create a sink for ``output_path`` (appended to) or stdout when None.

        Raises:
            OSError: the file cannot be opened for appending.
        """
        if not output_path:
            return cls(sys.stdout, owns_stream=False, name="<stdout>")
        stream = open(output_path, 'a', encoding='utf-8')
        return cls(stream, owns_stream=True, name=output_path)

    async def start(self) -> None:
        """Start the writer task."""
        if self.running:
            return
        self.running = True
        self.worker_task = create_task(self._worker())
        logger.debug(f"Output worker started for {self.name}")

    async def emit(self, text: str) -> None:
        """Queue one rendered message; empty messages are ignored."""
        if text:
            await self.queue.put(text)

    async def stop(self) -> None:
        """Drain pending messages, stop the writer and close owned files."""
        if not self.running:
            self._close()
            return
        self.running = False
        await self.queue.put(_STOP)
        if self.worker_task:
            try:
                await self.worker_task
            except CancelledError:
                logger.debug("Output worker cancelled before draining")
            self.worker_task = None
        self._close()
        logger.debug(f"Output worker stopped after {self.written} messages")

    def _close(self) -> None:
        if self.owns_stream and not self.stream.closed:
            self.stream.close()

    def _write(self, text: str) -> None:
        self.stream.write(text)
        self.stream.flush()
        self.written += 1

    async def _worker(self) -> None:
        """Write queued messages one at a time until the stop marker arrives."""
        while True:
            message = await self.queue.get()
            try:
                if message is _STOP:
                    return
                try:
                    self._write(message)
                except OSError as e:
                    logger.error(f"Failed to write to {self.name}: {e}")
            finally:
                self.queue.task_done()
