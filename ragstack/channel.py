"""EventChannel — the one outbound progress stream of a request.

Every task of a request (bring-up, health polling, log tailing, pipeline
steps) writes into the same channel. Writes never block: events go onto an
unbounded queue that the transport drains at its own pace. The first
terminal event consumes the commit token, finalizes the response and
closes the channel; anything emitted afterwards is dropped.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import AsyncIterator

from ragstack.schemas import StreamEvent

logger = logging.getLogger(__name__)


class _CommitToken:
    """One-shot token. ``consume()`` returns True exactly once."""

    __slots__ = ("_consumed",)

    def __init__(self) -> None:
        self._consumed = False

    def consume(self) -> bool:
        if self._consumed:
            return False
        self._consumed = True
        return True


class EventChannel:
    """Append-only event sink with a single reader."""

    def __init__(self) -> None:
        self._queue: asyncio.Queue[StreamEvent | None] = asyncio.Queue()
        self._closed = asyncio.Event()
        self._token = _CommitToken()
        self.committed = False
        self.commit_code: int | None = None

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def emit(self, event: StreamEvent) -> bool:
        """Queue an event. Returns False when it was dropped.

        A terminal event commits the response once and closes the channel.
        A second terminal event is ignored.
        """
        if self.closed:
            logger.debug(f"Dropping event on closed channel: {event.message[:80]!r}")
            return False

        if not event.terminal:
            if event.message:
                self._queue.put_nowait(event)
                return True
            return False

        if not self._token.consume():
            return False

        self.committed = True
        self.commit_code = event.commit_code
        if event.message or event.commit_code is not None:
            self._queue.put_nowait(event)
        self.close()
        return True

    def close(self) -> None:
        """End the stream. Safe to call more than once."""
        if self.closed:
            return
        self._closed.set()
        self._queue.put_nowait(None)

    async def wait_closed(self) -> None:
        await self._closed.wait()

    async def events(self) -> AsyncIterator[StreamEvent]:
        """Yield queued events until the channel is closed and drained."""
        while True:
            event = await self._queue.get()
            if event is None:
                return
            yield event

    async def stream(self) -> AsyncIterator[str]:
        """Yield Server-Sent Events frames."""
        async for event in self.events():
            data = json.dumps(event.model_dump())
            yield f"data: {data}\n\n"
