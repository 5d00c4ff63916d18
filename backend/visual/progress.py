"""
Progress channel

Decouples progress producers (browser analysis) from the event stream.
Producers publish without awaiting; a consumer drains the channel until it
is closed.
"""

from __future__ import annotations
import asyncio
import logging
from typing import AsyncIterator, Optional

logger = logging.getLogger(__name__)

_CLOSED = object()


class ProgressChannel:
    """Bounded queue of human readable progress messages"""

    def __init__(self, maxsize: int = 100):
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def publish(self, message: str) -> None:
        """Queue a message; the oldest message is dropped when full"""
        if self._closed:
            return
        if self._queue.full():
            try:
                self._queue.get_nowait()
            except asyncio.QueueEmpty:
                pass
            logger.debug("[Progress] Channel full, dropped oldest message")
        self._queue.put_nowait(message)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._queue.full():
            self._queue.get_nowait()
        self._queue.put_nowait(_CLOSED)

    async def __aiter__(self) -> AsyncIterator[str]:
        while True:
            item = await self._queue.get()
            if item is _CLOSED:
                return
            yield item


def publish(channel: Optional[ProgressChannel], message: str) -> None:
    """Publish to an optional channel"""
    if channel is not None:
        channel.publish(message)
