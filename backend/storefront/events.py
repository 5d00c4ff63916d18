"""
Event Protocol Encoder
事件流编码

Ordered, tagged event frames for one request. Every emit() writes one frame
immediately; exactly one terminal event (complete | error) is sent, after
which the stream is closed and any later emit is dropped.

Frame format (one JSON object per frame):
    data: {"event": "<kind>", ...payload}\n\n
"""

from __future__ import annotations
import asyncio
import json
import logging
from enum import Enum
from typing import Any, AsyncIterator, Dict, Optional

logger = logging.getLogger(__name__)

_CLOSED = object()


class EventKind(str, Enum):
    STATUS = "status"
    TOOL_RESULT = "tool_result"
    SCREENSHOT = "screenshot"
    TEXT = "text"
    TOKENS = "tokens"
    THINKING_START = "thinking_start"
    ERROR = "error"
    COMPLETE = "complete"


TERMINAL_EVENTS = frozenset({EventKind.COMPLETE, EventKind.ERROR})


def encode_frame(kind: EventKind, payload: Dict[str, Any]) -> bytes:
    data = {"event": kind.value, **payload}
    return f"data: {json.dumps(data, ensure_ascii=False)}\n\n".encode("utf-8")


class EventStream:
    """One request's outbound event stream"""

    def __init__(self):
        self._queue: asyncio.Queue = asyncio.Queue()
        self._terminated = False
        self._closed = False

    @property
    def terminated(self) -> bool:
        """A terminal event has been emitted"""
        return self._terminated

    @property
    def closed(self) -> bool:
        return self._closed

    def emit(self, kind: EventKind, **payload: Any) -> bool:
        """
        Write one frame. Returns False when the frame was dropped because the
        stream already terminated or was closed.
        """
        if self._terminated or self._closed:
            logger.debug(f"[Events] Dropped '{kind.value}' after stream end")
            return False

        self._queue.put_nowait(encode_frame(kind, payload))
        if kind in TERMINAL_EVENTS:
            self._terminated = True
            self.close()
        return True

    def close(self) -> None:
        """Close the stream. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(_CLOSED)

    async def frames(self) -> AsyncIterator[bytes]:
        """Encoded frames in emit order, ending when the stream closes"""
        while True:
            frame = await self._queue.get()
            if frame is _CLOSED:
                return
            yield frame

    # ============================================
    # Typed helpers
    # ============================================

    def status(self, message: str) -> bool:
        return self.emit(EventKind.STATUS, message=message)

    def tool_result(self, tool: str, result: str, details: str = "") -> bool:
        return self.emit(EventKind.TOOL_RESULT, tool=tool, result=result, details=details)

    def screenshot(self, data: str, width: int, height: int, title: str) -> bool:
        return self.emit(EventKind.SCREENSHOT, data=data, width=width, height=height, title=title)

    def text(self, content: str, full: str) -> bool:
        return self.emit(EventKind.TEXT, content=content, full=full)

    def tokens(self, input_tokens: int, output_tokens: int) -> bool:
        return self.emit(EventKind.TOKENS, input=input_tokens, output=output_tokens)

    def thinking_start(self) -> bool:
        return self.emit(EventKind.THINKING_START)

    def error(self, message: str, details: Optional[str] = None) -> bool:
        payload: Dict[str, Any] = {"message": message}
        if details:
            payload["details"] = details
        return self.emit(EventKind.ERROR, **payload)

    def complete(self, **payload: Any) -> bool:
        return self.emit(EventKind.COMPLETE, **payload)
