"""
Progress events streamed to the client over Server-Sent Events.

A ProgressStream belongs to one request. The pipeline emits into it
synchronously (emit never blocks); the HTTP layer drains it as SSE frames.
Exactly one terminal event (complete or error) is allowed, after which the
stream is closed and further emits raise StreamClosedError.
"""

import asyncio
import json
import logging
from typing import Any, AsyncIterator, Coroutine, Dict, List, Optional, Tuple

from .logging_config import get_session_logger

logger = logging.getLogger(__name__)

TERMINAL_EVENTS = frozenset({"complete", "error"})

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}

_END = object()

Event = Tuple[str, Dict[str, Any]]


class StreamClosedError(Exception):
    """Raised when emitting after the terminal event."""
    pass


def format_sse(event: str, data: Dict[str, Any]) -> str:
    """Encode one event as an SSE frame."""
    return f"event: {event}\ndata: {json.dumps(data)}\n\n"


class ProgressStream:
    """Queue-backed one-way event channel for a single request."""

    def __init__(self, session_id: Optional[str] = None):
        self.session_id = session_id or "unknown"
        self.history: List[Event] = []
        self.closed = False
        self._queue: "asyncio.Queue[Any]" = asyncio.Queue()
        self.slogger = get_session_logger(session_id) if session_id else None

    def emit(self, event: str, data: Dict[str, Any]) -> None:
        if self.closed:
            raise StreamClosedError(
                f"[{self.session_id}] Cannot emit '{event}' after the terminal event"
            )
        if event in TERMINAL_EVENTS:
            self.closed = True

        self.history.append((event, data))
        self._queue.put_nowait((event, data))
        if self.slogger:
            self.slogger.log_event_out(event, data)

    def finish(self) -> None:
        """Unblock the reader even if no terminal event was emitted."""
        self._queue.put_nowait(_END)

    # Event helpers

    def start(self, message: str) -> None:
        self.emit("start", {"message": message})

    def iteration(self, current: int, maximum: int) -> None:
        self.emit("iteration", {"current": current, "max": maximum})

    def log(self, message: str, level: str = "info") -> None:
        data = {"message": message}
        if level != "info":
            data["level"] = level
        self.emit("log", data)

    def code(self, code: str) -> None:
        self.emit("code", {"code": code})

    def sandbox(self, url: str, sandbox_id: str) -> None:
        self.emit("sandbox", {"url": url, "sandboxId": sandbox_id})

    def quality(self, score: int, details: Dict[str, Any]) -> None:
        self.emit("quality", {"score": score, "details": details})

    def complete(
        self,
        code: str,
        sandbox_url: Optional[str],
        sandbox_id: Optional[str],
        iterations: int,
        success: bool,
    ) -> None:
        self.emit("complete", {
            "code": code,
            "sandboxUrl": sandbox_url,
            "sandboxId": sandbox_id,
            "iterations": iterations,
            "success": success,
        })

    def error(self, message: str) -> None:
        self.emit("error", {"message": message})

    # Reading

    def events(self, name: str) -> List[Dict[str, Any]]:
        """Payloads of every emitted event with the given name."""
        return [data for event, data in self.history if event == name]

    async def __aiter__(self) -> AsyncIterator[Event]:
        while True:
            item = await self._queue.get()
            if item is _END:
                return
            yield item
            if item[0] in TERMINAL_EVENTS:
                return


async def stream_sse(stream: ProgressStream, work: Coroutine) -> AsyncIterator[str]:
    """
    Run `work` in a task and yield its events as SSE frames.

    If the client disconnects, the generator is closed and the task is
    cancelled: no further sandbox operation starts, but a call already running
    in a worker thread finishes on its own.
    """
    task = asyncio.create_task(work)

    def _on_done(t: asyncio.Task) -> None:
        if not t.cancelled():
            exc = t.exception()
            if exc is not None and not stream.closed:
                logger.error(f"[{stream.session_id}] Pipeline crashed: {exc}", exc_info=exc)
                stream.error(str(exc) or type(exc).__name__)
        stream.finish()

    task.add_done_callback(_on_done)

    try:
        async for event, data in stream:
            yield format_sse(event, data)
    finally:
        if not task.done():
            logger.info(f"[{stream.session_id}] Client disconnected, cancelling pipeline")
            task.cancel()
