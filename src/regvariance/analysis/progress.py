"""
Progress reporting for analysis runs.

The analyzer pushes events here; CLI progress bars and other observers either
register a callback or consume the async event stream. Observers never
influence the run itself.
"""

import asyncio
import logging
from typing import AsyncIterator, Callable, List, Optional

from regvariance.data.models import ProgressEvent

ProgressCallback = Callable[[ProgressEvent], None]


class ProgressEmitter:
    """Append-only progress channel for a single analysis run."""

    def __init__(self):
        self.logger = logging.getLogger(__name__)
        self._callbacks: List[ProgressCallback] = []
        self._queue: Optional[asyncio.Queue] = None
        self._closed = False
        self.history: List[ProgressEvent] = []

    @property
    def closed(self) -> bool:
        return self._closed

    def subscribe(self, callback: ProgressCallback) -> None:
        """Register a synchronous observer called for every event."""
        self._callbacks.append(callback)

    def emit(self, step: str, current: int, total: int, message: str) -> None:
        """Record an event and hand it to observers."""
        if self._closed:
            self.logger.debug(f"Progress emitter closed, dropping event: {message}")
            return

        event = ProgressEvent(step=step, current=current, total=total, message=message)
        self.history.append(event)

        for callback in self._callbacks:
            try:
                callback(event)
            except Exception as e:
                self.logger.warning(f"Progress observer failed: {e}")

        if self._queue is not None:
            self._queue.put_nowait(event)

    def renew(self) -> 'ProgressEmitter':
        """New open emitter carrying the same observers, for the next run."""
        emitter = ProgressEmitter()
        emitter._callbacks = list(self._callbacks)
        return emitter

    def close(self) -> None:
        """End the stream; further events are dropped."""
        if self._closed:
            return
        self._closed = True
        if self._queue is not None:
            self._queue.put_nowait(None)

    def events(self) -> AsyncIterator[ProgressEvent]:
        """
        Open the event stream.

        Must be called before the run starts so no events are missed. The
        stream ends when the emitter is closed and cannot be reopened.

        Returns:
            Async iterator of progress events
        """
        if self._queue is not None:
            raise RuntimeError("Progress stream already has a subscriber")
        self._queue = asyncio.Queue()
        if self._closed:
            self._queue.put_nowait(None)
        return self._drain(self._queue)

    @staticmethod
    async def _drain(queue: asyncio.Queue) -> AsyncIterator[ProgressEvent]:
        while True:
            event = await queue.get()
            if event is None:
                return
            yield event
