"""Live server-push streams.

An :class:`EventStream` is the in-process handle of one long-lived HTTP
response. Message frames are pushed into it from other requests and drained
by the response that owns it. Idle keep-alive ticks are produced inside
:meth:`EventStream.frames`, so the timer lives exactly as long as the
response iterating it.

The :class:`StreamRegistry` maps session ids to open streams for the SSE
handshake transport. It is process-local and never persisted.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Callable

import anyio
from anyio.streams.memory import MemoryObjectReceiveStream, MemoryObjectSendStream

from mcp_http.server.utilities.logging import get_logger

logger = get_logger(__name__)


class EventStream:
    """A closable queue of outgoing frames for one open response."""

    def __init__(self, session_id: str, max_buffer_size: int = 100) -> None:
        self.session_id = session_id
        self._send_stream: MemoryObjectSendStream[str]
        self._receive_stream: MemoryObjectReceiveStream[str]
        self._send_stream, self._receive_stream = anyio.create_memory_object_stream[str](max_buffer_size)
        self._closed = False
        self._draining = False
        self._close_callbacks: list[Callable[[EventStream], None]] = []

    @property
    def closed(self) -> bool:
        return self._closed

    def on_close(self, callback: Callable[[EventStream], None]) -> None:
        """Run ``callback(stream)`` once when the stream closes."""
        if self._closed:
            callback(self)
        else:
            self._close_callbacks.append(callback)

    def push(self, frame: str) -> bool:
        """Queue a frame for delivery; False when the stream can no longer take it."""
        if self._closed:
            return False
        try:
            self._send_stream.send_nowait(frame)
        except anyio.WouldBlock:
            logger.warning(f"Stream buffer full for session {self.session_id}, dropping frame")
            return False
        except (anyio.ClosedResourceError, anyio.BrokenResourceError):
            return False
        return True

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._send_stream.close()
        if not self._draining:
            self._receive_stream.close()

        callbacks, self._close_callbacks = self._close_callbacks, []
        for callback in callbacks:
            callback(self)

    async def frames(self, keepalive: float | None = None) -> AsyncIterator[str | None]:
        """Yield queued frames until the stream closes.

        With ``keepalive`` set, ``None`` is yielded whenever that many seconds
        pass without a frame. Leaving the iteration, for whatever reason,
        closes the stream.
        """
        self._draining = True
        try:
            while True:
                frame: str | None = None
                # the deadline only covers the wait; never yield inside the scope
                with anyio.move_on_after(keepalive):
                    try:
                        frame = await self._receive_stream.receive()
                    except (anyio.EndOfStream, anyio.ClosedResourceError):
                        return
                yield frame
        finally:
            self.close()
            self._receive_stream.close()


class StreamRegistry:
    """Session id -> open SSE stream, for the lifetime of the connection only."""

    def __init__(self) -> None:
        self._streams: dict[str, EventStream] = {}

    def __len__(self) -> int:
        return len(self._streams)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._streams

    def open(self, session_id: str) -> EventStream:
        """Create and register a stream; it unregisters itself when closed."""
        previous = self._streams.get(session_id)
        if previous is not None:
            previous.close()

        stream = EventStream(session_id)
        self._streams[session_id] = stream
        stream.on_close(self._unregister)
        return stream

    def get(self, session_id: str) -> EventStream | None:
        stream = self._streams.get(session_id)
        if stream is None or stream.closed:
            return None
        return stream

    def _unregister(self, stream: EventStream) -> None:
        if self._streams.get(stream.session_id) is stream:
            del self._streams[stream.session_id]

    def close_all(self) -> None:
        for stream in list(self._streams.values()):
            stream.close()
