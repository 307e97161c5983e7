"""Status connection handle bridging the status service and the HTTP response."""

import asyncio
import logging
from typing import AsyncIterator, Callable, Dict, List, Optional

from entitysync.core.exceptions import ConnectionClosedError

logger = logging.getLogger(__name__)

CloseListener = Callable[["StatusConnection"], None]

DEFAULT_SEND_TIMEOUT = 120.0


class StatusConnection:
    """
    Transport-neutral handle for one push connection.

    Writes are buffered until ``flush()`` moves them, as a single chunk, onto
    the queue consumed by ``body()``. Closing the connection ends the body and
    notifies every registered close listener once.
    """

    def __init__(self, send_timeout: Optional[float] = DEFAULT_SEND_TIMEOUT):
        self.status_code: Optional[int] = None
        self.headers: Dict[str, str] = {}
        self.send_timeout = send_timeout
        self._buffer: List[str] = []
        self._queue: "asyncio.Queue[Optional[bytes]]" = asyncio.Queue()
        self._close_listeners: List[CloseListener] = []
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def ensure_open(self) -> None:
        if self._closed:
            raise ConnectionClosedError("Status connection is closed")

    def write_head(self, status_code: int, headers: Dict[str, str]) -> None:
        self.status_code = status_code
        self.headers = dict(headers)

    def write(self, text: str) -> None:
        if self._closed:
            logger.debug(f"Dropping write on closed connection: {text!r}")
            return
        self._buffer.append(text)

    def flush(self) -> None:
        """Hand buffered writes to the response body as one chunk."""
        if self._closed or not self._buffer:
            return
        chunk = "".join(self._buffer)
        self._buffer.clear()
        self._queue.put_nowait(chunk.encode("utf-8"))

    def disable_timeout(self) -> None:
        self.send_timeout = None

    def add_close_listener(self, listener: CloseListener) -> None:
        self._close_listeners.append(listener)

    def remove_close_listener(self, listener: CloseListener) -> None:
        if listener in self._close_listeners:
            self._close_listeners.remove(listener)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._buffer.clear()
        self._queue.put_nowait(None)
        listeners, self._close_listeners = self._close_listeners, []
        for listener in listeners:
            listener(self)

    def drain(self) -> List[bytes]:
        """Take every chunk flushed so far without waiting."""
        chunks = []
        while not self._queue.empty():
            chunk = self._queue.get_nowait()
            if chunk is None:
                # keep the end marker for body()
                self._queue.put_nowait(None)
                break
            chunks.append(chunk)
        return chunks

    async def body(self) -> AsyncIterator[bytes]:
        """Yield flushed chunks until the connection closes."""
        try:
            while True:
                chunk = await self._queue.get()
                if chunk is None:
                    break
                yield chunk
        finally:
            self.close()
