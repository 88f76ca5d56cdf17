"""Delivery of session output to a consumer.

The reader thread never calls the consumer itself: it enqueues each chunk,
and the chunks are delivered either by a dedicated dispatcher thread or by
the caller draining the queue on its own thread. Chunks of one session are
always delivered in the order they were read.
"""

import queue
import threading
from typing import Callable, Optional

from ..utils.logging import get_logger

logger = get_logger(__name__)

OutputConsumer = Callable[[str], None]

_END = object()


class OutputDispatcher:
    """Single-producer queue of decoded output chunks for one session."""

    def __init__(self, name: str = "output"):
        self.name = name
        self._queue: "queue.Queue[object]" = queue.Queue()
        self._consumer: Optional[OutputConsumer] = None
        self._thread: Optional[threading.Thread] = None
        self._deliver_lock = threading.Lock()
        self._close_lock = threading.Lock()
        self._closed = False

    def set_consumer(self, consumer: Optional[OutputConsumer]) -> None:
        self._consumer = consumer

    def put(self, chunk: str) -> None:
        """Enqueue a chunk (reader thread only)."""
        self._queue.put(chunk)

    def close(self) -> None:
        """Mark the end of the stream; the dispatcher thread exits after it."""
        with self._close_lock:
            if self._closed:
                return
            self._closed = True
        self._queue.put(_END)

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def _deliver(self, chunk: str) -> None:
        consumer = self._consumer
        if consumer is None:
            return
        try:
            consumer(chunk)
        except Exception:
            logger.exception(f"Output consumer of {self.name} raised")

    def drain(self, timeout: Optional[float] = None) -> int:
        """
        Deliver queued chunks on the calling thread.

        Args:
            timeout: Seconds to wait for the first chunk (None = don't wait)

        Returns:
            Number of chunks delivered
        """
        delivered = 0
        with self._deliver_lock:
            block = timeout is not None
            while True:
                try:
                    item = self._queue.get(block=block, timeout=timeout)
                except queue.Empty:
                    break
                block = False
                if item is _END:
                    # Keep the marker for a dispatcher thread that may start later
                    self._queue.put(_END)
                    break
                self._deliver(item)
                delivered += 1
        return delivered

    def start(self) -> None:
        """Start delivering on a dedicated dispatcher thread."""
        if self._thread is not None and self._thread.is_alive():
            return
        self._thread = threading.Thread(
            target=self._dispatch_loop, name=f"dispatch-{self.name}", daemon=True
        )
        self._thread.start()

    def _dispatch_loop(self) -> None:
        while True:
            item = self._queue.get()
            if item is _END:
                break
            with self._deliver_lock:
                self._deliver(item)
        logger.debug(f"Dispatcher for {self.name} stopped")

    def join(self, timeout: Optional[float] = None) -> None:
        if self._thread is not None:
            self._thread.join(timeout)
