"""Background producer feeding Samples to the display loop.

The producer runs in a daemon thread and hands Samples over through a small
bounded queue, so a slow consumer throttles reading instead of letting
Samples pile up.  Nothing is dropped: the producer blocks until there is
room, waking periodically to notice cancellation.
"""

from __future__ import annotations

import queue
import threading
from typing import Iterator, Optional, Protocol

from loguru import logger

from myq.core.sample import Sample
from myq.metrics import QUEUE_DEPTH

__all__ = ["SampleFeed", "SampleSource"]

_END = object()
PUT_TIMEOUT = 0.1


class SampleSource(Protocol):
    def produce(self) -> Iterator[Sample]: ...

    def close(self) -> None: ...


class SampleFeed:
    """Iterate Samples produced by *source* on a background thread.

    Parameters
    ----------
    source : SampleSource
        An initialised source; its ``close()`` is called when production
        ends for any reason.
    maxsize : int
        Queue capacity between producer and consumer.

    Usage::

        with SampleFeed(parser) as feed:
            for sample in feed:
                cache.update(sample)
    """

    def __init__(self, source: SampleSource, maxsize: int = 1) -> None:
        if maxsize < 1:
            raise ValueError("maxsize must be at least 1")
        self._source = source
        self._queue: "queue.Queue[object]" = queue.Queue(maxsize=maxsize)
        self._cancel = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self.error: Optional[BaseException] = None

    def start(self) -> "SampleFeed":
        if self._thread is None:
            self._thread = threading.Thread(
                target=self._run, name="myq-producer", daemon=True
            )
            self._thread.start()
        return self

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    def _put(self, item: object) -> bool:
        while not self._cancel.is_set():
            try:
                self._queue.put(item, timeout=PUT_TIMEOUT)
            except queue.Full:
                continue
            QUEUE_DEPTH.set(self._queue.qsize())
            return True
        return False

    def _run(self) -> None:
        samples = self._source.produce()
        try:
            for sample in samples:
                if not self._put(sample):
                    break
        except Exception as e:
            self.error = e
            logger.exception("Sample producer failed: {}", e)
        finally:
            close = getattr(samples, "close", None)
            if close is not None:
                close()
            self._source.close()
            self._put(_END)
            logger.debug("Sample producer finished")

    def __iter__(self) -> Iterator[Sample]:
        self.start()
        while True:
            try:
                item = self._queue.get(timeout=PUT_TIMEOUT)
            except queue.Empty:
                if self._cancel.is_set():
                    return
                continue
            QUEUE_DEPTH.set(self._queue.qsize())
            if item is _END:
                return
            yield item  # type: ignore[misc]

    def cancel(self) -> None:
        """Ask the producer to stop; safe to call from a signal handler."""
        self._cancel.set()

    def close(self, timeout: float = 5.0) -> None:
        """Cancel the producer and wait for it to release its source."""
        self.cancel()
        # unblock a producer waiting on a full queue
        while True:
            try:
                self._queue.get_nowait()
            except queue.Empty:
                break
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(timeout)
        QUEUE_DEPTH.set(0)

    def __enter__(self) -> "SampleFeed":
        return self.start()

    def __exit__(self, *exc_info: object) -> None:
        self.close()
