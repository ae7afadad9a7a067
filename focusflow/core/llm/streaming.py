"""Bounded producer/consumer stream of normalized completion chunks."""

from __future__ import annotations

import asyncio
import weakref
from typing import Any, Awaitable, Callable

from focusflow.core.llm.types import StreamChunk
from focusflow.errors import FocusFlowError, NetworkError
from focusflow.utils.logging import get_logger

log = get_logger(__name__)

STREAM_CAPACITY = 32

_END = object()


class ChunkSender:
    """Producer half of a :class:`ChunkStream`."""

    def __init__(self, queue: asyncio.Queue[Any], closed: asyncio.Event) -> None:
        self._queue = queue
        self._closed = closed

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    async def send(self, chunk: StreamChunk) -> bool:
        """Enqueue a chunk, waiting while the queue is full.

        Returns False once the consumer has gone away; the producer should stop.
        """
        if self._closed.is_set():
            return False
        await self._queue.put(chunk)
        return True

    async def _finish(self, item: Any) -> None:
        if not self._closed.is_set():
            await self._queue.put(item)


Producer = Callable[[ChunkSender], Awaitable[None]]


async def _run_producer(producer: Producer, sender: ChunkSender, name: str) -> None:
    try:
        await producer(sender)
    except asyncio.CancelledError:
        log.debug("stream_producer_cancelled", stream=name)
        raise
    except FocusFlowError as e:
        log.warning("stream_producer_failed", stream=name, error=str(e))
        await sender._finish(e)
        return
    except Exception as e:
        log.exception("stream_producer_crashed", stream=name)
        await sender._finish(NetworkError(f"Stream error: {e}"))
        return
    await sender._finish(_END)


def _abandon(task: asyncio.Task[None], closed: asyncio.Event) -> None:
    closed.set()
    if not task.done():
        task.cancel()


class ChunkStream:
    """Ordered, finite, non-restartable sequence of :class:`StreamChunk`.

    A background task runs ``producer`` and pushes chunks onto a bounded queue,
    so a slow consumer blocks the producer instead of dropping chunks. The
    consumer stops the producer by calling :meth:`aclose` (or by leaving an
    ``async with`` block); dropping the last reference to the stream has the
    same effect. Errors raised by the producer are re-raised from iteration.
    """

    def __init__(
        self,
        producer: Producer,
        *,
        capacity: int = STREAM_CAPACITY,
        name: str = "stream",
    ) -> None:
        self._queue: asyncio.Queue[Any] = asyncio.Queue(maxsize=capacity)
        self._closed = asyncio.Event()
        self._done = False
        self._name = name
        sender = ChunkSender(self._queue, self._closed)
        self._task = asyncio.create_task(
            _run_producer(producer, sender, name), name=f"stream-{name}"
        )
        # The producer task holds no reference to self, so garbage collection
        # of an abandoned stream cancels it.
        self._finalizer = weakref.finalize(self, _abandon, self._task, self._closed)

    def __aiter__(self) -> ChunkStream:
        return self

    async def __anext__(self) -> StreamChunk:
        if self._done:
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is _END:
            self._stop()
            raise StopAsyncIteration
        if isinstance(item, BaseException):
            self._stop()
            raise item
        if item.finish_reason is not None:
            self._stop()
        return item

    async def __aenter__(self) -> ChunkStream:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def _stop(self) -> None:
        self._done = True
        self._finalizer()

    async def aclose(self) -> None:
        self._stop()
        await asyncio.gather(self._task, return_exceptions=True)
