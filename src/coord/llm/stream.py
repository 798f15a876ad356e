"""Live segment streams with a final aggregate.

Every generation call returns a :class:`StreamContent` immediately.  One
worker task produces segments into a bounded queue; the caller is the
only consumer.  The final fields (``error``, ``content``, ``usage``,
``finish_reason``) are written by the worker and become readable once
the stream is closed.  Reading them earlier raises
:class:`~coord.errors.StreamNotFinishedError`.

Usage::

    stream = model.generate_stream(chat, text_content(Role.USER, "hi"))
    async for segment in stream:
        ...
    if stream.error is not None:
        ...
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

from coord.errors import StreamCancelledError, StreamNotFinishedError
from coord.types import Content, FinishReason, Role, Segment, UsageData

_logger = logging.getLogger(__name__)

# Queue capacity between the worker and the consumer.  A performance knob
# only: once it is full the worker waits for the consumer to catch up.
STREAM_BUFFER_SIZE = 128

_CLOSED = object()


class StreamWriter:
    """Producer-side handle passed to a stream worker.

    The worker calls :meth:`send` for every live segment and fills in the
    aggregate attributes before returning.
    """

    def __init__(self, queue: asyncio.Queue) -> None:
        self._queue = queue
        self.content = Content(role=Role.MODEL)
        self.usage: UsageData | None = None
        self.finish_reason = FinishReason.UNKNOWN
        self.error: BaseException | None = None
        self.sent = 0

    async def send(self, segment: Segment) -> None:
        """Deliver *segment* to the consumer, waiting while the queue is full."""
        await self._queue.put(segment)
        self.sent += 1


StreamWorker = Callable[[StreamWriter], Awaitable[None]]


class StreamContent:
    """Single-consumer async iterator of segments plus the final result."""

    def __init__(self, maxsize: int = STREAM_BUFFER_SIZE) -> None:
        self._queue: asyncio.Queue = asyncio.Queue(maxsize)
        self._closed = False
        self._task: asyncio.Task | None = None
        self._watcher: asyncio.Task | None = None
        self._error: BaseException | None = None
        self._content = Content(role=Role.MODEL)
        self._usage: UsageData | None = None
        self._finish_reason = FinishReason.UNKNOWN

    # ------------------------------------------------------------------
    # Consumer side
    # ------------------------------------------------------------------

    def __aiter__(self) -> StreamContent:
        return self

    async def __anext__(self) -> Segment:
        if self._closed and self._queue.empty():
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is _CLOSED:
            raise StopAsyncIteration
        return item

    async def collect(self) -> Content:
        """Drain the live sequence and return the final content."""
        async for _ in self:
            pass
        return self.content

    async def aclose(self) -> None:
        """Stop the worker if it is still running and wait for it to exit."""
        task = self._task
        if task is not None and not task.done():
            task.cancel()
            await asyncio.wait([task])

    @property
    def closed(self) -> bool:
        """True once the worker has finished and the final fields are set."""
        return self._closed

    @property
    def error(self) -> BaseException | None:
        self._check_closed("error")
        return self._error

    @property
    def content(self) -> Content:
        self._check_closed("content")
        return self._content

    @property
    def usage(self) -> UsageData | None:
        self._check_closed("usage")
        return self._usage

    @property
    def finish_reason(self) -> FinishReason:
        self._check_closed("finish_reason")
        return self._finish_reason

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _check_closed(self, name: str) -> None:
        if not self._closed:
            raise StreamNotFinishedError(
                f"StreamContent.{name} is only available after the stream is closed"
            )

    def _finish(self, writer: StreamWriter) -> None:
        if self._closed:
            return
        self._error = writer.error
        self._content = writer.content
        self._usage = writer.usage
        self._finish_reason = writer.finish_reason
        self._closed = True
        if self._watcher is not None:
            self._watcher.cancel()
        # A full queue means the consumer is not waiting; it stops on
        # the closed flag once the queue is drained.
        try:
            self._queue.put_nowait(_CLOSED)
        except asyncio.QueueFull:
            pass


def closed_stream(
    error: BaseException | None = None,
    content: Content | None = None,
) -> StreamContent:
    """Return an already-closed stream carrying *error* and/or *content*."""
    stream = StreamContent()
    writer = StreamWriter(stream._queue)
    writer.error = error
    if content is not None:
        writer.content = content
    if error is not None:
        writer.finish_reason = FinishReason.ERROR
    stream._finish(writer)
    return stream


def start_stream(
    worker: StreamWorker,
    cancel: asyncio.Event | None = None,
    maxsize: int = STREAM_BUFFER_SIZE,
) -> StreamContent:
    """Run *worker* in a new task and return the stream it feeds.

    Exceptions escaping *worker* are recorded as the stream error.  When
    *cancel* is set the worker is cancelled at its next suspension point
    and the error becomes :class:`StreamCancelledError`, overriding any
    other error.
    """
    if cancel is not None and cancel.is_set():
        return closed_stream(StreamCancelledError("generation cancelled"))

    stream = StreamContent(maxsize)
    writer = StreamWriter(stream._queue)

    async def _run() -> None:
        try:
            await worker(writer)
        except asyncio.CancelledError:
            writer.error = StreamCancelledError("generation cancelled")
        except Exception as exc:
            _logger.debug("Stream worker failed: %r", exc)
            writer.error = exc
        if (
            writer.error is not None
            and cancel is not None
            and cancel.is_set()
            and not isinstance(writer.error, StreamCancelledError)
        ):
            writer.error = StreamCancelledError("generation cancelled")
        if writer.error is not None and writer.finish_reason is FinishReason.UNKNOWN:
            writer.finish_reason = FinishReason.ERROR

    def _on_done(task: asyncio.Task) -> None:
        if task.cancelled() and writer.error is None:
            writer.error = StreamCancelledError("generation cancelled")
            writer.finish_reason = FinishReason.ERROR
        stream._finish(writer)

    task = asyncio.create_task(_run())
    task.add_done_callback(_on_done)
    stream._task = task

    if cancel is not None:
        async def _watch() -> None:
            await cancel.wait()
            task.cancel()

        stream._watcher = asyncio.create_task(_watch())

    return stream
