"""
PDTM Serial Work Queue

Single-consumer FIFO queue that serializes every state-touching unit of work
(session graph mutations, classification, aggregate read-modify-write).

Units are either plain callables (run in a worker thread, still one at a
time) or coroutine functions (awaited on the loop). A failing unit is logged
and, for submit(), its exception is handed to the waiting caller; the next
unit still runs.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Callable, Optional, Tuple


logger = logging.getLogger(__name__)


_STOP = object()


class QueueNotRunningError(RuntimeError):
    """Raised when work is submitted to a queue that was never started or is stopped."""
    pass


class SerialWorkQueue:
    """
    Ordered work queue with exactly one consumer task.

    Usage:
        queue = SerialWorkQueue()
        await queue.start()
        queue.enqueue(orchestrator.handle_navigation, event)
        record = await queue.submit(orchestrator.recompute_risk, "example.com")
        await queue.stop()
    """

    def __init__(self, name: str = "pdtm") -> None:
        self.name = name
        self._queue: Optional[asyncio.Queue] = None
        self._consumer: Optional[asyncio.Task] = None
        self._closing = False
        self.processed = 0
        self.failed = 0

    @property
    def running(self) -> bool:
        return not self._closing and self._consumer is not None and not self._consumer.done()

    async def start(self) -> None:
        if self.running:
            return
        self._closing = False
        self._queue = asyncio.Queue()
        self._consumer = asyncio.create_task(self._consume(), name=f"{self.name}-work-queue")
        logger.info(f"Work queue '{self.name}' started")

    async def stop(self) -> None:
        """Drain pending units, then stop the consumer."""
        if not self.running:
            return
        self._closing = True
        await self._queue.put((_STOP, (), {}, None))
        await self._consumer
        self._consumer = None
        self._fail_pending()
        logger.info(
            f"Work queue '{self.name}' stopped (processed={self.processed}, failed={self.failed})"
        )

    async def join(self) -> None:
        """Wait until every unit enqueued so far has run."""
        if self._queue is not None:
            await self._queue.join()

    def enqueue(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> None:
        """Fire-and-forget: schedule a unit, do not wait for it."""
        self._ensure_running()
        self._queue.put_nowait((fn, args, kwargs, None))

    async def submit(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        """Schedule a unit and wait for its result (or its exception)."""
        self._ensure_running()
        future = asyncio.get_running_loop().create_future()
        self._queue.put_nowait((fn, args, kwargs, future))
        return await future

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _fail_pending(self) -> None:
        while not self._queue.empty():
            fn, _, _, future = self._queue.get_nowait()
            self._queue.task_done()
            if future is not None and not future.done():
                future.set_exception(QueueNotRunningError(f"Work queue '{self.name}' stopped"))
            logger.warning(f"Dropped unit {getattr(fn, '__qualname__', fn)} queued after stop")

    def _ensure_running(self) -> None:
        if not self.running:
            raise QueueNotRunningError(f"Work queue '{self.name}' is not running")

    async def _consume(self) -> None:
        while True:
            item: Tuple[Any, tuple, dict, Optional[asyncio.Future]] = await self._queue.get()
            fn, args, kwargs, future = item
            try:
                if fn is _STOP:
                    return
                await self._run_unit(fn, args, kwargs, future)
            finally:
                self._queue.task_done()

    async def _run_unit(self, fn, args, kwargs, future) -> None:
        try:
            if inspect.iscoroutinefunction(fn):
                result = await fn(*args, **kwargs)
            else:
                result = await asyncio.to_thread(fn, *args, **kwargs)
        except Exception as e:
            self.failed += 1
            logger.error(f"Work unit {getattr(fn, '__qualname__', fn)} failed: {e}", exc_info=True)
            if future is not None and not future.done():
                future.set_exception(e)
            return

        self.processed += 1
        if future is not None and not future.done():
            future.set_result(result)
