"""
Fixed-size pool of segment download workers fed by one queue.
"""

import asyncio
from typing import List, Optional

from .fetcher import Segment, SegmentFetcher
from .logger import get_logger


_CLOSED = object()


class SegmentWorkerPool:
    """
    Workers pull one segment at a time until the pool is closed.

    The poller is the only producer. Closing the pool lets every worker
    finish the segments already queued (or drops them when discarding) and
    waits for the workers to exit.
    """

    def __init__(
        self,
        fetcher: SegmentFetcher,
        workers: int = 2,
        queue_size: int = 0
    ):
        """
        Initialize worker pool.

        Args:
            fetcher: Downloader run for every segment.
            workers: Number of concurrent workers.
            queue_size: Queue capacity, 0 for unbounded.
        """
        self.fetcher = fetcher
        self.workers = workers
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=queue_size)
        self._tasks: List[asyncio.Task] = []
        self._closed = False
        self._logger = get_logger('workers')

    @property
    def closed(self) -> bool:
        return self._closed

    def start(self) -> None:
        """Start the worker tasks."""
        if self._tasks:
            return
        self._tasks = [
            asyncio.create_task(self._worker(i), name=f"segment-worker-{i}")
            for i in range(self.workers)
        ]

    async def put(self, segment: Segment) -> None:
        """Queue a segment for download."""
        if self._closed:
            raise RuntimeError("Worker pool is closed")
        await self._queue.put(segment)
        self.fetcher.stats.queued += 1

    async def close(self, discard_pending: bool = False) -> None:
        """
        Stop accepting segments and wait for the workers to exit.

        Args:
            discard_pending: Drop queued segments that no worker picked up yet.
        """
        if self._closed:
            return
        self._closed = True

        if discard_pending:
            dropped = self._drain()
            if dropped:
                self._logger.info(f"Discarded {dropped} queued segments")

        for _ in self._tasks:
            await self._queue.put(_CLOSED)

        await asyncio.gather(*self._tasks)

    async def abort(self) -> None:
        """Cancel the workers without waiting for in-flight downloads."""
        self._closed = True
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)

    def _drain(self) -> int:
        dropped = 0
        while True:
            try:
                self._queue.get_nowait()
            except asyncio.QueueEmpty:
                return dropped
            self._queue.task_done()
            dropped += 1

    async def _worker(self, index: int) -> None:
        while True:
            segment: Optional[Segment] = await self._queue.get()
            try:
                if segment is _CLOSED:
                    return
                await self.fetcher.fetch(segment)
            except Exception as e:
                self._logger.error(f"Worker {index} failed on segment: {e}", exc_info=True)
            finally:
                self._queue.task_done()
