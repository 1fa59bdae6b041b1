"""
ReplicationQueue: mirrors newly stored instances to Deep Intelligence.

Architecture:
  - Inserts append already-committed instances to an in-memory FIFO (enqueue)
  - notify() flags that the remote source needs an update and wakes the worker
  - A single long-lived asyncio.Task takes up to BATCH_SIZE instances from the
    head of the queue and pushes them, retrying the same batch every
    RETRY_DELAY seconds until it is accepted
  - Batches are never dropped, split or reordered; the next batch is only
    taken once the current one has been delivered

Delivery is at-least-once. Pending instances live only in memory, so
whatever has not been delivered when the process exits is lost.

Usage:
    queue = ReplicationQueue(client.push_instances)
    await queue.start()

    queue.enqueue(instances)   # after a successful insert
    queue.notify()

    await queue.stop()         # abandons the in-flight batch
"""

import asyncio
import logging
from collections import deque
from collections.abc import Awaitable, Callable
from typing import Optional

logger = logging.getLogger(__name__)

# Max instances per push
BATCH_SIZE = 100

# Seconds to wait before retrying a failed push
RETRY_DELAY = 5.0

PushFunc = Callable[[list[list]], Awaitable[None]]


class ReplicationQueue:
    """
    Multi-producer, single-consumer queue with one background delivery worker.
    """

    def __init__(
        self,
        push: PushFunc,
        batch_size: int = BATCH_SIZE,
        retry_delay: float = RETRY_DELAY,
    ):
        """
        Args:
            push: async callable delivering one batch; raising means the
                  batch was not accepted and must be retried.
            batch_size: Max instances per push (default 100).
            retry_delay: Seconds between delivery attempts (default 5).
        """
        self._push = push
        self._batch_size = batch_size
        self._retry_delay = retry_delay
        self._pending: deque = deque()
        self._update_required = False
        self._wake = asyncio.Event()
        self._task: Optional[asyncio.Task] = None
        self._running = False

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    # ------------------------------------------------------------------
    # Producers
    # ------------------------------------------------------------------

    def enqueue(self, instances: list[list]) -> None:
        """Append committed instances. Does not wake the worker."""
        self._pending.extend(instances)

    def notify(self) -> None:
        """Mark that the remote source needs an update and wake the worker."""
        self._update_required = True
        self._wake.set()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Start the delivery worker."""
        if self.is_running:
            logger.warning("Replication worker already running")
            return
        self._running = True
        self._task = asyncio.create_task(self._loop(), name="replication-worker")
        logger.info(f"Replication worker started (batch_size={self._batch_size}, retry_delay={self._retry_delay}s)")

    async def stop(self) -> None:
        """Stop looping. An in-flight batch is abandoned, not drained."""
        self._running = False
        self._wake.set()
        if self._task and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None
        if self._pending:
            logger.warning(f"Replication worker stopped with {len(self._pending)} instance(s) not replicated")
        else:
            logger.info("Replication worker stopped")

    # ------------------------------------------------------------------
    # Worker
    # ------------------------------------------------------------------

    async def _loop(self) -> None:
        while self._running:
            await self._wake.wait()
            self._wake.clear()

            if not self._running:
                break

            if not self._update_required and not self._pending:
                continue

            batch = self._take_batch()
            self._update_required = False

            await self._deliver(batch)

            # Backlog larger than one batch: keep going without another notify
            if self._pending:
                self._wake.set()

    def _take_batch(self) -> list[list]:
        size = min(self._batch_size, len(self._pending))
        return [self._pending.popleft() for _ in range(size)]

    async def _deliver(self, batch: list[list]) -> None:
        """Push the batch until it is accepted."""
        attempt = 0
        while True:
            attempt += 1
            try:
                await self._push(batch)
            except Exception as e:
                logger.error(f"Replication push failed (attempt {attempt}, {len(batch)} instance(s)): {e}")
                logger.warning(f"Retrying replication in {self._retry_delay}s ({len(self._pending)} more pending)")
                await asyncio.sleep(self._retry_delay)
                continue

            logger.info(f"[UPDATE] External source updated ({len(batch)} instance(s), {len(self._pending)} pending)")
            return
