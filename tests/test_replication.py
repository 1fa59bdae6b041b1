"""
Tests for ReplicationQueue

The push function is replaced by a recorder; retry_delay is zero so failed
batches are retried on the next loop iteration.
"""

import asyncio

import pytest

from errors import ReplicationError
from replication import BATCH_SIZE, RETRY_DELAY, ReplicationQueue


class Recorder:
    """Push function that records batches and can fail on demand."""

    def __init__(self, failures=0):
        self.failures = failures
        self.attempts = []
        self.delivered = []
        self.blocker = None

    async def __call__(self, batch):
        self.attempts.append(list(batch))
        if self.blocker is not None:
            await self.blocker.wait()
        if self.failures > 0:
            self.failures -= 1
            raise ReplicationError("Status code: 503", status_code=503)
        self.delivered.append(list(batch))


async def wait_for(condition, timeout=2.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not condition():
        if loop.time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.001)


@pytest.fixture
async def queues():
    """Factory for started queues, all stopped after the test."""
    created = []

    async def make(push, batch_size=BATCH_SIZE):
        queue = ReplicationQueue(push, batch_size=batch_size, retry_delay=0)
        await queue.start()
        created.append(queue)
        return queue

    yield make

    for queue in created:
        await queue.stop()


def test_defaults():
    assert BATCH_SIZE == 100
    assert RETRY_DELAY == 5.0


@pytest.mark.asyncio
async def test_batches_are_delivered_in_order(queues):
    push = Recorder()
    queue = await queues(push, batch_size=2)

    queue.enqueue([["a"], ["b"], ["c"]])
    queue.notify()

    await wait_for(lambda: len(push.delivered) == 2)
    assert push.delivered == [[["a"], ["b"]], [["c"]]]
    assert queue.pending_count == 0


@pytest.mark.asyncio
async def test_failed_batch_is_retried_unchanged(queues):
    push = Recorder(failures=2)
    queue = await queues(push)

    queue.enqueue([[1.0, "x"], [2.0, "y"]])
    queue.notify()

    await wait_for(lambda: push.delivered)
    assert len(push.attempts) == 3
    assert all(attempt == [[1.0, "x"], [2.0, "y"]] for attempt in push.attempts)
    assert push.delivered == [[[1.0, "x"], [2.0, "y"]]]


@pytest.mark.asyncio
async def test_later_batch_waits_for_failing_batch(queues):
    push = Recorder(failures=3)
    queue = await queues(push, batch_size=2)

    queue.enqueue([["b1"], ["b1"]])
    queue.notify()
    await wait_for(lambda: len(push.attempts) >= 1)

    queue.enqueue([["b2"]])
    queue.notify()

    await wait_for(lambda: len(push.delivered) == 2)
    assert push.delivered == [[["b1"], ["b1"]], [["b2"]]]
    assert all(attempt == [["b1"], ["b1"]] for attempt in push.attempts[:4])


@pytest.mark.asyncio
async def test_enqueue_alone_does_not_push(queues):
    push = Recorder()
    queue = await queues(push)

    queue.enqueue([["a"]])
    for _ in range(20):
        await asyncio.sleep(0)

    assert push.attempts == []
    assert queue.pending_count == 1


@pytest.mark.asyncio
async def test_notify_without_instances_pushes_empty_batch(queues):
    push = Recorder()
    queue = await queues(push)

    queue.notify()

    await wait_for(lambda: push.delivered)
    assert push.delivered == [[]]


@pytest.mark.asyncio
async def test_backlog_drains_without_further_notifications(queues):
    push = Recorder()
    queue = await queues(push, batch_size=10)

    queue.enqueue([[i] for i in range(35)])
    queue.notify()

    await wait_for(lambda: queue.pending_count == 0 and len(push.delivered) == 4)
    assert [len(batch) for batch in push.delivered] == [10, 10, 10, 5]
    assert [row[0] for batch in push.delivered for row in batch] == list(range(35))


@pytest.mark.asyncio
async def test_stop_abandons_in_flight_batch():
    push = Recorder()
    push.blocker = asyncio.Event()
    queue = ReplicationQueue(push, retry_delay=0)
    await queue.start()

    queue.enqueue([["a"]])
    queue.notify()
    await wait_for(lambda: push.attempts)

    await queue.stop()

    assert not queue.is_running
    assert push.delivered == []


@pytest.mark.asyncio
async def test_start_is_idempotent(queues):
    queue = await queues(Recorder())
    task = queue._task

    await queue.start()

    assert queue._task is task
    assert queue.is_running
