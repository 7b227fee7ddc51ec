"""
End-to-end tests against a real Redis server.

Skipped unless REDQUEUE_TEST_REDIS_URL is set, e.g.
    REDQUEUE_TEST_REDIS_URL=redis://localhost:6379/15 pytest tests/test_redis_integration.py
"""
import os
import uuid
from collections.abc import AsyncIterator
from datetime import timedelta
from typing import Any

import pytest

from conftest import wait_until
from redqueue.adapters.store.redis import RedisStore
from redqueue.core.queue import Queue
from redqueue.domain.models import JobStatus

REDIS_URL = os.getenv("REDQUEUE_TEST_REDIS_URL")

pytestmark = pytest.mark.skipif(
    REDIS_URL is None, reason="REDQUEUE_TEST_REDIS_URL not set"
)


@pytest.fixture
async def redis_store() -> AsyncIterator[RedisStore]:
    store = RedisStore.from_url(REDIS_URL, max_connections=32)  # type: ignore[arg-type]
    yield store
    await store.close()


@pytest.fixture
async def queue(redis_store: RedisStore) -> AsyncIterator[Queue[Any]]:
    q: Queue[Any] = Queue(
        redis_store,
        f"it-{uuid.uuid4().hex[:8]}",
        poll_timeout=timedelta(milliseconds=100),
    )
    yield q
    await q.close()
    await q.destroy()


async def test_duplicate_admission_rejected(queue: Queue[Any]):
    assert await queue.add("first", job_id="same") == "same"
    assert await queue.add("second", job_id="same") is None
    job = await queue.get_job("same")
    assert job is not None
    assert job.data == "first"
    assert job.status == JobStatus.WAITING


async def test_end_to_end(queue: Queue[Any], redis_store: RedisStore):
    events: list[str] = []
    queue.on("succeeded", events.append)
    ids = [await queue.add({"id": i, "data": chr(ord("a") + i)}) for i in range(20)]

    queue.process(lambda data: None, concurrency=3)
    await wait_until(lambda: len(events) == 20)

    assert sorted(events) == sorted(ids)
    for job_id in ids:
        job = await queue.get_job(job_id)  # type: ignore[arg-type]
        assert job is not None
        assert job.status == JobStatus.SUCCEEDED
    counts = await queue.counts()
    assert (counts.waiting, counts.active, counts.succeeded) == (0, 0, 20)


async def test_fifo_single_slot(queue: Queue[Any]):
    seen: list[str] = []
    for name in ("A", "B", "C"):
        await queue.add(name)
    queue.process(seen.append)
    await wait_until(lambda: len(seen) == 3)
    assert seen == ["A", "B", "C"]


async def test_removal_guard(queue: Queue[Any]):
    failed: list[str] = []
    queue.on("failed", lambda job_id, error: failed.append(job_id))

    def worker(data: Any) -> None:
        raise RuntimeError("nope")

    job_id = await queue.add("x")
    queue.process(worker)
    await wait_until(lambda: failed == [job_id])

    assert await queue.remove_job(job_id) is False  # type: ignore[arg-type]
    assert (await queue.counts()).failed == 1
    assert await queue.remove_job(job_id, force=True) is True  # type: ignore[arg-type]
    assert (await queue.counts()).failed == 0


async def test_completion_skipped_for_removed_job(
    queue: Queue[Any], redis_store: RedisStore
):
    job_id = await queue.add("x")
    assert await redis_store.move_next(queue.keys, 0.1) == job_id
    assert await queue.remove_job(job_id) is True  # type: ignore[arg-type]
    recorded = await redis_store.complete(
        queue.keys, job_id, JobStatus.SUCCEEDED, "{}"  # type: ignore[arg-type]
    )
    assert recorded is False
    assert await queue.get_job(job_id) is None  # type: ignore[arg-type]
    assert (await queue.counts()).succeeded == 0


async def test_requeue_orphaned(queue: Queue[Any], redis_store: RedisStore):
    first = await queue.add("a")
    await queue.add("b")
    assert await redis_store.move_next(queue.keys, 0.1) == first
    assert await queue.requeue_orphaned() == 1
    assert await redis_store.move_next(queue.keys, 0.1) == first


async def test_destroy(queue: Queue[Any], redis_store: RedisStore):
    await queue.add("a")
    await queue.destroy()
    assert await redis_store.client.exists(*queue.keys.all()) == 0
