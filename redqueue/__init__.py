"""
redqueue — Redis-backed job queue with FIFO delivery and bounded concurrency.

Jobs are admitted with an atomic Lua script (record + waiting-list entry in
one step, at most once per id), handed to workers with a blocking
pop-and-push (BLMOVE waiting → active, so no two consumers ever receive the
same id), and finished with one atomic script that records the terminal
state according to the queue's retention policy, provided the job was still
active.

Any number of processes may run process() against the same queue name;
each job is delivered to exactly one of them.

Quick start
-----------
    import asyncio
    from redqueue import Queue, RedisStore

    async def send_email(data: dict) -> None:
        print("sending to", data["to"])

    async def main():
        store = RedisStore.from_url("redis://localhost:6379/0")

        async with Queue(store, "emails") as q:
            q.on("succeeded", lambda job_id: print("done", job_id))
            await q.add({"to": "user@example.com"})
            q.process(send_email, concurrency=4)
            await asyncio.sleep(1)

        await store.close()

    asyncio.run(main())

Store adapters
--------------
  - RedisStore     — redis.asyncio client (production)
  - InMemoryStore  — for tests and examples (single event loop)

Custom adapters implement the QueueStorePort protocol.

Architecture
------------
Follows the Ports & Adapters pattern:
  domain/   — pure value types (Job, JobStatus, QueueCounts) and errors
  ports/    — Protocol interfaces (QueueStorePort)
  core/     — business logic (Queue, EventNotifier, keys, codec)
  adapters/ — concrete store implementations and Lua scripts
"""
from __future__ import annotations

from redqueue.adapters.store.memory import InMemoryStore
from redqueue.adapters.store.redis import RedisStore
from redqueue.core.events import EventNotifier
from redqueue.core.keys import QueueKeys, to_key
from redqueue.core.queue import Queue
from redqueue.domain.errors import QueueClosedError, RedQueueError, StoreError
from redqueue.domain.models import Job, JobOwner, JobStatus, QueueCounts
from redqueue.ports.store import QueueStorePort

__all__ = [
    # Domain models
    "Job",
    "JobOwner",
    "JobStatus",
    "QueueCounts",
    # Errors
    "RedQueueError",
    "QueueClosedError",
    "StoreError",
    # Port (for typing custom adapters)
    "QueueStorePort",
    # High-level queue API
    "Queue",
    "EventNotifier",
    "QueueKeys",
    "to_key",
    # Store adapters
    "InMemoryStore",
    "RedisStore",
]
