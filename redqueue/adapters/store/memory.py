"""
InMemoryStore — asyncio-based store for testing and development.

Holds hashes, lists and sets in plain Python containers keyed by the full
store key, so several queues can share one store exactly as they would share
a Redis database. Lists keep Redis orientation: index 0 is the left end.

Every mutation runs without an await in the middle, which makes it atomic
within a single event loop. The only suspension point is move_next(), which
waits on an asyncio.Condition until a waiting list gains an id.

Zero external dependencies. Safe for multiple concurrent coroutines in a
single event loop. NOT safe across processes or threads.
"""
from __future__ import annotations

import asyncio
import dataclasses
from collections import deque

from redqueue.core.keys import QueueKeys
from redqueue.domain.models import JobStatus, QueueCounts


@dataclasses.dataclass(eq=False)
class InMemoryStore:
    """In-process store mirroring the Redis adapter's semantics."""

    def __post_init__(self) -> None:
        self.hashes: dict[str, dict[str, str]] = {}
        self.lists: dict[str, deque[str]] = {}
        self.sets: dict[str, set[str]] = {}
        self._pushed: asyncio.Condition = asyncio.Condition()

    # ------------------------------------------------------------------ #
    # QueueStorePort                                                       #
    # ------------------------------------------------------------------ #

    async def admit(self, keys: QueueKeys, job_id: str, record: str) -> str | None:
        jobs = self.hashes.setdefault(keys.jobs, {})
        if job_id in jobs:
            return None
        jobs[job_id] = record
        self.lists.setdefault(keys.waiting, deque()).appendleft(job_id)
        await self._notify()
        return job_id

    async def remove(self, keys: QueueKeys, job_id: str, force: bool = False) -> bool:
        if not force and (
            job_id in self.sets.get(keys.succeeded, ())
            or job_id in self.sets.get(keys.failed, ())
        ):
            return False
        for key in (keys.waiting, keys.active):
            self._lrem(key, job_id)
        for key in (keys.succeeded, keys.failed):
            self._srem(key, job_id)
        self._hdel(keys.jobs, job_id)
        return True

    async def move_next(self, keys: QueueKeys, timeout: float) -> str | None:
        async with self._pushed:
            try:
                await asyncio.wait_for(
                    self._pushed.wait_for(lambda: bool(self.lists.get(keys.waiting))),
                    timeout,
                )
            except TimeoutError:
                return None
            job_id = self.lists[keys.waiting].pop()
            self._clean(self.lists, keys.waiting)
            self.lists.setdefault(keys.active, deque()).appendleft(job_id)
            return job_id

    async def load(self, keys: QueueKeys, job_id: str) -> str | None:
        return self.hashes.get(keys.jobs, {}).get(job_id)

    async def complete(
        self,
        keys: QueueKeys,
        job_id: str,
        status: JobStatus,
        record: str | None,
    ) -> bool:
        if not status.is_terminal:
            raise ValueError(f"cannot complete a job with status {status.value!r}")
        if job_id not in self.lists.get(keys.active, ()):
            return False
        self._lrem(keys.active, job_id)
        if record is None:
            self._hdel(keys.jobs, job_id)
            return True
        target = keys.succeeded if status is JobStatus.SUCCEEDED else keys.failed
        self.hashes.setdefault(keys.jobs, {})[job_id] = record
        self.sets.setdefault(target, set()).add(job_id)
        return True

    async def requeue_active(self, keys: QueueKeys) -> int:
        active = self.lists.pop(keys.active, deque())
        if not active:
            return 0
        waiting = self.lists.setdefault(keys.waiting, deque())
        moved = len(active)
        # Newest first onto the right end, so the oldest ends up next in line.
        while active:
            waiting.append(active.popleft())
        await self._notify()
        return moved

    async def counts(self, keys: QueueKeys) -> QueueCounts:
        return QueueCounts(
            waiting=len(self.lists.get(keys.waiting, ())),
            active=len(self.lists.get(keys.active, ())),
            succeeded=len(self.sets.get(keys.succeeded, ())),
            failed=len(self.sets.get(keys.failed, ())),
        )

    async def destroy(self, keys: QueueKeys) -> None:
        for key in keys.all():
            self.hashes.pop(key, None)
            self.lists.pop(key, None)
            self.sets.pop(key, None)

    # ------------------------------------------------------------------ #
    # Helpers                                                              #
    # ------------------------------------------------------------------ #

    def exists(self, key: str) -> bool:
        """True if `key` currently holds any data (Redis drops empty containers)."""
        return bool(self.hashes.get(key) or self.lists.get(key) or self.sets.get(key))

    async def _notify(self) -> None:
        async with self._pushed:
            self._pushed.notify_all()

    def _lrem(self, key: str, value: str) -> None:
        items = self.lists.get(key)
        if items is None:
            return
        self.lists[key] = deque(v for v in items if v != value)
        self._clean(self.lists, key)

    def _srem(self, key: str, value: str) -> None:
        self.sets.get(key, set()).discard(value)
        self._clean(self.sets, key)

    def _hdel(self, key: str, field: str) -> None:
        self.hashes.get(key, {}).pop(field, None)
        self._clean(self.hashes, key)

    @staticmethod
    def _clean(containers: dict, key: str) -> None:
        if key in containers and not containers[key]:
            del containers[key]
