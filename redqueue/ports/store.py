"""
QueueStorePort — the single port in redqueue.

Any object satisfying this structural Protocol can act as the store backend.
No base class or registration is required — Python's structural subtyping
(duck typing + Protocol) is sufficient.

Atomicity contract
------------------
admit, remove, move_next, complete and requeue_active must each be atomic
with respect to every other client of the same store: no caller may observe
a job's record without its list entry, or an id in two lists at once.

  RedisStore     — Lua scripts and BLMOVE
  InMemoryStore  — single asyncio event loop, no await inside a mutation
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from redqueue.core.keys import QueueKeys
from redqueue.domain.models import JobStatus, QueueCounts


@runtime_checkable
class QueueStorePort(Protocol):
    """Minimal interface required by the redqueue core."""

    async def admit(self, keys: QueueKeys, job_id: str, record: str) -> str | None:
        """
        Write `record` under `job_id` in keys.jobs and push the id onto keys.waiting.

        Returns the admitted id, or None (and writes nothing) if job_id is
        already present in keys.jobs.
        """
        ...

    async def remove(self, keys: QueueKeys, job_id: str, force: bool = False) -> bool:
        """
        Purge job_id from waiting, active, jobs, succeeded and failed.

        Unless `force` is set, a job that is a member of succeeded or failed
        is left completely untouched and False is returned.
        """
        ...

    async def move_next(self, keys: QueueKeys, timeout: float) -> str | None:
        """
        Block up to `timeout` seconds for the oldest waiting id, moving it to active.

        Returns the id, or None if nothing arrived before the timeout.
        """
        ...

    async def load(self, keys: QueueKeys, job_id: str) -> str | None:
        """Return the stored record for job_id, or None if absent."""
        ...

    async def complete(
        self,
        keys: QueueKeys,
        job_id: str,
        status: JobStatus,
        record: str | None,
    ) -> bool:
        """
        Completion bookkeeping as a single atomic step.

        Removes job_id from active. If `record` is given it is written to jobs
        and the id is added to the set matching `status`; if it is None the
        jobs entry is deleted.

        Returns False, writing nothing, when job_id was no longer in active
        (removed or requeued while its worker ran).
        """
        ...

    async def requeue_active(self, keys: QueueKeys) -> int:
        """Move every id in active back to the dispatch end of waiting. Returns the count."""
        ...

    async def counts(self, keys: QueueKeys) -> QueueCounts:
        """Sizes of waiting, active, succeeded and failed."""
        ...

    async def destroy(self, keys: QueueKeys) -> None:
        """Delete every key in the namespace."""
        ...
