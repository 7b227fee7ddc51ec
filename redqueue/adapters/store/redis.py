"""
RedisStore — Redis adapter using redis.asyncio.

Atomicity
---------
  admit()          → ADMIT_SCRIPT   (HSETNX + LPUSH in one Lua call)
  remove()         → REMOVE_SCRIPT  (terminal guard + purge in one Lua call)
  requeue_active() → REQUEUE_SCRIPT
  move_next()      → BLMOVE waiting active RIGHT LEFT <timeout>
  complete()       → COMPLETE_SCRIPT (LREM active, then record or purge,
                                     only if the id was still active)

Blocking
--------
move_next() holds one pooled connection for up to `timeout` seconds. The
client's socket_timeout (if set) must be larger than the queue's
poll_timeout, and the pool must allow one connection per concurrent dequeue
attempt plus one for everything else.

Any redis.exceptions.RedisError is re-raised as StoreError.
"""
from __future__ import annotations

import contextlib
import dataclasses
import logging
from collections.abc import Iterator
from typing import Any

from redis.asyncio import Redis
from redis.exceptions import RedisError

from redqueue.adapters.store.scripts import (
    ADMIT_SCRIPT,
    COMPLETE_SCRIPT,
    REMOVE_SCRIPT,
    REQUEUE_SCRIPT,
)
from redqueue.core.keys import QueueKeys
from redqueue.domain.errors import StoreError
from redqueue.domain.models import JobStatus, QueueCounts

logger = logging.getLogger(__name__)


@dataclasses.dataclass
class RedisStore:
    """
    Redis store adapter.

    Parameters
    ----------
    client : redis.asyncio.Redis — owned by the caller; shared by every queue
             built on this store
    """

    client: Redis

    def __post_init__(self) -> None:
        self._admit = self.client.register_script(ADMIT_SCRIPT)
        self._remove = self.client.register_script(REMOVE_SCRIPT)
        self._requeue = self.client.register_script(REQUEUE_SCRIPT)
        self._complete = self.client.register_script(COMPLETE_SCRIPT)

    @classmethod
    def from_url(cls, url: str, **kwargs: Any) -> "RedisStore":
        """Build a store on a new client; kwargs are forwarded to Redis.from_url."""
        return cls(Redis.from_url(url, **kwargs))

    async def close(self) -> None:
        """Close the underlying client and its connection pool."""
        await self.client.aclose()

    # ------------------------------------------------------------------ #
    # QueueStorePort                                                       #
    # ------------------------------------------------------------------ #

    async def admit(self, keys: QueueKeys, job_id: str, record: str) -> str | None:
        with _translate_errors("admit"):
            result = await self._admit(
                keys=[keys.jobs, keys.waiting], args=[job_id, record]
            )
        return _as_str(result)

    async def remove(self, keys: QueueKeys, job_id: str, force: bool = False) -> bool:
        with _translate_errors("remove"):
            result = await self._remove(
                keys=[keys.succeeded, keys.failed, keys.waiting, keys.active, keys.jobs],
                args=[job_id, "1" if force else "0"],
            )
        return bool(int(result))

    async def move_next(self, keys: QueueKeys, timeout: float) -> str | None:
        with _translate_errors("move_next"):
            result = await self.client.blmove(
                keys.waiting, keys.active, timeout, src="RIGHT", dest="LEFT"
            )
        return _as_str(result)

    async def load(self, keys: QueueKeys, job_id: str) -> str | None:
        with _translate_errors("load"):
            result = await self.client.hget(keys.jobs, job_id)
        return _as_str(result)

    async def complete(
        self,
        keys: QueueKeys,
        job_id: str,
        status: JobStatus,
        record: str | None,
    ) -> bool:
        if not status.is_terminal:
            raise ValueError(f"cannot complete a job with status {status.value!r}")
        target = keys.succeeded if status is JobStatus.SUCCEEDED else keys.failed
        with _translate_errors("complete"):
            result = await self._complete(
                keys=[keys.active, keys.jobs, target],
                args=[job_id, "0" if record is None else "1", record or ""],
            )
        return bool(int(result))

    async def requeue_active(self, keys: QueueKeys) -> int:
        with _translate_errors("requeue_active"):
            result = await self._requeue(keys=[keys.active, keys.waiting])
        return int(result)

    async def counts(self, keys: QueueKeys) -> QueueCounts:
        with _translate_errors("counts"):
            async with self.client.pipeline(transaction=False) as pipe:
                pipe.llen(keys.waiting)
                pipe.llen(keys.active)
                pipe.scard(keys.succeeded)
                pipe.scard(keys.failed)
                waiting, active, succeeded, failed = await pipe.execute()
        return QueueCounts(
            waiting=waiting, active=active, succeeded=succeeded, failed=failed
        )

    async def destroy(self, keys: QueueKeys) -> None:
        with _translate_errors("destroy"):
            deleted = await self.client.delete(*keys.all())
        logger.debug("Deleted %s keys for %s", deleted, keys.jobs)


@contextlib.contextmanager
def _translate_errors(operation: str) -> Iterator[None]:
    try:
        yield
    except RedisError as exc:
        raise StoreError(f"Redis {operation} failed", exc) from exc


def _as_str(value: bytes | str | None) -> str | None:
    """Normalise a reply from a client with or without decode_responses."""
    if isinstance(value, bytes):
        return value.decode("utf-8")
    return value
