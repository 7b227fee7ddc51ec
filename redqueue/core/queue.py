"""
Queue — admission, bounded-concurrency dispatch and completion bookkeeping.

Usage
-----
    from redqueue import Queue, RedisStore

    store = RedisStore.from_url("redis://localhost:6379/0")

    async with Queue(store, "emails", keep_on_success=False) as q:
        q.on("failed", lambda job_id, error: print(job_id, error))
        await q.add({"to": "user@example.com"})
        q.process(send_email, concurrency=4)
        ...

Dispatch loop
-------------
The loop keeps two in-memory counters:

  running — jobs whose worker is executing
  queued  — dequeue attempts in flight (blocked on the store)

process() starts with running=0, queued=1 and launches one attempt. Each
attempt is its own asyncio task doing a blocking pop-and-push of the oldest
waiting id onto `active`. When an id arrives the attempt turns into a
running job and, while running + queued < concurrency, launches another
attempt before executing the worker. When a job finishes (or an attempt
times out) a fresh attempt task takes the freed slot, so nothing recurses
and the stack never grows.

The counters are a local admission-control heuristic. They are never
persisted; correctness across processes comes entirely from the store's
atomic operations (at most one consumer per job).

Shutdown
--------
close() stops new attempts from starting. Attempts already blocked on the
store return within `poll_timeout`; jobs already running finish their
bookkeeping. Pass a timeout to cancel whatever is still running after it.
"""
from __future__ import annotations

import asyncio
import contextlib
import dataclasses
import inspect
import logging
from collections.abc import Awaitable, Callable
from datetime import timedelta
from types import TracebackType
from typing import Any, Generic

from redqueue.core import codec
from redqueue.core.events import EventNotifier, Handler
from redqueue.core.keys import DEFAULT_PREFIX, QueueKeys
from redqueue.domain.errors import QueueClosedError
from redqueue.domain.models import DataT, Job, JobOwner, JobStatus, QueueCounts
from redqueue.ports.store import QueueStorePort

logger = logging.getLogger(__name__)

Worker = Callable[[DataT], Awaitable[Any] | Any]

EVENTS: tuple[str, ...] = ("succeeded", "failed", "error")


@dataclasses.dataclass
class Queue(Generic[DataT]):
    """
    A named job queue on a shared store.

    Parameters
    ----------
    store           : any QueueStorePort implementation (shared, not owned)
    name            : namespace for every key this queue uses
    keep_on_success : retain succeeded jobs in `jobs` + `succeeded` (default True)
    keep_on_failure : retain failed jobs in `jobs` + `failed` (default True)
    prefix          : first segment of every key (default "redqueue")
    poll_timeout    : how long one dequeue attempt blocks before re-checking
                      for shutdown (default 1 s)
    error_backoff   : pause after a store failure inside the loop (default 1 s)

    Events
    ------
    succeeded(job_id)         — job finished without raising
    failed(job_id, error)     — worker raised `error`
    error(exc)                — store failure inside the dispatch loop
    """

    store: QueueStorePort
    name: str
    keep_on_success: bool = True
    keep_on_failure: bool = True
    prefix: str = DEFAULT_PREFIX
    poll_timeout: timedelta = timedelta(seconds=1)
    error_backoff: timedelta = timedelta(seconds=1)

    running: int = dataclasses.field(default=0, init=False)
    queued: int = dataclasses.field(default=0, init=False)

    _keys: QueueKeys = dataclasses.field(init=False, repr=False)
    _owner: JobOwner = dataclasses.field(init=False, repr=False)
    _events: EventNotifier = dataclasses.field(init=False, repr=False)
    _worker: Worker[DataT] | None = dataclasses.field(
        default=None, init=False, repr=False
    )
    _concurrency: int = dataclasses.field(default=0, init=False, repr=False)
    _tasks: set[asyncio.Task[None]] = dataclasses.field(
        default_factory=set, init=False, repr=False
    )
    _closing: asyncio.Event = dataclasses.field(
        default_factory=asyncio.Event, init=False, repr=False
    )

    def __post_init__(self) -> None:
        if self.poll_timeout <= timedelta(0):
            raise ValueError("poll_timeout must be positive")
        if self.error_backoff < timedelta(0):
            raise ValueError("error_backoff must not be negative")
        self._keys = QueueKeys.for_queue(self.name, self.prefix)
        self._owner = JobOwner(store=self.store, keys=self._keys)
        self._events = EventNotifier(EVENTS)

    async def __aenter__(self) -> "Queue[DataT]":
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()

    @property
    def keys(self) -> QueueKeys:
        return self._keys

    @property
    def concurrency(self) -> int:
        return self._concurrency

    @property
    def closed(self) -> bool:
        return self._closing.is_set()

    # ------------------------------------------------------------------ #
    # Events                                                               #
    # ------------------------------------------------------------------ #

    def on(self, event: str, handler: Handler) -> Handler:
        """
        Subscribe to an event. Handlers are called positionally:

            succeeded : handler(job_id)
            failed    : handler(job_id, error)
            error     : handler(exc)

        A `failed` handler must accept two arguments; one that raises
        TypeError is logged like any other failing handler.
        """
        return self._events.on(event, handler)

    def off(self, event: str, handler: Handler) -> None:
        self._events.off(event, handler)

    # ------------------------------------------------------------------ #
    # Jobs                                                                 #
    # ------------------------------------------------------------------ #

    def create_job(self, data: DataT, job_id: str | None = None) -> Job[DataT]:
        """Build an unsaved Job owned by this queue."""
        return Job.new(data, owner=self._owner, job_id=job_id)

    async def add(self, data: DataT, job_id: str | None = None) -> str | None:
        """
        Admit a new job. Returns its id, or None if `job_id` already exists.

        Store failures propagate as StoreError.
        """
        job = self.create_job(data, job_id)
        admitted = await job.save()
        if admitted is None:
            logger.info("Job %s already exists in queue %r; not admitted", job.id, self.name)
        return admitted

    async def get_job(self, job_id: str) -> Job[Any] | None:
        """Load a job by id. None if it was never admitted or has been purged."""
        return await Job.load_by_id(self._owner, job_id)

    async def remove_job(self, job_id: str, *, force: bool = False) -> bool:
        """
        Purge every trace of `job_id` from the queue.

        A job that reached a retained terminal state (member of `succeeded`
        or `failed`) is left untouched and False is returned, unless
        `force` is set.
        """
        removed = await self.store.remove(self._keys, job_id, force=force)
        if not removed:
            logger.debug("Job %s is terminal in %r; kept", job_id, self.name)
        return removed

    async def counts(self) -> QueueCounts:
        return await self.store.counts(self._keys)

    async def requeue_orphaned(self) -> int:
        """
        Move every id left in `active` back to the front of `waiting`.

        Only safe while no worker (in any process) is processing this queue:
        ids checked out by a live worker would be delivered twice.
        """
        moved = await self.store.requeue_active(self._keys)
        if moved:
            logger.warning("Requeued %d orphaned job(s) in %r", moved, self.name)
        return moved

    async def destroy(self) -> None:
        """Delete every key belonging to this queue."""
        await self.store.destroy(self._keys)
        logger.info("Destroyed queue %r", self.name)

    # ------------------------------------------------------------------ #
    # Processing                                                           #
    # ------------------------------------------------------------------ #

    def process(self, worker: Worker[DataT], concurrency: int = 1) -> None:
        """
        Start the dispatch loop and return immediately.

        Must be called from a running event loop. `worker(data)` may be a
        plain function or return an awaitable; an exception from it marks
        the job failed.
        """
        asyncio.get_running_loop()  # RuntimeError outside a running loop
        if self._closing.is_set():
            raise QueueClosedError(self.name)
        if (
            isinstance(concurrency, bool)
            or not isinstance(concurrency, int)
            or concurrency < 1
        ):
            raise ValueError(f"concurrency must be a positive integer, got {concurrency!r}")
        if self._worker is not None:
            raise RuntimeError(f"Queue {self.name!r} is already processing")

        self._worker = worker
        self._concurrency = concurrency
        self.running = 0
        self.queued = 0
        logger.info("Processing queue %r with concurrency %d", self.name, concurrency)
        self._spawn_attempt()

    async def close(self, timeout: timedelta | None = None) -> None:
        """Stop the dispatch loop and wait for in-flight work to settle."""
        self._closing.set()
        tasks = set(self._tasks)
        if not tasks:
            return
        _, pending = await asyncio.wait(
            tasks, timeout=None if timeout is None else timeout.total_seconds()
        )
        for task in pending:
            task.cancel()
        if pending:
            logger.warning("Cancelled %d unfinished task(s) in %r", len(pending), self.name)
            await asyncio.gather(*pending, return_exceptions=True)

    # ------------------------------------------------------------------ #
    # Internal machinery                                                   #
    # ------------------------------------------------------------------ #

    def _spawn_attempt(self) -> None:
        self.queued += 1
        task = asyncio.create_task(
            self._attempt(), name=f"redqueue-{self.name}-attempt"
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _schedule_next(self) -> None:
        if self._closing.is_set():
            return
        if self.running + self.queued < self._concurrency:
            self._spawn_attempt()

    async def _attempt(self) -> None:
        """One dequeue attempt, followed by the job it received (if any)."""
        if self._closing.is_set():
            self.queued -= 1
            return

        try:
            job_id = await self.store.move_next(
                self._keys, self.poll_timeout.total_seconds()
            )
        except Exception as exc:
            await self._report_error(exc)
            await self._backoff()
            self.queued -= 1
            self._schedule_next()
            return

        if job_id is None:
            self.queued -= 1
            self._schedule_next()
            return

        self.running += 1
        self.queued -= 1
        self._schedule_next()
        try:
            await self._dispatch(job_id)
        except Exception as exc:
            await self._report_error(exc)
            await self._backoff()
        finally:
            self.running -= 1
            self._schedule_next()

    async def _dispatch(self, job_id: str) -> None:
        job = await Job.load_by_id(self._owner, job_id)
        if job is None:
            logger.warning("Job %s vanished from %r before it could run", job_id, self.name)
            return

        job = job.with_status(JobStatus.ACTIVE)
        logger.debug("Running job %s in %r", job.id, self.name)
        error: BaseException | None = None
        try:
            result = self._worker(job.data)  # type: ignore[misc]
            if inspect.isawaitable(result):
                await result
        except asyncio.CancelledError as exc:
            # Only a cancel aimed at this task (close timeout) stops the attempt.
            task = asyncio.current_task()
            if task is not None and task.cancelling():
                raise
            error = exc
            logger.debug("Job %s was cancelled from inside its worker", job.id)
        except Exception as exc:
            error = exc
            logger.debug("Job %s raised %r", job.id, exc)

        await self._finish(job, error)

    async def _finish(self, job: Job[Any], error: BaseException | None) -> None:
        """Completion bookkeeping in one atomic step, then exactly one event."""
        if error is None:
            status, keep = JobStatus.SUCCEEDED, self.keep_on_success
        else:
            status, keep = JobStatus.FAILED, self.keep_on_failure
        job = job.with_status(status)
        record = codec.encode_record(job) if keep else None
        if not await self.store.complete(self._keys, job.id, status, record):
            logger.info(
                "Job %s left %r while running; outcome not recorded", job.id, self.name
            )

        if error is None:
            await self._events.emit("succeeded", job.id)
        else:
            await self._events.emit("failed", job.id, error)

    async def _report_error(self, exc: Exception) -> None:
        logger.error("Dispatch loop error in queue %r", self.name, exc_info=exc)
        await self._events.emit("error", exc)

    async def _backoff(self) -> None:
        """Sleep for error_backoff, waking early if the queue is closing."""
        with contextlib.suppress(TimeoutError):
            await asyncio.wait_for(
                self._closing.wait(), self.error_backoff.total_seconds()
            )
