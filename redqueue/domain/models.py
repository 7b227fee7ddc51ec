"""
Domain models for redqueue — backed by Pydantic v2.

Pydantic handles:
  - JSON serialization / deserialization of job records (via codec.py)
  - Enum values serialized as their string values
  - field validation and type coercion of the payload type

Job is frozen (immutable). Mutations return new instances via
model_copy(update=...), following a functional-update style. The owner a job
borrows from its Queue (store handle + keys) is a private attribute: it is
carried across copies but never serialized.
"""
from __future__ import annotations

import dataclasses
import uuid
from enum import Enum
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr

from redqueue.domain.errors import RedQueueError

if TYPE_CHECKING:
    from redqueue.core.keys import QueueKeys
    from redqueue.ports.store import QueueStorePort

DataT = TypeVar("DataT")


class JobStatus(str, Enum):
    """Lifecycle states for a job."""

    CREATED = "created"
    WAITING = "waiting"
    ACTIVE = "active"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.SUCCEEDED, JobStatus.FAILED)


@dataclasses.dataclass(frozen=True)
class JobOwner:
    """The store handle and key namespace a Job borrows from its Queue."""

    store: QueueStorePort
    keys: QueueKeys


class Job(BaseModel, Generic[DataT]):
    """
    A single unit of work.

    id     — opaque identity, generated client-side unless supplied
    status — current lifecycle state
    data   — the payload handed to the worker; opaque to the queue
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    status: JobStatus = JobStatus.CREATED
    data: DataT

    _owner: JobOwner | None = PrivateAttr(default=None)

    @classmethod
    def new(
        cls,
        data: DataT,
        *,
        owner: JobOwner | None = None,
        job_id: str | None = None,
    ) -> "Job[DataT]":
        """Factory — status CREATED, fresh UUID unless job_id is given."""
        job = cls(data=data) if job_id is None else cls(id=job_id, data=data)
        job._owner = owner
        return job

    @property
    def owner(self) -> JobOwner | None:
        return self._owner

    def with_status(self, status: JobStatus) -> "Job[DataT]":
        """Return a new Job with an updated status (owner preserved)."""
        return self.model_copy(update={"status": status})

    # ------------------------------------------------------------------ #
    # Persistence                                                          #
    # ------------------------------------------------------------------ #

    async def save(self) -> str | None:
        """
        Admit this job: write its record and push its id onto `waiting`.

        Both writes happen atomically inside the store's admission operation.
        Returns this job's id, or None when a job with the same id already
        exists (the stored record is left untouched).
        """
        from redqueue.core import codec

        owner = self._require_owner()
        record = codec.encode_record(self.with_status(JobStatus.WAITING))
        admitted = await owner.store.admit(owner.keys, self.id, record)
        if admitted is None:
            return None
        return self.id

    @classmethod
    async def load_by_id(cls, owner: JobOwner, job_id: str) -> "Job[Any] | None":
        """Rehydrate a job from the jobs table. None if it is not there."""
        from redqueue.core import codec

        raw = await owner.store.load(owner.keys, job_id)
        if raw is None:
            return None
        job = codec.decode_record(job_id, raw, model=cls)
        job._owner = owner
        return job

    def _require_owner(self) -> JobOwner:
        if self._owner is None:
            raise RedQueueError(f"Job {self.id!r} is not attached to a queue")
        return self._owner


class JobRecord(BaseModel):
    """The stored form of a job: everything except its id, which is the hash field."""

    model_config = ConfigDict(frozen=True)

    data: Any
    status: JobStatus


class QueueCounts(BaseModel):
    """Number of ids held in each of a queue's lists and sets."""

    model_config = ConfigDict(frozen=True)

    waiting: int = 0
    active: int = 0
    succeeded: int = 0
    failed: int = 0
