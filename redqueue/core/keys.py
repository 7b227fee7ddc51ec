"""
Key formatter — namespaced store keys for one queue.

Every structure a queue owns lives under ``<prefix>:<queue name>:<logical key>``:

  jobs       hash   job id → JSON record {"data": ..., "status": ...}
  waiting    list   ids awaiting dispatch (LPUSH on admission, pop from the right)
  active     list   ids checked out to a worker
  succeeded  set    ids of retained successful jobs
  failed     set    ids of retained failed jobs
"""
from __future__ import annotations

import dataclasses

DEFAULT_PREFIX = "redqueue"


def to_key(name: str, key: str, prefix: str = DEFAULT_PREFIX) -> str:
    """Build the full store key for logical `key` of queue `name`."""
    return f"{prefix}:{name}:{key}"


@dataclasses.dataclass(frozen=True)
class QueueKeys:
    """The five store keys belonging to a single queue."""

    jobs: str
    waiting: str
    active: str
    succeeded: str
    failed: str

    @classmethod
    def for_queue(cls, name: str, prefix: str = DEFAULT_PREFIX) -> "QueueKeys":
        if not name:
            raise ValueError("queue name must be a non-empty string")
        return cls(
            jobs=to_key(name, "jobs", prefix),
            waiting=to_key(name, "waiting", prefix),
            active=to_key(name, "active", prefix),
            succeeded=to_key(name, "succeeded", prefix),
            failed=to_key(name, "failed", prefix),
        )

    def all(self) -> tuple[str, ...]:
        """Every key in the namespace, in a stable order."""
        return (self.jobs, self.waiting, self.active, self.succeeded, self.failed)
