"""
Exception hierarchy for redqueue.

RedQueueError
├── StoreError         — underlying store failure (wraps original exception)
└── QueueClosedError   — operation attempted on a closed Queue

A duplicate admission or a job that vanished between dequeue and load are
*not* errors: both are reported as ``None`` by the calls that observe them.
"""

from __future__ import annotations


class RedQueueError(Exception):
    """Base class for all redqueue exceptions."""


class StoreError(RedQueueError):
    """
    Wraps an underlying failure from a store adapter.

    Attributes
    ----------
    cause : Exception
        The original exception raised by the store client.
    """

    def __init__(self, message: str, cause: Exception) -> None:
        self.cause = cause
        super().__init__(f"{message}: {cause}")


class QueueClosedError(RedQueueError):
    """Raised when process() is called on a queue that has been closed."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Queue {name!r} is closed")
