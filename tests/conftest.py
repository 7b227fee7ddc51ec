import asyncio
from collections.abc import Callable
from datetime import timedelta
from typing import Any

import pytest

from redqueue.adapters.store.memory import InMemoryStore
from redqueue.core.queue import Queue


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def make_queue(store: InMemoryStore) -> Callable[..., Queue[Any]]:
    """Queue factory with short timings so shutdown stays fast in tests."""

    def _make(name: str = "test", **kwargs: Any) -> Queue[Any]:
        kwargs.setdefault("store", store)
        kwargs.setdefault("poll_timeout", timedelta(milliseconds=20))
        kwargs.setdefault("error_backoff", timedelta(milliseconds=5))
        return Queue(name=name, **kwargs)

    return _make


async def wait_until(predicate: Callable[[], bool], timeout: float = 5.0) -> None:
    """Poll `predicate` until it holds, failing the test after `timeout` seconds."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(0.005)
