from unittest.mock import AsyncMock, MagicMock

import pytest
from redis.asyncio import Redis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import ResponseError

from redqueue.adapters.store.redis import RedisStore, _as_str
from redqueue.adapters.store.scripts import (
    ADMIT_SCRIPT,
    COMPLETE_SCRIPT,
    REMOVE_SCRIPT,
    REQUEUE_SCRIPT,
)
from redqueue.core.keys import QueueKeys
from redqueue.domain.errors import StoreError
from redqueue.domain.models import JobStatus
from redqueue.ports.store import QueueStorePort

KEYS = QueueKeys.for_queue("test")

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class _AsyncCM:
    """Minimal async context manager wrapping a return value."""

    def __init__(self, value: object) -> None:
        self._value = value

    async def __aenter__(self) -> object:
        return self._value

    async def __aexit__(self, *args: object) -> None:
        pass


class _Fixture:
    def __init__(self) -> None:
        self.client = MagicMock()
        self.scripts: dict[str, AsyncMock] = {}
        self.client.register_script.side_effect = self._register
        self.client.blmove = AsyncMock()
        self.client.hget = AsyncMock()
        self.client.delete = AsyncMock(return_value=5)
        self.client.aclose = AsyncMock()
        self.pipe = MagicMock()
        self.pipe.execute = AsyncMock(return_value=[])
        self.client.pipeline.return_value = _AsyncCM(self.pipe)
        self.store = RedisStore(self.client)

    def _register(self, source: str) -> AsyncMock:
        script = AsyncMock()
        self.scripts[source] = script
        return script


@pytest.fixture
def fx() -> _Fixture:
    return _Fixture()


def test_satisfies_port(fx: _Fixture):
    assert isinstance(fx.store, QueueStorePort)


def test_registers_all_scripts(fx: _Fixture):
    assert set(fx.scripts) == {
        ADMIT_SCRIPT,
        COMPLETE_SCRIPT,
        REMOVE_SCRIPT,
        REQUEUE_SCRIPT,
    }


def test_from_url_builds_client(monkeypatch: pytest.MonkeyPatch):
    client = MagicMock()
    from_url = MagicMock(return_value=client)
    monkeypatch.setattr(Redis, "from_url", from_url)
    store = RedisStore.from_url("redis://localhost:6379/1", decode_responses=True)
    from_url.assert_called_once_with("redis://localhost:6379/1", decode_responses=True)
    assert store.client is client


async def test_close_closes_client(fx: _Fixture):
    await fx.store.close()
    fx.client.aclose.assert_awaited_once()


# ---------------------------------------------------------------------------
# Scripts
# ---------------------------------------------------------------------------


async def test_admit_runs_script_with_keys_and_args(fx: _Fixture):
    fx.scripts[ADMIT_SCRIPT].return_value = b"job-1"
    assert await fx.store.admit(KEYS, "job-1", '{"status":"waiting"}') == "job-1"
    fx.scripts[ADMIT_SCRIPT].assert_awaited_once_with(
        keys=[KEYS.jobs, KEYS.waiting], args=["job-1", '{"status":"waiting"}']
    )


async def test_admit_duplicate_returns_none(fx: _Fixture):
    fx.scripts[ADMIT_SCRIPT].return_value = None
    assert await fx.store.admit(KEYS, "job-1", "r") is None


async def test_remove_passes_guard_flag(fx: _Fixture):
    fx.scripts[REMOVE_SCRIPT].return_value = 1
    assert await fx.store.remove(KEYS, "job-1") is True
    fx.scripts[REMOVE_SCRIPT].assert_awaited_once_with(
        keys=[KEYS.succeeded, KEYS.failed, KEYS.waiting, KEYS.active, KEYS.jobs],
        args=["job-1", "0"],
    )


async def test_remove_force(fx: _Fixture):
    fx.scripts[REMOVE_SCRIPT].return_value = 1
    await fx.store.remove(KEYS, "job-1", force=True)
    assert fx.scripts[REMOVE_SCRIPT].await_args.kwargs["args"] == ["job-1", "1"]


async def test_remove_guarded_returns_false(fx: _Fixture):
    fx.scripts[REMOVE_SCRIPT].return_value = 0
    assert await fx.store.remove(KEYS, "job-1") is False


async def test_requeue_active_returns_count(fx: _Fixture):
    fx.scripts[REQUEUE_SCRIPT].return_value = 3
    assert await fx.store.requeue_active(KEYS) == 3
    fx.scripts[REQUEUE_SCRIPT].assert_awaited_once_with(keys=[KEYS.active, KEYS.waiting])


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


async def test_move_next_uses_blmove_right_to_left(fx: _Fixture):
    fx.client.blmove.return_value = b"job-1"
    assert await fx.store.move_next(KEYS, 0.5) == "job-1"
    fx.client.blmove.assert_awaited_once_with(
        KEYS.waiting, KEYS.active, 0.5, src="RIGHT", dest="LEFT"
    )


async def test_move_next_timeout_returns_none(fx: _Fixture):
    fx.client.blmove.return_value = None
    assert await fx.store.move_next(KEYS, 0.5) is None


async def test_load_reads_jobs_hash(fx: _Fixture):
    fx.client.hget.return_value = '{"status": "waiting", "data": 1}'
    assert await fx.store.load(KEYS, "job-1") == '{"status": "waiting", "data": 1}'
    fx.client.hget.assert_awaited_once_with(KEYS.jobs, "job-1")


async def test_complete_retained_runs_script(fx: _Fixture):
    fx.scripts[COMPLETE_SCRIPT].return_value = 1
    assert await fx.store.complete(KEYS, "job-1", JobStatus.SUCCEEDED, "rec") is True
    fx.scripts[COMPLETE_SCRIPT].assert_awaited_once_with(
        keys=[KEYS.active, KEYS.jobs, KEYS.succeeded], args=["job-1", "1", "rec"]
    )


async def test_complete_failed_targets_failed_set(fx: _Fixture):
    fx.scripts[COMPLETE_SCRIPT].return_value = 1
    await fx.store.complete(KEYS, "job-1", JobStatus.FAILED, "rec")
    assert fx.scripts[COMPLETE_SCRIPT].await_args.kwargs["keys"] == [
        KEYS.active,
        KEYS.jobs,
        KEYS.failed,
    ]


async def test_complete_purge_passes_keep_off(fx: _Fixture):
    fx.scripts[COMPLETE_SCRIPT].return_value = 1
    await fx.store.complete(KEYS, "job-1", JobStatus.FAILED, None)
    assert fx.scripts[COMPLETE_SCRIPT].await_args.kwargs["args"] == ["job-1", "0", ""]


async def test_complete_job_no_longer_active_returns_false(fx: _Fixture):
    fx.scripts[COMPLETE_SCRIPT].return_value = 0
    assert await fx.store.complete(KEYS, "job-1", JobStatus.SUCCEEDED, "rec") is False


async def test_complete_rejects_non_terminal_status(fx: _Fixture):
    with pytest.raises(ValueError):
        await fx.store.complete(KEYS, "job-1", JobStatus.WAITING, "rec")
    fx.scripts[COMPLETE_SCRIPT].assert_not_awaited()


async def test_counts_reads_lengths_in_one_round_trip(fx: _Fixture):
    fx.pipe.execute.return_value = [4, 2, 10, 1]
    counts = await fx.store.counts(KEYS)
    assert (counts.waiting, counts.active, counts.succeeded, counts.failed) == (4, 2, 10, 1)
    fx.client.pipeline.assert_called_once_with(transaction=False)


async def test_destroy_deletes_every_key(fx: _Fixture):
    await fx.store.destroy(KEYS)
    fx.client.delete.assert_awaited_once_with(*KEYS.all())


# ---------------------------------------------------------------------------
# Error translation
# ---------------------------------------------------------------------------


async def test_connection_error_becomes_store_error(fx: _Fixture):
    cause = RedisConnectionError("connection refused")
    fx.client.blmove.side_effect = cause
    with pytest.raises(StoreError) as info:
        await fx.store.move_next(KEYS, 0.5)
    assert info.value.cause is cause


async def test_script_error_becomes_store_error(fx: _Fixture):
    fx.scripts[ADMIT_SCRIPT].side_effect = ResponseError("NOSCRIPT")
    with pytest.raises(StoreError, match="admit"):
        await fx.store.admit(KEYS, "job-1", "r")


async def test_completion_script_error_becomes_store_error(fx: _Fixture):
    fx.scripts[COMPLETE_SCRIPT].side_effect = RedisConnectionError("reset")
    with pytest.raises(StoreError, match="complete"):
        await fx.store.complete(KEYS, "job-1", JobStatus.SUCCEEDED, "rec")


async def test_non_redis_error_propagates_unchanged(fx: _Fixture):
    fx.client.hget.side_effect = KeyError("boom")
    with pytest.raises(KeyError):
        await fx.store.load(KEYS, "job-1")


# ---------------------------------------------------------------------------
# _as_str
# ---------------------------------------------------------------------------


def test_as_str_decodes_bytes():
    assert _as_str(b"abc") == "abc"


def test_as_str_passes_str_and_none():
    assert _as_str("abc") == "abc"
    assert _as_str(None) is None
