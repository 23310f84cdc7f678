import asyncio
import sys
import time

import pytest

from exbridge.bridge import CallBridge
from exbridge.errors import PoolStartupError, RemoteExecutionError, SerializationError, WorkerUnavailable
from exbridge.pool import WorkerState
from exbridge.result import Err, Ok


async def wait_until(predicate, timeout=20.0, interval=0.05):
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(interval)


@pytest.mark.asyncio
async def test_call_preserves_argument_order(pool_factory):
    async with pool_factory(size=2) as pool:
        bridge = CallBridge(pool)
        result = await bridge.call("echo", [3, "b", {"nested": [1, None]}, True])
    assert result == Ok([3, "b", {"nested": [1, None]}, True])


@pytest.mark.asyncio
async def test_all_workers_ready_after_start(pool_factory):
    async with pool_factory(size=3) as pool:
        status = pool.status()
        assert status["size"] == 3
        assert status["workers"]["ready"] == 3
        assert status["fatal_error"] is None
    assert pool.status()["workers"]["stopped"] == 3


@pytest.mark.asyncio
async def test_remote_exception_is_passed_through(pool_factory):
    async with pool_factory() as pool:
        result = await CallBridge(pool).call("fail", ["exchange said no"])
    assert result == Err(RemoteExecutionError("exchange said no"))
    assert result.error.remote_type == "RuntimeError"


@pytest.mark.asyncio
async def test_unknown_function(pool_factory):
    async with pool_factory() as pool:
        result = await CallBridge(pool).call("fetchNothing", [])
    assert not result.ok
    assert isinstance(result.error, RemoteExecutionError)
    assert result.error.remote_type == "UnknownFunction"


@pytest.mark.asyncio
async def test_unencodable_reply_keeps_worker(pool_factory):
    async with pool_factory() as pool:
        bridge = CallBridge(pool)
        result = await bridge.call("unencodable", [])
        assert isinstance(result.error, SerializationError)
        assert await bridge.call("echo", [1]) == Ok([1])


@pytest.mark.asyncio
async def test_library_stdout_does_not_corrupt_protocol(pool_factory):
    async with pool_factory() as pool:
        bridge = CallBridge(pool)
        assert await bridge.call("noisy", []) == Ok("clean")
        assert await bridge.call("echo", ["after"]) == Ok(["after"])


@pytest.mark.asyncio
async def test_exhausted_pool_waits_then_times_out(pool_factory):
    async with pool_factory(size=1) as pool:
        bridge = CallBridge(pool)
        first = asyncio.ensure_future(bridge.call("sleep", [1.0, "first"], timeout=5))
        await asyncio.sleep(0.1)
        started = time.monotonic()
        second = await bridge.call("echo", ["second"], timeout=0.3)
        waited = time.monotonic() - started
        assert isinstance(second.error, WorkerUnavailable)
        assert waited < 1.0
        assert await first == Ok("first")


@pytest.mark.asyncio
async def test_queued_call_runs_when_worker_frees_up(pool_factory):
    async with pool_factory(size=1) as pool:
        bridge = CallBridge(pool)
        first, second = await asyncio.gather(
            bridge.call("sleep", [0.2, "first"]),
            bridge.call("echo", ["second"]),
        )
    assert first == Ok("first")
    assert second == Ok(["second"])


@pytest.mark.asyncio
async def test_empty_pool_never_hangs(pool_factory):
    async with pool_factory(size=0) as pool:
        started = time.monotonic()
        result = await CallBridge(pool).call("echo", [], timeout=0.2)
    assert isinstance(result.error, WorkerUnavailable)
    assert time.monotonic() - started < 2.0


@pytest.mark.asyncio
async def test_crash_is_isolated_and_worker_restarted(pool_factory):
    async with pool_factory(size=2) as pool:
        bridge = CallBridge(pool)
        crashed = await bridge.call("crash", [])
        assert isinstance(crashed.error, RemoteExecutionError)
        assert crashed.error.remote_type == "WorkerCrashed"

        # the other worker keeps serving while the crashed one comes back
        assert await bridge.call("echo", ["still up"]) == Ok(["still up"])

        await wait_until(lambda: pool.status()["workers"]["ready"] == 2)
        assert pool.status()["restarts"] == 1
        pids = await asyncio.gather(bridge.call("pid", []), bridge.call("pid", []))
        assert all(r.ok for r in pids)


@pytest.mark.asyncio
async def test_timed_out_call_is_drained(pool_factory):
    async with pool_factory(size=1) as pool:
        bridge = CallBridge(pool)
        before = await bridge.call("pid", [])
        late = await bridge.call("sleep", [0.5, "late"], timeout=0.1)
        assert isinstance(late.error, WorkerUnavailable)

        # the same process answers once its late reply has been discarded
        after = await bridge.call("pid", [], timeout=10)
        assert after == before
        assert pool.status()["restarts"] == 0


@pytest.mark.asyncio
async def test_worker_killed_when_drain_times_out(pool_factory):
    async with pool_factory(size=1, drain_timeout=0.2) as pool:
        bridge = CallBridge(pool)
        before = await bridge.call("pid", [])
        late = await bridge.call("sleep", [30, "never"], timeout=0.1)
        assert isinstance(late.error, WorkerUnavailable)

        after = await bridge.call("pid", [], timeout=30)
        assert after.ok
        assert after.value != before.value
        assert pool.status()["restarts"] == 1


@pytest.mark.asyncio
async def test_idle_worker_that_dies_is_replaced(pool_factory):
    async with pool_factory(size=1) as pool:
        worker = pool.workers[0]
        first_pid = worker.pid
        worker.process.kill()

        await wait_until(lambda: worker.pid != first_pid and worker.state == WorkerState.READY)
        result = await CallBridge(pool).call("pid", [])
        assert result == Ok(worker.pid)


@pytest.mark.asyncio
async def test_start_failure_raises_pool_startup_error(pool_factory):
    pool = pool_factory(size=2, command=[sys.executable, "-c", "import sys; sys.exit(1)"], max_restarts=2)
    with pytest.raises(PoolStartupError):
        await pool.start()
    assert pool.closed
    assert isinstance(pool.fatal_error, PoolStartupError)
    result = await CallBridge(pool).call("echo", [])
    assert isinstance(result.error, WorkerUnavailable)


@pytest.mark.asyncio
async def test_restart_escalates_after_max_attempts(pool_factory, monkeypatch, tmp_path):
    flag = tmp_path / "fail"
    monkeypatch.setenv("FAKE_WORKER_FAIL_FLAG", str(flag))
    pool = pool_factory(size=1, max_restarts=2)
    await pool.start()
    try:
        flag.touch()
        crashed = await CallBridge(pool).call("crash", [])
        assert crashed.error.remote_type == "WorkerCrashed"

        fatal = await asyncio.wait_for(pool.wait_fatal(), 30)
        assert isinstance(fatal, PoolStartupError)
        assert pool.closed

        result = await CallBridge(pool).call("echo", [])
        assert isinstance(result.error, WorkerUnavailable)
        assert "worker pool failed" in result.reason
    finally:
        await pool.close()


@pytest.mark.asyncio
async def test_closed_pool_rejects_calls(pool_factory):
    pool = pool_factory(size=1)
    await pool.start()
    await pool.close()
    await pool.close()
    result = await CallBridge(pool).call("echo", [])
    assert result == Err(WorkerUnavailable("worker pool is closed"))
