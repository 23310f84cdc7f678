import os
import sys
from pathlib import Path

import pytest

from exbridge.pool import WorkerPool

REPO_ROOT = Path(__file__).resolve().parents[2]
FAKE_WORKER = Path(__file__).with_name("fake_worker.py")


@pytest.fixture(autouse=True)
def worker_import_path(monkeypatch):
    """Child processes must import exbridge from this checkout."""
    existing = os.environ.get("PYTHONPATH")
    monkeypatch.setenv("PYTHONPATH", os.pathsep.join(filter(None, [str(REPO_ROOT), existing])))


@pytest.fixture
def fake_worker_command():
    return [sys.executable, str(FAKE_WORKER)]


@pytest.fixture
def pool_factory(fake_worker_command):
    """Unstarted pools running the fake worker; use as ``async with pool_factory(size=2) as pool``."""
    def factory(size=1, command=None, **kwargs) -> WorkerPool:
        kwargs.setdefault("call_timeout", 10.0)
        kwargs.setdefault("startup_timeout", 30.0)
        kwargs.setdefault("max_restarts", 3)
        kwargs.setdefault("backoff", (0.01, 0.05))
        return WorkerPool(command or fake_worker_command, size=size, **kwargs)
    return factory


class StubBridge:
    """Records calls and answers them from a ``{fn: Result or callable(args)}`` table."""

    def __init__(self, replies=None):
        self.replies = dict(replies or {})
        self.calls = []

    async def call(self, fn, args, timeout=None):
        self.calls.append((fn, args))
        reply = self.replies[fn]
        return reply(args) if callable(reply) else reply

    def called(self):
        return [fn for fn, _ in self.calls]


@pytest.fixture
def stub_bridge():
    return StubBridge
