"""Supervised pool of long-lived worker processes.

Each :class:`Worker` is a child process running the external exchange library
behind a newline-delimited JSON protocol (see
:mod:`exbridge.connectors.ccxt_connector.main`). :class:`WorkerPool` starts a
fixed number of them, hands idle ones to callers, and restarts any that crash.

Per-worker state machine::

    STARTING -> READY -> BUSY -> READY -> ... -> CRASHED -> STARTING
                                          \\-> STOPPED (pool closed)
"""

import asyncio
import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Set, Tuple

from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from exbridge.config import BridgeConfig, default_worker_command
from exbridge.errors import PoolStartupError, SerializationError, WorkerCrashed, WorkerUnavailable
from exbridge.metrics import WORKER_RESTARTS_TOTAL, WORKERS_GAUGE

logger = logging.getLogger(__name__)

STOP_GRACE_PERIOD = 2.0


class WorkerState(str, Enum):
    STARTING = "starting"
    READY = "ready"
    BUSY = "busy"
    CRASHED = "crashed"
    STOPPED = "stopped"


@dataclass(frozen=True)
class Request:
    """A call whose arguments are already JSON-encoded."""

    fn: str
    args_json: str

    def line(self, request_id: int) -> bytes:
        return f'{{"id": {request_id}, "fn": {json.dumps(self.fn)}, "args": {self.args_json}}}\n'.encode("utf-8")


class Worker:
    """One child process and its protocol streams.

    :ivar index: Position in the pool, used in logs.
    :ivar state: Current :class:`WorkerState`.
    :ivar generation: Incremented on every (re)start.
    """

    def __init__(self, index: int, command: List[str], max_message_bytes: int):
        self.index = index
        self.command = command
        self.max_message_bytes = max_message_bytes
        self.state = WorkerState.STOPPED
        self.process: Optional[asyncio.subprocess.Process] = None
        self.generation = 0
        self.restarts = 0
        self._next_id = 0

    @property
    def pid(self) -> Optional[int]:
        return self.process.pid if self.process else None

    @property
    def alive(self) -> bool:
        return self.process is not None and self.process.returncode is None

    async def start(self, startup_timeout: float) -> None:
        """Spawn the process and wait for its readiness line.

        :raises WorkerCrashed: If it exits, says something unexpected or is not ready in time.
        :raises OSError: If the command cannot be executed.
        """
        self.state = WorkerState.STARTING
        self.generation += 1
        self._next_id = 0
        self.process = await asyncio.create_subprocess_exec(
            *self.command,
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.PIPE,
            limit=self.max_message_bytes,
        )
        try:
            line = await asyncio.wait_for(self.process.stdout.readline(), startup_timeout)
        except asyncio.TimeoutError:
            await self.kill()
            raise WorkerCrashed(f"worker {self.index} not ready after {startup_timeout}s")
        except ValueError as e:
            await self.kill()
            raise WorkerCrashed(f"worker {self.index} sent an oversized startup line") from e

        try:
            message = self._decode(line)
        except WorkerCrashed:
            await self.kill()
            raise
        if not message.get("ready"):
            await self.kill()
            raise WorkerCrashed(f"worker {self.index} sent {message!r} instead of a readiness line")
        self.state = WorkerState.READY
        logger.debug(f"Worker {self.index} ready (pid {self.pid}, generation {self.generation})")

    async def execute(self, request: Request) -> Dict[str, Any]:
        """Send one request and read its reply.

        :raises WorkerCrashed: The process died or broke the protocol.
        :raises SerializationError: The reply exceeded ``max_message_bytes``.
        """
        if not self.alive:
            raise WorkerCrashed(f"worker {self.index} is not running")
        self._next_id += 1
        request_id = self._next_id
        try:
            self.process.stdin.write(request.line(request_id))
            await self.process.stdin.drain()
            line = await self.process.stdout.readline()
        except OSError as e:
            raise WorkerCrashed(f"worker {self.index} pipe closed: {e}") from e
        except ValueError as e:
            raise SerializationError(
                f"reply to {request.fn} exceeds {self.max_message_bytes} bytes"
            ) from e

        reply = self._decode(line)
        if reply.get("id") != request_id:
            raise WorkerCrashed(
                f"worker {self.index} answered request {reply.get('id')!r}, expected {request_id}"
            )
        return reply

    def _decode(self, line: bytes) -> Dict[str, Any]:
        if not line:
            code = self.process.returncode if self.process else None
            raise WorkerCrashed(f"worker {self.index} exited (code {code})")
        try:
            message = json.loads(line)
        except ValueError as e:
            raise WorkerCrashed(f"worker {self.index} sent an unreadable line: {e}") from e
        if not isinstance(message, dict):
            raise WorkerCrashed(f"worker {self.index} sent {type(message).__name__} instead of an object")
        return message

    async def kill(self) -> None:
        if self.alive:
            try:
                self.process.kill()
            except ProcessLookupError:
                pass
        if self.process is not None:
            await self.process.wait()

    async def stop(self, grace: float = STOP_GRACE_PERIOD) -> None:
        """Close stdin so the worker exits on its own, then terminate, then kill."""
        if self.alive:
            self.process.stdin.close()
            try:
                await asyncio.wait_for(self.process.wait(), grace)
            except asyncio.TimeoutError:
                logger.warning(f"Worker {self.index} did not exit within {grace}s, terminating it")
                try:
                    self.process.terminate()
                    await asyncio.wait_for(self.process.wait(), grace)
                except ProcessLookupError:
                    pass
                except asyncio.TimeoutError:
                    await self.kill()
        self.state = WorkerState.STOPPED


class WorkerPool:
    """Fixed-size set of workers with crash recovery.

    The pool is created once by the process owner and passed to a
    :class:`exbridge.bridge.CallBridge`. Callers never hold a worker across
    calls: :meth:`run` acquires one, executes a single request and gives it back.

    :param command: argv of a worker process.
    :param size: Number of workers; 0 is allowed (every call then times out).
    :param call_timeout: Default deadline for :meth:`run`, covering the wait for a worker and for its reply.
    :param startup_timeout: How long a worker may take to become ready.
    :param max_restarts: Start attempts per (re)start before the pool gives up.
    :param max_message_bytes: Largest reply line accepted from a worker.
    :param drain_timeout: How long a timed-out call may still take before its worker is killed.
    :param backoff: Base and cap, in seconds, of the exponential wait between start attempts.
    """

    def __init__(
        self,
        command: Optional[List[str]] = None,
        size: int = 16,
        call_timeout: float = 30.0,
        startup_timeout: float = 60.0,
        max_restarts: int = 5,
        max_message_bytes: int = 64 * 1024 * 1024,
        drain_timeout: Optional[float] = None,
        backoff: Tuple[float, float] = (1.0, 30.0),
    ):
        if size < 0:
            raise ValueError("pool size must be >= 0")
        self.command = command or default_worker_command()
        self.size = size
        self.call_timeout = call_timeout
        self.startup_timeout = startup_timeout
        self.max_restarts = max_restarts
        self.drain_timeout = call_timeout if drain_timeout is None else drain_timeout
        self.backoff = backoff
        self.workers = [Worker(i, self.command, max_message_bytes) for i in range(size)]
        self.fatal_error: Optional[PoolStartupError] = None
        self._idle: asyncio.Queue = asyncio.Queue()
        self._tasks: Set[asyncio.Task] = set()
        self._fatal = asyncio.Event()
        self._closed = False

    @classmethod
    def from_config(cls, config: BridgeConfig, **overrides) -> "WorkerPool":
        options = dict(
            command=config.worker_command,
            size=config.pool_size,
            call_timeout=config.call_timeout,
            startup_timeout=config.startup_timeout,
            max_restarts=config.max_restarts,
            max_message_bytes=config.max_message_bytes,
        )
        options.update(overrides)
        return cls(**options)

    async def __aenter__(self) -> "WorkerPool":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    @property
    def closed(self) -> bool:
        return self._closed

    async def start(self) -> None:
        """Bring every worker to READY.

        :raises PoolStartupError: If any worker cannot be started; the pool is closed.
        """
        logger.info(f"Starting worker pool with {self.size} workers: {' '.join(self.command)}")
        results = await asyncio.gather(*(self._bring_up(w) for w in self.workers), return_exceptions=True)
        failures = [r for r in results if isinstance(r, BaseException)]
        if failures:
            self.fatal_error = PoolStartupError(
                f"{len(failures)} of {self.size} workers failed to start: {failures[0]}"
            )
            logger.critical(self.fatal_error.reason)
            self._fatal.set()
            await self.close()
            raise self.fatal_error
        for worker in self.workers:
            self._release(worker)
            self._spawn(self._watch(worker, worker.process))
        logger.info(f"Worker pool ready ({self.size} workers)")

    async def run(self, request: Request, timeout: Optional[float] = None) -> Dict[str, Any]:
        """Execute ``request`` on the next idle worker and return the raw reply object.

        :raises WorkerUnavailable: No worker in time, the deadline passed, or the pool is down.
        :raises WorkerCrashed: The worker died during the call; it is being restarted.
        :raises SerializationError: The reply could not be read; the worker is being restarted.
        """
        timeout = self.call_timeout if timeout is None else timeout
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout

        worker = await self._acquire(deadline, timeout)
        worker.state = WorkerState.BUSY
        self._update_gauge()
        task = asyncio.ensure_future(worker.execute(request))
        try:
            reply = await asyncio.wait_for(asyncio.shield(task), max(deadline - loop.time(), 0))
        except asyncio.TimeoutError:
            logger.warning(f"{request.fn} on worker {worker.index} timed out after {timeout}s")
            self._spawn(self._drain(worker, task))
            raise WorkerUnavailable(f"{request.fn} timed out after {timeout}s")
        except asyncio.CancelledError:
            self._spawn(self._drain(worker, task))
            raise
        except (WorkerCrashed, SerializationError) as e:
            logger.error(f"Worker {worker.index} failed during {request.fn}: {e}")
            self._spawn(self._restart(worker))
            raise
        self._release(worker)
        return reply

    async def close(self) -> None:
        """Stop all workers and supervisor tasks. Idempotent."""
        if self._closed:
            return
        self._closed = True
        current = asyncio.current_task()
        pending = [t for t in self._tasks if t is not current]
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
        await asyncio.gather(*(w.stop() for w in self.workers), return_exceptions=True)
        self._update_gauge()
        logger.info("Worker pool closed")

    async def wait_fatal(self) -> PoolStartupError:
        """Block until the pool gives up on a worker, then return the fatal error."""
        await self._fatal.wait()
        return self.fatal_error

    def status(self) -> Dict[str, Any]:
        counts = {state.value: 0 for state in WorkerState}
        for worker in self.workers:
            counts[worker.state.value] += 1
        return {
            "size": self.size,
            "closed": self._closed,
            "workers": counts,
            "restarts": sum(w.restarts for w in self.workers),
            "fatal_error": self.fatal_error.reason if self.fatal_error else None,
        }

    # --- internals ---

    async def _acquire(self, deadline: float, timeout: float) -> Worker:
        loop = asyncio.get_running_loop()
        while True:
            if self.fatal_error is not None:
                raise WorkerUnavailable(f"worker pool failed: {self.fatal_error.reason}")
            if self._closed:
                raise WorkerUnavailable("worker pool is closed")
            try:
                worker, generation = await asyncio.wait_for(self._idle.get(), max(deadline - loop.time(), 0))
            except asyncio.TimeoutError:
                raise WorkerUnavailable(f"no worker available within {timeout}s")
            # stale entry: the worker was restarted or died while idle
            if generation == worker.generation and worker.state == WorkerState.READY and worker.alive:
                return worker

    def _release(self, worker: Worker) -> None:
        if self._closed:
            return
        worker.state = WorkerState.READY
        self._idle.put_nowait((worker, worker.generation))
        self._update_gauge()

    async def _bring_up(self, worker: Worker) -> None:
        """Start ``worker``, retrying with exponential back-off up to ``max_restarts`` attempts."""
        base, cap = self.backoff
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self.max_restarts),
            wait=wait_exponential(multiplier=base, max=cap),
            retry=retry_if_exception_type((WorkerCrashed, OSError)),
            reraise=True,
        ):
            with attempt:
                if attempt.retry_state.attempt_number > 1:
                    logger.warning(f"Starting worker {worker.index}, attempt {attempt.retry_state.attempt_number}")
                await worker.start(self.startup_timeout)

    async def _restart(self, worker: Worker) -> None:
        worker.state = WorkerState.CRASHED
        self._update_gauge()
        await worker.kill()
        if self._closed:
            return
        worker.restarts += 1
        WORKER_RESTARTS_TOTAL.inc()
        try:
            await self._bring_up(worker)
        except (WorkerCrashed, OSError) as e:
            await self._escalate(worker, e)
            return
        logger.info(f"Worker {worker.index} restarted (pid {worker.pid})")
        self._release(worker)
        self._spawn(self._watch(worker, worker.process))

    async def _drain(self, worker: Worker, task: asyncio.Future) -> None:
        """Wait out a call the caller abandoned; reuse the worker if it answers in time."""
        try:
            await asyncio.wait_for(task, self.drain_timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Worker {worker.index} still busy after {self.drain_timeout}s, restarting it")
            await self._restart(worker)
            return
        except (WorkerCrashed, SerializationError) as e:
            logger.error(f"Worker {worker.index} failed after its caller gave up: {e}")
            await self._restart(worker)
            return
        logger.info(f"Discarded late reply from worker {worker.index}")
        self._release(worker)

    async def _watch(self, worker: Worker, process: asyncio.subprocess.Process) -> None:
        """Restart an idle worker whose process exits on its own."""
        await process.wait()
        if self._closed or worker.process is not process or worker.state != WorkerState.READY:
            return
        logger.error(f"Idle worker {worker.index} exited (code {process.returncode})")
        await self._restart(worker)

    async def _escalate(self, worker: Worker, error: BaseException) -> None:
        self.fatal_error = PoolStartupError(
            f"worker {worker.index} could not be restarted after {self.max_restarts} attempts: {error}"
        )
        logger.critical(f"{self.fatal_error.reason}; shutting down the pool")
        self._fatal.set()
        await self.close()

    def _spawn(self, coro) -> None:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _update_gauge(self) -> None:
        for state, count in self.status()["workers"].items():
            WORKERS_GAUGE.labels(state=state).set(count)
