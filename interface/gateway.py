"""
Single-flight gateway to a long-lived external UCI evaluator.

The UCI protocol is stateful per connection: a "bestmove" line carries no
request id, so two searches in flight at once would produce replies nobody can
attribute. The gateway therefore runs every request through one FIFO queue and
one dispatcher thread, with at most one request (the "current" task) in flight
against the channel at any instant.

Threading model:
    callers         submit() enqueues a PendingTask and returns its Future;
                    evaluate() is submit() followed by Future.result().
    dispatcher      takes one task at a time, writes its commands, and waits
                    on the task's ``done`` event with a per-request timeout.
    channel reader  calls _on_line() for every engine line; the line is folded
                    into the current task's accumulator, or dropped if no task
                    is current.

State machine:
    UNINITIALIZED -> INITIALIZING -> READY <-> BUSY -> TERMINATED
    A failed handshake returns to UNINITIALIZED. TERMINATED and UNINITIALIZED
    both re-initialize lazily on the next request.
"""

import enum
import logging
import queue
import threading
from concurrent.futures import Future
from dataclasses import dataclass, field
from functools import partial
from typing import Callable, Union

from interface.channel import LineCallback, LineChannel, SubprocessChannel, find_engine_command
from interface.protocol import (
    HANDSHAKE_ACK,
    HANDSHAKE_COMMAND,
    READY_ACK,
    READY_COMMAND,
    STOP_COMMAND,
    EngineEvaluation,
    SearchAccumulator,
    go_command,
    parse_line,
    position_command,
)

_log = logging.getLogger(__name__)

DEFAULT_ANALYSIS_DEPTH = 15
DEFAULT_TIME_LIMIT_MS = 2_000


class EngineError(Exception):
    """Base class for gateway failures."""


class EngineInitError(EngineError):
    """The engine could not be started or did not acknowledge the handshake."""


class EngineTimeoutError(EngineError):
    """A request did not complete within its time limit."""


class EngineTerminatedError(EngineError):
    """The gateway was terminated while the request was queued or running."""


class GatewayState(enum.Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"
    BUSY = "busy"
    TERMINATED = "terminated"


@dataclass(frozen=True)
class EvaluateRequest:
    """Search ``fen`` to ``depth``; resolves to an EngineEvaluation."""

    fen: str
    depth: int = DEFAULT_ANALYSIS_DEPTH
    time_limit_ms: int = DEFAULT_TIME_LIMIT_MS

    def commands(self) -> list[str]:
        return [position_command(self.fen), go_command(self.depth, self.time_limit_ms)]


@dataclass(frozen=True)
class SyncRequest:
    """Round-trip "isready"/"readyok"; resolves to None."""

    def commands(self) -> list[str]:
        return [READY_COMMAND]


EngineRequest = Union[EvaluateRequest, SyncRequest]


@dataclass
class PendingTask:
    """
    One queued unit of work.

    Attributes:
        request:     What to send.
        future:      Caller-facing response slot.
        accumulator: Running evaluation, updated only while this task is
                     current.
        done:        Set when the terminal line for this request arrives (or
                     when the gateway is torn down).
    """

    request: EngineRequest
    future: Future = field(default_factory=Future)
    accumulator: SearchAccumulator = field(default_factory=SearchAccumulator)
    done: threading.Event = field(default_factory=threading.Event)

    def feed(self, line: str) -> bool:
        """Apply one engine line; True when the request is complete."""
        if isinstance(self.request, SyncRequest):
            return line == READY_ACK
        self.accumulator, finished = parse_line(self.accumulator, line)
        return finished


def _resolve(task: PendingTask, result) -> None:
    if not task.future.done():
        task.future.set_result(result)


def _fail(task: PendingTask, exc: BaseException) -> None:
    if not task.future.done():
        task.future.set_exception(exc)


ChannelFactory = Callable[[LineCallback], LineChannel]


class EngineGateway:
    """
    Explicitly owned connection to one external evaluator.

    Args:
        command:         argv of the engine. Defaults to find_engine_command().
        channel_factory: Builds a channel given the line callback. Overrides
                         ``command``; tests pass an in-memory channel here.
        init_timeout:    Seconds to wait for "uciok".
        timeout_margin:  Seconds added to a request's time limit before it is
                         abandoned.
        drain_timeout:   Seconds to wait for an abandoned request's
                         "bestmove" before restarting the engine.
    """

    def __init__(
        self,
        command: list[str] | None = None,
        channel_factory: ChannelFactory | None = None,
        init_timeout: float = 10.0,
        timeout_margin: float = 2.0,
        drain_timeout: float = 2.0,
    ) -> None:
        if channel_factory is None:
            def channel_factory(on_line: LineCallback) -> LineChannel:
                return SubprocessChannel(command or find_engine_command(), on_line)

        self._channel_factory = channel_factory
        self.init_timeout = init_timeout
        self.timeout_margin = timeout_margin
        self.drain_timeout = drain_timeout

        self._lock = threading.Lock()
        self._init_lock = threading.Lock()
        self._handshake = threading.Event()
        self._state = GatewayState.UNINITIALIZED
        self._channel: LineChannel | None = None
        self._generation = 0
        self._current: PendingTask | None = None
        self._queue: queue.Queue = queue.Queue()
        self._dispatcher: threading.Thread | None = None

    # -----------------------------------------------------------------------
    # Lifecycle
    # -----------------------------------------------------------------------

    @property
    def state(self) -> GatewayState:
        return self._state

    def __enter__(self) -> "EngineGateway":
        self.initialize()
        return self

    def __exit__(self, *exc_info) -> None:
        self.terminate()

    def initialize(self) -> None:
        """
        Start the engine and wait for the handshake acknowledgement.

        A no-op when already ready. On failure the gateway stays
        UNINITIALIZED so the next call can retry.

        Raises:
            EngineInitError: The process could not start or no "uciok"
                             arrived within ``init_timeout``.
        """
        with self._init_lock:
            with self._lock:
                if self._state in (GatewayState.READY, GatewayState.BUSY):
                    return
                self._state = GatewayState.INITIALIZING
            try:
                self._open_channel()
            except Exception:
                with self._lock:
                    self._state = GatewayState.UNINITIALIZED
                raise
            with self._lock:
                self._state = GatewayState.READY
                if self._dispatcher is None or not self._dispatcher.is_alive():
                    self._dispatcher = threading.Thread(
                        target=self._dispatch_loop, args=(self._queue,), daemon=True
                    )
                    self._dispatcher.start()
        _log.info("engine gateway ready")

    def _open_channel(self) -> None:
        self._handshake.clear()
        with self._lock:
            self._generation += 1
            generation = self._generation
        channel = None
        try:
            channel = self._channel_factory(partial(self._on_line, generation))
            channel.open()
            channel.send(HANDSHAKE_COMMAND)
        except OSError as exc:
            if channel is not None:
                channel.close()
            raise EngineInitError(f"could not start engine: {exc}") from exc

        if not self._handshake.wait(self.init_timeout):
            channel.close()
            raise EngineInitError(
                f"engine did not answer {HANDSHAKE_ACK!r} within {self.init_timeout:.1f}s"
            )
        with self._lock:
            self._channel = channel

    def _reset_channel(self) -> None:
        with self._lock:
            channel = self._channel
            self._channel = None
            self._generation += 1
            if self._state is not GatewayState.TERMINATED:
                self._state = GatewayState.UNINITIALIZED
        if channel is not None:
            channel.close()

    def terminate(self) -> None:
        """
        Reject every queued and running request, then release the engine.

        Later requests re-initialize lazily.
        """
        with self._lock:
            self._state = GatewayState.TERMINATED
            old_queue = self._queue
            self._queue = queue.Queue()
            pending = []
            while True:
                try:
                    pending.append(old_queue.get_nowait())
                except queue.Empty:
                    break
            current = self._current
            self._current = None
            channel = self._channel
            self._channel = None
            self._generation += 1
            dispatcher = self._dispatcher
            self._dispatcher = None

        error = EngineTerminatedError("engine gateway terminated")
        for task in pending:
            if task is not None:
                _fail(task, error)
        if current is not None:
            _fail(current, error)
            current.done.set()

        old_queue.put(None)
        if channel is not None:
            channel.close()
        if dispatcher is not None and dispatcher is not threading.current_thread():
            dispatcher.join(timeout=2.0)
        _log.info("engine gateway terminated (%d queued request(s) rejected)", len(pending))

    # -----------------------------------------------------------------------
    # Requests
    # -----------------------------------------------------------------------

    def submit(self, request: EngineRequest) -> Future:
        """
        Queue a request and return its Future.

        Raises:
            EngineInitError: Lazy initialization failed.
        """
        if self._state not in (GatewayState.READY, GatewayState.BUSY):
            self.initialize()

        task = PendingTask(request)
        with self._lock:
            if self._state is GatewayState.TERMINATED:
                _fail(task, EngineTerminatedError("engine gateway terminated"))
            else:
                self._queue.put(task)
        return task.future

    def evaluate(
        self,
        fen: str,
        depth: int = DEFAULT_ANALYSIS_DEPTH,
        time_limit_ms: int = DEFAULT_TIME_LIMIT_MS,
    ) -> EngineEvaluation:
        """
        Evaluate a position, blocking until the engine answers.

        Raises:
            EngineInitError:       The engine could not be started.
            EngineTimeoutError:    No "bestmove" within the time limit.
            EngineTerminatedError: The gateway was terminated meanwhile.
        """
        return self.submit(EvaluateRequest(fen, depth, time_limit_ms)).result()

    def ping(self) -> None:
        """Round-trip "isready"; raises like evaluate()."""
        self.submit(SyncRequest()).result()

    # -----------------------------------------------------------------------
    # Channel callback (reader thread)
    # -----------------------------------------------------------------------

    def _on_line(self, generation: int, line: str) -> None:
        with self._lock:
            if generation != self._generation:
                return
            if line == HANDSHAKE_ACK:
                self._handshake.set()
                return
            task = self._current
            if task is None or task.done.is_set():
                _log.debug("dropping engine output with no request in flight: %s", line)
                return
            if task.feed(line):
                task.done.set()

    # -----------------------------------------------------------------------
    # Dispatcher thread
    # -----------------------------------------------------------------------

    def _dispatch_loop(self, tasks: queue.Queue) -> None:
        while True:
            task = tasks.get()
            if task is None:
                return
            if not task.future.set_running_or_notify_cancel():
                continue
            try:
                self._run(task)
            except Exception as exc:
                _log.exception("engine request failed unexpectedly")
                _fail(task, EngineError(f"engine request failed: {exc}"))
                self._release(task)

    def _timeout_for(self, request: EngineRequest) -> float:
        if isinstance(request, EvaluateRequest):
            return request.time_limit_ms / 1000 + self.timeout_margin
        return self.init_timeout

    def _release(self, task: PendingTask) -> None:
        with self._lock:
            if self._current is task:
                self._current = None
                if self._state is GatewayState.BUSY:
                    self._state = GatewayState.READY

    def _run(self, task: PendingTask) -> None:
        with self._lock:
            state = self._state
        if state is GatewayState.TERMINATED:
            _fail(task, EngineTerminatedError("engine gateway terminated"))
            return
        if state is GatewayState.UNINITIALIZED:
            try:
                self.initialize()
            except EngineInitError as exc:
                _fail(task, exc)
                return

        with self._lock:
            channel = self._channel
            if channel is None:
                _fail(task, EngineTerminatedError("engine gateway terminated"))
                return
            self._current = task
            self._state = GatewayState.BUSY

        try:
            for command in task.request.commands():
                channel.send(command)
        except OSError as exc:
            self._release(task)
            self._reset_channel()
            _fail(task, EngineError(f"engine channel failed: {exc}"))
            return

        timeout = self._timeout_for(task.request)
        if task.done.wait(timeout):
            self._release(task)
            if isinstance(task.request, EvaluateRequest):
                _resolve(task, task.accumulator)
            else:
                _resolve(task, None)
            return

        _log.warning("engine request timed out after %.1fs: %s", timeout, task.request)
        _fail(task, EngineTimeoutError(f"engine did not answer within {timeout:.1f}s"))

        # The abandoned search still owns the channel. Its "bestmove" must be
        # consumed here, or it would complete the next task.
        try:
            channel.send(STOP_COMMAND)
        except OSError:
            pass  # Handled below: no reply will come, so the channel is reset.
        drained = task.done.wait(self.drain_timeout)
        self._release(task)
        if not drained:
            _log.warning("engine never finished the abandoned request; restarting it")
            self._reset_channel()
