"""llm_agent.gate

Cooperative pause/cancel gate for the turn loop.

States:
- RUNNING -> PAUSED (user pause)
- PAUSED -> RUNNING (user resume)
- RUNNING | PAUSED -> CANCELLED (user cancel; terminal)

The loop calls `checkpoint()` at fixed points. While paused the calling thread
waits on a condition variable (no polling); once cancelled every checkpoint
raises `Cancelled`. Outbound calls share a `CancelToken` so an in-flight request
is abandoned as soon as the user cancels.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, TypeVar


_LOG = logging.getLogger(__name__)

T = TypeVar("T")


class Cancelled(RuntimeError):
    pass


class CancelToken:
    """Shared cancellation token passed to every outbound call."""

    def __init__(self) -> None:
        self._evt = threading.Event()
        self._lock = threading.Lock()
        self._callbacks: list[Callable[[], None]] = []

    @property
    def cancelled(self) -> bool:
        return self._evt.is_set()

    def cancel(self) -> None:
        with self._lock:
            if self._evt.is_set():
                return
            self._evt.set()
            callbacks = list(self._callbacks)
            self._callbacks.clear()
        for cb in callbacks:
            try:
                cb()
            except Exception:
                _LOG.exception("cancel callback failed")

    def add_callback(self, cb: Callable[[], None]) -> Callable[[], None]:
        """Register `cb` to run on cancel. Returns a function that unregisters it.

        If the token is already cancelled `cb` runs immediately.
        """

        with self._lock:
            if not self._evt.is_set():
                self._callbacks.append(cb)

                def _remove() -> None:
                    with self._lock:
                        try:
                            self._callbacks.remove(cb)
                        except ValueError:
                            pass

                return _remove
        cb()
        return lambda: None

    def wait(self, timeout: Optional[float] = None) -> bool:
        return self._evt.wait(timeout=timeout)

    def raise_if_cancelled(self) -> None:
        if self._evt.is_set():
            raise Cancelled("Request was cancelled")

    def run(self, fn: Callable[[], T], *, name: str = "outbound") -> T:
        """Run a blocking call so that cancellation can interrupt the wait.

        The call executes on a helper thread. If the token fires first, the
        helper is abandoned (its eventual result is discarded) and `Cancelled`
        is raised in the caller.
        """

        self.raise_if_cancelled()

        fut: Future[T] = Future()
        done = threading.Event()

        def _work() -> None:
            if not fut.set_running_or_notify_cancel():
                return
            try:
                fut.set_result(fn())
            except BaseException as e:  # noqa: BLE001
                fut.set_exception(e)
            finally:
                done.set()

        remove = self.add_callback(done.set)
        try:
            t = threading.Thread(target=_work, name=f"llm-agent-{name}", daemon=True)
            t.start()
            done.wait()
        finally:
            remove()

        if not fut.done():
            _LOG.info("abandoning in-flight %s call after cancel", name)
            raise Cancelled("Request was cancelled")
        if self.cancelled:
            # Completed, but the user cancelled meanwhile; the result is dropped.
            raise Cancelled("Request was cancelled")
        return fut.result()


class GateState(str, Enum):
    RUNNING = "RUNNING"
    PAUSED = "PAUSED"
    CANCELLED = "CANCELLED"


@dataclass(frozen=True)
class LoopState:
    processing: bool = False
    paused: bool = False
    cancelled: bool = False


class PauseGate:
    """Pause/resume/cancel state machine with blocking checkpoints.

    The UI (any thread) calls `pause()`, `resume()` and `cancel()`; the loop
    thread calls `checkpoint()`.
    """

    def __init__(self, token: Optional[CancelToken] = None) -> None:
        self._cond = threading.Condition()
        self._state = GateState.RUNNING
        self._token = token or CancelToken()
        self._waiting = False

    @property
    def token(self) -> CancelToken:
        return self._token

    @property
    def state(self) -> GateState:
        with self._cond:
            return self._state

    @property
    def is_waiting(self) -> bool:
        """True while a checkpoint is blocked on a pause."""

        with self._cond:
            return self._waiting

    def pause(self) -> bool:
        with self._cond:
            if self._state != GateState.RUNNING:
                return False
            self._state = GateState.PAUSED
        _LOG.info("turn paused")
        return True

    def resume(self) -> bool:
        with self._cond:
            if self._state != GateState.PAUSED:
                return False
            self._state = GateState.RUNNING
            self._cond.notify_all()
        _LOG.info("turn resumed")
        return True

    def cancel(self) -> bool:
        with self._cond:
            if self._state == GateState.CANCELLED:
                return False
            self._state = GateState.CANCELLED
            self._cond.notify_all()
        _LOG.info("turn cancelled")
        # Outside the lock: token callbacks may wake other waiters.
        self._token.cancel()
        return True

    def checkpoint(self) -> None:
        with self._cond:
            if self._state == GateState.PAUSED:
                self._waiting = True
                try:
                    self._cond.wait_for(lambda: self._state != GateState.PAUSED)
                finally:
                    self._waiting = False
            if self._state == GateState.CANCELLED:
                raise Cancelled("Request was cancelled")

    def loop_state(self, *, processing: bool) -> LoopState:
        st = self.state
        return LoopState(
            processing=processing,
            paused=st == GateState.PAUSED,
            cancelled=st == GateState.CANCELLED,
        )
