from __future__ import annotations

import threading
import time

import pytest

from llm_agent.gate import Cancelled, CancelToken, GateState, PauseGate


def _wait_until(pred, timeout_s: float = 2.0) -> bool:
    deadline = time.monotonic() + timeout_s
    while time.monotonic() < deadline:
        if pred():
            return True
        time.sleep(0.01)
    return pred()


def test_checkpoint_passes_when_running() -> None:
    gate = PauseGate()
    gate.checkpoint()
    assert gate.state == GateState.RUNNING


def test_pause_blocks_until_resume() -> None:
    gate = PauseGate()
    assert gate.pause() is True
    assert gate.pause() is False

    passed = threading.Event()

    def loop() -> None:
        gate.checkpoint()
        passed.set()

    t = threading.Thread(target=loop, daemon=True)
    t.start()
    assert _wait_until(lambda: gate.is_waiting)
    assert not passed.is_set()

    assert gate.resume() is True
    assert passed.wait(2.0)
    t.join(2.0)
    assert not gate.is_waiting


def test_cancel_while_paused_raises_in_checkpoint() -> None:
    gate = PauseGate()
    gate.pause()
    errors: list[BaseException] = []

    def loop() -> None:
        try:
            gate.checkpoint()
        except Cancelled as e:
            errors.append(e)

    t = threading.Thread(target=loop, daemon=True)
    t.start()
    assert _wait_until(lambda: gate.is_waiting)
    assert gate.cancel() is True
    t.join(2.0)
    assert len(errors) == 1
    assert gate.token.cancelled


def test_cancel_is_terminal() -> None:
    gate = PauseGate()
    gate.cancel()
    assert gate.cancel() is False
    assert gate.pause() is False
    assert gate.resume() is False
    assert gate.state == GateState.CANCELLED
    with pytest.raises(Cancelled):
        gate.checkpoint()


def test_loop_state_reflects_gate() -> None:
    gate = PauseGate()
    assert gate.loop_state(processing=True).paused is False
    gate.pause()
    st = gate.loop_state(processing=True)
    assert st.processing and st.paused and not st.cancelled


def test_token_run_returns_value() -> None:
    assert CancelToken().run(lambda: 41 + 1) == 42


def test_token_run_propagates_errors() -> None:
    def boom() -> None:
        raise ValueError("bad")

    with pytest.raises(ValueError, match="bad"):
        CancelToken().run(boom)


def test_token_run_abandons_call_on_cancel() -> None:
    token = CancelToken()
    release = threading.Event()
    started = threading.Event()

    def slow() -> str:
        started.set()
        release.wait(5.0)
        return "late"

    def cancel_soon() -> None:
        started.wait(2.0)
        token.cancel()

    threading.Thread(target=cancel_soon, daemon=True).start()
    t0 = time.monotonic()
    with pytest.raises(Cancelled):
        token.run(slow)
    assert time.monotonic() - t0 < 2.0
    release.set()


def test_token_run_refuses_when_already_cancelled() -> None:
    token = CancelToken()
    token.cancel()
    called = []
    with pytest.raises(Cancelled):
        token.run(lambda: called.append(1))
    assert called == []


def test_callback_runs_immediately_after_cancel() -> None:
    token = CancelToken()
    seen: list[str] = []
    remove = token.add_callback(lambda: seen.append("first"))
    token.cancel()
    token.add_callback(lambda: seen.append("late"))
    remove()
    assert seen == ["first", "late"]


def test_removed_callback_does_not_run() -> None:
    token = CancelToken()
    seen: list[str] = []
    remove = token.add_callback(lambda: seen.append("x"))
    remove()
    token.cancel()
    assert seen == []
