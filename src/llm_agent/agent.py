"""llm_agent.agent

Turn loop (ask model -> run requested tools -> ask again) for one user turn.

Design:
- Pure, testable loop runner. No UI code here; a front-end subscribes via an
  event callback and holds a reference to the `AgentLoop` to pause, resume or
  cancel it.
- `run()` blocks; call it from a worker thread so the UI thread stays free to
  drive the gate.
- Checkpoints: before each model request, right after it, before tool
  execution, and before each individual tool.

Guarantee: every tool call the model issues gets exactly one `tool` message
before the next model request; tool failures become `{"error": ...}` payloads.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Optional

import httpx

from .config import AgentConfig, require_credentials
from .conversation import Conversation
from .events import (
    AgentEvent,
    EventCallback,
    MessageAppended,
    StatusChanged,
    ToolCallFinished,
    ToolCallIssued,
    TurnFinished,
)
from .gate import Cancelled, GateState, LoopState, PauseGate
from .llm import ChatClient, FakeChatClient, OpenAIChatClient, RemoteError
from .prompts import SYSTEM_PROMPT
from .protocol import Message, ProtocolError, assistant_message
from .tools import ToolDispatcher, ToolRegistry, build_default_registry


_LOG = logging.getLogger(__name__)


class AgentBusy(RuntimeError):
    pass


class RoundLimitExceeded(RuntimeError):
    pass


@dataclass
class TurnResult:
    # "completed" | "cancelled" | "error"
    status: str
    messages: list[Message] = field(default_factory=list)
    rounds: int = 0
    error: str = ""


class AgentLoop:
    def __init__(
        self,
        *,
        client: ChatClient,
        registry: ToolRegistry,
        system_prompt: str = SYSTEM_PROMPT,
        max_rounds: Optional[int] = None,
        on_event: Optional[EventCallback] = None,
    ) -> None:
        self._client = client
        self._registry = registry
        self._system_prompt = system_prompt
        self._max_rounds = max_rounds
        self._on_event = on_event

        self._lock = threading.Lock()
        self._processing = False
        self._gate: Optional[PauseGate] = None
        self._last_dispatcher: Optional[ToolDispatcher] = None

    @classmethod
    def from_config(
        cls,
        cfg: AgentConfig,
        *,
        client: Optional[ChatClient] = None,
        on_event: Optional[EventCallback] = None,
        search_transport: Optional[httpx.BaseTransport] = None,
    ) -> "AgentLoop":
        """Wire client + tools from config.

        Raises `ConfigError` (before any remote call) when the selected
        provider needs an API key that is not configured.
        """

        if client is None:
            if cfg.fake_llm:
                client = FakeChatClient()
            else:
                require_credentials(cfg)
                client = OpenAIChatClient(
                    api_key=cfg.api_key,
                    base_url=cfg.base_url,
                    model=cfg.model,
                    temperature=cfg.temperature,
                    max_tokens=cfg.max_tokens,
                    timeout_s=cfg.request_timeout_s,
                )

        registry = build_default_registry(
            workflow_client=client,
            workflow_model=cfg.workflow_model,
            workflow_max_tokens=cfg.workflow_max_tokens,
            search_api_key=cfg.search_api_key,
            search_engine_id=cfg.search_engine_id,
            search_base_url=cfg.search_base_url,
            timeout_s=cfg.request_timeout_s,
            search_transport=search_transport,
        )
        return cls(client=client, registry=registry, max_rounds=cfg.max_rounds, on_event=on_event)

    # ---- controls (any thread) ----

    @property
    def is_processing(self) -> bool:
        with self._lock:
            return self._processing

    @property
    def state(self) -> LoopState:
        with self._lock:
            gate = self._gate
            processing = self._processing
        if gate is None:
            return LoopState(processing=processing)
        return gate.loop_state(processing=processing)

    @property
    def is_blocked(self) -> bool:
        """True while the loop thread is parked at a checkpoint by a pause."""

        gate = self._current_gate()
        return gate.is_waiting if gate is not None else False

    @property
    def gate_state(self) -> Optional[GateState]:
        with self._lock:
            gate = self._gate
        return gate.state if gate is not None else None

    def pause(self) -> bool:
        gate = self._current_gate()
        if gate is None or not gate.pause():
            return False
        self._emit(StatusChanged("paused", "Processing paused"))
        return True

    def resume(self) -> bool:
        gate = self._current_gate()
        if gate is None or not gate.resume():
            return False
        self._emit(StatusChanged("resumed", "Processing resumed"))
        return True

    def toggle_pause(self) -> bool:
        """Pause when running, resume when paused. Returns True if now paused."""

        gate = self._current_gate()
        if gate is None:
            return False
        if gate.state == GateState.PAUSED:
            self.resume()
            return False
        return self.pause()

    def cancel(self) -> bool:
        gate = self._current_gate()
        if gate is None or not gate.cancel():
            return False
        self._emit(StatusChanged("cancelling", "Processing cancelled by user"))
        return True

    @property
    def registry(self) -> ToolRegistry:
        return self._registry

    def new_dispatcher(self) -> ToolDispatcher:
        """A dispatcher over this loop's tools, outside any turn (no cancel token)."""

        return ToolDispatcher(self._registry)

    def tool_stats(self) -> dict:
        """Execution stats of the most recent turn."""

        d = self._last_dispatcher
        return d.stats() if d is not None else self.new_dispatcher().stats()

    # ---- the loop ----

    def run(self, user_input: str) -> TurnResult:
        """Run one user turn to completion, cancellation or error."""

        if not isinstance(user_input, str) or not user_input.strip():
            raise ValueError("user_input must be a non-empty string")

        gate = PauseGate()
        with self._lock:
            if self._processing:
                raise AgentBusy("a turn is already in progress")
            self._processing = True
            self._gate = gate

        dispatcher = ToolDispatcher(self._registry, token=gate.token)
        self._last_dispatcher = dispatcher
        conv = Conversation(system_prompt=self._system_prompt, user_input=user_input)
        self._emit(MessageAppended("user", user_input))

        rounds = 0
        _LOG.info("turn started")
        try:
            while True:
                gate.checkpoint()
                if self._max_rounds is not None and rounds >= self._max_rounds:
                    raise RoundLimitExceeded(f"Exceeded max_rounds={self._max_rounds}")

                self._emit(StatusChanged("thinking", "Agent is analyzing your request..."))
                completion = self._client.complete(
                    messages=conv.snapshot(),
                    tools=self._registry.tool_list(),
                    token=gate.token,
                )
                rounds += 1
                _LOG.info("round %d: %d tool call(s)", rounds, len(completion.tool_calls))

                gate.checkpoint()

                # Always show model output if any, even when tool calls follow.
                if completion.output.strip():
                    self._emit(MessageAppended("assistant", completion.output))

                if not completion.tool_calls:
                    conv.append(assistant_message(completion.output))
                    break

                # Recorded before the checkpoint so a cancel here keeps the
                # displayed text; its tool calls then stay unanswered.
                conv.append(assistant_message(completion.output, completion.tool_calls))
                gate.checkpoint()

                self._emit(StatusChanged("executing_tools", "Executing tools..."))
                for call in completion.tool_calls:
                    self._emit(ToolCallIssued(call.id, call.name, dict(call.arguments)))

                for call in completion.tool_calls:
                    gate.checkpoint()
                    result = dispatcher.execute(call)
                    conv.append(result.to_message())
                    self._emit(ToolCallFinished(call.id, call.name, result.payload, result.is_error))

        except Cancelled:
            _LOG.info("turn cancelled after %d round(s)", rounds)
            self._emit(MessageAppended("error", "Request was cancelled by user."))
            self._emit(TurnFinished("cancelled"))
            return TurnResult(status="cancelled", messages=conv.snapshot(), rounds=rounds)
        except (RemoteError, ProtocolError, RoundLimitExceeded) as e:
            _LOG.warning("turn failed after %d round(s): %s", rounds, e)
            self._emit(MessageAppended("error", f"Error: {e}"))
            self._emit(TurnFinished("error", str(e)))
            return TurnResult(status="error", messages=conv.snapshot(), rounds=rounds, error=str(e))
        except Exception as e:
            _LOG.exception("turn crashed")
            self._emit(MessageAppended("error", f"Error: {e}"))
            self._emit(TurnFinished("error", str(e)))
            raise
        finally:
            with self._lock:
                self._processing = False
                self._gate = None

        _LOG.info("turn completed in %d round(s)", rounds)
        self._emit(TurnFinished("completed"))
        return TurnResult(status="completed", messages=conv.snapshot(), rounds=rounds)

    # ---- internals ----

    def _current_gate(self) -> Optional[PauseGate]:
        with self._lock:
            return self._gate

    def _emit(self, event: AgentEvent) -> None:
        if self._on_event is None:
            return
        try:
            self._on_event(event)
        except Exception:
            _LOG.exception("event callback failed for %s", type(event).__name__)
