"""llm_agent.llm

Chat-completion client used by the turn loop and the `remote_workflow` tool.

Request body (OpenAI chat completions):

  {model, messages, tools, tool_choice: "auto", temperature, max_tokens}

Response:

  {"choices": [{"message": {"content": ..., "tool_calls": [...]}}]}

Key properties:
- Every call runs under the turn's `CancelToken`, so a user cancel abandons
  the in-flight request and surfaces as `Cancelled`.
- Non-2xx statuses, transport failures and malformed bodies become
  `RemoteError`. Nothing is retried (the SDK's own retries are disabled).
- Keep this module testable by injecting a small client interface.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Optional, Protocol, Sequence

import httpx
import openai

from .gate import Cancelled, CancelToken
from .protocol import JsonDict, Message, ProtocolError, ToolCall, parse_tool_calls


_LOG = logging.getLogger(__name__)


# ---- Public types ----


class LLMError(RuntimeError):
    pass


class RemoteError(LLMError):
    def __init__(self, message: str, *, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


@dataclass(frozen=True)
class Completion:
    output: str
    tool_calls: list[ToolCall] = field(default_factory=list)
    raw: Any = None


class ChatClient(Protocol):
    """Minimal client surface for dependency injection / mocking."""

    def complete(
        self,
        *,
        messages: Sequence[Message],
        tools: Optional[Sequence[JsonDict]] = None,
        token: Optional[CancelToken] = None,
        **params: Any,
    ) -> Completion: ...


# ---- Parsing ----


def _as_dict(x: Any) -> JsonDict:
    if isinstance(x, dict):
        return x
    if hasattr(x, "model_dump"):
        d = x.model_dump()
        if isinstance(d, dict):
            return d
    raise RemoteError(f"Malformed completion response: {type(x).__name__}")


def parse_completion(data: Any) -> Completion:
    body = _as_dict(data)

    choices = body.get("choices")
    if not isinstance(choices, list) or not choices:
        raise RemoteError("Malformed completion response: missing 'choices'")
    first = choices[0]
    if not isinstance(first, dict) or not isinstance(first.get("message"), dict):
        raise RemoteError("Malformed completion response: missing 'message'")

    msg = first["message"]
    content = msg.get("content")
    if content is None:
        content = ""
    if not isinstance(content, str):
        raise RemoteError("Malformed completion response: 'content' must be a string")

    try:
        tool_calls = parse_tool_calls(msg.get("tool_calls") or [])
    except ProtocolError as e:
        raise RemoteError(f"Malformed completion response: {e}") from e

    return Completion(output=content, tool_calls=tool_calls, raw=body)


# ---- OpenAI implementation ----


class OpenAIChatClient:
    """Adapter over the `openai` SDK chat completions API.

    Works against any OpenAI-compatible base URL (AI Pipe, OpenAI, OpenRouter).
    """

    def __init__(
        self,
        *,
        api_key: str,
        base_url: str,
        model: str,
        temperature: float = 0.7,
        max_tokens: int = 2000,
        timeout_s: Optional[float] = None,
        client: Any = None,
    ) -> None:
        self._model = model
        self._temperature = temperature
        self._max_tokens = max_tokens
        if client is not None:
            self._client = client
        else:
            self._client = openai.OpenAI(
                # The SDK refuses an empty key; AI Pipe's free tier works without one.
                api_key=api_key or "unset",
                base_url=base_url,
                max_retries=0,
                timeout=httpx.Timeout(timeout_s),
            )

    @property
    def model(self) -> str:
        return self._model

    def _create(self, kwargs: JsonDict) -> Any:
        try:
            return self._client.chat.completions.create(**kwargs)
        except openai.APIStatusError as e:
            raise RemoteError(f"LLM API error: {e.status_code} {e.message}", status_code=e.status_code) from e
        except openai.APITimeoutError as e:
            raise RemoteError("LLM API error: request timed out") from e
        except openai.APIConnectionError as e:
            raise RemoteError(f"LLM API error: connection failed ({e})") from e
        except openai.OpenAIError as e:
            raise RemoteError(f"LLM API error: {e}") from e

    def complete(
        self,
        *,
        messages: Sequence[Message],
        tools: Optional[Sequence[JsonDict]] = None,
        token: Optional[CancelToken] = None,
        **params: Any,
    ) -> Completion:
        kwargs: JsonDict = {
            "model": params.pop("model", None) or self._model,
            "messages": list(messages),
            "temperature": params.pop("temperature", self._temperature),
            "max_tokens": params.pop("max_tokens", self._max_tokens),
        }
        if tools:
            kwargs["tools"] = list(tools)
            kwargs["tool_choice"] = "auto"
        kwargs.update(params)

        _LOG.debug("chat.completions.create model=%s messages=%d tools=%d", kwargs["model"], len(messages), len(tools or []))

        if token is None:
            resp = self._create(kwargs)
        else:
            resp = token.run(lambda: self._create(kwargs), name="chat-completion")
        return parse_completion(resp)


class FakeChatClient:
    """Offline fake chat client.

    Replays scripted completions in order; once the script is exhausted it
    returns a canned text reply so the front-end can be demoed without an API
    key. Script entries may be `Completion`s, raw response dicts, or exceptions
    to raise.
    """

    def __init__(self, script: Optional[Sequence[Any]] = None) -> None:
        self._script = list(script or [])
        self.calls: list[JsonDict] = []

    def complete(
        self,
        *,
        messages: Sequence[Message],
        tools: Optional[Sequence[JsonDict]] = None,
        token: Optional[CancelToken] = None,
        **params: Any,
    ) -> Completion:
        if token is not None and token.cancelled:
            raise Cancelled("Request was cancelled")
        self.calls.append(
            {
                "messages": json.loads(json.dumps(list(messages))),
                "tools": list(tools or []),
                "params": dict(params),
            }
        )

        if self._script:
            nxt = self._script.pop(0)
            if isinstance(nxt, BaseException):
                raise nxt
            if isinstance(nxt, Completion):
                return nxt
            return parse_completion(nxt)

        last_user = ""
        for m in reversed(list(messages)):
            if m.get("role") == "user":
                last_user = str(m.get("content") or "")
                break
        return Completion(output=f"(FAKE MODE) You said: {last_user}")
