"""llm_agent.tools

Tool catalog advertised to the model, the tool handlers, and the dispatcher
that runs requested tool calls.

Tool definitions are passed to the model via the chat-completions `tools`
parameter. When the model returns `tool_calls`, the application executes each
one and sends the result back as a `tool` message referencing the call id.

Three tools are built in:
- `search`: Google Custom Search JSON API (via `httpx`)
- `remote_workflow`: single-turn completion with a fixed system prompt per workflow type
- `code_eval`: restricted Python evaluator (`llm_agent.sandbox`)

The dispatcher never raises: every failure is returned as `{"error": ...}` so
the loop can always answer a tool call.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Optional, Protocol

import httpx

from .gate import CancelToken
from .llm import ChatClient, LLMError
from .prompts import WORKFLOW_PROMPTS, workflow_user_content
from .protocol import JsonDict, ToolCall, ToolResult
from .sandbox import evaluate


_LOG = logging.getLogger(__name__)


class ToolError(RuntimeError):
    pass


class ToolHandler(Protocol):
    def __call__(self, args: JsonDict, *, token: Optional[CancelToken] = None) -> Any: ...


def _function_spec(name: str, description: str, parameters: JsonDict) -> JsonDict:
    return {
        "type": "function",
        "function": {"name": name, "description": description, "parameters": parameters},
    }


@dataclass
class ToolRegistry:
    """Static catalog of callable tools and their handlers."""

    tools: dict[str, JsonDict] = field(default_factory=dict)
    handlers: dict[str, ToolHandler] = field(default_factory=dict)

    def tool_list(self) -> list[JsonDict]:
        return list(self.tools.values())

    def names(self) -> list[str]:
        return list(self.tools.keys())

    def add(self, *, tool_spec: JsonDict, handler: ToolHandler) -> None:
        fn = tool_spec.get("function")
        name = fn.get("name") if isinstance(fn, dict) else None
        if not isinstance(name, str) or not name:
            raise ToolError("tool_spec missing function name")
        if name in self.tools:
            raise ToolError(f"Tool already exists: {name}")
        self.tools[name] = tool_spec
        self.handlers[name] = handler

    def required_params(self, name: str) -> list[str]:
        spec = self.tools.get(name) or {}
        params = (spec.get("function") or {}).get("parameters") or {}
        req = params.get("required") or []
        return [str(r) for r in req]


# ---- search ----


SEARCH_MAX_RESULTS = 10


def search_tool_spec() -> JsonDict:
    return _function_spec(
        "search",
        "Search the web using Google Custom Search API for current information",
        {
            "type": "object",
            "properties": {
                "query": {"type": "string", "description": "The search query to execute"},
                "num_results": {
                    "type": "integer",
                    "description": "Number of results to return (1-10)",
                    "default": 5,
                },
            },
            "required": ["query"],
        },
    )


def _clamp_num_results(raw: Any, default: int = 5) -> int:
    try:
        n = int(raw) if raw is not None else default
    except (TypeError, ValueError):
        n = default
    return max(1, min(SEARCH_MAX_RESULTS, n))


def make_search_handler(
    *,
    api_key: str,
    engine_id: str,
    base_url: str,
    timeout_s: Optional[float] = None,
    transport: Optional[httpx.BaseTransport] = None,
) -> ToolHandler:
    """Create a handler for `search`."""

    def _request(params: JsonDict) -> httpx.Response:
        with httpx.Client(
            timeout=httpx.Timeout(timeout_s),
            follow_redirects=True,
            headers={"Accept": "application/json", "User-Agent": "llm-agent/1.0"},
            transport=transport,
        ) as client:
            return client.get(base_url, params=params)

    def _handler(args: JsonDict, *, token: Optional[CancelToken] = None) -> JsonDict:
        query = args.get("query")
        if not isinstance(query, str) or not query.strip():
            raise ToolError("query must be a non-empty string")
        if not api_key or not engine_id:
            raise ToolError("Search failed: search is not configured (set GOOGLE_SEARCH_API_KEY and GOOGLE_SEARCH_ENGINE_ID)")

        num = _clamp_num_results(args.get("num_results"))
        params = {"key": api_key, "cx": engine_id, "q": query, "num": num, "start": 1}

        try:
            if token is not None:
                r = token.run(lambda: _request(params), name="search")
            else:
                r = _request(params)
        except httpx.HTTPError as e:
            raise ToolError(f"Search failed: {type(e).__name__}: {e}") from e

        try:
            data = r.json()
        except ValueError:
            data = None

        if isinstance(data, dict) and isinstance(data.get("error"), dict):
            msg = data["error"].get("message") or f"HTTP {r.status_code}"
            raise ToolError(f"Search failed: Google Search API error: {msg}")
        if r.status_code >= 400:
            raise ToolError(f"Search failed: HTTP {r.status_code}")
        if not isinstance(data, dict):
            raise ToolError("Search failed: response was not a JSON object")

        items = data.get("items") or []
        if not items:
            return {"query": query, "results": [], "message": "No results found"}

        info = data.get("searchInformation") or {}
        results = [
            {
                "title": str(it.get("title") or ""),
                "link": str(it.get("link") or ""),
                "snippet": str(it.get("snippet") or ""),
                "display_link": str(it.get("displayLink") or ""),
            }
            for it in items[:num]
            if isinstance(it, dict)
        ]
        return {
            "query": query,
            "total_results": str(info.get("totalResults") or len(results)),
            "search_time": info.get("searchTime") or 0,
            "results": results,
        }

    return _handler


# ---- remote_workflow ----


def remote_workflow_tool_spec() -> JsonDict:
    return _function_spec(
        "remote_workflow",
        "Execute AI workflows (analysis, summarization, generation, classification) on a remote model",
        {
            "type": "object",
            "properties": {
                "workflow_type": {
                    "type": "string",
                    "enum": sorted(WORKFLOW_PROMPTS),
                    "description": "Type of AI workflow to execute",
                },
                "input_data": {"type": "string", "description": "Data to process through the workflow"},
                "instructions": {"type": "string", "description": "Specific instructions for processing"},
            },
            "required": ["workflow_type", "input_data"],
        },
    )


def make_remote_workflow_handler(
    *,
    client: ChatClient,
    model: Optional[str] = None,
    temperature: float = 0.7,
    max_tokens: int = 1500,
) -> ToolHandler:
    """Create a handler for `remote_workflow`."""

    def _handler(args: JsonDict, *, token: Optional[CancelToken] = None) -> JsonDict:
        workflow_type = str(args.get("workflow_type") or "")
        system_prompt = WORKFLOW_PROMPTS.get(workflow_type)
        if system_prompt is None:
            raise ToolError(f"Unknown workflow_type: {workflow_type!r} (expected one of {', '.join(sorted(WORKFLOW_PROMPTS))})")

        input_data = args.get("input_data")
        if not isinstance(input_data, str):
            input_data = "" if input_data is None else str(input_data)
        instructions = args.get("instructions") or ""

        params: JsonDict = {"temperature": temperature, "max_tokens": max_tokens}
        if model:
            params["model"] = model
        try:
            completion = client.complete(
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": workflow_user_content(str(instructions), input_data)},
                ],
                tools=None,
                token=token,
                **params,
            )
        except LLMError as e:
            raise ToolError(f"Workflow failed: {e}") from e

        return {"workflow_type": workflow_type, "result": completion.output}

    return _handler


# ---- code_eval ----


def code_eval_tool_spec() -> JsonDict:
    return _function_spec(
        "code_eval",
        (
            "Execute a Python snippet in a restricted scope and return its result. "
            "The snippet is a function body: use `return` for the value. "
            "`console.log/info/warn/error` and `print` output is captured. "
            "`math`, `json` and `statistics` are available; imports are not."
        ),
        {
            "type": "object",
            "properties": {
                "code": {"type": "string", "description": "Python code to execute"},
                "return_value": {
                    "type": "boolean",
                    "description": "Whether to return the result of the code execution",
                    "default": True,
                },
            },
            "required": ["code"],
        },
    )


def make_code_eval_handler() -> ToolHandler:
    def _handler(args: JsonDict, *, token: Optional[CancelToken] = None) -> JsonDict:  # noqa: ARG001
        code = args.get("code")
        if not isinstance(code, str):
            raise ToolError("code must be a string")
        return evaluate(code, return_value=_as_flag(args.get("return_value"), default=True))

    return _handler


def _as_flag(raw: Any, *, default: bool) -> bool:
    if raw is None:
        return default
    if isinstance(raw, bool):
        return raw
    if isinstance(raw, str) and raw.strip().lower() in {"true", "false"}:
        return raw.strip().lower() == "true"
    raise ToolError(f"expected a boolean, got {raw!r}")


# ---- registry wiring ----


def build_default_registry(
    *,
    workflow_client: ChatClient,
    workflow_model: Optional[str] = None,
    workflow_max_tokens: int = 1500,
    search_api_key: str = "",
    search_engine_id: str = "",
    search_base_url: str = "https://www.googleapis.com/customsearch/v1",
    timeout_s: Optional[float] = None,
    search_transport: Optional[httpx.BaseTransport] = None,
) -> ToolRegistry:
    reg = ToolRegistry()
    reg.add(
        tool_spec=search_tool_spec(),
        handler=make_search_handler(
            api_key=search_api_key,
            engine_id=search_engine_id,
            base_url=search_base_url,
            timeout_s=timeout_s,
            transport=search_transport,
        ),
    )
    reg.add(
        tool_spec=remote_workflow_tool_spec(),
        handler=make_remote_workflow_handler(
            client=workflow_client,
            model=workflow_model,
            max_tokens=workflow_max_tokens,
        ),
    )
    reg.add(tool_spec=code_eval_tool_spec(), handler=make_code_eval_handler())
    return reg


# ---- dispatcher ----


def _utc_now_iso() -> str:
    return datetime.now(tz=timezone.utc).isoformat()


@dataclass(frozen=True)
class ExecutionRecord:
    tool_call_id: str
    name: str
    success: bool
    duration_s: float
    error: str = ""
    timestamp: str = ""


class ToolDispatcher:
    """Maps a tool call onto its handler and normalizes the outcome."""

    def __init__(
        self,
        registry: ToolRegistry,
        *,
        token: Optional[CancelToken] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._registry = registry
        self._token = token
        self._clock = clock
        self._history: list[ExecutionRecord] = []

    @property
    def history(self) -> list[ExecutionRecord]:
        return list(self._history)

    def _run(self, call: ToolCall) -> Any:
        handler = self._registry.handlers.get(call.name)
        if handler is None:
            return {"error": f"Unknown tool: {call.name}"}
        if call.arguments_error:
            return {"error": call.arguments_error}

        missing = [p for p in self._registry.required_params(call.name) if call.arguments.get(p) is None]
        if missing:
            return {"error": f"Missing required parameter(s) for {call.name}: {', '.join(missing)}"}

        try:
            return handler(dict(call.arguments), token=self._token)
        except Exception as e:  # noqa: BLE001
            return {"error": str(e) or type(e).__name__}

    def execute(self, call: ToolCall) -> ToolResult:
        started = self._clock()
        payload = self._run(call)
        duration = max(0.0, self._clock() - started)

        result = ToolResult(tool_call_id=call.id, payload=payload)
        error = ""
        if result.is_error:
            error = str(payload.get("error"))
        rec = ExecutionRecord(
            tool_call_id=call.id,
            name=call.name,
            success=not result.is_error,
            duration_s=duration,
            error=error,
            timestamp=_utc_now_iso(),
        )
        self._history.append(rec)
        if rec.success:
            _LOG.info("tool %s (%s) ok in %.3fs", call.name, call.id, duration)
        else:
            _LOG.warning("tool %s (%s) failed in %.3fs: %s", call.name, call.id, duration, error)
        return result

    def stats(self) -> JsonDict:
        total = len(self._history)
        successful = sum(1 for r in self._history if r.success)
        usage: dict[str, int] = {}
        for r in self._history:
            usage[r.name] = usage.get(r.name, 0) + 1
        return {
            "total": total,
            "successful": successful,
            "failed": total - successful,
            "average_duration_s": (sum(r.duration_s for r in self._history) / total) if total else 0.0,
            "tool_usage": usage,
        }
