"""llm_agent.sandbox

Restricted in-process Python evaluator behind the `code_eval` tool.

A snippet is treated as the body of a function, so `return 1 + 1` yields 2.
Before running, the snippet is parsed and checked against a denylist (imports,
dunder access, reflective builtins). It then runs with a fixed set of
deterministic builtins, a few read-only helper namespaces (`math`, `json`,
`statistics`) and a `console` object whose `log/info/warn/error` calls (and
`print`) are captured in order.

This is NOT a security boundary. There is no timeout and no memory cap: a
snippet that never terminates blocks the calling thread until the process
exits. Resource and time limits must be added before exposing this to
untrusted input.
"""

from __future__ import annotations

import ast
import builtins
import json
import math
import statistics
from types import SimpleNamespace
from typing import Any, Callable


JsonDict = dict[str, Any]

SNIPPET_FUNC_NAME = "_snippet"


_BANNED_CALLS: set[str] = {
    "__import__",
    "breakpoint",
    "compile",
    "delattr",
    "dir",
    "eval",
    "exec",
    "exit",
    "getattr",
    "globals",
    "hasattr",
    "help",
    "input",
    "locals",
    "memoryview",
    "open",
    "quit",
    "setattr",
    "type",
    "vars",
}


_SAFE_BUILTIN_NAMES: tuple[str, ...] = (
    "abs",
    "all",
    "any",
    "ascii",
    "bin",
    "bool",
    "bytes",
    "callable",
    "chr",
    "complex",
    "dict",
    "divmod",
    "enumerate",
    "filter",
    "float",
    "format",
    "frozenset",
    "hex",
    "int",
    "isinstance",
    "issubclass",
    "iter",
    "len",
    "list",
    "map",
    "max",
    "min",
    "next",
    "oct",
    "ord",
    "pow",
    "range",
    "repr",
    "reversed",
    "round",
    "set",
    "slice",
    "sorted",
    "str",
    "sum",
    "tuple",
    "zip",
    # exceptions snippets commonly raise / catch
    "ArithmeticError",
    "AssertionError",
    "Exception",
    "IndexError",
    "KeyError",
    "LookupError",
    "NotImplementedError",
    "OverflowError",
    "RuntimeError",
    "StopIteration",
    "TypeError",
    "ValueError",
    "ZeroDivisionError",
)


def _public_namespace(module: Any, names: tuple[str, ...] | None = None) -> SimpleNamespace:
    """Expose selected public callables/constants of `module` without the module object."""

    if names is None:
        names = tuple(n for n in dir(module) if not n.startswith("_"))
    return SimpleNamespace(**{n: getattr(module, n) for n in names if hasattr(module, n)})


class SandboxViolation(ValueError):
    def __init__(self, errors: list[str]) -> None:
        super().__init__("; ".join(errors))
        self.errors = errors


def validate_snippet(code: str) -> list[str]:
    """Return a list of policy violations (empty means the snippet may run)."""

    try:
        tree = ast.parse(code or "", mode="exec")
    except SyntaxError as e:
        return [f"SyntaxError: {e}"]

    errors: list[str] = []

    class V(ast.NodeVisitor):
        def visit_Import(self, node: ast.Import) -> None:  # noqa: N802
            errors.append("import statements are not allowed")
            self.generic_visit(node)

        def visit_ImportFrom(self, node: ast.ImportFrom) -> None:  # noqa: N802
            errors.append("import statements are not allowed")
            self.generic_visit(node)

        def visit_Attribute(self, node: ast.Attribute) -> None:  # noqa: N802
            if isinstance(node.attr, str) and node.attr.startswith("_"):
                errors.append(f"access to private attribute '{node.attr}' is not allowed")
            self.generic_visit(node)

        def visit_Name(self, node: ast.Name) -> None:  # noqa: N802
            if node.id.startswith("__"):
                errors.append(f"use of dunder name '{node.id}' is not allowed")
            self.generic_visit(node)

        def visit_Call(self, node: ast.Call) -> None:  # noqa: N802
            fn = node.func
            if isinstance(fn, ast.Name) and fn.id in _BANNED_CALLS:
                errors.append(f"call to '{fn.id}' is not allowed")
            self.generic_visit(node)

        def visit_Global(self, node: ast.Global) -> None:  # noqa: N802
            errors.append("global statements are not allowed")
            self.generic_visit(node)

    V().visit(tree)
    # Keep order stable, drop duplicates.
    return list(dict.fromkeys(errors))


def _format_arg(arg: Any) -> str:
    if isinstance(arg, str):
        return arg
    if isinstance(arg, (dict, list, tuple)):
        try:
            return json.dumps(arg, ensure_ascii=False)
        except (TypeError, ValueError):
            return repr(arg)
    return str(arg)


class CapturedConsole:
    """`console`-style logger that records lines instead of printing them."""

    def __init__(self) -> None:
        self.lines: list[str] = []

    def _emit(self, prefix: str, args: tuple[Any, ...]) -> None:
        self.lines.append(prefix + " ".join(_format_arg(a) for a in args))

    def log(self, *args: Any) -> None:
        self._emit("", args)

    def info(self, *args: Any) -> None:
        self._emit("INFO: ", args)

    def warn(self, *args: Any) -> None:
        self._emit("WARN: ", args)

    warning = warn

    def error(self, *args: Any) -> None:
        self._emit("ERROR: ", args)

    def print(self, *args: Any, sep: str = " ", end: str = "\n", **_: Any) -> None:  # noqa: A003
        self.lines.append(sep.join(_format_arg(a) for a in args))


def _build_globals(console: CapturedConsole) -> JsonDict:
    safe_builtins: JsonDict = {n: getattr(builtins, n) for n in _SAFE_BUILTIN_NAMES}
    safe_builtins["print"] = console.print
    # Needed for `class` statements inside snippets.
    safe_builtins["__build_class__"] = builtins.__build_class__

    return {
        "__builtins__": safe_builtins,
        "__name__": "llm_agent_snippet",
        "console": SimpleNamespace(
            log=console.log,
            info=console.info,
            warn=console.warn,
            warning=console.warning,
            error=console.error,
        ),
        "math": _public_namespace(math),
        "statistics": _public_namespace(
            statistics,
            ("mean", "median", "median_low", "median_high", "mode", "multimode", "pstdev", "pvariance", "stdev", "variance", "fmean", "quantiles"),
        ),
        "json": _public_namespace(json, ("dumps", "loads")),
    }


def compile_snippet(code: str) -> Callable[[JsonDict], Any]:
    """Wrap `code` as a function body and compile it.

    Returns a callable taking the globals dict and producing the snippet's
    return value. Raises `SandboxViolation` if the policy check fails.
    """

    errs = validate_snippet(code)
    if errs:
        raise SandboxViolation(errs)

    body = ast.parse(code or "", mode="exec").body
    wrapper = ast.parse(f"def {SNIPPET_FUNC_NAME}():\n    pass\n", mode="exec")
    func_def = wrapper.body[0]
    assert isinstance(func_def, ast.FunctionDef)
    func_def.body = body or [ast.Pass()]
    ast.fix_missing_locations(wrapper)
    compiled = compile(wrapper, "<code_eval>", "exec")

    def _run(globs: JsonDict) -> Any:
        exec(compiled, globs)  # noqa: S102
        return globs[SNIPPET_FUNC_NAME]()

    return _run


def _jsonable(value: Any) -> Any:
    try:
        json.dumps(value)
        return value
    except (TypeError, ValueError):
        pass
    try:
        return repr(value)
    except ValueError:
        # e.g. ints beyond the interpreter's digit limit for str conversion
        return f"<{type(value).__name__}>"


def evaluate(code: str, *, return_value: bool = True) -> JsonDict:
    """Run a snippet and return the tool payload.

    Success: `{code, result, console_output, success: True}` (`result` is None
    when `return_value` is false).
    Failure: `{code, error, console_output, success: False}`.
    """

    console = CapturedConsole()
    try:
        run = compile_snippet(code)
        value = run(_build_globals(console))
    except SandboxViolation as e:
        return {
            "code": code,
            "error": f"Code rejected: {e}",
            "console_output": console.lines,
            "success": False,
        }
    except SyntaxError as e:
        return {
            "code": code,
            "error": f"SyntaxError: {e.msg} (line {e.lineno})",
            "console_output": console.lines,
            "success": False,
        }
    except Exception as e:  # noqa: BLE001
        return {
            "code": code,
            "error": f"{type(e).__name__}: {e}",
            "console_output": console.lines,
            "success": False,
        }

    return {
        "code": code,
        "result": _jsonable(value) if return_value else None,
        "console_output": console.lines,
        "success": True,
    }
