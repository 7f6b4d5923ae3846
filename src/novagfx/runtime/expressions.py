"""
Sandboxed evaluation of user expressions and scripts.

User code is written in a small, safe subset of Python. It is parsed with the
``ast`` module and interpreted node by node; nothing is handed to ``eval`` or
``exec``. Only names in the scope (``state``, ``data``, ``event``,
``element``, ``params``, ``actions``), the data helpers and a handful of pure
builtins are reachable.

Every node evaluation checks the wall-clock deadline and every loop iteration
ticks a shared :class:`LoopGuard`, so runaway code is stopped by the
interpreter itself rather than by the host. Operations that could run long
within a single node (big powers, repetition, string conversion) are refused
up front when their result would be too large.
"""

from __future__ import annotations

import ast
import asyncio
import builtins
import inspect
import logging
import math
import operator
import random
import time
from dataclasses import dataclass, field
from functools import lru_cache
from types import MappingProxyType
from typing import Any, Callable, Iterable, Iterator, Mapping, MutableMapping, Optional

from ..config import InteractiveConfig
from ..errors import (
    EvaluationError,
    ExpressionTimeoutError,
    ForbiddenSyntaxError,
    InteractiveError,
    LoopIterationError,
    ScriptSyntaxError,
    ScriptTimeoutError,
)
from .helpers import (
    as_list,
    avg_values,
    count_items,
    filter_items,
    find_item,
    format_value,
    group_by,
    map_items,
    max_value,
    min_value,
    sort_items,
    stringify,
    sum_values,
)

logger = logging.getLogger("novagfx.runtime")

_DEFAULTS = InteractiveConfig()
EXPRESSION_TIMEOUT_MS = _DEFAULTS.expression_timeout_ms
SCRIPT_TIMEOUT_MS = _DEFAULTS.script_timeout_ms
MAX_LOOP_ITERATIONS = _DEFAULTS.max_loop_iterations
MAX_CALL_DEPTH = _DEFAULTS.max_call_depth
MAX_SEQUENCE_LENGTH = 1_000_000
MAX_INT_BITS = 65_536
MAX_FORMAT_DIGITS = 100

SCOPE_NAMES = ("state", "data", "event", "element", "params", "actions")

FORBIDDEN_IDENTIFIERS = frozenset(
    {
        # interpreter escape hatches
        "eval", "exec", "compile", "open", "input", "print", "breakpoint", "help", "exit", "quit",
        "globals", "locals", "vars", "dir", "getattr", "setattr", "delattr", "hasattr",
        "type", "object", "super", "memoryview", "builtins", "os", "sys", "subprocess",
        # host/browser globals
        "window", "document", "globalThis", "Function", "constructor", "prototype",
        "fetch", "XMLHttpRequest", "WebSocket", "Worker", "importScripts",
        "localStorage", "sessionStorage", "indexedDB",
        "setTimeout", "setInterval", "requestAnimationFrame",
        "alert", "confirm", "prompt", "close", "location", "history", "navigator", "screen",
    }
)
FORBIDDEN_ATTRIBUTES = frozenset({"constructor", "prototype", "format", "format_map", "mro"})

_SYNTAX_MESSAGES = {
    "Import": "Imports are not allowed",
    "ImportFrom": "Imports are not allowed",
    "FunctionDef": "Function definitions are not allowed; use lambda",
    "AsyncFunctionDef": "Function definitions are not allowed; use lambda",
    "ClassDef": "Class definitions are not allowed",
    "Await": "await is not allowed; async actions are awaited by the runtime",
    "With": "with blocks are not allowed",
    "AsyncWith": "with blocks are not allowed",
    "Try": "try blocks are not allowed",
    "Raise": "raise is not allowed",
    "Global": "global declarations are not allowed",
    "Nonlocal": "nonlocal declarations are not allowed",
    "Yield": "yield is not allowed",
    "YieldFrom": "yield is not allowed",
    "NamedExpr": "Assignment expressions are not allowed",
    "Starred": "Star unpacking is not allowed",
}

_ALLOWED_NODES = frozenset(
    {
        "Expression", "Module",
        # statements
        "Expr", "Assign", "AugAssign", "If", "For", "While", "Break", "Continue", "Pass", "Return", "Delete",
        # expressions
        "Constant", "Name", "Attribute", "Subscript", "Slice", "BinOp", "UnaryOp", "BoolOp", "Compare",
        "IfExp", "Call", "keyword", "List", "Tuple", "Dict", "Set", "ListComp", "SetComp", "DictComp",
        "GeneratorExp", "comprehension", "Lambda", "arguments", "arg", "JoinedStr", "FormattedValue",
        # contexts and operators
        "Load", "Store", "Del",
        "Add", "Sub", "Mult", "Div", "FloorDiv", "Mod", "Pow", "BitAnd", "BitOr", "BitXor",
        "USub", "UAdd", "Not", "Invert", "And", "Or",
        "Eq", "NotEq", "Lt", "LtE", "Gt", "GtE", "In", "NotIn", "Is", "IsNot",
    }
)

_BIN_OPS: dict[type, Callable[[Any, Any], Any]] = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.FloorDiv: operator.floordiv,
    ast.Mod: operator.mod,
    ast.Pow: operator.pow,
    ast.BitAnd: operator.and_,
    ast.BitOr: operator.or_,
    ast.BitXor: operator.xor,
}
_UNARY_OPS: dict[type, Callable[[Any], Any]] = {
    ast.USub: operator.neg,
    ast.UAdd: operator.pos,
    ast.Not: operator.not_,
    ast.Invert: operator.invert,
}
_COMPARE_OPS: dict[type, Callable[[Any, Any], bool]] = {
    ast.Eq: operator.eq,
    ast.NotEq: operator.ne,
    ast.Lt: operator.lt,
    ast.LtE: operator.le,
    ast.Gt: operator.gt,
    ast.GtE: operator.ge,
    ast.In: lambda left, right: left in right,
    ast.NotIn: lambda left, right: left not in right,
    ast.Is: operator.is_,
    ast.IsNot: operator.is_not,
}

_STR_METHODS = frozenset(
    {
        "lower", "upper", "strip", "lstrip", "rstrip", "split", "splitlines", "startswith", "endswith",
        "find", "count", "title", "capitalize", "join", "isdigit", "isalpha", "isnumeric",
    }
)
_LIST_METHODS = frozenset({"append", "extend", "insert", "pop", "remove", "index", "count", "reverse", "sort", "copy"})
_TUPLE_METHODS = frozenset({"index", "count"})
_DICT_METHODS = frozenset({"get", "keys", "values", "items", "copy", "update", "pop", "setdefault"})


class _BreakSignal(Exception):
    pass


class _ContinueSignal(Exception):
    pass


class _ReturnSignal(Exception):
    def __init__(self, value: Any) -> None:
        super().__init__()
        self.value = value


class LoopGuard:
    """Counts loop iterations and raises once the ceiling is passed."""

    def __init__(self, limit: int = MAX_LOOP_ITERATIONS) -> None:
        self.limit = limit
        self.count = 0

    def tick(self) -> None:
        self.count += 1
        if self.count > self.limit:
            raise LoopIterationError(
                f"Loop iteration limit exceeded ({self.limit} iterations). Possible infinite loop.",
                limit=self.limit,
            )

    def iterate(self, iterable: Iterable[Any]) -> Iterator[Any]:
        for item in iterable:
            self.tick()
            yield item


def _noop(*_args: Any, **_kwargs: Any) -> None:
    return None


NOOP_ACTIONS = MappingProxyType(
    {
        "navigate": _noop,
        "setState": _noop,
        "getState": _noop,
        "showElement": _noop,
        "hideElement": _noop,
        "playAnimation": _noop,
        "fetchData": _noop,
        "log": _noop,
    }
)


@dataclass
class ScriptScope:
    """Names visible to user code. Dicts are kept by identity so writes are visible to the caller."""

    state: Any = field(default_factory=dict)
    data: Any = field(default_factory=dict)
    event: Any = None
    element: Any = None
    params: Any = field(default_factory=dict)
    actions: Any = field(default_factory=lambda: NOOP_ACTIONS)
    locals: dict[str, Any] = field(default_factory=dict)
    config: Optional[InteractiveConfig] = None

    @classmethod
    def coerce(cls, context: Any) -> "ScriptScope":
        if context is None:
            return cls()
        if isinstance(context, ScriptScope):
            return context
        to_scope = getattr(context, "to_script_scope", None)
        if callable(to_scope):
            return to_scope()
        if isinstance(context, Mapping):
            extras = {key: value for key, value in context.items() if key not in SCOPE_NAMES}
            return cls(
                state=context.get("state") if context.get("state") is not None else {},
                data=context.get("data") if context.get("data") is not None else {},
                event=context.get("event"),
                element=context.get("element"),
                params=context.get("params") if context.get("params") is not None else {},
                actions=context.get("actions") if context.get("actions") is not None else NOOP_ACTIONS,
                locals=extras,
            )
        raise EvaluationError(f"Unsupported evaluation context: {type(context).__name__}")


def _location(node: ast.AST | None) -> tuple[Optional[int], Optional[int]]:
    if node is None:
        return None, None
    line = getattr(node, "lineno", None)
    col = getattr(node, "col_offset", None)
    return line, (col + 1 if col is not None else None)


class _CapabilityChecker(ast.NodeVisitor):
    """Static allowlist check over a parsed tree."""

    def __init__(self) -> None:
        self._loop_depth = 0

    def generic_visit(self, node: ast.AST) -> None:
        name = type(node).__name__
        if name not in _ALLOWED_NODES:
            line, column = _location(node)
            message = _SYNTAX_MESSAGES.get(name, f"Unsupported syntax: {name}")
            raise ForbiddenSyntaxError(message, line=line, column=column)
        super().generic_visit(node)

    def _forbid(self, message: str, node: ast.AST) -> None:
        line, column = _location(node)
        raise ForbiddenSyntaxError(message, line=line, column=column)

    def visit_Name(self, node: ast.Name) -> None:
        if node.id in FORBIDDEN_IDENTIFIERS:
            self._forbid(f"Forbidden identifier: {node.id}", node)
        if node.id.startswith("__"):
            self._forbid(f"Names starting with '__' are not allowed: {node.id}", node)
        self.generic_visit(node)

    def visit_Attribute(self, node: ast.Attribute) -> None:
        if node.attr.startswith("_") or node.attr in FORBIDDEN_ATTRIBUTES:
            self._forbid(f"Forbidden attribute: {node.attr}", node)
        self.generic_visit(node)

    def visit_FormattedValue(self, node: ast.FormattedValue) -> None:
        if node.format_spec is not None:
            self._forbid("Format specifiers are not supported in f-strings; use format()", node)
        self.generic_visit(node)

    def visit_Dict(self, node: ast.Dict) -> None:
        if any(key is None for key in node.keys):
            self._forbid("Dict unpacking is not allowed", node)
        self.generic_visit(node)

    def visit_keyword(self, node: ast.keyword) -> None:
        if node.arg is None:
            self._forbid("Keyword unpacking is not allowed", node)
        self.generic_visit(node)

    def visit_arguments(self, node: ast.arguments) -> None:
        if node.vararg or node.kwarg or node.kwonlyargs:
            raise ForbiddenSyntaxError("Lambdas only support positional parameters")
        self.generic_visit(node)

    def visit_comprehension(self, node: ast.comprehension) -> None:
        if node.is_async:
            self._forbid("Async comprehensions are not allowed", node.iter)
        self.generic_visit(node)

    def _visit_loop(self, node: ast.For | ast.While) -> None:
        if isinstance(node, ast.For):
            self.visit(node.target)
            self.visit(node.iter)
        else:
            self.visit(node.test)
        self._loop_depth += 1
        for stmt in node.body:
            self.visit(stmt)
        self._loop_depth -= 1
        for stmt in node.orelse:
            self.visit(stmt)

    def visit_For(self, node: ast.For) -> None:
        self._visit_loop(node)

    def visit_While(self, node: ast.While) -> None:
        self._visit_loop(node)

    def visit_Break(self, node: ast.Break) -> None:
        if self._loop_depth == 0:
            line, column = _location(node)
            raise ScriptSyntaxError("'break' outside loop", line=line, column=column)

    def visit_Continue(self, node: ast.Continue) -> None:
        if self._loop_depth == 0:
            line, column = _location(node)
            raise ScriptSyntaxError("'continue' not properly in loop", line=line, column=column)


@lru_cache(maxsize=512)
def _parse_checked(code: str, mode: str) -> ast.AST:
    try:
        tree = ast.parse(code, mode=mode)
    except SyntaxError as exc:
        raise ScriptSyntaxError(f"Syntax error: {exc.msg}", line=exc.lineno, column=exc.offset) from exc
    except (ValueError, RecursionError, MemoryError) as exc:
        raise ScriptSyntaxError(f"Could not parse code: {exc}") from exc
    try:
        _CapabilityChecker().visit(tree)
    except RecursionError as exc:
        raise ScriptSyntaxError("Code is too deeply nested") from exc
    return tree


def validate_expression(code: Any, mode: str = "eval") -> ast.AST:
    """
    Parse ``code`` and check it against the capability allowlist without running it.

    ``mode`` is ``"eval"`` for a single expression and ``"exec"`` for a script.
    Raises :class:`ScriptSyntaxError` or :class:`ForbiddenSyntaxError`.
    """
    if mode not in ("eval", "exec"):
        raise ValueError(f"Unknown validation mode: {mode}")
    if not isinstance(code, str):
        raise ScriptSyntaxError(f"Code must be a string, got {type(code).__name__}")
    if mode == "eval":
        code = code.strip()
    return _parse_checked(code, mode)


def collect_diagnostics(code: Any, mode: str = "eval") -> list[dict[str, Any]]:
    try:
        validate_expression(code, mode)
    except (ScriptSyntaxError, ForbiddenSyntaxError) as exc:
        return list(exc.diagnostics or [])
    return []


class Closure:
    """A user ``lambda`` bound to the environment it was created in."""

    def __init__(self, interpreter: "SandboxInterpreter", node: ast.Lambda, env: dict[str, Any], defaults: list[Any]) -> None:
        self._interpreter = interpreter
        self._node = node
        self._env = env
        self._defaults = defaults
        self._params = [a.arg for a in (*node.args.posonlyargs, *node.args.args)]

    def __call__(self, *args: Any, **kwargs: Any) -> Any:
        local = dict(self._env)
        first_default = len(self._params) - len(self._defaults)
        for index, name in enumerate(self._params):
            if index < len(args):
                local[name] = args[index]
            elif name in kwargs:
                local[name] = kwargs[name]
            elif index >= first_default:
                local[name] = self._defaults[index - first_default]
            else:
                local[name] = None
        return self._interpreter.call_closure(self._node.body, local)

    def __repr__(self) -> str:  # pragma: no cover - debug helper
        return f"<lambda {', '.join(self._params)}>"


class _GuardedRange:
    """``range`` whose iteration ticks the loop guard."""

    __slots__ = ("_range", "_interpreter")

    def __init__(self, interpreter: "SandboxInterpreter", value: range) -> None:
        self._interpreter = interpreter
        self._range = value

    def __len__(self) -> int:
        return len(self._range)

    def __iter__(self) -> Iterator[int]:
        for value in self._range:
            self._interpreter.tick()
            yield value

    def __reversed__(self) -> Iterator[int]:
        for value in reversed(self._range):
            self._interpreter.tick()
            yield value

    def __contains__(self, item: Any) -> bool:
        return item in self._range

    def __getitem__(self, index: Any) -> Any:
        if isinstance(index, slice):
            return _GuardedRange(self._interpreter, self._range[index])
        return self._range[index]

    def __repr__(self) -> str:
        return repr(self._range)


def _js_round(value: Any) -> int:
    return math.floor(value + 0.5)


def _sign(value: Any) -> int:
    return (value > 0) - (value < 0)


def _check_power(base: Any, exponent: Any) -> None:
    # Only int ** positive int grows without bound; float powers overflow instead.
    if isinstance(base, int) and isinstance(exponent, int) and exponent > 0 and abs(base) > 1:
        bits = exponent * math.log2(abs(base))
        if bits > MAX_INT_BITS:
            raise EvaluationError(f"Power result too large (about {bits:.0f} bits)")


def _check_product(left: Any, right: Any) -> None:
    if isinstance(left, int) and isinstance(right, int):
        bits = left.bit_length() + right.bit_length()
        if bits > MAX_INT_BITS:
            raise EvaluationError(f"Product too large (about {bits} bits)")


def _safe_pow(base: Any, exponent: Any) -> Any:
    _check_power(base, exponent)
    return base ** exponent


def _check_sequence_size(size: int) -> None:
    if size > MAX_SEQUENCE_LENGTH:
        raise EvaluationError(f"Result too large ({size} items)")


def _deep_size(value: Any, limit: int = MAX_SEQUENCE_LENGTH) -> int:
    """Count items across nested containers, stopping once ``limit`` is passed."""
    total = 0
    pending = [value]
    while pending and total <= limit:
        item = pending.pop()
        if isinstance(item, str):
            total += len(item)
        elif isinstance(item, Mapping):
            total += len(item)
            pending.extend(item.values())
        elif isinstance(item, (list, tuple, set, frozenset)):
            total += len(item)
            pending.extend(item)
    return total


def _check_output_size(value: Any) -> None:
    if isinstance(value, (list, tuple, set, frozenset, Mapping)):
        _check_sequence_size(_deep_size(value))


def _check_digits(digits: Any) -> int:
    digits = int(digits)
    if not 0 <= digits <= MAX_FORMAT_DIGITS:
        raise EvaluationError(f"Digits must be between 0 and {MAX_FORMAT_DIGITS}, got {digits}")
    return digits


def _bounded_str(value: Any = "") -> str:
    _check_output_size(value)
    return str(value)


def _bounded_repr(value: Any) -> str:
    _check_output_size(value)
    return repr(value)


def _bounded_format(value: Any, fmt: str, options: Mapping[str, Any] | None = None) -> str:
    if options and options.get("decimals") is not None:
        _check_digits(options["decimals"])
    return format_value(value, fmt, options)


def _sandbox_min(*args: Any) -> Any:
    if len(args) == 1 or (len(args) == 2 and isinstance(args[1], str) and as_list(args[0]) is not None):
        return min_value(*args)
    return builtins.min(args)


def _sandbox_max(*args: Any) -> Any:
    if len(args) == 1 or (len(args) == 2 and isinstance(args[1], str) and as_list(args[0]) is not None):
        return max_value(*args)
    return builtins.max(args)


MATH = MappingProxyType(
    {
        "floor": math.floor,
        "ceil": math.ceil,
        "trunc": math.trunc,
        "round": _js_round,
        "abs": abs,
        "sign": _sign,
        "sqrt": math.sqrt,
        "pow": _safe_pow,
        "exp": math.exp,
        "log": math.log,
        "log10": math.log10,
        "sin": math.sin,
        "cos": math.cos,
        "tan": math.tan,
        "atan2": math.atan2,
        "hypot": math.hypot,
        "min": lambda *args: builtins.min(args) if args else math.inf,
        "max": lambda *args: builtins.max(args) if args else -math.inf,
        "random": random.random,
        "PI": math.pi,
        "E": math.e,
    }
)

HELPER_FUNCTIONS: Mapping[str, Callable[..., Any]] = MappingProxyType(
    {
        "sum": sum_values,
        "avg": avg_values,
        "min": _sandbox_min,
        "max": _sandbox_max,
        "count": count_items,
        "filter": filter_items,
        "map": map_items,
        "find": find_item,
        "sort": sort_items,
        "groupBy": group_by,
        "group_by": group_by,
        "format": _bounded_format,
    }
)

SAFE_BUILTINS: Mapping[str, Any] = MappingProxyType(
    {
        "len": len,
        "abs": abs,
        "round": round,
        "int": int,
        "float": float,
        "str": _bounded_str,
        "bool": bool,
        "list": list,
        "dict": dict,
        "enumerate": enumerate,
        "zip": zip,
        "any": any,
        "all": all,
        "sorted": sorted,
        "reversed": reversed,
    }
)

CONSTANTS: Mapping[str, Any] = MappingProxyType(
    {
        "true": True,
        "false": False,
        "null": None,
        "undefined": None,
        "NaN": math.nan,
        "Infinity": math.inf,
        "Math": MATH,
        "math": MATH,
    }
)

RESERVED_NAMES = frozenset({*SCOPE_NAMES, *HELPER_FUNCTIONS, *SAFE_BUILTINS, *CONSTANTS, "range"})


class SandboxInterpreter:
    """Tree-walking interpreter for validated user code."""

    def __init__(
        self,
        scope: ScriptScope,
        *,
        timeout_ms: float,
        timeout_error: type[ExpressionTimeoutError] = ExpressionTimeoutError,
        loop_guard: LoopGuard | None = None,
        max_depth: int = MAX_CALL_DEPTH,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.scope = scope
        self.loop_guard = loop_guard or LoopGuard()
        self.pending: list[Any] = []
        self._timeout_ms = timeout_ms
        self._timeout_error = timeout_error
        self._clock = clock
        self._deadline = clock() + max(timeout_ms, 0.0) / 1000.0
        self._max_depth = max_depth
        self._depth = 0
        self._node: ast.AST | None = None
        self._globals: dict[str, Any] = {
            **HELPER_FUNCTIONS,
            **SAFE_BUILTINS,
            **CONSTANTS,
            "range": self._range,
        }

    @property
    def timeout_ms(self) -> float:
        return self._timeout_ms

    # -- guards -------------------------------------------------------------

    def _check_deadline(self) -> None:
        if self._clock() >= self._deadline:
            line, column = _location(self._node)
            kind = "Script execution" if issubclass(self._timeout_error, ScriptTimeoutError) else "Expression"
            raise self._timeout_error(
                f"{kind} timed out after {self._timeout_ms:g}ms",
                line=line,
                column=column,
                timeout_ms=self._timeout_ms,
            )

    def tick(self) -> None:
        try:
            self.loop_guard.tick()
        except LoopIterationError as exc:
            exc.line, exc.column = _location(self._node)
            raise
        self._check_deadline()

    def _range(self, *args: Any) -> _GuardedRange:
        return _GuardedRange(self, range(*args))

    # -- entry points ---------------------------------------------------------

    def run_expression(self, tree: ast.Expression) -> Any:
        return self._guarded(lambda: self.eval(tree.body, self.scope.locals))

    def run_module(self, tree: ast.Module) -> Any:
        def _run() -> Any:
            try:
                self.exec_block(tree.body, self.scope.locals)
            except _ReturnSignal as signal:
                return signal.value
            return None

        return self._guarded(_run)

    def _guarded(self, fn: Callable[[], Any]) -> Any:
        try:
            return fn()
        except InteractiveError:
            raise
        except RecursionError as exc:
            line, column = _location(self._node)
            raise EvaluationError("Maximum call depth exceeded", line=line, column=column) from exc
        except Exception as exc:
            line, column = _location(self._node)
            raise EvaluationError(f"{type(exc).__name__}: {exc}", line=line, column=column) from exc

    def take_pending(self) -> list[Any]:
        pending, self.pending = self.pending, []
        return pending

    def discard_pending(self) -> int:
        pending = self.take_pending()
        for awaitable in pending:
            if inspect.iscoroutine(awaitable):
                awaitable.close()
        return len(pending)

    def call_closure(self, body: ast.AST, local: dict[str, Any]) -> Any:
        self._depth += 1
        try:
            if self._depth > self._max_depth:
                raise EvaluationError(f"Maximum call depth exceeded ({self._max_depth})")
            return self.eval(body, local)
        finally:
            self._depth -= 1

    # -- expressions ----------------------------------------------------------

    def eval(self, node: ast.AST, env: dict[str, Any]) -> Any:
        self._node = node
        self._check_deadline()
        handler = getattr(self, "_eval_" + type(node).__name__, None)
        if handler is None:
            line, column = _location(node)
            raise ForbiddenSyntaxError(f"Unsupported syntax: {type(node).__name__}", line=line, column=column)
        return handler(node, env)

    def _eval_Constant(self, node: ast.Constant, env: dict[str, Any]) -> Any:
        return node.value

    def _eval_Name(self, node: ast.Name, env: dict[str, Any]) -> Any:
        return self._lookup(node.id, env)

    def _lookup(self, name: str, env: Mapping[str, Any]) -> Any:
        if name in env:
            return env[name]
        if name in SCOPE_NAMES:
            return getattr(self.scope, name)
        if name in self._globals:
            return self._globals[name]
        raise EvaluationError(f"'{name}' is not defined")

    def _eval_Attribute(self, node: ast.Attribute, env: dict[str, Any]) -> Any:
        return self._get_attribute(self.eval(node.value, env), node.attr)

    def _get_attribute(self, obj: Any, attr: str) -> Any:
        if isinstance(obj, Mapping):
            if attr in obj:
                return obj[attr]
            if attr in _DICT_METHODS and isinstance(obj, dict):
                return getattr(obj, attr)
            return None
        if isinstance(obj, (list, tuple, _GuardedRange)):
            if attr == "length":
                return len(obj)
            if attr == "includes":
                return lambda value: value in obj
            if attr == "indexOf":
                return lambda value: list(obj).index(value) if value in obj else -1
            if attr == "join":
                return lambda sep=",": self._string_join(str(sep), obj)
            if isinstance(obj, list):
                if attr == "push":
                    return obj.append
                if attr in _LIST_METHODS:
                    return getattr(obj, attr)
            elif isinstance(obj, tuple) and attr in _TUPLE_METHODS:
                return getattr(obj, attr)
            raise EvaluationError(f"Unknown list property '{attr}'")
        if isinstance(obj, str):
            return self._string_attribute(obj, attr)
        if isinstance(obj, (int, float)) and not isinstance(obj, bool) and attr == "toFixed":
            return lambda digits=0: f"{obj:.{_check_digits(digits)}f}"
        if obj is None:
            raise EvaluationError(f"Cannot read property '{attr}' of null")
        raise EvaluationError(f"Cannot read property '{attr}' of {type(obj).__name__}")

    def _string_attribute(self, text: str, attr: str) -> Any:
        if attr == "length":
            return len(text)
        aliases: dict[str, Callable[..., Any]] = {
            "toUpperCase": text.upper,
            "toLowerCase": text.lower,
            "trim": text.strip,
            "startsWith": text.startswith,
            "endsWith": text.endswith,
            "includes": lambda value: str(value) in text,
            "indexOf": text.find,
            "replace": lambda old, new, count=-1: self._string_replace(text, old, new, count),
            "join": lambda items: self._string_join(text, items),
        }
        if attr in aliases:
            return aliases[attr]
        if attr in _STR_METHODS:
            return getattr(text, attr)
        raise EvaluationError(f"Unknown string property '{attr}'")

    def _string_replace(self, text: str, old: Any, new: Any, count: int = -1) -> str:
        old_s, new_s = str(old), str(new)
        occurrences = text.count(old_s) if old_s else len(text) + 1
        _check_sequence_size(len(text) + occurrences * max(len(new_s) - len(old_s), 0))
        return text.replace(old_s, new_s, count)

    def _string_join(self, sep: str, items: Any) -> str:
        _check_output_size(items)
        parts = [stringify(item) for item in self._iterate(items)]
        _check_sequence_size(sum(len(part) for part in parts) + len(sep) * max(len(parts) - 1, 0))
        return sep.join(parts)

    def _eval_Subscript(self, node: ast.Subscript, env: dict[str, Any]) -> Any:
        obj = self.eval(node.value, env)
        if isinstance(node.slice, ast.Slice):
            bounds = [None if part is None else self.eval(part, env) for part in (node.slice.lower, node.slice.upper, node.slice.step)]
            if not isinstance(obj, (list, tuple, str, _GuardedRange)):
                raise EvaluationError(f"Cannot slice {type(obj).__name__}")
            return obj[slice(*bounds)]
        return self._get_item(obj, self.eval(node.slice, env))

    def _get_item(self, obj: Any, key: Any) -> Any:
        if isinstance(obj, Mapping):
            return obj.get(key)
        if isinstance(obj, (list, tuple, str, _GuardedRange)):
            if key == "length":
                return len(obj)
            if isinstance(key, float) and key.is_integer():
                key = int(key)
            if isinstance(key, bool) or not isinstance(key, int):
                raise EvaluationError(f"Index must be an integer, got {type(key).__name__}")
            if -len(obj) <= key < len(obj):
                return obj[key]
            return None
        if obj is None:
            raise EvaluationError(f"Cannot read index {key!r} of null")
        raise EvaluationError(f"{type(obj).__name__} is not subscriptable")

    def _eval_BinOp(self, node: ast.BinOp, env: dict[str, Any]) -> Any:
        left = self.eval(node.left, env)
        right = self.eval(node.right, env)
        return self._binary(type(node.op), left, right)

    def _binary(self, op: type, left: Any, right: Any) -> Any:
        if op is ast.Add:
            if isinstance(left, str) != isinstance(right, str):
                _check_output_size(left)
                _check_output_size(right)
                left, right = stringify(left), stringify(right)
            if isinstance(left, (str, list, tuple)) and isinstance(right, (str, list, tuple)):
                _check_sequence_size(len(left) + len(right))
        elif op is ast.Mult:
            for seq, times in ((left, right), (right, left)):
                if isinstance(seq, (str, list, tuple)) and isinstance(times, int):
                    _check_sequence_size(_deep_size(seq) * max(times, 0))
            _check_product(left, right)
        elif op is ast.Pow:
            _check_power(left, right)
        return _BIN_OPS[op](left, right)

    def _eval_UnaryOp(self, node: ast.UnaryOp, env: dict[str, Any]) -> Any:
        return _UNARY_OPS[type(node.op)](self.eval(node.operand, env))

    def _eval_BoolOp(self, node: ast.BoolOp, env: dict[str, Any]) -> Any:
        value: Any = None
        for operand in node.values:
            value = self.eval(operand, env)
            if isinstance(node.op, ast.And) and not value:
                return value
            if isinstance(node.op, ast.Or) and value:
                return value
        return value

    def _eval_Compare(self, node: ast.Compare, env: dict[str, Any]) -> bool:
        left = self.eval(node.left, env)
        for op, comparator in zip(node.ops, node.comparators):
            right = self.eval(comparator, env)
            if not _COMPARE_OPS[type(op)](left, right):
                return False
            left = right
        return True

    def _eval_IfExp(self, node: ast.IfExp, env: dict[str, Any]) -> Any:
        if self.eval(node.test, env):
            return self.eval(node.body, env)
        return self.eval(node.orelse, env)

    def _eval_Call(self, node: ast.Call, env: dict[str, Any]) -> Any:
        func = self.eval(node.func, env)
        args = [self.eval(arg, env) for arg in node.args]
        kwargs = {kw.arg: self.eval(kw.value, env) for kw in node.keywords}
        if not callable(func):
            raise EvaluationError(f"{ast.unparse(node.func)} is not a function")
        self._node = node
        result = func(*args, **kwargs)
        if inspect.isawaitable(result):
            self.pending.append(result)
            return None
        return result

    def _eval_List(self, node: ast.List, env: dict[str, Any]) -> list[Any]:
        return [self.eval(item, env) for item in node.elts]

    def _eval_Tuple(self, node: ast.Tuple, env: dict[str, Any]) -> tuple[Any, ...]:
        return tuple(self.eval(item, env) for item in node.elts)

    def _eval_Set(self, node: ast.Set, env: dict[str, Any]) -> set[Any]:
        return {self.eval(item, env) for item in node.elts}

    def _eval_Dict(self, node: ast.Dict, env: dict[str, Any]) -> dict[Any, Any]:
        return {self.eval(key, env): self.eval(value, env) for key, value in zip(node.keys, node.values)}

    def _iterate(self, value: Any) -> Iterator[Any]:
        if value is None:
            raise EvaluationError("null is not iterable")
        if isinstance(value, _GuardedRange):
            return iter(value._range)
        return iter(value)

    def _comprehend(self, node: Any, env: dict[str, Any], emit: Callable[[dict[str, Any]], None]) -> None:
        local = dict(env)
        generators = node.generators

        def _loop(index: int) -> None:
            if index == len(generators):
                emit(local)
                return
            gen = generators[index]
            for item in self._iterate(self.eval(gen.iter, local)):
                self.tick()
                self._assign(gen.target, item, local)
                if all(self.eval(cond, local) for cond in gen.ifs):
                    _loop(index + 1)

        _loop(0)

    def _eval_ListComp(self, node: ast.ListComp, env: dict[str, Any]) -> list[Any]:
        out: list[Any] = []
        self._comprehend(node, env, lambda local: out.append(self.eval(node.elt, local)))
        return out

    # Generator expressions are materialized so they cannot outlive the deadline.
    _eval_GeneratorExp = _eval_ListComp

    def _eval_SetComp(self, node: ast.SetComp, env: dict[str, Any]) -> set[Any]:
        out: set[Any] = set()
        self._comprehend(node, env, lambda local: out.add(self.eval(node.elt, local)))
        return out

    def _eval_DictComp(self, node: ast.DictComp, env: dict[str, Any]) -> dict[Any, Any]:
        out: dict[Any, Any] = {}

        def _emit(local: dict[str, Any]) -> None:
            out[self.eval(node.key, local)] = self.eval(node.value, local)

        self._comprehend(node, env, _emit)
        return out

    def _eval_Lambda(self, node: ast.Lambda, env: dict[str, Any]) -> Closure:
        defaults = [self.eval(default, env) for default in node.args.defaults]
        return Closure(self, node, env, defaults)

    def _eval_JoinedStr(self, node: ast.JoinedStr, env: dict[str, Any]) -> str:
        parts = [str(value.value) if isinstance(value, ast.Constant) else self.eval(value, env) for value in node.values]
        text = "".join(parts)
        _check_sequence_size(len(text))
        return text

    def _eval_FormattedValue(self, node: ast.FormattedValue, env: dict[str, Any]) -> str:
        value = self.eval(node.value, env)
        if node.conversion in (ord("r"), ord("a")):
            return _bounded_repr(value)
        _check_output_size(value)
        return stringify(value)

    # -- statements -----------------------------------------------------------

    def exec_block(self, body: list[ast.stmt], env: dict[str, Any]) -> None:
        for stmt in body:
            self.exec(stmt, env)

    def exec(self, node: ast.stmt, env: dict[str, Any]) -> None:
        self._node = node
        self._check_deadline()
        handler = getattr(self, "_exec_" + type(node).__name__, None)
        if handler is None:
            line, column = _location(node)
            raise ForbiddenSyntaxError(f"Unsupported statement: {type(node).__name__}", line=line, column=column)
        handler(node, env)

    def _exec_Expr(self, node: ast.Expr, env: dict[str, Any]) -> None:
        self.eval(node.value, env)

    def _exec_Assign(self, node: ast.Assign, env: dict[str, Any]) -> None:
        value = self.eval(node.value, env)
        for target in node.targets:
            self._assign(target, value, env)

    def _exec_AugAssign(self, node: ast.AugAssign, env: dict[str, Any]) -> None:
        op = type(node.op)
        target = node.target
        if isinstance(target, ast.Name):
            current = self._lookup(target.id, env)
            self._assign(target, self._binary(op, current, self.eval(node.value, env)), env)
        elif isinstance(target, ast.Attribute):
            obj = self.eval(target.value, env)
            current = self._get_attribute(obj, target.attr)
            self._set_item(obj, target.attr, self._binary(op, current, self.eval(node.value, env)))
        elif isinstance(target, ast.Subscript) and not isinstance(target.slice, ast.Slice):
            obj = self.eval(target.value, env)
            key = self.eval(target.slice, env)
            current = self._get_item(obj, key)
            self._set_item(obj, key, self._binary(op, current, self.eval(node.value, env)))
        else:
            raise EvaluationError("Unsupported augmented assignment target")

    def _exec_If(self, node: ast.If, env: dict[str, Any]) -> None:
        if self.eval(node.test, env):
            self.exec_block(node.body, env)
        else:
            self.exec_block(node.orelse, env)

    def _exec_For(self, node: ast.For, env: dict[str, Any]) -> None:
        for item in self._iterate(self.eval(node.iter, env)):
            self.tick()
            self._assign(node.target, item, env)
            try:
                self.exec_block(node.body, env)
            except _BreakSignal:
                return
            except _ContinueSignal:
                continue
        self.exec_block(node.orelse, env)

    def _exec_While(self, node: ast.While, env: dict[str, Any]) -> None:
        while self.eval(node.test, env):
            self.tick()
            try:
                self.exec_block(node.body, env)
            except _BreakSignal:
                return
            except _ContinueSignal:
                continue
        self.exec_block(node.orelse, env)

    def _exec_Break(self, node: ast.Break, env: dict[str, Any]) -> None:
        raise _BreakSignal()

    def _exec_Continue(self, node: ast.Continue, env: dict[str, Any]) -> None:
        raise _ContinueSignal()

    def _exec_Pass(self, node: ast.Pass, env: dict[str, Any]) -> None:
        return None

    def _exec_Return(self, node: ast.Return, env: dict[str, Any]) -> None:
        raise _ReturnSignal(self.eval(node.value, env) if node.value is not None else None)

    def _exec_Delete(self, node: ast.Delete, env: dict[str, Any]) -> None:
        for target in node.targets:
            if isinstance(target, ast.Name):
                if target.id in RESERVED_NAMES:
                    raise EvaluationError(f"Cannot delete reserved name '{target.id}'")
                env.pop(target.id, None)
            elif isinstance(target, ast.Attribute):
                obj = self.eval(target.value, env)
                if not isinstance(obj, MutableMapping):
                    raise EvaluationError(f"Cannot delete property '{target.attr}' of {type(obj).__name__}")
                obj.pop(target.attr, None)
            elif isinstance(target, ast.Subscript) and not isinstance(target.slice, ast.Slice):
                obj = self.eval(target.value, env)
                key = self.eval(target.slice, env)
                if isinstance(obj, MutableMapping):
                    obj.pop(key, None)
                elif isinstance(obj, list):
                    del obj[key]
                else:
                    raise EvaluationError(f"Cannot delete items of {type(obj).__name__}")
            else:
                raise EvaluationError("Unsupported delete target")

    # -- assignment -----------------------------------------------------------

    def _assign(self, target: ast.AST, value: Any, env: dict[str, Any]) -> None:
        if isinstance(target, ast.Name):
            if target.id in RESERVED_NAMES:
                raise EvaluationError(f"Cannot assign to reserved name '{target.id}'")
            env[target.id] = value
        elif isinstance(target, ast.Attribute):
            self._set_item(self.eval(target.value, env), target.attr, value)
        elif isinstance(target, ast.Subscript):
            if isinstance(target.slice, ast.Slice):
                raise EvaluationError("Slice assignment is not supported")
            self._set_item(self.eval(target.value, env), self.eval(target.slice, env), value)
        elif isinstance(target, (ast.Tuple, ast.List)):
            values = list(self._iterate(value))
            if len(values) != len(target.elts):
                raise EvaluationError(f"Expected {len(target.elts)} values to unpack, got {len(values)}")
            for element, item in zip(target.elts, values):
                self._assign(element, item, env)
        else:
            raise EvaluationError(f"Cannot assign to {type(target).__name__}")

    def _set_item(self, obj: Any, key: Any, value: Any) -> None:
        if isinstance(obj, MutableMapping):
            obj[key] = value
            return
        if isinstance(obj, list):
            if isinstance(key, bool) or not isinstance(key, int):
                raise EvaluationError(f"List index must be an integer, got {type(key).__name__}")
            obj[key] = value
            return
        if obj is None:
            raise EvaluationError(f"Cannot set property {key!r} of null")
        raise EvaluationError(f"Cannot set property {key!r} of {type(obj).__name__}")


def _context_config(context: Any, config: InteractiveConfig | None) -> InteractiveConfig:
    if config is not None:
        return config
    found = getattr(context, "config", None)
    return found if isinstance(found, InteractiveConfig) else _DEFAULTS


def _interpreter_for(
    context: Any,
    *,
    timeout_ms: float | None,
    max_iterations: int | None,
    config: InteractiveConfig | None,
    script: bool,
) -> SandboxInterpreter:
    scope = ScriptScope.coerce(context)
    cfg = _context_config(scope, config)
    if timeout_ms is None:
        timeout_ms = cfg.script_timeout_ms if script else cfg.expression_timeout_ms
    return SandboxInterpreter(
        scope,
        timeout_ms=timeout_ms,
        timeout_error=ScriptTimeoutError if script else ExpressionTimeoutError,
        loop_guard=LoopGuard(max_iterations or cfg.max_loop_iterations),
        max_depth=cfg.max_call_depth,
    )


def _discard_with_warning(interpreter: SandboxInterpreter) -> None:
    dropped = interpreter.discard_pending()
    if dropped:
        logger.warning("Dropped %d async action call(s); run the script asynchronously to await them", dropped)


def evaluate_expression(
    expression: Any,
    context: Any = None,
    *,
    timeout_ms: float | None = None,
    max_iterations: int | None = None,
    config: InteractiveConfig | None = None,
) -> Any:
    """
    Evaluate a single expression against ``context``.

    ``context`` may be a :class:`ScriptScope`, an execution context or a plain
    mapping with ``state``/``data``/``event``/... keys (other keys become
    local names). Raises :class:`ExpressionTimeoutError` past the deadline and
    :class:`EvaluationError` for any other failure.
    """
    tree = validate_expression(expression, "eval")
    interpreter = _interpreter_for(context, timeout_ms=timeout_ms, max_iterations=max_iterations, config=config, script=False)
    try:
        return interpreter.run_expression(tree)
    except InteractiveError as exc:
        logger.debug("Expression %r failed: %s", expression, exc)
        raise
    finally:
        _discard_with_warning(interpreter)


def execute_script(
    code: Any,
    context: Any = None,
    *,
    timeout_ms: float | None = None,
    max_iterations: int | None = None,
    config: InteractiveConfig | None = None,
) -> Any:
    """Run a script synchronously; returns the value of a top-level ``return``, if any."""
    tree = validate_expression(code, "exec")
    interpreter = _interpreter_for(context, timeout_ms=timeout_ms, max_iterations=max_iterations, config=config, script=True)
    try:
        return interpreter.run_module(tree)
    finally:
        _discard_with_warning(interpreter)


async def execute_script_async(
    code: Any,
    context: Any = None,
    *,
    timeout_ms: float | None = None,
    max_iterations: int | None = None,
    config: InteractiveConfig | None = None,
) -> Any:
    """
    Run a script and then await, in call order, the async actions it invoked.

    The whole run, awaiting included, shares one deadline.
    """
    tree = validate_expression(code, "exec")
    interpreter = _interpreter_for(context, timeout_ms=timeout_ms, max_iterations=max_iterations, config=config, script=True)
    budget_ms = interpreter.timeout_ms
    started = time.monotonic()
    try:
        result = interpreter.run_module(tree)
        pending = interpreter.take_pending()
        if pending:
            remaining = budget_ms / 1000.0 - (time.monotonic() - started)

            async def _drain() -> None:
                for awaitable in pending:
                    await awaitable

            try:
                await asyncio.wait_for(_drain(), timeout=max(remaining, 0.0))
            except asyncio.TimeoutError as exc:
                raise ScriptTimeoutError(
                    f"Script execution timed out after {budget_ms:g}ms", timeout_ms=budget_ms
                ) from exc
            finally:
                for awaitable in pending:
                    if inspect.iscoroutine(awaitable):
                        awaitable.close()
        return result
    finally:
        interpreter.discard_pending()


__all__ = [
    "EXPRESSION_TIMEOUT_MS",
    "SCRIPT_TIMEOUT_MS",
    "MAX_LOOP_ITERATIONS",
    "MAX_CALL_DEPTH",
    "FORBIDDEN_IDENTIFIERS",
    "HELPER_FUNCTIONS",
    "SAFE_BUILTINS",
    "RESERVED_NAMES",
    "LoopGuard",
    "ScriptScope",
    "SandboxInterpreter",
    "Closure",
    "validate_expression",
    "collect_diagnostics",
    "evaluate_expression",
    "execute_script",
    "execute_script_async",
]
