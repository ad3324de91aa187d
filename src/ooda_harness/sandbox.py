# sandbox.py
# Sandboxed Python execution engine.
#
# Every snippet goes through three independent barriers:
#   1. a static AST allow-list check, run in the caller (fails closed);
#   2. RestrictedPython compilation with guarded attribute/item access;
#   3. execution in a freshly spawned child process with rlimits, a minimal
#      builtins table, and the math functions as a plain namespace.
#
# The child is created for one snippet and destroyed afterwards. Nothing
# from one invocation is visible to the next.

import ast
import io
import math
import multiprocessing
import operator
import resource
import traceback
import types
from typing import Any

from RestrictedPython import compile_restricted_exec
from RestrictedPython.Eval import default_guarded_getitem, default_guarded_getiter
from RestrictedPython.Guards import (
    full_write_guard,
    guarded_iter_unpack_sequence,
    guarded_unpack_sequence,
    safer_getattr,
)

from ooda_harness.errors import PolicyViolation
from ooda_harness.models import SandboxResponse, SandboxStatus

SANDBOX_FILENAME = "<sandbox>"

# Seconds the child may take to import and apply its limits before the
# execution clock starts.
STARTUP_TIMEOUT = 30.0


# ---------------------------------------------------------------------------
# Static policy
# ---------------------------------------------------------------------------

_ALLOWED_NODES: tuple[type, ...] = (
    # statements
    ast.Module, ast.Expr, ast.Assign, ast.AugAssign, ast.AnnAssign,
    ast.For, ast.While, ast.If, ast.Break, ast.Continue, ast.Pass,
    ast.FunctionDef, ast.Return, ast.Try, ast.ExceptHandler, ast.Raise,
    ast.Assert, ast.Delete,
    # expressions
    ast.BoolOp, ast.BinOp, ast.UnaryOp, ast.IfExp, ast.Lambda,
    ast.Dict, ast.Set, ast.List, ast.Tuple,
    ast.ListComp, ast.SetComp, ast.DictComp, ast.GeneratorExp, ast.comprehension,
    ast.Compare, ast.Call, ast.keyword, ast.Constant, ast.Attribute,
    ast.Subscript, ast.Slice, ast.Starred, ast.Name,
    ast.JoinedStr, ast.FormattedValue,
    ast.arguments, ast.arg,
    # contexts and operators
    ast.Load, ast.Store, ast.Del,
    ast.And, ast.Or,
    ast.Add, ast.Sub, ast.Mult, ast.MatMult, ast.Div, ast.Mod, ast.Pow,
    ast.LShift, ast.RShift, ast.BitOr, ast.BitXor, ast.BitAnd, ast.FloorDiv,
    ast.Invert, ast.Not, ast.UAdd, ast.USub,
    ast.Eq, ast.NotEq, ast.Lt, ast.LtE, ast.Gt, ast.GtE,
    ast.Is, ast.IsNot, ast.In, ast.NotIn,
)

_FORBIDDEN_NAMES = frozenset({
    "eval", "exec", "compile", "open", "input", "breakpoint", "help",
    "globals", "locals", "vars", "dir",
    "getattr", "setattr", "delattr", "hasattr",
    "type", "object", "super", "memoryview", "classmethod", "staticmethod", "property",
    "exit", "quit", "printed",
})

_FORBIDDEN_ATTRIBUTES = frozenset({
    "format", "format_map", "mro",
    "gi_frame", "gi_code", "gi_yieldfrom",
    "cr_frame", "cr_code", "ag_frame", "ag_code",
    "f_globals", "f_locals", "f_builtins", "f_back", "f_code",
    "tb_frame", "tb_next", "co_code", "func_globals", "func_code",
})

_NODE_MESSAGES = {
    ast.Import: "import statements are not allowed",
    ast.ImportFrom: "import statements are not allowed",
    ast.ClassDef: "class definitions are not allowed",
    ast.With: "with statements are not allowed",
    ast.AsyncFunctionDef: "async code is not allowed",
    ast.Await: "async code is not allowed",
    ast.Yield: "generator functions are not allowed",
    ast.YieldFrom: "generator functions are not allowed",
}


def _forbidden_identifier(name: str) -> bool:
    return (name.startswith("_") and name != "_") or name in _FORBIDDEN_NAMES


class _PolicyChecker(ast.NodeVisitor):
    """Walks the tree and raises PolicyViolation on the first disallowed node."""

    def generic_visit(self, node: ast.AST) -> None:
        if not isinstance(node, _ALLOWED_NODES):
            message = _NODE_MESSAGES.get(type(node), f"{type(node).__name__} is not allowed")
            self._deny(node, message)

        if isinstance(node, ast.Name) and _forbidden_identifier(node.id):
            self._deny(node, f"use of `{node.id}` is not allowed")
        elif isinstance(node, ast.Attribute):
            if node.attr.startswith("_") or node.attr in _FORBIDDEN_ATTRIBUTES:
                self._deny(node, f"access to attribute `{node.attr}` is not allowed")
        elif isinstance(node, ast.arg) and _forbidden_identifier(node.arg):
            self._deny(node, f"parameter name `{node.arg}` is not allowed")
        elif isinstance(node, ast.FunctionDef) and _forbidden_identifier(node.name):
            self._deny(node, f"function name `{node.name}` is not allowed")
        elif isinstance(node, ast.ExceptHandler) and node.name and _forbidden_identifier(node.name):
            self._deny(node, f"name `{node.name}` is not allowed")
        elif isinstance(node, ast.keyword) and node.arg and node.arg.startswith("_"):
            self._deny(node, f"keyword `{node.arg}` is not allowed")

        super().generic_visit(node)

    @staticmethod
    def _deny(node: ast.AST, message: str) -> None:
        line = getattr(node, "lineno", None)
        raise PolicyViolation(f"{message} (line {line})" if line else message)


def check_policy(code: str) -> None:
    """
    Statically verify `code` against the allow-list.

    Raises SyntaxError for unparsable code and PolicyViolation for anything
    outside the allow-list. Any other failure of the checker itself is
    reported as a violation.
    """
    try:
        tree = ast.parse(code, filename=SANDBOX_FILENAME, mode="exec")
    except SyntaxError:
        raise
    except ValueError as exc:
        # null bytes and similar
        raise SyntaxError(str(exc)) from exc
    except Exception as exc:
        raise PolicyViolation(f"code could not be analysed: {type(exc).__name__}") from exc

    try:
        _PolicyChecker().visit(tree)
    except PolicyViolation:
        raise
    except Exception as exc:
        raise PolicyViolation(f"policy check failed: {type(exc).__name__}") from exc


# ---------------------------------------------------------------------------
# Child-side execution
# ---------------------------------------------------------------------------

_ALLOWED_BUILTINS = (
    "abs", "all", "any", "bin", "bool", "callable", "chr", "complex", "dict",
    "divmod", "enumerate", "filter", "float", "frozenset", "hash", "hex", "int",
    "isinstance", "iter", "len", "list", "map", "max", "min", "next", "oct", "ord",
    "pow", "range", "repr", "reversed", "round", "set", "slice", "sorted", "str",
    "sum", "tuple", "zip",
    "ArithmeticError", "AssertionError", "Exception", "IndexError", "KeyError",
    "LookupError", "NameError", "NotImplementedError", "OverflowError",
    "RecursionError", "RuntimeError", "StopIteration", "TypeError", "ValueError",
    "ZeroDivisionError",
)

_INPLACE_OPERATORS = {
    "+=": operator.iadd, "-=": operator.isub, "*=": operator.imul,
    "/=": operator.itruediv, "//=": operator.ifloordiv, "%=": operator.imod,
    "**=": operator.ipow, "<<=": operator.ilshift, ">>=": operator.irshift,
    "&=": operator.iand, "|=": operator.ior, "^=": operator.ixor,
    "@=": operator.imatmul,
}


# Public math functions and constants without the module object itself.
_MATH = types.SimpleNamespace(
    **{name: getattr(math, name) for name in dir(math) if not name.startswith("_")}
)


class _OutputLimitExceeded(BaseException):
    pass


class _BoundedBuffer(io.StringIO):
    """StringIO that refuses to grow past `limit` characters."""

    def __init__(self, limit: int) -> None:
        super().__init__()
        self._limit = limit
        self.overflowed = False

    def write(self, s: str) -> int:
        if self.tell() + len(s) > self._limit:
            self.overflowed = True
            raise _OutputLimitExceeded()
        return super().write(s)


class _PrintCollector:
    """Target of RestrictedPython's print rewriting; every scope shares one sink."""

    def __init__(self, sink: _BoundedBuffer) -> None:
        self._sink = sink

    def __call__(self, _getattr_: Any = None) -> "_PrintCollector":
        return self

    def _call_print(self, *objects: Any, **kwargs: Any) -> None:
        kwargs.pop("file", None)
        kwargs.pop("flush", None)
        print(*objects, file=self._sink, **kwargs)


def _inplacevar(op: str, target: Any, value: Any) -> Any:
    try:
        return _INPLACE_OPERATORS[op](target, value)
    except KeyError:
        raise TypeError(f"unsupported in-place operator {op}") from None


def _apply(func: Any, *args: Any, **kwargs: Any) -> Any:
    return func(*args, **kwargs)


def _build_globals(sink: _BoundedBuffer) -> dict[str, Any]:
    import builtins

    allowed = {name: getattr(builtins, name) for name in _ALLOWED_BUILTINS}
    return {
        "__builtins__": allowed,
        "__name__": "__sandbox__",
        "math": _MATH,
        "_print_": _PrintCollector(sink),
        "_getattr_": safer_getattr,
        "_getitem_": default_guarded_getitem,
        "_getiter_": default_guarded_getiter,
        "_iter_unpack_sequence_": guarded_iter_unpack_sequence,
        "_unpack_sequence_": guarded_unpack_sequence,
        "_write_": full_write_guard,
        "_inplacevar_": _inplacevar,
        "_apply_": _apply,
    }


def _format_error(exc: BaseException) -> str:
    lines = ["Traceback (most recent call last):\n"]
    for frame in traceback.extract_tb(exc.__traceback__):
        if frame.filename == SANDBOX_FILENAME:
            lines.append(f'  File "{frame.filename}", line {frame.lineno}, in {frame.name}\n')
    lines.extend(traceback.format_exception_only(type(exc), exc))
    return "".join(lines)


def _set_limit(which: int, value: int) -> None:
    _, hard = resource.getrlimit(which)
    if hard != resource.RLIM_INFINITY:
        value = min(value, hard)
    resource.setrlimit(which, (value, value))


def _apply_limits(memory_limit_mb: int, cpu_seconds: int) -> None:
    _set_limit(resource.RLIMIT_AS, memory_limit_mb * 1024 * 1024)
    _set_limit(resource.RLIMIT_CPU, cpu_seconds)
    _set_limit(resource.RLIMIT_FSIZE, 0)


def execute_restricted(code: str, max_output: int) -> dict[str, Any]:
    """Compile with RestrictedPython and run `code`. Returns {status, stdout, stderr}."""
    result = compile_restricted_exec(code, filename=SANDBOX_FILENAME)
    if result.errors:
        return {
            "status": int(SandboxStatus.POLICY_VIOLATION),
            "stdout": "",
            "stderr": "PolicyViolation: " + "; ".join(result.errors) + "\n",
        }

    sink = _BoundedBuffer(max_output)
    status = SandboxStatus.OK
    stderr = ""
    try:
        exec(result.code, _build_globals(sink))
    except _OutputLimitExceeded:
        status = SandboxStatus.RESOURCE_EXCEEDED
    except MemoryError:
        status = SandboxStatus.RESOURCE_EXCEEDED
        stderr = "ResourceExceeded: memory limit exceeded\n"
    except Exception as exc:
        status = SandboxStatus.RUNTIME_ERROR
        stderr = _format_error(exc)

    if sink.overflowed:
        status = SandboxStatus.RESOURCE_EXCEEDED
        stderr = f"ResourceExceeded: output exceeded {max_output} characters\n"

    return {"status": int(status), "stdout": sink.getvalue(), "stderr": stderr}


def _child_main(code: str, conn: Any, memory_limit_mb: int, cpu_seconds: int, max_output: int) -> None:
    _apply_limits(memory_limit_mb, cpu_seconds)
    conn.send("ready")
    try:
        conn.send(execute_restricted(code, max_output))
    finally:
        conn.close()


# ---------------------------------------------------------------------------
# SandboxEngine
# ---------------------------------------------------------------------------


class SandboxEngine:
    """
    Runs one snippet per call in an isolated, resource-bounded child process.

    Example:
        engine = SandboxEngine(timeout=5.0)
        engine.run("print(sorted([2, 3, 1]))")
        # SandboxResponse(status=0, stdout='[1, 2, 3]\\n', stderr='')
    """

    def __init__(
        self,
        timeout: float = 5.0,
        memory_limit_mb: int = 512,
        max_output: int = 16384,
    ) -> None:
        if timeout <= 0:
            raise ValueError("Sandbox timeout must be positive.")
        self.timeout = timeout
        self.memory_limit_mb = memory_limit_mb
        self.max_output = max_output
        self._context = multiprocessing.get_context("spawn")

    def run(self, code: str) -> SandboxResponse:
        try:
            check_policy(code)
        except SyntaxError as exc:
            stderr = "".join(traceback.format_exception_only(type(exc), exc))
            return SandboxResponse(status=SandboxStatus.SYNTAX_ERROR, stderr=stderr)
        except PolicyViolation as exc:
            return SandboxResponse(
                status=SandboxStatus.POLICY_VIOLATION,
                stderr=f"PolicyViolation: {exc}\n",
            )

        return self._run_isolated(code)

    def _run_isolated(self, code: str) -> SandboxResponse:
        reader, writer = self._context.Pipe(duplex=False)
        cpu_seconds = math.ceil(self.timeout) + 1
        process = self._context.Process(
            target=_child_main,
            args=(code, writer, self.memory_limit_mb, cpu_seconds, self.max_output),
            daemon=True,
        )
        process.start()
        writer.close()

        try:
            if not reader.poll(STARTUP_TIMEOUT) or reader.recv() != "ready":
                return self._exceeded("sandbox process failed to start")
            if not reader.poll(self.timeout):
                return self._exceeded(f"execution exceeded {self.timeout:g}s time limit")
            message = reader.recv()
        except EOFError:
            # The child died without reporting: killed by an rlimit signal
            # or crashed outright.
            process.join(1)
            return self._exceeded(f"sandbox process terminated (exit code {process.exitcode})")
        finally:
            reader.close()
            if process.is_alive():
                process.kill()
            process.join(1)

        return SandboxResponse(**message)

    @staticmethod
    def _exceeded(reason: str) -> SandboxResponse:
        return SandboxResponse(
            status=SandboxStatus.RESOURCE_EXCEEDED,
            stderr=f"ResourceExceeded: {reason}\n",
        )
