"""Scene-script interpreter.

Scripts use a small subset of Python syntax. They are parsed with :mod:`ast`
and walked directly; nothing is handed to ``exec`` or ``eval``. The last
statement of a script must be an expression that evaluates to an SDF.

Example::

    body = sphere(1).translate(0, 1, 0)
    ground = ground_plane()
    smooth_union(body, ground, 0.3)
"""

from __future__ import annotations

import ast
import logging
import operator
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Callable, Iterator

from sdfkit.environment import Environment, EnvironmentContext
from sdfkit.errors import (
    ScriptError,
    ScriptRuntimeError,
    ScriptSyntaxError,
    SdfkitError,
)
from sdfkit.ops import SdfNode
from sdfkit.script_api import LIST_METHODS, NODE_METHODS, build_namespace

logger = logging.getLogger(__name__)

MAX_CALL_DEPTH = 64
MAX_LOOP_ITERATIONS = 100_000

_ALLOWED_NODES: tuple[type, ...] = (
    ast.Module, ast.Expr, ast.Assign, ast.AugAssign, ast.For, ast.If,
    ast.FunctionDef, ast.Return, ast.Pass, ast.Break, ast.Continue,
    ast.arguments, ast.arg,
    ast.Constant, ast.Name, ast.Load, ast.Store,
    ast.BinOp, ast.UnaryOp, ast.BoolOp, ast.Compare, ast.IfExp,
    ast.Call, ast.keyword, ast.Attribute, ast.List, ast.Tuple, ast.Subscript,
    ast.Add, ast.Sub, ast.Mult, ast.Div, ast.FloorDiv, ast.Mod, ast.Pow,
    ast.UAdd, ast.USub, ast.Not, ast.And, ast.Or,
    ast.Eq, ast.NotEq, ast.Lt, ast.LtE, ast.Gt, ast.GtE, ast.In, ast.NotIn,
)

_BIN_OPS: dict[type, Callable[[Any, Any], Any]] = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.FloorDiv: operator.floordiv,
    ast.Mod: operator.mod,
    ast.Pow: lambda a, b: float(a) ** b,
}

_COMPARE_OPS: dict[type, Callable[[Any, Any], bool]] = {
    ast.Eq: operator.eq,
    ast.NotEq: operator.ne,
    ast.Lt: operator.lt,
    ast.LtE: operator.le,
    ast.Gt: operator.gt,
    ast.GtE: operator.ge,
    ast.In: lambda a, b: a in b,
    ast.NotIn: lambda a, b: a not in b,
}


@dataclass(frozen=True)
class SceneResult:
    """A successfully evaluated script."""

    tree: SdfNode
    environment: Environment


@dataclass(frozen=True)
class ScriptOutcome:
    """Result of :meth:`ScriptEngine.run`: either a scene or an error."""

    result: SceneResult | None = None
    error: ScriptError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


# ---------------------------------------------------------------------------
# Static checks
# ---------------------------------------------------------------------------


def parse_script(code: str) -> ast.Module:
    """Parse ``code`` and reject syntax outside the scripting subset."""
    try:
        module = ast.parse(code, mode="exec")
    except SyntaxError as e:
        raise ScriptSyntaxError(e.msg or "invalid syntax", e.lineno or 1) from e
    except (RecursionError, MemoryError) as e:
        # CPython's parser gives up on deeply nested source with one of these.
        raise ScriptSyntaxError("expression nested too deeply", 1) from e

    for node in ast.walk(module):
        line = getattr(node, "lineno", 1)
        if not isinstance(node, _ALLOWED_NODES):
            raise ScriptSyntaxError(f"unsupported syntax: {type(node).__name__}", line)
        if isinstance(node, ast.FunctionDef):
            if node.decorator_list:
                raise ScriptSyntaxError("decorators are not supported", line)
            args = node.args
            if args.vararg or args.kwarg or args.kwonlyargs or args.posonlyargs:
                raise ScriptSyntaxError("only plain positional parameters are supported", line)
        elif isinstance(node, ast.keyword) and node.arg is None:
            raise ScriptSyntaxError("'**' arguments are not supported", line)
        elif isinstance(node, ast.For) and node.orelse:
            raise ScriptSyntaxError("for/else is not supported", line)
        elif isinstance(node, ast.Attribute) and node.attr.startswith("_"):
            raise ScriptSyntaxError(f"access to {node.attr!r} is not allowed", line)
        elif isinstance(node, ast.Name) and node.id.startswith("__"):
            raise ScriptSyntaxError(f"name {node.id!r} is not allowed", line)
        elif isinstance(node, ast.Constant) and not isinstance(
            node.value, (int, float, str, bool, type(None))
        ):
            raise ScriptSyntaxError("unsupported literal", line)

    # Attribute access is only legal as the callee of a method call.
    callees = {id(n.func) for n in ast.walk(module) if isinstance(n, ast.Call)}
    for node in ast.walk(module):
        if isinstance(node, ast.Attribute) and id(node) not in callees:
            raise ScriptSyntaxError(
                f"attribute access {node.attr!r} is only allowed in a method call", node.lineno
            )
    return module


# ---------------------------------------------------------------------------
# Runtime
# ---------------------------------------------------------------------------


class _Return(Exception):
    def __init__(self, value: Any) -> None:
        self.value = value


class _Break(Exception):
    pass


class _Continue(Exception):
    pass


@dataclass
class ScriptFunction:
    """A function defined by ``def`` inside a script."""

    name: str
    params: list[str]
    defaults: list[Any]
    body: list[ast.stmt]
    line: int


@dataclass
class _Frame:
    variables: dict[str, Any] = field(default_factory=dict)


class _Interpreter:
    """Walks one parsed script against a namespace of registered functions."""

    def __init__(self, namespace: dict[str, Any]) -> None:
        self.builtins = namespace
        self.globals = _Frame()
        self.frames: list[_Frame] = [self.globals]
        self.depth = 0
        self.iterations = 0

    # -- variables -----------------------------------------------------------

    def lookup(self, name: str, line: int) -> Any:
        frame = self.frames[-1]
        if name in frame.variables:
            return frame.variables[name]
        if name in self.globals.variables:
            return self.globals.variables[name]
        if name in self.builtins:
            return self.builtins[name]
        raise ScriptRuntimeError(f"name {name!r} is not defined", line)

    def assign(self, target: ast.expr, value: Any, line: int) -> None:
        if isinstance(target, ast.Name):
            self.frames[-1].variables[target.id] = value
        elif isinstance(target, (ast.Tuple, ast.List)):
            items = list(value)
            if len(items) != len(target.elts):
                raise ScriptRuntimeError(
                    f"cannot unpack {len(items)} value(s) into {len(target.elts)} name(s)", line
                )
            for sub, item in zip(target.elts, items):
                self.assign(sub, item, line)
        else:
            raise ScriptRuntimeError("only names can be assigned to", line)

    # -- statements ----------------------------------------------------------

    def execute_block(self, body: list[ast.stmt]) -> None:
        for stmt in body:
            self.execute_statement(stmt)

    def execute_statement(self, stmt: ast.stmt) -> None:
        with _reporting(stmt.lineno):
            self._execute(stmt)

    def evaluate_statement(self, stmt: ast.Expr) -> Any:
        with _reporting(stmt.lineno):
            return self.evaluate(stmt.value)

    def _execute(self, stmt: ast.stmt) -> None:
        if isinstance(stmt, ast.Expr):
            self.evaluate(stmt.value)
        elif isinstance(stmt, ast.Assign):
            value = self.evaluate(stmt.value)
            for target in stmt.targets:
                self.assign(target, value, stmt.lineno)
        elif isinstance(stmt, ast.AugAssign):
            self._execute_augassign(stmt)
        elif isinstance(stmt, ast.For):
            self._execute_for(stmt)
        elif isinstance(stmt, ast.If):
            branch = stmt.body if self.evaluate(stmt.test) else stmt.orelse
            self.execute_block(branch)
        elif isinstance(stmt, ast.FunctionDef):
            self._execute_def(stmt)
        elif isinstance(stmt, ast.Return):
            if self.depth == 0:
                raise ScriptRuntimeError("'return' outside function", stmt.lineno)
            raise _Return(self.evaluate(stmt.value) if stmt.value is not None else None)
        elif isinstance(stmt, ast.Break):
            raise _Break()
        elif isinstance(stmt, ast.Continue):
            raise _Continue()
        elif isinstance(stmt, ast.Pass):
            pass
        else:
            raise ScriptRuntimeError(f"unsupported statement: {type(stmt).__name__}", stmt.lineno)

    def _execute_augassign(self, stmt: ast.AugAssign) -> None:
        if not isinstance(stmt.target, ast.Name):
            raise ScriptRuntimeError("only names can be assigned to", stmt.lineno)
        current = self.lookup(stmt.target.id, stmt.lineno)
        value = _BIN_OPS[type(stmt.op)](current, self.evaluate(stmt.value))
        self.frames[-1].variables[stmt.target.id] = value

    def _execute_for(self, stmt: ast.For) -> None:
        iterable = self.evaluate(stmt.iter)
        if not isinstance(iterable, (range, list, tuple)):
            raise ScriptRuntimeError(
                f"can only loop over range() or a list, got {_type_name(iterable)}", stmt.lineno
            )
        for item in iterable:
            self.iterations += 1
            if self.iterations > MAX_LOOP_ITERATIONS:
                raise ScriptRuntimeError(
                    f"loop limit of {MAX_LOOP_ITERATIONS} iterations exceeded", stmt.lineno
                )
            self.assign(stmt.target, item, stmt.lineno)
            try:
                self.execute_block(stmt.body)
            except _Break:
                break
            except _Continue:
                continue

    def _execute_def(self, stmt: ast.FunctionDef) -> None:
        if stmt.name in self.builtins:
            raise ScriptRuntimeError(f"cannot redefine built-in {stmt.name!r}", stmt.lineno)
        defaults = [self.evaluate(d) for d in stmt.args.defaults]
        self.frames[-1].variables[stmt.name] = ScriptFunction(
            name=stmt.name,
            params=[a.arg for a in stmt.args.args],
            defaults=defaults,
            body=stmt.body,
            line=stmt.lineno,
        )

    # -- expressions ---------------------------------------------------------

    def evaluate(self, node: ast.expr) -> Any:
        method = getattr(self, f"_eval_{type(node).__name__}", None)
        if method is None:
            raise ScriptRuntimeError(
                f"unsupported expression: {type(node).__name__}", getattr(node, "lineno", None)
            )
        return method(node)

    def _eval_Constant(self, node: ast.Constant) -> Any:
        return node.value

    def _eval_Name(self, node: ast.Name) -> Any:
        return self.lookup(node.id, node.lineno)

    def _eval_List(self, node: ast.List) -> list:
        return [self.evaluate(e) for e in node.elts]

    def _eval_Tuple(self, node: ast.Tuple) -> tuple:
        return tuple(self.evaluate(e) for e in node.elts)

    def _eval_BinOp(self, node: ast.BinOp) -> Any:
        left = self.evaluate(node.left)
        right = self.evaluate(node.right)
        if isinstance(left, SdfNode) or isinstance(right, SdfNode):
            raise ScriptRuntimeError(
                "arithmetic on shapes is not supported; use union/subtract/intersect", node.lineno
            )
        return _BIN_OPS[type(node.op)](left, right)

    def _eval_UnaryOp(self, node: ast.UnaryOp) -> Any:
        value = self.evaluate(node.operand)
        if isinstance(node.op, ast.Not):
            return not value
        if isinstance(node.op, ast.USub):
            return -value
        return +value

    def _eval_BoolOp(self, node: ast.BoolOp) -> Any:
        result: Any = None
        for operand in node.values:
            result = self.evaluate(operand)
            if isinstance(node.op, ast.And) and not result:
                return result
            if isinstance(node.op, ast.Or) and result:
                return result
        return result

    def _eval_Compare(self, node: ast.Compare) -> bool:
        left = self.evaluate(node.left)
        for op, comparator in zip(node.ops, node.comparators):
            right = self.evaluate(comparator)
            if not _COMPARE_OPS[type(op)](left, right):
                return False
            left = right
        return True

    def _eval_IfExp(self, node: ast.IfExp) -> Any:
        return self.evaluate(node.body) if self.evaluate(node.test) else self.evaluate(node.orelse)

    def _eval_Subscript(self, node: ast.Subscript) -> Any:
        container = self.evaluate(node.value)
        if not isinstance(container, (list, tuple)):
            raise ScriptRuntimeError(f"cannot index {_type_name(container)}", node.lineno)
        index = self.evaluate(node.slice)
        if not isinstance(index, int) or isinstance(index, bool):
            raise ScriptRuntimeError("list indices must be integers", node.lineno)
        return container[index]

    def _eval_Call(self, node: ast.Call) -> Any:
        args = [self.evaluate(a) for a in node.args]
        kwargs = {kw.arg: self.evaluate(kw.value) for kw in node.keywords if kw.arg}

        if isinstance(node.func, ast.Attribute):
            receiver = self.evaluate(node.func.value)
            return self._call_method(receiver, node.func.attr, args, kwargs, node.lineno)

        func = self.evaluate(node.func)
        if isinstance(func, ScriptFunction):
            return self._call_function(func, args, kwargs, node.lineno)
        if not callable(func):
            raise ScriptRuntimeError(f"{_type_name(func)} is not callable", node.lineno)
        return func(*args, **kwargs)

    def _call_method(
        self, receiver: Any, name: str, args: list, kwargs: dict, line: int
    ) -> Any:
        if isinstance(receiver, SdfNode) and name in NODE_METHODS:
            return getattr(receiver, name)(*args, **kwargs)
        if isinstance(receiver, list) and name in LIST_METHODS:
            return getattr(receiver, name)(*args, **kwargs)
        raise ScriptRuntimeError(f"{_type_name(receiver)} has no method {name!r}", line)

    def _call_function(
        self, func: ScriptFunction, args: list, kwargs: dict, line: int
    ) -> Any:
        if self.depth >= MAX_CALL_DEPTH:
            raise ScriptRuntimeError(
                f"maximum call depth of {MAX_CALL_DEPTH} exceeded in {func.name}()", line
            )
        frame = _Frame(_bind_arguments(func, args, kwargs, line))
        self.frames.append(frame)
        self.depth += 1
        try:
            self.execute_block(func.body)
        except _Return as ret:
            return ret.value
        except (_Break, _Continue):
            raise ScriptRuntimeError("'break' or 'continue' outside loop", line) from None
        finally:
            self.depth -= 1
            self.frames.pop()
        return None


def _bind_arguments(func: ScriptFunction, args: list, kwargs: dict, line: int) -> dict[str, Any]:
    if len(args) > len(func.params):
        raise ScriptRuntimeError(
            f"{func.name}() takes {len(func.params)} argument(s) but {len(args)} were given", line
        )
    bound = dict(zip(func.params, args))
    for name, value in kwargs.items():
        if name not in func.params:
            raise ScriptRuntimeError(f"{func.name}() got an unexpected argument {name!r}", line)
        if name in bound:
            raise ScriptRuntimeError(f"{func.name}() got multiple values for {name!r}", line)
        bound[name] = value
    first_default = len(func.params) - len(func.defaults)
    for i, name in enumerate(func.params):
        if name not in bound:
            if i < first_default:
                raise ScriptRuntimeError(f"{func.name}() missing argument {name!r}", line)
            bound[name] = func.defaults[i - first_default]
    return bound


@contextmanager
def _reporting(line: int) -> Iterator[None]:
    """Convert errors raised by registered functions into script errors at ``line``."""
    try:
        yield
    except (ScriptError, _Return, _Break, _Continue):
        raise
    except SdfkitError as e:
        raise ScriptRuntimeError(str(e), line) from e
    except (ValueError, TypeError, ZeroDivisionError, OverflowError, IndexError, KeyError) as e:
        raise ScriptRuntimeError(_describe(e), line) from e
    except RecursionError as e:
        raise ScriptRuntimeError("recursion too deep", line) from e


def _type_name(value: Any) -> str:
    if isinstance(value, SdfNode):
        return "SDF"
    if isinstance(value, ScriptFunction):
        return "function"
    return type(value).__name__


def _describe(e: Exception) -> str:
    if isinstance(e, ZeroDivisionError):
        return "division by zero"
    return str(e) or type(e).__name__


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


class ScriptEngine:
    """Compiles and evaluates scene scripts."""

    def compile(self, code: str) -> None:
        """Check ``code`` for syntax errors without building anything."""
        parse_script(code)

    def eval(self, code: str, context: EnvironmentContext | None = None) -> SceneResult:
        """Run ``code`` and return its tree with the environment it configured."""
        module = parse_script(code)
        if not module.body:
            raise ScriptRuntimeError("script is empty; it must end with an SDF expression", 1)

        env = context if context is not None else EnvironmentContext()
        try:
            env.begin()
        except RuntimeError as e:
            raise ScriptRuntimeError(str(e)) from e
        try:
            interpreter = _Interpreter(build_namespace(env))
            *body, last = module.body
            interpreter.execute_block(body)
            tree = self._final_value(interpreter, last)
            environment = env.snapshot()
        except RecursionError as e:
            raise ScriptRuntimeError("expression nested too deeply") from e
        finally:
            env.end()
        logger.debug("evaluated script: %s", tree.variant)
        return SceneResult(tree=tree, environment=environment)

    def run(self, code: str, context: EnvironmentContext | None = None) -> ScriptOutcome:
        """Like :meth:`eval`, but script errors are returned instead of raised."""
        try:
            return ScriptOutcome(result=self.eval(code, context))
        except ScriptError as e:
            return ScriptOutcome(error=e)

    @staticmethod
    def _final_value(interpreter: _Interpreter, last: ast.stmt) -> SdfNode:
        if not isinstance(last, ast.Expr):
            interpreter.execute_statement(last)
            hint = ""
            if isinstance(last, ast.Assign) and len(last.targets) == 1 and isinstance(
                last.targets[0], ast.Name
            ):
                hint = f"; add a final line with `{last.targets[0].id}`"
            raise ScriptRuntimeError(
                f"script must end with an expression that evaluates to an SDF{hint}",
                last.lineno,
            )
        value = interpreter.evaluate_statement(last)
        if not isinstance(value, SdfNode):
            raise ScriptRuntimeError(
                f"script must evaluate to an SDF, got {_type_name(value)}", last.lineno
            )
        return value
