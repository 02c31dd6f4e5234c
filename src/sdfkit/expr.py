"""Typed formula expression language.

Formula expressions are written in Python expression syntax and parsed with
:mod:`ast`. Each node is type-checked and lowered in a single pass to a pair of
source strings: numpy-backed Python (calling :mod:`sdfkit.mathlib` as ``_m``)
and WGSL. Both backends are produced from the same typed tree.
"""

from __future__ import annotations

import ast
import keyword
import math
from dataclasses import dataclass

from sdfkit.errors import FormulaSpecError

F32 = "f32"
VEC2 = "vec2"
VEC3 = "vec3"
BOOL = "bool"
BVEC2 = "bvec2"
BVEC3 = "bvec3"

VALUE_TYPES: frozenset[str] = frozenset({F32, VEC2, VEC3})

_DIMS: dict[str, int] = {F32: 1, VEC2: 2, VEC3: 3, BOOL: 1, BVEC2: 2, BVEC3: 3}
_NUMERIC_BY_DIM: dict[int, str] = {1: F32, 2: VEC2, 3: VEC3}
_BOOL_BY_DIM: dict[int, str] = {1: BOOL, 2: BVEC2, 3: BVEC3}

WGSL_TYPES: dict[str, str] = {F32: "f32", VEC2: "vec2<f32>", VEC3: "vec3<f32>"}

CONSTANTS: dict[str, float] = {"PI": math.pi, "TAU": math.tau}

_SWIZZLE_INDEX = {"x": 0, "y": 1, "z": 2}

_BINOPS: dict[type, str] = {ast.Add: "+", ast.Sub: "-", ast.Mult: "*", ast.Div: "/"}
_CMPOPS: dict[type, str] = {ast.Lt: "<", ast.Gt: ">", ast.LtE: "<=", ast.GtE: ">="}

# Component-wise single-argument builtins: name -> numpy function.
_UNARY_FUNCS: dict[str, str] = {
    "abs": "np.abs",
    "floor": "np.floor",
    "round": "np.round",
    "sign": "np.sign",
    "sqrt": "np.sqrt",
    "sin": "np.sin",
    "cos": "np.cos",
    "exp": "np.exp",
}

BUILTIN_NAMES: frozenset[str] = frozenset(
    set(_UNARY_FUNCS)
    | {
        "length",
        "dot",
        "normalize",
        "min",
        "max",
        "clamp",
        "mix",
        "atan2",
        "mod",
        "select",
        "vec2",
        "vec3",
    }
)

# WGSL keywords and reserved words; none may be used as an identifier.
WGSL_RESERVED: frozenset[str] = frozenset(
    """
    alias break case const const_assert continue continuing default diagnostic
    discard else enable false fn for if let loop override requires return struct
    switch true var while

    NULL Self abstract active alignas alignof as asm asm_fragment async attribute
    auto await become binding_array cast catch class co_await co_return co_yield
    coherent column_major common compile compile_fragment concept const_cast
    consteval constexpr constinit crate debugger decltype delete demote
    demote_to_helper do dynamic_cast enum explicit export extends extern external
    fallthrough filter final finally friend from fxgroup get goto groupshared
    highp impl implements import inline instanceof interface layout lowp macro
    macro_rules match mediump meta mod module move mut mutable namespace new nil
    noexcept noinline nointerpolation noperspective null nullptr of operator
    package packoffset partition pass patch pixelfragment precise precision
    premerge priv protected pub public readonly ref regardless register
    reinterpret_cast require resource restrict self set shared sizeof smooth snorm
    static static_assert static_cast std subroutine super target template this
    thread_local throw trait try type typedef typeid typename typeof union unorm
    unsafe unsized use using varying virtual volatile wgsl where with writeonly
    yield

    f32 f16 i32 u32 bool vec2 vec3 vec4 mat2x2 mat3x3 mat4x4 array atomic ptr
    sampler texture_2d
    """.split()
)

# Identifiers that would collide with WGSL or the generated Python.
RESERVED_NAMES: frozenset[str] = frozenset(
    BUILTIN_NAMES
    | set(CONSTANTS)
    | WGSL_RESERVED
    | set(keyword.kwlist)
    | {"np", "_m", "PARAMS"}
)


def dim_of(type_name: str) -> int:
    return _DIMS[type_name]


def is_numeric(type_name: str) -> bool:
    return type_name in VALUE_TYPES


def format_float(value: float) -> str:
    """Format a finite float as a literal valid in both Python and WGSL."""
    value = float(value)
    if not math.isfinite(value):
        raise ValueError(f"non-finite literal: {value!r}")
    if value == 0.0:
        value = 0.0
    return repr(value)


@dataclass(frozen=True)
class Typed:
    """A lowered expression: Python source, WGSL source and its type."""

    py: str
    wgsl: str
    type: str


def compile_expression(source: str, scope: dict[str, str], *, context: str = "") -> Typed:
    """Parse and lower ``source`` with names typed by ``scope``.

    Raises ``FormulaSpecError`` for syntax errors, unknown names and type errors.
    """
    where = f"{context}: " if context else ""
    try:
        tree = ast.parse(source.strip(), mode="eval")
    except SyntaxError as e:
        raise FormulaSpecError(f"{where}cannot parse expression {source!r}: {e.msg}") from e
    try:
        return _Lowering(scope).visit(tree.body)
    except _TypeFault as e:
        raise FormulaSpecError(f"{where}{e} in {source!r}") from e


class _TypeFault(Exception):
    pass


class _Lowering:
    def __init__(self, scope: dict[str, str]) -> None:
        self.scope = scope

    def visit(self, node: ast.AST) -> Typed:
        handler = getattr(self, f"_visit_{type(node).__name__}", None)
        if handler is None:
            raise _TypeFault(f"unsupported syntax {type(node).__name__}")
        return handler(node)

    # -- leaves ------------------------------------------------------------

    def _visit_Constant(self, node: ast.Constant) -> Typed:
        if isinstance(node.value, bool) or not isinstance(node.value, (int, float)):
            raise _TypeFault(f"unsupported literal {node.value!r}")
        lit = format_float(node.value)
        return Typed(lit, lit, F32)

    def _visit_Name(self, node: ast.Name) -> Typed:
        if node.id in self.scope:
            return Typed(node.id, node.id, self.scope[node.id])
        if node.id in CONSTANTS:
            lit = format_float(CONSTANTS[node.id])
            return Typed(lit, lit, F32)
        raise _TypeFault(f"unknown name {node.id!r}")

    # -- operators ---------------------------------------------------------

    def _visit_UnaryOp(self, node: ast.UnaryOp) -> Typed:
        operand = self._numeric(self.visit(node.operand))
        if isinstance(node.op, ast.USub):
            return Typed(f"(-{operand.py})", f"(-{operand.wgsl})", operand.type)
        if isinstance(node.op, ast.UAdd):
            return operand
        raise _TypeFault(f"unsupported unary operator {type(node.op).__name__}")

    def _visit_BinOp(self, node: ast.BinOp) -> Typed:
        op = _BINOPS.get(type(node.op))
        if op is None:
            raise _TypeFault(f"unsupported operator {type(node.op).__name__}")
        left = self._numeric(self.visit(node.left))
        right = self._numeric(self.visit(node.right))
        result_type, lpy, rpy = self._broadcast(left, right)
        return Typed(f"({lpy} {op} {rpy})", f"({left.wgsl} {op} {right.wgsl})", result_type)

    def _visit_Compare(self, node: ast.Compare) -> Typed:
        if len(node.ops) != 1:
            raise _TypeFault("chained comparisons are not supported")
        op = _CMPOPS.get(type(node.ops[0]))
        if op is None:
            raise _TypeFault(f"unsupported comparison {type(node.ops[0]).__name__}")
        left = self._numeric(self.visit(node.left))
        right = self._numeric(self.visit(node.comparators[0]))
        if left.type != right.type:
            raise _TypeFault(f"cannot compare {left.type} with {right.type}")
        return Typed(
            f"({left.py} {op} {right.py})",
            f"({left.wgsl} {op} {right.wgsl})",
            _BOOL_BY_DIM[dim_of(left.type)],
        )

    def _visit_Attribute(self, node: ast.Attribute) -> Typed:
        base = self._numeric(self.visit(node.value))
        n = dim_of(base.type)
        attr = node.attr
        if n == 1 or not 1 <= len(attr) <= 3 or any(c not in "xyz"[:n] for c in attr):
            raise _TypeFault(f"invalid swizzle .{attr} on {base.type}")
        indices = [_SWIZZLE_INDEX[c] for c in attr]
        if len(indices) == 1:
            py = f"{base.py}[..., {indices[0]}]"
        else:
            py = f"{base.py}[..., {indices}]"
        return Typed(py, f"{base.wgsl}.{attr}", _NUMERIC_BY_DIM[len(indices)])

    # -- calls -------------------------------------------------------------

    def _visit_Call(self, node: ast.Call) -> Typed:
        if not isinstance(node.func, ast.Name) or node.func.id not in BUILTIN_NAMES:
            raise _TypeFault(f"unknown function {ast.unparse(node.func)!r}")
        if node.keywords:
            raise _TypeFault("keyword arguments are not supported")
        name = node.func.id
        args = [self.visit(a) for a in node.args]

        if name in _UNARY_FUNCS:
            (x,) = self._arity(name, args, 1)
            x = self._numeric(x)
            return Typed(f"{_UNARY_FUNCS[name]}({x.py})", f"{name}({x.wgsl})", x.type)
        if name in ("vec2", "vec3"):
            return self._construct(name, args)
        return getattr(self, f"_call_{name}")(args)

    def _call_length(self, args: list[Typed]) -> Typed:
        (v,) = self._arity("length", args, 1)
        self._vector(v)
        return Typed(f"_m.length({v.py})", f"length({v.wgsl})", F32)

    def _call_normalize(self, args: list[Typed]) -> Typed:
        (v,) = self._arity("normalize", args, 1)
        self._vector(v)
        return Typed(f"_m.normalize({v.py})", f"normalize({v.wgsl})", v.type)

    def _call_dot(self, args: list[Typed]) -> Typed:
        a, b = self._arity("dot", args, 2)
        self._vector(a)
        self._same("dot", a, b)
        return Typed(f"_m.dot({a.py}, {b.py})", f"dot({a.wgsl}, {b.wgsl})", F32)

    def _call_min(self, args: list[Typed]) -> Typed:
        return self._binary_same("min", "np.minimum", args)

    def _call_max(self, args: list[Typed]) -> Typed:
        return self._binary_same("max", "np.maximum", args)

    def _call_atan2(self, args: list[Typed]) -> Typed:
        return self._binary_same("atan2", "np.arctan2", args)

    def _call_clamp(self, args: list[Typed]) -> Typed:
        x, lo, hi = self._arity("clamp", args, 3)
        self._numeric(x)
        self._same("clamp", x, lo)
        self._same("clamp", x, hi)
        return Typed(
            f"np.clip({x.py}, {lo.py}, {hi.py})",
            f"clamp({x.wgsl}, {lo.wgsl}, {hi.wgsl})",
            x.type,
        )

    def _call_mix(self, args: list[Typed]) -> Typed:
        a, b, t = self._arity("mix", args, 3)
        self._numeric(a)
        self._same("mix", a, b)
        t = self._numeric(t)
        if t.type == a.type:
            tpy = t.py
        elif t.type == F32:
            tpy = f"_m.bc({t.py})"
        else:
            raise _TypeFault(f"mix factor must be f32 or {a.type}, got {t.type}")
        return Typed(
            f"_m.mix({a.py}, {b.py}, {tpy})",
            f"mix({a.wgsl}, {b.wgsl}, {t.wgsl})",
            a.type,
        )

    def _call_mod(self, args: list[Typed]) -> Typed:
        a, b = self._arity("mod", args, 2)
        a = self._numeric(a)
        b = self._numeric(b)
        result_type, apy, bpy = self._broadcast(a, b)
        # Floored modulo in both backends; WGSL's % truncates.
        return Typed(
            f"_m.mod({apy}, {bpy})",
            f"({a.wgsl} - {b.wgsl} * floor({a.wgsl} / {b.wgsl}))",
            result_type,
        )

    def _call_select(self, args: list[Typed]) -> Typed:
        f, t, cond = self._arity("select", args, 3)
        self._numeric(f)
        self._same("select", f, t)
        if cond.type not in (BOOL, BVEC2, BVEC3):
            raise _TypeFault(f"select condition must be boolean, got {cond.type}")
        if cond.type == BOOL and f.type != F32:
            cpy = f"_m.bc({cond.py})"
        elif dim_of(cond.type) == dim_of(f.type):
            cpy = cond.py
        else:
            raise _TypeFault(f"select condition {cond.type} does not match {f.type}")
        return Typed(
            f"np.where({cpy}, {t.py}, {f.py})",
            f"select({f.wgsl}, {t.wgsl}, {cond.wgsl})",
            f.type,
        )

    def _construct(self, name: str, args: list[Typed]) -> Typed:
        n = 2 if name == "vec2" else 3
        wgsl_type = WGSL_TYPES[_NUMERIC_BY_DIM[n]]
        args = [self._numeric(a) for a in args]
        wgsl = f"{wgsl_type}({', '.join(a.wgsl for a in args)})"
        if len(args) == 1 and args[0].type == F32:
            return Typed(f"_m.splat({args[0].py}, {n})", wgsl, _NUMERIC_BY_DIM[n])
        components: list[str] = []
        for a in args:
            if a.type == F32:
                components.append(a.py)
            else:
                components.extend(f"{a.py}[..., {i}]" for i in range(dim_of(a.type)))
        if len(components) != n:
            raise _TypeFault(f"{name} needs {n} components, got {len(components)}")
        return Typed(f"_m.vec({', '.join(components)})", wgsl, _NUMERIC_BY_DIM[n])

    # -- type helpers ------------------------------------------------------

    def _binary_same(self, name: str, np_func: str, args: list[Typed]) -> Typed:
        a, b = self._arity(name, args, 2)
        self._numeric(a)
        self._same(name, a, b)
        return Typed(f"{np_func}({a.py}, {b.py})", f"{name}({a.wgsl}, {b.wgsl})", a.type)

    @staticmethod
    def _arity(name: str, args: list[Typed], n: int) -> list[Typed]:
        if len(args) != n:
            raise _TypeFault(f"{name} expects {n} argument(s), got {len(args)}")
        return args

    @staticmethod
    def _numeric(value: Typed) -> Typed:
        if not is_numeric(value.type):
            raise _TypeFault(f"expected a numeric value, got {value.type}")
        return value

    @staticmethod
    def _vector(value: Typed) -> Typed:
        if value.type not in (VEC2, VEC3):
            raise _TypeFault(f"expected a vector, got {value.type}")
        return value

    @staticmethod
    def _same(name: str, a: Typed, b: Typed) -> None:
        if a.type != b.type:
            raise _TypeFault(f"{name} arguments differ in type ({a.type} vs {b.type})")

    @staticmethod
    def _broadcast(left: Typed, right: Typed) -> tuple[str, str, str]:
        """Resolve scalar/vector mixing; returns the result type and Python operands."""
        if left.type == right.type:
            return left.type, left.py, right.py
        if left.type == F32:
            return right.type, f"_m.bc({left.py})", right.py
        if right.type == F32:
            return left.type, left.py, f"_m.bc({right.py})"
        raise _TypeFault(f"cannot combine {left.type} with {right.type}")
