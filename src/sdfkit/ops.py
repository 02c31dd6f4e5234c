"""Immutable SDF operation tree and its validating builders.

Nodes are frozen dataclasses. Children are held by reference, so a subtree
used in several places is shared rather than copied; equality and hashing
are structural, with the hash cached on each node.
"""

from __future__ import annotations

import dataclasses
import math
from dataclasses import dataclass
from typing import ClassVar, Iterator

Vec2 = tuple[float, float]
Vec3 = tuple[float, float, float]


# ---------------------------------------------------------------------------
# Base classes
# ---------------------------------------------------------------------------


@dataclass(frozen=True, eq=False)
class SdfNode:
    """Base class for every node of the operation tree."""

    category: ClassVar[str] = "node"

    @property
    def variant(self) -> str:
        return type(self).__name__

    @property
    def children(self) -> tuple[SdfNode, ...]:
        return ()

    def params(self) -> dict[str, object]:
        """Non-child fields in declaration order."""
        return {
            f.name: getattr(self, f.name)
            for f in dataclasses.fields(self)
            if not isinstance(getattr(self, f.name), SdfNode)
        }

    def __post_init__(self) -> None:
        # Children are built first, so their hashes are already cached.
        key = tuple(
            value._hash if isinstance(value, SdfNode) else value
            for value in (getattr(self, f.name) for f in dataclasses.fields(self))
        )
        object.__setattr__(self, "_hash", hash((type(self), key)))

    def __hash__(self) -> int:
        return self._hash

    def __eq__(self, other: object) -> bool:
        if self is other:
            return True
        if not isinstance(other, SdfNode):
            return NotImplemented
        return _structurally_equal(self, other)

    # -- chainable builders ------------------------------------------------

    def union(self, other: SdfNode) -> SdfNode:
        return union(self, other)

    def subtract(self, other: SdfNode) -> SdfNode:
        return subtract(self, other)

    def intersect(self, other: SdfNode) -> SdfNode:
        return intersect(self, other)

    def smooth_union(self, other: SdfNode, k: float) -> SdfNode:
        return smooth_union(self, other, k)

    def smooth_subtract(self, other: SdfNode, k: float) -> SdfNode:
        return smooth_subtract(self, other, k)

    def smooth_intersect(self, other: SdfNode, k: float) -> SdfNode:
        return smooth_intersect(self, other, k)

    def shell(self, thickness: float) -> SdfNode:
        return shell(self, thickness)

    def hollow(self, thickness: float) -> SdfNode:
        return shell(self, thickness)

    def onion(self, thickness: float) -> SdfNode:
        return onion(self, thickness)

    def round(self, radius: float) -> SdfNode:
        return round_shape(self, radius)

    def elongate(self, x: float, y: float, z: float) -> SdfNode:
        return elongate(self, x, y, z)

    def translate(self, x: float, y: float, z: float) -> SdfNode:
        return translate(self, x, y, z)

    def translate_x(self, x: float) -> SdfNode:
        return translate(self, x, 0.0, 0.0)

    def translate_y(self, y: float) -> SdfNode:
        return translate(self, 0.0, y, 0.0)

    def translate_z(self, z: float) -> SdfNode:
        return translate(self, 0.0, 0.0, z)

    def rotate_x(self, angle: float) -> SdfNode:
        return rotate_x(self, angle)

    def rotate_y(self, angle: float) -> SdfNode:
        return rotate_y(self, angle)

    def rotate_z(self, angle: float) -> SdfNode:
        return rotate_z(self, angle)

    def scale(self, factor: float) -> SdfNode:
        return scale(self, factor)

    def mirror(self, x: float, y: float, z: float) -> SdfNode:
        return mirror(self, (x, y, z))

    def mirror_x(self) -> SdfNode:
        return mirror(self, (1.0, 0.0, 0.0))

    def mirror_y(self) -> SdfNode:
        return mirror(self, (0.0, 1.0, 0.0))

    def mirror_z(self) -> SdfNode:
        return mirror(self, (0.0, 0.0, 1.0))

    def symmetry_x(self) -> SdfNode:
        return symmetry_x(self)

    def symmetry_y(self) -> SdfNode:
        return symmetry_y(self)

    def symmetry_z(self) -> SdfNode:
        return symmetry_z(self)

    def twist(self, amount: float) -> SdfNode:
        return twist(self, amount)

    def bend(self, amount: float) -> SdfNode:
        return bend(self, amount)

    def repeat(self, x: float, y: float, z: float) -> SdfNode:
        return repeat(self, x, y, z)

    def repeat_limited(
        self, sx: float, sy: float, sz: float, cx: int, cy: int, cz: int
    ) -> SdfNode:
        return repeat_limited(self, (sx, sy, sz), (cx, cy, cz))

    def repeat_polar(self, count: int) -> SdfNode:
        return repeat_polar(self, count)


@dataclass(frozen=True, eq=False)
class Primitive(SdfNode):
    category: ClassVar[str] = "primitive"


@dataclass(frozen=True, eq=False)
class BinaryOp(SdfNode):
    category: ClassVar[str] = "boolean"
    a: SdfNode
    b: SdfNode

    @property
    def children(self) -> tuple[SdfNode, ...]:
        return (self.a, self.b)


@dataclass(frozen=True, eq=False)
class UnaryOp(SdfNode):
    inner: SdfNode

    @property
    def children(self) -> tuple[SdfNode, ...]:
        return (self.inner,)


# ---------------------------------------------------------------------------
# Primitives
# ---------------------------------------------------------------------------


@dataclass(frozen=True, eq=False)
class Sphere(Primitive):
    radius: float


@dataclass(frozen=True, eq=False)
class Box(Primitive):
    half_extents: Vec3


@dataclass(frozen=True, eq=False)
class RoundedBox(Primitive):
    half_extents: Vec3
    radius: float


@dataclass(frozen=True, eq=False)
class Cylinder(Primitive):
    radius: float
    half_height: float


@dataclass(frozen=True, eq=False)
class Capsule(Primitive):
    radius: float
    half_height: float


@dataclass(frozen=True, eq=False)
class Torus(Primitive):
    major_radius: float
    minor_radius: float


@dataclass(frozen=True, eq=False)
class Cone(Primitive):
    radius: float
    height: float


@dataclass(frozen=True, eq=False)
class Plane(Primitive):
    normal: Vec3
    offset: float


@dataclass(frozen=True, eq=False)
class Ellipsoid(Primitive):
    radii: Vec3


@dataclass(frozen=True, eq=False)
class Octahedron(Primitive):
    size: float


@dataclass(frozen=True, eq=False)
class HexPrism(Primitive):
    half_height: float
    radius: float


@dataclass(frozen=True, eq=False)
class TriPrism(Primitive):
    size: Vec2


# ---------------------------------------------------------------------------
# Booleans
# ---------------------------------------------------------------------------


@dataclass(frozen=True, eq=False)
class Union(BinaryOp):
    pass


@dataclass(frozen=True, eq=False)
class Subtract(BinaryOp):
    pass


@dataclass(frozen=True, eq=False)
class Intersect(BinaryOp):
    pass


@dataclass(frozen=True, eq=False)
class SmoothUnion(BinaryOp):
    k: float


@dataclass(frozen=True, eq=False)
class SmoothSubtract(BinaryOp):
    k: float


@dataclass(frozen=True, eq=False)
class SmoothIntersect(BinaryOp):
    k: float


# ---------------------------------------------------------------------------
# Modifiers, transforms, deformations, repetition
# ---------------------------------------------------------------------------


@dataclass(frozen=True, eq=False)
class Shell(UnaryOp):
    category: ClassVar[str] = "modifier"
    thickness: float


@dataclass(frozen=True, eq=False)
class Onion(UnaryOp):
    category: ClassVar[str] = "modifier"
    thickness: float


@dataclass(frozen=True, eq=False)
class Round(UnaryOp):
    category: ClassVar[str] = "modifier"
    radius: float


@dataclass(frozen=True, eq=False)
class Elongate(UnaryOp):
    category: ClassVar[str] = "modifier"
    extents: Vec3


@dataclass(frozen=True, eq=False)
class Translate(UnaryOp):
    category: ClassVar[str] = "transform"
    offset: Vec3


@dataclass(frozen=True, eq=False)
class RotateX(UnaryOp):
    category: ClassVar[str] = "transform"
    angle: float


@dataclass(frozen=True, eq=False)
class RotateY(UnaryOp):
    category: ClassVar[str] = "transform"
    angle: float


@dataclass(frozen=True, eq=False)
class RotateZ(UnaryOp):
    category: ClassVar[str] = "transform"
    angle: float


@dataclass(frozen=True, eq=False)
class Scale(UnaryOp):
    category: ClassVar[str] = "transform"
    factor: float


@dataclass(frozen=True, eq=False)
class Mirror(UnaryOp):
    category: ClassVar[str] = "transform"
    axis: Vec3


@dataclass(frozen=True, eq=False)
class SymmetryX(UnaryOp):
    category: ClassVar[str] = "transform"


@dataclass(frozen=True, eq=False)
class SymmetryY(UnaryOp):
    category: ClassVar[str] = "transform"


@dataclass(frozen=True, eq=False)
class SymmetryZ(UnaryOp):
    category: ClassVar[str] = "transform"


@dataclass(frozen=True, eq=False)
class Twist(UnaryOp):
    category: ClassVar[str] = "deformation"
    amount: float


@dataclass(frozen=True, eq=False)
class Bend(UnaryOp):
    category: ClassVar[str] = "deformation"
    amount: float


@dataclass(frozen=True, eq=False)
class RepeatInfinite(UnaryOp):
    category: ClassVar[str] = "repetition"
    spacing: Vec3


@dataclass(frozen=True, eq=False)
class RepeatLimited(UnaryOp):
    category: ClassVar[str] = "repetition"
    spacing: Vec3
    counts: tuple[int, int, int]


@dataclass(frozen=True, eq=False)
class RepeatPolar(UnaryOp):
    category: ClassVar[str] = "repetition"
    count: int


# ---------------------------------------------------------------------------
# Parameter validation
# ---------------------------------------------------------------------------


def _finite(name: str, value: object) -> float:
    if isinstance(value, bool):
        raise ValueError(f"{name} must be a number, got {value!r}")
    try:
        v = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        raise ValueError(f"{name} must be a number, got {value!r}") from None
    if not math.isfinite(v):
        raise ValueError(f"{name} must be finite, got {v}")
    return v + 0.0  # -0.0 -> 0.0


def _non_negative(name: str, value: object) -> float:
    v = _finite(name, value)
    if v < 0.0:
        raise ValueError(f"{name} must be >= 0, got {v}")
    return v


def _positive(name: str, value: object) -> float:
    v = _finite(name, value)
    if v <= 0.0:
        raise ValueError(f"{name} must be > 0, got {v}")
    return v


def _vec3(name: str, values: object, check=_finite) -> Vec3:
    try:
        items = tuple(values)  # type: ignore[arg-type]
    except TypeError:
        raise ValueError(f"{name} must have 3 components, got {values!r}") from None
    if len(items) != 3:
        raise ValueError(f"{name} must have 3 components, got {len(items)}")
    x, y, z = (check(f"{name}.{axis}", v) for axis, v in zip("xyz", items))
    return (x, y, z)


def _non_zero_vec3(name: str, values: object) -> Vec3:
    v = _vec3(name, values)
    if v == (0.0, 0.0, 0.0):
        raise ValueError(f"{name} must not be the zero vector")
    return v


def _count(name: str, value: object, minimum: int) -> int:
    if isinstance(value, bool):
        raise ValueError(f"{name} must be an integer, got {value!r}")
    if isinstance(value, float):
        if not value.is_integer():
            raise ValueError(f"{name} must be an integer, got {value}")
        value = int(value)
    if not isinstance(value, int):
        raise ValueError(f"{name} must be an integer, got {value!r}")
    if value < minimum:
        raise ValueError(f"{name} must be >= {minimum}, got {value}")
    return value


def _node(name: str, value: object) -> SdfNode:
    if not isinstance(value, SdfNode):
        raise ValueError(f"{name} must be an SDF node, got {type(value).__name__}")
    return value


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------


def sphere(radius: float) -> Sphere:
    return Sphere(_non_negative("radius", radius))


def box(hx: float, hy: float, hz: float) -> Box:
    """Axis-aligned box from half extents."""
    return Box(_vec3("half_extents", (hx, hy, hz), _non_negative))


def rounded_box(hx: float, hy: float, hz: float, radius: float) -> RoundedBox:
    return RoundedBox(
        _vec3("half_extents", (hx, hy, hz), _non_negative), _non_negative("radius", radius)
    )


def cylinder(radius: float, half_height: float) -> Cylinder:
    return Cylinder(_non_negative("radius", radius), _non_negative("half_height", half_height))


def capsule(radius: float, half_height: float) -> Capsule:
    return Capsule(_non_negative("radius", radius), _non_negative("half_height", half_height))


def torus(major_radius: float, minor_radius: float) -> Torus:
    return Torus(
        _non_negative("major_radius", major_radius), _non_negative("minor_radius", minor_radius)
    )


def cone(radius: float, height: float) -> Cone:
    """Cone with its base disc on y = 0 and its apex at y = height."""
    return Cone(_positive("radius", radius), _positive("height", height))


def plane(normal: Vec3 = (0.0, 1.0, 0.0), offset: float = 0.0) -> Plane:
    return Plane(_non_zero_vec3("normal", normal), _finite("offset", offset))


def ellipsoid(rx: float, ry: float, rz: float) -> Ellipsoid:
    return Ellipsoid(_vec3("radii", (rx, ry, rz), _positive))


def octahedron(size: float) -> Octahedron:
    return Octahedron(_non_negative("size", size))


def hex_prism(radius: float, half_height: float) -> HexPrism:
    return HexPrism(_non_negative("half_height", half_height), _non_negative("radius", radius))


def tri_prism(size: float, half_depth: float) -> TriPrism:
    return TriPrism((_non_negative("size", size), _non_negative("half_depth", half_depth)))


def union(a: SdfNode, b: SdfNode) -> Union:
    return Union(_node("a", a), _node("b", b))


def subtract(a: SdfNode, b: SdfNode) -> Subtract:
    return Subtract(_node("a", a), _node("b", b))


def intersect(a: SdfNode, b: SdfNode) -> Intersect:
    return Intersect(_node("a", a), _node("b", b))


def smooth_union(a: SdfNode, b: SdfNode, k: float) -> SmoothUnion:
    return SmoothUnion(_node("a", a), _node("b", b), _non_negative("k", k))


def smooth_subtract(a: SdfNode, b: SdfNode, k: float) -> SmoothSubtract:
    return SmoothSubtract(_node("a", a), _node("b", b), _non_negative("k", k))


def smooth_intersect(a: SdfNode, b: SdfNode, k: float) -> SmoothIntersect:
    return SmoothIntersect(_node("a", a), _node("b", b), _non_negative("k", k))


def shell(node: SdfNode, thickness: float) -> Shell:
    return Shell(_node("node", node), _non_negative("thickness", thickness))


def onion(node: SdfNode, thickness: float) -> Onion:
    return Onion(_node("node", node), _positive("thickness", thickness))


def round_shape(node: SdfNode, radius: float) -> Round:
    return Round(_node("node", node), _non_negative("radius", radius))


def elongate(node: SdfNode, x: float, y: float, z: float) -> Elongate:
    return Elongate(_node("node", node), _vec3("extents", (x, y, z), _non_negative))


def translate(node: SdfNode, x: float, y: float, z: float) -> Translate:
    return Translate(_node("node", node), _vec3("offset", (x, y, z)))


def rotate_x(node: SdfNode, angle: float) -> RotateX:
    return RotateX(_node("node", node), _finite("angle", angle))


def rotate_y(node: SdfNode, angle: float) -> RotateY:
    return RotateY(_node("node", node), _finite("angle", angle))


def rotate_z(node: SdfNode, angle: float) -> RotateZ:
    return RotateZ(_node("node", node), _finite("angle", angle))


def scale(node: SdfNode, factor: float) -> Scale:
    return Scale(_node("node", node), _positive("factor", factor))


def mirror(node: SdfNode, axis: Vec3) -> Mirror:
    return Mirror(_node("node", node), _non_zero_vec3("axis", axis))


def symmetry_x(node: SdfNode) -> SymmetryX:
    return SymmetryX(_node("node", node))


def symmetry_y(node: SdfNode) -> SymmetryY:
    return SymmetryY(_node("node", node))


def symmetry_z(node: SdfNode) -> SymmetryZ:
    return SymmetryZ(_node("node", node))


def twist(node: SdfNode, amount: float) -> Twist:
    return Twist(_node("node", node), _finite("amount", amount))


def bend(node: SdfNode, amount: float) -> Bend:
    return Bend(_node("node", node), _finite("amount", amount))


def repeat(node: SdfNode, x: float, y: float, z: float) -> RepeatInfinite:
    """Infinite repetition; a spacing of 0 leaves that axis unrepeated."""
    return RepeatInfinite(_node("node", node), _vec3("spacing", (x, y, z), _non_negative))


def repeat_limited(
    node: SdfNode, spacing: Vec3, counts: tuple[int, int, int]
) -> RepeatLimited:
    """Repeat ``counts[i]`` extra copies on each side of the centre along each axis."""
    items = tuple(counts)
    if len(items) != 3:
        raise ValueError(f"counts must have 3 components, got {len(items)}")
    cx, cy, cz = (_count(f"counts.{axis}", c, 0) for axis, c in zip("xyz", items))
    return RepeatLimited(
        _node("node", node), _vec3("spacing", spacing, _non_negative), (cx, cy, cz)
    )


def repeat_polar(node: SdfNode, count: int) -> RepeatPolar:
    return RepeatPolar(_node("node", node), _count("count", count, 1))


# ---------------------------------------------------------------------------
# Traversal helpers
# ---------------------------------------------------------------------------


def iter_nodes(root: SdfNode) -> Iterator[SdfNode]:
    """Yield each distinct node object once, parents before children."""
    seen: set[int] = set()
    stack = [root]
    while stack:
        node = stack.pop()
        if id(node) in seen:
            continue
        seen.add(id(node))
        yield node
        stack.extend(reversed(node.children))


def iter_post_order(root: SdfNode) -> Iterator[SdfNode]:
    """Yield each distinct node object once, children before parents."""
    seen: set[int] = set()
    stack: list[tuple[SdfNode, bool]] = [(root, False)]
    while stack:
        node, expanded = stack.pop()
        if expanded:
            yield node
            continue
        if id(node) in seen:
            continue
        seen.add(id(node))
        stack.append((node, True))
        stack.extend((child, False) for child in reversed(node.children))


def _structurally_equal(left: SdfNode, right: SdfNode) -> bool:
    """Compare two trees without recursion; each node pair is checked once."""
    checked: set[tuple[int, int]] = set()
    pending = [(left, right)]
    while pending:
        a, b = pending.pop()
        if a is b or (id(a), id(b)) in checked:
            continue
        if type(a) is not type(b) or a._hash != b._hash:
            return False
        checked.add((id(a), id(b)))
        for f in dataclasses.fields(a):
            va, vb = getattr(a, f.name), getattr(b, f.name)
            if isinstance(va, SdfNode):
                if not isinstance(vb, SdfNode):
                    return False
                pending.append((va, vb))
            elif va != vb:
                return False
    return True


def node_count(root: SdfNode) -> int:
    return sum(1 for _ in iter_nodes(root))


def describe(root: SdfNode) -> str:
    """Indented text rendering of the tree; shared subtrees are marked."""
    lines: list[str] = []
    seen: set[int] = set()
    stack = [(root, 0)]
    while stack:
        node, depth = stack.pop()
        params = ", ".join(f"{k}={_format_param(v)}" for k, v in node.params().items())
        label = f"{node.variant}({params})" if params else node.variant
        if node.children and id(node) in seen:
            lines.append("  " * depth + f"{label} [shared]")
            continue
        seen.add(id(node))
        lines.append("  " * depth + label)
        stack.extend((child, depth + 1) for child in reversed(node.children))
    return "\n".join(lines)


def _format_param(value: object) -> str:
    if isinstance(value, tuple):
        return "(" + ", ".join(_format_param(v) for v in value) + ")"
    if isinstance(value, float):
        return f"{value:g}"
    return str(value)
