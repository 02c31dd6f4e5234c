"""Conservative axis-aligned bounding boxes for operation trees."""

from __future__ import annotations

import itertools
import math
from dataclasses import dataclass
from typing import Callable

import numpy as np

from sdfkit import ops
from sdfkit.errors import UnsupportedOperationError

# Half size of the box reported for shapes without a finite extent.
UNBOUNDED_EXTENT = 100.0
INFINITE_REPEAT_EXTENT = 10.0


@dataclass(frozen=True)
class Aabb:
    """Axis-aligned box given by its min and max corners."""

    min: tuple[float, float, float]
    max: tuple[float, float, float]

    @classmethod
    def cube(cls, half: float, center: tuple[float, float, float] = (0.0, 0.0, 0.0)) -> Aabb:
        return cls(
            tuple(c - half for c in center),  # type: ignore[arg-type]
            tuple(c + half for c in center),  # type: ignore[arg-type]
        )

    @classmethod
    def from_points(cls, points: np.ndarray) -> Aabb:
        lo = points.min(axis=0)
        hi = points.max(axis=0)
        return cls(tuple(float(v) for v in lo), tuple(float(v) for v in hi))  # type: ignore[arg-type]

    @property
    def size(self) -> tuple[float, float, float]:
        return tuple(hi - lo for lo, hi in zip(self.min, self.max))  # type: ignore[return-value]

    @property
    def center(self) -> tuple[float, float, float]:
        return tuple((lo + hi) * 0.5 for lo, hi in zip(self.min, self.max))  # type: ignore[return-value]

    def corners(self) -> np.ndarray:
        """The 8 corners as an (8, 3) array."""
        return np.array(list(itertools.product(*zip(self.min, self.max))), dtype=np.float64)

    def union(self, other: Aabb) -> Aabb:
        return Aabb(
            tuple(map(min, self.min, other.min)),  # type: ignore[arg-type]
            tuple(map(max, self.max, other.max)),  # type: ignore[arg-type]
        )

    def intersection(self, other: Aabb) -> Aabb:
        lo = list(map(max, self.min, other.min))
        hi = list(map(min, self.max, other.max))
        for axis in range(3):
            # Disjoint on this axis: collapse to the gap midpoint.
            if lo[axis] > hi[axis]:
                lo[axis] = hi[axis] = (lo[axis] + hi[axis]) * 0.5
        return Aabb(tuple(lo), tuple(hi))  # type: ignore[arg-type]

    def expand(self, amount: float | tuple[float, float, float]) -> Aabb:
        amounts = (amount,) * 3 if isinstance(amount, (int, float)) else tuple(amount)
        return Aabb(
            tuple(v - a for v, a in zip(self.min, amounts)),  # type: ignore[arg-type]
            tuple(v + a for v, a in zip(self.max, amounts)),  # type: ignore[arg-type]
        )

    def translate(self, offset: tuple[float, float, float]) -> Aabb:
        return Aabb(
            tuple(v + o for v, o in zip(self.min, offset)),  # type: ignore[arg-type]
            tuple(v + o for v, o in zip(self.max, offset)),  # type: ignore[arg-type]
        )

    def contains(self, points: np.ndarray, tol: float = 1e-9) -> np.ndarray:
        p = np.atleast_2d(points)
        return np.all((p >= np.array(self.min) - tol) & (p <= np.array(self.max) + tol), axis=-1)


def bounding_box(node: ops.SdfNode) -> Aabb:
    """Return a box containing the zero level set and interior of ``node``.

    Planes and infinite repetition are unbounded; they report a fixed finite
    extent instead. Nodes are visited children first, so tree depth is not
    limited by the interpreter stack.
    """
    memo: dict[int, Aabb] = {}

    def child_box(n: ops.SdfNode) -> Aabb:
        return memo[id(n)]

    for n in ops.iter_post_order(node):
        rule = _RULES.get(type(n))
        if rule is None:
            raise UnsupportedOperationError(n.variant, "bounding_box")
        memo[id(n)] = rule(n, child_box)
    return memo[id(node)]


def is_unbounded(node: ops.SdfNode) -> bool:
    """True if the true extent of ``node`` is infinite."""
    memo: dict[int, bool] = {}
    for n in ops.iter_post_order(node):
        if isinstance(n, ops.Plane):
            result = True
        elif isinstance(n, ops.RepeatInfinite) and any(s > 0.0 for s in n.spacing):
            result = True
        elif isinstance(n, (ops.Subtract, ops.SmoothSubtract)):
            result = memo[id(n.a)]
        elif isinstance(n, (ops.Intersect, ops.SmoothIntersect)):
            result = memo[id(n.a)] and memo[id(n.b)]
        else:
            result = any(memo[id(c)] for c in n.children)
        memo[id(n)] = result
    return memo[id(node)]


# ---------------------------------------------------------------------------
# Per-variant rules
# ---------------------------------------------------------------------------

Visit = Callable[[ops.SdfNode], Aabb]


def _symmetric(hx: float, hy: float, hz: float) -> Aabb:
    return Aabb((-hx, -hy, -hz), (hx, hy, hz))


def _max_abs(box: Aabb) -> tuple[float, float, float]:
    return tuple(max(abs(lo), abs(hi)) for lo, hi in zip(box.min, box.max))  # type: ignore[return-value]


def _map_corners(box: Aabb, fn: Callable[[np.ndarray], np.ndarray]) -> Aabb:
    return Aabb.from_points(fn(box.corners()))


def _rotation(axis: int, angle: float) -> np.ndarray:
    """Matrix rotating a child by ``angle`` about ``axis`` (forward direction)."""
    c, s = math.cos(angle), math.sin(angle)
    if axis == 0:
        return np.array([[1, 0, 0], [0, c, -s], [0, s, c]])
    if axis == 1:
        return np.array([[c, 0, s], [0, 1, 0], [-s, 0, c]])
    return np.array([[c, -s, 0], [s, c, 0], [0, 0, 1]])


def _radial(box: Aabb, plane_axes: tuple[int, int]) -> Aabb:
    """Box unchanged by any rotation in the plane of ``plane_axes``."""
    corners = box.corners()
    radius = float(np.max(np.hypot(corners[:, plane_axes[0]], corners[:, plane_axes[1]])))
    lo = list(box.min)
    hi = list(box.max)
    for axis in plane_axes:
        lo[axis] = -radius
        hi[axis] = radius
    return Aabb(tuple(lo), tuple(hi))  # type: ignore[arg-type]


def _reflect_axis(box: Aabb, axis: int) -> Aabb:
    extent = _max_abs(box)[axis]
    lo = list(box.min)
    hi = list(box.max)
    lo[axis] = -extent
    hi[axis] = extent
    return Aabb(tuple(lo), tuple(hi))  # type: ignore[arg-type]


def _mirror(node: ops.Mirror, visit: Visit) -> Aabb:
    inner = visit(node.inner)
    n = np.array(node.axis) / np.linalg.norm(node.axis)
    reflected = _map_corners(inner, lambda c: c - 2.0 * np.outer(c @ n, n))
    return inner.union(reflected)


def _repeat_limited(node: ops.RepeatLimited, visit: Visit) -> Aabb:
    inner = visit(node.inner)
    return inner.expand(tuple(s * c for s, c in zip(node.spacing, node.counts)))  # type: ignore[arg-type]


def _repeat_infinite(node: ops.RepeatInfinite, visit: Visit) -> Aabb:
    inner = visit(node.inner)
    lo = list(inner.min)
    hi = list(inner.max)
    for axis, spacing in enumerate(node.spacing):
        if spacing > 0.0:
            lo[axis] = min(lo[axis], -INFINITE_REPEAT_EXTENT)
            hi[axis] = max(hi[axis], INFINITE_REPEAT_EXTENT)
    return Aabb(tuple(lo), tuple(hi))  # type: ignore[arg-type]


def _elongate(node: ops.Elongate, visit: Visit) -> Aabb:
    ext = _max_abs(visit(node.inner))
    return _symmetric(*(e + h for e, h in zip(ext, node.extents)))


_RULES: dict[type, Callable[..., Aabb]] = {
    ops.Sphere: lambda n, v: Aabb.cube(n.radius),
    ops.Box: lambda n, v: _symmetric(*n.half_extents),
    ops.RoundedBox: lambda n, v: _symmetric(*n.half_extents),
    ops.Cylinder: lambda n, v: _symmetric(n.radius, n.half_height, n.radius),
    ops.Capsule: lambda n, v: _symmetric(n.radius, n.half_height + n.radius, n.radius),
    ops.Torus: lambda n, v: _symmetric(
        n.major_radius + n.minor_radius, n.minor_radius, n.major_radius + n.minor_radius
    ),
    ops.Cone: lambda n, v: Aabb((-n.radius, 0.0, -n.radius), (n.radius, n.height, n.radius)),
    ops.Plane: lambda n, v: Aabb.cube(UNBOUNDED_EXTENT),
    ops.Ellipsoid: lambda n, v: _symmetric(*n.radii),
    ops.Octahedron: lambda n, v: Aabb.cube(n.size),
    # Vertices of the hexagon lie at apothem / cos(30 deg).
    ops.HexPrism: lambda n, v: _symmetric(
        n.radius / math.cos(math.pi / 6), n.half_height, n.radius / math.cos(math.pi / 6)
    ),
    # The triangle spans y in [-size/2, size] and |x| <= 0.75 * size / cos(30 deg).
    ops.TriPrism: lambda n, v: Aabb(
        (-0.75 * n.size[0] / 0.866025, -0.5 * n.size[0], -n.size[1]),
        (0.75 * n.size[0] / 0.866025, n.size[0], n.size[1]),
    ),
    ops.Union: lambda n, v: v(n.a).union(v(n.b)),
    ops.Subtract: lambda n, v: v(n.a),
    ops.Intersect: lambda n, v: v(n.a).intersection(v(n.b)),
    ops.SmoothUnion: lambda n, v: v(n.a).union(v(n.b)).expand(n.k),
    ops.SmoothSubtract: lambda n, v: v(n.a),
    ops.SmoothIntersect: lambda n, v: v(n.a).intersection(v(n.b)),
    ops.Shell: lambda n, v: v(n.inner).expand(n.thickness),
    ops.Onion: lambda n, v: v(n.inner).expand(n.thickness),
    ops.Round: lambda n, v: v(n.inner).expand(n.radius),
    ops.Elongate: _elongate,
    ops.Translate: lambda n, v: v(n.inner).translate(n.offset),
    ops.RotateX: lambda n, v: _map_corners(v(n.inner), lambda c: c @ _rotation(0, n.angle).T),
    ops.RotateY: lambda n, v: _map_corners(v(n.inner), lambda c: c @ _rotation(1, n.angle).T),
    ops.RotateZ: lambda n, v: _map_corners(v(n.inner), lambda c: c @ _rotation(2, n.angle).T),
    ops.Scale: lambda n, v: Aabb(
        tuple(x * n.factor for x in v(n.inner).min),
        tuple(x * n.factor for x in v(n.inner).max),
    ),
    ops.Mirror: _mirror,
    ops.SymmetryX: lambda n, v: _reflect_axis(v(n.inner), 0),
    ops.SymmetryY: lambda n, v: _reflect_axis(v(n.inner), 1),
    ops.SymmetryZ: lambda n, v: _reflect_axis(v(n.inner), 2),
    ops.Twist: lambda n, v: _radial(v(n.inner), (0, 2)),
    ops.Bend: lambda n, v: _radial(v(n.inner), (0, 1)),
    ops.RepeatInfinite: _repeat_infinite,
    ops.RepeatLimited: _repeat_limited,
    ops.RepeatPolar: lambda n, v: _radial(v(n.inner), (0, 2)),
}
