"""Native (numpy) evaluation of operation trees.

Every variant is evaluated by calling the generated formula functions, the
same formulas the WGSL backend calls, on an ``(N, 3)`` batch of points.
"""

from __future__ import annotations

from typing import Callable, NamedTuple, Sequence

import numpy as np

from sdfkit import ops
from sdfkit.bounds import Aabb, bounding_box
from sdfkit.errors import UnsupportedOperationError
from sdfkit.library import FormulaLibrary, load_library

__all__ = ["Evaluator", "evaluate", "gradient", "normals", "sample_grid", "bounding_box", "Aabb"]


class Evaluator:
    """Evaluates trees against one formula library."""

    def __init__(self, library: FormulaLibrary | None = None) -> None:
        self.library = library if library is not None else load_library()

    def evaluate(self, node: ops.SdfNode, points: object) -> np.ndarray | float:
        """Signed distance at ``points``.

        A single point of shape ``(3,)`` returns a float; a batch ``(N, 3)``
        returns an array of shape ``(N,)``.
        """
        p = np.asarray(points, dtype=np.float64)
        single = p.ndim == 1
        batch = np.atleast_2d(p)
        if batch.ndim != 2 or batch.shape[1] != 3:
            raise ValueError(f"points must have shape (3,) or (N, 3), got {p.shape}")

        with np.errstate(divide="ignore", invalid="ignore"):
            distances = np.asarray(self._walk(node, batch), dtype=np.float64)
        return float(distances[0]) if single else distances

    def _walk(self, root: ops.SdfNode, points: np.ndarray) -> np.ndarray:
        """Evaluate with an explicit stack: positions flow down, distances up."""
        call = self.library.call
        # Shared subtrees queried with the same position array run once.
        memo: dict[tuple[int, int], tuple[np.ndarray, np.ndarray]] = {}
        results: list[np.ndarray] = []
        stack: list[tuple[ops.SdfNode, np.ndarray, bool]] = [(root, points, False)]
        while stack:
            n, q, expanded = stack.pop()
            rule = _RULES.get(type(n))
            if rule is None:
                raise UnsupportedOperationError(n.variant, "evaluator")
            key = (id(n), id(q))
            if expanded:
                start = len(results) - len(n.children)
                result = rule.combine(call, n, q, results[start:])
                del results[start:]
                memo[key] = (q, result)
                results.append(result)
                continue
            hit = memo.get(key)
            if hit is not None:
                results.append(hit[1])
                continue
            stack.append((n, q, True))
            child_points = rule.descend(call, n, q)
            stack.extend(
                (child, cq, False) for child, cq in reversed(list(zip(n.children, child_points)))
            )
        return results[0]

    def gradient(self, node: ops.SdfNode, points: object, eps: float = 1e-4) -> np.ndarray:
        """Central-difference gradient of the field, shape ``(N, 3)``."""
        p = np.atleast_2d(np.asarray(points, dtype=np.float64))
        grad = np.zeros_like(p)
        for axis in range(3):
            offset = np.zeros(3, dtype=np.float64)
            offset[axis] = eps
            grad[:, axis] = self.evaluate(node, p + offset) - self.evaluate(node, p - offset)
        return grad / (2.0 * eps)

    def normals(self, node: ops.SdfNode, points: object, eps: float = 1e-4) -> np.ndarray:
        """Unit outward normals; degenerate gradients map to +Y."""
        grad = self.gradient(node, points, eps)
        magnitudes = np.linalg.norm(grad, axis=1, keepdims=True)
        zero_mask = (magnitudes < 1e-30).ravel()
        magnitudes[zero_mask] = 1.0
        result = grad / magnitudes
        result[zero_mask] = [0.0, 1.0, 0.0]
        return result

    def sample_grid(
        self, node: ops.SdfNode, resolution: int = 64, padding: float = 0.1
    ) -> tuple[np.ndarray, Aabb]:
        """Sample the field on a regular grid over the padded bounding box.

        Returns the ``(nz, ny, nx)`` distance grid (z outer, x inner) and the
        box it spans. Padding is a fraction of the largest box dimension.
        """
        if resolution < 2:
            raise ValueError(f"resolution must be >= 2, got {resolution}")
        if padding < 0.0:
            raise ValueError(f"padding must be >= 0, got {padding}")
        box = bounding_box(node)
        box = box.expand(max(max(box.size) * padding, 1e-6))

        x = np.linspace(box.min[0], box.max[0], resolution)
        y = np.linspace(box.min[1], box.max[1], resolution)
        z = np.linspace(box.min[2], box.max[2], resolution)
        zz, yy, xx = np.meshgrid(z, y, x, indexing="ij")
        points = np.column_stack([xx.ravel(), yy.ravel(), zz.ravel()])

        values = self.evaluate(node, points)
        return np.asarray(values).reshape(resolution, resolution, resolution), box


# ---------------------------------------------------------------------------
# Variant rules: descend maps a position to child positions, combine maps
# child distances back to this node's distance.
# ---------------------------------------------------------------------------


class _Rule(NamedTuple):
    descend: Callable[..., Sequence[np.ndarray]]
    combine: Callable[..., np.ndarray]


def _no_children(call, n, p):
    return ()


def _same_position(call, n, p):
    return (p,) * len(n.children)


def _primitive(formula: str, *attrs: str) -> _Rule:
    def combine(call, n, p, inputs):
        return call(formula, p, *(getattr(n, a) for a in attrs))

    return _Rule(_no_children, combine)


def _binary(formula: str) -> _Rule:
    def combine(call, n, p, inputs):
        return call(formula, inputs[0], inputs[1])

    return _Rule(_same_position, combine)


def _smooth(formula: str) -> _Rule:
    def combine(call, n, p, inputs):
        return call(formula, inputs[0], inputs[1], n.k)

    return _Rule(_same_position, combine)


def _distance_modifier(formula: str, attr: str) -> _Rule:
    def combine(call, n, p, inputs):
        return call(formula, inputs[0], getattr(n, attr))

    return _Rule(_same_position, combine)


def _point_transform(formula: str, *attrs: str) -> _Rule:
    def descend(call, n, p):
        return (call(formula, p, *(getattr(n, a) for a in attrs)),)

    return _Rule(descend, lambda call, n, p, inputs: inputs[0])


_ELONGATE = _Rule(
    lambda call, n, p: (call("op_elongate", p, n.extents),),
    lambda call, n, p, inputs: inputs[0] + call("op_elongate_correction", p, n.extents),
)

_SCALE = _Rule(
    lambda call, n, p: (call("op_scale", p, n.factor),),
    lambda call, n, p, inputs: call("op_scale_distance", inputs[0], n.factor),
)


_RULES: dict[type, _Rule] = {
    ops.Sphere: _primitive("sd_sphere", "radius"),
    ops.Box: _primitive("sd_box", "half_extents"),
    ops.RoundedBox: _primitive("sd_rounded_box", "half_extents", "radius"),
    ops.Cylinder: _primitive("sd_cylinder", "radius", "half_height"),
    ops.Capsule: _primitive("sd_capsule", "radius", "half_height"),
    ops.Torus: _primitive("sd_torus", "major_radius", "minor_radius"),
    ops.Cone: _primitive("sd_cone", "radius", "height"),
    ops.Plane: _primitive("sd_plane", "normal", "offset"),
    ops.Ellipsoid: _primitive("sd_ellipsoid", "radii"),
    ops.Octahedron: _primitive("sd_octahedron", "size"),
    ops.HexPrism: _primitive("sd_hex_prism", "radius", "half_height"),
    ops.TriPrism: _primitive("sd_tri_prism", "size"),
    ops.Union: _binary("op_union"),
    ops.Subtract: _binary("op_subtract"),
    ops.Intersect: _binary("op_intersect"),
    ops.SmoothUnion: _smooth("op_smooth_union"),
    ops.SmoothSubtract: _smooth("op_smooth_subtract"),
    ops.SmoothIntersect: _smooth("op_smooth_intersect"),
    ops.Shell: _distance_modifier("op_shell", "thickness"),
    ops.Onion: _distance_modifier("op_onion", "thickness"),
    ops.Round: _distance_modifier("op_round", "radius"),
    ops.Elongate: _ELONGATE,
    ops.Translate: _point_transform("op_translate", "offset"),
    ops.RotateX: _point_transform("op_rotate_x", "angle"),
    ops.RotateY: _point_transform("op_rotate_y", "angle"),
    ops.RotateZ: _point_transform("op_rotate_z", "angle"),
    ops.Scale: _SCALE,
    ops.Mirror: _point_transform("op_mirror", "axis"),
    ops.SymmetryX: _point_transform("op_symmetry_x"),
    ops.SymmetryY: _point_transform("op_symmetry_y"),
    ops.SymmetryZ: _point_transform("op_symmetry_z"),
    ops.Twist: _point_transform("op_twist", "amount"),
    ops.Bend: _point_transform("op_bend", "amount"),
    ops.RepeatInfinite: _point_transform("op_repeat", "spacing"),
    ops.RepeatLimited: _point_transform("op_repeat_limited", "spacing", "counts"),
    ops.RepeatPolar: _point_transform("op_repeat_polar", "count"),
}



# ---------------------------------------------------------------------------
# Module-level convenience API
# ---------------------------------------------------------------------------

_default: Evaluator | None = None


def _default_evaluator() -> Evaluator:
    global _default
    if _default is None:
        _default = Evaluator()
    return _default


def evaluate(node: ops.SdfNode, points: object) -> np.ndarray | float:
    return _default_evaluator().evaluate(node, points)


def gradient(node: ops.SdfNode, points: object, eps: float = 1e-4) -> np.ndarray:
    return _default_evaluator().gradient(node, points, eps)


def normals(node: ops.SdfNode, points: object, eps: float = 1e-4) -> np.ndarray:
    return _default_evaluator().normals(node, points, eps)


def sample_grid(
    node: ops.SdfNode, resolution: int = 64, padding: float = 0.1
) -> tuple[np.ndarray, Aabb]:
    return _default_evaluator().sample_grid(node, resolution, padding)
