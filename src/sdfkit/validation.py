"""Diagnostics for operation trees.

Trees that pass their builders are always evaluable; these checks flag
constructions that are legal but probably not what the author meant.
"""

from __future__ import annotations

import math

from sdfkit import ops
from sdfkit.bounds import bounding_box, is_unbounded
from sdfkit.errors import UnsupportedOperationError
from sdfkit.warning_policy import WarningPolicy, emit_warning

_UNIT_TOLERANCE = 1e-6


def validate_tree(node: ops.SdfNode, *, warning_policy: WarningPolicy | None = None) -> None:
    """Run every tree diagnostic once per distinct node.

    Raises:
        ValidationError: When a diagnostic is promoted by ``warning_policy``.
    """
    _warn_unbounded(node, warning_policy)
    for n in ops.iter_nodes(node):
        if isinstance(n, ops.Plane):
            _warn_plane_normal(n, warning_policy)
        elif isinstance(n, (ops.SmoothUnion, ops.SmoothSubtract, ops.SmoothIntersect)):
            _warn_zero_blend(n, warning_policy)
        elif isinstance(n, (ops.RepeatInfinite, ops.RepeatLimited)):
            _warn_repeat_overlap(n, warning_policy)


def _warn_unbounded(node: ops.SdfNode, policy: WarningPolicy | None) -> None:
    if is_unbounded(node):
        emit_warning(
            "W02",
            "Scene contains an unbounded shape (plane or infinite repetition); "
            "sampling uses a fixed extent",
            policy=policy,
        )


def _warn_plane_normal(node: ops.Plane, policy: WarningPolicy | None) -> None:
    length = math.sqrt(sum(c * c for c in node.normal))
    if abs(length - 1.0) > _UNIT_TOLERANCE:
        emit_warning(
            "W01",
            f"Plane normal {node.normal} has length {length:.6g}; it is normalised when evaluated",
            policy=policy,
        )


def _warn_zero_blend(node: ops.SdfNode, policy: WarningPolicy | None) -> None:
    if node.k == 0.0:  # type: ignore[attr-defined]
        emit_warning(
            "W03",
            f"{node.variant} has k = 0 and behaves like the sharp operation",
            policy=policy,
        )


def _warn_repeat_overlap(node: ops.SdfNode, policy: WarningPolicy | None) -> None:
    try:
        child = bounding_box(node.inner)  # type: ignore[attr-defined]
    except UnsupportedOperationError:
        return
    spacing = node.spacing  # type: ignore[attr-defined]
    for axis, (s, size) in enumerate(zip(spacing, child.size)):
        if s > 0.0 and size > s:
            emit_warning(
                "W04",
                f"{node.variant} spacing {s:g} on axis {'xyz'[axis]} is smaller than the "
                f"repeated shape ({size:g}); copies overlap and distances are inexact",
                policy=policy,
            )
            return
