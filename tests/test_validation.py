"""Tests for tree diagnostics."""

from __future__ import annotations

import warnings

import pytest

from sdfkit import ops
from sdfkit.errors import ValidationError
from sdfkit.validation import validate_tree
from sdfkit.warning_policy import SdfkitWarning, WarningPolicy


def _codes(node, policy=None) -> list[str]:
    with warnings.catch_warnings(record=True) as w:
        warnings.simplefilter("always")
        validate_tree(node, warning_policy=policy)
    return [r.message.code for r in w if issubclass(r.category, SdfkitWarning)]


class TestCleanTrees:
    def test_simple_scene_has_no_warnings(self):
        tree = ops.smooth_union(ops.sphere(0.5), ops.box(0.3, 0.3, 0.3).translate(0.6, 0, 0), 0.1)
        assert _codes(tree) == []

    def test_spaced_repetition(self):
        assert _codes(ops.repeat_limited(ops.sphere(0.5), (2.0, 0.0, 0.0), (3, 0, 0))) == []


class TestPlaneNormal:
    def test_non_unit_normal(self):
        codes = _codes(ops.intersect(ops.sphere(1.0), ops.plane((0.0, 2.0, 0.0), 0.0)))
        assert codes == ["W01"]

    def test_unit_normal(self):
        assert "W01" not in _codes(ops.plane((0.0, 1.0, 0.0), 0.0))


class TestUnbounded:
    def test_plane_union(self):
        assert _codes(ops.union(ops.sphere(1.0), ops.plane())) == ["W02"]

    def test_infinite_repeat(self):
        assert _codes(ops.repeat(ops.sphere(0.2), 1.0, 0.0, 0.0)) == ["W02"]

    def test_reported_once(self):
        tree = ops.union(ops.plane(), ops.plane((1.0, 0.0, 0.0), 0.0))
        assert _codes(tree).count("W02") == 1


class TestZeroBlend:
    @pytest.mark.parametrize("builder", [ops.smooth_union, ops.smooth_subtract, ops.smooth_intersect])
    def test_zero_k(self, builder):
        assert _codes(builder(ops.sphere(1.0), ops.sphere(0.5), 0.0)) == ["W03"]

    def test_shared_node_reported_once(self):
        blend = ops.smooth_union(ops.sphere(1.0), ops.sphere(0.5), 0.0)
        assert _codes(ops.union(blend, blend.translate(3, 0, 0))) == ["W03"]


class TestRepeatOverlap:
    def test_limited_overlap(self):
        assert _codes(ops.repeat_limited(ops.sphere(1.0), (1.0, 0.0, 0.0), (2, 0, 0))) == ["W04"]

    def test_infinite_overlap(self):
        assert _codes(ops.repeat(ops.box(1, 1, 1), 1.5, 0.0, 0.0)) == ["W02", "W04"]

    def test_one_warning_per_node(self):
        tree = ops.repeat_limited(ops.sphere(1.0), (1.0, 1.0, 1.0), (1, 1, 1))
        assert _codes(tree) == ["W04"]


class TestPolicy:
    def test_suppress(self):
        policy = WarningPolicy(suppress=frozenset({"W02"}))
        assert _codes(ops.union(ops.sphere(1.0), ops.plane()), policy) == []

    def test_warn_as_error(self):
        policy = WarningPolicy(warn_as_error=frozenset({"W03"}))
        tree = ops.smooth_union(ops.sphere(1.0), ops.sphere(0.5), 0.0)
        with pytest.raises(ValidationError, match=r"\[W03\] SmoothUnion has k = 0"):
            validate_tree(tree, warning_policy=policy)

    def test_other_codes_still_warn(self):
        policy = WarningPolicy(warn_as_error=frozenset({"W03"}))
        assert _codes(ops.plane((0.0, 3.0, 0.0), 0.0), policy) == ["W02", "W01"]
