"""Tests for native evaluation of operation trees."""

from __future__ import annotations

import math

import numpy as np
import pytest

from sdfkit import ops
from sdfkit.errors import UnsupportedOperationError
from sdfkit.evaluator import Evaluator, evaluate, normals, sample_grid


@pytest.fixture(scope="module")
def points():
    rng = np.random.default_rng(1234)
    return rng.uniform(-2.0, 2.0, size=(200, 3))


SHAPES = {
    "sphere": ops.sphere(0.7),
    "box": ops.box(0.5, 0.3, 0.8).translate(0.2, 0.0, -0.1),
    "torus": ops.torus(1.0, 0.25).rotate_x(0.4),
    "capsule": ops.capsule(0.3, 0.6).translate(-0.5, 0.2, 0.0),
}


class TestSphere:
    @pytest.mark.parametrize("r", [0.0, 0.5, 1.0, 2.5])
    def test_origin_is_minus_radius(self, evaluator, r):
        assert evaluator.evaluate(ops.sphere(r), [0.0, 0.0, 0.0]) == pytest.approx(-r)

    def test_distance_is_norm_minus_radius(self, evaluator, points):
        np.testing.assert_allclose(
            evaluator.evaluate(ops.sphere(0.5), points),
            np.linalg.norm(points, axis=1) - 0.5,
            atol=1e-12,
        )

    def test_single_point_returns_float(self, evaluator):
        result = evaluator.evaluate(ops.sphere(0.5), (1.0, 0.0, 0.0))
        assert isinstance(result, float)
        assert result == pytest.approx(0.5)

    def test_bad_point_shape(self, evaluator):
        with pytest.raises(ValueError, match="shape"):
            evaluator.evaluate(ops.sphere(1.0), [[1.0, 2.0]])


class TestBooleanLaws:
    @pytest.mark.parametrize("a_name, b_name", [("sphere", "box"), ("torus", "capsule")])
    def test_union_is_min(self, evaluator, points, a_name, b_name):
        a, b = SHAPES[a_name], SHAPES[b_name]
        da, db = evaluator.evaluate(a, points), evaluator.evaluate(b, points)
        np.testing.assert_allclose(
            evaluator.evaluate(ops.union(a, b), points), np.minimum(da, db), atol=1e-12
        )

    @pytest.mark.parametrize("a_name, b_name", [("sphere", "box"), ("torus", "capsule")])
    def test_subtract_is_max_of_negation(self, evaluator, points, a_name, b_name):
        a, b = SHAPES[a_name], SHAPES[b_name]
        da, db = evaluator.evaluate(a, points), evaluator.evaluate(b, points)
        np.testing.assert_allclose(
            evaluator.evaluate(ops.subtract(a, b), points), np.maximum(da, -db), atol=1e-12
        )

    @pytest.mark.parametrize("a_name, b_name", [("sphere", "box"), ("torus", "capsule")])
    def test_intersect_is_max(self, evaluator, points, a_name, b_name):
        a, b = SHAPES[a_name], SHAPES[b_name]
        da, db = evaluator.evaluate(a, points), evaluator.evaluate(b, points)
        np.testing.assert_allclose(
            evaluator.evaluate(ops.intersect(a, b), points), np.maximum(da, db), atol=1e-12
        )


class TestSmoothUnion:
    def test_never_above_hard_union(self, evaluator, points):
        a, b = SHAPES["sphere"], SHAPES["box"]
        hard = evaluator.evaluate(ops.union(a, b), points)
        for k in (0.05, 0.2, 0.8):
            smooth = evaluator.evaluate(ops.smooth_union(a, b, k), points)
            assert np.all(smooth <= hard + 1e-12)

    def test_non_increasing_in_k(self, evaluator, points):
        a, b = SHAPES["torus"], SHAPES["capsule"]
        previous = evaluator.evaluate(ops.smooth_union(a, b, 0.0), points)
        for k in (0.01, 0.1, 0.3, 1.0):
            current = evaluator.evaluate(ops.smooth_union(a, b, k), points)
            assert np.all(current <= previous + 1e-12)
            previous = current

    def test_converges_to_union(self, evaluator, points):
        a, b = SHAPES["sphere"], SHAPES["capsule"]
        hard = evaluator.evaluate(ops.union(a, b), points)
        smooth = evaluator.evaluate(ops.smooth_union(a, b, 1e-6), points)
        np.testing.assert_allclose(smooth, hard, atol=1e-6)

    def test_zero_k_is_exact_union(self, evaluator, points):
        a, b = SHAPES["sphere"], SHAPES["box"]
        np.testing.assert_allclose(
            evaluator.evaluate(ops.smooth_union(a, b, 0.0), points),
            evaluator.evaluate(ops.union(a, b), points),
            atol=1e-12,
        )

    def test_blends_at_midpoint(self, evaluator):
        s = ops.sphere(0.5)
        tree = ops.smooth_union(s, s.translate_x(0.6), 0.1)
        assert evaluator.evaluate(tree, [0.3, 0.0, 0.0]) == pytest.approx(-0.225)


class TestPolarRepeat:
    @staticmethod
    def _fold(p: np.ndarray, n: int) -> np.ndarray:
        sector = 2.0 * math.pi / n
        angle = np.arctan2(p[:, 2], p[:, 0])
        a = np.mod(angle + 0.5 * sector, sector) - 0.5 * sector
        r = np.hypot(p[:, 0], p[:, 2])
        return np.column_stack([r * np.cos(a), p[:, 1], r * np.sin(a)])

    @pytest.mark.parametrize("n", [1, 2, 3, 5, 8])
    def test_equals_inner_at_folded_point(self, evaluator, points, n):
        inner = ops.box(0.2, 0.3, 0.1).translate(1.0, 0.0, 0.15)
        folded = self._fold(points, n)
        np.testing.assert_allclose(
            evaluator.evaluate(ops.repeat_polar(inner, n), points),
            evaluator.evaluate(inner, folded),
            atol=1e-9,
        )

    @pytest.mark.parametrize("n", [3, 6])
    def test_unchanged_by_sector_rotation(self, evaluator, points, n):
        tree = ops.repeat_polar(ops.sphere(0.2).translate(1.0, 0.0, 0.0), n)
        rotated = ops.rotate_y(tree, 2.0 * math.pi / n)
        np.testing.assert_allclose(
            evaluator.evaluate(rotated, points), evaluator.evaluate(tree, points), atol=1e-9
        )

    def test_copy_on_every_sector(self, evaluator):
        tree = ops.repeat_polar(ops.sphere(0.2).translate(1.0, 0.0, 0.0), 4)
        for p in ([1.0, 0.0, 0.0], [0.0, 0.0, 1.0], [-1.0, 0.0, 0.0], [0.0, 0.0, -1.0]):
            assert evaluator.evaluate(tree, p) == pytest.approx(-0.2)


class TestVariants:
    @pytest.mark.parametrize(
        "node, point, expected",
        [
            (ops.box(1, 1, 1), [2.0, 0.0, 0.0], 1.0),
            (ops.box(1, 1, 1), [0.0, 0.0, 0.0], -1.0),
            (ops.cylinder(0.5, 1.0), [0.0, 0.0, 0.0], -0.5),
            (ops.cylinder(0.5, 1.0), [0.0, 2.0, 0.0], 1.0),
            (ops.torus(1.0, 0.25), [1.0, 0.0, 0.0], -0.25),
            (ops.capsule(0.5, 1.0), [0.0, 2.0, 0.0], 0.5),
            (ops.plane((0.0, 2.0, 0.0), 0.5), [0.0, 1.0, 0.0], 1.5),
            (ops.translate(ops.sphere(1.0), 1.0, 0.0, 0.0), [1.0, 0.0, 0.0], -1.0),
            (ops.scale(ops.sphere(1.0), 2.0), [3.0, 0.0, 0.0], 1.0),
            (ops.shell(ops.sphere(1.0), 0.1), [0.0, 0.0, 0.0], 0.9),
            (ops.round_shape(ops.box(1, 1, 1), 0.25), [2.0, 0.0, 0.0], 0.75),
            (ops.symmetry_x(ops.sphere(0.5).translate(1.0, 0.0, 0.0)), [-1.0, 0.0, 0.0], -0.5),
            (ops.repeat(ops.sphere(0.2), 1.0, 0.0, 0.0), [3.0, 0.0, 0.0], -0.2),
            (ops.repeat(ops.sphere(0.2), 1.0, 0.0, 0.0), [3.0, 1.0, 0.0], 0.8),
            (
                ops.repeat_limited(ops.sphere(0.2), (1.0, 0.0, 0.0), (1, 0, 0)),
                [5.0, 0.0, 0.0],
                3.8,
            ),
            (ops.elongate(ops.sphere(0.5), 1.0, 0.0, 0.0), [0.8, 0.0, 0.0], -0.5),
        ],
    )
    def test_spot_values(self, evaluator, node, point, expected):
        assert evaluator.evaluate(node, point) == pytest.approx(expected, abs=1e-9)

    def test_rotation_direction(self, evaluator):
        # A bar along +X rotated a quarter turn about Z lies along +Y.
        bar = ops.rotate_z(ops.box(1.0, 0.1, 0.1), math.pi / 2)
        assert evaluator.evaluate(bar, [0.0, 0.9, 0.0]) == pytest.approx(-0.1, abs=1e-9)
        assert evaluator.evaluate(bar, [0.9, 0.0, 0.0]) == pytest.approx(0.8, abs=1e-9)

    def test_onion_layers_inside(self, evaluator):
        tree = ops.onion(ops.sphere(1.0), 0.1)
        # Outside the shape it behaves like a shell.
        assert evaluator.evaluate(tree, [1.5, 0.0, 0.0]) == pytest.approx(0.4)
        # Inside, concentric layers of thickness 2t repeat.
        assert evaluator.evaluate(tree, [0.75, 0.0, 0.0]) == pytest.approx(-0.05)
        assert evaluator.evaluate(tree, [0.7, 0.0, 0.0]) == pytest.approx(0.0, abs=1e-9)

    def test_mirror_reflects_negative_half(self, evaluator):
        tree = ops.mirror(ops.sphere(0.5).translate(1.0, 0.0, 0.0), (1.0, 0.0, 0.0))
        assert evaluator.evaluate(tree, [-1.0, 0.0, 0.0]) == pytest.approx(-0.5)
        assert evaluator.evaluate(tree, [1.0, 0.0, 0.0]) == pytest.approx(-0.5)

    def test_every_variant_has_a_handler(self, evaluator):
        s = ops.sphere(0.5)
        trees = [
            ops.rounded_box(1, 1, 1, 0.1), ops.cone(1.0, 2.0), ops.ellipsoid(1.0, 0.5, 0.25),
            ops.octahedron(1.0), ops.hex_prism(0.5, 1.0), ops.tri_prism(1.0, 0.5),
            ops.smooth_subtract(s, s, 0.1), ops.smooth_intersect(s, s, 0.1),
            ops.twist(s, 1.0), ops.bend(s, 1.0), ops.rotate_x(s, 1.0), ops.rotate_y(s, 1.0),
            ops.symmetry_y(s), ops.symmetry_z(s),
        ]
        for tree in trees:
            assert np.isfinite(evaluator.evaluate(tree, [0.1, 0.2, 0.3]))

    def test_ellipsoid_centre_is_finite(self, evaluator):
        assert evaluator.evaluate(ops.ellipsoid(1.0, 0.5, 0.25), [0.0, 0.0, 0.0]) == pytest.approx(
            -0.25
        )

    def test_unknown_variant(self, evaluator):
        class Teapot(ops.Primitive):
            pass

        with pytest.raises(UnsupportedOperationError, match="Teapot") as info:
            evaluator.evaluate(Teapot(), [0.0, 0.0, 0.0])
        assert info.value.variant == "Teapot"


class TestSharedSubtrees:
    def test_shared_subtree_evaluated_once(self, library):
        calls = []
        evaluator = Evaluator(library)
        real_call = library.call

        class CountingLibrary:
            def call(self, name, *args):
                calls.append(name)
                return real_call(name, *args)

        evaluator.library = CountingLibrary()
        s = ops.sphere(1.0)
        evaluator.evaluate(ops.union(s, ops.smooth_union(s, ops.box(1, 1, 1), 0.1)), [[0.0, 0.0, 0.0]])
        assert calls.count("sd_sphere") == 1


class TestDerivedQueries:
    def test_normals_on_sphere(self):
        result = normals(ops.sphere(1.0), [[2.0, 0.0, 0.0], [0.0, 0.0, -3.0]])
        np.testing.assert_allclose(result, [[1.0, 0.0, 0.0], [0.0, 0.0, -1.0]], atol=1e-6)

    def test_module_level_evaluate(self):
        assert evaluate(ops.sphere(0.5), [0.0, 0.0, 0.0]) == pytest.approx(-0.5)

    def test_sample_grid_layout(self):
        node = ops.sphere(0.5).translate(0.25, 0.0, 0.0)
        grid, box = sample_grid(node, resolution=8, padding=0.1)
        assert grid.shape == (8, 8, 8)
        assert grid[0, 0, 0] == pytest.approx(evaluate(node, box.min))
        corner = (box.max[0], box.min[1], box.min[2])
        assert grid[0, 0, -1] == pytest.approx(evaluate(node, corner))
        assert grid.min() < 0.0 < grid.max()

    def test_sample_grid_rejects_bad_resolution(self):
        with pytest.raises(ValueError, match="resolution"):
            sample_grid(ops.sphere(1.0), resolution=1)


def _union_chain(depth):
    tree = ops.sphere(0.1)
    for i in range(depth):
        tree = tree.union(ops.sphere(0.1).translate(i * 0.01, 0.0, 0.0))
    return tree


class TestDeepTrees:
    def test_deep_union_chain(self, evaluator):
        tree = _union_chain(1500)
        result = evaluator.evaluate(tree, [[0.0, 0.0, 0.0], [20.0, 0.0, 0.0]])
        np.testing.assert_allclose(result, [-0.1, 20.0 - 14.99 - 0.1], atol=1e-9)

    def test_deep_transform_stack(self, evaluator):
        tree = ops.sphere(1.0)
        for _ in range(1500):
            tree = tree.translate(0.001, 0.0, 0.0)
        assert evaluator.evaluate(tree, [1.5, 0.0, 0.0]) == pytest.approx(-1.0)

    def test_shared_dag(self, evaluator):
        tree = ops.sphere(1.0)
        for _ in range(24):
            tree = ops.union(tree, tree)
        assert evaluator.evaluate(tree, [0.0, 0.0, 2.0]) == pytest.approx(1.0)
