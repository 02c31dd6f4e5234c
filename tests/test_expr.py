"""Tests for the typed formula expression language."""

from __future__ import annotations

import numpy as np
import pytest

from sdfkit import mathlib as _m
from sdfkit.errors import FormulaSpecError
from sdfkit.expr import compile_expression, format_float

SCOPE = {"p": "vec3", "q": "vec2", "d": "f32", "k": "f32"}


def _run(typed, **values):
    """Evaluate the Python lowering of ``typed`` with ``values`` bound."""
    env = {"np": np, "_m": _m}
    env.update({k: np.asarray(v, dtype=np.float64) for k, v in values.items()})
    return eval(typed.py, env)  # noqa: S307


class TestFormatFloat:
    def test_integer_becomes_float_literal(self):
        assert format_float(2) == "2.0"

    def test_negative_zero_normalised(self):
        assert format_float(-0.0) == "0.0"

    def test_round_trips(self):
        assert float(format_float(0.1)) == 0.1

    def test_non_finite_rejected(self):
        with pytest.raises(ValueError, match="non-finite"):
            format_float(float("inf"))


class TestTyping:
    def test_length_of_vector_is_scalar(self):
        typed = compile_expression("length(p) - d", SCOPE)
        assert typed.type == "f32"
        assert typed.wgsl == "(length(p) - d)"

    def test_scalar_broadcasts_against_vector(self):
        typed = compile_expression("p * 2.0", SCOPE)
        assert typed.type == "vec3"
        np.testing.assert_allclose(_run(typed, p=[1.0, 2.0, 3.0]), [2.0, 4.0, 6.0])

    def test_swizzle_types(self):
        assert compile_expression("p.x", SCOPE).type == "f32"
        assert compile_expression("p.xz", SCOPE).type == "vec2"
        assert compile_expression("p.zyx", SCOPE).type == "vec3"
        assert compile_expression("p.xz", SCOPE).wgsl == "p.xz"

    def test_swizzle_out_of_range(self):
        with pytest.raises(FormulaSpecError, match="invalid swizzle"):
            compile_expression("q.z", SCOPE)

    def test_swizzle_on_scalar(self):
        with pytest.raises(FormulaSpecError, match="invalid swizzle"):
            compile_expression("d.x", SCOPE)

    def test_mixed_vector_sizes_rejected(self):
        with pytest.raises(FormulaSpecError, match="cannot combine vec3 with vec2"):
            compile_expression("p + q", SCOPE)

    def test_comparison_yields_boolean(self):
        assert compile_expression("d < 0.0", SCOPE).type == "bool"
        assert compile_expression("p > vec3(0.0)", SCOPE).type == "bvec3"

    def test_boolean_not_numeric(self):
        with pytest.raises(FormulaSpecError, match="expected a numeric value"):
            compile_expression("(d < 0.0) + 1.0", SCOPE)

    def test_vector_construction(self):
        typed = compile_expression("vec3(q, d)", SCOPE)
        assert typed.type == "vec3"
        assert typed.wgsl == "vec3<f32>(q, d)"
        np.testing.assert_allclose(_run(typed, q=[1.0, 2.0], d=3.0), [1.0, 2.0, 3.0])

    def test_vector_construction_wrong_count(self):
        with pytest.raises(FormulaSpecError, match="vec3 needs 3 components"):
            compile_expression("vec3(q, q)", SCOPE)

    def test_splat(self):
        typed = compile_expression("vec2(d)", SCOPE)
        np.testing.assert_allclose(_run(typed, d=0.5), [0.5, 0.5])

    def test_constants(self):
        typed = compile_expression("TAU / 2.0", SCOPE)
        assert float(_run(typed)) == pytest.approx(np.pi)


class TestErrors:
    def test_unknown_name(self):
        with pytest.raises(FormulaSpecError, match="unknown name 'zz'"):
            compile_expression("zz + 1.0", SCOPE)

    def test_unknown_function(self):
        with pytest.raises(FormulaSpecError, match="unknown function 'tanh'"):
            compile_expression("tanh(d)", SCOPE)

    def test_wrong_arity(self):
        with pytest.raises(FormulaSpecError, match="dot expects 2 argument"):
            compile_expression("dot(p)", SCOPE)

    def test_syntax_error(self):
        with pytest.raises(FormulaSpecError, match="cannot parse"):
            compile_expression("length(p", SCOPE)

    def test_context_prefixes_message(self):
        with pytest.raises(FormulaSpecError, match=r"^sd_x\.q: "):
            compile_expression("nope", SCOPE, context="sd_x.q")

    def test_power_operator_unsupported(self):
        with pytest.raises(FormulaSpecError, match="unsupported operator Pow"):
            compile_expression("d ** 2.0", SCOPE)


class TestBuiltins:
    def test_mod_is_floored(self):
        typed = compile_expression("mod(d, k)", SCOPE)
        assert float(_run(typed, d=-0.25, k=1.0)) == pytest.approx(0.75)
        assert "floor" in typed.wgsl

    def test_select_picks_true_branch_when_condition_holds(self):
        typed = compile_expression("select(0.0 - d, d, d > 0.0)", SCOPE)
        np.testing.assert_allclose(_run(typed, d=[-2.0, 3.0]), [2.0, 3.0])
        assert typed.wgsl == "select((0.0 - d), d, (d > 0.0))"

    def test_select_scalar_condition_on_vector(self):
        typed = compile_expression("select(p, -p, d < 0.0)", SCOPE)
        np.testing.assert_allclose(_run(typed, p=[1.0, 2.0, 3.0], d=-1.0), [-1.0, -2.0, -3.0])

    def test_mix_with_scalar_factor(self):
        typed = compile_expression("mix(p, vec3(1.0), d)", SCOPE)
        np.testing.assert_allclose(_run(typed, p=[0.0, 0.0, 0.0], d=0.25), [0.25, 0.25, 0.25])

    def test_clamp_requires_matching_types(self):
        with pytest.raises(FormulaSpecError, match="clamp arguments differ"):
            compile_expression("clamp(p, 0.0, 1.0)", SCOPE)

    def test_batched_evaluation(self):
        typed = compile_expression("length(p)", SCOPE)
        result = _run(typed, p=[[3.0, 4.0, 0.0], [0.0, 0.0, 2.0]])
        np.testing.assert_allclose(result, [5.0, 2.0])
