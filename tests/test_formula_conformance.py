"""Every bundled formula test vector, checked against the native functions."""

from __future__ import annotations

import numpy as np
import pytest

from sdfkit.formula_parser import load_formula_specs


def _vectors() -> list[tuple[str, object, object]]:
    return [
        (spec.name, spec, vector)
        for spec in load_formula_specs()
        for vector in spec.test_vectors
    ]


@pytest.mark.parametrize(
    "name, spec, vector",
    _vectors(),
    ids=[f"{name}[{vector.name}]" for name, _, vector in _vectors()],
)
def test_formula_vector(library, name, spec, vector):
    args = [vector.input[p.name] for p in spec.params]
    result = library.call(name, *args)
    np.testing.assert_allclose(result, vector.expected, rtol=0, atol=vector.tolerance)


def test_every_formula_has_a_wgsl_body(library):
    for spec in load_formula_specs():
        assert f"fn {spec.name}(" in library.wgsl_source
