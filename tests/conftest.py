"""Shared fixtures for sdfkit tests."""

from __future__ import annotations

import pytest

from sdfkit.library import load_library
from sdfkit.evaluator import Evaluator
from sdfkit.script import ScriptEngine

MINIMAL_FORMULA_YAML = """\
version: "1.0"
formulas:
  - name: sd_sphere
    category: primitive
    description: Sphere of radius r centred at the origin.
    params:
      - {name: p, type: vec3}
      - {name: r, type: f32}
    expression: length(p) - r
    test_vectors:
      - {name: origin, input: {p: [0.0, 0.0, 0.0], r: 1.0}, expected: -1.0}
      - {name: surface, input: {p: [0.0, 2.0, 0.0], r: 2.0}, expected: 0.0}
"""


@pytest.fixture(scope="session")
def library():
    return load_library()


@pytest.fixture(scope="session")
def evaluator(library):
    return Evaluator(library)


@pytest.fixture
def engine():
    return ScriptEngine()


@pytest.fixture
def minimal_formula_yaml():
    return MINIMAL_FORMULA_YAML


@pytest.fixture
def formula_dir(tmp_path, minimal_formula_yaml):
    directory = tmp_path / "formulas"
    directory.mkdir()
    (directory / "primitives.yaml").write_text(minimal_formula_yaml, encoding="utf-8")
    return directory


@pytest.fixture
def write_script(tmp_path):
    """Write script text to a file in ``tmp_path`` and return its path."""

    def write(text: str, name: str = "scene.sdf.py"):
        path = tmp_path / name
        path.write_text(text, encoding="utf-8")
        return path

    return write
