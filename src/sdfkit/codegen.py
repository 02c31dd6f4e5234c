"""Formula generator: specs -> native module, WGSL library, tests and docs."""

from __future__ import annotations

import functools
import importlib.util
import logging
import re
import tempfile
import types
from dataclasses import dataclass
from pathlib import Path

import numpy as np

from sdfkit.errors import ExportError, FormulaSpecError
from sdfkit.expr import WGSL_TYPES, Typed, compile_expression, format_float
from sdfkit.formula_models import FormulaSpec, FormulaTestVector
from sdfkit.formula_parser import load_formula_specs
from sdfkit.library import (
    NATIVE_MODULE_NAME,
    PACKAGED_NATIVE_PATH,
    PACKAGED_WGSL_PATH,
    FormulaLibrary,
)

logger = logging.getLogger(__name__)

GENERATED_HEADER = "AUTO-GENERATED by sdfkit from formula specifications. DO NOT EDIT."

ARTIFACT_NAMES = {
    "python": f"{NATIVE_MODULE_NAME}.py",
    "wgsl": "formulas.wgsl",
    "tests": "test_formulas_generated.py",
    "docs": "FORMULAS.md",
}


@dataclass(frozen=True)
class CompiledFormula:
    """A spec together with its lowered steps and result expression."""

    spec: FormulaSpec
    steps: tuple[tuple[str, Typed], ...]
    result: Typed


# ---------------------------------------------------------------------------
# Compilation
# ---------------------------------------------------------------------------


def compile_formula(spec: FormulaSpec) -> CompiledFormula:
    """Type-check and lower every step and the final expression of ``spec``."""
    scope = {p.name: p.type for p in spec.params}
    steps: list[tuple[str, Typed]] = []
    for step in spec.steps:
        typed = compile_expression(step.expr, scope, context=f"{spec.name}.{step.name}")
        scope[step.name] = typed.type
        steps.append((step.name, typed))

    result = compile_expression(spec.expression, scope, context=spec.name)
    if result.type != spec.returns:
        raise FormulaSpecError(
            f"{spec.name}: expression has type {result.type}, declared returns {spec.returns}"
        )
    return CompiledFormula(spec=spec, steps=tuple(steps), result=result)


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------


def render_python(formulas: list[CompiledFormula]) -> str:
    """Render the native module: one numpy-vectorised function per formula."""
    out = [
        f"# {GENERATED_HEADER}",
        '"""Native signed-distance formulas (numpy, batched over leading axes)."""',
        "",
        "import numpy as np",
        "",
        "from sdfkit import mathlib as _m",
        "",
        f"__all__ = {[f.spec.name for f in formulas]!r}",
        "",
        "PARAMS = {",
    ]
    out += [
        f"    {f.spec.name!r}: {tuple((p.name, p.type) for p in f.spec.params)!r},"
        for f in formulas
    ]
    out.append("}")
    for formula in formulas:
        spec = formula.spec
        args = ", ".join(p.name for p in spec.params)
        out += ["", "", f"def {spec.name}({args}):", f'    """{_one_line(spec.description)}"""']
        out += [f"    {name} = {typed.py}" for name, typed in formula.steps]
        out.append(f"    return {formula.result.py}")
    out.append("")
    return "\n".join(out)


def render_wgsl(formulas: list[CompiledFormula]) -> str:
    """Render the WGSL function library."""
    out = [f"// {GENERATED_HEADER}"]
    for formula in formulas:
        spec = formula.spec
        params = ", ".join(f"{p.name}: {WGSL_TYPES[p.type]}" for p in spec.params)
        out += [
            "",
            f"// {spec.name}: {_one_line(spec.description)}",
            f"fn {spec.name}({params}) -> {WGSL_TYPES[spec.returns]} {{",
        ]
        out += [f"    let {name} = {typed.wgsl};" for name, typed in formula.steps]
        out += [f"    return {formula.result.wgsl};", "}"]
    out.append("")
    return "\n".join(out)


def render_tests(formulas: list[CompiledFormula]) -> str:
    """Render a pytest module with one test per test vector.

    The module imports the native module written next to it.
    """
    out = [
        f"# {GENERATED_HEADER}",
        '"""Conformance tests for the generated native formulas."""',
        "",
        "import numpy as np",
        "",
        f"import {NATIVE_MODULE_NAME} as generated",
    ]
    for formula in formulas:
        spec = formula.spec
        for vector in spec.test_vectors:
            args = ", ".join(
                _py_literal(vector.input[p.name]) for p in spec.params
            )
            out += [
                "",
                "",
                f"def test_{spec.name}__{_identifier(vector.name)}():",
                f"    result = generated.{spec.name}({args})",
                "    np.testing.assert_allclose(",
                f"        result, {_py_literal(vector.expected)}, rtol=0, atol={vector.tolerance!r}",
                "    )",
            ]
    out.append("")
    return "\n".join(out)


def render_docs(formulas: list[CompiledFormula]) -> str:
    """Render Markdown documentation for every formula."""
    out = [f"<!-- {GENERATED_HEADER} -->", "", "# SDF formulas", ""]
    categories: dict[str, list[FormulaSpec]] = {}
    for formula in formulas:
        categories.setdefault(formula.spec.category, []).append(formula.spec)

    for category, specs in categories.items():
        out.append(f"- **{category}**: " + ", ".join(f"`{s.name}`" for s in specs))
    out.append("")

    for formula in formulas:
        spec = formula.spec
        out += [f"## `{spec.name}`", "", f"*{spec.category}*. {spec.description.strip()}", ""]
        out += ["### Parameters", "", "| Name | Type | Description |", "|---|---|---|"]
        out += [f"| `{p.name}` | `{p.type}` | {p.description} |" for p in spec.params]
        out += ["", f"**Returns:** `{spec.returns}`", "", "### Formula", "", "```"]
        out += [f"{step.name} = {step.expr.strip()}" for step in spec.steps]
        out += [f"return {spec.expression.strip()}", "```", ""]
        if spec.pitfalls:
            out += ["### Pitfalls", ""]
            for pitfall in spec.pitfalls:
                out += [
                    f"- **{pitfall.name}**: use `{pitfall.right}`, not `{pitfall.wrong}`."
                    + (f" {pitfall.explanation.strip()}" if pitfall.explanation else ""),
                ]
            out.append("")
        out += ["### Test vectors", "", "| Name | Input | Expected | Tolerance |", "|---|---|---|---|"]
        for vector in spec.test_vectors:
            inputs = ", ".join(f"{k}={_py_literal(v)}" for k, v in vector.input.items())
            out.append(
                f"| {vector.name} | {inputs} | {_py_literal(vector.expected)} | {vector.tolerance:g} |"
            )
        out.append("")
    return "\n".join(out)


def _one_line(text: str) -> str:
    return " ".join(text.split())


def _identifier(name: str) -> str:
    return re.sub(r"\W+", "_", name).strip("_") or "vector"


def _py_literal(value: object) -> str:
    if isinstance(value, list):
        return f"np.array([{', '.join(format_float(v) for v in value)}])"
    return format_float(value)


# ---------------------------------------------------------------------------
# Building and verification
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class FormulaBuild:
    """Compiled formulas and the library generated from them."""

    formulas: tuple[CompiledFormula, ...]
    library: FormulaLibrary

    @property
    def names(self) -> tuple[str, ...]:
        return tuple(f.spec.name for f in self.formulas)

    def render_tests(self) -> str:
        return render_tests(list(self.formulas))

    def render_docs(self) -> str:
        return render_docs(list(self.formulas))


def build_formulas(specs: list[FormulaSpec], *, verify: bool = True) -> FormulaBuild:
    """Compile ``specs``, import the rendered native module and verify all test vectors."""
    formulas = [compile_formula(spec) for spec in specs]
    python_source = render_python(formulas)
    library = FormulaLibrary(
        native=_import_native(python_source),
        python_source=python_source,
        wgsl_source=render_wgsl(formulas),
    )
    build = FormulaBuild(formulas=tuple(formulas), library=library)
    if verify:
        verify_build(build)
    logger.debug("built formula library with %d formulas", len(formulas))
    return build


def _import_native(python_source: str) -> types.ModuleType:
    """Import rendered native source from a scratch directory."""
    with tempfile.TemporaryDirectory(prefix="sdfkit-codegen-") as scratch:
        path = Path(scratch) / f"{NATIVE_MODULE_NAME}.py"
        path.write_text(python_source, encoding="utf-8")
        module_spec = importlib.util.spec_from_file_location(
            f"_sdfkit_build_{NATIVE_MODULE_NAME}", path
        )
        module = importlib.util.module_from_spec(module_spec)
        try:
            module_spec.loader.exec_module(module)
        except SyntaxError as e:
            raise FormulaSpecError(f"generated native source does not compile: {e}") from e
    return module


def verify_build(build: FormulaBuild) -> None:
    """Check every test vector against the native functions.

    Raises ``FormulaSpecError`` naming all failing vectors.
    """
    failures: list[str] = []
    for formula in build.formulas:
        spec = formula.spec
        for vector in spec.test_vectors:
            problem = _check_vector(build.library, spec, vector)
            if problem:
                failures.append(f"{spec.name}[{vector.name}]: {problem}")
    if failures:
        raise FormulaSpecError("Formula test vectors failed:\n  " + "\n  ".join(failures))


def _check_vector(library: FormulaLibrary, spec: FormulaSpec, vector: FormulaTestVector) -> str | None:
    args = [vector.input[p.name] for p in spec.params]
    with np.errstate(all="ignore"):
        try:
            result = np.asarray(library.call(spec.name, *args), dtype=np.float64)
        except (ArithmeticError, ValueError, TypeError, IndexError) as e:
            return f"raised {type(e).__name__}: {e}"
    expected = np.asarray(vector.expected, dtype=np.float64)
    if result.shape != expected.shape:
        return f"result shape {result.shape} != expected shape {expected.shape}"
    if not np.all(np.abs(result - expected) <= vector.tolerance):
        return f"got {result.tolist()}, expected {expected.tolist()} (tolerance {vector.tolerance:g})"
    return None


@functools.lru_cache(maxsize=None)
def _cached_build(formula_dir: str | None, verify: bool) -> FormulaBuild:
    specs = load_formula_specs(Path(formula_dir) if formula_dir is not None else None)
    return build_formulas(specs, verify=verify)


def generate(formula_dir: Path | str | None = None, *, verify: bool = True) -> FormulaBuild:
    """Load, generate and verify the formulas in ``formula_dir`` (bundled specs by default)."""
    key = str(Path(formula_dir).resolve()) if formula_dir is not None else None
    return _cached_build(key, verify)


# ---------------------------------------------------------------------------
# Output
# ---------------------------------------------------------------------------


def write_artifacts(build: FormulaBuild, out_dir: Path) -> dict[str, Path]:
    """Write the native module, WGSL library, pytest module and docs to ``out_dir``."""
    contents = {
        "python": build.library.python_source,
        "wgsl": build.library.wgsl_source,
        "tests": build.render_tests(),
        "docs": build.render_docs(),
    }
    written: dict[str, Path] = {}
    try:
        out_dir.mkdir(parents=True, exist_ok=True)
        for kind, text in contents.items():
            path = out_dir / ARTIFACT_NAMES[kind]
            path.write_text(text, encoding="utf-8")
            written[kind] = path
    except OSError as e:
        raise ExportError(f"Cannot write generated artifacts to {out_dir}: {e}") from e
    logger.info("wrote %d generated artifacts to %s", len(written), out_dir)
    return written


def install_artifacts(
    build: FormulaBuild,
    *,
    native_path: Path = PACKAGED_NATIVE_PATH,
    wgsl_path: Path = PACKAGED_WGSL_PATH,
) -> dict[str, Path]:
    """Replace the native module and WGSL library shipped with the package."""
    targets = {"python": native_path, "wgsl": wgsl_path}
    contents = {"python": build.library.python_source, "wgsl": build.library.wgsl_source}
    try:
        for kind, path in targets.items():
            path.write_text(contents[kind], encoding="utf-8")
    except OSError as e:
        raise ExportError(f"Cannot update packaged formulas: {e}") from e
    logger.info("updated packaged formulas: %s, %s", native_path, wgsl_path)
    return targets
