"""Runtime access to the generated formula library.

The native module and the WGSL library are produced by ``sdfkit codegen`` and
committed with the package. Nothing here reads the formula specifications.
"""

from __future__ import annotations

import functools
import types
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

import numpy as np

from sdfkit.errors import FormulaSpecError
from sdfkit.mathlib import as_float_array

PACKAGE_DIR = Path(__file__).parent
NATIVE_MODULE_NAME = "formulas_generated"
PACKAGED_NATIVE_PATH = PACKAGE_DIR / f"{NATIVE_MODULE_NAME}.py"
PACKAGED_WGSL_PATH = PACKAGE_DIR / "shaders" / "formulas.wgsl"

Signature = tuple[tuple[str, str], ...]


@dataclass(frozen=True)
class FormulaLibrary:
    """A generated native module together with its WGSL counterpart."""

    native: types.ModuleType
    python_source: str
    wgsl_source: str

    @property
    def names(self) -> tuple[str, ...]:
        return tuple(self.native.__all__)

    def params(self, name: str) -> Signature:
        """``(name, type)`` pairs of the formula's parameters, in call order."""
        try:
            return self.native.PARAMS[name]
        except KeyError:
            raise FormulaSpecError(f"Unknown formula: {name!r}") from None

    def function(self, name: str) -> Callable[..., np.ndarray]:
        self.params(name)
        return getattr(self.native, name)

    def call(self, name: str, *args: object) -> np.ndarray:
        """Call a native formula, coercing every argument to a float array."""
        params = self.params(name)
        if len(args) != len(params):
            raise FormulaSpecError(f"{name} expects {len(params)} argument(s), got {len(args)}")
        return getattr(self.native, name)(*(as_float_array(a) for a in args))


@functools.lru_cache(maxsize=None)
def load_library() -> FormulaLibrary:
    """The packaged formula library, loaded once per process."""
    # Imported here so the generator can run before the module exists.
    from sdfkit import formulas_generated

    try:
        python_source = PACKAGED_NATIVE_PATH.read_text(encoding="utf-8")
        wgsl_source = PACKAGED_WGSL_PATH.read_text(encoding="utf-8")
    except OSError as e:
        raise FormulaSpecError(f"Cannot read the packaged formula library: {e}") from e
    return FormulaLibrary(
        native=formulas_generated, python_source=python_source, wgsl_source=wgsl_source
    )
