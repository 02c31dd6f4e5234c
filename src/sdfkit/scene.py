"""High-level entry points: script text in, shader text and distances out."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

import numpy as np

from sdfkit.bounds import Aabb, bounding_box
from sdfkit.environment import Environment, environment_uniforms
from sdfkit.errors import ExportError, ScriptError
from sdfkit.evaluator import Evaluator
from sdfkit.library import FormulaLibrary, load_library
from sdfkit.ops import SdfNode, describe
from sdfkit.script import ScriptEngine
from sdfkit.shader import ShaderGenerator, build_shader
from sdfkit.validation import validate_tree
from sdfkit.warning_policy import WarningPolicy

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Scene:
    """An evaluated script: its operation tree and environment."""

    tree: SdfNode
    environment: Environment

    def shader(self, *, library: FormulaLibrary | None = None, fragment_only: bool = False) -> str:
        """WGSL for this scene.

        With ``fragment_only`` the result is just the formula library followed
        by ``scene_sdf``, for splicing into another pipeline.
        """
        lib = library if library is not None else load_library()
        if fragment_only:
            return f"{lib.wgsl_source.rstrip()}\n\n{ShaderGenerator(lib).generate(self.tree)}"
        return build_shader(self.tree, library=lib)

    def uniforms(self) -> np.ndarray:
        return environment_uniforms(self.environment)

    def distance(self, points: object, *, library: FormulaLibrary | None = None):
        return Evaluator(library).evaluate(self.tree, points)

    def bounds(self) -> Aabb:
        return bounding_box(self.tree)

    def sample(
        self,
        resolution: int = 64,
        padding: float = 0.1,
        *,
        library: FormulaLibrary | None = None,
    ) -> tuple[np.ndarray, Aabb]:
        return Evaluator(library).sample_grid(self.tree, resolution, padding)

    def describe(self) -> str:
        return describe(self.tree)

    def validate(self, *, warning_policy: WarningPolicy | None = None) -> None:
        validate_tree(self.tree, warning_policy=warning_policy)


def scene_from_script(code: str, *, engine: ScriptEngine | None = None) -> Scene:
    result = (engine or ScriptEngine()).eval(code)
    return Scene(tree=result.tree, environment=result.environment)


def read_script(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except OSError as e:
        raise ScriptError(f"Cannot read script {path}: {e}") from e
    except UnicodeDecodeError as e:
        raise ScriptError(f"Script {path} is not valid UTF-8: {e}") from e


def load_scene(path: Path, *, engine: ScriptEngine | None = None) -> Scene:
    """Read and evaluate a script file."""
    scene = scene_from_script(read_script(path), engine=engine)
    logger.info("loaded scene from %s (%s)", path, scene.tree.variant)
    return scene


def save_grid(grid: np.ndarray, path: Path) -> None:
    """Write a sampled grid as a ``.npy`` array."""
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        np.save(path, np.asarray(grid, dtype=np.float32))
    except OSError as e:
        raise ExportError(f"Cannot write grid to {path}: {e}") from e
