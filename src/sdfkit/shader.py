"""WGSL generation for operation trees and base-template injection."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, NamedTuple, Sequence

from sdfkit import ops
from sdfkit.errors import TemplateError, UnsupportedOperationError
from sdfkit.expr import dim_of, format_float, WGSL_TYPES
from sdfkit.library import FormulaLibrary, load_library

logger = logging.getLogger(__name__)

FORMULAS_MARKER = "// SDFKIT_FORMULAS"
SCENE_SDF_MARKER = "// SDFKIT_SCENE_SDF"
SCENE_FN = "fn scene_sdf("

DEFAULT_TEMPLATE_PATH = Path(__file__).parent / "shaders" / "raymarch.wgsl"


class ShaderGenerator:
    """Emits ``fn scene_sdf(p: vec3<f32>) -> f32`` for a tree.

    Each ``generate`` call starts from a fresh counter, so structurally equal
    trees produce byte-identical text. Structurally equal subtrees evaluated
    at the same position variable are emitted once.
    """

    def __init__(self, library: FormulaLibrary | None = None) -> None:
        self.library = library if library is not None else load_library()
        self._lines: list[str] = []
        self._counter = 0
        self._memo: dict[tuple[ops.SdfNode, str], str] = {}

    def generate(self, node: ops.SdfNode) -> str:
        self._lines = []
        self._counter = 0
        self._memo = {}
        result = self._emit(node, "p")
        body = "\n".join(f"    {line}" for line in self._lines)
        header = "fn scene_sdf(p: vec3<f32>) -> f32 {"
        if body:
            return f"{header}\n{body}\n    return {result};\n}}\n"
        return f"{header}\n    return {result};\n}}\n"

    # -- emission ----------------------------------------------------------

    def _emit(self, root: ops.SdfNode, pos: str) -> str:
        """Emit ``root`` with an explicit stack and return its distance variable.

        Point transforms bind child positions on the way down; distance
        variables are bound on the way back up.
        """
        results: list[str] = []
        stack: list[tuple[ops.SdfNode, str, bool]] = [(root, pos, False)]
        while stack:
            node, at, expanded = stack.pop()
            rule = _RULES.get(type(node))
            if rule is None:
                raise UnsupportedOperationError(node.variant, "shader generator")
            key = (node, at)
            if expanded:
                start = len(results) - len(node.children)
                result = rule.leave(self, node, at, results[start:])
                del results[start:]
                self._memo[key] = result
                results.append(result)
                continue
            cached = self._memo.get(key)
            if cached is not None:
                results.append(cached)
                continue
            stack.append((node, at, True))
            child_positions = rule.enter(self, node, at)
            stack.extend(
                (child, child_at, False)
                for child, child_at in reversed(list(zip(node.children, child_positions)))
            )
        return results[0]

    def _let(self, prefix: str, expr: str) -> str:
        name = f"{prefix}{self._counter}"
        self._counter += 1
        self._lines.append(f"let {name} = {expr};")
        return name

    def _call(self, formula: str, exprs: Sequence[str], values: Sequence[object] = ()) -> str:
        """Call a generated formula; ``values`` are formatted per declared type."""
        params = self.library.params(formula)
        if len(exprs) + len(values) != len(params):
            raise ValueError(
                f"{formula} takes {len(params)} argument(s), got {len(exprs) + len(values)}"
            )
        literals = [
            _literal(value, type_name)
            for value, (_, type_name) in zip(values, params[len(exprs):])
        ]
        return f"{formula}({', '.join(list(exprs) + literals)})"


def _literal(value: object, type_name: str) -> str:
    n = dim_of(type_name)
    if n == 1:
        return format_float(value)  # type: ignore[arg-type]
    components = list(value)  # type: ignore[call-overload]
    if len(components) != n:
        raise ValueError(f"expected {n} components for {type_name}, got {len(components)}")
    return f"{WGSL_TYPES[type_name]}({', '.join(format_float(c) for c in components)})"


# ---------------------------------------------------------------------------
# Variant rules: enter binds child positions, leave binds the distance.
# ---------------------------------------------------------------------------


class _Rule(NamedTuple):
    enter: Callable[[ShaderGenerator, ops.SdfNode, str], Sequence[str]]
    leave: Callable[[ShaderGenerator, ops.SdfNode, str, list[str]], str]


def _no_children(gen, n, pos):
    return ()


def _same_position(gen, n, pos):
    return (pos,) * len(n.children)


def _primitive(formula: str, *attrs: str) -> _Rule:
    def leave(gen, n, pos, inputs):
        return gen._let("d", gen._call(formula, [pos], [getattr(n, a) for a in attrs]))

    return _Rule(_no_children, leave)


def _binary(formula: str) -> _Rule:
    def leave(gen, n, pos, inputs):
        return gen._let("d", gen._call(formula, inputs))

    return _Rule(_same_position, leave)


def _smooth(formula: str) -> _Rule:
    def leave(gen, n, pos, inputs):
        return gen._let("d", gen._call(formula, inputs, [n.k]))

    return _Rule(_same_position, leave)


def _distance_modifier(formula: str, attr: str) -> _Rule:
    def leave(gen, n, pos, inputs):
        return gen._let("d", gen._call(formula, inputs, [getattr(n, attr)]))

    return _Rule(_same_position, leave)


def _point_transform(formula: str, *attrs: str) -> _Rule:
    def enter(gen, n, pos):
        return (gen._let("p", gen._call(formula, [pos], [getattr(n, a) for a in attrs])),)

    return _Rule(enter, lambda gen, n, pos, inputs: inputs[0])


def _elongate_leave(gen: ShaderGenerator, n: ops.Elongate, pos: str, inputs: list[str]) -> str:
    correction = gen._call("op_elongate_correction", [pos], [n.extents])
    return gen._let("d", f"{inputs[0]} + {correction}")


def _scale_leave(gen: ShaderGenerator, n: ops.Scale, pos: str, inputs: list[str]) -> str:
    return gen._let("d", gen._call("op_scale_distance", inputs, [n.factor]))


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
    ops.Elongate: _Rule(_point_transform("op_elongate", "extents").enter, _elongate_leave),
    ops.Translate: _point_transform("op_translate", "offset"),
    ops.RotateX: _point_transform("op_rotate_x", "angle"),
    ops.RotateY: _point_transform("op_rotate_y", "angle"),
    ops.RotateZ: _point_transform("op_rotate_z", "angle"),
    ops.Scale: _Rule(_point_transform("op_scale", "factor").enter, _scale_leave),
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
# Template injection
# ---------------------------------------------------------------------------


def load_template(path: Path | None = None) -> str:
    template_path = path if path is not None else DEFAULT_TEMPLATE_PATH
    try:
        return template_path.read_text(encoding="utf-8")
    except OSError as e:
        raise TemplateError(f"Cannot read shader template: {e}") from e


def inject_formulas(base: str, formulas_wgsl: str) -> str:
    """Replace the formula marker line with the generated WGSL library."""
    if FORMULAS_MARKER not in base:
        raise TemplateError(f"Shader template has no {FORMULAS_MARKER!r} marker")
    return base.replace(FORMULAS_MARKER, formulas_wgsl.rstrip("\n"), 1)


def inject_scene_sdf(base: str, scene_code: str) -> str:
    """Replace the default ``scene_sdf`` after the scene marker with ``scene_code``."""
    marker = base.find(SCENE_SDF_MARKER)
    if marker < 0:
        raise TemplateError(f"Shader template has no {SCENE_SDF_MARKER!r} marker")
    start = base.find(SCENE_FN, marker)
    if start < 0:
        raise TemplateError("Shader template has no default scene_sdf after the marker")
    end = _matching_brace_end(base, base.find("{", start))
    return base[:start] + scene_code.rstrip("\n") + base[end:]


def _matching_brace_end(text: str, open_index: int) -> int:
    """Index just past the brace closing the one at ``open_index``."""
    if open_index < 0:
        raise TemplateError("Default scene_sdf has no body")
    depth = 0
    for i in range(open_index, len(text)):
        if text[i] == "{":
            depth += 1
        elif text[i] == "}":
            depth -= 1
            if depth == 0:
                return i + 1
    raise TemplateError("Unbalanced braces in default scene_sdf")


def build_shader(
    node: ops.SdfNode,
    *,
    library: FormulaLibrary | None = None,
    template: str | None = None,
) -> str:
    """Full shader text: base template with formulas and the scene spliced in."""
    lib = library if library is not None else load_library()
    base = template if template is not None else load_template()
    scene = ShaderGenerator(lib).generate(node)
    shader = inject_scene_sdf(inject_formulas(base, lib.wgsl_source), scene)
    logger.debug("built shader (%d bytes)", len(shader))
    return shader
