"""Functions and constants visible to scene scripts.

Script-level constructors take full sizes (edge lengths, heights), as a
modelling user thinks of them; the operation tree stores half extents.
"""

from __future__ import annotations

import math
from typing import Callable

from sdfkit import ops
from sdfkit.environment import EnvironmentContext, parse_hex_color

# Node methods a script may call, e.g. ``sphere(1).translate(0, 1, 0)``.
NODE_METHODS: frozenset[str] = frozenset(
    {
        "union", "subtract", "intersect",
        "smooth_union", "smooth_subtract", "smooth_intersect",
        "shell", "hollow", "onion", "round", "elongate",
        "translate", "translate_x", "translate_y", "translate_z",
        "rotate_x", "rotate_y", "rotate_z", "scale",
        "mirror", "mirror_x", "mirror_y", "mirror_z",
        "symmetry_x", "symmetry_y", "symmetry_z",
        "twist", "bend", "repeat", "repeat_limited", "repeat_polar",
    }
)

LIST_METHODS: frozenset[str] = frozenset({"append"})

CONSTANTS: dict[str, float] = {"PI": math.pi, "TAU": math.tau}


# ---------------------------------------------------------------------------
# Primitives (full sizes)
# ---------------------------------------------------------------------------


def cube(size: float) -> ops.SdfNode:
    half = size / 2.0
    return ops.box(half, half, half)


def box3(x: float, y: float, z: float) -> ops.SdfNode:
    return ops.box(x / 2.0, y / 2.0, z / 2.0)


def rounded_box(x: float, y: float, z: float, radius: float) -> ops.SdfNode:
    return ops.rounded_box(x / 2.0, y / 2.0, z / 2.0, radius)


def cylinder(radius: float, height: float) -> ops.SdfNode:
    return ops.cylinder(radius, height / 2.0)


def capsule(radius: float, height: float) -> ops.SdfNode:
    return ops.capsule(radius, height / 2.0)


def plane(nx: float, ny: float, nz: float, offset: float) -> ops.SdfNode:
    return ops.plane((nx, ny, nz), offset)


def ground_plane() -> ops.SdfNode:
    return ops.plane((0.0, 1.0, 0.0), 0.0)


def hex_prism(radius: float, height: float) -> ops.SdfNode:
    return ops.hex_prism(radius, height / 2.0)


# ---------------------------------------------------------------------------
# Node operations as free functions
# ---------------------------------------------------------------------------


def _mirror(node: ops.SdfNode, x: float, y: float, z: float) -> ops.SdfNode:
    return ops.mirror(node, (x, y, z))


def _repeat_limited(
    node: ops.SdfNode, sx: float, sy: float, sz: float, cx: int, cy: int, cz: int
) -> ops.SdfNode:
    return ops.repeat_limited(node, (sx, sy, sz), (cx, cy, cz))


def _round(value, *args):
    """``round(node, r)`` rounds a shape; ``round(x)`` rounds a number."""
    if isinstance(value, ops.SdfNode):
        return ops.round_shape(value, *args)
    return round(value, *args)


def _method(name: str) -> Callable[..., ops.SdfNode]:
    def call(node: ops.SdfNode, *args):
        if not isinstance(node, ops.SdfNode):
            raise TypeError(f"{name}() expects an SDF as its first argument")
        return getattr(node, name)(*args)

    call.__name__ = name
    return call


# ---------------------------------------------------------------------------
# Math helpers
# ---------------------------------------------------------------------------


def deg(degrees: float) -> float:
    """Degrees to radians."""
    return math.radians(degrees)


def rad(radians: float) -> float:
    """Radians to degrees."""
    return math.degrees(radians)


def rgb_hex(text: str) -> list[float]:
    return list(parse_hex_color(text))


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


def build_namespace(env: EnvironmentContext) -> dict[str, object]:
    """All names a script sees, bound to ``env`` for the environment setters."""
    namespace: dict[str, object] = dict(CONSTANTS)
    namespace.update(
        sphere=ops.sphere,
        cube=cube,
        box=ops.box,
        box3=box3,
        rounded_box=rounded_box,
        cylinder=cylinder,
        capsule=capsule,
        torus=ops.torus,
        cone=ops.cone,
        plane=plane,
        ground_plane=ground_plane,
        ellipsoid=ops.ellipsoid,
        octahedron=ops.octahedron,
        hex_prism=hex_prism,
        tri_prism=ops.tri_prism,
        union=ops.union,
        subtract=ops.subtract,
        intersect=ops.intersect,
        smooth_union=ops.smooth_union,
        smooth_subtract=ops.smooth_subtract,
        smooth_intersect=ops.smooth_intersect,
        mirror=_mirror,
        repeat_limited=_repeat_limited,
        round=_round,
        deg=deg,
        rad=rad,
        sin=math.sin,
        cos=math.cos,
        tan=math.tan,
        sqrt=math.sqrt,
        floor=math.floor,
        abs=abs,
        min=min,
        max=max,
        range=range,
        len=len,
        float=float,
        int=int,
        rgb_hex=rgb_hex,
    )
    for name in NODE_METHODS - {
        "union", "subtract", "intersect", "smooth_union", "smooth_subtract",
        "smooth_intersect", "mirror", "repeat_limited", "round",
    }:
        namespace[name] = _method(name)

    for setter in (
        "set_sun_direction", "set_sun_color", "set_sun_intensity",
        "set_ambient_color", "set_ambient_intensity",
        "set_material_color", "set_material_color_hex", "set_material_shininess",
        "set_specular_intensity", "set_sky_horizon", "set_sky_zenith",
        "set_fog_color", "set_fog_density", "set_ao_enabled", "set_ao_intensity",
        "set_shadows_enabled", "set_shadow_softness",
    ):
        namespace[setter] = getattr(env, setter)

    for preset in ("studio", "sunset", "night", "daylight", "clay"):
        namespace[f"env_{preset}"] = _preset(env, preset)
    namespace["env_preset"] = env.apply_preset
    return namespace


def _preset(env: EnvironmentContext, name: str) -> Callable[[], None]:
    def apply() -> None:
        env.apply_preset(name)

    apply.__name__ = f"env_{name}"
    return apply
