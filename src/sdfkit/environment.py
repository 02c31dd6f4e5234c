"""Scene environment: lighting, material, sky, fog and shading toggles."""

from __future__ import annotations

import dataclasses
import math
from dataclasses import dataclass

import numpy as np

Color = tuple[float, float, float]


@dataclass(frozen=True)
class Environment:
    """Immutable environment snapshot attached to an evaluated scene."""

    sun_direction: tuple[float, float, float] = (0.8, 0.4, 0.6)
    sun_color: Color = (1.0, 0.95, 0.85)
    sun_intensity: float = 1.0
    ambient_color: Color = (0.15, 0.17, 0.2)
    ambient_intensity: float = 1.0
    material_color: Color = (0.75, 0.75, 0.75)
    material_shininess: float = 32.0
    specular_intensity: float = 0.5
    sky_horizon: Color = (0.7, 0.8, 0.9)
    sky_zenith: Color = (0.3, 0.5, 0.8)
    fog_color: Color = (0.6, 0.65, 0.7)
    fog_density: float = 0.01
    ao_enabled: bool = True
    ao_intensity: float = 3.0
    shadows_enabled: bool = True
    shadow_softness: float = 8.0


PRESETS: dict[str, dict[str, object]] = {
    "studio": dict(
        sun_direction=(1.0, 1.0, 0.5),
        sun_color=(1.0, 1.0, 1.0),
        sun_intensity=0.8,
        ambient_color=(0.3, 0.3, 0.35),
        ambient_intensity=1.0,
        sky_horizon=(0.9, 0.9, 0.95),
        sky_zenith=(0.8, 0.85, 0.95),
        fog_color=(0.85, 0.85, 0.9),
        fog_density=0.005,
    ),
    "sunset": dict(
        sun_direction=(1.0, 0.2, 0.3),
        sun_color=(1.0, 0.6, 0.3),
        sun_intensity=1.2,
        ambient_color=(0.3, 0.2, 0.3),
        ambient_intensity=0.8,
        sky_horizon=(1.0, 0.7, 0.5),
        sky_zenith=(0.4, 0.3, 0.5),
        fog_color=(0.9, 0.6, 0.4),
        fog_density=0.02,
    ),
    "night": dict(
        sun_direction=(0.5, 0.8, 0.2),
        sun_color=(0.7, 0.8, 1.0),
        sun_intensity=0.3,
        ambient_color=(0.05, 0.07, 0.15),
        ambient_intensity=1.0,
        sky_horizon=(0.1, 0.1, 0.2),
        sky_zenith=(0.02, 0.02, 0.08),
        fog_color=(0.05, 0.05, 0.1),
        fog_density=0.03,
    ),
    "daylight": dict(
        sun_direction=(0.5, 0.8, 0.3),
        sun_color=(1.0, 0.98, 0.95),
        sun_intensity=1.0,
        ambient_color=(0.2, 0.25, 0.35),
        ambient_intensity=1.0,
        sky_horizon=(0.7, 0.8, 0.9),
        sky_zenith=(0.3, 0.5, 0.8),
        fog_color=(0.6, 0.65, 0.7),
        fog_density=0.01,
    ),
    "clay": dict(
        sun_direction=(0.5, 1.0, 0.5),
        sun_color=(1.0, 1.0, 1.0),
        sun_intensity=0.6,
        ambient_color=(0.5, 0.5, 0.5),
        ambient_intensity=1.0,
        material_color=(0.85, 0.85, 0.85),
        material_shininess=8.0,
        specular_intensity=0.1,
        shadows_enabled=False,
        ao_enabled=True,
        ao_intensity=2.0,
        sky_horizon=(0.95, 0.95, 0.95),
        sky_zenith=(0.9, 0.9, 0.95),
        fog_density=0.0,
    ),
}


def parse_hex_color(text: str) -> Color:
    """Parse ``"#rrggbb"`` or ``"rrggbb"`` into 0..1 floats."""
    value = text.strip().removeprefix("#")
    if len(value) != 6:
        raise ValueError(f"hex colour must have 6 digits, got {text!r}")
    try:
        r, g, b = (int(value[i : i + 2], 16) for i in (0, 2, 4))
    except ValueError:
        raise ValueError(f"invalid hex colour {text!r}") from None
    return (r / 255.0, g / 255.0, b / 255.0)


class EnvironmentContext:
    """Mutable accumulator for one script evaluation.

    Only the environment setters mutate it; ``snapshot`` freezes the result.
    A context hosts one evaluation at a time (see ``begin``/``end``).
    """

    def __init__(self) -> None:
        self._values: dict[str, object] = {}
        self._active = False
        self.reset()

    @property
    def active(self) -> bool:
        return self._active

    def begin(self) -> None:
        if self._active:
            raise RuntimeError("environment context is already in use by another evaluation")
        self._active = True
        self.reset()

    def end(self) -> None:
        self._active = False

    def reset(self) -> None:
        self._values = {f.name: f.default for f in dataclasses.fields(Environment)}

    def snapshot(self) -> Environment:
        return Environment(**self._values)  # type: ignore[arg-type]

    def apply_preset(self, name: str) -> None:
        preset = PRESETS.get(name)
        if preset is None:
            raise ValueError(f"unknown environment preset {name!r} (known: {sorted(PRESETS)})")
        self.reset()
        self._values.update(preset)

    def set(self, field: str, value: object) -> None:
        if field not in self._values:
            raise KeyError(field)
        self._values[field] = value

    # -- typed setters -----------------------------------------------------

    def set_sun_direction(self, x: float, y: float, z: float) -> None:
        self.set("sun_direction", _vec3("sun direction", x, y, z))

    def set_sun_color(self, r: float, g: float, b: float) -> None:
        self.set("sun_color", _vec3("sun colour", r, g, b))

    def set_sun_intensity(self, value: float) -> None:
        self.set("sun_intensity", _non_negative("sun intensity", value))

    def set_ambient_color(self, r: float, g: float, b: float) -> None:
        self.set("ambient_color", _vec3("ambient colour", r, g, b))

    def set_ambient_intensity(self, value: float) -> None:
        self.set("ambient_intensity", _non_negative("ambient intensity", value))

    def set_material_color(self, r: float, g: float, b: float) -> None:
        self.set("material_color", _vec3("material colour", r, g, b))

    def set_material_color_hex(self, text: str) -> None:
        self.set("material_color", parse_hex_color(text))

    def set_material_shininess(self, value: float) -> None:
        self.set("material_shininess", _non_negative("shininess", value))

    def set_specular_intensity(self, value: float) -> None:
        self.set("specular_intensity", _non_negative("specular intensity", value))

    def set_sky_horizon(self, r: float, g: float, b: float) -> None:
        self.set("sky_horizon", _vec3("sky horizon", r, g, b))

    def set_sky_zenith(self, r: float, g: float, b: float) -> None:
        self.set("sky_zenith", _vec3("sky zenith", r, g, b))

    def set_fog_color(self, r: float, g: float, b: float) -> None:
        self.set("fog_color", _vec3("fog colour", r, g, b))

    def set_fog_density(self, value: float) -> None:
        self.set("fog_density", _non_negative("fog density", value))

    def set_ao_enabled(self, enabled: bool) -> None:
        self.set("ao_enabled", bool(enabled))

    def set_ao_intensity(self, value: float) -> None:
        self.set("ao_intensity", _non_negative("ambient occlusion intensity", value))

    def set_shadows_enabled(self, enabled: bool) -> None:
        self.set("shadows_enabled", bool(enabled))

    def set_shadow_softness(self, value: float) -> None:
        self.set("shadow_softness", _non_negative("shadow softness", value))


def _vec3(label: str, *values: float) -> tuple[float, float, float]:
    result = tuple(float(v) for v in values)
    if not all(math.isfinite(v) for v in result):
        raise ValueError(f"{label} must be finite")
    return result  # type: ignore[return-value]


def _non_negative(label: str, value: float) -> float:
    v = float(value)
    if not math.isfinite(v) or v < 0.0:
        raise ValueError(f"{label} must be a finite number >= 0, got {value!r}")
    return v


def environment_uniforms(env: Environment) -> np.ndarray:
    """Pack ``env`` into the 32-float uniform block of the base shader.

    The sun direction is normalised; a zero vector becomes +Y.
    """
    direction = np.asarray(env.sun_direction, dtype=np.float64)
    norm = float(np.linalg.norm(direction))
    direction = direction / norm if norm > 0.0 else np.array([0.0, 1.0, 0.0])

    rows = [
        (*direction, env.sun_intensity),
        (*env.sun_color, 0.0),
        (*env.ambient_color, env.ambient_intensity),
        (*env.material_color, env.material_shininess),
        (*env.sky_horizon, env.specular_intensity),
        (*env.sky_zenith, env.ao_intensity),
        (*env.fog_color, env.fog_density),
        (float(env.ao_enabled), float(env.shadows_enabled), env.shadow_softness, 0.0),
    ]
    return np.array(rows, dtype=np.float32).ravel()
