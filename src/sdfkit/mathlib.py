"""Runtime helpers used by the generated native formula module.

Every helper works on a trailing component axis: a ``vec3`` value is an
array of shape ``(..., 3)`` and a scalar value has shape ``(...)``, so the
same generated function evaluates a single point or an ``(N, 3)`` batch.
"""

from __future__ import annotations

import numpy as np


def bc(x: np.ndarray | float) -> np.ndarray:
    """Append a unit component axis so a scalar broadcasts against a vector."""
    return np.asarray(x, dtype=np.float64)[..., None]


def vec(*components: np.ndarray | float) -> np.ndarray:
    """Stack scalar components into a vector along a new trailing axis."""
    arrays = np.broadcast_arrays(*(np.asarray(c, dtype=np.float64) for c in components))
    return np.stack(arrays, axis=-1)


def splat(x: np.ndarray | float, n: int) -> np.ndarray:
    """Repeat a scalar into an ``n``-component vector."""
    return np.repeat(bc(x), n, axis=-1)


def length(v: np.ndarray) -> np.ndarray:
    return np.sqrt(np.sum(v * v, axis=-1))


def dot(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    return np.sum(a * b, axis=-1)


def normalize(v: np.ndarray) -> np.ndarray:
    return v / bc(length(v))


def mix(a, b, t):
    """Linear interpolation ``a + (b - a) * t``."""
    return a + (b - a) * t


def mod(a, b):
    """Floored modulo; the result takes the sign of ``b``."""
    return a - b * np.floor(a / b)


def as_float_array(value: object) -> np.ndarray:
    """Coerce a formula argument (scalar or sequence) to a float64 array."""
    return np.asarray(value, dtype=np.float64)
