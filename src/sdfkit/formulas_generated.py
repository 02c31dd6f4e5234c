# AUTO-GENERATED by sdfkit from formula specifications. DO NOT EDIT.
"""Native signed-distance formulas (numpy, batched over leading axes)."""

import numpy as np

from sdfkit import mathlib as _m

__all__ = ['op_union', 'op_subtract', 'op_intersect', 'op_smooth_union', 'op_smooth_subtract', 'op_smooth_intersect', 'op_twist', 'op_bend', 'op_shell', 'op_onion', 'op_round', 'op_elongate', 'op_elongate_correction', 'sd_sphere', 'sd_box', 'sd_rounded_box', 'sd_cylinder', 'sd_capsule', 'sd_torus', 'sd_cone', 'sd_plane', 'sd_ellipsoid', 'sd_octahedron', 'sd_hex_prism', 'sd_tri_prism', 'op_repeat', 'op_repeat_limited', 'op_repeat_polar', 'op_translate', 'op_rotate_x', 'op_rotate_y', 'op_rotate_z', 'op_scale', 'op_scale_distance', 'op_mirror', 'op_symmetry_x', 'op_symmetry_y', 'op_symmetry_z']

PARAMS = {
    'op_union': (('a', 'f32'), ('b', 'f32')),
    'op_subtract': (('a', 'f32'), ('b', 'f32')),
    'op_intersect': (('a', 'f32'), ('b', 'f32')),
    'op_smooth_union': (('a', 'f32'), ('b', 'f32'), ('k', 'f32')),
    'op_smooth_subtract': (('a', 'f32'), ('b', 'f32'), ('k', 'f32')),
    'op_smooth_intersect': (('a', 'f32'), ('b', 'f32'), ('k', 'f32')),
    'op_twist': (('p', 'vec3'), ('k', 'f32')),
    'op_bend': (('p', 'vec3'), ('k', 'f32')),
    'op_shell': (('d', 'f32'), ('t', 'f32')),
    'op_onion': (('d', 'f32'), ('t', 'f32')),
    'op_round': (('d', 'f32'), ('r', 'f32')),
    'op_elongate': (('p', 'vec3'), ('h', 'vec3')),
    'op_elongate_correction': (('p', 'vec3'), ('h', 'vec3')),
    'sd_sphere': (('p', 'vec3'), ('r', 'f32')),
    'sd_box': (('p', 'vec3'), ('b', 'vec3')),
    'sd_rounded_box': (('p', 'vec3'), ('b', 'vec3'), ('r', 'f32')),
    'sd_cylinder': (('p', 'vec3'), ('r', 'f32'), ('h', 'f32')),
    'sd_capsule': (('p', 'vec3'), ('r', 'f32'), ('h', 'f32')),
    'sd_torus': (('p', 'vec3'), ('major', 'f32'), ('minor', 'f32')),
    'sd_cone': (('p', 'vec3'), ('r', 'f32'), ('h', 'f32')),
    'sd_plane': (('p', 'vec3'), ('n', 'vec3'), ('h', 'f32')),
    'sd_ellipsoid': (('p', 'vec3'), ('r', 'vec3')),
    'sd_octahedron': (('p', 'vec3'), ('s', 'f32')),
    'sd_hex_prism': (('p', 'vec3'), ('r', 'f32'), ('h', 'f32')),
    'sd_tri_prism': (('p', 'vec3'), ('size', 'vec2')),
    'op_repeat': (('p', 'vec3'), ('s', 'vec3')),
    'op_repeat_limited': (('p', 'vec3'), ('s', 'vec3'), ('c', 'vec3')),
    'op_repeat_polar': (('p', 'vec3'), ('n', 'f32')),
    'op_translate': (('p', 'vec3'), ('o', 'vec3')),
    'op_rotate_x': (('p', 'vec3'), ('a', 'f32')),
    'op_rotate_y': (('p', 'vec3'), ('a', 'f32')),
    'op_rotate_z': (('p', 'vec3'), ('a', 'f32')),
    'op_scale': (('p', 'vec3'), ('s', 'f32')),
    'op_scale_distance': (('d', 'f32'), ('s', 'f32')),
    'op_mirror': (('p', 'vec3'), ('n', 'vec3')),
    'op_symmetry_x': (('p', 'vec3'),),
    'op_symmetry_y': (('p', 'vec3'),),
    'op_symmetry_z': (('p', 'vec3'),),
}


def op_union(a, b):
    """Hard union of two distances."""
    return np.minimum(a, b)


def op_subtract(a, b):
    """Removes the volume of b from a."""
    return np.maximum(a, (-b))


def op_intersect(a, b):
    """Hard intersection of two distances."""
    return np.maximum(a, b)


def op_smooth_union(a, b, k):
    """Polynomial smooth minimum with blend radius k. Never greater than min(a, b) and equal to it when k is zero."""
    h = (np.maximum((k - np.abs((a - b))), 0.0) / np.maximum(k, 1e-06))
    return (np.minimum(a, b) - (((h * h) * k) * 0.25))


def op_smooth_subtract(a, b, k):
    """Smooth subtraction of b from a with blend radius k (smooth max of a and -b)."""
    h = (np.maximum((k - np.abs((a + b))), 0.0) / np.maximum(k, 1e-06))
    return (np.maximum(a, (-b)) + (((h * h) * k) * 0.25))


def op_smooth_intersect(a, b, k):
    """Polynomial smooth maximum with blend radius k."""
    h = (np.maximum((k - np.abs((a - b))), 0.0) / np.maximum(k, 1e-06))
    return (np.maximum(a, b) + (((h * h) * k) * 0.25))


def op_twist(p, k):
    """Twists space about the Y axis by k radians per unit of height."""
    c = np.cos((k * p[..., 1]))
    s = np.sin((k * p[..., 1]))
    return _m.vec(((c * p[..., 0]) - (s * p[..., 2])), p[..., 1], ((s * p[..., 0]) + (c * p[..., 2])))


def op_bend(p, k):
    """Bends space in the XY plane; the rotation angle grows by k radians per unit along X."""
    c = np.cos((k * p[..., 0]))
    s = np.sin((k * p[..., 0]))
    return _m.vec(((c * p[..., 0]) - (s * p[..., 1])), ((s * p[..., 0]) + (c * p[..., 1])), p[..., 2])


def op_shell(d, t):
    """Turns a solid into a shell of the given thickness centred on its surface."""
    return (np.abs(d) - t)


def op_onion(d, t):
    """Concentric layers of thickness t inside the child; outside the child it behaves like a shell so the shape stays bounded."""
    layered = (_m.mod(np.abs(d), (2.0 * t)) - t)
    return np.where((d < 0.0), layered, (np.abs(d) - t))


def op_round(d, r):
    """Inflates a shape by radius r, rounding its edges."""
    return (d - r)


def op_elongate(p, h):
    """Position for an elongated child; the child is stretched by h along each axis."""
    return np.maximum((np.abs(p) - h), _m.splat(0.0, 3))


def op_elongate_correction(p, h):
    """Interior distance correction added to the child distance of an elongation."""
    q = (np.abs(p) - h)
    return np.minimum(np.maximum(q[..., 0], np.maximum(q[..., 1], q[..., 2])), 0.0)


def sd_sphere(p, r):
    """Signed distance to a sphere of radius r centred at the origin."""
    return (_m.length(p) - r)


def sd_box(p, b):
    """Exact signed distance to an axis-aligned box with half extents b."""
    q = (np.abs(p) - b)
    return (_m.length(np.maximum(q, _m.splat(0.0, 3))) + np.minimum(np.maximum(q[..., 0], np.maximum(q[..., 1], q[..., 2])), 0.0))


def sd_rounded_box(p, b, r):
    """Box with half extents b whose edges are rounded by radius r (outer size unchanged)."""
    q = ((np.abs(p) - b) + _m.bc(r))
    return ((_m.length(np.maximum(q, _m.splat(0.0, 3))) + np.minimum(np.maximum(q[..., 0], np.maximum(q[..., 1], q[..., 2])), 0.0)) - r)


def sd_cylinder(p, r, h):
    """Capped cylinder along the Y axis with radius r and half height h."""
    d = (np.abs(_m.vec(_m.length(p[..., [0, 2]]), p[..., 1])) - _m.vec(r, h))
    return (np.minimum(np.maximum(d[..., 0], d[..., 1]), 0.0) + _m.length(np.maximum(d, _m.splat(0.0, 2))))


def sd_capsule(p, r, h):
    """Capsule along the Y axis; a segment from -h to h swept by radius r."""
    q = _m.vec(p[..., 0], (p[..., 1] - np.clip(p[..., 1], (-h), h)), p[..., 2])
    return (_m.length(q) - r)


def sd_torus(p, major, minor):
    """Torus in the XZ plane with ring radius major and tube radius minor."""
    q = _m.vec((_m.length(p[..., [0, 2]]) - major), p[..., 1])
    return (_m.length(q) - minor)


def sd_cone(p, r, h):
    """Exact solid cone along +Y with base radius r on the plane y = 0 and apex at y = h."""
    w = _m.vec(_m.length(p[..., [0, 2]]), (p[..., 1] - h))
    q = _m.vec(r, (-h))
    a = (w - (q * _m.bc(np.clip((_m.dot(w, q) / _m.dot(q, q)), 0.0, 1.0))))
    b = (w - (q * _m.vec(np.clip((w[..., 0] / q[..., 0]), 0.0, 1.0), 1.0)))
    k = np.sign(q[..., 1])
    d = np.minimum(_m.dot(a, a), _m.dot(b, b))
    s = np.maximum((k * ((w[..., 0] * q[..., 1]) - (w[..., 1] * q[..., 0]))), (k * (w[..., 1] - q[..., 1])))
    return (np.sqrt(d) * np.sign(s))


def sd_plane(p, n, h):
    """Signed distance to the plane dot(p, normalize(n)) + h = 0."""
    return (_m.dot(p, _m.normalize(n)) + h)


def sd_ellipsoid(p, r):
    """Bound (not exact) distance to an axis-aligned ellipsoid with radii r."""
    k0 = _m.length((p / r))
    k1 = _m.length((p / (r * r)))
    return np.where((k1 < 1e-12), (-np.minimum(r[..., 0], np.minimum(r[..., 1], r[..., 2]))), ((k0 * (k0 - 1.0)) / np.maximum(k1, 1e-12)))


def sd_octahedron(p, s):
    """Exact distance to a regular octahedron with vertices at distance s on each axis."""
    q0 = np.abs(p)
    m = (((q0[..., 0] + q0[..., 1]) + q0[..., 2]) - s)
    qa = np.where(_m.bc(((3.0 * q0[..., 0]) < m)), q0, np.where(_m.bc(((3.0 * q0[..., 1]) < m)), q0[..., [1, 2, 0]], q0[..., [2, 0, 1]]))
    k = np.clip((0.5 * ((qa[..., 2] - qa[..., 1]) + s)), 0.0, s)
    exact = _m.length(_m.vec(qa[..., 0], ((qa[..., 1] - s) + k), (qa[..., 2] - k)))
    return np.where(((3.0 * np.minimum(q0[..., 0], np.minimum(q0[..., 1], q0[..., 2]))) < m), exact, (m * 0.57735027))


def sd_hex_prism(p, r, h):
    """Hexagonal prism along the Y axis with apothem r and half height h."""
    a = np.abs(p)
    kxy = _m.vec((-0.8660254), 0.5)
    u = (a[..., [0, 2]] - (kxy * _m.bc((2.0 * np.minimum(_m.dot(kxy, a[..., [0, 2]]), 0.0)))))
    d = _m.vec((_m.length((u - _m.vec(np.clip(u[..., 0], ((-0.57735027) * r), (0.57735027 * r)), r))) * np.sign((u[..., 1] - r))), (a[..., 1] - h))
    return (np.minimum(np.maximum(d[..., 0], d[..., 1]), 0.0) + _m.length(np.maximum(d, _m.splat(0.0, 2))))


def sd_tri_prism(p, size):
    """Triangular prism along the Z axis; size.x is the triangle size, size.y the half depth."""
    q = np.abs(p)
    return np.maximum((q[..., 2] - size[..., 1]), (np.maximum(((q[..., 0] * 0.866025) + (p[..., 1] * 0.5)), (-p[..., 1])) - (size[..., 0] * 0.5)))


def op_repeat(p, s):
    """Infinite repetition; every axis with positive spacing is folded into the cell centred on the origin, axes with zero spacing are left unchanged."""
    enabled = (s > _m.splat(0.0, 3))
    ss = np.where(enabled, s, _m.splat(1.0, 3))
    q = (_m.mod((p + (_m.bc(0.5) * ss)), ss) - (_m.bc(0.5) * ss))
    return np.where(enabled, q, p)


def op_repeat_limited(p, s, c):
    """Finite repetition; the cell index on each axis with positive spacing is clamped to [-c, c], giving 2c + 1 copies per axis."""
    enabled = (s > _m.splat(0.0, 3))
    ss = np.where(enabled, s, _m.splat(1.0, 3))
    q = (p - (ss * np.clip(np.round((p / ss)), (-c), c)))
    return np.where(enabled, q, p)


def op_repeat_polar(p, n):
    """Polar repetition about the Y axis; folds the position into the sector of angle 2*pi/n centred on +X."""
    sector = (6.283185307179586 / n)
    a = (_m.mod((np.arctan2(p[..., 2], p[..., 0]) + (0.5 * sector)), sector) - (0.5 * sector))
    r = _m.length(p[..., [0, 2]])
    return _m.vec((r * np.cos(a)), p[..., 1], (r * np.sin(a)))


def op_translate(p, o):
    """Maps a world position into the local space of a child moved by o."""
    return (p - o)


def op_rotate_x(p, a):
    """Inverse rotation about X for a child rotated by angle a (radians)."""
    c = np.cos(a)
    s = np.sin(a)
    return _m.vec(p[..., 0], ((c * p[..., 1]) + (s * p[..., 2])), (((-s) * p[..., 1]) + (c * p[..., 2])))


def op_rotate_y(p, a):
    """Inverse rotation about Y for a child rotated by angle a (radians)."""
    c = np.cos(a)
    s = np.sin(a)
    return _m.vec(((c * p[..., 0]) - (s * p[..., 2])), p[..., 1], ((s * p[..., 0]) + (c * p[..., 2])))


def op_rotate_z(p, a):
    """Inverse rotation about Z for a child rotated by angle a (radians)."""
    c = np.cos(a)
    s = np.sin(a)
    return _m.vec(((c * p[..., 0]) + (s * p[..., 1])), (((-s) * p[..., 0]) + (c * p[..., 1])), p[..., 2])


def op_scale(p, s):
    """Maps a position into the space of a child uniformly scaled by s."""
    return (p / _m.bc(s))


def op_scale_distance(d, s):
    """Rescales a child distance measured in scaled space back to world units."""
    return (d * s)


def op_mirror(p, n):
    """Reflects positions behind the plane through the origin with normal n onto its front side."""
    nn = _m.normalize(n)
    d = _m.dot(p, nn)
    return np.where(_m.bc((d < 0.0)), (p - (nn * _m.bc((2.0 * d)))), p)


def op_symmetry_x(p):
    """Mirrors the negative X half onto the positive half."""
    return _m.vec(np.abs(p[..., 0]), p[..., 1], p[..., 2])


def op_symmetry_y(p):
    """Mirrors the negative Y half onto the positive half."""
    return _m.vec(p[..., 0], np.abs(p[..., 1]), p[..., 2])


def op_symmetry_z(p):
    """Mirrors the negative Z half onto the positive half."""
    return _m.vec(p[..., 0], p[..., 1], np.abs(p[..., 2]))
