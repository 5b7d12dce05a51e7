"""Surface nets: a triangle mesh from samples of a signed distance field."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field

import numpy as np

from hallr.options import InvalidInputDataError

# Corner i of a unit cube: bit 0 is x, bit 1 is y, bit 2 is z.
CUBE_CORNERS: tuple[tuple[int, int, int], ...] = tuple(
    (i & 1, (i >> 1) & 1, (i >> 2) & 1) for i in range(8)
)
_CORNER_VECTORS = [np.array(c, dtype=np.float32) for c in CUBE_CORNERS]
CUBE_EDGES: tuple[tuple[int, int], ...] = (
    (0b000, 0b001), (0b000, 0b010), (0b000, 0b100),
    (0b001, 0b011), (0b001, 0b101), (0b010, 0b011),
    (0b010, 0b110), (0b011, 0b111), (0b100, 0b101),
    (0b100, 0b110), (0b101, 0b111), (0b110, 0b111),
)
_ONE = np.float32(1.0)


@dataclass
class SurfaceNetsBuffer:
    """Mesh produced by :func:`surface_nets`, in the sample grid's coordinates."""

    positions: list[tuple[float, float, float]] = field(default_factory=list)
    normals: list[tuple[float, float, float]] = field(default_factory=list)
    indices: list[int] = field(default_factory=list)
    surface_points: list[tuple[int, int, int]] = field(default_factory=list)
    surface_strides: list[int] = field(default_factory=list)
    stride_to_index: dict[int, int] = field(default_factory=dict)


def _centroid_of_edge_intersections(dists: Sequence[np.float32]) -> np.ndarray:
    total = np.zeros(3, dtype=np.float32)
    count = 0
    for c1, c2 in CUBE_EDGES:
        d1, d2 = dists[c1], dists[c2]
        if (d1 < 0.0) != (d2 < 0.0):
            count += 1
            interp1 = np.float32(d1 / (d1 - d2))
            interp2 = _ONE - interp1
            total = total + (interp2 * _CORNER_VECTORS[c1] + interp1 * _CORNER_VECTORS[c2])
    return total / np.float32(count)


def _sdf_gradient(d: Sequence[np.float32], s: np.ndarray) -> np.ndarray:
    def vec(a: int, b: int, c: int) -> np.ndarray:
        return np.array([d[a], d[b], d[c]], dtype=np.float32)

    d00 = vec(0b001, 0b010, 0b100) - vec(0b000, 0b000, 0b000)
    d10 = vec(0b101, 0b011, 0b110) - vec(0b100, 0b001, 0b010)
    d01 = vec(0b011, 0b110, 0b101) - vec(0b010, 0b100, 0b001)
    d11 = vec(0b111, 0b111, 0b111) - vec(0b110, 0b101, 0b011)
    ys = np.array([s[1], s[0], s[0]], dtype=np.float32)
    zs = np.array([s[2], s[2], s[1]], dtype=np.float32)
    one_minus_ys = _ONE - ys
    one_minus_zs = _ONE - zs
    return (
        one_minus_ys * one_minus_zs * d00
        + ys * one_minus_zs * d10
        + one_minus_ys * zs * d01
        + ys * zs * d11
    )


def _as_triple(value: Sequence[int], name: str) -> tuple[int, int, int]:
    if len(value) != 3:
        raise InvalidInputDataError(f"{name} must have three components")
    return int(value[0]), int(value[1]), int(value[2])


def surface_nets(
    sdf: Sequence[float],
    shape: Sequence[int],
    min_corner: Sequence[int],
    max_corner: Sequence[int],
) -> SurfaceNetsBuffer:
    """Mesh the zero level of ``sdf`` between ``min_corner`` and ``max_corner``.

    ``sdf`` is flat, linearized as ``x + sx * (y + sy * z)``. Negative values
    are inside. Cubes are visited for every point with ``min <= p < max``, so
    ``max_corner`` must stay below ``shape``.
    """
    sx, sy, sz = _as_triple(shape, "shape")
    x0, y0, z0 = _as_triple(min_corner, "min_corner")
    x1, y1, z1 = _as_triple(max_corner, "max_corner")
    values = np.asarray(sdf, dtype=np.float32)
    if values.size != sx * sy * sz:
        raise InvalidInputDataError("sdf size does not match shape")
    if min(x0, y0, z0) < 0 or x1 >= sx or y1 >= sy or z1 >= sz:
        raise InvalidInputDataError("corners outside the sampled shape")
    grid = values.reshape(sz, sy, sx)
    buffer = SurfaceNetsBuffer()
    if x1 <= x0 or y1 <= y0 or z1 <= z0:
        return buffer

    negative = (grid < 0.0).astype(np.int8)
    counts = sum(
        negative[z0 + cz:z1 + cz, y0 + cy:y1 + cy, x0 + cx:x1 + cx].astype(np.int16)
        for cx, cy, cz in CUBE_CORNERS
    )
    stride_x, stride_y, stride_z = 1, sx, sx * sy
    for dz, dy, dx in np.argwhere((counts > 0) & (counts < 8)):
        x, y, z = x0 + int(dx), y0 + int(dy), z0 + int(dz)
        dists = [grid[z + cz, y + cy, x + cx] for cx, cy, cz in CUBE_CORNERS]
        centroid = _centroid_of_edge_intersections(dists)
        position = np.array([x, y, z], dtype=np.float32) + centroid
        stride = x * stride_x + y * stride_y + z * stride_z
        buffer.stride_to_index[stride] = len(buffer.positions)
        buffer.positions.append(tuple(float(c) for c in position))
        buffer.normals.append(tuple(float(c) for c in _sdf_gradient(dists, centroid)))
        buffer.surface_points.append((x, y, z))
        buffer.surface_strides.append(stride)

    flat = values
    positions = [np.array(p, dtype=np.float32) for p in buffer.positions]

    def maybe_make_quad(p1: int, p2: int, axis_b: int, axis_c: int) -> None:
        first_negative, second_negative = flat[p1] < 0.0, flat[p2] < 0.0
        if first_negative == second_negative:
            return
        negative_face = second_negative
        lookup = buffer.stride_to_index
        v1 = lookup[p1]
        v2 = lookup[p1 - axis_b]
        v3 = lookup[p1 - axis_c]
        v4 = lookup[p1 - axis_b - axis_c]
        diag14 = positions[v1] - positions[v4]
        diag23 = positions[v2] - positions[v3]
        if np.dot(diag14, diag14) < np.dot(diag23, diag23):
            quad = (v1, v4, v2, v1, v3, v4) if negative_face else (v1, v2, v4, v1, v4, v3)
        elif negative_face:
            quad = (v2, v3, v4, v2, v1, v3)
        else:
            quad = (v2, v4, v3, v2, v3, v1)
        buffer.indices.extend(quad)

    for (x, y, z), stride in zip(buffer.surface_points, buffer.surface_strides):
        if y != y0 and z != z0 and x != x1 - 1:
            maybe_make_quad(stride, stride + stride_x, stride_y, stride_z)
        if x != x0 and z != z0 and y != y1 - 1:
            maybe_make_quad(stride, stride + stride_y, stride_z, stride_x)
        if x != x0 and y != y0 and z != z1 - 1:
            maybe_make_quad(stride, stride + stride_z, stride_x, stride_y)
    return buffer