"""Mesh a set of edges as tubes by sampling capsule distance fields in chunks."""

from __future__ import annotations

import itertools
import logging
import math
import time
from collections.abc import Callable, Mapping, Sequence

import numpy as np

from hallr.options import (
    IDENTITY_MATRIX,
    MESH_FORMAT_TAG,
    VERTEX_MERGE_TAG,
    CommandResult,
    InvalidInputDataError,
    MeshFormat,
    MeshOverflowError,
    Model,
    Vector3,
    as_options,
)
from hallr.surface_nets import SurfaceNetsBuffer, surface_nets

logger = logging.getLogger(__name__)

UN_PADDED_CHUNK_SIDE = 14
PADDED_CHUNK_SIDE = UN_PADDED_CHUNK_SIDE + 2
DEFAULT_SDF_VALUE = 999.0
_U32_MAX = 2 ** 32 - 1
_F32 = np.float32

ChunkMesh = tuple[np.ndarray, SurfaceNetsBuffer]


def parse_input(model: Model) -> tuple[np.ndarray, np.ndarray]:
    """Return the (minimum, shape) bounding box of the model's vertices."""
    if len(model.vertices) == 0:
        raise InvalidInputDataError("Input vertex list was empty")
    points = []
    for vertex in model.vertices:
        x, y, z = (float(c) for c in vertex)
        if not all(math.isfinite(c) for c in (x, y, z)):
            raise InvalidInputDataError(f"Only finite coordinates are allowed ({x},{y},{z})")
        points.append((x, y, z))
    array = np.asarray(points, dtype=_F32)
    minimum = array.min(axis=0)
    return minimum, array.max(axis=0) - minimum


def _chunk_sdf(
    chunk_min: np.ndarray,
    vertices: np.ndarray,
    edges: np.ndarray,
    thickness: np.float32,
) -> ChunkMesh | None:
    padded_min = chunk_min - 1
    padded_lub = padded_min + PADDED_CHUNK_SIDE
    starts, ends = vertices[edges[:, 0]], vertices[edges[:, 1]]
    tube_min = np.floor(np.minimum(starts, ends) - thickness).astype(np.int64)
    tube_lub = np.ceil(np.maximum(starts, ends) + thickness).astype(np.int64)
    overlap = np.all(
        np.minimum(padded_lub, tube_lub) > np.maximum(padded_min, tube_min), axis=1
    )
    if not overlap.any():
        return None

    axis = np.arange(PADDED_CHUNK_SIDE)
    zs, ys, xs = np.meshgrid(
        (axis + padded_min[2]).astype(_F32),
        (axis + padded_min[1]).astype(_F32),
        (axis + padded_min[0]).astype(_F32),
        indexing="ij",
    )
    field = np.full(xs.shape, DEFAULT_SDF_VALUE, dtype=_F32)
    with np.errstate(divide="ignore", invalid="ignore"):
        for start, end in zip(starts[overlap], ends[overlap]):
            pax, pay, paz = xs - start[0], ys - start[1], zs - start[2]
            ba = end - start
            t = (pax * ba[0] + pay * ba[1] + paz * ba[2]) / (
                ba[0] * ba[0] + ba[1] * ba[1] + ba[2] * ba[2]
            )
            h = np.clip(t, _F32(0.0), _F32(1.0))
            dx, dy, dz = pax - ba[0] * h, pay - ba[1] * h, paz - ba[2] * h
            distance = np.sqrt(dx * dx + dy * dy + dz * dz) - thickness
            field = np.fmin(field, distance.astype(_F32))

    positive = field > 0.0
    if not (positive.any() and (~positive).any()):
        return None
    side = PADDED_CHUNK_SIDE
    buffer = surface_nets(
        field.ravel(), (side, side, side), (0, 0, 0), (UN_PADDED_CHUNK_SIDE + 1,) * 3
    )
    if not buffer.positions:
        return None
    return padded_min.astype(_F32), buffer


def build_voxel(
    radius_multiplier: float,
    divisions: float,
    vertices: Sequence[Vector3],
    indices: Sequence[int],
    unpadded_aabb: tuple[np.ndarray, np.ndarray],
    verbose: bool,
) -> tuple[float, list[ChunkMesh]]:
    """Sample capsule fields chunk by chunk; return voxel size and chunk meshes."""
    minimum, shape = (np.asarray(a, dtype=_F32) for a in unpadded_aabb)
    max_dimension = _F32(shape.max())
    if not max_dimension > 0.0:
        raise InvalidInputDataError("The input has no extent to voxelize")
    radius = _F32(max_dimension * _F32(radius_multiplier))
    scale = _F32(_F32(divisions) / max_dimension)
    if verbose:
        logger.info(
            "Voxelizing using tube radius %s, divisions %s, max dimension %s, scale %s",
            radius, divisions, max_dimension, scale,
        )

    indices = list(indices)
    if len(indices) % 2:
        indices = indices[: len(indices) - 1]
    if any(not 0 <= i < len(vertices) for i in indices):
        raise InvalidInputDataError("Edge index out of range")
    scaled = np.asarray(vertices, dtype=_F32).reshape(-1, 3) * scale
    edges = np.asarray(indices, dtype=np.int64).reshape(-1, 2)

    aabb_min = minimum - radius
    aabb_shape = shape + _F32(2.0) * radius
    factor = _F32(scale / _F32(UN_PADDED_CHUNK_SIDE))
    pad = _F32(1.0) / _F32(UN_PADDED_CHUNK_SIDE)
    chunk_min = aabb_min * factor - pad
    chunk_shape = aabb_shape * factor + _F32(2.0) * pad
    low = np.floor(chunk_min).astype(np.int64)
    high = np.ceil(chunk_min + chunk_shape).astype(np.int64)

    start = time.perf_counter()
    thickness = _F32(radius * scale)
    chunks: list[ChunkMesh] = []
    if len(edges):
        for z, y, x in itertools.product(
            range(low[2], high[2]), range(low[1], high[1]), range(low[0], high[0])
        ):
            origin = np.array([x, y, z], dtype=np.int64) * UN_PADDED_CHUNK_SIDE
            chunk = _chunk_sdf(origin, scaled, edges, thickness)
            if chunk is not None:
                chunks.append(chunk)
    if verbose:
        logger.info(
            "Processing chunks took %.3fs and generated %d chunks",
            time.perf_counter() - start, len(chunks),
        )
    return float(_F32(1.0) / scale), chunks


def build_output_model(
    voxel_size: float,
    mesh_buffers: Sequence[ChunkMesh],
    world_to_local: Callable[[Vector3], Vector3] | None,
    verbose: bool,
) -> Model:
    """Join the chunk meshes into one model in world (or local) coordinates."""
    start = time.perf_counter()
    vertex_capacity = sum(len(b.positions) for _, b in mesh_buffers)
    face_capacity = sum(len(b.indices) for _, b in mesh_buffers)
    if vertex_capacity >= _U32_MAX:
        raise MeshOverflowError(
            f"Generated mesh contains too many vertices: {vertex_capacity}. "
            "Reduce the resolution."
        )
    if face_capacity >= _U32_MAX:
        raise MeshOverflowError(
            f"Generated mesh contains too many faces: {face_capacity}. Reduce the resolution."
        )
    size = _F32(voxel_size)
    vertices: list[Vector3] = []
    indices: list[int] = []
    for offset, buffer in mesh_buffers:
        offset = np.asarray(offset, dtype=_F32)
        base = len(vertices)
        for position in buffer.positions:
            point = size * (np.asarray(position, dtype=_F32) + offset)
            vertex = (float(point[0]), float(point[1]), float(point[2]))
            vertices.append(world_to_local(vertex) if world_to_local else vertex)
        indices.extend(i + base for i in buffer.indices)
    if verbose:
        logger.info("Return model packaging took %.3fs", time.perf_counter() - start)
    return Model(vertices=vertices, indices=indices, world_orientation=IDENTITY_MATRIX)


def process_command(config: Mapping[str, str], models: Sequence[Model]) -> CommandResult:
    """Run the sdf_mesh command on a single edge-packaged model."""
    options = as_options(config)
    if not models:
        raise InvalidInputDataError("This operation requires one input model")
    if len(models) > 1:
        raise InvalidInputDataError("This operation only supports one model as input")
    options.confirm_mesh_packaging(0, MeshFormat.EDGES)

    radius_multiplier = _F32(
        options.get_mandatory_parsed_option("SDF_RADIUS_MULTIPLIER", float)
    ) / _F32(100.0)
    divisions = _F32(options.get_mandatory_parsed_option("SDF_DIVISIONS", float))
    if not 9.9 <= divisions < 600.1:
        raise InvalidInputDataError(
            f"The valid range of SDF_DIVISIONS is [10..600[% :({divisions})"
        )
    model = models[0]
    logger.info("model.vertices: %d", len(model.vertices))

    aabb = parse_input(model)
    voxel_size, chunks = build_voxel(
        float(radius_multiplier), float(divisions), model.vertices, model.indices, aabb, True
    )
    world_to_local = model.world_to_local_transform()
    output = build_output_model(voxel_size, chunks, world_to_local, True)

    return_config = {MESH_FORMAT_TAG: MeshFormat.TRIANGULATED.value}
    merge = options.get_parsed_option(VERTEX_MERGE_TAG, float)
    if merge is not None:
        return_config[VERTEX_MERGE_TAG] = str(merge)
    logger.info(
        "SDF mesh operation returning %d vertices, %d indices",
        len(output.vertices), len(output.indices),
    )
    return CommandResult(
        list(output.vertices),
        list(output.indices),
        [float(v) for v in output.world_orientation],
        return_config,
    )