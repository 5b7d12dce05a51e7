"""Ramer–Douglas–Peucker simplification of edge-packaged line meshes."""

from __future__ import annotations

import logging
import math
from collections.abc import Mapping, Sequence

from hallr.options import (
    MESH_FORMAT_TAG,
    VERTEX_MERGE_TAG,
    CommandResult,
    InvalidInputDataError,
    MeshFormat,
    Model,
    Vector3,
    as_options,
)

logger = logging.getLogger(__name__)

Point = Sequence[float]


def divide_into_shapes(indices: Sequence[int]) -> list[list[int]]:
    """Split a flat list of edge pairs into connected vertex chains.

    Chains run between vertices whose degree is not two. What is left after
    that are plain loops, returned with their first vertex repeated at the end.
    """
    if len(indices) % 2:
        raise InvalidInputDataError("Edge indices must come in pairs")
    edges = list(zip(indices[0::2], indices[1::2]))
    adjacency: dict[int, list[tuple[int, int]]] = {}
    for edge_id, (a, b) in enumerate(edges):
        adjacency.setdefault(a, []).append((b, edge_id))
        adjacency.setdefault(b, []).append((a, edge_id))
    used = [False] * len(edges)

    def walk(start: int, neighbour: int, edge_id: int) -> list[int]:
        used[edge_id] = True
        line = [start, neighbour]
        current = neighbour
        while current != start and len(adjacency[current]) == 2:
            step = next(((n, e) for n, e in adjacency[current] if not used[e]), None)
            if step is None:
                break
            current, edge_id = step
            used[edge_id] = True
            line.append(current)
        return line

    shapes: list[list[int]] = []
    for vertex, neighbours in adjacency.items():
        if len(neighbours) != 2:
            for neighbour, edge_id in neighbours:
                if not used[edge_id]:
                    shapes.append(walk(vertex, neighbour, edge_id))
    for vertex, neighbours in adjacency.items():
        for neighbour, edge_id in neighbours:
            if not used[edge_id]:
                shapes.append(walk(vertex, neighbour, edge_id))
    return shapes


def _segment_distance(p: Point, a: Point, b: Point) -> float:
    ab = [bi - ai for ai, bi in zip(a, b)]
    ap = [pi - ai for ai, pi in zip(a, p)]
    denominator = sum(c * c for c in ab)
    t = 0.0 if denominator == 0.0 else sum(x * y for x, y in zip(ap, ab)) / denominator
    t = min(max(t, 0.0), 1.0)
    closest = [ai + t * c for ai, c in zip(a, ab)]
    return math.dist(p, closest)


def _simplify(vertices: Sequence[Point], line: Sequence[int], distance: float) -> list[int]:
    if len(line) <= 2:
        return list(line)
    keep = [False] * len(line)
    keep[0] = keep[-1] = True
    stack = [(0, len(line) - 1)]
    while stack:
        first, last = stack.pop()
        if last - first < 2:
            continue
        a, b = vertices[line[first]], vertices[line[last]]
        farthest, farthest_distance = max(
            ((i, _segment_distance(vertices[line[i]], a, b)) for i in range(first + 1, last)),
            key=lambda item: item[1],
        )
        if farthest_distance > distance:
            keep[farthest] = True
            stack.append((first, farthest))
            stack.append((farthest, last))
    return [vertex for vertex, kept in zip(line, keep) if kept]


def simplify_rdp_2d(
    vertices: Sequence[Point], line: Sequence[int], distance: float
) -> list[int]:
    """Simplify an indexed 2D polyline, returning the kept vertex indices."""
    return _simplify(vertices, line, distance)


def simplify_rdp_3d(
    vertices: Sequence[Point], line: Sequence[int], distance: float
) -> list[int]:
    """Simplify an indexed 3D polyline, returning the kept vertex indices."""
    return _simplify(vertices, line, distance)


def _parse_input(model: Model) -> tuple[list[Vector3], Vector3, Vector3]:
    vertices: list[Vector3] = []
    for vertex in model.vertices:
        x, y, z = (float(c) for c in vertex)
        if not all(math.isfinite(c) for c in (x, y, z)):
            raise InvalidInputDataError(f"Only valid coordinates are allowed ({x},{y},{z})")
        vertices.append((x, y, z))
    if not vertices:
        raise InvalidInputDataError("Input vertex list was empty")
    low = tuple(min(axis) for axis in zip(*vertices))
    high = tuple(max(axis) for axis in zip(*vertices))
    return vertices, low, high


def process_command(config: Mapping[str, str], models: Sequence[Model]) -> CommandResult:
    """Simplify the line segments of the first model with RDP."""
    options = as_options(config)
    simplify_distance = options.get_mandatory_parsed_option("simplify_distance", float)
    options.confirm_mesh_packaging(0, MeshFormat.EDGES)
    simplify_in_3d = options.get_parsed_option("simplify_3d", bool) or False

    output_vertices: list[Vector3] = []
    output_indices: list[int] = []
    output_matrix: list[float] = []

    if models and len(models[0].indices) > 0:
        model = models[0]
        output_matrix = [float(v) for v in model.world_orientation]
        vertices, low, high = _parse_input(model)
        if any(not 0 <= i < len(vertices) for i in model.indices):
            raise InvalidInputDataError("Edge index out of range")
        distance = math.dist(low, high) * simplify_distance / 100.0

        if simplify_in_3d:
            points: list[Point] = vertices
            simplify = simplify_rdp_3d

            def output_point(i: int) -> Vector3:
                return vertices[i]
        else:
            points = [(x, y) for x, y, _ in vertices]
            simplify = simplify_rdp_2d

            def output_point(i: int) -> Vector3:
                return (vertices[i][0], vertices[i][1], 0.0)

        remap: dict[int, int] = {}

        def index_of(original: int) -> int:
            if original not in remap:
                remap[original] = len(output_vertices)
                output_vertices.append(output_point(original))
            return remap[original]

        for line in divide_into_shapes(list(model.indices)):
            simplified = simplify(points, line, distance)
            for a, b in zip(simplified, simplified[1:]):
                output_indices.append(index_of(a))
                output_indices.append(index_of(b))

        to_local = model.world_to_local_transform()
        if to_local is not None:
            output_vertices = [to_local(v) for v in output_vertices]

    return_config = {MESH_FORMAT_TAG: MeshFormat.EDGES.value}
    merge = options.get_parsed_option(VERTEX_MERGE_TAG, float)
    if merge is not None:
        return_config[VERTEX_MERGE_TAG] = str(merge)
    logger.info(
        "simplify_rdp operation returning %d vertices, %d indices",
        len(output_vertices),
        len(output_indices),
    )
    return CommandResult(output_vertices, output_indices, output_matrix, return_config)