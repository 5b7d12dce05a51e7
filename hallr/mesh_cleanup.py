"""Detect and repair non-manifold edges and vertices of a triangle mesh."""

from __future__ import annotations

import logging
import math
import time
from collections.abc import Mapping, Sequence
from dataclasses import dataclass

from hallr.options import (
    MESH_FORMAT_TAG,
    CommandResult,
    InvalidInputDataError,
    MeshFormat,
    Model,
    Vector3,
    as_options,
)

logger = logging.getLogger(__name__)


def _sub(a: Vector3, b: Vector3) -> Vector3:
    return (a[0] - b[0], a[1] - b[1], a[2] - b[2])


def _cross(a: Vector3, b: Vector3) -> Vector3:
    return (
        a[1] * b[2] - a[2] * b[1],
        a[2] * b[0] - a[0] * b[2],
        a[0] * b[1] - a[1] * b[0],
    )


def _dot(a: Vector3, b: Vector3) -> float:
    return a[0] * b[0] + a[1] * b[1] + a[2] * b[2]


def _length(a: Vector3) -> float:
    return math.sqrt(_dot(a, a))


def _normalize(a: Vector3) -> Vector3:
    length = _length(a)
    if length == 0.0 or math.isnan(length):
        return (math.nan, math.nan, math.nan)
    return (a[0] / length, a[1] / length, a[2] / length)


@dataclass(frozen=True, order=True)
class Edge:
    """An undirected edge, its lower vertex index first."""

    v0: int
    v1: int

    @classmethod
    def between(cls, v0: int, v1: int) -> Edge:
        return cls(v0, v1) if v0 < v1 else cls(v1, v0)


@dataclass
class Face:
    """A triangle given by three vertex indices."""

    v0: int
    v1: int
    v2: int

    def edges(self) -> tuple[Edge, Edge, Edge]:
        return (
            Edge.between(self.v0, self.v1),
            Edge.between(self.v1, self.v2),
            Edge.between(self.v2, self.v0),
        )

    def normal(self, vertices: Sequence[Vector3]) -> Vector3:
        """Unit normal; NaN components for a degenerate triangle."""
        p0 = vertices[self.v0]
        return _normalize(_cross(_sub(vertices[self.v1], p0), _sub(vertices[self.v2], p0)))

    def contains_vertex(self, vertex_idx: int) -> bool:
        return vertex_idx in (self.v0, self.v1, self.v2)

    def replace_vertex(self, old: int, new: int) -> None:
        if self.v0 == old:
            self.v0 = new
        if self.v1 == old:
            self.v1 = new
        if self.v2 == old:
            self.v2 = new

    def is_degenerate(self) -> bool:
        return self.v0 == self.v1 or self.v1 == self.v2 or self.v2 == self.v0


@dataclass
class _Analysis:
    non_manifold_edges: list[Edge]
    non_manifold_vertices: list[int]


class Mesh:
    """A triangle mesh with cached non-manifold analysis."""

    def __init__(self, vertices: Sequence[Vector3], faces: Sequence[Face]) -> None:
        self.vertices: list[Vector3] = [tuple(map(float, v)) for v in vertices]
        self.faces: list[Face] = list(faces)
        self._analysis: _Analysis | None = None

    def _get_analysis(self) -> _Analysis:
        if self._analysis is None:
            self._analysis = _Analysis(
                self._compute_non_manifold_edges(),
                self._compute_non_manifold_vertices(),
            )
        return self._analysis

    def detect_non_manifold_edges(self) -> list[Edge]:
        """Edges shared by faces with roughly opposite normals."""
        return list(self._get_analysis().non_manifold_edges)

    def detect_non_manifold_vertices(self) -> list[int]:
        """Vertices joining face fans that share no edge and differ in orientation."""
        return list(self._get_analysis().non_manifold_vertices)

    def _compute_non_manifold_edges(self) -> list[Edge]:
        edge_to_faces: dict[Edge, list[int]] = {}
        for face_idx, face in enumerate(self.faces):
            for edge in face.edges():
                edge_to_faces.setdefault(edge, []).append(face_idx)

        result = []
        for edge, face_indices in edge_to_faces.items():
            normals = [self.faces[i].normal(self.vertices) for i in face_indices]
            for i, first in enumerate(normals):
                # One report per opposing partner found for this face.
                if any(_dot(first, second) < -0.5 for second in normals[i + 1:]):
                    result.append(edge)
        return result

    def _compute_non_manifold_vertices(self) -> list[int]:
        vertex_to_faces: dict[int, list[int]] = {}
        for face_idx, face in enumerate(self.faces):
            for vertex in (face.v0, face.v1, face.v2):
                vertex_to_faces.setdefault(vertex, []).append(face_idx)

        result = []
        for vertex_idx, face_indices in vertex_to_faces.items():
            if len(face_indices) < 3:
                continue
            components = self._face_components_around_vertex(vertex_idx, face_indices)
            if len(components) > 1 and self._components_spatially_separated(components):
                result.append(vertex_idx)
        return result

    def _face_components_around_vertex(
        self, vertex_idx: int, face_indices: Sequence[int]
    ) -> list[list[int]]:
        visited: set[int] = set()
        components = []
        for start in face_indices:
            if start in visited:
                continue
            component = []
            stack = [start]
            while stack:
                current = stack.pop()
                if current in visited:
                    continue
                visited.add(current)
                component.append(current)
                stack.extend(
                    other
                    for other in face_indices
                    if other not in visited
                    and self._faces_share_edge_through_vertex(current, other, vertex_idx)
                )
            if component:
                components.append(component)
        return components

    def _faces_share_edge_through_vertex(self, face1: int, face2: int, vertex_idx: int) -> bool:
        other_edges = self.faces[face2].edges()
        return any(
            vertex_idx in (edge.v0, edge.v1) and edge in other_edges
            for edge in self.faces[face1].edges()
        )

    def _components_spatially_separated(self, components: Sequence[Sequence[int]]) -> bool:
        if len(components) < 2:
            return False
        component_normals = []
        for component in components:
            normals = [self.faces[i].normal(self.vertices) for i in component]
            normals = [n for n in normals if _length(n) > 0.0]
            if normals:
                total = tuple(sum(axis) / len(normals) for axis in zip(*normals))
                component_normals.append(_normalize(total))
        return any(
            _dot(a, b) < 0.5
            for i, a in enumerate(component_normals)
            for b in component_normals[i + 1:]
        )

    def fix_non_manifold_vertices(self) -> int:
        """Split every non-manifold vertex; return how many were split."""
        fixes = sum(
            1 for vertex_idx in self.detect_non_manifold_vertices()
            if self._split_non_manifold_vertex(vertex_idx)
        )
        if fixes:
            self._analysis = None
        return fixes

    def _split_non_manifold_vertex(self, vertex_idx: int) -> bool:
        vertex_faces = [i for i, face in enumerate(self.faces) if face.contains_vertex(vertex_idx)]
        if len(vertex_faces) < 3:
            return False
        components = self._face_components_around_vertex(vertex_idx, vertex_faces)
        if len(components) <= 1:
            return False

        x, y, z = self.vertices[vertex_idx]
        for comp_idx, component in enumerate(components[1:], start=1):
            new_vertex_idx = len(self.vertices)
            offset = comp_idx * 1e-6
            self.vertices.append((x + offset, y + offset, z + offset))
            for face_idx in component:
                self.faces[face_idx].replace_vertex(vertex_idx, new_vertex_idx)
        return True

    def fix_non_manifold_edges(self) -> int:
        """Collapse every non-manifold edge, then compact the mesh."""
        fixes = sum(1 for edge in self.detect_non_manifold_edges() if self._collapse_edge(edge))
        self._cleanup()
        if fixes:
            self._analysis = None
        return fixes

    def _collapse_edge(self, edge: Edge) -> bool:
        if edge.v0 >= len(self.vertices) or edge.v1 >= len(self.vertices):
            return False
        a, b = self.vertices[edge.v0], self.vertices[edge.v1]
        self.vertices[edge.v0] = tuple((p + q) * 0.5 for p, q in zip(a, b))
        for face in self.faces:
            face.replace_vertex(edge.v1, edge.v0)
        return True

    def _cleanup(self) -> None:
        self.faces = [face for face in self.faces if not face.is_degenerate()]
        used = sorted({v for face in self.faces for v in (face.v0, face.v1, face.v2)})
        old_to_new = {old: new for new, old in enumerate(used)}
        for face in self.faces:
            face.v0 = old_to_new[face.v0]
            face.v1 = old_to_new[face.v1]
            face.v2 = old_to_new[face.v2]
        self.vertices = [self.vertices[old] for old in used]

    def fix_non_manifold_iterative(self, max_iterations: int) -> tuple[int, int]:
        """Repeat vertex and edge fixes until nothing changes; return the totals."""
        total_vertex_fixes = total_edge_fixes = 0
        for iteration in range(1, max_iterations + 1):
            vertex_fixes = self.fix_non_manifold_vertices()
            edge_fixes = self.fix_non_manifold_edges()
            total_vertex_fixes += vertex_fixes
            total_edge_fixes += edge_fixes
            logger.info(
                "Iteration %d: %d vertex fixes, %d edge fixes",
                iteration, vertex_fixes, edge_fixes,
            )
            if vertex_fixes == 0 and edge_fixes == 0:
                logger.info("Converged after %d iterations", iteration)
                break
        return total_vertex_fixes, total_edge_fixes

    def stats(self) -> tuple[int, int, int, int]:
        """Vertex count, face count, non-manifold edge and vertex counts."""
        analysis = self._get_analysis()
        return (
            len(self.vertices),
            len(self.faces),
            len(analysis.non_manifold_edges),
            len(analysis.non_manifold_vertices),
        )


def process_command(config: Mapping[str, str], models: Sequence[Model]) -> CommandResult:
    """Run the mesh cleanup command on exactly one triangulated model."""
    options = as_options(config)
    if len(models) != 1:
        raise InvalidInputDataError("Incorrect number of models selected")
    options.confirm_mesh_packaging(0, MeshFormat.TRIANGULATED)
    model = models[0]
    world_matrix = [float(v) for v in model.world_orientation]
    max_iterations = options.get_parsed_option("max_iterations", int)
    if max_iterations is None:
        max_iterations = 5
    if max_iterations < 0:
        raise InvalidInputDataError("max_iterations must not be negative")

    indices = list(model.indices)
    faces = [Face(*indices[i:i + 3]) for i in range(0, len(indices) - len(indices) % 3, 3)]
    start = time.perf_counter()
    mesh = Mesh(model.vertices, faces)

    logger.info("Initial mesh stats: %d vertices, %d faces, %d non-manifold edges, "
                "%d non-manifold vertices", *mesh.stats())
    vertex_fixes, edge_fixes = mesh.fix_non_manifold_iterative(max_iterations)
    logger.info("Applied %d vertex fixes and %d edge fixes", vertex_fixes, edge_fixes)
    logger.info("Final mesh stats: %d vertices, %d faces, %d non-manifold edges, "
                "%d non-manifold vertices", *mesh.stats())
    logger.info("Mesh cleanup took %.3fs", time.perf_counter() - start)

    vertices = list(mesh.vertices)
    to_local = model.world_to_local_transform()
    if to_local is not None:
        vertices = [to_local(v) for v in vertices]
    out_indices = [v for face in mesh.faces for v in (face.v0, face.v1, face.v2)]
    return CommandResult(
        vertices,
        out_indices,
        world_matrix,
        {MESH_FORMAT_TAG: MeshFormat.TRIANGULATED.value},
    )