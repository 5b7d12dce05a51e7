import math

import pytest

from hallr.mesh_cleanup import Edge, Face, Mesh, process_command
from hallr.options import IDENTITY_MATRIX, InvalidInputDataError, Model

CUBE_VERTICES = [
    (-1.0, -1.0, -1.0),
    (-1.0, -1.0, 1.0),
    (-1.0, 1.0, -1.0),
    (-1.0, 1.0, 1.0),
    (1.0, -1.0, -1.0),
    (1.0, -1.0, 1.0),
    (1.0, 1.0, -1.0),
    (1.0, 1.0, 1.0),
]
CUBE_INDICES = [
    1, 2, 0, 3, 6, 2, 7, 4, 6, 5, 0, 4, 6, 0, 2, 3, 5, 7, 1, 3, 2, 3, 7, 6, 7, 5, 4, 5, 1,
    0, 6, 4, 0, 3, 1, 5,
]


def _cube_faces():
    return [Face(*CUBE_INDICES[i:i + 3]) for i in range(0, len(CUBE_INDICES), 3)]


def _assert_triangulated(result):
    assert len(result.indices) % 3 == 0
    assert all(0 <= i < len(result.vertices) for i in result.indices)


def test_mesh_cleanup_1():
    config = {"📦": "△", "▶": "mesh_cleanup", "max_iterations": "10"}
    models = [Model(vertices=CUBE_VERTICES, indices=CUBE_INDICES)]
    result = process_command(config, models)
    _assert_triangulated(result)
    assert len(result.vertices) == 8
    assert len(result.indices) == 36
    assert result.config == {"📦": "△"}
    assert result.world_matrix == list(IDENTITY_MATRIX)


def test_edge_between_orders_vertices():
    assert Edge.between(3, 1) == Edge(1, 3)
    assert Edge.between(1, 3) == Edge(1, 3)


def test_face_helpers():
    face = Face(0, 1, 2)
    assert face.edges() == (Edge(0, 1), Edge(1, 2), Edge(0, 2))
    assert face.contains_vertex(2)
    assert not face.contains_vertex(3)
    vertices = [(0.0, 0.0, 0.0), (1.0, 0.0, 0.0), (0.0, 1.0, 0.0)]
    assert face.normal(vertices) == pytest.approx((0.0, 0.0, 1.0))


def test_degenerate_normal_is_nan():
    vertices = [(0.0, 0.0, 0.0)] * 3
    normal = Face(0, 1, 2).normal(vertices)
    assert len(normal) == 3
    assert [math.isnan(component) for component in normal] == [True, True, True]


def test_cube_is_clean():
    mesh = Mesh(CUBE_VERTICES, _cube_faces())
    assert mesh.stats() == (8, 12, 0, 0)
    assert mesh.fix_non_manifold_iterative(5) == (0, 0)


def _bowtie_mesh():
    vertices = [
        (0.0, 0.0, 0.0),
        (1.0, 0.0, 0.0),
        (1.0, 1.0, 0.0),
        (0.0, 1.0, 0.0),
        (-1.0, 0.0, 0.0),
        (-1.0, 0.0, 1.0),
    ]
    faces = [Face(0, 1, 2), Face(0, 2, 3), Face(0, 4, 5)]
    return Mesh(vertices, faces)


def test_non_manifold_vertex_detected_and_split():
    mesh = _bowtie_mesh()
    assert mesh.detect_non_manifold_vertices() == [0]
    assert mesh.fix_non_manifold_vertices() == 1
    assert len(mesh.vertices) == 7
    assert mesh.faces[2].contains_vertex(6)
    assert not mesh.faces[2].contains_vertex(0)
    assert mesh.vertices[6] == pytest.approx((1e-6, 1e-6, 1e-6))
    assert mesh.detect_non_manifold_vertices() == []


def test_non_manifold_edge_collapsed():
    vertices = [(0.0, 0.0, 0.0), (1.0, 0.0, 0.0), (0.0, 1.0, 0.0), (0.0, -1.0, 0.0)]
    mesh = Mesh(vertices, [Face(0, 1, 2), Face(0, 1, 3)])
    assert mesh.detect_non_manifold_edges() == [Edge(0, 1)]
    assert mesh.fix_non_manifold_edges() == 1
    assert mesh.faces == []
    assert mesh.vertices == []
    assert mesh.stats() == (0, 0, 0, 0)


def test_process_command_requires_one_model():
    with pytest.raises(InvalidInputDataError):
        process_command({"📦": "△"}, [])


def test_process_command_requires_triangles():
    models = [Model(vertices=CUBE_VERTICES, indices=CUBE_INDICES)]
    with pytest.raises(InvalidInputDataError):
        process_command({"📦": "⸗"}, models)


def test_process_command_applies_world_to_local():
    matrix = list(IDENTITY_MATRIX)
    matrix[12:15] = [10.0, 0.0, 0.0]
    models = [Model(vertices=CUBE_VERTICES, indices=CUBE_INDICES, world_orientation=matrix)]
    result = process_command({"📦": "△"}, models)
    _assert_triangulated(result)
    assert result.world_matrix == matrix
    assert all(v[0] == pytest.approx(orig[0] - 10.0)
               for v, orig in zip(result.vertices, CUBE_VERTICES))