import math

import numpy as np
import pytest

from hallr.options import (
    MESH_FORMAT_TAG,
    VERTEX_MERGE_TAG,
    InvalidInputDataError,
    MeshFormat,
    Model,
)
from hallr.sdf_mesh import build_output_model, parse_input, process_command
from hallr.surface_nets import SurfaceNetsBuffer


def _config(**extra):
    config = {
        MESH_FORMAT_TAG: MeshFormat.EDGES.value,
        "▶": "sdf_mesh",
        "SDF_DIVISIONS": "50",
        "SDF_RADIUS_MULTIPLIER": "1.0",
    }
    config.update(extra)
    return config


def _model():
    return Model(
        vertices=[
            (1.203918, 1.203918, 1.0),
            (-1.805877, 0.74801874, 0.0),
            (0.0, -1.7025971, 0.0),
            (-0.36410117, 0.33949375, -1.0),
            (0.25582898, -0.17708552, 0.0),
        ],
        indices=[0, 1, 2, 0, 1, 2],
    )


def test_sdf_mesh_1():
    result = process_command(_config(), [_model()])
    assert len(result.vertices) == 973
    assert len(result.indices) == 3888
    assert all(0 <= i < len(result.vertices) for i in result.indices)
    assert result.config[MESH_FORMAT_TAG] == MeshFormat.TRIANGULATED.value


def test_vertex_merge_is_passed_on():
    result = process_command(_config(**{VERTEX_MERGE_TAG: "0.5"}), [_model()])
    assert result.config[VERTEX_MERGE_TAG] == "0.5"


def test_requires_a_model():
    with pytest.raises(InvalidInputDataError):
        process_command(_config(), [])


def test_rejects_two_models():
    with pytest.raises(InvalidInputDataError):
        process_command(_config(), [_model(), _model()])


@pytest.mark.parametrize("divisions", ["5", "700"])
def test_divisions_out_of_range(divisions):
    with pytest.raises(InvalidInputDataError):
        process_command(_config(SDF_DIVISIONS=divisions), [_model()])


def test_wrong_packaging():
    with pytest.raises(InvalidInputDataError):
        process_command(_config(**{MESH_FORMAT_TAG: MeshFormat.TRIANGULATED.value}), [_model()])


def test_missing_radius():
    config = _config()
    del config["SDF_RADIUS_MULTIPLIER"]
    with pytest.raises(InvalidInputDataError):
        process_command(config, [_model()])


def test_parse_input_bounds():
    minimum, shape = parse_input(_model())
    assert np.allclose(minimum, [-1.805877, -1.7025971, -1.0])
    assert np.allclose(minimum + shape, [1.203918, 1.203918, 1.0])


def test_parse_input_rejects_non_finite():
    with pytest.raises(InvalidInputDataError):
        parse_input(Model(vertices=[(math.inf, 0.0, 0.0)], indices=[]))


def test_parse_input_rejects_empty():
    with pytest.raises(InvalidInputDataError):
        parse_input(Model(vertices=[], indices=[]))


def test_build_output_model_offsets_indices():
    first = SurfaceNetsBuffer(positions=[(0.0, 0.0, 0.0), (1.0, 0.0, 0.0)], indices=[0, 1, 1])
    second = SurfaceNetsBuffer(positions=[(0.0, 1.0, 0.0)], indices=[0, 0, 0])
    model = build_output_model(
        2.0,
        [(np.zeros(3, dtype=np.float32), first), (np.ones(3, dtype=np.float32), second)],
        None,
        False,
    )
    assert model.indices == [0, 1, 1, 2, 2, 2]
    assert model.vertices[1] == (2.0, 0.0, 0.0)
    assert model.vertices[2] == (2.0, 4.0, 2.0)


def test_build_output_model_applies_transform():
    buffer = SurfaceNetsBuffer(positions=[(1.0, 1.0, 1.0)], indices=[])
    model = build_output_model(
        1.0, [(np.zeros(3, dtype=np.float32), buffer)], lambda v: (v[0] + 1, v[1], v[2]), False
    )
    assert model.vertices == [(2.0, 1.0, 1.0)]