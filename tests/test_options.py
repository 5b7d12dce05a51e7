import pytest

from hallr.options import (
    IDENTITY_MATRIX,
    MESH_FORMAT_TAG,
    HallrError,
    InvalidInputDataError,
    MeshFormat,
    Model,
    Options,
)


def test_mesh_format_symbols_match_packaging():
    edges = Options({MESH_FORMAT_TAG: "⸗"})
    assert edges.get_mandatory_option(MESH_FORMAT_TAG) == str(MeshFormat.EDGES)
    with pytest.raises(InvalidInputDataError):
        edges.confirm_mesh_packaging(0, MeshFormat.TRIANGULATED)
    triangles = Options({MESH_FORMAT_TAG: "△"})
    assert triangles.get_mandatory_option(MESH_FORMAT_TAG) == str(MeshFormat.TRIANGULATED)
    with pytest.raises(InvalidInputDataError):
        triangles.confirm_mesh_packaging(0, MeshFormat.EDGES)


def test_option_lookup():
    options = Options({"max_iterations": "10", "simplify_3d": "false"})
    assert options.does_option_exist("max_iterations")
    assert not options.does_option_exist("other")
    assert options.get_mandatory_option("max_iterations") == "10"
    assert options.get_parsed_option("max_iterations", int) == 10
    assert options.get_parsed_option("simplify_3d", bool) is False
    assert options.get_parsed_option("missing", int) is None


def test_mandatory_parsed_option():
    options = Options({"simplify_distance": "6.0", "flag": "true"})
    assert options.get_mandatory_parsed_option("simplify_distance", float) == 6.0
    assert options.get_mandatory_parsed_option("flag", bool) is True
    with pytest.raises(InvalidInputDataError):
        options.get_mandatory_parsed_option("missing", float)


def test_bad_parse_raises():
    options = Options({"n": "abc", "flag": "yes"})
    with pytest.raises(InvalidInputDataError):
        options.get_parsed_option("n", int)
    with pytest.raises(HallrError):
        options.get_parsed_option("flag", bool)


def test_missing_mandatory_option():
    with pytest.raises(InvalidInputDataError):
        Options({}).get_mandatory_option("▶")


def test_confirm_mesh_packaging():
    options = Options({MESH_FORMAT_TAG: "△"})
    options.confirm_mesh_packaging(0, MeshFormat.TRIANGULATED)
    with pytest.raises(InvalidInputDataError):
        options.confirm_mesh_packaging(0, MeshFormat.EDGES)
    with pytest.raises(InvalidInputDataError):
        options.confirm_mesh_packaging(1, MeshFormat.TRIANGULATED)
    with pytest.raises(InvalidInputDataError):
        Options({}).confirm_mesh_packaging(0, MeshFormat.EDGES)


def test_identity_model_has_no_transform():
    model = Model(vertices=[(0.0, 0.0, 0.0)], indices=[])
    assert model.has_identity_orientation()
    assert model.world_to_local_transform() is None


def test_translation_transform_round_trip():
    matrix = list(IDENTITY_MATRIX)
    matrix[12:15] = [1.0, 2.0, 3.0]
    model = Model(world_orientation=matrix)
    assert not model.has_identity_orientation()
    to_local = model.world_to_local_transform()
    assert to_local((1.0, 2.0, 3.0)) == pytest.approx((0.0, 0.0, 0.0))
    assert to_local((2.0, 2.0, 3.0)) == pytest.approx((1.0, 0.0, 0.0))


def test_singular_orientation_raises():
    model = Model(world_orientation=[0.0] * 16)
    with pytest.raises(InvalidInputDataError):
        model.world_to_local_transform()


def test_wrong_matrix_size_raises():
    with pytest.raises(InvalidInputDataError):
        Model(world_orientation=[1.0] * 3).world_to_local_transform()