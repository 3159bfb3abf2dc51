# tests/planetsim/test_extractor.py
import numpy as np
import pytest
import torch

from planetsim.core.field import ScalarField
from planetsim.core.gradient import CentralDifference
from planetsim.geometry.extractor import VERTEX_STRIDE, MarchingCubesExtractor, Mesh
from planetsim.geometry.unit_cube import unit_cube_mesh


@pytest.fixture
def sphere_source():
    return CentralDifference.for_field(ScalarField.new(16, threshold=0.115))


def test_empty_mesh():
    mesh = Mesh.empty()
    assert len(mesh) == 0
    assert mesh.vertices.shape == (0, VERTEX_STRIDE)
    assert mesh.indices.dtype == np.uint32


def test_extracts_closed_sphere(sphere_source):
    mesh = MarchingCubesExtractor(16).extract(sphere_source)

    assert len(mesh) > 0
    assert mesh.vertices.dtype == np.float32
    assert mesh.vertices.shape[1] == VERTEX_STRIDE
    assert mesh.indices.dtype == np.uint32
    assert len(mesh.indices) % 3 == 0
    assert mesh.indices.max() < len(mesh)

    assert mesh.positions.min() >= 0.0
    assert mesh.positions.max() <= 1.0
    lengths = np.linalg.norm(mesh.normals, axis=1)
    assert np.allclose(lengths, 1.0, atol=1e-5)


def test_no_surface_gives_empty_mesh():
    all_outside = ScalarField(torch.ones(8**3), 8)
    mesh = MarchingCubesExtractor(8).extract(CentralDifference.for_field(all_outside))
    assert len(mesh) == 0
    assert len(mesh.indices) == 0


def test_nan_field_gives_empty_mesh():
    broken = ScalarField(torch.full((8**3,), float("nan")), 8)
    mesh = MarchingCubesExtractor(8).extract(CentralDifference.for_field(broken))
    assert len(mesh) == 0


def test_partly_non_finite_field_still_extracts():
    values = ScalarField.new(16, threshold=0.115).values.clone()
    values[:16] = float("nan")
    values[-16:] = float("inf")
    mesh = MarchingCubesExtractor(16).extract(CentralDifference.for_field(ScalarField(values, 16)))
    assert len(mesh) > 0
    assert np.isfinite(mesh.positions).all()


def test_extraction_is_pure(sphere_source):
    extractor = MarchingCubesExtractor(16)
    a = extractor.extract(sphere_source)
    b = extractor.extract(sphere_source)
    assert np.array_equal(a.vertices, b.vertices)
    assert np.array_equal(a.indices, b.indices)


def test_resolution_must_be_at_least_two():
    with pytest.raises(ValueError):
        MarchingCubesExtractor(1)


def test_unit_cube_mesh():
    cube = unit_cube_mesh()
    assert len(cube) == 24
    assert len(cube.indices) == 36
    assert np.abs(cube.positions).max() == 1.0
    assert np.allclose(np.linalg.norm(cube.normals, axis=1), 1.0)
