# tests/planetsim/test_pipeline.py
from unittest.mock import MagicMock

import numpy as np
import pytest
import torch

from planetsim.core.config import ComputeConfig, FieldConfig, SimulationConfig
from planetsim.geometry.extractor import Mesh
from planetsim.geometry.pipeline import GeometryPipeline
from planetsim.physics import kernels
from planetsim.physics.backend import DeviceStepError
from planetsim.physics.sources import HeatSourceConfig

DT = 1.0 / 60.0


@pytest.fixture
def sphere_cfg():
    return SimulationConfig(field=FieldConfig(dim=16, threshold=0.115, jitter_amplitude=0.0))


@pytest.fixture
def copy_cfg():
    return SimulationConfig(
        field=FieldConfig(dim=8, threshold=0.1, jitter_amplitude=0.01, seed=7),
        compute=ComputeConfig(entry_point="copy_step"),
    )


def test_initial_extraction_is_centered_sphere(sphere_cfg):
    pipeline = GeometryPipeline(sphere_cfg)
    mesh = pipeline.update_vbo()

    assert len(mesh) > 0
    assert np.all(mesh.positions >= -1.0)
    assert np.all(mesh.positions <= 1.0)
    # Roughly spherical: radii agree and the centroid is near the origin
    radii = np.linalg.norm(mesh.positions, axis=1)
    assert radii.std() < 0.25 * radii.mean()
    assert np.all(np.abs(mesh.positions.mean(axis=0)) < 0.1)


def test_update_vbo_twice_is_identical(sphere_cfg):
    pipeline = GeometryPipeline(sphere_cfg)
    pipeline.fixed_update(DT)
    a = pipeline.update_vbo()
    b = pipeline.update_vbo()
    assert len(a) == len(b)
    assert np.array_equal(a.vertices, b.vertices)
    assert np.array_equal(a.indices, b.indices)


def test_update_vbo_reads_latest_completed_generation(copy_cfg):
    extractor = MagicMock()
    extractor.extract.return_value = Mesh.empty()
    pipeline = GeometryPipeline(copy_cfg, extractor=extractor)

    pipeline.update_vbo()
    assert extractor.extract.call_args.args[0] is pipeline.sources[0]

    pipeline.fixed_update(DT)
    pipeline.update_vbo()
    assert extractor.extract.call_args.args[0] is pipeline.sources[1]

    pipeline.fixed_update(DT)
    pipeline.update_vbo()
    assert extractor.extract.call_args.args[0] is pipeline.sources[0]


def test_render_mapping(copy_cfg):
    extractor = MagicMock()
    verts = np.array([[0.0, 0.5, 1.0, 0.0, 1.0, 0.0]], dtype=np.float32)
    extractor.extract.return_value = Mesh(verts, np.zeros(3, dtype=np.uint32))
    pipeline = GeometryPipeline(copy_cfg, extractor=extractor)

    mesh = pipeline.update_vbo()

    c = pipeline.field.center()
    expected = (np.array([0.0, 0.5, 1.0]) * 2.0 * c - 0.5) * 2.0
    assert np.allclose(mesh.positions[0], expected)
    assert np.array_equal(mesh.normals[0], verts[0, 3:])
    # The extractor's mesh is not modified in place
    assert verts[0, 0] == 0.0


def test_copy_kernel_keeps_field(copy_cfg):
    pipeline = GeometryPipeline(copy_cfg)
    initial = pipeline.buffers.mass[0].host.clone()
    for _ in range(3):
        pipeline.fixed_update(DT)
    assert pipeline.frame_count == 3
    assert pipeline.time == pytest.approx(3 * DT)
    assert torch.equal(pipeline.field.values, initial)


def test_heat_is_visible_one_tick_later():
    cfg = SimulationConfig(
        field=FieldConfig(dim=8, threshold=0.1, jitter_amplitude=0.0),
        heat_source=HeatSourceConfig(power=1.0),
    )
    pipeline = GeometryPipeline(cfg)
    temp = pipeline.buffers.temperature

    pipeline.set_effect(True)
    pipeline.fixed_update(DT)
    # Tick 0 wrote generation 1, with the deposit folded into the kernel output
    assert temp[1].host.sum().item() > 0.0
    assert temp[0].host.sum().item() == 0.0

    pipeline.set_effect(False)
    pipeline.fixed_update(DT)
    # Tick 1 read the heated generation; its output carries the heat on
    assert temp[0].host.sum().item() > 0.0


def test_no_heat_without_effect():
    cfg = SimulationConfig(field=FieldConfig(dim=8, threshold=0.1, jitter_amplitude=0.0))
    pipeline = GeometryPipeline(cfg)
    for _ in range(4):
        pipeline.fixed_update(DT)
    for gen in pipeline.buffers.temperature.generations:
        assert torch.count_nonzero(gen.host) == 0


def test_reset_restores_initial_state(copy_cfg):
    pipeline = GeometryPipeline(copy_cfg)
    initial = pipeline.buffers.mass[0].host.clone()
    ptr = pipeline.buffers.mass[0].host.data_ptr()

    pipeline.buffers.mass[0].view().fill_(5.0)
    pipeline.buffers.temperature[1].view().fill_(1.0)
    pipeline.fixed_update(DT)
    pipeline.fixed_update(DT)

    pipeline.reset()

    assert pipeline.frame_count == 0
    assert pipeline.time == 0.0
    # Seeded: same texture; storage reused
    assert torch.equal(pipeline.buffers.mass[0].host, initial)
    assert pipeline.buffers.mass[0].host.data_ptr() == ptr
    assert torch.count_nonzero(pipeline.buffers.temperature[1].host) == 0
    # The coupling accepts frame 0 again
    pipeline.fixed_update(DT)


def test_device_failure_propagates(copy_cfg):
    pipeline = GeometryPipeline(copy_cfg)

    def boom(bufs):
        raise RuntimeError("lost")

    pipeline.coupling._launch = boom
    with pytest.raises(DeviceStepError):
        pipeline.fixed_update(DT)
    assert pipeline.frame_count == 0


def test_diagnostics_run_each_tick(copy_cfg):
    pipeline = GeometryPipeline(copy_cfg)
    pipeline.diagnostics = MagicMock()
    pipeline.fixed_update(DT)
    pipeline.diagnostics.on_tick_start.assert_called_once()
    frame, buffers, generation = pipeline.diagnostics.on_tick_end.call_args.args
    assert (frame, generation) == (1, 1)
    assert buffers is pipeline.buffers


def test_long_heated_run_stays_finite():
    pipeline = GeometryPipeline(SimulationConfig())
    pipeline.set_effect(True)
    for _ in range(3000):
        pipeline.fixed_update(DT)

    for pair in pipeline.buffers.pairs:
        for gen in pair.generations:
            assert torch.isfinite(gen.host).all(), pair.name
    for gen in pipeline.buffers.mass.generations:
        assert gen.host.abs().max().item() <= kernels.MASS_LIMIT
    pipeline.update_vbo()
