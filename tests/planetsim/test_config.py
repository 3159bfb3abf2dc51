# tests/planetsim/test_config.py
import pytest
import torch
from pydantic import ValidationError

from planetsim.core.config import ComputeConfig, FieldConfig, SimulationConfig
from planetsim.engine.scheduler import FIXED_TIMESTEP_NS
from planetsim.physics.sources import GaussianHeatSource, HeatSourceConfig


def test_defaults():
    cfg = SimulationConfig()
    assert cfg.field.dim == 16
    assert cfg.field.threshold == pytest.approx(0.18)
    assert cfg.compute.backend == "torch"
    assert cfg.render_cube is False
    assert cfg.fixed_timestep_ns == FIXED_TIMESTEP_NS
    assert cfg.fixed_dt == pytest.approx(1.0 / 60.0, rel=1e-7)
    assert cfg.cell_spacing == pytest.approx(1.0 / 16.0)


def test_explicit_cell_spacing_wins():
    cfg = SimulationConfig(compute=ComputeConfig(cell_spacing=0.5))
    assert cfg.cell_spacing == 0.5


def test_fixed_timestep_from_fps():
    assert SimulationConfig(fixed_fps=120).fixed_timestep_ns == 8_333_333


@pytest.mark.parametrize(
    "kwargs",
    [
        {"field": {"dim": 2}},
        {"field": {"jitter_amplitude": -0.1}},
        {"fixed_fps": 0},
        {"compute": {"backend": "opencl"}},
        {"compute": {"cell_spacing": 0.0}},
        {"unknown": 1},
    ],
)
def test_invalid_settings_rejected(kwargs):
    with pytest.raises(ValidationError):
        SimulationConfig.model_validate(kwargs)


def test_configs_are_frozen():
    cfg = FieldConfig()
    with pytest.raises(ValidationError):
        cfg.dim = 32


def test_heat_source_deposits_power_times_dt():
    source = GaussianHeatSource(HeatSourceConfig(power=2.0, sigma=0.1), dim=8)
    energy = source.energy(0.5)
    assert energy.numel() == 8**3
    assert energy.sum().item() == pytest.approx(1.0, rel=1e-5)
    # Peak sits in the cell nearest to the configured position (top pole)
    z = energy.argmax().item() // 64
    assert z == 7


def test_heat_source_deposit_adds_in_place():
    source = GaussianHeatSource(HeatSourceConfig(), dim=4)
    out = torch.ones(64)
    source.deposit(out, 1.0)
    assert out.sum().item() == pytest.approx(64.0 + HeatSourceConfig().power, rel=1e-5)
