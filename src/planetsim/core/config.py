# src/planetsim/core/config.py
from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from planetsim.physics.sources import HeatSourceConfig
from planetsim.schemas.diagnostics import DiagnosticsConfig


class FieldConfig(BaseModel):
    """
    Shape of the initial planet.

    The generator fills every cell with the squared distance to the grid
    center minus `threshold`, plus uniform jitter in
    [-jitter_amplitude, +jitter_amplitude].
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    dim: int = Field(16, ge=3, description="Grid side length (cells per axis)")
    threshold: float = Field(
        0.18, description="Squared radius of the planet in normalized space"
    )
    jitter_amplitude: float = Field(
        0.005, ge=0.0, description="Bound of the uniform surface jitter"
    )
    seed: int | None = Field(
        None, description="RNG seed. If None, every construction is a new texture."
    )


class ComputeConfig(BaseModel):
    """
    Selection of the compute backend and the kernel it runs.

    Attributes:
        backend: "torch" runs the kernel as tensor ops on `device`, "triton"
            launches a Triton JIT kernel on CUDA.
        device: "cpu", "cuda" or "auto".
        kernel_source: Dotted module name or path to a .py file holding the
            kernel. None selects the kernel module bundled for `backend`.
        entry_point: Name of the kernel function inside `kernel_source`.
        cell_spacing: Cell distance in normalized simulation space. None
            means 1 / dim.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    backend: Literal["torch", "triton"] = "torch"
    device: str = "cpu"
    kernel_source: str | None = None
    entry_point: str = "liquid_step"
    cell_spacing: float | None = Field(None, gt=0.0)


class SimulationConfig(BaseModel):
    """
    Top-level settings for one simulation run.

    The fixed timestep is derived from `fixed_fps` and kept as an integer
    nanosecond count so the scheduler accumulator never drifts.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    field: FieldConfig = Field(default_factory=FieldConfig)
    compute: ComputeConfig = Field(default_factory=ComputeConfig)
    heat_source: HeatSourceConfig = Field(default_factory=HeatSourceConfig)
    diagnostics: DiagnosticsConfig = Field(default_factory=DiagnosticsConfig)

    fixed_fps: float = Field(60.0, gt=0.0, description="Physics ticks per second")
    render_cube: bool = Field(False, description="Draw the debug unit cube")
    aspect: float = Field(1024.0 / 768.0, gt=0.0, description="Initial viewport aspect")

    @property
    def fixed_timestep_ns(self) -> int:
        """
        Fixed timestep in whole nanoseconds.

        Returns:
            int: round(1e9 / fixed_fps). 16_666_667 at 60 fps.
        """
        return round(1e9 / self.fixed_fps)

    @property
    def fixed_dt(self) -> float:
        """Fixed timestep in seconds."""
        return self.fixed_timestep_ns * 1e-9

    @property
    def cell_spacing(self) -> float:
        """Cell distance in normalized space handed to the kernel as DX."""
        if self.compute.cell_spacing is not None:
            return self.compute.cell_spacing
        return 1.0 / self.field.dim
