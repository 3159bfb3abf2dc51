# src/planetsim/geometry/pipeline.py
from __future__ import annotations

import logging

import numpy as np
import torch

from planetsim.core.config import SimulationConfig
from planetsim.core.field import ScalarField, generate_values
from planetsim.core.gradient import CentralDifference
from planetsim.core.state import SimulationBuffers, write_index
from planetsim.diagnostics.recorder import FieldDiagnostics
from planetsim.geometry.extractor import MarchingCubesExtractor, Mesh, SurfaceExtractor
from planetsim.integrator.coupling import FieldSimulationCoupling
from planetsim.physics.backend import TorchBackend, build_backend
from planetsim.physics.sources import GaussianHeatSource


logger = logging.getLogger(__name__)


class GeometryPipeline:
    """
    Owns the double-buffered planet state and turns it into meshes.

    Per physics tick (`fixed_update`):
        1. Clear the write-generation temperature buffer and, while the
           effect is active, deposit the heat source into it.
        2. Step the coupling (read gen `frame_count % 2`, write the other).
        3. Advance `frame_count`.
    The deposit lands in the buffer the kernel is about to write, so it is
    first seen as kernel input on the following tick.

    `update_vbo` extracts the surface from the most recently completed mass
    generation and maps it from normalized space to render space [-1, 1].
    """

    def __init__(
        self,
        cfg: SimulationConfig,
        backend: TorchBackend | None = None,
        extractor: SurfaceExtractor | None = None,
    ):
        self.cfg = cfg
        self.dim = cfg.field.dim
        self.frame_count = 0
        self.time = 0.0
        self.effect_active = False

        self._seed = cfg.field.seed
        self.buffers = SimulationBuffers.from_field(self._generate(), self.dim)

        # One field view and one gradient source per mass generation
        self.fields = tuple(ScalarField(gen.host, self.dim) for gen in self.buffers.mass.generations)
        self.sources = tuple(CentralDifference.for_field(f) for f in self.fields)

        if backend is None:
            backend = build_backend(cfg.compute)
        kernel_source = cfg.compute.kernel_source or backend.default_kernel_source
        self.coupling = FieldSimulationCoupling.bind(
            kernel_source,
            cfg.compute.entry_point,
            self.buffers.mass,
            self.buffers.flow,
            self.buffers.temperature,
            (self.dim, self.dim, self.dim),
            cfg.fixed_dt,
            cfg.cell_spacing,
            backend=backend,
        )

        self.extractor = extractor or MarchingCubesExtractor(self.dim)
        self.heat_source = GaussianHeatSource(cfg.heat_source, self.dim)
        self.diagnostics = FieldDiagnostics(cfg.diagnostics)

    def _generate(self) -> torch.Tensor:
        generator = None
        if self._seed is not None:
            generator = torch.Generator().manual_seed(self._seed)
        f = self.cfg.field
        return generate_values(f.dim, f.threshold, f.jitter_amplitude, generator)

    @property
    def current_generation(self) -> int:
        """Generation holding the latest completed tick."""
        return self.frame_count % 2

    @property
    def field(self) -> ScalarField:
        return self.fields[self.current_generation]

    def set_effect(self, active: bool) -> None:
        if active != self.effect_active:
            logger.debug(f"Heat effect {'on' if active else 'off'}")
        self.effect_active = active

    def fixed_update(self, dt: float) -> None:
        """Advance the simulation by one fixed tick."""
        self.diagnostics.on_tick_start()
        self.time += dt

        injection = self.buffers.temperature[write_index(self.frame_count)].view()
        injection.zero_()
        if self.effect_active:
            self.heat_source.deposit(injection, dt)

        self.coupling.step(self.frame_count)
        self.frame_count += 1

        self.diagnostics.on_tick_end(self.frame_count, self.buffers, self.current_generation)

    def render_scale(self) -> float:
        """Factor taking sampler space to physical space, 2 * center()."""
        return 2.0 * self.field.center()

    def update_vbo(self) -> Mesh:
        """
        Extract a fresh mesh from the latest completed generation.

        Positions p in [0, 1] are mapped to (p * 2 * center() - 0.5) * 2, i.e.
        into physical space and then around the physical midpoint to
        [-1, 1]. The result fully replaces any previous mesh.
        """
        mesh = self.extractor.extract(self.sources[self.current_generation])
        if len(mesh) == 0:
            return mesh
        vertices = mesh.vertices.copy()
        vertices[:, :3] = (vertices[:, :3] * np.float32(self.render_scale()) - 0.5) * 2.0
        return Mesh(vertices, mesh.indices)

    def reset(self) -> None:
        """Restart the run from a newly generated field; buffers keep their size."""
        self.buffers.reset(self._generate())
        self.frame_count = 0
        self.time = 0.0
        self.coupling.reset()
        logger.info("Simulation reset")
