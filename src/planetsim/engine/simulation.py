# src/planetsim/engine/simulation.py
from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Protocol

from planetsim.core.config import SimulationConfig
from planetsim.engine.actions import (
    Action,
    ActionKind,
    CameraControl,
    ProgramCommand,
    process_camera_events,
    process_global_events,
)
from planetsim.geometry.extractor import Mesh
from planetsim.geometry.pipeline import GeometryPipeline
from planetsim.geometry.unit_cube import unit_cube_mesh

logger = logging.getLogger(__name__)


class CameraRig(Protocol):
    """Projection and rotational control live behind this boundary."""

    def set_aspect(self, aspect: float) -> None: ...

    def set_rotation_intent(self, horizontal: int, vertical: int) -> None: ...

    def update(self, dt: float) -> None: ...

    def late_update(self) -> None: ...


class NullCamera:
    """Records what a real camera would be told."""

    def __init__(self, aspect: float = 1024.0 / 768.0):
        self.aspect = aspect
        self.rotation_intent = (0, 0)
        self.elapsed = 0.0
        self.late_updates = 0

    def set_aspect(self, aspect: float) -> None:
        self.aspect = aspect

    def set_rotation_intent(self, horizontal: int, vertical: int) -> None:
        self.rotation_intent = (horizontal, vertical)

    def update(self, dt: float) -> None:
        self.elapsed += dt

    def late_update(self) -> None:
        self.late_updates += 1


class Renderer(Protocol):
    def draw(self, mesh: Mesh, overlay: Mesh | None) -> None: ...


class NullRenderer:
    """Counts frames and keeps the last mesh it was handed."""

    def __init__(self):
        self.frames = 0
        self.last_mesh: Mesh | None = None
        self.last_overlay: Mesh | None = None

    def draw(self, mesh: Mesh, overlay: Mesh | None) -> None:
        self.frames += 1
        self.last_mesh = mesh
        self.last_overlay = overlay


class Simulation:
    """
    The running game state driven by the scheduler.

    Holds the geometry pipeline, the camera and the mesh produced by the
    last `late_update`. `draw` always presents that mesh, so rendering lags
    the newest fixed tick by one frame.
    """

    def __init__(
        self,
        cfg: SimulationConfig,
        pipeline: GeometryPipeline | None = None,
        camera: CameraRig | None = None,
        renderer: Renderer | None = None,
    ):
        self.cfg = cfg
        self.pipeline = pipeline or GeometryPipeline(cfg)
        self.camera: CameraRig = camera or NullCamera(cfg.aspect)
        self.renderer: Renderer = renderer or NullRenderer()
        self.cam_control = CameraControl()
        self.mesh = Mesh.empty()
        self.overlay = unit_cube_mesh() if cfg.render_cube else None
        self._ended = False

    def draw(self) -> None:
        self.renderer.draw(self.mesh, self.overlay)

    def process_events(self, actions: Sequence[Action]) -> bool:
        """
        Apply this frame's actions.

        Returns:
            bool: False if the run should stop.
        """
        command = process_global_events(self.camera, actions)
        process_camera_events(self.cam_control, actions)
        self.camera.set_rotation_intent(*self.cam_control.rotation_intent())

        for action in actions:
            if action.kind is ActionKind.SHOOT:
                self.pipeline.set_effect(action.active)

        if command is ProgramCommand.EXIT:
            logger.info("Exit requested")
            return False
        if command is ProgramCommand.REFRESH:
            self.pipeline.reset()
        return True

    def fixed_update(self, dt: float) -> None:
        self.pipeline.fixed_update(dt)

    def update(self, dt: float) -> None:
        self.camera.update(dt)

    def late_update(self) -> None:
        self.camera.late_update()
        self.mesh = self.pipeline.update_vbo()

    def end(self) -> None:
        self._ended = True

    def ended(self) -> bool:
        return self._ended
