# src/planetsim/engine/scheduler.py
from __future__ import annotations

import logging
import time
from collections.abc import Callable
from enum import Enum

from planetsim.engine.actions import EventSource
from planetsim.engine.simulation import Simulation

logger = logging.getLogger(__name__)

# 1/60 s in whole nanoseconds; the accumulator compares integers only
FIXED_TIMESTEP_NS = 16_666_667
# Seconds of wall time between FPS log lines
PRINT_INTERVAL = 2.0


class GameState(str, Enum):
    INIT = "init"
    SIMULATION = "simulation"
    EXIT = "exit"  # terminal


class FpsCalculator:
    """Running average over the last SAMPLE_SIZE frame deltas."""

    SAMPLE_SIZE = 10

    def __init__(self):
        self.dt_buffer = [0.0] * self.SAMPLE_SIZE
        self.it = 0

    def store_dt(self, dt: float) -> None:
        self.dt_buffer[self.it] = dt
        self.it = (self.it + 1) % self.SAMPLE_SIZE

    def fps(self) -> float:
        total = sum(self.dt_buffer)
        if total <= 0.0:
            return 0.0
        return self.SAMPLE_SIZE / total


class FixedStepScheduler:
    """
    Real-time loop as a state machine INIT -> SIMULATION -> EXIT.

    Each SIMULATION frame runs, in this order:
        1. draw the mesh from the previous frame
        2. poll events and apply them; an exit request ends the run here
        3. add the elapsed wall time to the accumulator
        4. one `fixed_update` per whole fixed timestep in the accumulator,
           the remainder is carried to the next frame
        5. one `update(dt)` with the real frame delta
        6. one `late_update()` which rebuilds the mesh
    A simulation reporting `ended()` after step 6 also moves to EXIT.

    Args:
        simulation_factory: Builds the simulation when INIT runs.
        events: Source of per-frame actions.
        clock: Monotonic nanosecond clock.
        fixed_timestep_ns: Length of one physics tick.
    """

    def __init__(
        self,
        simulation_factory: Callable[[], Simulation],
        events: EventSource,
        clock: Callable[[], int] = time.perf_counter_ns,
        fixed_timestep_ns: int = FIXED_TIMESTEP_NS,
    ):
        if fixed_timestep_ns <= 0:
            raise ValueError(f"fixed_timestep_ns must be positive, got {fixed_timestep_ns}")
        self.simulation_factory = simulation_factory
        self.events = events
        self.clock = clock
        self.fixed_timestep_ns = int(fixed_timestep_ns)

        self.state = GameState.INIT
        self.simulation: Simulation | None = None
        self.accumulator_ns = 0
        self.last_frame_time = 0
        self.frames = 0
        self.fixed_updates = 0

        self.fps_calc = FpsCalculator()
        self.print_timer = PRINT_INTERVAL

    @property
    def running(self) -> bool:
        return self.state is not GameState.EXIT

    def step(self) -> GameState:
        """Run the handler of the current state once and apply its transition."""
        if self.state is GameState.EXIT:
            raise RuntimeError("attempt to step the scheduler in exit state")
        if self.state is GameState.INIT:
            self.state = self._init()
        else:
            self.state = self._frame()
        return self.state

    def run(self, max_frames: int | None = None) -> GameState:
        """
        Step until EXIT, or until `max_frames` simulation frames have run.

        Returns:
            GameState: The state the loop stopped in.
        """
        while self.running:
            if max_frames is not None and self.frames >= max_frames:
                break
            self.step()
        logger.info(f"Loop stopped in state {self.state.value} after {self.frames} frames")
        return self.state

    def _init(self) -> GameState:
        logger.info("Scheduler init")
        fixed_dt = self.fixed_timestep_ns * 1e-9
        logger.debug(
            f"fixed-timestep: {fixed_dt * 1e3:.2f} ms, fixed-FPS: {1.0 / fixed_dt:.1f}"
        )

        self.simulation = self.simulation_factory()
        # Camera and first mesh are ready before the first draw
        self.simulation.late_update()

        self.accumulator_ns = 0
        self.last_frame_time = self.clock()
        logger.info("Entering simulation")
        return GameState.SIMULATION

    def _frame(self) -> GameState:
        simulation = self.simulation
        if simulation is None:
            raise RuntimeError("simulation frame before the scheduler ran init")

        simulation.draw()

        actions = self.events.poll()
        if not simulation.process_events(actions):
            return GameState.EXIT

        now = self.clock()
        dt_ns = now - self.last_frame_time
        self.last_frame_time = now
        self.accumulator_ns += dt_ns

        fixed_dt = self.fixed_timestep_ns * 1e-9
        while self.accumulator_ns >= self.fixed_timestep_ns:
            self.accumulator_ns -= self.fixed_timestep_ns
            simulation.fixed_update(fixed_dt)
            self.fixed_updates += 1

        dt = dt_ns * 1e-9
        simulation.update(dt)

        self.fps_calc.store_dt(dt)
        self.print_timer -= dt
        if self.print_timer <= 0.0:
            self.print_timer += PRINT_INTERVAL
            logger.debug(f"FPS: {self.fps_calc.fps():.1f}")

        simulation.late_update()
        self.frames += 1

        if simulation.ended():
            return GameState.EXIT
        return GameState.SIMULATION
