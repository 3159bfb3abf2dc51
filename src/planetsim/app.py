# src/planetsim/app.py
from __future__ import annotations

import argparse
import logging

from planetsim.core.config import ComputeConfig, FieldConfig, SimulationConfig
from planetsim.engine.actions import ScriptedEvents
from planetsim.engine.scheduler import FixedStepScheduler
from planetsim.engine.simulation import NullCamera, NullRenderer, Simulation

logger = logging.getLogger(__name__)


def run_headless(cfg: SimulationConfig | None = None, frames: int = 120) -> Simulation:
    """
    Run the full loop without a window.

    Args:
        cfg: Run settings, defaults if None.
        frames: Number of simulation frames before stopping.

    Returns:
        Simulation: The simulation in its final state; its renderer is a
            NullRenderer holding the last drawn mesh.
    """
    cfg = cfg or SimulationConfig()
    scheduler = FixedStepScheduler(
        lambda: Simulation(cfg, camera=NullCamera(cfg.aspect), renderer=NullRenderer()),
        ScriptedEvents(),
        fixed_timestep_ns=cfg.fixed_timestep_ns,
    )
    scheduler.run(max_frames=frames)

    simulation = scheduler.simulation
    if simulation is None:
        raise RuntimeError("headless run stopped before the simulation was built")
    logger.info(
        f"Headless run done: {scheduler.frames} frames, {scheduler.fixed_updates} ticks, "
        f"{len(simulation.mesh)} vertices"
    )
    return simulation


def main() -> None:
    parser = argparse.ArgumentParser(description="Run the planet simulation headless.")
    parser.add_argument("--frames", type=int, default=120)
    parser.add_argument("--dim", type=int, default=16)
    parser.add_argument("--threshold", type=float, default=0.18)
    parser.add_argument("--seed", type=int, default=None)
    parser.add_argument("--backend", choices=["torch", "triton"], default="torch")
    parser.add_argument("--device", default="cpu")
    parser.add_argument("--verbose", "-v", action="store_true")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    cfg = SimulationConfig(
        field=FieldConfig(dim=args.dim, threshold=args.threshold, seed=args.seed),
        compute=ComputeConfig(backend=args.backend, device=args.device),
    )
    run_headless(cfg, frames=args.frames)


if __name__ == "__main__":
    main()
