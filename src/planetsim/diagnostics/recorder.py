import logging
import time

import torch

from planetsim.core.state import SimulationBuffers
from planetsim.schemas.diagnostics import DiagnosticsConfig

logger = logging.getLogger(__name__)


class FieldDiagnostics:
    """Records per-tick field metrics and performs stability checks."""

    def __init__(self, cfg: DiagnosticsConfig):
        self.cfg = cfg
        self.tick_start_time = 0.0

    def on_tick_start(self) -> None:
        self.tick_start_time = time.perf_counter()

    def on_tick_end(
        self, frame: int, buffers: SimulationBuffers, generation: int
    ) -> dict[str, float]:
        """Compute metrics for the generation the tick just produced.

        Args:
            frame: Frame count of the completed tick
            buffers: Simulation state
            generation: Index of the freshly written generation
        """
        metrics: dict[str, float] = {}

        if not self.cfg.enabled:
            return metrics

        mass = buffers.mass[generation].view()
        temp = buffers.temperature[generation].view()
        flow = buffers.flow[generation].view().view(-1, 3)

        metrics["field/mass_min"] = float(mass.min())
        metrics["field/mass_max"] = float(mass.max())
        metrics["field/mass_mean"] = float(mass.mean())
        metrics["field/inside_cells"] = float((mass < 0.0).sum())
        metrics["sim/temperature_max"] = float(temp.max())
        metrics["sim/temperature_mean"] = float(temp.mean())
        metrics["sim/flow_speed_max"] = float(torch.linalg.vector_norm(flow, dim=-1).max())

        # Stability Checks
        if self.cfg.check_nan_inf:
            nan_count = 0
            inf_count = 0
            for t in (mass, temp, flow):
                nan_count += int(torch.isnan(t).sum().item())
                inf_count += int(torch.isinf(t).sum().item())
            metrics["stability/nan_count"] = nan_count
            metrics["stability/inf_count"] = inf_count

            if nan_count > 0 or inf_count > 0:
                if self.cfg.strict:
                    raise RuntimeError(
                        f"Stability check failed at frame {frame}: NaN={nan_count}, Inf={inf_count}"
                    )
                logger.warning(
                    f"Non-finite state at frame {frame}: NaN={nan_count}, Inf={inf_count}"
                )

        # Performance
        tick_duration = time.perf_counter() - self.tick_start_time
        metrics["perf/tick_time_ms"] = tick_duration * 1000.0

        warn_flag = 0
        for name, limit in self.cfg.thresholds.items():
            val = metrics.get(name)
            if val is not None and val > limit:
                warn_flag = 1
                logger.warning(f"Metric {name} exceeded threshold: {val} > {limit}")
                if self.cfg.strict:
                    raise RuntimeError(
                        f"Metric {name} exceeded threshold: {val} > {limit}"
                    )

        metrics["stability/warn_flag"] = warn_flag

        if frame % self.cfg.log_every_n_steps == 0:
            logger.debug(f"frame {frame}: {metrics}")

        return metrics
