# src/planetsim/physics/sources.py
from __future__ import annotations

import torch
from pydantic import BaseModel, ConfigDict, Field


class HeatSourceConfig(BaseModel):
    """
    Configuration for the localized heat perturbation ("shoot" effect).

    Coordinates are in the field's normalized space [0, 1]^3.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    position: tuple[float, float, float] = Field(
        (0.5, 0.5, 0.95), description="Center of the deposit in normalized space"
    )
    sigma: float = Field(0.08, gt=0.0, description="Gaussian standard deviation")
    power: float = Field(
        0.05, ge=0.0, description="Energy deposited per simulated second"
    )


class GaussianHeatSource:
    """
    Gaussian energy deposit over the grid.

    Physical Model:
        E(p) = power * dt * w(p),  w(p) = exp(-|p - p0|^2 / (2 sigma^2)) / sum(w)
    The weights are normalized over the cells so the total deposit is
    exactly power * dt regardless of resolution.
    """

    def __init__(self, config: HeatSourceConfig, dim: int):
        self.config = config
        self.dim = dim
        self._weights = self._make_weights()

    def _make_weights(self) -> torch.Tensor:
        d = self.dim
        coords = (torch.arange(d, dtype=torch.float32) + 0.5) / d
        Z, Y, X = torch.meshgrid(coords, coords, coords, indexing="ij")
        x0, y0, z0 = self.config.position
        r2 = (X - x0) ** 2 + (Y - y0) ** 2 + (Z - z0) ** 2
        w = torch.exp(-r2 / (2.0 * self.config.sigma**2))
        return (w / (w.sum() + 1e-12)).reshape(-1)

    def energy(self, dt: float) -> torch.Tensor:
        """Per-cell energy for one tick, flat dim^3 tensor."""
        return self._weights * (self.config.power * dt)

    def deposit(self, out: torch.Tensor, dt: float) -> None:
        """Add one tick of energy into a flat host buffer in place."""
        out.add_(self.energy(dt).to(out.device))
