# src/planetsim/core/gradient.py
from __future__ import annotations

from typing import Protocol

import torch

from planetsim.core.field import ScalarField, sample_spacing

# Normal used where the gradient vanishes (flat regions).
FALLBACK_NORMAL = (0.0, 1.0, 0.0)

_DEGENERATE_NORM = 1e-12


class ScalarSource(Protocol):
    """Anything that can be sampled in normalized space."""

    def sample(self, x: float, y: float, z: float) -> float: ...

    def sample_points(self, points: torch.Tensor) -> torch.Tensor: ...


class CentralDifference:
    r"""
    Gradient estimator wrapping a scalar source.

    Operator:
        \partial_a f(p) \approx (f(p + \epsilon \hat{a}) - f(p - \epsilon \hat{a})) / (2 \epsilon)

    Sample points are clamped into [0, 1]^3 before they reach the wrapped
    source. The normal is the normalized gradient, or FALLBACK_NORMAL where
    the gradient magnitude is degenerate.

    Attributes:
        epsilon (float): Sample spacing in normalized space.
    """

    def __init__(self, source: ScalarSource, epsilon: float):
        if epsilon <= 0.0:
            raise ValueError(f"epsilon must be > 0, got {epsilon}")
        self._source = source
        self.epsilon = epsilon

    @classmethod
    def for_field(cls, field: ScalarField) -> CentralDifference:
        """Wrap a field with epsilon = one grid cell, 1 / (dim - 2)."""
        return cls(field, sample_spacing(field.dim))

    @property
    def inner(self) -> ScalarSource:
        return self._source

    def replace_inner(self, source: ScalarSource) -> None:
        self._source = source

    def sample(self, x: float, y: float, z: float) -> float:
        return self._source.sample(x, y, z)

    def sample_points(self, points: torch.Tensor) -> torch.Tensor:
        return self._source.sample_points(points)

    def gradients(self, points: torch.Tensor) -> torch.Tensor:
        """
        Central-difference gradients for a batch of points.

        Args:
            points (torch.Tensor): Normalized coordinates, shape (N, 3).

        Returns:
            torch.Tensor: float32 gradients, shape (N, 3).
        """
        points = points.to(torch.float32)
        eps = self.epsilon
        grads = []
        for axis in range(3):
            offset = torch.zeros(3, dtype=points.dtype, device=points.device)
            offset[axis] = eps
            hi = self._source.sample_points(torch.clamp(points + offset, 0.0, 1.0))
            lo = self._source.sample_points(torch.clamp(points - offset, 0.0, 1.0))
            grads.append((hi - lo).to(torch.float32) / (2.0 * eps))
        return torch.stack(grads, dim=-1)

    def normals(self, points: torch.Tensor) -> torch.Tensor:
        """
        Unit normals for a batch of points; never NaN, never zero-length.

        Returns:
            torch.Tensor: float32 normals, shape (N, 3).
        """
        grads = torch.nan_to_num(self.gradients(points), nan=0.0, posinf=0.0, neginf=0.0)
        norm = torch.linalg.vector_norm(grads, dim=-1, keepdim=True)
        fallback = torch.tensor(FALLBACK_NORMAL, dtype=grads.dtype, device=grads.device)
        degenerate = norm <= _DEGENERATE_NORM
        unit = grads / torch.where(degenerate, torch.ones_like(norm), norm)
        return torch.where(degenerate, fallback.expand_as(unit), unit)

    def gradient(self, x: float, y: float, z: float) -> tuple[float, float, float]:
        g = self.gradients(torch.tensor([[x, y, z]], dtype=torch.float32))[0]
        return float(g[0]), float(g[1]), float(g[2])

    def normal(self, x: float, y: float, z: float) -> tuple[float, float, float]:
        n = self.normals(torch.tensor([[x, y, z]], dtype=torch.float32))[0]
        return float(n[0]), float(n[1]), float(n[2])
