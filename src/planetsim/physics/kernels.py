# src/planetsim/physics/kernels.py
"""
Reference compute kernels written as torch tensor ops.

Every kernel takes the six buffers positionally, read generation first:
    (mass_r, flow_r, temp_r, mass_w, flow_w, temp_w)
plus keyword launch constants `dims`, `DT`, `DX` and `DX3`, and writes its
results into the write buffers in place.
"""
from __future__ import annotations

import torch
import torch.nn.functional as F

# Stylized material constants, shared with the Triton kernels.
DIFFUSIVITY = 0.02
COOLING = 0.05
HEAT_CAPACITY = 1.0
MELT_POINT = 0.5
MELT_RATE = 0.5
BUOYANCY = 0.5
DRAG = 0.5
MAX_FLOW = 1.0
# Melted cells saturate here; also bounds the field fed to the extractor
MASS_LIMIT = 1.0


def _grid(buf: torch.Tensor, dims: tuple[int, int, int]) -> torch.Tensor:
    """Flat buffer -> (z, y, x) grid."""
    nx, ny, nz = dims
    return buf.view(nz, ny, nx)


def _pad(f: torch.Tensor) -> torch.Tensor:
    # Replicate padding: out-of-range neighbours read the border cell (zero flux).
    return F.pad(f[None, None], (1, 1, 1, 1, 1, 1), mode="replicate")[0, 0]


def laplacian(f: torch.Tensor, dx: float) -> torch.Tensor:
    """7-point Laplacian of a (z, y, x) grid with Neumann borders."""
    p = _pad(f)
    c = p[1:-1, 1:-1, 1:-1]
    neighbours = (
        p[1:-1, 1:-1, :-2]
        + p[1:-1, 1:-1, 2:]
        + p[1:-1, :-2, 1:-1]
        + p[1:-1, 2:, 1:-1]
        + p[:-2, 1:-1, 1:-1]
        + p[2:, 1:-1, 1:-1]
    )
    return (neighbours - 6.0 * c) / (dx * dx)


def gradient(f: torch.Tensor, dx: float) -> torch.Tensor:
    """
    Central-difference gradient of a (z, y, x) grid.

    Returns:
        torch.Tensor: Shape (z, y, x, 3), components ordered (x, y, z).
    """
    p = _pad(f)
    gx = (p[1:-1, 1:-1, 2:] - p[1:-1, 1:-1, :-2]) / (2.0 * dx)
    gy = (p[1:-1, 2:, 1:-1] - p[1:-1, :-2, 1:-1]) / (2.0 * dx)
    gz = (p[2:, 1:-1, 1:-1] - p[:-2, 1:-1, 1:-1]) / (2.0 * dx)
    return torch.stack((gx, gy, gz), dim=-1)


def upwind_gradient(f: torch.Tensor, v: torch.Tensor, dx: float) -> torch.Tensor:
    """
    One-sided gradient of a (z, y, x) grid taken from the upstream side.

    Backward difference where v > 0, forward difference otherwise.

    Args:
        f (torch.Tensor): Advected quantity, shape (z, y, x).
        v (torch.Tensor): Flow, shape (z, y, x, 3), components ordered (x, y, z).
        dx (float): Cell spacing.

    Returns:
        torch.Tensor: Shape (z, y, x, 3).
    """
    p = _pad(f)
    c = p[1:-1, 1:-1, 1:-1]
    backward = torch.stack(
        (c - p[1:-1, 1:-1, :-2], c - p[1:-1, :-2, 1:-1], c - p[:-2, 1:-1, 1:-1]), dim=-1
    )
    forward = torch.stack(
        (p[1:-1, 1:-1, 2:] - c, p[1:-1, 2:, 1:-1] - c, p[2:, 1:-1, 1:-1] - c), dim=-1
    )
    return torch.where(v > 0.0, backward, forward) / dx


def stable_limits(DT: float, DX: float) -> tuple[float, float]:
    """
    Diffusivity and flow speed actually used for a given DT / DX.

    Returns:
        tuple[float, float]: (min(DIFFUSIVITY, DX^2 / (6 DT)),
            min(MAX_FLOW, DX / (3 DT))). The first keeps the explicit
            diffusion number <= 1/6, the second keeps the summed Courant
            number of the upwind advection <= 1.
    """
    return min(DIFFUSIVITY, DX * DX / (6.0 * DT)), min(MAX_FLOW, DX / (3.0 * DT))


@torch.no_grad()
def liquid_step(
    mass_r: torch.Tensor,
    flow_r: torch.Tensor,
    temp_r: torch.Tensor,
    mass_w: torch.Tensor,
    flow_w: torch.Tensor,
    temp_w: torch.Tensor,
    *,
    dims: tuple[int, int, int],
    DT: float,
    DX: float,
    DX3: float,
) -> None:
    """
    One explicit step of the stylized melt model.

    Update rules (T temperature, v flow, m mass, inj = entry value of temp_w,
    D and V from `stable_limits`):
        T' = T + DT * (D * lap(T) - COOLING * T) + inj / (HEAT_CAPACITY * DX3)
        v' = clamp(v * (1 - DT * DRAG) - DT * BUOYANCY * grad(T), +/-V)
        m' = clamp(m + DT * MELT_RATE * max(T - MELT_POINT, 0) - DT * (v . upwind_grad(m)),
                   +/-MASS_LIMIT)

    The entry value of temp_w is the heat injection channel: energy per cell
    deposited by the host before the dispatch.
    """
    nx, ny, nz = dims
    diffusivity, v_limit = stable_limits(DT, DX)
    T = _grid(temp_r, dims)
    m = _grid(mass_r, dims)
    v = torch.clamp(flow_r.view(nz, ny, nx, 3), -v_limit, v_limit)
    injected = _grid(temp_w, dims).clone()

    T_new = (
        T
        + DT * (diffusivity * laplacian(T, DX) - COOLING * T)
        + injected / (HEAT_CAPACITY * DX3)
    )

    v_new = torch.clamp(
        v * (1.0 - DT * DRAG) - DT * BUOYANCY * gradient(T, DX), -v_limit, v_limit
    )

    advection = (v * upwind_gradient(m, v, DX)).sum(dim=-1)
    m_new = torch.clamp(
        m + DT * MELT_RATE * torch.clamp(T - MELT_POINT, min=0.0) - DT * advection,
        -MASS_LIMIT,
        MASS_LIMIT,
    )

    temp_w.copy_(T_new.reshape(-1))
    flow_w.copy_(v_new.reshape(-1))
    mass_w.copy_(m_new.reshape(-1))


@torch.no_grad()
def copy_step(
    mass_r: torch.Tensor,
    flow_r: torch.Tensor,
    temp_r: torch.Tensor,
    mass_w: torch.Tensor,
    flow_w: torch.Tensor,
    temp_w: torch.Tensor,
    *,
    dims: tuple[int, int, int],
    DT: float,
    DX: float,
    DX3: float,
) -> None:
    """Identity step: every write buffer becomes a copy of its read buffer."""
    mass_w.copy_(mass_r)
    flow_w.copy_(flow_r)
    temp_w.copy_(temp_r)
