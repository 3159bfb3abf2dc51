# src/planetsim/core/field.py
from __future__ import annotations

import math

import torch

# Normalized -> grid mapping scales by (dim - GRID_INDEX_OFFSET) rather than
# dim. Empirical correction for the discretization bias of the surface
# extraction; not derived for all resolutions. Every use of the offset goes
# through grid_index / grid_indices / sample_spacing below.
GRID_INDEX_OFFSET = 2


def grid_index(coord: float, dim: int) -> int:
    """
    Map one normalized coordinate to a grid index.

    index = floor(coord * (dim - GRID_INDEX_OFFSET)), clamped to [0, dim - 1].
    Non-finite input never raises: NaN maps to 0, +/-inf to the borders.

    Args:
        coord (float): Coordinate in normalized space, nominally [0, 1].
        dim (int): Grid side length.

    Returns:
        int: Index in [0, dim - 1].
    """
    if math.isnan(coord):
        return 0
    scaled = min(max(coord * (dim - GRID_INDEX_OFFSET), 0.0), float(dim - 1))
    return int(math.floor(scaled))


def grid_indices(points: torch.Tensor, dim: int) -> torch.Tensor:
    """
    Vectorized `grid_index` for a batch of points.

    Args:
        points (torch.Tensor): Normalized coordinates, shape (..., 3).
        dim (int): Grid side length.

    Returns:
        torch.Tensor: int64 indices with the same shape, each in [0, dim - 1].
    """
    scaled = torch.nan_to_num(points.to(torch.float64), nan=0.0, posinf=1e9, neginf=-1e9)
    scaled = torch.clamp(scaled * (dim - GRID_INDEX_OFFSET), 0.0, float(dim - 1))
    return torch.floor(scaled).to(torch.int64)


def sample_spacing(dim: int) -> float:
    """Width of one grid cell in normalized space, 1 / (dim - GRID_INDEX_OFFSET)."""
    return 1.0 / (dim - GRID_INDEX_OFFSET)


def generate_values(
    dim: int,
    threshold: float,
    jitter_amplitude: float = 0.0,
    generator: torch.Generator | None = None,
) -> torch.Tensor:
    """
    Fill a dim^3 grid with ||p - center||^2 - threshold + jitter.

    Cell (x, y, z) sits at p = ((x + 0.5) / dim, (y + 0.5) / dim, (z + 0.5) / dim)
    and the center is (0.5, 0.5, 0.5).

    Returns:
        torch.Tensor: Flat float32 tensor of length dim^3, cell (x, y, z) at
            index z * dim^2 + y * dim + x.
    """
    if dim < 3:
        raise ValueError(f"Scalar field dimension must be >= 3, got {dim}")

    coords = (torch.arange(dim, dtype=torch.float32) + 0.5) / dim
    Z, Y, X = torch.meshgrid(coords, coords, coords, indexing="ij")
    dist2 = (X - 0.5) ** 2 + (Y - 0.5) ** 2 + (Z - 0.5) ** 2
    values = dist2 - threshold

    if jitter_amplitude > 0.0:
        noise = torch.rand((dim, dim, dim), generator=generator, dtype=torch.float32)
        values = values + (noise * 2.0 - 1.0) * jitter_amplitude

    return values.reshape(-1).contiguous()


class ScalarField:
    """
    Dense cubic grid of signed-distance-like float32 values.

    The field does not own a copy of its data: it is a view over a flat
    host tensor, so the simulation coupling can mutate the values in place
    and every sampler sees the result.

    Attributes:
        values (torch.Tensor): Flat float32 tensor of length dim^3.
        dim (int): Grid side length.
    """

    def __init__(self, values: torch.Tensor, dim: int):
        if dim < 3:
            raise ValueError(f"Scalar field dimension must be >= 3, got {dim}")
        if values.numel() != dim**3:
            raise ValueError(
                f"Scalar field of dim {dim} needs {dim**3} values, got {values.numel()}"
            )
        self.values = values.view(-1)
        self.dim = dim

    @classmethod
    def new(
        cls,
        dim: int,
        threshold: float,
        jitter_amplitude: float = 0.0,
        seed: int | None = None,
    ) -> ScalarField:
        """
        Generate a new planet field.

        Args:
            dim (int): Grid side length, >= 3.
            threshold (float): Squared planet radius in normalized space.
            jitter_amplitude (float): Bound of the uniform surface jitter.
            seed (int | None): Fixed seed for a reproducible texture.

        Returns:
            ScalarField: Field owning freshly generated values.
        """
        generator = None
        if seed is not None:
            generator = torch.Generator().manual_seed(seed)
        return cls(generate_values(dim, threshold, jitter_amplitude, generator), dim)

    def __len__(self) -> int:
        return self.values.numel()

    def flat_index(self, coord: tuple[int, int, int]) -> int:
        """Flat storage index of a grid coordinate, clamped per axis."""
        d = self.dim
        x, y, z = (min(max(int(c), 0), d - 1) for c in coord)
        return d * d * z + d * y + x

    def sample(self, x: float, y: float, z: float) -> float:
        """Value at a normalized-space point (nearest cell, clamped)."""
        d = self.dim
        ix, iy, iz = grid_index(x, d), grid_index(y, d), grid_index(z, d)
        return float(self.values[d * d * iz + d * iy + ix])

    def sample_points(self, points: torch.Tensor) -> torch.Tensor:
        """
        Batched `sample`.

        Args:
            points (torch.Tensor): Normalized coordinates, shape (N, 3) as (x, y, z).

        Returns:
            torch.Tensor: Values, shape (N,).
        """
        d = self.dim
        idx = grid_indices(points, d).to(self.values.device)
        flat = d * d * idx[..., 2] + d * idx[..., 1] + idx[..., 0]
        return self.values[flat]

    def __getitem__(self, coord: tuple[int, int, int]) -> float:
        return float(self.values[self.flat_index(coord)])

    def elem_mut(self, coord: tuple[int, int, int]) -> torch.Tensor:
        """
        Writable 0-d view of one cell.

        The caller must not read the field concurrently while mutating it.
        """
        return self.values[self.flat_index(coord)]

    def center(self) -> float:
        """
        Center of the sampled window expressed in the field's physical space.

        Samplers address the grid through a (dim - GRID_INDEX_OFFSET) scale, so a
        sampler position u lies at physical position u * 2 * center(). The
        pipeline uses this to put extracted vertices back around the physical
        midpoint 0.5. Always in [0, 0.5].
        """
        return 0.5 * (self.dim - GRID_INDEX_OFFSET) / self.dim
