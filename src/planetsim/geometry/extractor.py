# src/planetsim/geometry/extractor.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol

import numpy as np
import torch
from skimage import measure

logger = logging.getLogger(__name__)

# Floats per vertex record: position (3) + normal (3)
VERTEX_STRIDE = 6


@dataclass(frozen=True)
class Mesh:
    """
    Triangle mesh handed to the renderer.

    Attributes:
        vertices (np.ndarray): float32, shape (N, 6), rows are
            (px, py, pz, nx, ny, nz).
        indices (np.ndarray): uint32, shape (3 * T,), triangle list.
    """

    vertices: np.ndarray
    indices: np.ndarray

    @classmethod
    def empty(cls) -> Mesh:
        return cls(
            np.zeros((0, VERTEX_STRIDE), dtype=np.float32),
            np.zeros(0, dtype=np.uint32),
        )

    @property
    def positions(self) -> np.ndarray:
        return self.vertices[:, :3]

    @property
    def normals(self) -> np.ndarray:
        return self.vertices[:, 3:]

    def __len__(self) -> int:
        return self.vertices.shape[0]


class GradientSampler(Protocol):
    """What the extractor needs from its source."""

    def sample_points(self, points: torch.Tensor) -> torch.Tensor: ...

    def normals(self, points: torch.Tensor) -> torch.Tensor: ...


class SurfaceExtractor(Protocol):
    """Polygonizes the zero level set of a source into a fresh mesh."""

    def extract(self, source: GradientSampler) -> Mesh: ...


class MarchingCubesExtractor:
    """
    Marching cubes over a regular lattice in normalized space.

    The source is sampled at `resolution` points per axis spanning [0, 1],
    the zero isosurface is polygonized with scikit-image and every vertex
    gets the source's gradient normal. Output positions are in [0, 1]^3.
    """

    def __init__(self, resolution: int, level: float = 0.0):
        if resolution < 2:
            raise ValueError(f"resolution must be >= 2, got {resolution}")
        self.resolution = resolution
        self.level = level
        axis = torch.linspace(0.0, 1.0, resolution, dtype=torch.float32)
        X, Y, Z = torch.meshgrid(axis, axis, axis, indexing="ij")
        # Lattice indexed [x, y, z] so marching-cubes vertex columns are (x, y, z)
        self._lattice = torch.stack((X, Y, Z), dim=-1).reshape(-1, 3)

    def extract(self, source: GradientSampler) -> Mesh:
        n = self.resolution
        volume = source.sample_points(self._lattice).reshape(n, n, n)
        volume = volume.detach().cpu().numpy().astype(np.float32)
        # Non-finite cells count as outside
        outside = np.float32(self.level + 1.0)
        volume = np.nan_to_num(
            volume, nan=outside, posinf=outside, neginf=np.float32(self.level - 1.0)
        )

        spacing = 1.0 / (n - 1)
        try:
            verts, faces, _, _ = measure.marching_cubes(
                volume, level=self.level, spacing=(spacing, spacing, spacing)
            )
        except (ValueError, RuntimeError):
            # No surface crosses the grid at this level
            return Mesh.empty()

        verts = np.ascontiguousarray(verts, dtype=np.float32)
        normals = source.normals(torch.from_numpy(verts)).cpu().numpy().astype(np.float32)
        vertices = np.concatenate((verts, normals), axis=1)
        indices = faces.astype(np.uint32).reshape(-1)
        return Mesh(vertices, indices)
