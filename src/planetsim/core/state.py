# src/planetsim/core/state.py
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

import torch


class BufferOwnershipError(RuntimeError):
    """A generation buffer was used by a party that does not own it."""


class Ownership(str, Enum):
    """Who may touch a generation buffer right now."""

    HOST = "host"  # idle, host logic may read and write
    DEVICE = "device"  # in flight, owned by a device operation


def read_index(frame_count: int) -> int:
    """Generation read by the tick with this frame count."""
    return frame_count % 2


def write_index(frame_count: int) -> int:
    """Generation written by the tick with this frame count."""
    return (frame_count + 1) % 2


@dataclass
class Generation:
    """
    One generation of one simulated quantity.

    Attributes:
        host (torch.Tensor): Flat float32 host tensor. Never reallocated.
        owner (Ownership): Current owner. Host views are refused while DEVICE.
    """

    host: torch.Tensor
    owner: Ownership = Ownership.HOST

    def acquire(self) -> torch.Tensor:
        """Hand the buffer to a device operation."""
        if self.owner is Ownership.DEVICE:
            raise BufferOwnershipError("generation is already owned by the device")
        self.owner = Ownership.DEVICE
        return self.host

    def release(self) -> None:
        """Return the buffer to host logic once device results are mapped back."""
        if self.owner is Ownership.HOST:
            raise BufferOwnershipError("generation is not owned by the device")
        self.owner = Ownership.HOST

    def view(self) -> torch.Tensor:
        """Host access; only valid while idle."""
        if self.owner is Ownership.DEVICE:
            raise BufferOwnershipError("generation is in flight on the device")
        return self.host


class BufferPair:
    """
    Two generations of one quantity, addressed by frame parity.

    Attributes:
        name (str): Quantity name, e.g. "mass".
        components (int): Scalars per cell (3 for flow, 1 otherwise).
    """

    def __init__(self, name: str, initial: torch.Tensor, components: int = 1):
        self.name = name
        self.components = components
        base = initial.detach().to(dtype=torch.float32, device="cpu").reshape(-1)
        self.generations = (Generation(base.clone()), Generation(base.clone()))

    def __len__(self) -> int:
        return self.generations[0].host.numel()

    def __getitem__(self, index: int) -> Generation:
        return self.generations[index]

    def read(self, frame_count: int) -> Generation:
        return self.generations[read_index(frame_count)]

    def write(self, frame_count: int) -> Generation:
        return self.generations[write_index(frame_count)]

    def fill_(self, values: torch.Tensor) -> None:
        """Overwrite both generations in place; sizes never change."""
        values = values.reshape(-1)
        if values.numel() != len(self):
            raise ValueError(
                f"{self.name}: expected {len(self)} values, got {values.numel()}"
            )
        for generation in self.generations:
            generation.view().copy_(values)


@dataclass
class SimulationBuffers:
    """
    Double-buffered mass / flow / temperature state for a dim^3 grid.

    Mass holds the signed-distance field the surface is extracted from.
    Flow stores one 3-vector per cell as abutting scalars (3 * dim^3).
    """

    dim: int
    mass: BufferPair
    flow: BufferPair
    temperature: BufferPair

    @classmethod
    def from_field(cls, values: torch.Tensor, dim: int) -> SimulationBuffers:
        """
        Allocate both generations of every quantity.

        Args:
            values (torch.Tensor): Initial field, dim^3 values.
            dim (int): Grid side length.

        Returns:
            SimulationBuffers: Mass initialized from `values`, flow and
                temperature zero.
        """
        n = dim**3
        if values.numel() != n:
            raise ValueError(f"expected {n} field values, got {values.numel()}")
        return cls(
            dim=dim,
            mass=BufferPair("mass", values),
            flow=BufferPair("flow", torch.zeros(3 * n), components=3),
            temperature=BufferPair("temperature", torch.zeros(n)),
        )

    @property
    def pairs(self) -> tuple[BufferPair, BufferPair, BufferPair]:
        return self.mass, self.flow, self.temperature

    def reset(self, values: torch.Tensor) -> None:
        """Reinitialize in place from a new field; flow and temperature go to zero."""
        self.mass.fill_(values)
        self.flow.fill_(torch.zeros(len(self.flow)))
        self.temperature.fill_(torch.zeros(len(self.temperature)))
