from __future__ import annotations

import time
from dataclasses import dataclass

import torch


@dataclass
class ProfileResult:
    name: str
    elapsed_ms: float
    max_vram_mb: float
    iterations: int = 1
    success: bool = True

    @property
    def per_iteration_ms(self) -> float:
        return self.elapsed_ms / max(self.iterations, 1)


class PerformanceTracker:
    """
    Context manager timing a block of simulation ticks.

    On CUDA it uses events and reports peak VRAM, on CPU it falls back to
    wall-clock time.
    """

    def __init__(self, name: str, device: str = "cpu", iterations: int = 1):
        self.name = name
        self.device = device
        self.iterations = iterations
        cuda = device.startswith("cuda")
        self.start_event = torch.cuda.Event(enable_timing=True) if cuda else None
        self.end_event = torch.cuda.Event(enable_timing=True) if cuda else None
        self.start_time = 0.0
        self.result: ProfileResult | None = None

    def __enter__(self) -> PerformanceTracker:
        if self.start_event is not None:
            torch.cuda.reset_peak_memory_stats()
            self.start_event.record()
        else:
            self.start_time = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self.start_event is not None and self.end_event is not None:
            self.end_event.record()
            torch.cuda.synchronize()
            elapsed_ms = self.start_event.elapsed_time(self.end_event)
            max_vram = torch.cuda.max_memory_allocated() / (1024 * 1024)
        else:
            elapsed_ms = (time.perf_counter() - self.start_time) * 1000.0
            max_vram = 0.0

        self.result = ProfileResult(
            name=self.name,
            elapsed_ms=elapsed_ms,
            max_vram_mb=max_vram,
            iterations=self.iterations,
            success=(exc_type is None),
        )
