# src/planetsim/physics/backend.py
from __future__ import annotations

import importlib
import importlib.util
import logging
from collections.abc import Callable, Sequence
from pathlib import Path
from typing import Any

import torch

from planetsim.core.config import ComputeConfig
from planetsim.utils.device import resolve_device

logger = logging.getLogger(__name__)

LaunchFn = Callable[[Sequence[torch.Tensor]], None]


class ComputeBackendError(RuntimeError):
    """The compute backend cannot be used. Not retryable."""


class KernelCompileError(ComputeBackendError):
    """The kernel source could not be loaded or compiled."""


class DeviceStepError(ComputeBackendError):
    """A dispatch or map-back failed; buffers are no longer known-consistent."""


def load_kernel(kernel_source: str, entry_point: str) -> Any:
    """
    Load a kernel entry point from a module name or a .py file.

    Args:
        kernel_source (str): Dotted module name (e.g.
            "planetsim.physics.kernels") or a filesystem path to a .py file.
        entry_point (str): Attribute name of the kernel inside the module.

    Returns:
        Any: The kernel object (plain callable or Triton JIT function).

    Raises:
        KernelCompileError: If the source cannot be imported or does not
            define `entry_point`.
    """
    try:
        if kernel_source.endswith(".py") or "/" in kernel_source:
            path = Path(kernel_source).expanduser()
            spec = importlib.util.spec_from_file_location(
                f"planetsim_kernel_{path.stem}", path
            )
            if spec is None or spec.loader is None:
                raise KernelCompileError(f"Cannot load kernel file {path}")
            module = importlib.util.module_from_spec(spec)
            spec.loader.exec_module(module)
        else:
            module = importlib.import_module(kernel_source)
    except KernelCompileError:
        raise
    except Exception as e:
        raise KernelCompileError(
            f"Failed to compile kernel source {kernel_source!r}: {e}"
        ) from e

    kernel = getattr(module, entry_point, None)
    if kernel is None:
        raise KernelCompileError(
            f"Kernel source {kernel_source!r} has no entry point {entry_point!r}"
        )
    return kernel


class TorchBackend:
    """
    Runs torch-op kernels on a torch device.

    On CPU the device buffers are the host tensors themselves (zero copy).
    On CUDA every generation gets its own device tensor and results are
    mapped back with a blocking copy.
    """

    name = "torch"
    default_kernel_source = "planetsim.physics.kernels"

    def __init__(self, device: str = "cpu"):
        try:
            self.device = torch.device(resolve_device(device))
        except RuntimeError as e:
            raise ComputeBackendError(str(e)) from e

    @property
    def zero_copy(self) -> bool:
        return self.device.type == "cpu"

    def compile(
        self,
        kernel_source: str,
        entry_point: str,
        dims: tuple[int, int, int],
        constants: dict[str, float],
    ) -> LaunchFn:
        kernel = load_kernel(kernel_source, entry_point)
        if not callable(kernel):
            raise KernelCompileError(f"{entry_point!r} in {kernel_source!r} is not callable")

        def launch(buffers: Sequence[torch.Tensor]) -> None:
            kernel(*buffers, dims=dims, **constants)

        return launch

    def alloc(self, host: torch.Tensor) -> torch.Tensor:
        if self.zero_copy:
            return host
        return torch.empty_like(host, device=self.device)

    def upload(self, host: torch.Tensor, device_buf: torch.Tensor) -> None:
        if device_buf is not host:
            device_buf.copy_(host)

    def map_read(self, device_buf: torch.Tensor, host: torch.Tensor) -> None:
        """Blocking copy of device results into the host tensor."""
        if device_buf is not host:
            host.copy_(device_buf)

    def synchronize(self) -> None:
        if self.device.type == "cuda":
            torch.cuda.synchronize(self.device)


class TritonBackend(TorchBackend):
    """Launches Triton JIT kernels over the flat cell range on CUDA."""

    name = "triton"
    default_kernel_source = "planetsim.physics.triton_kernels"
    BLOCK_SIZE = 256

    def __init__(self, device: str = "cuda"):
        if not torch.cuda.is_available():
            raise ComputeBackendError("Triton backend requires CUDA")
        try:
            import triton  # noqa: F401
        except ImportError as e:
            raise ComputeBackendError(
                "Triton backend requested but 'triton' is not installed."
            ) from e
        super().__init__("cuda" if device in ("auto", "cpu") else device)

    def compile(
        self,
        kernel_source: str,
        entry_point: str,
        dims: tuple[int, int, int],
        constants: dict[str, float],
    ) -> LaunchFn:
        import triton
        from triton.runtime import JITFunction

        kernel = load_kernel(kernel_source, entry_point)
        if not isinstance(kernel, JITFunction):
            raise KernelCompileError(
                f"{entry_point!r} in {kernel_source!r} is not a Triton JIT function"
            )

        nx, ny, nz = dims
        if not nx == ny == nz:
            raise KernelCompileError(f"Triton kernels need a cubic grid, got {dims}")
        n_cells = nx * ny * nz
        grid = (triton.cdiv(n_cells, self.BLOCK_SIZE),)

        def launch(buffers: Sequence[torch.Tensor]) -> None:
            kernel[grid](
                *buffers, nx, n_cells, BLOCK_SIZE=self.BLOCK_SIZE, num_warps=4, **constants
            )

        return launch


def build_backend(cfg: ComputeConfig) -> TorchBackend:
    """Create the backend named in the config."""
    if cfg.backend == "triton":
        backend = TritonBackend(cfg.device)
    else:
        backend = TorchBackend(cfg.device)
    logger.info(f"Compute backend: {backend.name} on {backend.device}")
    return backend
