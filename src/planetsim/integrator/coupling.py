# src/planetsim/integrator/coupling.py
from __future__ import annotations

import logging

import torch

from planetsim.core.state import BufferPair, read_index, write_index
from planetsim.physics.backend import DeviceStepError, LaunchFn, TorchBackend

logger = logging.getLogger(__name__)


class FieldSimulationCoupling:
    """
    Binds double-buffered host state to a compute kernel.

    Each call to `step(frame_count)` reads generation `frame_count % 2` and
    writes generation `(frame_count + 1) % 2` of every quantity:

        kernel(mass_r, flow_r, temp_r, mass_w, flow_w, temp_w)

    The step is synchronous: it returns only after the write generation has
    been mapped back into host memory. While the dispatch is in flight all
    six generations are owned by the device and refuse host views.

    A failure during upload, dispatch or map-back poisons the coupling; it
    refuses every further step.
    """

    def __init__(
        self,
        backend: TorchBackend,
        launch: LaunchFn,
        pairs: tuple[BufferPair, BufferPair, BufferPair],
        device_bufs: tuple[tuple[torch.Tensor, torch.Tensor], ...],
        dims: tuple[int, int, int],
    ):
        self.backend = backend
        self._launch = launch
        self.pairs = pairs
        self._device_bufs = device_bufs
        self.dims = dims
        self._last_frame: int | None = None
        self._poisoned = False

    @classmethod
    def bind(
        cls,
        kernel_source: str,
        entry_point: str,
        mass_pair: BufferPair,
        flow_pair: BufferPair,
        temp_pair: BufferPair,
        dims: tuple[int, int, int],
        fixed_dt: float,
        cell_spacing: float,
        backend: TorchBackend | None = None,
    ) -> FieldSimulationCoupling:
        """
        Compile the kernel and allocate device buffers for both generations.

        Args:
            kernel_source (str): Module name or .py path holding the kernel.
            entry_point (str): Kernel function name.
            mass_pair (BufferPair): Mass, dims product scalars per generation.
            flow_pair (BufferPair): Flow, 3 scalars per cell.
            temp_pair (BufferPair): Temperature, one scalar per cell.
            dims (tuple[int, int, int]): Grid extent (x, y, z).
            fixed_dt (float): Tick length, compiled in as DT.
            cell_spacing (float): Cell distance, compiled in as DX (and DX3).
            backend (TorchBackend | None): Defaults to a CPU TorchBackend.

        Returns:
            FieldSimulationCoupling: Ready to step.

        Raises:
            KernelCompileError: Kernel source or entry point unusable.
            ComputeBackendError: Backend unavailable.
            ValueError: A buffer does not match `dims`.
        """
        if backend is None:
            backend = TorchBackend("cpu")

        n_cells = dims[0] * dims[1] * dims[2]
        for pair, expected in ((mass_pair, n_cells), (flow_pair, 3 * n_cells), (temp_pair, n_cells)):
            if len(pair) != expected:
                raise ValueError(
                    f"{pair.name} buffer has {len(pair)} scalars, expected {expected} for dims {dims}"
                )

        constants = {
            "DT": float(fixed_dt),
            "DX": float(cell_spacing),
            "DX3": float(cell_spacing) ** 3,
        }
        launch = backend.compile(kernel_source, entry_point, dims, constants)

        pairs = (mass_pair, flow_pair, temp_pair)
        device_bufs = tuple(
            (backend.alloc(pair[0].view()), backend.alloc(pair[1].view())) for pair in pairs
        )
        logger.info(
            f"Bound kernel {kernel_source}:{entry_point} on {backend.name} "
            f"(dims={dims}, DT={constants['DT']:.6f}, DX={constants['DX']:.6f})"
        )
        return cls(backend, launch, pairs, device_bufs, dims)

    @property
    def poisoned(self) -> bool:
        return self._poisoned

    def step(self, frame_count: int) -> None:
        """
        Run one simulation step.

        Side Effects:
            - Overwrites the write generation of mass, flow and temperature.
            - Leaves the read generation untouched.

        Args:
            frame_count (int): Strictly increasing tick counter.

        Raises:
            ValueError: `frame_count` did not increase.
            DeviceStepError: Dispatch or synchronization failed (now or earlier).
        """
        if self._poisoned:
            raise DeviceStepError("Coupling is poisoned by an earlier device failure")
        if self._last_frame is not None and frame_count <= self._last_frame:
            raise ValueError(
                f"frame_count must increase strictly: got {frame_count} after {self._last_frame}"
            )

        r, w = read_index(frame_count), write_index(frame_count)
        reads = [pair[r] for pair in self.pairs]
        writes = [pair[w] for pair in self.pairs]
        for generation in reads + writes:
            generation.acquire()

        try:
            for pair_bufs, read_gen, write_gen in zip(self._device_bufs, reads, writes):
                self.backend.upload(read_gen.host, pair_bufs[r])
                self.backend.upload(write_gen.host, pair_bufs[w])

            self._launch(
                [bufs[r] for bufs in self._device_bufs] + [bufs[w] for bufs in self._device_bufs]
            )

            # Mapping flushes the write generation to the host tensors
            for pair_bufs, write_gen in zip(self._device_bufs, writes):
                self.backend.map_read(pair_bufs[w], write_gen.host)
            self.backend.synchronize()
        except Exception as e:
            self._poisoned = True
            logger.error(f"Simulation step {frame_count} failed: {e}")
            raise DeviceStepError(f"Simulation step {frame_count} failed: {e}") from e

        for generation in reads + writes:
            generation.release()
        self._last_frame = frame_count

    def reset(self) -> None:
        """Forget the frame counter so a restarted run may begin at 0 again."""
        self._last_frame = None
