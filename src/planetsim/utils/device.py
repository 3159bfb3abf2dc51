import logging

import torch

logger = logging.getLogger(__name__)


def resolve_device(requested: str = "auto") -> str:
    """
    Turn a device request into a concrete torch device string.

    "auto" picks CUDA when available, anything else is passed through
    after checking that CUDA exists if it was asked for.
    """
    if requested == "auto":
        device = "cuda" if torch.cuda.is_available() else "cpu"
    else:
        device = requested

    if device.startswith("cuda"):
        if not torch.cuda.is_available():
            raise RuntimeError(f"Device {device!r} requested but CUDA is not available")
        logger.info(
            f"Device: {device} ({torch.cuda.get_device_name(torch.device(device))}, "
            f"PyTorch {torch.__version__})"
        )
    else:
        logger.info(f"Device: {device} (PyTorch {torch.__version__})")
    return device
