# File: occlusion_xai/utils/device_utils.py

import warnings

import torch

from occlusion_xai.utils.echo import echo_line


def select_device(user_device: str = "auto") -> torch.device:
    """
    Resolve the device the torch classifier adapter runs on.

    Args:
        user_device: 'auto', 'cpu' or 'cuda' (a torch.device is accepted as well).

    Returns:
        A torch.device object.
    """
    if isinstance(user_device, torch.device):
        return user_device

    device_name = str(user_device).lower()
    cuda_ok = torch.cuda.is_available()

    if device_name in ("auto", "cuda") and cuda_ok:
        device = torch.device("cuda")
    elif device_name == "cuda":
        # Requested But Not Available
        warnings.warn("CUDA device explicitly requested but not available. Using CPU.", UserWarning)
        device = torch.device("cpu")
    elif device_name in ("auto", "cpu"):
        device = torch.device("cpu")
    else:
        raise ValueError(f"Unknown device: {user_device!r}. Use auto|cpu|cuda.")

    echo_line("DEVICE", {"requested": device_name, "device": device.type})
    return device
