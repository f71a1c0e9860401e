"""Volume conversion helpers shared by the core stages."""

import numpy as np
import torch
from typing import Optional, Union

VolumeLike = Union[torch.Tensor, np.ndarray]

_DTYPES = {
    "float16": torch.float16,
    "float32": torch.float32,
    "float64": torch.float64,
}


def resolve_dtype(dtype: Union[str, torch.dtype]) -> torch.dtype:
    """Map a config dtype name to a torch dtype."""
    if isinstance(dtype, torch.dtype):
        return dtype
    if dtype not in _DTYPES:
        raise ValueError(f"Unknown dtype: {dtype}")
    return _DTYPES[dtype]


def as_volume(
    x: VolumeLike,
    ndim: Optional[int] = None,
    dtype: Optional[torch.dtype] = None,
    device: Optional[Union[str, torch.device]] = None,
) -> torch.Tensor:
    """Convert an array or tensor to a tensor, optionally checking rank.

    No copy is made when `x` already is a tensor with matching dtype/device.
    """
    if isinstance(x, np.ndarray):
        t = torch.from_numpy(np.ascontiguousarray(x))
    elif isinstance(x, torch.Tensor):
        t = x
    else:
        t = torch.as_tensor(x)

    if ndim is not None and t.dim() != ndim:
        raise ValueError(f"Expected a {ndim}-D volume, got shape {tuple(t.shape)}")

    if dtype is not None or device is not None:
        t = t.to(device=device if device is not None else t.device, dtype=dtype if dtype is not None else t.dtype)
    return t


def to_numpy(x: VolumeLike) -> np.ndarray:
    """Host numpy view/copy of a volume."""
    if isinstance(x, torch.Tensor):
        return x.detach().cpu().numpy()
    return np.asarray(x)
