"""Static (LSCI) projection: time-integrated, log-scaled volume."""

import warnings
import torch

from .errors import DegenerateLogWarning
from .volume import VolumeLike, as_volume

# Value written where the time sum is <= 0 and the log is undefined
DEGENERATE_SENTINEL = float("-inf")


@torch.no_grad()
def project_static(buffer: VolumeLike) -> torch.Tensor:
    """Sum over time and take the natural log.

    Args:
        buffer: [X, Y, Z, T] accumulated volume

    Returns:
        projected: [X, Y, Z] in the buffer dtype, DEGENERATE_SENTINEL where
        the time sum is not positive
    """
    vol = as_volume(buffer, ndim=4)
    total = vol.sum(dim=-1, dtype=torch.float64)

    positive = total > 0
    projected = torch.full_like(total, DEGENERATE_SENTINEL)
    projected[positive] = torch.log(total[positive])

    n_bad = int(total.numel() - positive.sum().item())
    if n_bad:
        warnings.warn(
            f"{n_bad} of {total.numel()} voxels have a non-positive time sum; "
            f"set to {DEGENERATE_SENTINEL}",
            DegenerateLogWarning,
            stacklevel=2,
        )

    out_dtype = vol.dtype if vol.is_floating_point() else torch.float64
    return projected.to(out_dtype)


def to_display(projected: VolumeLike, vmin: float, vmax: float) -> torch.Tensor:
    """Clip a projection into a fixed display window (sentinels saturate to vmin)."""
    if vmax <= vmin:
        raise ValueError(f"Display range must satisfy vmin < vmax, got ({vmin}, {vmax})")
    vol = as_volume(projected)
    return torch.nan_to_num(vol, nan=vmin).clamp(vmin, vmax)


class StaticProjector:
    """Projection plus the display window used for LSCI images."""

    def __init__(self, vmin: float = -10.0, vmax: float = 1.0):
        if vmax <= vmin:
            raise ValueError(f"Display range must satisfy vmin < vmax, got ({vmin}, {vmax})")
        self.vmin = vmin
        self.vmax = vmax

    def project(self, buffer: VolumeLike) -> torch.Tensor:
        return project_static(buffer)

    def clip(self, projected: VolumeLike) -> torch.Tensor:
        return to_display(projected, self.vmin, self.vmax)

    def display(self, buffer: VolumeLike) -> torch.Tensor:
        return self.clip(project_static(buffer))
