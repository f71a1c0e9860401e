"""Sliding time-window (gate) sums emulating a gated SPAD detector."""

import torch
from typing import Iterator, Tuple

from .volume import VolumeLike, as_volume

STRATEGIES = ("incremental", "direct")


def num_frames(total_bins: int, width: int) -> int:
    """Number of gate offsets for a buffer with `total_bins` time bins.

    Offsets run 0..T-W-1 when W < T. A gate spanning the whole record yields
    a single frame, and a gate wider than the record yields none.
    """
    if width < total_bins:
        return total_bins - width
    if width == total_bins:
        return 1
    return 0


@torch.no_grad()
def gate_direct(buffer: VolumeLike, width: int, offset: int) -> torch.Tensor:
    """Brute-force sum of time bins [offset, offset + width)."""
    vol = as_volume(buffer, ndim=4)
    T = vol.shape[-1]
    if offset < 0 or offset + width > T:
        raise ValueError(f"Window [{offset}, {offset + width}) outside [0, {T})")
    return vol[..., offset:offset + width].sum(dim=-1, dtype=torch.float64).to(vol.dtype)


class GateWindowEngine:
    """Produce gated [X, Y, Z] volumes for every window offset, lazily and in order.

    Two strategies compute the same values:
      - "incremental": s_k = s_{k-1} - bin(k-1) + bin(k-1+W), O(N + W) bin
        reads. The running sum is kept in float64 and re-summed from scratch
        every `resync_every` offsets to bound subtract/add drift.
      - "direct": every window re-summed, O(N * W). Reference baseline.
    """

    def __init__(self, width: int, strategy: str = "incremental", resync_every: int = 64):
        if int(width) <= 0:
            raise ValueError(f"Gate width must be positive, got {width}")
        if strategy not in STRATEGIES:
            raise ValueError(f"Unknown gate strategy: {strategy}")
        if resync_every < 0:
            raise ValueError(f"resync_every must be >= 0, got {resync_every}")
        self.width = int(width)
        self.strategy = strategy
        self.resync_every = int(resync_every)

    def num_frames(self, total_bins: int) -> int:
        return num_frames(total_bins, self.width)

    def gate(self, buffer: VolumeLike) -> Iterator[Tuple[int, torch.Tensor]]:
        """Yield (offset, gated_volume) pairs in increasing offset order.

        Args:
            buffer: finished [X, Y, Z, T] accumulation buffer (read only)

        Yields:
            offset: window start bin
            gated: [X, Y, Z] sum over bins [offset, offset + W), buffer dtype
        """
        vol = as_volume(buffer, ndim=4)
        n = self.num_frames(vol.shape[-1])
        if n == 0:
            return iter(())
        if self.strategy == "direct":
            return self._gate_direct(vol, n)
        return self._gate_incremental(vol, n)

    def _gate_direct(self, vol: torch.Tensor, n: int) -> Iterator[Tuple[int, torch.Tensor]]:
        for offset in range(n):
            yield offset, gate_direct(vol, self.width, offset)

    def _gate_incremental(self, vol: torch.Tensor, n: int) -> Iterator[Tuple[int, torch.Tensor]]:
        W = self.width
        out_dtype = vol.dtype
        window = vol[..., :W].detach().sum(dim=-1, dtype=torch.float64)
        yield 0, window.to(out_dtype, copy=True)

        for offset in range(1, n):
            if self.resync_every and offset % self.resync_every == 0:
                window = vol[..., offset:offset + W].detach().sum(dim=-1, dtype=torch.float64)
            else:
                window.sub_(vol[..., offset - 1])
                window.add_(vol[..., offset - 1 + W])
            yield offset, window.to(out_dtype, copy=True)
