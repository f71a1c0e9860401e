"""VolumeAccumulator: in-place summation of per-pulse Jacobian volumes."""

import threading
import numpy as np
import torch
from typing import List, Sequence, Tuple, Union

from .errors import ShapeMismatch
from .volume import VolumeLike, as_volume, resolve_dtype


class VolumeAccumulator:
    """Owns one zero-initialised [X, Y, Z, T] buffer and sums contributions into it.

    The buffer is allocated once. `add` either applies the whole contribution
    or leaves the buffer untouched, and calls are serialised so several
    producers may share one accumulator.
    """

    def __init__(
        self,
        shape: Sequence[int],
        dtype: Union[str, torch.dtype] = torch.float32,
        device: str = "cpu",
    ):
        shape = tuple(int(s) for s in shape)
        if len(shape) != 4 or any(s <= 0 for s in shape):
            raise ValueError(f"Accumulator shape must be 4 positive ints (X, Y, Z, T), got {shape}")

        self._buffer = torch.zeros(shape, dtype=resolve_dtype(dtype), device=torch.device(device))
        self._lock = threading.Lock()
        self._count = 0

    @property
    def shape(self) -> Tuple[int, int, int, int]:
        return tuple(self._buffer.shape)

    @property
    def dtype(self) -> torch.dtype:
        return self._buffer.dtype

    @property
    def device(self) -> torch.device:
        return self._buffer.device

    @property
    def count(self) -> int:
        """Number of completed `add` calls."""
        return self._count

    @torch.no_grad()
    def add(self, contribution: VolumeLike) -> None:
        """Element-wise add `contribution` into the buffer.

        Raises:
            ShapeMismatch: contribution shape differs from the buffer shape.
        """
        if tuple(contribution.shape) != self.shape:
            raise ShapeMismatch(self.shape, contribution.shape)

        # Convert before taking the lock: a failed cast must not touch the buffer
        contrib = as_volume(contribution, dtype=self._buffer.dtype, device=self._buffer.device)

        with self._lock:
            self._buffer.add_(contrib)
            self._count += 1

    def merge(self, other: "VolumeAccumulator") -> "VolumeAccumulator":
        """Fold another accumulator's total (and pulse count) into this one."""
        if other.shape != self.shape:
            raise ShapeMismatch(self.shape, other.shape)

        contrib = other.snapshot().to(dtype=self._buffer.dtype, device=self._buffer.device)
        with self._lock:
            self._buffer.add_(contrib)
            self._count += other.count
        return self

    def snapshot(self) -> torch.Tensor:
        """Read-only view of the accumulated buffer.

        No copy is made; consumers must not modify the returned tensor.
        """
        return self._buffer.detach()

    def to_numpy(self) -> np.ndarray:
        """Host copy of the buffer for persistence."""
        return self._buffer.detach().cpu().numpy().copy()

    def __repr__(self) -> str:
        return f"VolumeAccumulator(shape={self.shape}, dtype={self.dtype}, count={self.count})"


def reduce_partials(partials: List[VolumeAccumulator]) -> VolumeAccumulator:
    """Pairwise tree reduction of private partial accumulators.

    The first accumulator of each pair receives the sum, so the inputs are
    consumed. Returns the accumulator holding the grand total.
    """
    if not partials:
        raise ValueError("reduce_partials needs at least one accumulator")

    level = list(partials)
    while len(level) > 1:
        merged = []
        for i in range(0, len(level) - 1, 2):
            merged.append(level[i].merge(level[i + 1]))
        if len(level) % 2 == 1:
            merged.append(level[-1])
        level = merged
    return level[0]
