"""Error kinds raised by the accumulation, projection and export stages."""


class GatedJacobianError(Exception):
    """Base class for gatedjac errors."""


class ShapeMismatch(GatedJacobianError, ValueError):
    """Contribution shape disagrees with the accumulation buffer."""

    def __init__(self, expected, got):
        self.expected = tuple(expected)
        self.got = tuple(got)
        super().__init__(f"Shape mismatch: buffer is {self.expected}, contribution is {self.got}")


class FrameRenderError(GatedJacobianError):
    """A gated volume could not be turned into an image frame."""


class SinkWriteError(GatedJacobianError, IOError):
    """The export sink rejected a frame or could not be opened."""


class DegenerateLogWarning(RuntimeWarning):
    """Non-positive time sums were replaced by the projection sentinel."""
