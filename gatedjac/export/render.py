"""Slice extraction and colour mapping of 3-D volumes into image frames."""

from dataclasses import dataclass
from typing import Optional
import numpy as np
import cv2

from ..core.errors import FrameRenderError
from ..core.volume import VolumeLike, to_numpy


@dataclass(frozen=True)
class SliceSpec:
    """Fixed 2-D plane through an [X, Y, Z] volume.

    axis/index select the plane; skip_leading drops that many leading samples
    along the plane's second axis (e.g. the absorbing z layer); rotate is the
    number of counter-clockwise quarter turns applied last.
    """
    axis: int = 1
    index: int = 0
    skip_leading: int = 0
    rotate: int = 0

    def extract(self, volume: VolumeLike) -> np.ndarray:
        vol = to_numpy(volume)
        if vol.ndim != 3:
            raise FrameRenderError(f"Expected a 3-D volume, got shape {vol.shape}")
        if not 0 <= self.axis < 3:
            raise FrameRenderError(f"Slice axis must be 0, 1 or 2, got {self.axis}")
        if not 0 <= self.index < vol.shape[self.axis]:
            raise FrameRenderError(
                f"Slice index {self.index} out of range for axis {self.axis} of size {vol.shape[self.axis]}"
            )

        plane = np.take(vol, self.index, axis=self.axis)
        if self.skip_leading:
            plane = plane[:, self.skip_leading:]
        if plane.size == 0:
            raise FrameRenderError(f"Empty slice: {self}")
        return np.rot90(plane, k=self.rotate)


class ColorScale:
    """Deterministic scalar -> BGR mapping over a fixed [vmin, vmax] window."""

    def __init__(self, vmin: float, vmax: float, colormap: str = "viridis"):
        if vmax <= vmin:
            raise ValueError(f"Display range must satisfy vmin < vmax, got ({vmin}, {vmax})")
        name = f"COLORMAP_{colormap.upper()}"
        if not hasattr(cv2, name):
            raise ValueError(f"Unknown colormap: {colormap}")
        self.vmin = float(vmin)
        self.vmax = float(vmax)
        self.colormap = colormap
        self._cv_map = getattr(cv2, name)

    def to_uint8(self, values: np.ndarray) -> np.ndarray:
        """Normalise into 0..255; NaN maps to the low end, +/-inf saturate."""
        v = np.nan_to_num(np.asarray(values, dtype=np.float64), nan=self.vmin)
        v = (np.clip(v, self.vmin, self.vmax) - self.vmin) / (self.vmax - self.vmin)
        return np.round(v * 255).astype(np.uint8)

    def apply(self, values: np.ndarray) -> np.ndarray:
        """[H, W] scalars -> [H, W, 3] uint8 BGR."""
        return cv2.applyColorMap(np.ascontiguousarray(self.to_uint8(values)), self._cv_map)

    def colorbar(self, height: int, width: int = 16) -> np.ndarray:
        """Vertical [height, width, 3] bar, vmax at the top."""
        ramp = np.linspace(self.vmax, self.vmin, max(height, 1))[:, None]
        return self.apply(np.repeat(ramp, width, axis=1))


class FrameRenderer:
    """Render one 3-D volume into a titled, colour-mapped BGR frame."""

    def __init__(
        self,
        slice_spec: SliceSpec,
        color_scale: ColorScale,
        scale: int = 8,
        title: Optional[str] = "Gate {n}",
        colorbar: bool = True,
    ):
        if scale < 1:
            raise ValueError(f"scale must be >= 1, got {scale}")
        self.slice_spec = slice_spec
        self.color_scale = color_scale
        self.scale = int(scale)
        self.title = title
        self.colorbar = colorbar

    def render(self, volume: VolumeLike, offset: int = 0) -> np.ndarray:
        """Render a volume; `offset` feeds the 1-based frame number in the title.

        Raises:
            FrameRenderError: the slice is degenerate or entirely NaN
        """
        plane = self.slice_spec.extract(volume)
        if np.isnan(plane).all():
            raise FrameRenderError(f"Slice at offset {offset} holds no numeric values")

        img = self.color_scale.apply(plane)
        img = cv2.resize(img, (img.shape[1] * self.scale, img.shape[0] * self.scale),
                         interpolation=cv2.INTER_NEAREST)

        H, W = img.shape[:2]
        pad = 8
        title_h = 28 if self.title else 0
        bar_w = 16 if self.colorbar else 0
        label_w = 64 if self.colorbar else 0

        canvas_h = H + title_h + 2 * pad
        canvas_w = W + bar_w + label_w + 3 * pad
        # Even dimensions keep yuv420 video codecs happy
        canvas = np.full((canvas_h + canvas_h % 2, canvas_w + canvas_w % 2, 3), 255, dtype=np.uint8)
        y0 = title_h + pad
        canvas[y0:y0 + H, pad:pad + W] = img

        if self.title:
            text = self.title.format(n=offset + 1, offset=offset)
            cv2.putText(canvas, text, (pad, title_h - 6), cv2.FONT_HERSHEY_SIMPLEX, 0.6, (0, 0, 0), 1, cv2.LINE_AA)

        if self.colorbar:
            x0 = 2 * pad + W
            canvas[y0:y0 + H, x0:x0 + bar_w] = self.color_scale.colorbar(H, bar_w)
            for value, y in ((self.color_scale.vmax, y0 + 10), (self.color_scale.vmin, y0 + H)):
                cv2.putText(canvas, f"{value:g}", (x0 + bar_w + 4, y), cv2.FONT_HERSHEY_SIMPLEX,
                            0.4, (0, 0, 0), 1, cv2.LINE_AA)
        return canvas
