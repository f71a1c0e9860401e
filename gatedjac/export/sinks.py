"""Frame sinks: video files and numbered image sequences."""

from pathlib import Path
from typing import Optional, Tuple, Union
import numpy as np
import cv2
from PIL import Image

from ..core.errors import SinkWriteError


class FrameSink:
    """Ordered destination for BGR uint8 frames.

    Subclasses implement `_write` and `_finalize`. `close` is idempotent once
    `_finalize` has succeeded; a failed `_finalize` leaves the sink open so
    `close` can be retried.
    """

    def __init__(self):
        self.frames_written = 0
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def write(self, frame: np.ndarray) -> None:
        if self._closed:
            raise SinkWriteError("Write to a closed sink")
        if frame.ndim != 3 or frame.shape[2] != 3 or frame.dtype != np.uint8:
            raise SinkWriteError(f"Frames must be [H, W, 3] uint8, got {frame.shape} {frame.dtype}")
        self._write(frame)
        self.frames_written += 1

    def close(self) -> None:
        if self._closed:
            return
        self._finalize()
        self._closed = True

    def _write(self, frame: np.ndarray) -> None:
        raise NotImplementedError

    def _finalize(self) -> None:
        pass

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        if exc is None:
            self.close()
            return False
        # Keep the in-flight error; a failed close is attached as its cause.
        try:
            self.close()
        except Exception as close_error:
            raise exc from close_error
        return False


class OpenCVVideoSink(FrameSink):
    """cv2.VideoWriter at a fixed frame rate.

    The writer opens on the first frame (its size fixes the video size). If
    no frame arrives, closing leaves a zero-length file at `path`.
    """

    def __init__(self, path: Union[str, Path], fps: float = 10.0, fourcc: str = "mp4v"):
        super().__init__()
        if fps <= 0:
            raise ValueError(f"fps must be positive, got {fps}")
        if len(fourcc) != 4:
            raise ValueError(f"fourcc must be 4 characters, got '{fourcc}'")
        self.path = Path(path)
        self.fps = float(fps)
        self.fourcc = fourcc
        self._writer: Optional[cv2.VideoWriter] = None
        self._size: Optional[Tuple[int, int]] = None

    def _open(self, width: int, height: int) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        writer = cv2.VideoWriter(str(self.path), cv2.VideoWriter_fourcc(*self.fourcc), self.fps, (width, height))
        if not writer.isOpened():
            raise SinkWriteError(f"Could not open video writer for {self.path} ({self.fourcc})")
        self._writer = writer
        self._size = (width, height)

    def _write(self, frame: np.ndarray) -> None:
        H, W = frame.shape[:2]
        if self._writer is None:
            self._open(W, H)
        elif (W, H) != self._size:
            raise SinkWriteError(f"Frame size {(W, H)} differs from video size {self._size}")
        try:
            self._writer.write(np.ascontiguousarray(frame))
        except cv2.error as e:
            raise SinkWriteError(f"Video write failed: {e}") from e

    def _finalize(self) -> None:
        if self._writer is not None:
            self._writer.release()
            self._writer = None
        else:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_bytes(b"")


class ImageSequenceSink(FrameSink):
    """One PNG per frame, numbered in write order."""

    def __init__(self, directory: Union[str, Path], pattern: str = "frame_{:05d}.png"):
        super().__init__()
        self.directory = Path(directory)
        self.pattern = pattern
        self.directory.mkdir(parents=True, exist_ok=True)

    def _write(self, frame: np.ndarray) -> None:
        path = self.directory / self.pattern.format(self.frames_written)
        try:
            Image.fromarray(cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)).save(path)
        except OSError as e:
            raise SinkWriteError(f"Could not write {path}: {e}") from e


def save_image(path: Union[str, Path], frame: np.ndarray) -> None:
    """Save a BGR uint8 frame as an image file."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    Image.fromarray(cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)).save(path)
