"""FrameSequenceExporter: stream gated volumes into a sink in offset order."""

from collections import deque
from concurrent.futures import ThreadPoolExecutor
from typing import Iterable, Optional, Tuple
from tqdm import tqdm

from ..core.volume import VolumeLike
from .render import FrameRenderer
from .sinks import FrameSink


class FrameSequenceExporter:
    """Render (offset, volume) pairs and append them to a sink.

    Offsets must be strictly increasing. The sink is closed exactly once,
    whether export finishes or fails part-way; frames written before a
    failure stay in the output.
    """

    def __init__(
        self,
        renderer: FrameRenderer,
        num_workers: int = 1,
        max_pending: int = 8,
        progress: bool = False,
    ):
        if max_pending < 1:
            raise ValueError(f"max_pending must be >= 1, got {max_pending}")
        self.renderer = renderer
        self.num_workers = max(1, int(num_workers))
        self.max_pending = int(max_pending)
        self.progress = progress

    def export(
        self,
        frames: Iterable[Tuple[int, VolumeLike]],
        sink: FrameSink,
        total: Optional[int] = None,
    ) -> int:
        """Render and write every frame.

        Args:
            frames: (offset, [X, Y, Z] volume) pairs in increasing offset order
            sink: destination, closed on return
            total: expected frame count (progress bar only)

        Returns:
            number of frames written

        Raises:
            ValueError: offsets out of order
            FrameRenderError: a volume could not be rendered
            SinkWriteError: the sink rejected a frame
        """
        iterator = self._ordered(frames)
        if self.progress:
            iterator = tqdm(iterator, total=total, desc="Exporting")

        with sink:
            if self.num_workers == 1:
                for offset, volume in iterator:
                    sink.write(self.renderer.render(volume, offset))
            else:
                self._export_parallel(iterator, sink)
        return sink.frames_written

    @staticmethod
    def _ordered(frames: Iterable[Tuple[int, VolumeLike]]):
        last = None
        for offset, volume in frames:
            if last is not None and offset <= last:
                raise ValueError(f"Frame offsets must increase: got {offset} after {last}")
            last = offset
            yield offset, volume

    def _export_parallel(self, iterator, sink: FrameSink) -> None:
        # Futures are queued in submission (offset) order and drained from the
        # left, so writes stay ordered while at most max_pending frames are alive.
        pending = deque()
        executor = ThreadPoolExecutor(max_workers=self.num_workers)
        try:
            for offset, volume in iterator:
                pending.append(executor.submit(self.renderer.render, volume, offset))
                if len(pending) >= self.max_pending:
                    sink.write(pending.popleft().result())
            while pending:
                sink.write(pending.popleft().result())
        finally:
            executor.shutdown(wait=True, cancel_futures=True)
