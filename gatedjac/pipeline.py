"""JacobianPipeline: pulse loop, checkpoint, LSCI projection and gated video."""

from concurrent.futures import ThreadPoolExecutor
import threading
from pathlib import Path
from typing import Any, Dict, Optional, Union
import numpy as np
import torch
from tqdm import tqdm

from .core import (
    SceneConfig,
    RunConfig,
    DisplayConfig,
    SimulationDriver,
    VolumeAccumulator,
    reduce_partials,
    StaticProjector,
    GateWindowEngine,
)
from .codecs import JacobianCodec
from .export import (
    SliceSpec,
    ColorScale,
    FrameRenderer,
    FrameSequenceExporter,
    OpenCVVideoSink,
    ImageSequenceSink,
    save_image,
)


def _slice_spec(display: DisplayConfig) -> SliceSpec:
    return SliceSpec(
        axis=display.slice_axis,
        index=display.slice_index,
        skip_leading=display.skip_leading,
        rotate=display.rotate,
    )


def _color_scale(display: DisplayConfig) -> ColorScale:
    return ColorScale(display.vmin, display.vmax, display.colormap)


class JacobianPipeline:
    """Run the full acquisition for one scene.

    The scene is immutable and handed unchanged to every driver call. The
    driver is only needed for `accumulate`; rendering a loaded checkpoint
    works without one.
    """

    def __init__(self, scene: SceneConfig, run: RunConfig, driver: Optional[SimulationDriver] = None):
        self.scene = scene
        self.run = run
        self.driver = driver

    def new_accumulator(self) -> VolumeAccumulator:
        return VolumeAccumulator(self.scene.jacobian_shape, dtype=self.run.dtype, device=self.run.device)

    def accumulate(self, n_pulses: Optional[int] = None, num_workers: Optional[int] = None) -> VolumeAccumulator:
        """Simulate and sum `n_pulses` Jacobians.

        With several workers, each owns a private accumulator and the
        partials are combined by pairwise reduction. The first failing
        pulse stops every worker before its next pulse and is re-raised.
        """
        n_pulses = self.run.n_pulses if n_pulses is None else n_pulses
        num_workers = self.run.pulse_workers if num_workers is None else num_workers
        if self.driver is None:
            raise ValueError("accumulate needs a SimulationDriver")
        progress = self.run.progress

        if num_workers <= 1 or n_pulses <= 1:
            acc = self.new_accumulator()
            pulses = tqdm(range(n_pulses), desc="Pulses") if progress else range(n_pulses)
            for pulse in pulses:
                acc.add(self.driver.jacobian(self.scene, pulse))
            return acc

        num_workers = min(num_workers, n_pulses)
        partials = [self.new_accumulator() for _ in range(num_workers)]
        bar = tqdm(total=n_pulses, desc="Pulses") if progress else None
        stop = threading.Event()

        def _work(worker: int) -> None:
            try:
                for pulse in range(worker, n_pulses, num_workers):
                    if stop.is_set():
                        return
                    partials[worker].add(self.driver.jacobian(self.scene, pulse))
                    if bar is not None:
                        bar.update(1)
            except BaseException:
                stop.set()
                raise

        try:
            with ThreadPoolExecutor(max_workers=num_workers) as executor:
                for future in [executor.submit(_work, w) for w in range(num_workers)]:
                    future.result()
        finally:
            if bar is not None:
                bar.close()
        return reduce_partials(partials)

    def save_checkpoint(self, acc: VolumeAccumulator, path: Optional[Union[str, Path]] = None) -> Path:
        path = Path(path) if path is not None else self.run.checkpoint_path
        meta = {"n_pulses": acc.count, "scene": self.scene.to_dict()}
        return JacobianCodec.save(path, acc.to_numpy(), label=self.run.checkpoint_label, meta=meta)

    def project(self, buffer, path: Optional[Union[str, Path]] = None) -> Dict[str, Any]:
        """LSCI projection: raw .npy next to a colour-mapped image."""
        display = self.run.projection
        projector = StaticProjector(display.vmin, display.vmax)
        projected = projector.project(buffer)
        renderer = FrameRenderer(_slice_spec(display), _color_scale(display), scale=self.run.frame_scale,
                                 title="LSCI")

        path = Path(path) if path is not None else self.run.lsci_path
        save_image(path, renderer.render(projector.clip(projected)))
        raw_path = path.with_suffix(".npy")
        np.save(raw_path, projected.cpu().numpy())
        return {"image": path, "raw": raw_path, "projected": projected}

    def export_gates(
        self,
        buffer,
        gate_width: Optional[int] = None,
        path: Optional[Union[str, Path]] = None,
        frames_dir: Optional[Union[str, Path]] = None,
    ) -> Dict[str, Any]:
        """Gate the buffer and stream every window into one video.

        With `frames_dir`, frames are written there as numbered PNGs instead
        and `path` is ignored.
        """
        gate_width = self.run.gate_width if gate_width is None else gate_width
        engine = GateWindowEngine(gate_width, self.run.gate_strategy, self.run.resync_every)
        display = self.run.gating
        renderer = FrameRenderer(_slice_spec(display), _color_scale(display), scale=self.run.frame_scale)
        exporter = FrameSequenceExporter(renderer, num_workers=self.run.render_workers, progress=self.run.progress)

        if frames_dir is not None:
            path = Path(frames_dir)
            sink = ImageSequenceSink(path, pattern="gate_{:05d}.png")
        else:
            path = Path(path) if path is not None else self.run.video_path_for(gate_width)
            sink = OpenCVVideoSink(path, fps=self.run.fps, fourcc=self.run.fourcc)
        n_expected = engine.num_frames(buffer.shape[-1])
        written = exporter.export(engine.gate(buffer), sink, total=n_expected)
        return {"video": path, "frames": written, "gate_width": gate_width}

    def execute(self) -> Dict[str, Any]:
        """Accumulate, checkpoint, project and export; returns output paths."""
        acc = self.accumulate()
        checkpoint = self.save_checkpoint(acc)
        buffer = acc.snapshot()

        with torch.no_grad():
            lsci = self.project(buffer)
            gates = self.export_gates(buffer)

        return {
            "pulses": acc.count,
            "checkpoint": checkpoint,
            "lsci": lsci["image"],
            "video": gates["video"],
            "frames": gates["frames"],
        }
