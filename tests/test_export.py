"""Tests for frame rendering, sinks and FrameSequenceExporter."""

import tempfile
from pathlib import Path

import pytest
import numpy as np
import torch

from gatedjac.core import FrameRenderError, SinkWriteError, GateWindowEngine
from gatedjac.export import (
    SliceSpec,
    ColorScale,
    FrameRenderer,
    FrameSink,
    FrameSequenceExporter,
    OpenCVVideoSink,
    ImageSequenceSink,
)


class RecordingSink(FrameSink):
    """Keeps frames in memory and counts finalisation."""

    def __init__(self, fail_at=None, finalize_failures=0):
        super().__init__()
        self.frames = []
        self.finalized = 0
        self.fail_at = fail_at
        self.finalize_failures = finalize_failures

    def _write(self, frame):
        if self.fail_at is not None and len(self.frames) == self.fail_at:
            raise SinkWriteError("disk full")
        self.frames.append(frame)

    def _finalize(self):
        if self.finalize_failures > 0:
            self.finalize_failures -= 1
            raise SinkWriteError("flush failed")
        self.finalized += 1


class OffsetRenderer:
    """Encodes the offset into a 1x1 frame so write order can be checked."""

    def __init__(self, fail_at=None):
        self.fail_at = fail_at

    def render(self, volume, offset=0):
        if offset == self.fail_at:
            raise FrameRenderError(f"bad frame {offset}")
        return np.full((1, 1, 3), offset, dtype=np.uint8)


def _frames(n):
    return ((i, torch.zeros(2, 2, 2)) for i in range(n))


class TestSliceSpec:
    def test_extract_and_rotate(self):
        vol = np.arange(2 * 3 * 4).reshape(2, 3, 4)
        plane = SliceSpec(axis=1, index=2).extract(vol)
        assert np.array_equal(plane, vol[:, 2, :])

        rotated = SliceSpec(axis=1, index=2, rotate=1).extract(vol)
        assert np.array_equal(rotated, np.rot90(vol[:, 2, :]))

    def test_skip_leading(self):
        vol = np.arange(2 * 3 * 4).reshape(2, 3, 4)
        plane = SliceSpec(axis=1, index=0, skip_leading=1).extract(vol)
        assert np.array_equal(plane, vol[:, 0, 1:])

    def test_torch_input(self):
        vol = torch.rand(3, 3, 3)
        assert SliceSpec(axis=0, index=1).extract(vol).shape == (3, 3)

    def test_index_out_of_range(self):
        with pytest.raises(FrameRenderError):
            SliceSpec(axis=1, index=19).extract(np.zeros((4, 4, 4)))

    def test_empty_slice(self):
        with pytest.raises(FrameRenderError):
            SliceSpec(axis=1, index=0, skip_leading=4).extract(np.zeros((4, 4, 4)))

    def test_wrong_rank(self):
        with pytest.raises(FrameRenderError):
            SliceSpec().extract(np.zeros((4, 4)))


class TestColorScale:
    def test_apply(self):
        scale = ColorScale(0.0, 1.0)
        img = scale.apply(np.array([[0.0, 0.5, 1.0, 2.0]]))
        assert img.shape == (1, 4, 3)
        assert img.dtype == np.uint8
        assert np.array_equal(img[0, 2], img[0, 3])  # saturated

    def test_to_uint8(self):
        scale = ColorScale(-10.0, 1.0)
        v = scale.to_uint8(np.array([-np.inf, np.nan, -10.0, 1.0, np.inf]))
        assert v.tolist() == [0, 0, 0, 255, 255]

    def test_deterministic(self):
        scale = ColorScale(0.0, 0.5)
        x = np.random.default_rng(0).random((5, 5))
        assert np.array_equal(scale.apply(x), scale.apply(x))

    def test_invalid(self):
        with pytest.raises(ValueError):
            ColorScale(1.0, 0.0)
        with pytest.raises(ValueError):
            ColorScale(0.0, 1.0, colormap="not_a_map")


class TestFrameRenderer:
    def test_constant_frame_size(self):
        renderer = FrameRenderer(SliceSpec(axis=1, index=1), ColorScale(0.0, 1.0), scale=4)
        a = renderer.render(torch.rand(5, 3, 6), offset=0)
        b = renderer.render(torch.rand(5, 3, 6), offset=123)
        assert a.shape == b.shape
        assert a.dtype == np.uint8

    def test_all_nan_slice(self):
        renderer = FrameRenderer(SliceSpec(axis=0, index=0), ColorScale(0.0, 1.0))
        with pytest.raises(FrameRenderError):
            renderer.render(np.full((2, 2, 2), np.nan))


class TestFrameSequenceExporter:
    def test_preserves_order(self):
        sink = RecordingSink()
        n = FrameSequenceExporter(OffsetRenderer()).export(_frames(12), sink)

        assert n == 12
        assert [int(f[0, 0, 0]) for f in sink.frames] == list(range(12))
        assert sink.finalized == 1

    def test_parallel_preserves_order(self):
        sink = RecordingSink()
        exporter = FrameSequenceExporter(OffsetRenderer(), num_workers=4, max_pending=3)
        n = exporter.export(_frames(40), sink)

        assert n == 40
        assert [int(f[0, 0, 0]) for f in sink.frames] == list(range(40))
        assert sink.finalized == 1

    def test_zero_frames(self):
        sink = RecordingSink()
        assert FrameSequenceExporter(OffsetRenderer()).export(iter(()), sink) == 0
        assert sink.finalized == 1
        assert sink.closed

    @pytest.mark.parametrize("num_workers", [1, 3])
    def test_render_error_finalizes_sink(self, num_workers):
        sink = RecordingSink()
        exporter = FrameSequenceExporter(OffsetRenderer(fail_at=5), num_workers=num_workers, max_pending=2)

        with pytest.raises(FrameRenderError):
            exporter.export(_frames(10), sink)

        assert sink.finalized == 1
        assert [int(f[0, 0, 0]) for f in sink.frames] == list(range(5))

    def test_sink_error_finalizes_sink(self):
        sink = RecordingSink(fail_at=3)
        with pytest.raises(SinkWriteError):
            FrameSequenceExporter(OffsetRenderer()).export(_frames(10), sink)

        assert sink.finalized == 1
        assert len(sink.frames) == 3

    def test_out_of_order_offsets(self):
        sink = RecordingSink()
        frames = [(0, None), (2, None), (1, None)]
        with pytest.raises(ValueError):
            FrameSequenceExporter(OffsetRenderer()).export(frames, sink)
        assert sink.finalized == 1
        assert len(sink.frames) == 2

    def test_close_is_idempotent(self):
        sink = RecordingSink()
        sink.close()
        sink.close()
        assert sink.finalized == 1
        with pytest.raises(SinkWriteError):
            sink.write(np.zeros((1, 1, 3), dtype=np.uint8))

    @pytest.mark.parametrize("num_workers", [1, 3])
    def test_failed_close_keeps_render_error(self, num_workers):
        sink = RecordingSink(finalize_failures=1)
        exporter = FrameSequenceExporter(OffsetRenderer(fail_at=2), num_workers=num_workers, max_pending=2)

        with pytest.raises(FrameRenderError) as info:
            exporter.export(_frames(6), sink)

        assert isinstance(info.value.__cause__, SinkWriteError)
        assert not sink.closed
        sink.close()
        assert sink.closed
        assert sink.finalized == 1

    def test_failed_close_without_error_propagates(self):
        sink = RecordingSink(finalize_failures=1)
        with pytest.raises(SinkWriteError):
            FrameSequenceExporter(OffsetRenderer()).export(_frames(3), sink)

        assert len(sink.frames) == 3
        assert not sink.closed

    def test_close_retry_after_failure(self):
        sink = RecordingSink(finalize_failures=1)
        with pytest.raises(SinkWriteError):
            sink.close()
        sink.close()
        sink.close()
        assert sink.finalized == 1


class TestSinks:
    def test_video_zero_frames_leaves_empty_file(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "out" / "GateWidth_11_Jacobian.mp4"
            sink = OpenCVVideoSink(path)
            renderer = FrameRenderer(SliceSpec(axis=1, index=0), ColorScale(0.0, 1.0))
            engine = GateWindowEngine(11)

            n = FrameSequenceExporter(renderer).export(engine.gate(torch.rand(2, 2, 2, 10)), sink)

            assert n == 0
            assert path.exists()
            assert path.stat().st_size == 0

    def test_video_writes_frames(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "gates.avi"
            sink = OpenCVVideoSink(path, fps=10.0, fourcc="MJPG")
            renderer = FrameRenderer(SliceSpec(axis=1, index=1), ColorScale(0.0, 2.0), scale=4)
            engine = GateWindowEngine(3)

            n = FrameSequenceExporter(renderer).export(engine.gate(torch.rand(6, 4, 5, 8)), sink)

            assert n == 5
            assert path.stat().st_size > 0

    def test_video_rejects_size_change(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            sink = OpenCVVideoSink(Path(tmpdir) / "v.avi", fourcc="MJPG")
            sink.write(np.zeros((16, 16, 3), dtype=np.uint8))
            with pytest.raises(SinkWriteError):
                sink.write(np.zeros((32, 16, 3), dtype=np.uint8))
            sink.close()

    def test_rejects_bad_frames(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            sink = ImageSequenceSink(tmpdir)
            with pytest.raises(SinkWriteError):
                sink.write(np.zeros((4, 4), dtype=np.uint8))
            sink.close()

    def test_image_sequence(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            sink = ImageSequenceSink(tmpdir, pattern="gate_{:03d}.png")
            FrameSequenceExporter(OffsetRenderer()).export(_frames(3), sink)

            names = sorted(p.name for p in Path(tmpdir).glob("*.png"))
            assert names == ["gate_000.png", "gate_001.png", "gate_002.png"]
