"""gatedjac Export: frame rendering, sinks and the ordered exporter."""

from .render import SliceSpec, ColorScale, FrameRenderer
from .sinks import FrameSink, OpenCVVideoSink, ImageSequenceSink, save_image
from .exporter import FrameSequenceExporter

__all__ = [
    "SliceSpec",
    "ColorScale",
    "FrameRenderer",
    "FrameSink",
    "OpenCVVideoSink",
    "ImageSequenceSink",
    "save_image",
    "FrameSequenceExporter",
]
