"""gatedjac: pulse-integrated photon-transport Jacobians.

Main components:
- core: accumulation, LSCI projection, gate windows, simulation drivers
- export: frame rendering and ordered video/image export
- codecs: checkpoint encoding/decoding
- pipeline: end-to-end orchestration
"""

from .core import (
    SceneConfig,
    RunConfig,
    DisplayConfig,
    load_config,
    ShapeMismatch,
    FrameRenderError,
    SinkWriteError,
    DegenerateLogWarning,
    VolumeAccumulator,
    reduce_partials,
    StaticProjector,
    project_static,
    GateWindowEngine,
    SimulationDriver,
    SyntheticDriver,
    PmcxDriver,
)
from .export import FrameRenderer, FrameSequenceExporter, OpenCVVideoSink, ImageSequenceSink
from .codecs import JacobianCodec
from .pipeline import JacobianPipeline

__version__ = "0.1.0"
__all__ = [
    # Core
    "SceneConfig",
    "RunConfig",
    "DisplayConfig",
    "load_config",
    "ShapeMismatch",
    "FrameRenderError",
    "SinkWriteError",
    "DegenerateLogWarning",
    "VolumeAccumulator",
    "reduce_partials",
    "StaticProjector",
    "project_static",
    "GateWindowEngine",
    "SimulationDriver",
    "SyntheticDriver",
    "PmcxDriver",
    # Export
    "FrameRenderer",
    "FrameSequenceExporter",
    "OpenCVVideoSink",
    "ImageSequenceSink",
    # Codecs
    "JacobianCodec",
    # Pipeline
    "JacobianPipeline",
]
