"""gatedjac Core: accumulation, projection and gating of Jacobian volumes."""

from .config import SceneConfig, RunConfig, DisplayConfig, load_config, save_config
from .errors import (
    GatedJacobianError,
    ShapeMismatch,
    FrameRenderError,
    SinkWriteError,
    DegenerateLogWarning,
)
from .accumulator import VolumeAccumulator, reduce_partials
from .projection import DEGENERATE_SENTINEL, StaticProjector, project_static, to_display
from .gating import GateWindowEngine, gate_direct, num_frames
from .driver import ForwardResult, SimulationDriver, SyntheticDriver, PmcxDriver

__all__ = [
    "SceneConfig",
    "RunConfig",
    "DisplayConfig",
    "load_config",
    "save_config",
    "GatedJacobianError",
    "ShapeMismatch",
    "FrameRenderError",
    "SinkWriteError",
    "DegenerateLogWarning",
    "VolumeAccumulator",
    "reduce_partials",
    "DEGENERATE_SENTINEL",
    "StaticProjector",
    "project_static",
    "to_display",
    "GateWindowEngine",
    "gate_direct",
    "num_frames",
    "ForwardResult",
    "SimulationDriver",
    "SyntheticDriver",
    "PmcxDriver",
]
