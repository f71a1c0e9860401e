"""Scene and run configuration."""

from dataclasses import dataclass, field, asdict, fields
from pathlib import Path
from typing import Tuple, Optional, Dict, Any, Union
import math
import numpy as np
import yaml


def _tuplify(v):
    if isinstance(v, (list, tuple)):
        return tuple(_tuplify(x) for x in v)
    return v


def _check_keys(cls, d: Dict[str, Any]) -> None:
    valid = {f.name for f in fields(cls)}
    unknown = set(d) - valid
    if unknown:
        raise ValueError(f"Unknown {cls.__name__} keys: {sorted(unknown)}")


@dataclass(frozen=True)
class SceneConfig:
    """Photon-transport scene, built once and shared by every pulse.

    Defaults reproduce the wide-field reflectance setup: a homogeneous
    50x50x25 medium with an absorbing first z layer, a tilted cone source and
    a 47x47 detector grid on the surface.
    """
    volume_shape: Tuple[int, int, int] = (50, 50, 25)
    n_photons: float = 1e8
    # Rows of [mua, mus, g, n]; row 0 is the background/absorber label
    optical_properties: Tuple[Tuple[float, ...], ...] = (
        (0.0, 0.0, 1.0, 1.0),
        (0.003, 10.0, 0.9, 1.37),
    )
    source_type: str = "cone"
    source_param1: Tuple[float, ...] = (0.41, 0.0, 0.0, 0.0)
    source_position: Tuple[float, float, float] = (0.0, 25.0, -40.0)
    source_tilt_deg: float = 28.0
    source_from_zero: bool = True
    detector_x: Tuple[int, int] = (2, 48)  # inclusive range
    detector_y: Tuple[int, int] = (2, 48)
    detector_z: float = 1.0
    detector_radius: float = 1.0
    absorbing_boundary: bool = True
    save_reflectance: bool = True
    gpu_id: int = 1
    autopilot: bool = True

    # Time gating [s]
    time_start: float = 0.0
    time_end: float = 13.5e-9
    time_step: float = 18e-12

    def __post_init__(self):
        if len(self.volume_shape) != 3 or any(int(s) <= 0 for s in self.volume_shape):
            raise ValueError(f"volume_shape must be 3 positive ints, got {self.volume_shape}")
        if self.time_step <= 0 or self.time_end <= self.time_start:
            raise ValueError("Time gating requires time_step > 0 and time_end > time_start")

    @property
    def num_time_bins(self) -> int:
        """T = ceil((tend - tstart) / tstep), tolerant to float round-off."""
        ratio = (self.time_end - self.time_start) / self.time_step
        return int(math.ceil(ratio - 1e-9))

    @property
    def jacobian_shape(self) -> Tuple[int, int, int, int]:
        return tuple(int(s) for s in self.volume_shape) + (self.num_time_bins,)

    @property
    def source_direction(self) -> Tuple[float, float, float]:
        theta = math.radians(self.source_tilt_deg)
        return (math.sin(theta), 0.0, math.cos(theta))

    def detector_positions(self) -> np.ndarray:
        """[N, 4] detector table of (x, y, z, radius)."""
        xs = np.arange(self.detector_x[0], self.detector_x[1] + 1)
        ys = np.arange(self.detector_y[0], self.detector_y[1] + 1)
        x, y = np.meshgrid(xs, ys)
        n = x.size
        return np.stack([
            x.ravel(order="F"),
            y.ravel(order="F"),
            np.full(n, self.detector_z),
            np.full(n, self.detector_radius),
        ], axis=1).astype(np.float32)

    def build_volume(self) -> np.ndarray:
        """Label volume: 1 everywhere, 0 on the absorbing first z layer."""
        vol = np.ones(self.volume_shape, dtype=np.uint8)
        if self.absorbing_boundary:
            vol[:, :, 0] = 0
        return vol

    def to_mcx_dict(self) -> Dict[str, Any]:
        """Forward-simulation input in MCX field naming."""
        return {
            "nphoton": int(self.n_photons),
            "vol": self.build_volume(),
            "prop": np.asarray(self.optical_properties, dtype=np.float32),
            "issrcfrom0": int(self.source_from_zero),
            "srctype": self.source_type,
            "srcparam1": list(self.source_param1),
            "srcpos": list(self.source_position),
            "srcdir": list(self.source_direction),
            "detpos": self.detector_positions(),
            "issaveref": int(self.save_reflectance),
            "gpuid": self.gpu_id,
            "autopilot": int(self.autopilot),
            "tstart": self.time_start,
            "tend": self.time_end,
            "tstep": self.time_step,
        }

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "SceneConfig":
        _check_keys(cls, d)
        return cls(**{k: _tuplify(v) for k, v in d.items()})


@dataclass(frozen=True)
class DisplayConfig:
    """Slice and colour window for one kind of rendered image."""
    vmin: float = 0.0
    vmax: float = 0.5
    colormap: str = "viridis"
    slice_axis: int = 1
    slice_index: int = 19
    skip_leading: int = 0
    rotate: int = 0  # quarter turns, counter-clockwise

    def __post_init__(self):
        if self.vmax <= self.vmin:
            raise ValueError(f"Display range must satisfy vmin < vmax, got ({self.vmin}, {self.vmax})")

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "DisplayConfig":
        _check_keys(cls, d)
        return cls(**d)


def _projection_display() -> DisplayConfig:
    return DisplayConfig(vmin=-10.0, vmax=1.0, slice_axis=1, slice_index=19, skip_leading=1, rotate=-1)


def _gate_display() -> DisplayConfig:
    return DisplayConfig(vmin=0.0, vmax=0.5, slice_axis=1, slice_index=19, skip_leading=0, rotate=1)


@dataclass(frozen=True)
class RunConfig:
    """Pulse loop, gating and export settings."""
    n_pulses: int = 1000
    gate_width: int = 1277
    output_dir: str = "output"
    checkpoint_name: str = "Integration_{n_pulses}pulses_jacobian.mat"
    checkpoint_label: str = "jac_data_integ"
    lsci_name: str = "LSCI.png"
    video_name: str = "GateWidth_{gate_width}_Jacobian.mp4"
    fps: float = 10.0
    fourcc: str = "mp4v"
    frame_scale: int = 8

    gate_strategy: str = "incremental"  # "incremental" | "direct"
    resync_every: int = 64

    dtype: str = "float32"
    device: str = "cpu"
    pulse_workers: int = 1
    render_workers: int = 1
    progress: bool = True

    projection: DisplayConfig = field(default_factory=_projection_display)
    gating: DisplayConfig = field(default_factory=_gate_display)

    def __post_init__(self):
        if self.n_pulses < 0:
            raise ValueError(f"n_pulses must be >= 0, got {self.n_pulses}")
        if self.gate_width <= 0:
            raise ValueError(f"gate_width must be positive, got {self.gate_width}")
        if self.fps <= 0:
            raise ValueError(f"fps must be positive, got {self.fps}")

    @property
    def checkpoint_path(self) -> Path:
        return Path(self.output_dir) / self.checkpoint_name.format(n_pulses=self.n_pulses)

    @property
    def lsci_path(self) -> Path:
        return Path(self.output_dir) / self.lsci_name

    @property
    def video_path(self) -> Path:
        return self.video_path_for(self.gate_width)

    def video_path_for(self, gate_width: int) -> Path:
        return Path(self.output_dir) / self.video_name.format(gate_width=gate_width)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "RunConfig":
        _check_keys(cls, d)
        d = dict(d)
        for key in ("projection", "gating"):
            if key in d and isinstance(d[key], dict):
                base = asdict(_projection_display() if key == "projection" else _gate_display())
                base.update(d[key])
                d[key] = DisplayConfig.from_dict(base)
        return cls(**d)


def load_config(path: Union[str, Path]) -> Tuple[SceneConfig, RunConfig]:
    """Load `scene:` and `run:` sections from a YAML file.

    Missing sections fall back to defaults.
    """
    with open(path) as f:
        raw = yaml.safe_load(f) or {}

    unknown = set(raw) - {"scene", "run"}
    if unknown:
        raise ValueError(f"Unknown config sections: {sorted(unknown)}")

    scene = SceneConfig.from_dict(raw.get("scene") or {})
    run = RunConfig.from_dict(raw.get("run") or {})
    return scene, run


def save_config(path: Union[str, Path], scene: SceneConfig, run: RunConfig) -> None:
    """Write both sections back to YAML (tuples stored as lists)."""
    def _plain(v):
        if isinstance(v, tuple):
            return [_plain(x) for x in v]
        if isinstance(v, dict):
            return {k: _plain(x) for k, x in v.items()}
        return v

    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        yaml.safe_dump({"scene": _plain(scene.to_dict()), "run": _plain(run.to_dict())}, f, sort_keys=False)
