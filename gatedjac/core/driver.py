"""Simulation driver boundary: forward simulation, then Jacobian replay."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional
import numpy as np

from .config import SceneConfig


@dataclass(frozen=True)
class ForwardResult:
    """Artifacts of the forward pass needed by the replay pass."""
    fluence: np.ndarray
    detected_photons: Any
    seeds: Any
    pulse: int = 0


class SimulationDriver(ABC):
    """Two-phase photon-transport protocol.

    `forward` runs the stochastic simulation and records per-photon seeds and
    detected photons; `replay` re-runs those photons to obtain the [X, Y, Z, T]
    Jacobian. The scene is never mutated between phases.
    """

    @abstractmethod
    def forward(self, scene: SceneConfig, pulse: int = 0) -> ForwardResult:
        ...

    @abstractmethod
    def replay(self, scene: SceneConfig, forward: ForwardResult) -> np.ndarray:
        ...

    def jacobian(self, scene: SceneConfig, pulse: int = 0) -> np.ndarray:
        """Run both phases for one pulse."""
        return self.replay(scene, self.forward(scene, pulse))


class SyntheticDriver(SimulationDriver):
    """Analytic diffusion-like Jacobian with Poisson photon noise.

    Each pulse draws from its own generator seeded by (seed, pulse), so a
    pulse's contribution does not depend on the order pulses are run in.
    """

    def __init__(self, seed: int = 0, photons_per_voxel: float = 50.0, dtype=np.float32):
        self.seed = seed
        self.photons_per_voxel = photons_per_voxel
        self.dtype = dtype

    def _rng(self, pulse: int) -> np.random.Generator:
        return np.random.default_rng([self.seed, pulse])

    def _expected(self, scene: SceneConfig) -> np.ndarray:
        X, Y, Z, T = scene.jacobian_shape
        x = np.arange(X, dtype=np.float64)[:, None, None, None]
        y = np.arange(Y, dtype=np.float64)[None, :, None, None]
        z = np.arange(Z, dtype=np.float64)[None, None, :, None]
        t = (np.arange(T, dtype=np.float64)[None, None, None, :] + 0.5) * scene.time_step

        # Banana-shaped sensitivity: spreads out and decays with arrival time
        cx, cy = (X - 1) / 2.0, (Y - 1) / 2.0
        tau = max(T * scene.time_step / 6.0, 1e-30)
        width = 1.0 + (t / tau) * min(X, Y) / 4.0
        depth = 1.0 + (t / tau) * Z / 4.0
        r2 = ((x - cx) ** 2 + (y - cy) ** 2) / (2 * width ** 2)
        profile = np.exp(-r2 - z / depth) * np.exp(-t / tau) / width

        if scene.absorbing_boundary:
            profile[:, :, 0, :] = 0.0
        return profile

    def forward(self, scene: SceneConfig, pulse: int = 0) -> ForwardResult:
        rng = self._rng(pulse)
        expected = self._expected(scene)
        fluence = expected.sum(axis=-1).astype(self.dtype)
        n_det = len(scene.detector_positions())
        detected = rng.integers(0, n_det, size=max(1, int(self.photons_per_voxel)))
        seeds = rng.integers(0, 2 ** 31 - 1, size=2)
        return ForwardResult(fluence=fluence, detected_photons=detected, seeds=seeds, pulse=pulse)

    def replay(self, scene: SceneConfig, forward: ForwardResult) -> np.ndarray:
        rng = np.random.default_rng(forward.seeds)
        lam = self._expected(scene) * self.photons_per_voxel
        counts = rng.poisson(lam)
        return (counts / self.photons_per_voxel).astype(self.dtype)


class PmcxDriver(SimulationDriver):
    """Adapter for the `pmcx` Python binding of Monte Carlo eXtreme.

    Requires the optional `mcx` extra and a CUDA device.
    """

    def __init__(self, overrides: Optional[dict] = None):
        import pmcx  # optional dependency, only needed for real simulations

        self._pmcx = pmcx
        self.overrides = dict(overrides or {})

    def _cfg(self, scene: SceneConfig) -> dict:
        cfg = scene.to_mcx_dict()
        cfg["issaveseed"] = 1
        cfg["savedetflag"] = "dp"
        cfg.update(self.overrides)
        return cfg

    def forward(self, scene: SceneConfig, pulse: int = 0) -> ForwardResult:
        res = self._pmcx.run(self._cfg(scene))
        if "seeds" not in res or "detp" not in res:
            raise RuntimeError("pmcx forward run returned no seeds/detected photons; check detector setup")
        detp = res["detp"]
        # Replay needs the raw detected-photon table, not the per-field view
        if isinstance(detp, dict) and "data" in detp:
            detp = detp["data"]
        return ForwardResult(fluence=np.asarray(res["flux"]), detected_photons=detp, seeds=res["seeds"], pulse=pulse)

    def replay(self, scene: SceneConfig, forward: ForwardResult) -> np.ndarray:
        cfg = self._cfg(scene)
        cfg["seed"] = forward.seeds
        cfg["outputtype"] = "jacobian"
        cfg["detphotons"] = forward.detected_photons
        res = self._pmcx.run(cfg)
        jac = np.asarray(res["flux"])
        if jac.shape != scene.jacobian_shape:
            jac = jac.reshape(scene.jacobian_shape)
        return jac
