"""Tests for SceneConfig and RunConfig."""

import dataclasses
import math

import pytest
import numpy as np
import tempfile
from pathlib import Path
import yaml

from gatedjac.core import SceneConfig, RunConfig, DisplayConfig, load_config, save_config


class TestSceneConfig:
    def test_default_config(self):
        scene = SceneConfig()
        assert scene.volume_shape == (50, 50, 25)
        assert scene.num_time_bins == 750
        assert scene.jacobian_shape == (50, 50, 25, 750)

    def test_frozen(self):
        scene = SceneConfig()
        with pytest.raises(dataclasses.FrozenInstanceError):
            scene.n_photons = 10

    def test_time_bins_round_up(self):
        scene = SceneConfig(time_end=1.05e-9, time_step=0.1e-9)
        assert scene.num_time_bins == 11

    def test_source_direction(self):
        d = SceneConfig().source_direction
        theta = 28 * math.pi / 180
        assert d == pytest.approx((math.sin(theta), 0.0, math.cos(theta)))

    def test_detector_grid(self):
        det = SceneConfig().detector_positions()
        assert det.shape == (47 * 47, 4)
        assert det[0].tolist() == [2, 2, 1, 1]
        assert det[1].tolist() == [2, 3, 1, 1]

    def test_volume_labels(self):
        vol = SceneConfig(volume_shape=(4, 4, 3)).build_volume()
        assert vol.dtype == np.uint8
        assert (vol[:, :, 0] == 0).all()
        assert (vol[:, :, 1:] == 1).all()

    def test_mcx_dict(self):
        cfg = SceneConfig().to_mcx_dict()
        assert cfg["nphoton"] == 100000000
        assert cfg["srctype"] == "cone"
        assert cfg["prop"].shape == (2, 4)
        assert cfg["tend"] == 13.5e-9

    def test_invalid(self):
        with pytest.raises(ValueError):
            SceneConfig(volume_shape=(4, 4))
        with pytest.raises(ValueError):
            SceneConfig(time_step=0.0)

    def test_from_dict(self):
        scene = SceneConfig.from_dict({"volume_shape": [8, 8, 4], "time_end": 1e-9, "time_step": 1e-10})
        assert scene.volume_shape == (8, 8, 4)
        assert scene.num_time_bins == 10

    def test_from_dict_unknown_key(self):
        with pytest.raises(ValueError):
            SceneConfig.from_dict({"volume": [8, 8, 4]})


class TestRunConfig:
    def test_defaults(self):
        run = RunConfig()
        assert run.n_pulses == 1000
        assert run.gate_width == 1277
        assert run.fps == 10.0
        assert run.projection.vmin == -10.0
        assert run.gating.vmax == 0.5

    def test_paths(self):
        run = RunConfig(n_pulses=5, gate_width=3, output_dir="out")
        assert run.checkpoint_path == Path("out") / "Integration_5pulses_jacobian.mat"
        assert run.video_path == Path("out") / "GateWidth_3_Jacobian.mp4"
        assert run.video_path_for(40) == Path("out") / "GateWidth_40_Jacobian.mp4"

    def test_from_dict_merges_display(self):
        run = RunConfig.from_dict({"gate_width": 5, "gating": {"vmax": 2.0}})
        assert run.gate_width == 5
        assert run.gating.vmax == 2.0
        assert run.gating.rotate == 1

    def test_invalid(self):
        with pytest.raises(ValueError):
            RunConfig(gate_width=0)
        with pytest.raises(ValueError):
            DisplayConfig(vmin=1.0, vmax=1.0)


class TestLoadConfig:
    def test_load(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "config.yaml"
            with open(path, "w") as f:
                yaml.dump({"scene": {"volume_shape": [10, 10, 5]}, "run": {"n_pulses": 4}}, f)

            scene, run = load_config(path)

            assert scene.volume_shape == (10, 10, 5)
            assert run.n_pulses == 4

    def test_round_trip(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "config.yaml"
            scene = SceneConfig(volume_shape=(6, 6, 3))
            run = RunConfig(n_pulses=2, gating=DisplayConfig(vmax=1.5))
            save_config(path, scene, run)

            loaded_scene, loaded_run = load_config(path)

            assert loaded_scene == scene
            assert loaded_run == run

    def test_unknown_section(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "config.yaml"
            path.write_text("simulation: {}\n")
            with pytest.raises(ValueError):
                load_config(path)
