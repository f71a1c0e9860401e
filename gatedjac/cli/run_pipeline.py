"""CLI for running the pulse loop and exporting LSCI and gated outputs."""

import argparse
from dataclasses import replace
from pathlib import Path

from gatedjac.core import SceneConfig, RunConfig, SyntheticDriver, PmcxDriver, load_config, save_config
from gatedjac.pipeline import JacobianPipeline


def main():
    parser = argparse.ArgumentParser(description="Accumulate pulse Jacobians and export LSCI / gated video")
    parser.add_argument("config", type=Path, nargs="?", help="YAML configuration with scene/run sections")
    parser.add_argument("-o", "--output", type=Path, help="Output directory (overrides config)")
    parser.add_argument("-n", "--pulses", type=int, help="Number of pulses (overrides config)")
    parser.add_argument("-g", "--gate-width", type=int, help="Gate width in time bins (overrides config)")
    parser.add_argument("--driver", type=str, default="synthetic", choices=["synthetic", "pmcx"], help="Simulation driver")
    parser.add_argument("--seed", type=int, default=0, help="Seed for the synthetic driver")
    parser.add_argument("-w", "--workers", type=int, help="Parallel pulse workers")
    parser.add_argument("--device", type=str, choices=["cpu", "cuda"], help="Device for accumulation")
    parser.add_argument("--strategy", type=str, choices=["incremental", "direct"], help="Gate summation strategy")
    parser.add_argument("--no-progress", action="store_true", help="Disable progress bar")

    args = parser.parse_args()

    if args.config is not None:
        scene, run = load_config(args.config)
    else:
        scene, run = SceneConfig(), RunConfig()

    overrides = {}
    if args.output is not None:
        overrides["output_dir"] = str(args.output)
    if args.pulses is not None:
        overrides["n_pulses"] = args.pulses
    if args.gate_width is not None:
        overrides["gate_width"] = args.gate_width
    if args.workers is not None:
        overrides["pulse_workers"] = args.workers
    if args.device is not None:
        overrides["device"] = args.device
    if args.strategy is not None:
        overrides["gate_strategy"] = args.strategy
    if args.no_progress:
        overrides["progress"] = False
    run = replace(run, **overrides)

    driver = PmcxDriver() if args.driver == "pmcx" else SyntheticDriver(seed=args.seed)

    print(f"Scene: volume {scene.volume_shape}, {scene.num_time_bins} time bins")
    print(f"Run: {run.n_pulses} pulses, gate width {run.gate_width} -> output {run.output_dir}")

    save_config(Path(run.output_dir) / "config.yaml", scene, run)
    results = JacobianPipeline(scene, run, driver).execute()

    print(f"\nRun complete:")
    print(f"  Pulses: {results['pulses']}")
    print(f"  Checkpoint: {results['checkpoint']}")
    print(f"  LSCI: {results['lsci']}")
    print(f"  Video: {results['video']} ({results['frames']} frames)")
    if results["frames"] == 0:
        print(f"  Gate width {run.gate_width} exceeds {scene.num_time_bins} time bins; video is empty")


if __name__ == "__main__":
    main()
