"""CLI for re-rendering LSCI and gated video from a saved checkpoint."""

import argparse
from dataclasses import replace
from pathlib import Path

import numpy as np
import torch

from gatedjac.codecs import JacobianCodec
from gatedjac.core import SceneConfig, RunConfig, load_config
from gatedjac.pipeline import JacobianPipeline


def main():
    parser = argparse.ArgumentParser(description="Render LSCI and gated video from an accumulated Jacobian checkpoint")
    parser.add_argument("checkpoint", type=Path, help="Checkpoint (.mat or .npy)")
    parser.add_argument("-c", "--config", type=Path, help="YAML configuration (display settings)")
    parser.add_argument("-o", "--output", type=Path, help="Output directory (defaults to checkpoint directory)")
    parser.add_argument("-g", "--gate-width", type=int, action="append", help="Gate width(s) in time bins")
    parser.add_argument("--label", type=str, help="Array name inside the checkpoint")
    parser.add_argument("--skip-lsci", action="store_true", help="Don't write the LSCI image")
    parser.add_argument("--frames-dir", type=Path,
                        help="Write gate frames as PNGs under this directory (one subdirectory per width) instead of video")
    parser.add_argument("--no-progress", action="store_true", help="Disable progress bar")

    args = parser.parse_args()

    scene, run = load_config(args.config) if args.config is not None else (SceneConfig(), RunConfig())
    output = args.output if args.output is not None else args.checkpoint.parent
    run = replace(run, output_dir=str(output), progress=run.progress and not args.no_progress)

    loaded = JacobianCodec.load(args.checkpoint, label=args.label)
    buffer = torch.from_numpy(np.ascontiguousarray(loaded["volume"]))
    print(f"Loaded '{loaded['label']}' {tuple(buffer.shape)} from {args.checkpoint}")

    pipeline = JacobianPipeline(scene, run)

    if not args.skip_lsci:
        lsci = pipeline.project(buffer)
        print(f"  LSCI: {lsci['image']}")

    for width in args.gate_width or [run.gate_width]:
        frames_dir = args.frames_dir / f"gate_width_{width}" if args.frames_dir is not None else None
        gates = pipeline.export_gates(buffer, gate_width=width, frames_dir=frames_dir)
        print(f"  Gate width {width}: {gates['video']} ({gates['frames']} frames)")


if __name__ == "__main__":
    main()
