#!/usr/bin/env python3
"""
Tiled Winograd F(2,3) — Quick Start Example

Demonstrates three ways to use the pipeline:
1. Functional API
2. Reusable pipeline with step-by-step stages
3. File-to-file, as the command-line tool does
"""

import os
import tempfile

import numpy as np

from tiled_winograd import (
    ProblemShape,
    WinogradPipeline,
    create_run_context,
    direct_conv2d,
    winograd_conv2d,
)
from tiled_winograd.cli import main as cli_main
from tiled_winograd.tensor_io import read_output, write_problem


def example_functional():
    """One call: filters + image in, output out."""
    print("=== Example 1: Functional API ===")

    filters = np.random.randn(16, 8, 3, 3).astype(np.float32)
    image = np.random.randn(8, 32, 32).astype(np.float32)

    output = winograd_conv2d(filters, image)
    err = np.abs(output - direct_conv2d(filters, image)).max()

    print(f"  Filters: {filters.shape}")
    print(f"  Image:   {image.shape}")
    print(f"  Output:  {output.shape}")
    print(f"  Max abs error vs direct: {err:.2e}")
    print()


def example_stages():
    """Drive the stages by hand on a reusable pipeline."""
    print("=== Example 2: Stage by Stage ===")

    ctx = create_run_context()
    pipeline = WinogradPipeline(ctx, verbose=True)

    filters = np.random.randn(4, 3, 3, 3).astype(np.float32)
    image = np.random.randn(3, 12, 10).astype(np.float32)

    geometry = pipeline.prepare(ProblemShape(4, 3, 12, 10))
    print(f"  Tiles: {geometry.num_h_tiles} x {geometry.num_w_tiles} (P={geometry.P})")
    pipeline.upload(filters, image)

    # The two transforms are independent; run V first to show it
    for name in ("data_transform", "filter_transform", "calc_M", "calc_Y"):
        pipeline.run_stage(name)
        print(f"  -> {pipeline.state.name}")

    output = pipeline.read_back()
    print(f"  Output:  {output.shape}")
    ctx.release()
    print()


def example_files():
    """Write an input file, run the CLI, read the result."""
    print("=== Example 3: Files ===")

    with tempfile.TemporaryDirectory() as tmp:
        in_path = os.path.join(tmp, "input.txt")
        out_path = os.path.join(tmp, "output.txt")
        write_problem(in_path,
                      np.random.randn(2, 2, 3, 3).astype(np.float32),
                      np.random.randn(2, 8, 8).astype(np.float32))
        cli_main([in_path, out_path])
        K, C, Y = read_output(out_path)
        print(f"  Read back K={K}, C={C}, Y{Y.shape}")
    print()


if __name__ == "__main__":
    example_functional()
    example_stages()
    example_files()
    print("All examples completed successfully.")
