#!/usr/bin/env python3
"""
Per-stage profiling of the four-stage Winograd F(2,3) pipeline.

Measures individual timings for:
  1. filter_transform
  2. data_transform
  3. calc_M (elementwise multiply-accumulate)
  4. calc_Y (inverse transform)
  5. Total end-to-end (dispatch through barrier)

Also computes analytical memory traffic per stage from the buffer layout.

Usage:
    python benchmarks/bench_stages.py [--backend torch|opencl] [--device cuda]
"""

import argparse
import json
import time

import numpy as np

from tiled_winograd import (
    ProblemShape,
    WinogradPipeline,
    create_run_context,
    winograd_flops,
)
from tiled_winograd.stages import STAGE_SPECS


def time_stage(pipeline, name, warmup=5, repeat=50):
    """Time one stage with a barrier after each repeat, return ms."""
    for _ in range(warmup):
        pipeline.run_stage(name)
    pipeline.synchronize()
    start = time.perf_counter()
    for _ in range(repeat):
        pipeline.run_stage(name)
    pipeline.synchronize()
    return (time.perf_counter() - start) * 1e3 / repeat


def time_full(pipeline, warmup=5, repeat=50):
    for _ in range(warmup):
        pipeline.execute()
    total = 0.0
    for _ in range(repeat):
        total += pipeline.execute()
    return total * 1e3 / repeat


def profile_config(ctx, name, K, C, H, W):
    """Profile each stage independently for a given config."""
    rng = np.random.default_rng(0)
    filters = rng.standard_normal((K, C, 3, 3)).astype(np.float32) * 0.1
    image = rng.standard_normal((C, H, W)).astype(np.float32)

    pipeline = WinogradPipeline(ctx)
    geometry = pipeline.prepare(ProblemShape(K, C, H, W))
    pipeline.upload(filters, image)

    # Stages run in dependency order so each one sees valid inputs
    ms = {spec.name: time_stage(pipeline, spec.name) for spec in STAGE_SPECS}
    ms_full = time_full(pipeline)

    # --- Memory traffic analysis (bytes): read operands + write output ---
    layout = pipeline.layout
    traffic = {
        spec.name: sum(layout[role].nbytes for role in spec.operands)
        for spec in STAGE_SPECS
    }
    traffic_total = sum(traffic.values())

    flop = winograd_flops(K, C, geometry.P)
    # Equivalent FLOPs for the direct convolution
    direct_flop = 2.0 * K * C * geometry.out_H * geometry.out_W * 9
    pipeline.release()

    result = {
        "config": name,
        "K": K, "C": C, "H": H, "W": W,
        "tiles": geometry.P, "nh": geometry.num_h_tiles, "nw": geometry.num_w_tiles,
        "ms_full": round(ms_full, 4),
        "winograd_flop": flop,
        "direct_flop": int(direct_flop),
        "mflops": round(flop / (1024.0 * 1024.0 * ms_full / 1e3), 1),
        "traffic_total_MB": round(traffic_total / 1e6, 3),
    }
    stage_sum = sum(ms.values())
    for stage, t in ms.items():
        result[f"ms_{stage}"] = round(t, 4)
        result[f"pct_{stage}"] = round(100 * t / stage_sum, 1)
        result[f"traffic_{stage}_MB"] = round(traffic[stage] / 1e6, 3)
    return result


def main():
    parser = argparse.ArgumentParser()
    parser.add_argument("--backend", choices=["torch", "opencl"], default=None)
    parser.add_argument("--device", default=None)
    parser.add_argument("--out", default="winograd_stage_profile.json")
    args = parser.parse_args()

    ctx = create_run_context(backend=args.backend, device=args.device)
    info = ctx.describe()
    print(f"Backend: {info['backend']}  Device: {info['name']}\n")

    configs = [
        # (name, K, C, H, W)
        ("conv2_x",   64,  64, 58, 58),
        ("conv3_x",  128, 128, 30, 30),
        ("conv4_x",  256, 256, 16, 16),
        ("conv5_x",  512, 512,  8,  8),
        ("stem",      64,   3, 226, 226),
    ]

    results = []

    # Header
    hdr = (f"{'Config':<10} {'FiltT':>9} {'DataT':>9} {'CalcM':>9} {'CalcY':>9} "
           f"{'Total':>9} {'%M':>5} {'MFlop/s':>10} {'Traffic':>9}")
    print(hdr)
    print("=" * len(hdr))

    for name, K, C, H, W in configs:
        r = profile_config(ctx, name, K, C, H, W)
        results.append(r)
        print(f"{r['config']:<10} "
              f"{r['ms_filter_transform']:>7.3f}ms "
              f"{r['ms_data_transform']:>7.3f}ms "
              f"{r['ms_calc_M']:>7.3f}ms "
              f"{r['ms_calc_Y']:>7.3f}ms "
              f"{r['ms_full']:>7.3f}ms "
              f"{r['pct_calc_M']:>4.0f}% "
              f"{r['mflops']:>10.1f} "
              f"{r['traffic_total_MB']:>7.2f}MB")

    # Summary
    print("\n\n=== BOTTLENECK ANALYSIS ===\n")
    for r in results:
        stage = max((s.name for s in STAGE_SPECS), key=lambda s: r[f"pct_{s}"])
        print(f"{r['config']:<10} Bottleneck: {stage:<18} "
              f"Winograd/direct flop: {r['winograd_flop'] / r['direct_flop']:.2f}")

    ctx.release()

    # Save
    output = {
        "experiment": "Winograd F(2,3) Per-Stage Profiling",
        "device": info["name"],
        "backend": info["backend"],
        "results": results,
    }
    with open(args.out, "w") as f:
        json.dump(output, f, indent=2)
    print(f"\nResults saved to {args.out}")


if __name__ == "__main__":
    main()
