"""
Command-line entry point.

    tiled-winograd <input-file> <output-file> [--backend torch|opencl] [--check] [-v]

By default a wrong argument count or an untileable shape prints a message
and exits 0. --strict turns these into exit codes 2 and 1. Accelerator
and file errors always exit 1.
"""

import argparse
import sys

import numpy as np

from tiled_winograd.errors import (
    AcceleratorError,
    FileError,
    InvalidShapeError,
    WinogradError,
)
from tiled_winograd.pipeline import WinogradPipeline
from tiled_winograd.reference import direct_conv2d
from tiled_winograd.runtime import create_run_context
from tiled_winograd.tensor_io import read_problem, write_output

USAGE = "Usage: tiled-winograd <input filename> <output filename>"
EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_USAGE = 2


def build_parser():
    parser = argparse.ArgumentParser(
        prog="tiled-winograd",
        description="Winograd F(2,3) 3x3 convolution of a single image on an accelerator.",
    )
    parser.add_argument("paths", nargs="*", metavar="FILE",
                        help="input file and output file")
    parser.add_argument("--backend", choices=["torch", "opencl"], default=None,
                        help="accelerator backend (default: $TILED_WINOGRAD_BACKEND or torch)")
    parser.add_argument("--device", default=None,
                        help="torch device string, or OpenCL GPU index")
    parser.add_argument("--kernels", default=None,
                        help="OpenCL kernel source (default: packaged winograd.cl)")
    parser.add_argument("--strict", action="store_true",
                        help="non-zero exit status for usage and shape errors")
    parser.add_argument("--check", action="store_true",
                        help="compare against direct convolution and print the max error")
    parser.add_argument("-v", "--verbose", action="store_true")
    return parser


def _shape_diagnostic(exc):
    print("Please make sure that:")
    print("H (height of image) is even")
    print("W (width of image) is even")
    print(f"({exc})")


def _release(ctx):
    """Release the run context, reporting a device error instead of raising it."""
    try:
        ctx.release()
    except AcceleratorError as exc:
        print(f"Error: {exc}")
        return False
    return True


def main(argv=None):
    args = build_parser().parse_args(argv)
    if len(args.paths) != 2:
        print(USAGE)
        return EXIT_USAGE if args.strict else EXIT_OK
    input_path, output_path = args.paths

    try:
        problem = read_problem(input_path)
    except InvalidShapeError as exc:
        _shape_diagnostic(exc)
        return EXIT_FAILURE if args.strict else EXIT_OK
    except FileError as exc:
        print(f"Error: read_problem: {exc}")
        return EXIT_FAILURE

    ctx = None
    result = None
    try:
        ctx = create_run_context(backend=args.backend, device=args.device,
                                 kernel_source=args.kernels, verbose=args.verbose)
        pipeline = WinogradPipeline(ctx, verbose=args.verbose)
        result = pipeline.run(problem.filters, problem.image)
    except AcceleratorError as exc:
        print(f"Error: {exc}")
        if getattr(exc, "build_log", ""):
            print(exc.build_log)
    except (WinogradError, ValueError) as exc:
        print(f"Error: {exc}")

    if ctx is not None and not _release(ctx):
        return EXIT_FAILURE
    if result is None:
        return EXIT_FAILURE

    result.statistics.report()
    if args.check:
        ref = direct_conv2d(problem.filters, problem.image)
        print(f"Max abs error vs direct conv: {float(np.abs(result.output - ref).max()):.6g}")

    try:
        write_output(output_path, result.output, problem.shape.C)
    except FileError as exc:
        print(f"Error: write_output: {exc}")
        return EXIT_FAILURE
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
