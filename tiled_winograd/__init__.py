"""
Tiled Winograd F(2,3) — 3x3 convolution as a four-stage accelerator pipeline.

filter_transform (U = G g G^T) and data_transform (V = B^T d B) feed an
elementwise multiply-accumulate over input channels (calc_M), whose result
is inverse-transformed into 2x2 output tiles (calc_Y, Y = A^T M A).
Runs on torch devices (CUDA/ROCm or CPU) or on OpenCL GPUs via pyopencl.

Quick start:
    from tiled_winograd import winograd_conv2d

    Y = winograd_conv2d(filters, image)          # [K,C,3,3], [C,H,W] -> [K,H-2,W-2]

    # Reuse device, compiled stages and buffers across runs
    from tiled_winograd import create_run_context, WinogradPipeline

    ctx = create_run_context(backend="opencl")
    pipeline = WinogradPipeline(ctx, verbose=True)
    result = pipeline.run(filters, image)
    result.statistics.report()
"""

from tiled_winograd.errors import (
    WinogradError,
    InvalidShapeError,
    InvalidPartitionError,
    FileError,
    PipelineStateError,
    AcceleratorError,
    DeviceNotFoundError,
    AllocationError,
    CapacityError,
    CompileError,
    DispatchError,
)
from tiled_winograd.tiling import ProblemShape, TileGeometry, compute_tiling
from tiled_winograd.partition import WorkPartition, round_up, stage_partitions
from tiled_winograd.layout import BufferLayout, DeviceBuffer
from tiled_winograd.runtime import RunContext, create_run_context
from tiled_winograd.pipeline import PipelineState, RunResult, WinogradPipeline, winograd_conv2d
from tiled_winograd.stats import RunStatistics, winograd_flops
from tiled_winograd.reference import direct_conv2d

__version__ = "1.0.0"
__all__ = [
    "WinogradError",
    "InvalidShapeError",
    "InvalidPartitionError",
    "FileError",
    "PipelineStateError",
    "AcceleratorError",
    "DeviceNotFoundError",
    "AllocationError",
    "CapacityError",
    "CompileError",
    "DispatchError",
    "ProblemShape",
    "TileGeometry",
    "compute_tiling",
    "WorkPartition",
    "round_up",
    "stage_partitions",
    "BufferLayout",
    "DeviceBuffer",
    "RunContext",
    "create_run_context",
    "PipelineState",
    "RunResult",
    "WinogradPipeline",
    "winograd_conv2d",
    "RunStatistics",
    "winograd_flops",
    "direct_conv2d",
]
