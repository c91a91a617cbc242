"""
Accelerator Runtime backed by pyopencl.

Compiles kernels/winograd.cl and dispatches each stage with
enqueue_nd_range_kernel on a single in-order command queue.
"""

import numpy as np
import pyopencl as cl

from tiled_winograd.errors import (
    AllocationError,
    CapacityError,
    CompileError,
    DeviceNotFoundError,
    DispatchError,
)
from tiled_winograd.layout import ELEMENT_DTYPE, READ_ONLY


def _gpu_devices():
    devices = []
    for platform in cl.get_platforms():
        try:
            devices.extend(platform.get_devices(device_type=cl.device_type.GPU))
        except cl.Error:
            continue
    return devices


class OpenCLStage:
    """Compiled stage wrapping a cl.Kernel."""

    def __init__(self, name, kernel):
        self.name = name
        self.kernel = kernel

    def bind(self, buffers, scalars):
        args = list(buffers) + [np.int32(s) for s in scalars]
        for i, arg in enumerate(args):
            self.kernel.set_arg(i, arg)

    def dispatch(self, queue, global_extent, local_extent):
        try:
            return cl.enqueue_nd_range_kernel(
                queue, self.kernel, tuple(global_extent), tuple(local_extent))
        except cl.Error as exc:
            raise DispatchError("enqueue", f"stage '{self.name}' failed: {exc}") from exc


class OpenCLRuntime:
    name = "opencl"

    def select_device(self, device=None):
        """Pick the `device`-th GPU across all platforms (default 0)."""
        try:
            index = int(device or 0)
        except ValueError as exc:
            raise DeviceNotFoundError("select_device", f"invalid OpenCL device index {device!r}") from exc
        if index < 0:
            raise DeviceNotFoundError("select_device", f"OpenCL device index must be >= 0, got {index}")
        try:
            devices = _gpu_devices()
        except cl.Error as exc:
            raise DeviceNotFoundError("select_device", f"No OpenCL platform found: {exc}") from exc
        if index >= len(devices):
            raise DeviceNotFoundError(
                "select_device",
                f"No available OpenCL GPU device #{index} ({len(devices)} found)")
        return devices[index]

    def create_context(self, device):
        try:
            return cl.Context([device])
        except cl.Error as exc:
            raise DeviceNotFoundError("create_context", str(exc)) from exc

    def create_queue(self, context, device):
        try:
            return cl.CommandQueue(context, device)
        except cl.Error as exc:
            raise DeviceNotFoundError("create_queue", str(exc)) from exc

    def describe(self, device):
        return {"backend": self.name, "name": device.name.strip(),
                "max_alloc_bytes": device.max_mem_alloc_size}

    def create_buffer(self, context, access, nbytes, role=""):
        device = context.devices[0]
        limit = device.max_mem_alloc_size
        if nbytes > limit:
            raise CapacityError(role, nbytes, limit)
        mf = cl.mem_flags
        flags = mf.READ_ONLY if access == READ_ONLY else mf.READ_WRITE
        try:
            return cl.Buffer(context, flags, size=nbytes)
        except cl.Error as exc:
            raise AllocationError("create_buffer", f"buffer '{role}' ({nbytes} bytes): {exc}") from exc

    def upload(self, queue, buffer, host_data):
        host = np.ascontiguousarray(host_data, dtype=ELEMENT_DTYPE)
        try:
            cl.enqueue_copy(queue, buffer, host, is_blocking=True)
        except cl.Error as exc:
            raise DispatchError("upload", str(exc)) from exc

    def compile_program(self, context, device, source, names):
        try:
            program = cl.Program(context, source).build(devices=[device])
        except cl.Error as exc:
            raise CompileError("Program build error", build_log=str(exc)) from exc
        stages = {}
        for name in names:
            try:
                stages[name] = OpenCLStage(name, cl.Kernel(program, name))
            except cl.Error as exc:
                raise CompileError(f"kernel '{name}' not found in program",
                                   build_log=str(exc)) from exc
        return stages

    def enqueue(self, queue, stage, global_extent, local_extent):
        return stage.dispatch(queue, global_extent, local_extent)

    def finish(self, queue):
        try:
            queue.finish()
        except cl.Error as exc:
            raise DispatchError("finish", str(exc)) from exc

    def download(self, queue, buffer, host_buffer):
        try:
            cl.enqueue_copy(queue, host_buffer, buffer, is_blocking=True)
        except cl.Error as exc:
            raise DispatchError("download", str(exc)) from exc
        return host_buffer

    def release(self, ctx):
        try:
            ctx.queue.finish()
        except cl.Error as exc:
            raise DispatchError("release", str(exc)) from exc
