"""
Accelerator Runtime: device selection, buffers, stage compilation, dispatch.

Two backends implement the same surface:

    torch   — flat float32 tensors on a torch device; stages are the
              vectorized bodies in tiled_winograd.stages (default)
    opencl  — pyopencl buffers and the kernels in kernels/winograd.cl

A RunContext bundles the handles of one backend for the lifetime of a
run. There is no module-level device state; every component receives the
RunContext explicitly.
"""

import os
from dataclasses import dataclass, field

import numpy as np
import torch

from tiled_winograd.errors import (
    AcceleratorError,
    AllocationError,
    CapacityError,
    CompileError,
    DeviceNotFoundError,
    DispatchError,
    FileError,
)
from tiled_winograd.layout import ELEMENT_DTYPE, ELEMENT_SIZE
from tiled_winograd.stages import STAGE_NAMES, TORCH_STAGE_BODIES

BACKEND_ENV = "TILED_WINOGRAD_BACKEND"
KERNELS_ENV = "TILED_WINOGRAD_KERNELS"
DEFAULT_BACKEND = "torch"
_KERNEL_FILE = "winograd.cl"


def default_backend():
    return os.environ.get(BACKEND_ENV, DEFAULT_BACKEND)


def find_kernel_source(path=None):
    """Locate the OpenCL kernel source.

    Checks, in order: `path`, $TILED_WINOGRAD_KERNELS, the packaged
    kernels/winograd.cl, then ./winograd.cl.
    """
    if path is not None:
        candidates = [path]
    else:
        candidates = [
            os.environ.get(KERNELS_ENV),
            os.path.join(os.path.dirname(os.path.abspath(__file__)), "kernels", _KERNEL_FILE),
            os.path.join(os.getcwd(), _KERNEL_FILE),
        ]
    candidates = [c for c in candidates if c]
    for candidate in candidates:
        if os.path.exists(candidate):
            return candidate
    raise FileError(f"Cannot find {_KERNEL_FILE}. Searched: {candidates}")


def read_kernel_source(path=None):
    source_path = find_kernel_source(path)
    try:
        with open(source_path) as f:
            return f.read()
    except OSError as exc:
        raise FileError(f"Failed to open {source_path}: {exc}") from exc


# ─────────────────────────────────────────────────────────────────────────
# RunContext
# ─────────────────────────────────────────────────────────────────────────

@dataclass
class RunContext:
    """Handles owned by one run: runtime, device, context, queue, compiled stages."""
    runtime: object
    device: object
    context: object
    queue: object
    stages: dict = field(default_factory=dict)

    @property
    def backend(self):
        return self.runtime.name

    def describe(self):
        return self.runtime.describe(self.device)

    def release(self):
        self.stages = {}
        try:
            self.runtime.release(self)
        except AcceleratorError:
            raise
        except RuntimeError as exc:
            raise DispatchError("release", str(exc)) from exc


def create_run_context(backend=None, device=None, kernel_source=None, verbose=False):
    """Select a device, create context/queue and compile the four stages.

    Args:
        backend:       "torch" or "opencl" (default: $TILED_WINOGRAD_BACKEND or "torch").
        device:        Backend-specific device selector (torch device string,
                       or OpenCL GPU index).
        kernel_source: Path to an OpenCL source file (opencl backend only).
        verbose:       Print the selected device.
    """
    backend = backend or default_backend()
    if backend == "torch":
        runtime = TorchRuntime()
        source = None
    elif backend == "opencl":
        from tiled_winograd.opencl import OpenCLRuntime
        runtime = OpenCLRuntime()
        source = read_kernel_source(kernel_source)
    else:
        raise ValueError(f"unknown backend '{backend}', expected 'torch' or 'opencl'")

    dev = runtime.select_device(device)
    context = runtime.create_context(dev)
    queue = runtime.create_queue(context, dev)
    ctx = RunContext(runtime=runtime, device=dev, context=context, queue=queue)
    ctx.stages = runtime.compile_program(context, dev, source, STAGE_NAMES)
    if verbose:
        info = ctx.describe()
        print(f"Backend: {info['backend']}  Device: {info['name']}  "
              f"Max alloc: {info['max_alloc_bytes'] / 2**20:.0f} MB")
    return ctx


# ─────────────────────────────────────────────────────────────────────────
# Torch backend
# ─────────────────────────────────────────────────────────────────────────

class TorchStage:
    """Compiled stage for the torch backend: bind positional args, then dispatch."""

    def __init__(self, name, body):
        self.name = name
        self.body = body
        self._args = None

    def bind(self, buffers, scalars):
        self._args = tuple(buffers) + tuple(int(s) for s in scalars)

    def dispatch(self, queue, global_extent, local_extent):
        if self._args is None:
            raise DispatchError("enqueue", f"stage '{self.name}' has no bound arguments")
        if len(global_extent) != len(local_extent):
            raise DispatchError("enqueue", f"stage '{self.name}': global {global_extent} "
                                           f"and local {local_extent} differ in dimensionality")
        for g, l in zip(global_extent, local_extent):
            if l <= 0 or g % l != 0:
                raise DispatchError("enqueue", f"stage '{self.name}': global {global_extent} "
                                               f"is not a multiple of local {local_extent}")
        try:
            if queue is not None:
                with torch.cuda.stream(queue):
                    self.body(tuple(global_extent), *self._args)
            else:
                self.body(tuple(global_extent), *self._args)
        except RuntimeError as exc:
            raise DispatchError("enqueue", f"stage '{self.name}' failed: {exc}") from exc


class TorchRuntime:
    """Accelerator Runtime backed by torch tensors."""

    name = "torch"

    def select_device(self, device=None):
        if device is None:
            device = "cuda" if torch.cuda.is_available() else "cpu"
        try:
            dev = torch.device(device)
        except RuntimeError as exc:
            raise DeviceNotFoundError("select_device", str(exc)) from exc
        if dev.type == "cuda":
            if not torch.cuda.is_available():
                raise DeviceNotFoundError("select_device", "No available CUDA/HIP device found")
            # Force torch to initialize CUDA/HIP runtime first
            torch.cuda.init()
        return dev

    def create_context(self, device):
        return device

    def create_queue(self, context, device):
        if device.type == "cuda":
            return torch.cuda.Stream(device=device)
        return None

    def max_alloc_bytes(self, device):
        if device.type == "cuda":
            return torch.cuda.get_device_properties(device).total_memory
        return None

    def describe(self, device):
        if device.type == "cuda":
            prop = torch.cuda.get_device_properties(device)
            name = prop.name
        else:
            name = "cpu"
        return {"backend": self.name, "name": name,
                "max_alloc_bytes": self.max_alloc_bytes(device) or float("inf")}

    def create_buffer(self, context, access, nbytes, role=""):
        limit = self.max_alloc_bytes(context)
        if limit is not None and nbytes > limit:
            raise CapacityError(role, nbytes, limit)
        try:
            return torch.empty(nbytes // ELEMENT_SIZE, dtype=torch.float32, device=context)
        except RuntimeError as exc:
            raise AllocationError("create_buffer", f"buffer '{role}' ({nbytes} bytes): {exc}") from exc

    def upload(self, queue, buffer, host_data):
        src = torch.tensor(np.asarray(host_data, dtype=ELEMENT_DTYPE).reshape(-1))
        if src.numel() != buffer.numel():
            raise DispatchError("upload", f"host data has {src.numel()} elements, "
                                          f"buffer holds {buffer.numel()}")
        try:
            buffer.copy_(src)
            if buffer.is_cuda:
                torch.cuda.synchronize(buffer.device)
        except RuntimeError as exc:
            raise DispatchError("upload", str(exc)) from exc

    def compile_program(self, context, device, source, names):
        missing = [n for n in names if n not in TORCH_STAGE_BODIES]
        if missing:
            raise CompileError(f"no torch stage bodies for {missing}",
                               build_log=f"available: {sorted(TORCH_STAGE_BODIES)}")
        return {n: TorchStage(n, TORCH_STAGE_BODIES[n]) for n in names}

    def enqueue(self, queue, stage, global_extent, local_extent):
        stage.dispatch(queue, global_extent, local_extent)

    def finish(self, queue):
        if queue is not None:
            try:
                queue.synchronize()
            except RuntimeError as exc:
                raise DispatchError("finish", str(exc)) from exc

    def download(self, queue, buffer, host_buffer):
        try:
            if queue is not None:
                queue.synchronize()
            host_buffer.reshape(-1)[:] = buffer.detach().cpu().numpy()
        except RuntimeError as exc:
            raise DispatchError("download", str(exc)) from exc
        return host_buffer

    def release(self, ctx):
        if ctx.queue is not None:
            try:
                ctx.queue.synchronize()
            except RuntimeError as exc:
                raise DispatchError("release", str(exc)) from exc
