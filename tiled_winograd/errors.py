"""
Error taxonomy for the Winograd F(2,3) pipeline.

Shape and partition errors are raised before any device resource is
committed. Accelerator errors are raised at the call site that produced
them and abort the whole run.
"""


class WinogradError(Exception):
    """Base class for every error raised by tiled_winograd."""


class InvalidShapeError(WinogradError, ValueError):
    """Problem dimensions cannot be tiled by 2x2 output tiles."""


class InvalidPartitionError(WinogradError, ValueError):
    """Work-group extent is not a positive integer."""


class FileError(WinogradError, OSError):
    """Input tensor file or kernel source is missing, unreadable or truncated."""


class PipelineStateError(WinogradError, RuntimeError):
    """A stage was issued out of dependency order, or after a failed stage."""


class AcceleratorError(WinogradError, RuntimeError):
    """Failure reported by the Accelerator Runtime.

    Args:
        operation: Name of the runtime operation that failed.
        message:   Human-readable description.
    """

    def __init__(self, operation, message):
        super().__init__(f"{operation}: {message}")
        self.operation = operation


class DeviceNotFoundError(AcceleratorError):
    pass


class AllocationError(AcceleratorError):
    pass


class CapacityError(AllocationError):
    """Requested buffer exceeds the device's addressable allocation size."""

    def __init__(self, role, nbytes, limit):
        super().__init__(
            "create_buffer",
            f"buffer '{role}' needs {nbytes} bytes, device limit is {limit}",
        )
        self.role = role
        self.nbytes = nbytes
        self.limit = limit


class CompileError(AcceleratorError):
    """Stage program failed to build; `build_log` holds the compiler output."""

    def __init__(self, message, build_log=""):
        super().__init__("compile_program", message)
        self.build_log = build_log


class DispatchError(AcceleratorError):
    pass
