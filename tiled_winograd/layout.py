"""
Device buffer layout for one pipeline run.

Nine float32 buffers, all flat and row-major:

    filters  [K, C, 3, 3]            uploaded
    image    [C, H, W]               uploaded
    G, B, A  transform constants     uploaded
    U        [K, C, alpha^2]         written by filter_transform
    V        [C, P, alpha^2]         written by data_transform
    M        [K, P, alpha^2]         written by calc_M
    Y        [K, out_H, out_W]       written by calc_Y, read back

This module only computes sizes. Allocation, and the check against the
device's allocation limit, belong to the Accelerator Runtime.
"""

from dataclasses import dataclass

import numpy as np

from tiled_winograd.tiling import ALPHA, M_TILE, R_FILTER

READ_ONLY = "read_only"
READ_WRITE = "read_write"

ELEMENT_DTYPE = np.float32
ELEMENT_SIZE = np.dtype(ELEMENT_DTYPE).itemsize

INPUT_ROLES = ("filters", "image")
CONSTANT_ROLES = ("G", "B", "A")
OUTPUT_ROLES = ("U", "V", "M", "Y")
ROLES = INPUT_ROLES + CONSTANT_ROLES + OUTPUT_ROLES


@dataclass(frozen=True)
class DeviceBuffer:
    role: str
    shape: tuple
    access: str

    @property
    def element_count(self):
        n = 1
        for d in self.shape:
            n *= d
        return n

    @property
    def nbytes(self):
        return self.element_count * ELEMENT_SIZE

    @property
    def is_output(self):
        return self.role in OUTPUT_ROLES


class BufferLayout:
    """Shapes and byte sizes of the nine buffers for a TileGeometry."""

    def __init__(self, geometry):
        self.geometry = geometry
        g = geometry
        a2 = ALPHA * ALPHA
        self.buffers = {
            "filters": DeviceBuffer("filters", (g.K, g.C, R_FILTER, R_FILTER), READ_ONLY),
            "image": DeviceBuffer("image", (g.C, g.H, g.W), READ_ONLY),
            "G": DeviceBuffer("G", (ALPHA, R_FILTER), READ_ONLY),
            "B": DeviceBuffer("B", (ALPHA, ALPHA), READ_ONLY),
            "A": DeviceBuffer("A", (ALPHA, M_TILE), READ_ONLY),
            "U": DeviceBuffer("U", (g.K, g.C, a2), READ_WRITE),
            "V": DeviceBuffer("V", (g.C, g.P, a2), READ_WRITE),
            "M": DeviceBuffer("M", (g.K, g.P, a2), READ_WRITE),
            "Y": DeviceBuffer("Y", (g.K, g.out_H, g.out_W), READ_WRITE),
        }

    @property
    def shape(self):
        return self.geometry.shape

    def __getitem__(self, role):
        return self.buffers[role]

    def __iter__(self):
        return iter(self.buffers.values())

    def __len__(self):
        return len(self.buffers)

    def sizes(self):
        """Element count per role."""
        return {b.role: b.element_count for b in self}

    def total_bytes(self):
        return sum(b.nbytes for b in self)

    def matches(self, shape):
        """True if this layout can be reused for a run of `shape`."""
        return self.geometry.shape == shape

    def __repr__(self):
        return f"BufferLayout({self.shape}, {self.total_bytes()} bytes)"
