"""
Winograd F(2,3) transform matrices.

    U = G g G^T        (filter 3x3  -> 4x4)
    V = B^T d B        (data   4x4  -> 4x4)
    Y = A^T M A        (product 4x4 -> 2x2)

Arrays are built once at import, float32, and flagged read-only.
"""

import numpy as np


def _constant(rows):
    arr = np.array(rows, dtype=np.float32)
    arr.flags.writeable = False
    return arr


# Filter transform, 4x3
G = _constant([
    [1.0, 0.0, 0.0],
    [0.5, 0.5, 0.5],
    [0.5, -0.5, 0.5],
    [0.0, 0.0, 1.0],
])

# Data transform, 4x4
B = _constant([
    [1.0, 0.0, 0.0, 0.0],
    [0.0, 1.0, -1.0, 1.0],
    [-1.0, 1.0, 1.0, 0.0],
    [0.0, 0.0, 0.0, -1.0],
])

# Inverse transform, 4x2
A = _constant([
    [1.0, 0.0],
    [1.0, 1.0],
    [1.0, -1.0],
    [0.0, -1.0],
])

TRANSFORM_CONSTANTS = {"G": G, "B": B, "A": A}
