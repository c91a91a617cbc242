"""
Plain-text tensor files.

Input:   "K C H W", then K*C*3*3 filter values in (k, c, row, col) order,
         then C*H*W image values in (channel, row, col) order. Any
         whitespace separates values.
Output:  "K C out_H out_W", then for each output channel a blank line
         followed by out_H rows of out_W fixed-point values.
"""

from dataclasses import dataclass

import numpy as np

from tiled_winograd.errors import FileError
from tiled_winograd.tiling import R_FILTER, ProblemShape, TileGeometry

VALUE_FORMAT = "{:5.4f}"
VALUE_SEP = "   "


@dataclass
class Problem:
    shape: ProblemShape
    filters: np.ndarray
    image: np.ndarray

    @property
    def geometry(self):
        return TileGeometry.from_shape(self.shape)


def _read_tokens(path):
    try:
        with open(path) as f:
            return f.read().split()
    except OSError as exc:
        raise FileError(f"Failed to open {path}: {exc}") from exc


def _header(tokens, path):
    if len(tokens) < 4:
        raise FileError(f"{path}: expected a 4-integer header, got {len(tokens)} values")
    try:
        return [int(t) for t in tokens[:4]]
    except ValueError as exc:
        raise FileError(f"{path}: malformed header {tokens[:4]}") from exc


def _values(tokens, start, count, path, what):
    chunk = tokens[start:start + count]
    if len(chunk) < count:
        raise FileError(f"{path}: expected {count} {what} values, found {len(chunk)}")
    try:
        return np.asarray(chunk, dtype=np.float64).astype(np.float32)
    except ValueError as exc:
        raise FileError(f"{path}: non-numeric {what} value") from exc


def read_problem(path):
    """Parse an input file.

    The header is validated before the tensors are read, so an odd H or W
    raises InvalidShapeError even if the rest of the file is incomplete.

    Raises:
        FileError: missing, unreadable, malformed or truncated file.
        InvalidShapeError: dimensions that cannot be tiled.
    """
    tokens = _read_tokens(path)
    shape = ProblemShape(*_header(tokens, path))
    TileGeometry.from_shape(shape)

    K, C, H, W = shape.K, shape.C, shape.H, shape.W
    n_filters = K * C * R_FILTER * R_FILTER
    filters = _values(tokens, 4, n_filters, path, "filter")
    image = _values(tokens, 4 + n_filters, C * H * W, path, "image")
    return Problem(
        shape=shape,
        filters=filters.reshape(K, C, R_FILTER, R_FILTER),
        image=image.reshape(C, H, W),
    )


def write_problem(path, filters, image):
    """Write filters [K, C, 3, 3] and image [C, H, W] in the input format."""
    filters = np.asarray(filters)
    image = np.asarray(image)
    K, C = filters.shape[:2]
    _, H, W = image.shape
    with open(path, "w") as f:
        f.write(f"{K} {C} {H} {W}\n")
        for block in (filters.reshape(-1, R_FILTER), image.reshape(-1, W)):
            for row in block:
                f.write(" ".join(repr(float(v)) for v in row) + "\n")


def format_output(Y, C):
    """Render Y [K, out_H, out_W] in the output format."""
    K, out_H, out_W = Y.shape
    lines = [f"{K} {C} {out_H} {out_W}"]
    for k in range(K):
        lines.append("")
        for i in range(out_H):
            lines.append("".join(VALUE_SEP + VALUE_FORMAT.format(v) for v in Y[k, i]))
    return "\n".join(lines) + "\n"


def write_output(path, Y, C):
    try:
        with open(path, "w") as f:
            f.write(format_output(np.asarray(Y), C))
    except OSError as exc:
        raise FileError(f"Failed to write {path}: {exc}") from exc


def read_output(path):
    """Parse an output file back into (K, C, Y)."""
    tokens = _read_tokens(path)
    K, C, out_H, out_W = _header(tokens, path)
    Y = _values(tokens, 4, K * out_H * out_W, path, "output")
    return K, C, Y.reshape(K, out_H, out_W)
