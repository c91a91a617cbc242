"""
Tiling arithmetic for Winograd F(2,3).

A 3x3 filter (r=3) slid over an H x W image without padding produces an
(H-2) x (W-2) output, which is covered by 2x2 output tiles (m=2). Each
output tile is computed from a 4x4 input patch (alpha = m + r - 1).
"""

from dataclasses import dataclass

from tiled_winograd.errors import InvalidShapeError

M_TILE = 2
R_FILTER = 3
ALPHA = M_TILE + R_FILTER - 1


def ceil_div(a, b):
    """Integer ceiling division for non-negative a and positive b."""
    return -(-a // b)


@dataclass(frozen=True)
class ProblemShape:
    """Convolution problem size: K output channels, C input channels, H x W image."""
    K: int
    C: int
    H: int
    W: int

    def validate(self):
        for name in ("K", "C", "H", "W"):
            value = getattr(self, name)
            try:
                valid = int(value) == value and value > 0
            except (TypeError, ValueError):
                valid = False
            if not valid:
                raise InvalidShapeError(f"{name} must be a positive integer, got {value!r}")
        if self.H % 2 != 0 or self.W % 2 != 0:
            raise InvalidShapeError(
                f"H (height of image) and W (width of image) must be even, "
                f"got H={self.H}, W={self.W}"
            )
        if self.H < ALPHA or self.W < ALPHA:
            raise InvalidShapeError(
                f"image must be at least {ALPHA}x{ALPHA} to hold one tile, "
                f"got H={self.H}, W={self.W}"
            )
        return self


@dataclass(frozen=True)
class TileGeometry:
    """Derived tiling of a ProblemShape. Build with `TileGeometry.from_shape`."""
    shape: ProblemShape
    out_H: int
    out_W: int
    num_h_tiles: int
    num_w_tiles: int
    P: int
    alpha: int = ALPHA

    @classmethod
    def from_shape(cls, shape):
        """Validate `shape` and derive its tile geometry.

        Raises:
            InvalidShapeError: H or W odd, smaller than one tile, or any
                dimension non-positive.
        """
        shape.validate()
        nh, nw, out_H, out_W = compute_tiling(shape.H, shape.W)
        return cls(shape=shape, out_H=out_H, out_W=out_W,
                   num_h_tiles=nh, num_w_tiles=nw, P=nh * nw)

    @property
    def K(self):
        return self.shape.K

    @property
    def C(self):
        return self.shape.C

    @property
    def H(self):
        return self.shape.H

    @property
    def W(self):
        return self.shape.W

    def scalars(self):
        """Dimension integers a stage may bind, keyed by name."""
        return {
            "K": self.K, "C": self.C, "P": self.P,
            "H": self.H, "W": self.W,
            "out_H": self.out_H, "out_W": self.out_W,
            "num_h_tiles": self.num_h_tiles, "num_w_tiles": self.num_w_tiles,
        }


def compute_tiling(H, W):
    """Compute tiling parameters for an unpadded 3x3 convolution.

    Tile counts use true ceiling division; for the even H, W accepted by
    TileGeometry this equals plain integer division.

    Returns:
        (nh, nw, out_H, out_W) — tile counts and output spatial dimensions.
    """
    out_H = H - R_FILTER + 1
    out_W = W - R_FILTER + 1
    return ceil_div(out_H, M_TILE), ceil_div(out_W, M_TILE), out_H, out_W
