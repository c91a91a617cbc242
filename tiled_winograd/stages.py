"""
The four compute stages of the F(2,3) pipeline.

Each stage has a positional binding contract: operand buffers first, then
int32 dimension scalars, in the order listed in STAGE_SPECS. Both the
torch bodies below and the OpenCL kernels in kernels/winograd.cl follow
the same contract, so the orchestrator never needs to know which backend
it is driving.

Every body receives the global work extent it was launched with and only
computes the indices that fall inside the problem; extents larger than
the problem (padding work-items) are skipped, smaller ones leave output
uncovered.
"""

from dataclasses import dataclass

import torch

from tiled_winograd.partition import STAGE_GROUPS
from tiled_winograd.tiling import ALPHA, M_TILE, R_FILTER


@dataclass(frozen=True)
class StageSpec:
    name: str
    operands: tuple
    scalars: tuple
    depends_on: tuple = ()

    @property
    def group(self):
        return STAGE_GROUPS[self.name]

    @property
    def dims(self):
        return len(self.group)

    @property
    def writes(self):
        return self.operands[-1]


STAGE_SPECS = (
    StageSpec("filter_transform", ("filters", "G", "U"), ("K", "C")),
    StageSpec("data_transform", ("image", "B", "V"),
              ("C", "P", "H", "W", "num_h_tiles", "num_w_tiles")),
    StageSpec("calc_M", ("U", "V", "M"), ("K", "P", "C"),
              depends_on=("filter_transform", "data_transform")),
    StageSpec("calc_Y", ("M", "A", "Y"),
              ("out_H", "out_W", "K", "P", "num_h_tiles", "num_w_tiles"),
              depends_on=("calc_M",)),
)

STAGE_NAMES = tuple(s.name for s in STAGE_SPECS)
STAGES_BY_NAME = {s.name: s for s in STAGE_SPECS}


# ─────────────────────────────────────────────────────────────────────────
# Torch stage bodies
# ─────────────────────────────────────────────────────────────────────────

def filter_transform(global_extent, filters, G, U, K, C):
    """U[k, c] = G g[k, c] G^T for every (k, c) inside the launch."""
    k_hi = min(global_extent[0], K)
    c_hi = min(global_extent[1], C)
    g = filters.view(K, C, R_FILTER, R_FILTER)[:k_hi, :c_hi]
    Gm = G.view(ALPHA, R_FILTER)
    u = Gm @ g @ Gm.T
    U.view(K, C, ALPHA * ALPHA)[:k_hi, :c_hi] = u.reshape(k_hi, c_hi, ALPHA * ALPHA)


def data_transform(global_extent, image, B, V, C, P, H, W, num_h_tiles, num_w_tiles):
    """V[c, p] = B^T d B for each overlapping 4x4 patch d (stride 2)."""
    c_hi = min(global_extent[0], C)
    h_hi = min(global_extent[1], num_h_tiles)
    w_hi = min(global_extent[2], num_w_tiles)
    x = image.view(C, H, W)[:c_hi]
    d = x.unfold(1, ALPHA, M_TILE).unfold(2, ALPHA, M_TILE)[:, :h_hi, :w_hi]
    Bm = B.view(ALPHA, ALPHA)
    v = Bm.T @ d @ Bm
    dst = V.view(C, num_h_tiles, num_w_tiles, ALPHA * ALPHA)
    dst[:c_hi, :h_hi, :w_hi] = v.reshape(c_hi, h_hi, w_hi, ALPHA * ALPHA)


def calc_M(global_extent, U, V, M, K, P, C):
    """M[k, p] = sum_c U[k, c] * V[c, p], elementwise over the 4x4 tile."""
    k_hi = min(global_extent[0], K)
    p_hi = min(global_extent[1], P)
    u = U.view(K, C, ALPHA * ALPHA)[:k_hi]
    v = V.view(C, P, ALPHA * ALPHA)[:, :p_hi]
    M.view(K, P, ALPHA * ALPHA)[:k_hi, :p_hi] = torch.einsum("kce,cpe->kpe", u, v)


def calc_Y(global_extent, M, A, Y, out_H, out_W, K, P, num_h_tiles, num_w_tiles):
    """Y tile (th, tw) of channel k = A^T M[k, p] A, scattered into [K, out_H, out_W]."""
    k_hi = min(global_extent[0], K)
    h_hi = min(global_extent[1], num_h_tiles)
    w_hi = min(global_extent[2], num_w_tiles)
    m = M.view(K, num_h_tiles, num_w_tiles, ALPHA, ALPHA)[:k_hi, :h_hi, :w_hi]
    Am = A.view(ALPHA, M_TILE)
    y = Am.T @ m @ Am
    y = y.permute(0, 1, 3, 2, 4).reshape(k_hi, h_hi * M_TILE, w_hi * M_TILE)
    rows = min(h_hi * M_TILE, out_H)
    cols = min(w_hi * M_TILE, out_W)
    Y.view(K, out_H, out_W)[:k_hi, :rows, :cols] = y[:, :rows, :cols]


TORCH_STAGE_BODIES = {
    "filter_transform": filter_transform,
    "data_transform": data_transform,
    "calc_M": calc_M,
    "calc_Y": calc_Y,
}
