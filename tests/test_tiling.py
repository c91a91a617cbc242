"""Tile geometry and work partitioning."""

import pytest

from tiled_winograd import (
    InvalidPartitionError,
    InvalidShapeError,
    ProblemShape,
    TileGeometry,
    compute_tiling,
    round_up,
    stage_partitions,
)
from tiled_winograd.tiling import ceil_div


class TestTileGeometry:

    @pytest.mark.parametrize("H", [4, 6, 8, 10, 28, 56, 224])
    @pytest.mark.parametrize("W", [4, 6, 12, 30])
    @pytest.mark.parametrize("K,C", [(1, 1), (3, 7)])
    def test_even_shapes(self, K, C, H, W):
        g = TileGeometry.from_shape(ProblemShape(K, C, H, W))
        assert g.out_H == H - 2
        assert g.out_W == W - 2
        assert g.P == ceil_div(H - 2, 2) * ceil_div(W - 2, 2)
        assert g.P == g.num_h_tiles * g.num_w_tiles
        assert g.P >= 1
        assert g.alpha == 4

    def test_scalars(self):
        g = TileGeometry.from_shape(ProblemShape(2, 3, 6, 8))
        assert g.scalars() == {
            "K": 2, "C": 3, "P": 6, "H": 6, "W": 8,
            "out_H": 4, "out_W": 6, "num_h_tiles": 2, "num_w_tiles": 3,
        }

    @pytest.mark.parametrize("H,W", [(5, 4), (4, 5), (7, 9), (33, 32)])
    def test_odd_dims_rejected(self, H, W):
        with pytest.raises(InvalidShapeError):
            TileGeometry.from_shape(ProblemShape(1, 1, H, W))

    @pytest.mark.parametrize("shape", [(0, 1, 4, 4), (1, 0, 4, 4), (1, 1, 0, 4), (-2, 1, 4, 4)])
    def test_non_positive_dims_rejected(self, shape):
        with pytest.raises(InvalidShapeError):
            TileGeometry.from_shape(ProblemShape(*shape))

    @pytest.mark.parametrize("bad", ["abc", None, 4.5, "4"])
    def test_non_integer_dims_rejected(self, bad):
        with pytest.raises(InvalidShapeError):
            TileGeometry.from_shape(ProblemShape(1, 1, bad, 4))

    def test_too_small_for_a_tile(self):
        with pytest.raises(InvalidShapeError):
            TileGeometry.from_shape(ProblemShape(1, 1, 2, 8))

    def test_invalid_shape_is_value_error(self):
        with pytest.raises(ValueError):
            TileGeometry.from_shape(ProblemShape(1, 1, 5, 5))

    def test_tile_count_uses_true_ceiling(self):
        """compute_tiling rounds partial tiles up (only reachable for odd sizes)."""
        nh, nw, out_H, out_W = compute_tiling(7, 9)
        assert (out_H, out_W) == (5, 7)
        assert (nh, nw) == (3, 4)

    def test_ceil_equals_floor_for_even_sizes(self):
        for H in range(4, 64, 2):
            nh, _, out_H, _ = compute_tiling(H, 4)
            assert nh == out_H // 2


class TestRoundUp:

    @pytest.mark.parametrize("g", [1, 2, 3, 4, 7, 8, 64])
    def test_properties(self, g):
        for extent in range(0, 200):
            r = round_up(extent, g)
            assert r >= extent
            assert r % g == 0
            assert r - extent < g

    def test_exact_multiple_unchanged(self):
        assert round_up(32, 8) == 32

    def test_smaller_than_group(self):
        assert round_up(3, 8) == 8

    @pytest.mark.parametrize("g", [0, -4])
    def test_non_positive_group(self, g):
        with pytest.raises(InvalidPartitionError):
            round_up(10, g)


class TestStagePartitions:

    def test_extents_per_stage(self):
        g = TileGeometry.from_shape(ProblemShape(K=3, C=5, H=20, W=12))
        # out 18x10 -> 9x5 tiles, P=45
        parts = stage_partitions(g)

        assert parts["filter_transform"].global_extent == (8, 8)
        assert parts["filter_transform"].local_extent == (8, 4)

        assert parts["data_transform"].global_extent == (8, 12, 8)
        assert parts["data_transform"].local_extent == (4, 4, 4)

        assert parts["calc_M"].global_extent == (8, 48)
        assert parts["calc_M"].local_extent == (8, 8)

        assert parts["calc_Y"].global_extent == (4, 16, 8)
        assert parts["calc_Y"].local_extent == (2, 8, 8)

    def test_dimensionality(self):
        parts = stage_partitions(TileGeometry.from_shape(ProblemShape(1, 1, 4, 4)))
        assert [parts[n].dims for n in ("filter_transform", "data_transform", "calc_M", "calc_Y")] \
            == [2, 3, 2, 3]

    @pytest.mark.parametrize("K,C,H,W", [(1, 1, 4, 4), (9, 17, 30, 18), (64, 3, 224, 224)])
    def test_global_is_multiple_of_local(self, K, C, H, W):
        for part in stage_partitions(TileGeometry.from_shape(ProblemShape(K, C, H, W))).values():
            for g, l in zip(part.global_extent, part.local_extent):
                assert g % l == 0
            assert part.num_groups >= 1
