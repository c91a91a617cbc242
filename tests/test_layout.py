"""Buffer layout sizes."""

import pytest

from tiled_winograd import BufferLayout, ProblemShape, TileGeometry
from tiled_winograd.layout import OUTPUT_ROLES, READ_ONLY, READ_WRITE, ROLES


def layout_for(K, C, H, W):
    return BufferLayout(TileGeometry.from_shape(ProblemShape(K, C, H, W)))


def test_nine_buffers_with_expected_sizes():
    layout = layout_for(K=2, C=3, H=6, W=8)
    # out 4x6, 2x3 tiles, P=6
    assert layout.sizes() == {
        "filters": 2 * 3 * 9,
        "image": 3 * 6 * 8,
        "G": 12,
        "B": 16,
        "A": 8,
        "U": 2 * 3 * 16,
        "V": 3 * 6 * 16,
        "M": 2 * 6 * 16,
        "Y": 2 * 4 * 6,
    }
    assert len(layout) == 9
    assert tuple(b.role for b in layout) == ROLES


def test_byte_sizes_are_float32():
    layout = layout_for(4, 4, 10, 10)
    for buf in layout:
        assert buf.nbytes == 4 * buf.element_count


def test_access_modes():
    layout = layout_for(1, 1, 4, 4)
    for role in ("filters", "image", "G", "B", "A"):
        assert layout[role].access == READ_ONLY
        assert not layout[role].is_output
    for role in OUTPUT_ROLES:
        assert layout[role].access == READ_WRITE
        assert layout[role].is_output


def test_output_roles_are_distinct():
    layout = layout_for(3, 3, 8, 8)
    outputs = [b for b in layout if b.is_output]
    assert len({b.role for b in outputs}) == len(outputs) == 4


@pytest.mark.parametrize("axis", range(4))
def test_sizes_monotonic_in_each_dimension(axis):
    base = [2, 3, 8, 10]
    step = 1 if axis < 2 else 2
    prev = layout_for(*base).sizes()
    for _ in range(6):
        base[axis] += step
        cur = layout_for(*base).sizes()
        for role in ROLES:
            assert cur[role] >= prev[role], (axis, role)
        prev = cur


def test_matches_same_shape_only():
    layout = layout_for(2, 2, 8, 8)
    assert layout.matches(ProblemShape(2, 2, 8, 8))
    assert not layout.matches(ProblemShape(2, 2, 8, 10))
