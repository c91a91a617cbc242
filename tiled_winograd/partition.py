"""
Work partitioning: global/local extents for each pipeline stage.

Local (group) extents are fixed per stage and match the register/tile
footprint of that stage's compute body. Global extents are the problem
extents rounded up to a multiple of the group extent, so a stage may be
launched with padding work-items that its body must skip.
"""

from dataclasses import dataclass

from tiled_winograd.errors import InvalidPartitionError


def round_up(extent, group_size):
    """Smallest multiple of `group_size` that is >= `extent`.

    Raises:
        InvalidPartitionError: group_size is not positive.
    """
    if group_size <= 0:
        raise InvalidPartitionError(f"group size must be > 0, got {group_size}")
    remainder = extent % group_size
    if remainder == 0:
        return extent
    return extent + group_size - remainder


@dataclass(frozen=True)
class WorkPartition:
    global_extent: tuple
    local_extent: tuple

    @property
    def dims(self):
        return len(self.global_extent)

    @property
    def num_groups(self):
        n = 1
        for g, l in zip(self.global_extent, self.local_extent):
            n *= g // l
        return n


def partition(extents, group):
    """Round each axis of `extents` up to the matching axis of `group`."""
    assert len(extents) == len(group), "extent and group dimensionality differ"
    return WorkPartition(
        global_extent=tuple(round_up(e, g) for e, g in zip(extents, group)),
        local_extent=tuple(group),
    )


# (problem extents, group extent) per stage, from a TileGeometry
STAGE_GROUPS = {
    "filter_transform": (8, 4),
    "data_transform": (4, 4, 4),
    "calc_M": (8, 8),
    "calc_Y": (2, 8, 8),
}


def stage_extents(name, geometry):
    """Per-axis work extent a stage needs to cover the problem."""
    g = geometry
    if name == "filter_transform":
        return (g.K, g.C)
    if name == "data_transform":
        return (g.C, g.num_h_tiles, g.num_w_tiles)
    if name == "calc_M":
        return (g.K, g.P)
    if name == "calc_Y":
        return (g.K, g.num_h_tiles, g.num_w_tiles)
    raise KeyError(f"unknown stage '{name}'")


def stage_partitions(geometry):
    """WorkPartition for every stage, keyed by stage name."""
    return {
        name: partition(stage_extents(name, geometry), group)
        for name, group in STAGE_GROUPS.items()
    }
