"""Assembly of the final view set.

The channel, illumination, tile and angle IDs are combined in nested order
(angle varies fastest). For every combination and timepoint, the sources of
the five IDs are intersected:

- exactly one source: that source supplies the view;
- no source: the view is missing;
- several sources: the view is left unassigned and reported as a duplicate.

A combination becomes a view setup only if at least one timepoint has exactly
one source for it. Setup IDs are assigned in combination order, so they do not
depend on which timepoints happen to be missing.
"""

import itertools
import logging
import math
from dataclasses import dataclass, field
from typing import Optional

import pandas as pd

from .model import (
    VIEW_SETUP_AXES,
    AngleIdentity,
    Axis,
    ChannelIdentity,
    DataSourceRef,
    DetectionState,
    TileIdentity,
    UnresolvedSource,
    ViewAttribute,
    ViewId,
    ViewSetup,
)

# (channel, illumination, tile, angle) IDs
Combination = tuple[int, int, int, int]

ROTATION_AXES = {
    0: (1.0, 0.0, 0.0),
    1: (0.0, 1.0, 0.0),
    2: (0.0, 0.0, 1.0),
}


@dataclass(frozen=True)
class DuplicateView:
    """More than one source matched a single view."""

    timepoint: int
    setup: Optional[int]
    """None if the combination never had a unique source and got no setup."""
    combination: Combination
    sources: tuple[DataSourceRef, ...]


@dataclass
class ResolvedDataset:
    timepoints: list[int]
    view_setups: list[ViewSetup]
    missing_views: list[ViewId]
    view_sources: dict[ViewId, DataSourceRef]
    duplicate_views: list[DuplicateView] = field(default_factory=list)
    unresolved: list[UnresolvedSource] = field(default_factory=list)
    z_grouped: bool = False
    """Set if sources are synthetic Z stacks whose planes live in separate files."""

    def view_setup(self, setup_id: int) -> ViewSetup:
        for setup in self.view_setups:
            if setup.id == setup_id:
                return setup
        raise KeyError(f"No view setup with id {setup_id}")

    def to_dataframe(self) -> pd.DataFrame:
        """One row per view, present or missing, ordered by (timepoint, setup)."""
        setups = {setup.id: setup for setup in self.view_setups}
        missing = set(self.missing_views)
        rows = []
        for view_id in sorted(set(self.view_sources) | missing):
            setup = setups[view_id.setup]
            source = self.view_sources.get(view_id)
            dims = setup.dimensions
            voxel = setup.voxel_size
            rows.append(
                {
                    "timepoint": view_id.timepoint,
                    "setup": view_id.setup,
                    **{axis.value: setup.attribute(axis).name for axis in VIEW_SETUP_AXES},
                    "missing": view_id in missing,
                    "path": source.path if source else None,
                    "series": source.series if source else None,
                    "source_channel": source.channel if source else None,
                    "size_x": dims.x if dims else None,
                    "size_y": dims.y if dims else None,
                    "size_z": dims.z if dims else None,
                    "voxel_x": voxel.x if voxel else None,
                    "voxel_y": voxel.y if voxel else None,
                    "voxel_z": voxel.z if voxel else None,
                    "unit": voxel.unit if voxel else None,
                }
            )
        return pd.DataFrame(rows)


def channel_attribute(channel_id: int, detail) -> ViewAttribute:
    """Channels are named by name, else fluorophore, else emission wavelength."""
    name = str(channel_id)
    if isinstance(detail, ChannelIdentity):
        if detail.name is not None:
            name = detail.name
        elif detail.fluorophore is not None:
            name = detail.fluorophore
        elif detail.wavelength is not None:
            name = str(round(detail.wavelength))
    return ViewAttribute(channel_id, name)


def angle_attribute(angle_id: int, detail) -> ViewAttribute:
    if (
        isinstance(detail, AngleIdentity)
        and detail.angle_degrees is not None
        and detail.rotation_axis in ROTATION_AXES
        and math.isfinite(detail.angle_degrees)
    ):
        return ViewAttribute(
            angle_id,
            str(angle_id),
            rotation_axis=ROTATION_AXES[detail.rotation_axis],
            rotation_degrees=detail.angle_degrees,
        )
    return ViewAttribute(angle_id, str(angle_id))


def tile_attribute(tile_id: int, detail) -> ViewAttribute:
    # Unknown coordinates of a partially known location are set to 0.
    if isinstance(detail, TileIdentity) and detail.has_location:
        location = tuple(0.0 if v is None else v for v in (detail.x, detail.y, detail.z))
        return ViewAttribute(tile_id, str(tile_id), location=location)
    return ViewAttribute(tile_id, str(tile_id))


def create_view_setup(
    setup_id: int,
    combination: Combination,
    source: DataSourceRef,
    state: DetectionState,
) -> ViewSetup:
    channel_id, illumination_id, tile_id, angle_id = combination
    details = state.detail_map
    dims, voxel_size = state.dimensions.get(source, (None, None))
    return ViewSetup(
        id=setup_id,
        name=str(setup_id),
        channel=channel_attribute(channel_id, details[Axis.CHANNEL].get(channel_id)),
        illumination=ViewAttribute(illumination_id, str(illumination_id)),
        angle=angle_attribute(angle_id, details[Axis.ANGLE].get(angle_id)),
        tile=tile_attribute(tile_id, details[Axis.TILE].get(tile_id)),
        dimensions=dims,
        voxel_size=voxel_size,
    )


def _describe(combination: Combination, timepoint: int) -> str:
    channel, illumination, tile, angle = combination
    return f"ch{channel} i{illumination} ti{tile} a{angle} tp{timepoint}"


def assemble_views(state: DetectionState) -> ResolvedDataset:
    """Build timepoints, view setups, missing views and the view -> source map."""
    id_lists = [sorted(state.id_map[axis]) for axis in VIEW_SETUP_AXES]
    timepoint_ids = sorted(state.id_map[Axis.TIMEPOINT])
    timepoint_sources = {
        tp: set(state.id_map[Axis.TIMEPOINT][tp]) for tp in timepoint_ids
    }

    # First pass: find out which combinations have data and number them.
    candidates = []
    view_setups: list[ViewSetup] = []
    for combination in itertools.product(*id_lists):
        base = set.intersection(
            *(
                set(state.id_map[axis][axis_id])
                for axis, axis_id in zip(VIEW_SETUP_AXES, combination)
            )
        )
        if not base:
            continue

        per_timepoint = {
            tp: sorted(base & timepoint_sources[tp]) for tp in timepoint_ids
        }
        setup = None
        for refs in per_timepoint.values():
            if len(refs) == 1:
                setup = create_view_setup(len(view_setups), combination, refs[0], state)
                view_setups.append(setup)
                break
        candidates.append((combination, setup, per_timepoint))

    # Second pass: fill in the timepoint x setup grid.
    view_sources: dict[ViewId, DataSourceRef] = {}
    missing: list[ViewId] = []
    duplicates: list[DuplicateView] = []
    timepoints: set[int] = set()
    for combination, setup, per_timepoint in candidates:
        for tp, refs in per_timepoint.items():
            if len(refs) == 1:
                view_sources[ViewId(tp, setup.id)] = refs[0]
                timepoints.add(tp)
                logging.debug(f"Found view {_describe(combination, tp)} in {refs[0].path}")
            elif not refs:
                if setup is not None:
                    missing.append(ViewId(tp, setup.id))
                    logging.debug(f"Missing view {_describe(combination, tp)}")
            else:
                logging.error(
                    f"More than one source for view {_describe(combination, tp)}: "
                    + ", ".join(f"{r.path} (series {r.series}, channel {r.channel})" for r in refs)
                )
                duplicates.append(
                    DuplicateView(
                        tp, setup.id if setup else None, combination, tuple(refs)
                    )
                )

    # Timepoints without any data are not part of the dataset.
    missing = sorted(v for v in missing if v.timepoint in timepoints)

    logging.info(
        f"Assembled {len(view_setups)} view setup(s) over {len(timepoints)} "
        f"timepoint(s); {len(view_sources)} view(s) present, {len(missing)} missing"
    )
    if duplicates:
        logging.warning(f"{len(duplicates)} view(s) left unassigned due to duplicate sources")

    return ResolvedDataset(
        timepoints=sorted(timepoints),
        view_setups=view_setups,
        missing_views=missing,
        view_sources=dict(sorted(view_sources.items())),
        duplicate_views=duplicates,
        unresolved=list(state.unresolved),
        z_grouped=state.z_grouped,
    )
