"""Expansion of accumulated axis identities into integer IDs.

For each axis, one of these strategies is used:

- single per file, with filename pattern slots bound to the axis: the IDs
  come from the slot values;
- single per file without slots: everything gets ID 0;
- indexed: the ID is the series index (angles, tiles) or the channel index
  (channels, illuminations); timepoints expand a declared count N into IDs
  0..N-1 that all reference the same source;
- named: IDs are handed out in first-seen order of the distinct identities.

Sources are always visited in (path, series, channel) order.
"""

import dataclasses
import logging
from typing import Mapping, Optional

from .model import (
    AngleIdentity,
    Axis,
    AxisIdentity,
    DataSourceRef,
    DetectionState,
    Multiplicity,
    PlainIndex,
    UnresolvedSource,
    VoxelSize,
)
from .pattern_detector import NumericalFilenamePatternDetector

IdMap = dict[int, list[DataSourceRef]]
DetailMap = dict[int, AxisIdentity]


def invert_sorted(
    accumulation: Mapping[AxisIdentity, list[DataSourceRef]],
) -> list[tuple[DataSourceRef, AxisIdentity]]:
    """(source, identity) pairs ordered by source."""
    inverted = {}
    for identity, refs in accumulation.items():
        for ref in refs:
            inverted[ref] = identity
    return sorted(inverted.items())


def _sorted_by_id(mapping: dict) -> dict:
    return dict(sorted(mapping.items()))


def _series_file(ref: DataSourceRef, group_usage: Mapping[str, tuple[str, int]]) -> str:
    """The physical file holding a series of a dataset spanning several files."""
    candidates = sorted(
        used for used, master in group_usage.items() if master == (ref.path, ref.series)
    )
    return candidates[0] if candidates else ref.path


def expand_from_pattern(
    axis: Axis,
    accumulation: Mapping[AxisIdentity, list[DataSourceRef]],
    detector: NumericalFilenamePatternDetector,
    slots: list[int],
    group_usage: Optional[Mapping[str, tuple[str, int]]] = None,
) -> tuple[DetailMap, IdMap, list[UnresolvedSource]]:
    """Derive IDs from filename slot values.

    With one slot the captured number is the ID. With several slots, each
    distinct combination of values gets the next ID in first-seen order.
    Sources whose path does not fit the pattern are left out and returned as
    unresolved.
    """
    details: DetailMap = {}
    ids: IdMap = {}
    unresolved: list[UnresolvedSource] = []
    combination_ids: dict[tuple[int, ...], int] = {}

    for ref, identity in invert_sorted(accumulation):
        path = _series_file(ref, group_usage) if group_usage else ref.path
        values = detector.match(path)
        if values is None:
            logging.warning(
                f"{axis.value}: {path} does not match filename pattern "
                f"{detector.string_representation()}, leaving it unassigned"
            )
            unresolved.append(UnresolvedSource(axis, ref, "pattern mismatch"))
            continue

        if len(slots) == 1:
            view_id = values[slots[0]]
        else:
            combination = tuple(values[slot] for slot in slots)
            view_id = combination_ids.setdefault(combination, len(combination_ids))

        details[view_id] = identity
        ids.setdefault(view_id, []).append(ref)

    return _sorted_by_id(details), _sorted_by_id(ids), unresolved


def expand_indexed(
    accumulation: Mapping[AxisIdentity, list[DataSourceRef]], use_series: bool
) -> IdMap:
    ids: IdMap = {}
    for ref, _ in invert_sorted(accumulation):
        view_id = ref.series if use_series else ref.channel
        ids.setdefault(view_id, []).append(ref)
    return _sorted_by_id(ids)


def expand_timepoints_indexed(
    accumulation: Mapping[AxisIdentity, list[DataSourceRef]],
) -> IdMap:
    ids: IdMap = {}
    for ref, identity in invert_sorted(accumulation):
        count = identity.value if isinstance(identity, PlainIndex) else 1
        for timepoint in range(count):
            ids.setdefault(timepoint, []).append(ref)
    return _sorted_by_id(ids)


def resort_named(
    accumulation: Mapping[AxisIdentity, list[DataSourceRef]],
) -> tuple[DetailMap, IdMap]:
    details: DetailMap = {}
    ids: IdMap = {}
    seen: dict[AxisIdentity, int] = {}
    for ref, identity in invert_sorted(accumulation):
        if identity not in seen:
            seen[identity] = len(seen)
            details[seen[identity]] = identity
        ids.setdefault(seen[identity], []).append(ref)
    return details, ids


def collapse_single(
    axis: Axis, accumulation: Mapping[AxisIdentity, list[DataSourceRef]]
) -> tuple[DetailMap, IdMap]:
    """Put every source of an axis under ID 0.

    If the sources carried different identities, that metadata is lost: the
    caller bound no filename slot to an axis that varies between files.
    """
    refs = [ref for ref, _ in invert_sorted(accumulation)]
    if not refs:
        return {}, {}
    if len(accumulation) == 1:
        return {0: next(iter(accumulation))}, {0: refs}
    logging.debug(
        f"{axis.value}: {len(accumulation)} distinct identities collapsed to a single instance"
    )
    return {}, {0: refs}


def expand_view_infos(
    state: DetectionState,
    slots_per_axis: Mapping[Axis, list[int]],
    detector: Optional[NumericalFilenamePatternDetector] = None,
) -> DetectionState:
    """Compute the ID and detail maps of every axis.

    Returns a new state; `state` itself is not modified.
    """
    id_map: dict[Axis, IdMap] = {}
    detail_map: dict[Axis, DetailMap] = {}
    unresolved = list(state.unresolved)

    for axis in Axis:
        accumulation = state.accumulation[axis]
        multiplicity = state.multiplicity[axis]
        slots = list(slots_per_axis.get(axis, []))

        if multiplicity == Multiplicity.SINGLE and slots:
            if detector is None:
                raise ValueError(f"Filename slots bound to {axis.value} but no pattern detected")
            details, ids, failed = expand_from_pattern(
                axis,
                accumulation,
                detector,
                slots,
                state.group_usage if state.grouped_format else None,
            )
            unresolved.extend(failed)
        elif multiplicity == Multiplicity.SINGLE:
            details, ids = collapse_single(axis, accumulation)
        elif multiplicity == Multiplicity.MULTIPLE_INDEXED:
            details = {}
            if axis == Axis.TIMEPOINT:
                ids = expand_timepoints_indexed(accumulation)
            else:
                ids = expand_indexed(accumulation, use_series=axis in (Axis.ANGLE, Axis.TILE))
        else:
            details, ids = resort_named(accumulation)

        id_map[axis] = ids
        detail_map[axis] = details
        logging.debug(f"{axis.value}: {multiplicity.value}, {len(ids)} instance(s)")

    return dataclasses.replace(
        state, id_map=id_map, detail_map=detail_map, unresolved=unresolved
    )


def apply_angles_from_pattern(
    state: DetectionState,
    slots_per_axis: Mapping[Axis, list[int]],
    rotation_axis: int,
) -> DetectionState:
    """Read angle IDs taken from a filename slot as rotation angles in degrees.

    Only applies when angles are single per file and exactly one slot is bound
    to them; otherwise the state is returned unchanged.
    """
    if (
        state.multiplicity[Axis.ANGLE] != Multiplicity.SINGLE
        or len(slots_per_axis.get(Axis.ANGLE, [])) != 1
    ):
        logging.info("Angles are not defined by a single filename slot, ignoring angles_from_pattern")
        return state

    detail_map = dict(state.detail_map)
    detail_map[Axis.ANGLE] = {
        angle_id: AngleIdentity(float(angle_id), rotation_axis)
        for angle_id in state.id_map[Axis.ANGLE]
    }
    return dataclasses.replace(state, detail_map=detail_map)


def with_voxel_size(state: DetectionState, voxel_size: VoxelSize) -> DetectionState:
    """Replace the calibration of every source."""
    dimensions = {ref: (dims, voxel_size) for ref, (dims, _) in state.dimensions.items()}
    return dataclasses.replace(state, dimensions=dimensions)
