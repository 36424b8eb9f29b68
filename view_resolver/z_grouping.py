"""Merging of single-plane files into synthetic Z stacks.

When one or more filename slots encode the Z position, all sources that agree
on every other slot value, series, channel and axis ID are merged into one
`DataSourceRef` whose path enumerates the planes, e.g.
`/data/img_c0_z<0,1,2>.tif`. The merged stack keeps the X/Y extent of its
first plane; its depth is the sum of the depths of its members.
"""

import dataclasses
import logging
from typing import Optional

from .model import DataSourceRef, DetectionState, StackDimensions
from .pattern_detector import NumericalFilenamePatternDetector

GroupKey = tuple[tuple[str, ...], int, int, tuple]


def _axis_ids(state: DetectionState) -> dict[DataSourceRef, tuple]:
    """Per source, the IDs it is listed under on every axis."""
    ids: dict[DataSourceRef, list] = {}
    for axis, axis_ids in state.id_map.items():
        for view_id, refs in axis_ids.items():
            for ref in refs:
                ids.setdefault(ref, []).append((axis.value, view_id))
    return {ref: tuple(sorted(v)) for ref, v in ids.items()}


def _group_key(
    ref: DataSourceRef,
    detector: NumericalFilenamePatternDetector,
    z_slots: list[int],
    axis_ids: tuple,
) -> Optional[GroupKey]:
    values = detector.match_strings(ref.path)
    if values is None:
        return None
    others = tuple(v for slot, v in enumerate(values) if slot not in z_slots)
    return others, ref.series, ref.channel, axis_ids


def _map_refs(refs: list[DataSourceRef], replacements: dict[DataSourceRef, DataSourceRef]):
    mapped = []
    for ref in refs:
        new_ref = replacements.get(ref, ref)
        if new_ref not in mapped:
            mapped.append(new_ref)
    return mapped


def group_z_planes(
    state: DetectionState,
    detector: NumericalFilenamePatternDetector,
    z_slots: list[int],
) -> DetectionState:
    """Return a copy of `state` in which Z-plane files are merged into stacks.

    Sources whose path does not match the pattern are kept as they are.
    """
    if not z_slots:
        return state
    z_slots = sorted(z_slots)

    axis_ids = _axis_ids(state)
    groups: dict[GroupKey, list[DataSourceRef]] = {}
    for ref in sorted(state.dimensions):
        key = _group_key(ref, detector, z_slots, axis_ids.get(ref, ()))
        if key is None:
            logging.error(
                f"{ref.path} does not match filename pattern "
                f"{detector.string_representation()}, it will not be grouped"
            )
            continue
        groups.setdefault(key, []).append(ref)

    replacements: dict[DataSourceRef, DataSourceRef] = {}
    dimensions = dict(state.dimensions)
    for members in groups.values():
        merged = DataSourceRef(
            detector.z_group_path([m.path for m in members], z_slots),
            members[0].series,
            members[0].channel,
        )
        first_dims, voxel_size = state.dimensions[members[0]]
        depth = sum(state.dimensions[m][0].z for m in members)
        for m in members:
            replacements[m] = merged
            del dimensions[m]
        dimensions[merged] = (StackDimensions(first_dims.x, first_dims.y, depth), voxel_size)
        logging.debug(f"Grouped {len(members)} planes into {merged.path}")

    id_map = {
        axis: {view_id: _map_refs(refs, replacements) for view_id, refs in ids.items()}
        for axis, ids in state.id_map.items()
    }
    accumulation = {
        axis: {
            identity: _map_refs(refs, replacements)
            for identity, refs in identities.items()
        }
        for axis, identities in state.accumulation.items()
    }
    logging.info(
        f"Grouped {len(replacements)} sources into {len(groups)} Z stacks"
    )
    return dataclasses.replace(
        state,
        id_map=id_map,
        accumulation=accumulation,
        dimensions=dimensions,
        z_grouped=True,
    )
