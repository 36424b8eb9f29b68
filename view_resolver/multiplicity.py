"""Classification of how many instances of each axis a dataset contains.

Each file is first described as, per axis, a mapping from identity to the
(series, channel) pairs carrying it. That mapping is classified per file and
the per-file verdicts are then reconciled into one dataset-wide verdict.
"""

import logging
from typing import Mapping

from .metadata_probe import FileMetadata
from .model import (
    AngleIdentity,
    Axis,
    AxisIdentity,
    ChannelIdentity,
    Multiplicity,
    PlainIndex,
    TileIdentity,
)

logger = logging.getLogger(__name__)

SeriesChannel = tuple[int, int]
FileAxisInfo = dict[Axis, dict[AxisIdentity, list[SeriesChannel]]]


def map_series_to_axes(metadata: FileMetadata) -> FileAxisInfo:
    """Map every (series, channel) of a file to its identity on each axis."""
    info: FileAxisInfo = {axis: {} for axis in Axis}

    for series_idx, series in enumerate(metadata.series):
        if series.stage_position is not None:
            tile = TileIdentity(*series.stage_position)
        else:
            tile = TileIdentity()
        angle = AngleIdentity(series.angle_degrees, series.rotation_axis)
        timepoints = PlainIndex(series.timepoint_count)
        step = series.grouping_step

        for channel_idx in range(len(series.channels)):
            key = (series_idx, channel_idx)
            # Illumination repeats of a channel share its metadata.
            channel = series.channels[channel_idx % step]
            channel_identity = ChannelIdentity(
                channel.name, channel.fluorophore, channel.emission_wavelength_nm
            )
            illumination = PlainIndex(channel_idx // step)

            info[Axis.TILE].setdefault(tile, []).append(key)
            info[Axis.ANGLE].setdefault(angle, []).append(key)
            info[Axis.CHANNEL].setdefault(channel_identity, []).append(key)
            info[Axis.ILLUMINATION].setdefault(illumination, []).append(key)
            info[Axis.TIMEPOINT].setdefault(timepoints, []).append(key)

    return info


def check_multiplicity(identities: Mapping[AxisIdentity, list]) -> Multiplicity:
    """SINGLE, MULTIPLE_NAMED if identities differ, MULTIPLE_INDEXED if one
    identity covers several positions."""
    if len(identities) > 1:
        return Multiplicity.MULTIPLE_NAMED
    if identities and len(next(iter(identities.values()))) > 1:
        return Multiplicity.MULTIPLE_INDEXED
    return Multiplicity.SINGLE


def check_multiple_timepoints(
    timepoints: Mapping[AxisIdentity, list[SeriesChannel]],
) -> Multiplicity:
    if len(timepoints) > 1:
        logger.warning("Inconsistent timepoint number within file")
    for count in timepoints:
        if isinstance(count, PlainIndex) and count.value > 1:
            return Multiplicity.MULTIPLE_INDEXED
    return Multiplicity.SINGLE


def _distinct_positions(
    identities: Mapping[AxisIdentity, list[SeriesChannel]], position: int
) -> dict[AxisIdentity, list[int]]:
    """Reduce (series, channel) lists to the distinct series or channel indices."""
    return {
        identity: sorted({pair[position] for pair in pairs})
        for identity, pairs in identities.items()
    }


def classify_file(info: FileAxisInfo) -> dict[Axis, Multiplicity]:
    """Classify each axis within a single file.

    Angles and tiles are told apart by series, channels and illuminations by
    the channel index within a series.
    """
    # Counted over distinct positions rather than raw (series, channel)
    # pairs: one channel repeated across series is not an indexed channel.
    return {
        Axis.TIMEPOINT: check_multiple_timepoints(info[Axis.TIMEPOINT]),
        Axis.CHANNEL: check_multiplicity(_distinct_positions(info[Axis.CHANNEL], 1)),
        Axis.ILLUMINATION: check_multiplicity(
            _distinct_positions(info[Axis.ILLUMINATION], 1)
        ),
        Axis.ANGLE: check_multiplicity(_distinct_positions(info[Axis.ANGLE], 0)),
        Axis.TILE: check_multiplicity(_distinct_positions(info[Axis.TILE], 0)),
    }


def reconcile_multiplicity(
    per_file: Mapping[str, Mapping[Axis, Multiplicity]],
    accumulation: Mapping[Axis, Mapping[AxisIdentity, list]],
) -> dict[Axis, Multiplicity]:
    """Combine per-file verdicts into dataset-wide verdicts.

    Named beats indexed beats single. An axis that is single in every file but
    takes different values in different files is promoted to named.
    """
    result = {axis: Multiplicity.SINGLE for axis in Axis}
    for verdicts in per_file.values():
        for axis, verdict in verdicts.items():
            if verdict == Multiplicity.MULTIPLE_NAMED:
                result[axis] = Multiplicity.MULTIPLE_NAMED
            elif (
                verdict == Multiplicity.MULTIPLE_INDEXED
                and result[axis] == Multiplicity.SINGLE
            ):
                result[axis] = Multiplicity.MULTIPLE_INDEXED

    for axis in Axis:
        if result[axis] == Multiplicity.SINGLE and len(accumulation[axis]) > 1:
            logger.debug(
                f"{axis.value}: one instance per file but "
                f"{len(accumulation[axis])} across files, treating as named"
            )
            result[axis] = Multiplicity.MULTIPLE_NAMED

    return result
