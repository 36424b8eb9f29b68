"""Resolution of structurally indistinguishable axis pairs.

Channels and illuminations both show up as channel indices within a series,
angles and tiles both as series. When neither axis of such a pair has
metadata, only the caller can say which of the two the data contains.
"""

import logging
from dataclasses import dataclass
from typing import Mapping, Optional

from .errors import ConfigurationAmbiguityError
from .model import Axis, Multiplicity

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AmbiguityFlags:
    channel_illumination: bool = False
    angle_tile: bool = False

    def __bool__(self) -> bool:
        return self.channel_illumination or self.angle_tile


def _force_named_over_indexed(
    multiplicity: dict[Axis, Multiplicity], first: Axis, second: Axis
) -> bool:
    """Drop the indexed axis of a pair if the other one has metadata.

    Returns whether the pair is ambiguous (both indexed).
    """
    a, b = multiplicity[first], multiplicity[second]
    if a == Multiplicity.MULTIPLE_NAMED and b == Multiplicity.MULTIPLE_INDEXED:
        multiplicity[second] = Multiplicity.SINGLE
    elif a == Multiplicity.MULTIPLE_INDEXED and b == Multiplicity.MULTIPLE_NAMED:
        multiplicity[first] = Multiplicity.SINGLE
    return (
        multiplicity[first] == Multiplicity.MULTIPLE_INDEXED
        and multiplicity[second] == Multiplicity.MULTIPLE_INDEXED
    )


def find_ambiguities(
    multiplicity: Mapping[Axis, Multiplicity],
) -> tuple[dict[Axis, Multiplicity], AmbiguityFlags]:
    """Apply the metadata-wins rule to both pairs and flag the ambiguous ones."""
    result = dict(multiplicity)
    channel_illumination = _force_named_over_indexed(
        result, Axis.CHANNEL, Axis.ILLUMINATION
    )
    angle_tile = _force_named_over_indexed(result, Axis.TILE, Axis.ANGLE)
    flags = AmbiguityFlags(channel_illumination, angle_tile)
    if flags:
        logger.info(
            f"Ambiguous axes detected: channel/illumination={channel_illumination}, "
            f"angle/tile={angle_tile}"
        )
    return result, flags


def resolve_ambiguity(
    multiplicity: Mapping[Axis, Multiplicity],
    prefer_channel_over_illumination: Optional[bool] = None,
    prefer_tile_over_angle: Optional[bool] = None,
) -> tuple[dict[Axis, Multiplicity], AmbiguityFlags]:
    """Classify each axis pair and apply the caller's preferences.

    Raises:
        ConfigurationAmbiguityError: if a pair is ambiguous and no preference
            was supplied for it.
    """
    result, flags = find_ambiguities(multiplicity)

    missing_channel = flags.channel_illumination and prefer_channel_over_illumination is None
    missing_tile = flags.angle_tile and prefer_tile_over_angle is None
    if missing_channel or missing_tile:
        raise ConfigurationAmbiguityError(missing_channel, missing_tile)

    if flags.channel_illumination:
        kept, dropped = (
            (Axis.CHANNEL, Axis.ILLUMINATION)
            if prefer_channel_over_illumination
            else (Axis.ILLUMINATION, Axis.CHANNEL)
        )
        result[dropped] = Multiplicity.SINGLE
        logger.info(f"Treating channel indices as {kept.value}s")

    if flags.angle_tile:
        kept, dropped = (
            (Axis.TILE, Axis.ANGLE) if prefer_tile_over_angle else (Axis.ANGLE, Axis.TILE)
        )
        result[dropped] = Multiplicity.SINGLE
        logger.info(f"Treating series as {kept.value}s")

    return result, flags
