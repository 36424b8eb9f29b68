"""Core data types shared by every stage of view resolution.

A dataset is described by five orthogonal axes. Each physical plane-stack
(file, series, channel) is a `DataSourceRef`; the detection stage records,
per axis, which identities reference which sources, and the later stages turn
that into integer IDs, view setups and the view -> source mapping.
"""

import enum
from dataclasses import dataclass, field
from typing import NamedTuple, Optional, Union


class Axis(enum.Enum):
    TIMEPOINT = "timepoint"
    CHANNEL = "channel"
    ILLUMINATION = "illumination"
    ANGLE = "angle"
    TILE = "tile"


# Order in which view setups are enumerated.
VIEW_SETUP_AXES: tuple[Axis, ...] = (
    Axis.CHANNEL,
    Axis.ILLUMINATION,
    Axis.TILE,
    Axis.ANGLE,
)


class Multiplicity(enum.Enum):
    """How many instances of an axis exist and how they can be told apart."""

    SINGLE = "single"
    MULTIPLE_INDEXED = "multiple_indexed"
    """Several instances, distinguishable only by series/channel position."""
    MULTIPLE_NAMED = "multiple_named"
    """Several instances, distinguishable by their metadata."""


class DataSourceRef(NamedTuple):
    """One physical plane-stack: a channel of a series within a file.

    Ordering is by (path, series, channel).
    """

    path: str
    series: int
    channel: int


@dataclass(frozen=True)
class ChannelIdentity:
    name: Optional[str] = None
    fluorophore: Optional[str] = None
    wavelength: Optional[float] = None
    """Emission wavelength in nm."""


@dataclass(frozen=True)
class AngleIdentity:
    angle_degrees: Optional[float] = None
    rotation_axis: Optional[int] = None
    """0, 1 or 2 for rotation about X, Y or Z."""


@dataclass(frozen=True)
class TileIdentity:
    x: Optional[float] = None
    y: Optional[float] = None
    z: Optional[float] = None

    @property
    def has_location(self) -> bool:
        return self.x is not None or self.y is not None or self.z is not None


@dataclass(frozen=True)
class PlainIndex:
    """Identity for axes without richer metadata (illumination, timepoint count)."""

    value: int


AxisIdentity = Union[ChannelIdentity, AngleIdentity, TileIdentity, PlainIndex]


class StackDimensions(NamedTuple):
    x: int
    y: int
    z: int


class VoxelSize(NamedTuple):
    x: float
    y: float
    z: float
    unit: str


UNCALIBRATED = VoxelSize(1.0, 1.0, 1.0, "pixels")


class ViewId(NamedTuple):
    timepoint: int
    setup: int


@dataclass(frozen=True)
class ViewAttribute:
    """A concrete instance of one axis as it appears in a view setup."""

    id: int
    name: str
    rotation_axis: Optional[tuple[float, float, float]] = None
    rotation_degrees: Optional[float] = None
    location: Optional[tuple[float, float, float]] = None


@dataclass(frozen=True)
class ViewSetup:
    id: int
    name: str
    channel: ViewAttribute
    illumination: ViewAttribute
    angle: ViewAttribute
    tile: ViewAttribute
    dimensions: Optional[StackDimensions] = None
    voxel_size: Optional[VoxelSize] = None

    def attribute(self, axis: Axis) -> ViewAttribute:
        if axis == Axis.CHANNEL:
            return self.channel
        elif axis == Axis.ILLUMINATION:
            return self.illumination
        elif axis == Axis.ANGLE:
            return self.angle
        elif axis == Axis.TILE:
            return self.tile
        else:
            raise ValueError(f"View setups have no {axis.value} attribute")


@dataclass(frozen=True)
class UnresolvedSource:
    """A source that could not be given an ID on some axis."""

    axis: Axis
    source: DataSourceRef
    reason: str


def _per_axis(factory):
    return lambda: {axis: factory() for axis in Axis}


@dataclass
class DetectionState:
    """Everything learned about a dataset while scanning its files.

    Built by `detection.detect_views_in_files`; the expansion and z-grouping
    stages return modified copies rather than changing an instance in place.
    """

    accumulation: dict[Axis, dict[AxisIdentity, list[DataSourceRef]]] = field(
        default_factory=_per_axis(dict)
    )
    """Per axis, the sources observed for each identity across all files."""

    multiplicity: dict[Axis, Multiplicity] = field(
        default_factory=lambda: {axis: Multiplicity.SINGLE for axis in Axis}
    )

    id_map: dict[Axis, dict[int, list[DataSourceRef]]] = field(
        default_factory=_per_axis(dict)
    )
    """Per axis, the sources for each integer ID. Filled in by expansion."""

    detail_map: dict[Axis, dict[int, AxisIdentity]] = field(
        default_factory=_per_axis(dict)
    )
    """Per axis, the identity backing each integer ID, where one is known."""

    dimensions: dict[DataSourceRef, tuple[StackDimensions, VoxelSize]] = field(
        default_factory=dict
    )

    per_file_multiplicity: dict[str, dict[Axis, Multiplicity]] = field(
        default_factory=dict
    )

    group_usage: dict[str, tuple[str, int]] = field(default_factory=dict)
    """Physical file -> (master file, series) for formats spanning several files."""

    unresolved: list[UnresolvedSource] = field(default_factory=list)

    ambiguous_channel_illumination: bool = False
    ambiguous_angle_tile: bool = False
    grouped_format: bool = False
    z_grouped: bool = False

    def add_source(
        self, axis: Axis, identity: AxisIdentity, source: DataSourceRef
    ) -> None:
        sources = self.accumulation[axis].setdefault(identity, [])
        if source not in sources:
            sources.append(source)

    def sources(self, axis: Axis) -> list[DataSourceRef]:
        """All sources accumulated for an axis, sorted by (path, series, channel)."""
        return sorted(
            {ref for refs in self.accumulation[axis].values() for ref in refs}
        )

    def master_files(self) -> list[str]:
        return sorted({master for master, _ in self.group_usage.values()})
