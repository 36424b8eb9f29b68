import enum
import glob
import os
import pathlib
from typing import Annotated, Optional

from pydantic import AfterValidator, BaseModel, model_validator

from .model import Axis, VoxelSize


class PatternRole(enum.Enum):
    """What a numbered slot of the filename pattern encodes."""

    timepoint = "timepoint"
    channel = "channel"
    illumination = "illumination"
    angle = "angle"
    tile = "tile"
    z_plane = "z_plane"
    ignore = "ignore"

    @property
    def axis(self) -> Optional[Axis]:
        if self in (PatternRole.z_plane, PatternRole.ignore):
            return None
        return Axis(self.value)


class RotationAxis(enum.Enum):
    X = "X"
    Y = "Y"
    Z = "Z"

    @property
    def index(self) -> int:
        return "XYZ".index(self.value)


def input_path_exists(path: str) -> str:
    """Pydantic validator to check the path exists."""
    if not os.path.exists(path):
        raise ValueError(f"Input path does not exist: {path}")

    return path


class VoxelSizeOverride(BaseModel, use_attribute_docstrings=True):
    x: float
    y: float
    z: float
    unit: str = "µm"
    """Unit of the three sizes."""

    def to_voxel_size(self) -> VoxelSize:
        return VoxelSize(self.x, self.y, self.z, self.unit)


class ResolverParameters(
    BaseModel,
    use_attribute_docstrings=True,
):
    """Parameters for resolving the views of a multi-view microscopy dataset."""

    input_files: list[Annotated[str, AfterValidator(input_path_exists)]] = []
    """Image files making up the dataset."""

    input_folder: Optional[Annotated[str, AfterValidator(input_path_exists)]] = None
    """A folder to search for image files, in addition to `input_files`."""

    file_glob: str = "*.tif*"
    """Pattern selecting the files in `input_folder`."""

    pattern_roles: list[PatternRole] = []
    """What each numbered slot of the detected filename pattern encodes.

    For example, for files named like `spim_TL{0}_Angle{1}.tif`,
    `["timepoint", "angle"]`. Slots without an entry are ignored. Use
    `z_plane` for a slot numbering the planes of a stack saved as one file
    per plane. Digits that are the same in every filename, such as the `1`
    of `TL1` when all files share it, are part of the literal and do not
    form a slot.
    """

    prefer_channel_over_illumination: Optional[bool] = None
    """How to read channel indices that could be either channels or illuminations.

    Only needed if the files carry no channel metadata; leaving it unset
    makes such datasets fail with an explanation.
    """

    prefer_tile_over_angle: Optional[bool] = None
    """How to read series that could be either tiles or angles.

    Only needed if the files carry no stage positions; leaving it unset makes
    such datasets fail with an explanation.
    """

    angles_from_pattern: bool = False
    """Use the filename slot bound to the angle axis as rotation angle in degrees."""

    rotation_axis: RotationAxis = RotationAxis.Y
    """Rotation axis used with `angles_from_pattern`."""

    voxel_size_override: Optional[VoxelSizeOverride] = None
    """If set, replaces the calibration read from the files."""

    output_csv: Optional[pathlib.Path] = None
    """If set, write one row per resolved view to this CSV file."""

    verbose: bool = False
    """Show debug-level logging."""

    @model_validator(mode="after")
    def _has_input(self) -> "ResolverParameters":
        if not self.input_files and self.input_folder is None:
            raise ValueError("Either input_files or input_folder must be given")
        return self

    def resolve_input_files(self) -> list[str]:
        """All input files as sorted, de-duplicated absolute paths."""
        files = {os.path.abspath(f) for f in self.input_files}
        if self.input_folder is not None:
            pattern = os.path.join(self.input_folder, self.file_glob)
            files.update(
                os.path.abspath(f) for f in glob.glob(pattern) if os.path.isfile(f)
            )
        return sorted(files)

    def slot_assignment(self, num_slots: int) -> tuple[dict[Axis, list[int]], list[int]]:
        """Split the pattern slots into per-axis slots and Z-plane slots.

        Raises:
            ValueError: if more roles are given than the pattern has slots.
        """
        if len(self.pattern_roles) > num_slots:
            raise ValueError(
                f"{len(self.pattern_roles)} pattern roles given, but the filename "
                f"pattern only has {num_slots} slot(s)"
            )
        slots: dict[Axis, list[int]] = {}
        z_slots = []
        for slot, role in enumerate(self.pattern_roles):
            if role == PatternRole.z_plane:
                z_slots.append(slot)
            elif role.axis is not None:
                slots.setdefault(role.axis, []).append(slot)
        return slots, z_slots

    @classmethod
    def from_json_file(cls, json_path: str) -> "ResolverParameters":
        """Create parameters from a JSON file.

        Args:
            json_path: Path to JSON file containing parameters

        Returns:
            ResolverParameters: New instance with values from JSON
        """
        with open(json_path) as f:
            return cls.model_validate_json(f.read())

    def to_json_file(self, json_path: str) -> None:
        """Save parameters to a JSON file.

        Args:
            json_path: Path where JSON file should be saved
        """
        with open(json_path, "w") as f:
            f.write(self.model_dump_json(indent=2))
