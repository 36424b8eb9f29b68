"""Metadata probing for microscopy files.

A prober opens one file and reports, per series, everything the resolver
needs to reconstruct the logical views: stack dimensions, calibration,
channel metadata, stage position and the number of timepoints. No pixel data
is read.

The bundled `TiffMetadataProber` understands OME-TIFF (including OME-TIFF
datasets that span several files) and plain/ImageJ TIFF.
"""

import logging
import math
import os
import xml.etree.ElementTree as ET
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import tifffile

from .errors import UnsupportedInputError
from .model import UNCALIBRATED, VoxelSize

logger = logging.getLogger(__name__)

RGB_MESSAGE = (
    "RGB images are not supported at the moment. Please re-save as Composite "
    "(Open in Fiji > Image > Color > Make Composite > Save)."
)


@dataclass
class ChannelMetadata:
    name: Optional[str] = None
    fluorophore: Optional[str] = None
    emission_wavelength_nm: Optional[float] = None


@dataclass
class SeriesMetadata:
    size_x: int
    size_y: int
    size_z: int = 1
    size_t: int = 1
    voxel_size: VoxelSize = UNCALIBRATED
    channels: list[ChannelMetadata] = field(
        default_factory=lambda: [ChannelMetadata()]
    )
    channel_step: Optional[int] = None
    """Modulo step along C: channels repeat every `channel_step` indices,
    with each repeat being another illumination. None means no repeats."""
    stage_position: Optional[tuple[Optional[float], Optional[float], Optional[float]]] = None
    angle_degrees: Optional[float] = None
    rotation_axis: Optional[int] = None
    order_certain: bool = True
    samples_per_pixel: int = 1
    used_files: list[str] = field(default_factory=list)

    @property
    def channel_count(self) -> int:
        return len(self.channels)

    @property
    def grouping_step(self) -> int:
        if self.channel_step is None or self.channel_step <= 0:
            return max(self.channel_count, 1)
        return self.channel_step

    @property
    def time_is_depth(self) -> bool:
        """Uncertain XYT stacks are treated as XYZ stacks."""
        return not self.order_certain and self.size_z <= 1 and self.size_t > 1

    @property
    def timepoint_count(self) -> int:
        if self.time_is_depth:
            return 1
        return max(self.size_t, 1)

    @property
    def stack_depth(self) -> int:
        if self.time_is_depth:
            return self.size_t
        return max(self.size_z, 1)


@dataclass
class FileMetadata:
    path: str
    """The master file of the dataset that was opened."""
    series: list[SeriesMetadata]
    used_files: list[str] = field(default_factory=list)
    """Every physical file that belongs to this dataset, including `path`."""

    @property
    def is_grouped(self) -> bool:
        return len(self.used_files) > 1


class MetadataProber(ABC):
    """Reads the view-relevant metadata of a single file."""

    @abstractmethod
    def probe(self, path: str) -> FileMetadata:
        """Probe a file.

        Raises:
            UnsupportedInputError: if the file contains data the axis model
                cannot represent (e.g. RGB pixels).
        """
        pass


def _local_name(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def _optional_float(value: Optional[str]) -> Optional[float]:
    if value is None:
        return None
    try:
        result = float(value)
    except ValueError:
        return None
    return result if math.isfinite(result) else None


def _parse_modulo_step(root: ET.Element) -> Optional[int]:
    """Return the step of a ModuloAlongC annotation, if it spans a range."""
    for elem in root.iter():
        if _local_name(elem.tag) != "ModuloAlongC":
            continue
        start = _optional_float(elem.get("Start"))
        end = _optional_float(elem.get("End"))
        step = _optional_float(elem.get("Step"))
        if start is not None and end is not None and step and start != end:
            return int(step)
    return None


class TiffMetadataProber(MetadataProber):
    """Prober for OME-TIFF and plain TIFF files, based on tifffile."""

    def probe(self, path: str) -> FileMetadata:
        path = os.path.abspath(path)
        with tifffile.TiffFile(path) as tif:
            if tif.is_ome and tif.ome_metadata:
                try:
                    return self._probe_ome(path, tif.ome_metadata)
                except ET.ParseError as e:
                    logger.warning(
                        f"Could not parse OME-XML of {path} ({e}), "
                        "falling back to TIFF structure"
                    )
            return self._probe_tiff(path, tif)

    def _probe_ome(self, path: str, ome_xml: str) -> FileMetadata:
        root = ET.fromstring(ome_xml)
        directory = Path(path).parent
        channel_step = _parse_modulo_step(root)

        series = []
        all_used: list[str] = []
        for image in root.findall("{*}Image"):
            pixels = image.find("{*}Pixels")
            if pixels is None:
                continue

            channels = []
            for channel in pixels.findall("{*}Channel"):
                if int(channel.get("SamplesPerPixel", "1")) > 1:
                    raise UnsupportedInputError(f"{path}: {RGB_MESSAGE}")
                channels.append(
                    ChannelMetadata(
                        name=channel.get("Name"),
                        fluorophore=channel.get("Fluor"),
                        emission_wavelength_nm=_optional_float(
                            channel.get("EmissionWavelength")
                        ),
                    )
                )
            size_c = int(pixels.get("SizeC", "1"))
            if not channels:
                channels = [ChannelMetadata() for _ in range(size_c)]

            stage_position = None
            plane = pixels.find("{*}Plane")
            if plane is not None:
                position = (
                    _optional_float(plane.get("PositionX")),
                    _optional_float(plane.get("PositionY")),
                    _optional_float(plane.get("PositionZ")),
                )
                if any(p is not None for p in position):
                    stage_position = position

            used_files = []
            for uuid in pixels.iter():
                if _local_name(uuid.tag) == "UUID" and uuid.get("FileName"):
                    used = os.path.abspath(directory / uuid.get("FileName"))
                    if used not in used_files:
                        used_files.append(used)
            if not used_files:
                used_files = [path]
            all_used.extend(f for f in used_files if f not in all_used)

            series.append(
                SeriesMetadata(
                    size_x=int(pixels.get("SizeX", "1")),
                    size_y=int(pixels.get("SizeY", "1")),
                    size_z=int(pixels.get("SizeZ", "1")),
                    size_t=int(pixels.get("SizeT", "1")),
                    voxel_size=self._ome_voxel_size(pixels),
                    channels=channels,
                    channel_step=channel_step,
                    stage_position=stage_position,
                    used_files=used_files,
                )
            )

        if path not in all_used:
            all_used.insert(0, path)
        logger.info(
            f"OME-TIFF {Path(path).name}: {len(series)} series, "
            f"{len(all_used)} file(s) in dataset"
        )
        return FileMetadata(path=path, series=series, used_files=all_used)

    @staticmethod
    def _ome_voxel_size(pixels: ET.Element) -> VoxelSize:
        size_x = _optional_float(pixels.get("PhysicalSizeX"))
        if size_x is None:
            return UNCALIBRATED
        size_y = _optional_float(pixels.get("PhysicalSizeY"))
        size_z = _optional_float(pixels.get("PhysicalSizeZ"))
        return VoxelSize(
            size_x,
            size_y if size_y is not None else 1.0,
            size_z if size_z is not None else 1.0,
            pixels.get("PhysicalSizeXUnit", "µm"),
        )

    def _probe_tiff(self, path: str, tif: tifffile.TiffFile) -> FileMetadata:
        imagej = tif.imagej_metadata or {}
        series = []
        for s in tif.series:
            sizes = dict(zip(s.axes, s.shape))
            if sizes.get("S", 1) > 1:
                raise UnsupportedInputError(f"{path}: {RGB_MESSAGE}")

            # Unlabelled page stacks ('I', 'Q') are read as Z.
            size_z = sizes.get("Z", 1) * sizes.get("I", 1) * sizes.get("Q", 1)
            size_c = sizes.get("C", 1)
            series.append(
                SeriesMetadata(
                    size_x=sizes.get("X", s.shape[-1]),
                    size_y=sizes.get("Y", s.shape[-2] if len(s.shape) > 1 else 1),
                    size_z=size_z,
                    size_t=sizes.get("T", 1),
                    voxel_size=self._tiff_voxel_size(tif, imagej),
                    channels=[ChannelMetadata() for _ in range(size_c)],
                    used_files=[path],
                )
            )
        logger.info(f"TIFF {Path(path).name}: {len(series)} series")
        return FileMetadata(path=path, series=series, used_files=[path])

    @staticmethod
    def _tiff_voxel_size(tif: tifffile.TiffFile, imagej: dict) -> VoxelSize:
        unit = imagej.get("unit")
        resolution = tif.pages[0].tags.get("XResolution")
        if not unit or resolution is None:
            return UNCALIBRATED
        numerator, denominator = resolution.value
        if not numerator:
            return UNCALIBRATED
        size_xy = denominator / numerator
        size_z = float(imagej.get("spacing", 1.0))
        if unit == "micron":
            unit = "µm"
        return VoxelSize(size_xy, size_xy, size_z, unit)
