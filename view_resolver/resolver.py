import dataclasses
import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional

from .ambiguity import resolve_ambiguity
from .assembly import ResolvedDataset, assemble_views
from .detection import (
    all_voxel_sizes_equal,
    detect_views_in_files,
    min_max_channels_indexed,
    min_max_series_indexed,
)
from .expansion import apply_angles_from_pattern, expand_view_infos, with_voxel_size
from .metadata_probe import MetadataProber, TiffMetadataProber
from .model import Axis, DetectionState
from .parameters import ResolverParameters
from .pattern_detector import NumericalFilenamePatternDetector
from .z_grouping import group_z_planes


@dataclass
class ProgressCallbacks:
    update_progress: Callable[[int, int], None]
    starting_detection: Callable[[], None]
    starting_assembly: Callable[[], None]
    finished: Callable[[ResolvedDataset], None]

    @classmethod
    def no_op(cls):
        return cls(
            update_progress=lambda _a, _b: None,
            starting_detection=lambda: None,
            starting_assembly=lambda: None,
            finished=lambda _: None,
        )


def map_master_slots(
    master_detector: NumericalFilenamePatternDetector,
    file_detector: NumericalFilenamePatternDetector,
    slots_per_axis: dict[Axis, list[int]],
) -> dict[Axis, list[int]]:
    """Translate slots of the master-file pattern into slots of the all-files pattern.

    The k-th master slot is the k-th slot of the all-files pattern whose value
    differs between master files. Slots that only vary within one dataset were
    already resolved by the file format (as series) and are never used.
    """
    varying = []
    for slot in range(file_detector.num_variables):
        values = set()
        for master in master_detector.paths:
            strings = file_detector.match_strings(master)
            if strings is not None:
                values.add(strings[slot])
        if len(values) > 1:
            varying.append(slot)

    mapped = {}
    for axis, slots in slots_per_axis.items():
        for slot in slots:
            if slot >= len(varying):
                raise ValueError(
                    f"Cannot locate slot {slot} of {master_detector.string_representation()} "
                    f"in {file_detector.string_representation()}"
                )
        mapped[axis] = [varying[slot] for slot in slots]
    return mapped


class ViewResolver:
    """Resolve the timepoints, view setups and view sources of a set of files."""

    def __init__(
        self,
        params: ResolverParameters,
        prober: Optional[MetadataProber] = None,
        callbacks: Optional[ProgressCallbacks] = None,
    ):
        self.params = params
        self.prober = prober if prober is not None else TiffMetadataProber()
        self.callbacks = callbacks if callbacks is not None else ProgressCallbacks.no_op()

    def run(self) -> ResolvedDataset:
        """Run the full resolution.

        Raises:
            ConfigurationAmbiguityError: if channels/illuminations or
                angles/tiles cannot be told apart and no preference was given.
            UnsupportedInputError: if a file holds data that cannot be
                represented (e.g. RGB).
            ValueError: if no input files were found or the pattern roles do
                not fit the detected filename pattern.
        """
        files = self.params.resolve_input_files()
        if not files:
            raise ValueError("No input files found")

        start = time.monotonic()
        self.callbacks.starting_detection()
        state = detect_views_in_files(
            files,
            self.prober,
            show_progress=True,
            update_progress=self.callbacks.update_progress,
        )
        logging.debug(f"Detection took {time.monotonic() - start:.3f}s")
        self._log_summary(state)

        master_detector = NumericalFilenamePatternDetector(state.master_files())
        logging.info(
            f"Filename pattern: {master_detector.string_representation()} "
            f"({master_detector.num_variables} slot(s))"
        )
        slots, z_slots = self.params.slot_assignment(master_detector.num_variables)

        multiplicity, _ = resolve_ambiguity(
            state.multiplicity,
            self.params.prefer_channel_over_illumination,
            self.params.prefer_tile_over_angle,
        )
        state = dataclasses.replace(state, multiplicity=multiplicity)

        self.callbacks.starting_assembly()
        if state.grouped_format:
            file_detector = NumericalFilenamePatternDetector(sorted(state.group_usage))
            expansion_slots = map_master_slots(master_detector, file_detector, slots)
            state = expand_view_infos(state, expansion_slots, file_detector)
        else:
            state = expand_view_infos(state, slots, master_detector)

        if z_slots:
            state = group_z_planes(state, master_detector, z_slots)
        if self.params.voxel_size_override is not None:
            state = with_voxel_size(state, self.params.voxel_size_override.to_voxel_size())
        if self.params.angles_from_pattern:
            state = apply_angles_from_pattern(state, slots, self.params.rotation_axis.index)

        dataset = assemble_views(state)
        if self.params.output_csv is not None:
            dataset.to_dataframe().to_csv(self.params.output_csv, index=False)
            logging.info(f"Wrote view table to {self.params.output_csv}")

        logging.info(f"Resolution took {time.monotonic() - start:.3f}s")
        self.callbacks.finished(dataset)
        return dataset

    @staticmethod
    def _log_summary(state: DetectionState) -> None:
        channels = min_max_channels_indexed(state)
        if channels is not None:
            logging.info(f"Channels per series: min {channels[0]}, max {channels[1]}")
        series = min_max_series_indexed(state)
        if series is not None:
            logging.info(f"Series per file: min {series[0]}, max {series[1]}")
        if not all_voxel_sizes_equal(state):
            logging.warning("Voxel sizes are not the same for all views")
        if state.grouped_format:
            logging.info(
                f"Files are grouped into {len(state.master_files())} dataset(s)"
            )
