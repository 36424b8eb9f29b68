"""Scanning of input files into a DetectionState.

Files are processed in order of their absolute path, so ID assignment does
not depend on how the file list was enumerated. Each physical file is probed
at most once; files that an earlier probe reported as part of its dataset are
skipped.
"""

import logging
import os
from collections import Counter
from typing import Callable, Iterable, Optional

import numpy as np
from tqdm import tqdm

from .ambiguity import find_ambiguities
from .metadata_probe import FileMetadata, MetadataProber
from .model import Axis, DataSourceRef, DetectionState, StackDimensions
from .multiplicity import classify_file, map_series_to_axes, reconcile_multiplicity


def detect_views_in_files(
    paths: Iterable[str],
    prober: MetadataProber,
    show_progress: bool = False,
    update_progress: Optional[Callable[[int, int], None]] = None,
) -> DetectionState:
    """Probe every file and accumulate the per-axis view information.

    Raises:
        UnsupportedInputError: propagated from the prober.
    """
    files = sorted(os.path.abspath(p) for p in paths)
    state = DetectionState()
    used_files: set[str] = set()

    for i, path in enumerate(tqdm(files, desc="Investigating files", disable=not show_progress)):
        if update_progress is not None:
            update_progress(i, len(files))
        if path in used_files:
            logging.debug(f"Skipping {path}, already read as part of another file")
            continue

        logging.info(f"Investigating file {path}")
        metadata = prober.probe(path)
        if metadata.path in state.per_file_multiplicity:
            used_files.update(metadata.used_files)
            continue

        used_files.add(path)
        used_files.update(metadata.used_files)
        if metadata.is_grouped:
            state.grouped_format = True
        add_file_to_state(state, metadata)

    state.multiplicity = reconcile_multiplicity(
        state.per_file_multiplicity, state.accumulation
    )
    state.multiplicity, flags = find_ambiguities(state.multiplicity)
    state.ambiguous_channel_illumination = flags.channel_illumination
    state.ambiguous_angle_tile = flags.angle_tile

    logging.info(
        "Detected multiplicity: "
        + ", ".join(f"{axis.value}={m.value}" for axis, m in state.multiplicity.items())
    )
    return state


def add_file_to_state(state: DetectionState, metadata: FileMetadata) -> None:
    """Record one probed file: its axis identities, dimensions and file usage."""
    master = metadata.path

    for series_idx, series in enumerate(metadata.series):
        for used in series.used_files or [master]:
            state.group_usage[used] = (master, series_idx)

        if series.time_is_depth:
            logging.warning(
                f"Uncertain XYZ/XYT order in file {master}, series {series_idx}. "
                "Assuming XYZ; for XYT please resave the data as separate 2D "
                "images for each time point or set the metadata for the third dimension."
            )

        dims = StackDimensions(series.size_x, series.size_y, series.stack_depth)
        for channel_idx in range(series.channel_count):
            state.dimensions[DataSourceRef(master, series_idx, channel_idx)] = (
                dims,
                series.voxel_size,
            )

    info = map_series_to_axes(metadata)
    verdicts = classify_file(info)
    state.per_file_multiplicity[master] = verdicts
    logging.debug(
        f"{master}: "
        + ", ".join(f"{axis.value}={m.value}" for axis, m in verdicts.items())
    )

    for axis, identities in info.items():
        for identity, pairs in identities.items():
            for series_idx, channel_idx in pairs:
                state.add_source(
                    axis, identity, DataSourceRef(master, series_idx, channel_idx)
                )


def min_max_channels_indexed(state: DetectionState) -> Optional[tuple[int, int]]:
    """Fewest and most channels found in any (file, series)."""
    counts = Counter((ref.path, ref.series) for ref in state.sources(Axis.CHANNEL))
    if not counts:
        return None
    return min(counts.values()), max(counts.values())


def min_max_series_indexed(state: DetectionState) -> Optional[tuple[int, int]]:
    """Fewest and most series found in any file."""
    series_per_file: dict[str, set[int]] = {}
    for ref in state.sources(Axis.TILE):
        series_per_file.setdefault(ref.path, set()).add(ref.series)
    if not series_per_file:
        return None
    counts = [len(s) for s in series_per_file.values()]
    return min(counts), max(counts)


def all_voxel_sizes_equal(state: DetectionState, tolerance: float = 1e-5) -> bool:
    sizes = [voxel for _, voxel in state.dimensions.values()]
    if not sizes:
        return True
    first = sizes[0]
    for voxel in sizes[1:]:
        if voxel.unit != first.unit:
            return False
        if not np.allclose(voxel[:3], first[:3], rtol=0.0, atol=tolerance):
            return False
    return True
