import contextlib
import os
import pathlib
import tempfile
from typing import Generator, Optional

from .detection import detect_views_in_files
from .metadata_probe import ChannelMetadata, FileMetadata, MetadataProber, SeriesMetadata
from .model import DetectionState, VoxelSize

PARAMETERS_FIXTURE_FILE = (
    pathlib.Path(__file__).parent.parent
    / "test_fixtures"
    / "parameters_test"
    / "parameters.json"
)

DEFAULT_VOXEL_SIZE = VoxelSize(0.2, 0.2, 1.0, "µm")


class FakeProber(MetadataProber):
    """Prober answering from a fixed path -> metadata table, recording every call."""

    def __init__(self, files: dict[str, FileMetadata]):
        self.files = {os.path.abspath(path): meta for path, meta in files.items()}
        self.probed: list[str] = []

    def probe(self, path: str) -> FileMetadata:
        path = os.path.abspath(path)
        self.probed.append(path)
        return self.files[path]


def series(
    size: tuple[int, int, int] = (512, 512, 50),
    channels: int | list[str] = 1,
    size_t: int = 1,
    voxel_size: VoxelSize = DEFAULT_VOXEL_SIZE,
    stage_position: Optional[tuple[Optional[float], Optional[float], Optional[float]]] = None,
    channel_step: Optional[int] = None,
    order_certain: bool = True,
    used_files: Optional[list[str]] = None,
) -> SeriesMetadata:
    """Build one series; `channels` is either a count or a list of channel names."""
    if isinstance(channels, int):
        channel_metadata = [ChannelMetadata() for _ in range(channels)]
    else:
        channel_metadata = [ChannelMetadata(name=name) for name in channels]
    x, y, z = size
    return SeriesMetadata(
        size_x=x,
        size_y=y,
        size_z=z,
        size_t=size_t,
        voxel_size=voxel_size,
        channels=channel_metadata,
        channel_step=channel_step,
        stage_position=stage_position,
        order_certain=order_certain,
        used_files=[os.path.abspath(f) for f in used_files or []],
    )


def file_metadata(path: str, *file_series: SeriesMetadata) -> FileMetadata:
    """Metadata of a file holding the given series (one default series if none)."""
    path = os.path.abspath(path)
    all_series = list(file_series) or [series()]
    used_files = [path]
    for s in all_series:
        used_files.extend(f for f in s.used_files if f not in used_files)
    return FileMetadata(path=path, series=all_series, used_files=used_files)


def single_series_files(paths: list[str], **kwargs) -> dict[str, FileMetadata]:
    """One single-series file per path, all with the same series layout."""
    return {path: file_metadata(path, series(**kwargs)) for path in paths}


def detect(files: dict[str, FileMetadata]) -> DetectionState:
    return detect_views_in_files(list(files), FakeProber(files))


@contextlib.contextmanager
def temporary_files(names: list[str]) -> Generator[list[str], None, None]:
    """Create empty files with the given names in a temporary directory.

    Yields their absolute paths, in the order of `names`.
    """
    with tempfile.TemporaryDirectory() as d:
        paths = []
        for name in names:
            path = os.path.abspath(os.path.join(d, name))
            pathlib.Path(path).touch()
            paths.append(path)
        yield paths
