import unittest

from .detection import (
    all_voxel_sizes_equal,
    detect_views_in_files,
    min_max_channels_indexed,
    min_max_series_indexed,
)
from .model import Axis, DataSourceRef, Multiplicity, StackDimensions, VoxelSize
from .testutil import FakeProber, detect, file_metadata, series, single_series_files


class DetectViewsInFilesTest(unittest.TestCase):
    def test_files_are_probed_in_path_order(self) -> None:
        files = single_series_files(["/data/c.tif", "/data/a.tif", "/data/b.tif"])
        prober = FakeProber(files)
        detect_views_in_files(["/data/c.tif", "/data/a.tif", "/data/b.tif"], prober)
        self.assertEqual(prober.probed, ["/data/a.tif", "/data/b.tif", "/data/c.tif"])

    def test_grouped_files_are_probed_once(self) -> None:
        master = file_metadata(
            "/data/pos0.ome.tif",
            series(used_files=["/data/pos0.ome.tif"]),
            series(used_files=["/data/pos1.ome.tif"]),
        )
        prober = FakeProber({"/data/pos0.ome.tif": master, "/data/pos1.ome.tif": master})

        state = detect_views_in_files(["/data/pos1.ome.tif", "/data/pos0.ome.tif"], prober)

        self.assertEqual(prober.probed, ["/data/pos0.ome.tif"])
        self.assertTrue(state.grouped_format)
        self.assertEqual(
            state.group_usage,
            {
                "/data/pos0.ome.tif": ("/data/pos0.ome.tif", 0),
                "/data/pos1.ome.tif": ("/data/pos0.ome.tif", 1),
            },
        )
        self.assertEqual(state.master_files(), ["/data/pos0.ome.tif"])
        self.assertEqual(
            state.sources(Axis.TILE),
            [DataSourceRef("/data/pos0.ome.tif", s, 0) for s in range(2)],
        )

    def test_master_reached_through_companion_file(self) -> None:
        master = file_metadata(
            "/data/pos0.ome.tif",
            series(used_files=["/data/pos0.ome.tif"]),
            series(used_files=["/data/pos1.ome.tif"]),
        )
        # Probing either file reports the whole dataset; the master file is
        # not part of the input list.
        prober = FakeProber({"/data/pos1.ome.tif": master})
        state = detect_views_in_files(["/data/pos1.ome.tif"], prober)
        self.assertEqual(list(state.per_file_multiplicity), ["/data/pos0.ome.tif"])

    def test_dimensions_and_flags(self) -> None:
        state = detect(
            {"/data/f.tif": file_metadata("/data/f.tif", series(size=(64, 32, 7), channels=2))}
        )
        self.assertEqual(
            state.dimensions[DataSourceRef("/data/f.tif", 0, 1)][0],
            StackDimensions(64, 32, 7),
        )
        self.assertTrue(state.ambiguous_channel_illumination)
        self.assertFalse(state.ambiguous_angle_tile)
        self.assertEqual(state.multiplicity[Axis.CHANNEL], Multiplicity.MULTIPLE_INDEXED)

    def test_uncertain_order_warns(self) -> None:
        files = {
            "/data/f.tif": file_metadata(
                "/data/f.tif", series(size=(64, 64, 1), size_t=9, order_certain=False)
            )
        }
        with self.assertLogs(level="WARNING"):
            state = detect(files)
        dims, _ = state.dimensions[DataSourceRef("/data/f.tif", 0, 0)]
        self.assertEqual(dims.z, 9)
        self.assertEqual(state.multiplicity[Axis.TIMEPOINT], Multiplicity.SINGLE)

    def test_sources_are_recorded_once(self) -> None:
        state = detect(single_series_files(["/data/a.tif"]))
        ref = DataSourceRef("/data/a.tif", 0, 0)
        state.add_source(Axis.CHANNEL, next(iter(state.accumulation[Axis.CHANNEL])), ref)
        self.assertEqual(state.sources(Axis.CHANNEL), [ref])
        for axis in Axis:
            self.assertEqual(sum(len(r) for r in state.accumulation[axis].values()), 1)


class SummaryTest(unittest.TestCase):
    def test_min_max(self) -> None:
        state = detect(
            {
                "/data/a.tif": file_metadata("/data/a.tif", series(channels=1), series(channels=3)),
                "/data/b.tif": file_metadata("/data/b.tif", series(channels=2)),
            }
        )
        self.assertEqual(min_max_channels_indexed(state), (1, 3))
        self.assertEqual(min_max_series_indexed(state), (1, 2))

    def test_voxel_sizes(self) -> None:
        same = detect(single_series_files(["/data/a.tif", "/data/b.tif"]))
        self.assertTrue(all_voxel_sizes_equal(same))

        files = {
            "/data/a.tif": file_metadata("/data/a.tif", series()),
            "/data/b.tif": file_metadata(
                "/data/b.tif", series(voxel_size=VoxelSize(0.2, 0.2, 1.0, "nm"))
            ),
        }
        self.assertFalse(all_voxel_sizes_equal(detect(files)))

        files["/data/b.tif"] = file_metadata(
            "/data/b.tif", series(voxel_size=VoxelSize(0.2000001, 0.2, 1.0, "µm"))
        )
        self.assertTrue(all_voxel_sizes_equal(detect(files)))
