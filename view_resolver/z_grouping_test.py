import unittest

from .assembly import assemble_views
from .expansion import expand_view_infos
from .model import Axis, DataSourceRef, StackDimensions
from .pattern_detector import NumericalFilenamePatternDetector
from .testutil import detect, file_metadata, series, single_series_files
from .z_grouping import group_z_planes


class GroupZPlanesTest(unittest.TestCase):
    def test_five_planes_make_one_stack(self) -> None:
        paths = [f"/data/img_z{z}.tif" for z in range(5)]
        state = detect(single_series_files(paths, size=(512, 512, 1)))
        detector = NumericalFilenamePatternDetector(paths)
        expanded = expand_view_infos(state, {}, detector)

        grouped = group_z_planes(expanded, detector, [0])

        merged = DataSourceRef("/data/img_z<0,1,2,3,4>.tif", 0, 0)
        self.assertEqual(list(grouped.dimensions), [merged])
        dims, _ = grouped.dimensions[merged]
        self.assertEqual(dims, StackDimensions(512, 512, 5))
        for axis in Axis:
            self.assertEqual(grouped.id_map[axis], {0: [merged]})
        self.assertTrue(grouped.z_grouped)
        # The input state is left alone.
        self.assertEqual(len(expanded.dimensions), 5)
        self.assertFalse(expanded.z_grouped)

        dataset = assemble_views(grouped)
        self.assertEqual(len(dataset.view_setups), 1)
        self.assertEqual(dataset.view_setups[0].dimensions, StackDimensions(512, 512, 5))
        self.assertEqual(list(dataset.view_sources.values()), [merged])
        self.assertTrue(dataset.z_grouped)

    def test_groups_per_channel(self) -> None:
        paths = [f"/data/img_c{c}_z{z}.tif" for c in range(2) for z in range(3)]
        state = detect(single_series_files(paths, size=(64, 32, 1)))
        detector = NumericalFilenamePatternDetector(paths)
        expanded = expand_view_infos(state, {Axis.CHANNEL: [0]}, detector)

        grouped = group_z_planes(expanded, detector, [1])

        c0 = DataSourceRef("/data/img_c0_z<0,1,2>.tif", 0, 0)
        c1 = DataSourceRef("/data/img_c1_z<0,1,2>.tif", 0, 0)
        self.assertEqual(grouped.id_map[Axis.CHANNEL], {0: [c0], 1: [c1]})
        self.assertEqual(grouped.dimensions[c1][0], StackDimensions(64, 32, 3))

    def test_unmatched_sources_are_kept(self) -> None:
        paths = [f"/data/img_z{z}.tif" for z in range(3)]
        state = detect(single_series_files(paths + ["/other/stack.tif"], size=(8, 8, 1)))
        detector = NumericalFilenamePatternDetector(paths)
        expanded = expand_view_infos(state, {})

        with self.assertLogs(level="ERROR"):
            grouped = group_z_planes(expanded, detector, [0])

        self.assertEqual(
            sorted(grouped.dimensions),
            [
                DataSourceRef("/data/img_z<0,1,2>.tif", 0, 0),
                DataSourceRef("/other/stack.tif", 0, 0),
            ],
        )

    def test_no_z_slots(self) -> None:
        paths = ["/data/a0.tif", "/data/a1.tif"]
        state = detect(single_series_files(paths))
        detector = NumericalFilenamePatternDetector(paths)
        self.assertIs(group_z_planes(state, detector, []), state)

    def test_planes_with_different_tiles_stay_apart(self) -> None:
        paths = [f"/data/img_z{z}.tif" for z in range(4)]
        files = {
            path: file_metadata(
                path,
                series(size=(16, 16, 1), stage_position=(0.0 if z < 2 else 100.0, 0.0, None)),
            )
            for z, path in enumerate(paths)
        }
        state = detect(files)
        detector = NumericalFilenamePatternDetector(paths)
        expanded = expand_view_infos(state, {}, detector)

        grouped = group_z_planes(expanded, detector, [0])

        first = DataSourceRef("/data/img_z<0,1>.tif", 0, 0)
        second = DataSourceRef("/data/img_z<2,3>.tif", 0, 0)
        self.assertEqual(grouped.id_map[Axis.TILE], {0: [first], 1: [second]})
        self.assertEqual(grouped.dimensions[second][0], StackDimensions(16, 16, 2))
