import math
import unittest

from .assembly import (
    angle_attribute,
    assemble_views,
    channel_attribute,
    tile_attribute,
)
from .model import (
    AngleIdentity,
    Axis,
    ChannelIdentity,
    DataSourceRef,
    DetectionState,
    StackDimensions,
    TileIdentity,
    ViewId,
    VoxelSize,
)

AXES = (Axis.TIMEPOINT, Axis.CHANNEL, Axis.ILLUMINATION, Axis.TILE, Axis.ANGLE)


def build_state(entries) -> DetectionState:
    """State from (timepoint, channel, illumination, tile, angle) -> source pairs."""
    state = DetectionState()
    for key, ref in entries:
        for axis, axis_id in zip(AXES, key):
            refs = state.id_map[axis].setdefault(axis_id, [])
            if ref not in refs:
                refs.append(ref)
        state.dimensions[ref] = (
            StackDimensions(512, 512, 50),
            VoxelSize(0.2, 0.2, 1.0, "µm"),
        )
    return state


def angle_tile_grid(timepoints, skip=()) -> DetectionState:
    entries = []
    for tp in timepoints:
        for tile in range(2):
            for angle in range(3):
                if (tp, tile, angle) in skip:
                    continue
                ref = DataSourceRef(f"/data/tp{tp}_t{tile}_a{angle}.tif", 0, 0)
                entries.append(((tp, 0, 0, tile, angle), ref))
    return build_state(entries)


class AssembleViewsTest(unittest.TestCase):
    def test_single_source_per_view(self) -> None:
        dataset = assemble_views(angle_tile_grid([0]))
        self.assertEqual(dataset.timepoints, [0])
        self.assertEqual(len(dataset.view_setups), 6)
        self.assertEqual(dataset.missing_views, [])
        self.assertEqual(len(dataset.view_sources), 6)
        # Angles vary fastest.
        setup = dataset.view_setup(1)
        self.assertEqual((setup.tile.id, setup.angle.id), (0, 1))
        self.assertEqual(
            dataset.view_sources[ViewId(0, 1)],
            DataSourceRef("/data/tp0_t0_a1.tif", 0, 0),
        )
        self.assertEqual(setup.dimensions, StackDimensions(512, 512, 50))
        self.assertEqual(setup.voxel_size.unit, "µm")
        self.assertIs(setup.attribute(Axis.ANGLE), setup.angle)
        with self.assertRaises(ValueError):
            setup.attribute(Axis.TIMEPOINT)

    def test_missing_view(self) -> None:
        dataset = assemble_views(angle_tile_grid([0, 1], skip={(1, 1, 2)}))
        self.assertEqual(dataset.timepoints, [0, 1])
        self.assertEqual(len(dataset.view_setups), 6)
        missing_setup = dataset.view_setup(5)
        self.assertEqual((missing_setup.tile.id, missing_setup.angle.id), (1, 2))
        self.assertEqual(dataset.missing_views, [ViewId(1, 5)])
        self.assertNotIn(ViewId(1, 5), dataset.view_sources)
        self.assertEqual(len(dataset.view_sources), 11)

    def test_combination_without_data_gets_no_setup(self) -> None:
        dataset = assemble_views(angle_tile_grid([0], skip={(0, 1, 2)}))
        self.assertEqual(len(dataset.view_setups), 5)
        self.assertEqual(dataset.missing_views, [])

    def test_missing_in_first_timepoint_uses_final_setup_id(self) -> None:
        entries = [
            ((0, 0, 0, 0, 0), DataSourceRef("/data/tp0_t0.tif", 0, 0)),
            ((1, 0, 0, 0, 0), DataSourceRef("/data/tp1_t0.tif", 0, 0)),
            ((1, 0, 0, 1, 0), DataSourceRef("/data/tp1_t1.tif", 0, 0)),
        ]
        dataset = assemble_views(build_state(entries))
        self.assertEqual([s.tile.id for s in dataset.view_setups], [0, 1])
        self.assertEqual(dataset.missing_views, [ViewId(0, 1)])
        self.assertEqual(
            dataset.view_sources[ViewId(1, 1)], DataSourceRef("/data/tp1_t1.tif", 0, 0)
        )

    def test_duplicate_sources(self) -> None:
        first = DataSourceRef("/data/a.tif", 0, 0)
        second = DataSourceRef("/data/b.tif", 0, 0)
        other = DataSourceRef("/data/c.tif", 0, 0)
        entries = [
            ((0, 0, 0, 0, 0), first),
            ((0, 0, 0, 0, 0), second),
            ((0, 0, 0, 0, 1), other),
        ]
        with self.assertLogs(level="ERROR"):
            dataset = assemble_views(build_state(entries))

        self.assertEqual(list(dataset.view_sources.values()), [other])
        self.assertEqual(len(dataset.view_setups), 1)
        self.assertEqual(len(dataset.duplicate_views), 1)
        duplicate = dataset.duplicate_views[0]
        self.assertIsNone(duplicate.setup)
        self.assertEqual(duplicate.combination, (0, 0, 0, 0))
        self.assertEqual(duplicate.sources, (first, second))

    def test_duplicate_in_one_timepoint(self) -> None:
        entries = [
            ((0, 0, 0, 0, 0), DataSourceRef("/data/a.tif", 0, 0)),
            ((0, 0, 0, 0, 0), DataSourceRef("/data/b.tif", 0, 0)),
            ((1, 0, 0, 0, 0), DataSourceRef("/data/c.tif", 0, 0)),
        ]
        with self.assertLogs(level="ERROR"):
            dataset = assemble_views(build_state(entries))
        self.assertEqual(dataset.timepoints, [1])
        self.assertEqual(dataset.duplicate_views[0].setup, 0)
        self.assertEqual(dataset.duplicate_views[0].timepoint, 0)
        self.assertNotIn(ViewId(0, 0), dataset.view_sources)
        self.assertEqual(dataset.missing_views, [])

    def test_empty_state(self) -> None:
        dataset = assemble_views(DetectionState())
        self.assertEqual(dataset.view_setups, [])
        self.assertEqual(dataset.timepoints, [])

    def test_to_dataframe(self) -> None:
        dataset = assemble_views(angle_tile_grid([0, 1], skip={(1, 1, 2)}))
        df = dataset.to_dataframe()
        self.assertEqual(len(df), 12)
        self.assertEqual(int(df["missing"].sum()), 1)
        missing_row = df[df["missing"]].iloc[0]
        self.assertEqual((missing_row["timepoint"], missing_row["setup"]), (1, 5))
        self.assertEqual(
            df.iloc[0]["path"], "/data/tp0_t0_a0.tif"
        )


class AttributeNamingTest(unittest.TestCase):
    def test_channel_name_precedence(self) -> None:
        self.assertEqual(
            channel_attribute(0, ChannelIdentity("DAPI", "Hoechst", 461.0)).name, "DAPI"
        )
        self.assertEqual(
            channel_attribute(0, ChannelIdentity(None, "Hoechst", 461.0)).name, "Hoechst"
        )
        self.assertEqual(channel_attribute(0, ChannelIdentity(None, None, 512.6)).name, "513")
        self.assertEqual(channel_attribute(3, ChannelIdentity()).name, "3")
        self.assertEqual(channel_attribute(4, None).name, "4")

    def test_angle_rotation(self) -> None:
        attribute = angle_attribute(2, AngleIdentity(90.0, 1))
        self.assertEqual(attribute.rotation_axis, (0.0, 1.0, 0.0))
        self.assertEqual(attribute.rotation_degrees, 90.0)
        self.assertEqual(attribute.name, "2")
        self.assertIsNone(angle_attribute(0, AngleIdentity(90.0, None)).rotation_axis)
        self.assertIsNone(angle_attribute(0, AngleIdentity(math.nan, 0)).rotation_axis)

    def test_tile_location(self) -> None:
        self.assertEqual(
            tile_attribute(0, TileIdentity(1.5, None, None)).location, (1.5, 0.0, 0.0)
        )
        self.assertIsNone(tile_attribute(0, TileIdentity()).location)
