import logging
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

import numpy as np
import numpy.testing as npt
import pandas as pd

from gridbin import pipeline, utils
from gridbin.config import RegridConfig
from gridbin.data_structures import AggregatedSeries, Footprints, Observations
from gridbin.errors import EmptyResultError
from gridbin.grid import Grid, GridSpec
from gridbin.projection import LonLatProjector
from gridbin.spill import SpillFile

logger = logging.getLogger(__name__)
utils.enable_logging(extra_loggers=[__name__])


def footprint_batch(timestamps, boxes, values):
    """Axis-aligned footprints from (xmin, xmax, ymin, ymax) boxes."""
    boxes = np.asarray(boxes, dtype=float)
    xmin, xmax, ymin, ymax = boxes.T
    return Footprints(
        timestamps=timestamps,
        corner_longitudes=np.stack([xmin, xmax, xmin, xmax], axis=1),
        corner_latitudes=np.stack([ymin, ymin, ymax, ymax], axis=1),
        values=values,
    )


class HourIndexTestCase(unittest.TestCase):
    def test_hour_index(self):
        start = pd.Timestamp("2024-07-01")
        hours = pipeline.hour_index(
            [20240701000000, 20240701003000, 20240701010000, 20240701235959, 20240630235959], start
        )
        npt.assert_array_equal(hours, [0, 0, 1, 23, -1])
        self.assertEqual(pipeline.hour_index([], start).size, 0)


class HourlyRegridderTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.grid = Grid(
            GridSpec(
                projector=LonLatProjector(),
                west=-100.0,
                south=30.0,
                cell_width=1.0,
                cell_height=1.0,
                columns=10,
                rows=10,
            )
        )

    def test_regrid_points_hourly(self):
        obs = Observations(
            timestamps=[20240701000500, 20240701021500, 20240701050000, 20240630230000],
            longitudes=[-99.5, -95.5, -99.5, -99.5],
            latitudes=[30.5, 35.5, 30.5, 30.5],
            values=[1.0, 2.0, 3.0, 4.0],
        )
        regridder = pipeline.HourlyRegridder(self.grid, RegridConfig(20240701000000, hours=3))
        series = regridder.regrid_points(obs)

        self.assertIsInstance(series, AggregatedSeries)
        npt.assert_array_equal(series.points_per_timestep, [1, 0, 1])
        npt.assert_allclose(series[0].values, [1.0])
        self.assertListEqual(series[2].keys(), [(5, 6)])
        self.assertIn("HourlyRegridder.regrid_points", regridder.performance_summary())

    def test_regrid_points_periods(self):
        obs = Observations(
            timestamps=[20240701000000, 20240701013000, 20240701030000],
            longitudes=[-99.5, -99.4, -99.5],
            latitudes=[30.5, 30.4, 30.5],
            values=[2.0, 4.0, 9.0],
        )
        cfg = RegridConfig(20240701000000, hours=4, hours_per_period=3)
        series = pipeline.regrid_points_hourly(self.grid, obs, cfg)

        self.assertEqual(len(series), cfg.output_timesteps)
        npt.assert_allclose(series[0].values, [3.0])
        npt.assert_array_equal(series[0].counts, [2])
        npt.assert_allclose(series[1].values, [9.0])

    def test_regrid_points_nearest(self):
        obs = Observations(
            timestamps=[20240701000000, 20240701000000],
            longitudes=[-99.9, -99.5],
            latitudes=[30.9, 30.5],
            values=[1.0, 2.0],
        )
        series = pipeline.regrid_points_hourly(self.grid, obs, RegridConfig(20240701000000, 1, method="nearest"))
        npt.assert_allclose(series[0].values, [2.0])

    def test_no_data(self):
        obs = Observations(timestamps=[20240701000000], longitudes=[0.0], latitudes=[0.0], values=[1.0])
        series = pipeline.regrid_points_hourly(self.grid, obs, RegridConfig(20240701000000, hours=2))
        self.assertEqual(len(series), 2)
        with self.assertRaises(EmptyResultError) as ctx:
            series.require_data()
        self.assertEqual(ctx.exception.timesteps, 2)

    def test_regrid_footprints_periods(self):
        fps = footprint_batch(
            [20240701000000, 20240701010000, 20240701030000, 20240701031500],
            [
                (-99.8, -99.2, 30.2, 30.8),
                (-99.9, -99.1, 30.1, 30.9),
                (-99.8, -99.2, 30.2, 30.8),
                (-90.8, -90.2, 39.2, 39.8),
            ],
            [2.0, 4.0, 10.0, 1.0],
        )
        cfg = RegridConfig(20240701000000, hours=4, hours_per_period=2)
        regridder = pipeline.HourlyRegridder(self.grid, cfg)
        series = regridder.regrid_footprints(fps)

        self.assertIsInstance(series, AggregatedSeries)
        npt.assert_array_equal(series.points_per_timestep, [1, 2])
        npt.assert_allclose(series[0].values, [3.0])
        npt.assert_array_equal(series[0].counts, [2])
        self.assertListEqual(series[1].keys(), [(1, 1), (10, 10)])
        npt.assert_allclose(series[1].values, [10.0, 1.0])
        self.assertIn("HourlyRegridder.regrid_footprints", regridder.performance_summary())

    def test_regrid_footprints_short_final_period(self):
        fps = footprint_batch(
            [20240701000000, 20240701040000], [(-99.8, -99.2, 30.2, 30.8), (-99.8, -99.2, 30.2, 30.8)], [2.0, 6.0]
        )
        series = pipeline.regrid_footprints_hourly(self.grid, fps, RegridConfig(20240701000000, 5, hours_per_period=2))
        npt.assert_array_equal(series.points_per_timestep, [1, 0, 1])
        npt.assert_allclose(series[2].values, [6.0])

    def test_regrid_footprints_weighted(self):
        fps = footprint_batch([20240701000000], [(-99.5, -98.5, 30.25, 30.75)], [8.0])
        series = pipeline.regrid_footprints_hourly(self.grid, fps, RegridConfig(20240701000000, 1, method="weighted"))
        self.assertListEqual(series[0].keys(), [(1, 1), (2, 1)])
        npt.assert_allclose(series[0].values, [8.0, 8.0])

    def test_regrid_footprints_spill(self):
        fps = footprint_batch(
            [20240701000000, 20240701010000], [(-99.8, -99.2, 30.2, 30.8), (-95.8, -95.2, 30.2, 30.8)], [2.0, 6.0]
        )
        output = pipeline.regrid_footprints_hourly(self.grid, fps, RegridConfig(20240701000000, 2, spill=True))
        try:
            self.assertIsInstance(output, SpillFile)
            self.assertListEqual(output.points_per_timestep, [1, 1])
            npt.assert_allclose(output.read(1).values, [6.0])
            npt.assert_array_equal(output.read(1).columns, [5])
        finally:
            output.close()
        self.assertFalse(output.path.exists())

        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "swath.spill"
            output = pipeline.regrid_footprints_hourly(self.grid, fps, RegridConfig(20240701000000, 2, spill=str(path)))
            output.close()
            self.assertEqual(path.stat().st_size, 2 * 6 * 8)

    def test_regrid_footprints_spill_removed_on_error(self):
        fps = footprint_batch([20240701000000], [(-99.8, -99.2, 30.2, 30.8)], [2.0])
        created = []

        class RecordingSpillFile(SpillFile):
            def __init__(self, *args, **kwargs):
                super().__init__(*args, **kwargs)
                created.append(self)

        with patch.object(pipeline, "SpillFile", RecordingSpillFile):
            with patch.object(pipeline, "bin_footprints", side_effect=MemoryError("no memory for accumulators")):
                with self.assertRaises(MemoryError):
                    pipeline.regrid_footprints_hourly(self.grid, fps, RegridConfig(20240701000000, 2, spill=True))

        self.assertEqual(len(created), 1)
        self.assertTrue(created[0]._fobj.closed)
        self.assertFalse(created[0].path.exists())

    def test_regrid_footprints_nearest(self):
        fps = footprint_batch([20240701000000], [(-99.8, -99.2, 30.2, 30.8)], [2.0])
        with self.assertRaises(ValueError):
            pipeline.regrid_footprints_hourly(self.grid, fps, RegridConfig(20240701000000, 1, method="nearest"))


if __name__ == "__main__":
    unittest.main()
