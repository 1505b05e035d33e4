import logging
import unittest

import numpy as np
import numpy.testing as npt
import pytest

from gridbin import utils
from gridbin.aggregate import CellAccumulator
from gridbin.binning import polygons
from gridbin.constants import MISSING_VALUE, AggregationMethod, FootprintFlags
from gridbin.data_structures import Footprint, Footprints
from gridbin.grid import Grid, GridSpec
from gridbin.projection import LambertConformalConic, LonLatProjector

logger = logging.getLogger(__name__)
utils.enable_logging(extra_loggers=[__name__])


def box(xmin, xmax, ymin, ymax, value, timestamp=20240701000000):
    """Axis-aligned footprint record (corners SW, SE, NW, NE)."""
    return Footprint(timestamp, (xmin, ymin), (xmax, ymin), (xmin, ymax), (xmax, ymax), value)


def footprints(*records):
    return Footprints.from_records(records)


class BinFootprintsTestCase(unittest.TestCase):
    def setUp(self) -> None:
        # 4x4 one degree cells over lon [0, 4], lat [0, 4].
        self.grid = Grid(
            GridSpec(
                projector=LonLatProjector(), west=0.0, south=0.0, cell_width=1.0, cell_height=1.0, columns=4, rows=4
            )
        )

    def test_contained(self):
        for method in (AggregationMethod.MEAN, AggregationMethod.WEIGHTED):
            acc, flags = polygons.bin_footprints(self.grid, footprints(box(0.2, 0.8, 0.2, 0.8, 5.0)), method=method)
            npt.assert_array_equal(flags, [FootprintFlags.GOOD])
            self.assertEqual(acc.active_cell_count, 1)
            self.assertEqual(acc.counts[0], 1)
            self.assertAlmostEqual(acc.sums[0], 5.0)

            result = acc.finalize(0.0)
            self.assertListEqual(result.keys(), [(1, 1)])
            npt.assert_allclose(result.values, [5.0])
            npt.assert_allclose(result.longitudes, [0.5])
            npt.assert_allclose(result.latitudes, [0.5])

        acc, _ = polygons.bin_footprints(self.grid, footprints(box(1.2, 1.8, 2.2, 2.8, 5.0)), method="weighted")
        self.assertEqual(acc.weights[2 * 4 + 1], 1.0)

    def test_weighted_fractions(self):
        acc, flags = polygons.bin_footprints(
            self.grid, footprints(box(0.5, 1.5, 0.5, 1.5, 4.0)), method=AggregationMethod.WEIGHTED
        )
        npt.assert_array_equal(flags, [FootprintFlags.GOOD])
        cells = [0, 1, 4, 5]
        npt.assert_allclose(acc.weights[cells], [0.25] * 4)
        npt.assert_allclose(acc.sums[cells], [1.0] * 4)
        self.assertAlmostEqual(acc.weights.sum(), 1.0)

        result = acc.finalize(0.0)
        self.assertListEqual(result.keys(), [(1, 1), (2, 1), (1, 2), (2, 2)])
        npt.assert_allclose(result.values, [4.0] * 4)
        npt.assert_array_equal(result.counts, [1] * 4)

    def test_weighted_uneven_overlap(self):
        acc, _ = polygons.bin_footprints(
            self.grid,
            footprints(box(0.5, 1.5, 0.2, 0.8, 2.0), box(0.75, 1.75, 0.2, 0.8, 6.0)),
            method=AggregationMethod.WEIGHTED,
        )
        npt.assert_allclose(acc.weights[[0, 1]], [0.5 + 0.25, 0.5 + 0.75])
        npt.assert_array_equal(acc.counts[[0, 1]], [2, 2])

        result = acc.finalize(0.0)
        npt.assert_allclose(result.values, [(1.0 + 1.5) / 0.75, (1.0 + 4.5) / 1.25])

    def test_weighted_partially_off_grid(self):
        acc, flags = polygons.bin_footprints(
            self.grid, footprints(box(-0.5, 0.5, 0.25, 0.75, 3.0)), method=AggregationMethod.WEIGHTED
        )
        npt.assert_array_equal(flags, [FootprintFlags.GOOD])
        npt.assert_allclose(acc.weights[0], 0.5)
        npt.assert_allclose(acc.finalize(0.0).values, [3.0])

    def test_unweighted_covers_cell_centers(self):
        acc, _ = polygons.bin_footprints(self.grid, footprints(box(0.2, 2.8, 0.2, 0.8, 7.0)))
        npt.assert_array_equal(acc.counts[:4], [1, 1, 1, 0])
        self.assertIsNone(acc.weights)

        result = acc.finalize(0.0)
        npt.assert_array_equal(result.columns, [1, 2, 3])
        npt.assert_allclose(result.values, [7.0] * 3)

    def test_unweighted_straddle_without_centers(self):
        acc, flags = polygons.bin_footprints(self.grid, footprints(box(0.9, 1.1, 0.4, 0.6, 7.0)))
        npt.assert_array_equal(flags, [FootprintFlags.GOOD])
        npt.assert_array_equal(np.flatnonzero(acc.counts), [1])

    def test_mean_of_overlapping(self):
        acc, _ = polygons.bin_footprints(
            self.grid, footprints(box(0.1, 0.4, 0.1, 0.4, 2.0), box(0.5, 0.9, 0.5, 0.9, 4.0))
        )
        result = acc.finalize(0.0)
        npt.assert_allclose(result.values, [3.0])
        npt.assert_array_equal(result.counts, [2])

    def test_bow_tie_corners(self):
        # NW and NE swapped: the nominal ring is twisted.
        record = Footprint(20240701000000, (0.2, 0.2), (0.8, 0.2), (0.8, 0.8), (0.2, 0.8), 5.0)
        acc, flags = polygons.bin_footprints(self.grid, footprints(record), method=AggregationMethod.WEIGHTED)
        npt.assert_array_equal(flags, [FootprintFlags.GOOD])
        self.assertAlmostEqual(acc.weights[0], 1.0)

    def test_degenerate(self):
        record = Footprint(20240701000000, (1.5, 1.5), (1.5, 1.5), (1.5, 1.5), (1.5, 1.5), 5.0)
        acc, flags = polygons.bin_footprints(self.grid, footprints(record))
        npt.assert_array_equal(flags, [FootprintFlags.INVALID_GEOMETRY])
        self.assertEqual(acc.active_cell_count, 0)

    def test_flags(self):
        fps = footprints(
            box(0.2, 0.8, 0.2, 0.8, 1.0),
            box(10.2, 10.8, 0.2, 0.8, 1.0),
            box(0.2, 0.8, 0.2, 0.8, MISSING_VALUE),
            box(0.2, 0.8, 0.2, 0.8, -5.0),
            box(-2.0, -1.0, -2.0, -1.0, 1.0),
        )
        acc, flags = polygons.bin_footprints(self.grid, fps)
        npt.assert_array_equal(
            flags,
            [
                FootprintFlags.GOOD,
                FootprintFlags.OUT_OF_GRID,
                FootprintFlags.INVALID_VALUE,
                FootprintFlags.INVALID_VALUE,
                FootprintFlags.OUT_OF_GRID,
            ],
        )
        self.assertEqual(acc.counts.sum(), 1)

        _, flags = polygons.bin_footprints(self.grid, fps, minimum_valid_value=-900.0)
        self.assertEqual(flags[3], FootprintFlags.GOOD)

    def test_accumulates_across_calls(self):
        acc = CellAccumulator(self.grid)
        polygons.bin_footprints(self.grid, footprints(box(0.2, 0.8, 0.2, 0.8, 1.0)), accumulator=acc)
        polygons.bin_footprints(self.grid, footprints(box(0.3, 0.7, 0.3, 0.7, 3.0)), accumulator=acc)
        self.assertEqual(acc.counts[0], 2)
        npt.assert_allclose(acc.finalize(0.0).values, [2.0])
        self.assertEqual(acc.active_cell_count, 0)

    def test_empty(self):
        acc, flags = polygons.bin_footprints(self.grid, Footprints([], np.empty((0, 4)), np.empty((0, 4)), []))
        self.assertEqual(flags.size, 0)
        self.assertEqual(len(acc.finalize(0.0)), 0)

    def test_invalid_method(self):
        with self.assertRaises(ValueError):
            polygons.bin_footprints(self.grid, footprints(box(0.2, 0.8, 0.2, 0.8, 1.0)), method="nearest")
        with self.assertRaises(ValueError):
            polygons.bin_footprints(
                self.grid,
                footprints(box(0.2, 0.8, 0.2, 0.8, 1.0)),
                method="weighted",
                accumulator=CellAccumulator(self.grid),
            )

    def test_cell_range(self):
        self.assertEqual(polygons.cell_range(self.grid, 0.5, 1.5, 2.2, 2.8), (0, 1, 2, 2))
        self.assertEqual(polygons.cell_range(self.grid, -3.0, 10.0, -1.0, 0.5), (0, 3, 0, 0))


class GridEdgeTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.grid = Grid(
            GridSpec(
                projector=LonLatProjector(), west=0.0, south=0.0, cell_width=1.0, cell_height=1.0, columns=4, rows=4
            )
        )
        self.methods = (AggregationMethod.MEAN, AggregationMethod.WEIGHTED)

    def assert_off_grid(self, record):
        for method in self.methods:
            acc, flags = polygons.bin_footprints(self.grid, footprints(record), method=method)
            npt.assert_array_equal(flags, [FootprintFlags.OUT_OF_GRID], err_msg=method.name)
            self.assertEqual(acc.active_cell_count, 0, msg=method.name)

    def test_touching_east_edge(self):
        # The east edge is exclusive.
        self.assert_off_grid(box(4.0, 4.4, 1.2, 1.6, 5.0))

    def test_touching_north_edge(self):
        self.assert_off_grid(box(1.2, 1.6, 4.0, 4.4, 5.0))

    def test_touching_west_edge_from_outside(self):
        self.assert_off_grid(box(-0.4, 0.0, 1.2, 1.6, 5.0))

    def test_bounding_box_overlaps_corner_cell(self):
        # Diamond south-west of the origin: its bounding box reaches into
        # cell (1, 1), the polygon does not (edge x + y = -0.3).
        record = Footprint(20240701000000, (-1.2, -0.5), (-0.5, -1.2), (-0.5, 0.2), (0.2, -0.5), 5.0)
        self.assert_off_grid(record)

    def test_inside_last_cell(self):
        for method in self.methods:
            acc, flags = polygons.bin_footprints(self.grid, footprints(box(3.2, 4.0, 3.2, 4.0, 5.0)), method=method)
            npt.assert_array_equal(flags, [FootprintFlags.GOOD])
            self.assertListEqual(acc.finalize(0.0).keys(), [(4, 4)])

    def test_overlapping_corner(self):
        for method in self.methods:
            acc, flags = polygons.bin_footprints(self.grid, footprints(box(-0.4, 0.7, -0.4, 0.7, 5.0)), method=method)
            npt.assert_array_equal(flags, [FootprintFlags.GOOD])
            result = acc.finalize(0.0)
            self.assertListEqual(result.keys(), [(1, 1)])
            npt.assert_allclose(result.values, [5.0])

        acc, _ = polygons.bin_footprints(
            self.grid, footprints(box(-0.4, 0.7, -0.4, 0.7, 5.0)), method=AggregationMethod.WEIGHTED
        )
        npt.assert_allclose(acc.weights[0], 0.49 / 1.21)

    def test_sliver_on_grid(self):
        # Covers no cell center and its vertex mean is off the grid.
        record = box(-0.5, 0.1, 0.6, 0.7, 5.0)
        acc, flags = polygons.bin_footprints(self.grid, footprints(record))
        npt.assert_array_equal(flags, [FootprintFlags.NO_CELLS])
        self.assertEqual(acc.active_cell_count, 0)

        acc, flags = polygons.bin_footprints(self.grid, footprints(record), method=AggregationMethod.WEIGHTED)
        npt.assert_array_equal(flags, [FootprintFlags.GOOD])
        npt.assert_allclose(acc.weights[0], 0.1 / 0.6)


@pytest.mark.extra
def test_projected_fractions_sum_to_one():
    grid = Grid(
        GridSpec(
            projector=LambertConformalConic(6370997.0, 6370997.0, 33.0, 45.0, -97.0, 40.0),
            west=-2556000.0,
            south=-1728000.0,
            cell_width=12000.0,
            cell_height=12000.0,
            columns=459,
            rows=299,
        )
    )
    rng = np.random.default_rng(7)
    n = 2000
    lon = rng.uniform(-110.0, -85.0, n)
    lat = rng.uniform(30.0, 45.0, n)
    half = rng.uniform(0.02, 0.3, (n, 1))
    fps = Footprints(
        timestamps=np.full(n, 20240701000000),
        corner_longitudes=lon[:, None] + half * np.array([-1.0, 1.0, -1.0, 1.0]),
        corner_latitudes=lat[:, None] + half * np.array([-1.0, -1.0, 1.0, 1.0]),
        values=rng.uniform(1.0, 10.0, n),
    )

    acc, flags = polygons.bin_footprints(grid, fps, method=AggregationMethod.WEIGHTED)
    assert np.all(flags == FootprintFlags.GOOD)
    npt.assert_allclose(acc.weights.sum(), n, rtol=1e-9)
    assert acc.counts.sum() >= n


if __name__ == "__main__":
    unittest.main()
