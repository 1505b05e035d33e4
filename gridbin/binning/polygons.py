"""Bin quadrilateral swath footprints into the grid cells they overlap.

A footprint is projected, reordered into a counter-clockwise ring, and then
added to every cell it covers:

* MEAN: each covered cell (cell center inside the footprint) gets the full
  value with a weight of one.
* WEIGHTED: each overlapped cell gets the value scaled by the fraction of the
  footprint's area inside that cell, so the weights of a footprint that lies
  fully on the grid sum to one.

Footprints inside a single cell skip the polygon math in both modes. Results
stay in a `CellAccumulator` so footprints from several scans can be combined
before the means are computed.
"""

from __future__ import annotations

import logging

import numpy as np

from ..aggregate import CellAccumulator
from ..constants import OUT_OF_BOUNDS, AggregationMethod, FootprintFlags
from ..data_structures import Footprints
from ..grid import Grid
from .geometry import clipped_area, point_in_polygon, quadrilateral_area, reorder_quadrilateral
from .points import valid_value_mask

logger = logging.getLogger(__name__)

# Corner columns (SW, SE, NW, NE) reordered into a ring: SW, SE, NE, NW.
RING_ORDER = [0, 1, 3, 2]


def cell_range(grid: Grid, xmin: float, xmax: float, ymin: float, ymax: float) -> tuple[int, int, int, int]:
    """0-based (first_column, last_column, first_row, last_row) covering a bounding box, clamped to the grid."""
    spec = grid.spec
    first_col = int(np.clip(np.floor((xmin - spec.west) / spec.cell_width), 0, grid.columns - 1))
    last_col = int(np.clip(np.floor((xmax - spec.west) / spec.cell_width), first_col, grid.columns - 1))
    first_row = int(np.clip(np.floor((ymin - spec.south) / spec.cell_height), 0, grid.rows - 1))
    last_row = int(np.clip(np.floor((ymax - spec.south) / spec.cell_height), first_row, grid.rows - 1))
    return first_col, last_col, first_row, last_row


def _inside_one_cell(grid, qx, qy, first_col, last_col, first_row, last_row) -> bool:
    """True if the footprint's bounding box lies within the single cell of the range."""
    if first_col != last_col or first_row != last_row:
        return False
    spec = grid.spec
    cell_x0 = spec.west + first_col * spec.cell_width
    cell_y0 = spec.south + first_row * spec.cell_height
    return bool(
        qx.min() >= cell_x0
        and qx.max() <= cell_x0 + spec.cell_width
        and qy.min() >= cell_y0
        and qy.max() <= cell_y0 + spec.cell_height
    )


def _bin_weighted(grid, accumulator, value, qx, qy, first_col, last_col, first_row, last_row) -> int:
    if _inside_one_cell(grid, qx, qy, first_col, last_col, first_row, last_row):
        accumulator.add(first_row * grid.columns + first_col, value, 1.0)
        return 1

    spec = grid.spec
    quad_area = quadrilateral_area(qx, qy)
    if not quad_area > 0:
        return 0

    added = 0
    for row in range(first_row, last_row + 1):
        cell_y0 = spec.south + row * spec.cell_height
        for col in range(first_col, last_col + 1):
            cell_x0 = spec.west + col * spec.cell_width
            fraction = (
                clipped_area(qx, qy, cell_x0, cell_y0, cell_x0 + spec.cell_width, cell_y0 + spec.cell_height)
                / quad_area
            )
            if fraction > 0.0:
                accumulator.add(row * grid.columns + col, value, min(fraction, 1.0))
                added += 1
    return added


def _bin_unweighted(grid, accumulator, value, qx, qy, first_col, last_col, first_row, last_row) -> int:
    if _inside_one_cell(grid, qx, qy, first_col, last_col, first_row, last_row):
        accumulator.add(first_row * grid.columns + first_col, value)
        return 1

    spec = grid.spec
    cols = np.arange(first_col, last_col + 1)
    rows = np.arange(first_row, last_row + 1)
    xc, yc = np.meshgrid(spec.west + (cols + 0.5) * spec.cell_width, spec.south + (rows + 0.5) * spec.cell_height)
    inside = point_in_polygon(xc, yc, qx, qy)
    if np.any(inside):
        rr, cc = np.nonzero(inside)
        cells = (rows[rr] * grid.columns + cols[cc]).tolist()
    else:
        # Footprint smaller than a cell but straddling cell edges.
        column, row = grid.column_row_of(qx.mean(), qy.mean())
        if int(column) == OUT_OF_BOUNDS:
            return 0
        cells = [(int(row) - 1) * grid.columns + int(column) - 1]

    for cell in cells:
        accumulator.add(cell, value)
    return len(cells)


def bin_footprints(
    grid: Grid,
    footprints: Footprints,
    method=AggregationMethod.MEAN,
    minimum_valid_value: float = 0.0,
    accumulator: CellAccumulator = None,
) -> tuple[CellAccumulator, np.ndarray]:
    """Accumulate footprints into the grid cells they overlap.

    Parameters
    ----------
    grid : Grid
        Target grid (horizontal cells only).
    footprints : Footprints
        Footprints to bin.
    method : AggregationMethod or str, optional
        MEAN (default) or WEIGHTED (area fraction weights).
    minimum_valid_value : float, optional
        Footprint values below this, and the missing value sentinel, are
        skipped.
    accumulator : CellAccumulator, optional
        Accumulator to add to, e.g. from earlier scans of the same period.
        A new one is created if not given.

    Returns
    -------
    CellAccumulator
        Accumulated (not yet averaged) cell state.
    np.ndarray
        `FootprintFlags` value of each footprint (GOOD if it was binned).

    """
    method = AggregationMethod.parse(method)
    if method is AggregationMethod.NEAREST:
        raise ValueError("Footprint binning supports only the MEAN and WEIGHTED methods.")
    weighted = method is AggregationMethod.WEIGHTED

    if accumulator is None:
        accumulator = CellAccumulator(grid, weighted=weighted)
    elif accumulator.weighted != weighted:
        raise ValueError(f"Accumulator weighted={accumulator.weighted} does not match method: {method.name}")

    flags = np.zeros(len(footprints), dtype=np.int64)
    if len(footprints) == 0:
        return accumulator, flags

    x, y = grid.projector.project(
        footprints.corner_longitudes[:, RING_ORDER], footprints.corner_latitudes[:, RING_ORDER]
    )
    x = np.asarray(x, dtype=float).reshape(-1, 4)
    y = np.asarray(y, dtype=float).reshape(-1, 4)
    valid = valid_value_mask(footprints.values, minimum_valid_value)
    west, east, south, north = grid.bounds
    binner = _bin_weighted if weighted else _bin_unweighted

    for ith in range(len(footprints)):
        if not valid[ith]:
            flags[ith] |= FootprintFlags.INVALID_VALUE
            continue

        quad = reorder_quadrilateral(x[ith], y[ith])
        if quad is None:
            logger.debug("Skipping degenerate footprint #%i: x=%s, y=%s", ith, x[ith], y[ith])
            flags[ith] |= FootprintFlags.INVALID_GEOMETRY
            continue
        qx, qy = quad

        xmin, xmax, ymin, ymax = qx.min(), qx.max(), qy.min(), qy.max()
        if xmax < west or xmin >= east or ymax < south or ymin >= north:
            flags[ith] |= FootprintFlags.OUT_OF_GRID
            continue

        added = binner(grid, accumulator, footprints.values[ith], qx, qy, *cell_range(grid, xmin, xmax, ymin, ymax))
        if not added:
            # Off grid unless some of the footprint's area lies on the grid.
            on_grid = clipped_area(qx, qy, west, south, east, north) > 0.0
            flags[ith] |= FootprintFlags.NO_CELLS if on_grid else FootprintFlags.OUT_OF_GRID

    if logger.isEnabledFor(logging.DEBUG):
        logger.debug(
            "Binned %i of %i footprints (invalid geometry=%i, off grid=%i, invalid value=%i, no cells=%i)"
            " into %i active cells.",
            np.count_nonzero(flags == FootprintFlags.GOOD),
            len(footprints),
            np.count_nonzero(flags & FootprintFlags.INVALID_GEOMETRY),
            np.count_nonzero(flags & FootprintFlags.OUT_OF_GRID),
            np.count_nonzero(flags & FootprintFlags.INVALID_VALUE),
            np.count_nonzero(flags & FootprintFlags.NO_CELLS),
            accumulator.active_cell_count,
        )
    return accumulator, flags
