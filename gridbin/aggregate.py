"""Reduce dense per-cell accumulators to means and sparse per-timestep output.

Binning writes into dense arrays sized to the whole grid (one entry per cell,
row-major). At the end of an aggregation period the sums are turned into means
in place and only the cells that received data are kept.
"""

from __future__ import annotations

import logging

import numpy as np

from .data_structures import SparseTimestepResult
from .grid import Grid
from .utils import log_return

logger = logging.getLogger(__name__)


def compute_cell_means(minimum_valid_value: float, counts: np.ndarray, weights, data: np.ndarray) -> int:
    """Convert per-cell sums to means in place.

    Parameters
    ----------
    minimum_valid_value : float
        Cells whose mean is below this value are deactivated (count set to 0).
    counts : np.ndarray
        Number of inputs accumulated per cell. Modified in place.
    weights : np.ndarray or None
        Summed weights per cell. When given, means are `data / weights`,
        otherwise `data / counts`.
    data : np.ndarray
        Summed (optionally weighted) values per cell. Modified in place.

    Returns
    -------
    int
        Number of active cells (count > 0) after the update.

    """
    if counts.shape != data.shape or (weights is not None and weights.shape != data.shape):
        raise ValueError("Cell counts, weights and data must all have the same shape.")

    active = counts > 0
    if weights is not None:
        zero_weight = active & ~(weights > 0)
        if np.any(zero_weight):
            logger.debug("Deactivating %i cells with zero total weight.", np.count_nonzero(zero_weight))
            counts[zero_weight] = 0
            active &= ~zero_weight
        data[active] /= weights[active]
    else:
        data[active] /= counts[active]

    below = active & (data < minimum_valid_value)
    if np.any(below):
        logger.debug("Deactivating %i cells with means below: %s", np.count_nonzero(below), minimum_valid_value)
        counts[below] = 0
        active &= ~below

    return int(np.count_nonzero(active))


@log_return(max_rows=5)
def compact_cells(grid: Grid, counts: np.ndarray, data: np.ndarray) -> SparseTimestepResult:
    """Keep only the active cells of dense arrays, in row-major order.

    Parameters
    ----------
    grid : Grid
        Grid the dense arrays belong to. Arrays are either sized
        `rows * columns` or `layers * rows * columns` (layer-major).
    counts : np.ndarray
        Per-cell counts; cells with a count of zero are skipped.
    data : np.ndarray
        Per-cell means (see `compute_cell_means`).

    Returns
    -------
    SparseTimestepResult
        Active cells with their unprojected cell-center coordinates.

    """
    plane = grid.rows * grid.columns
    if counts.size == plane:
        layered = False
    elif counts.size == plane * grid.layers:
        layered = grid.layers > 1
    else:
        raise ValueError(f"Cell arrays of size {counts.size} do not match the grid: {grid!r}")

    index = np.flatnonzero(counts > 0)
    columns = index % grid.columns + 1
    rows = (index // grid.columns) % grid.rows + 1
    lon, lat = grid.cell_center_lonlat(columns, rows)
    layers = index // plane + 1 if layered else None

    return SparseTimestepResult(
        columns=columns,
        rows=rows,
        longitudes=lon,
        latitudes=lat,
        values=data[index],
        counts=counts[index],
        layers=layers,
        elevations=grid.layer_center_elevations()[layers - 1] if layered else None,
    )


class CellAccumulator:
    """Dense per-cell counts, weights and sums for one aggregation period.

    Parameters
    ----------
    grid : Grid
        Grid whose (2D) cells are accumulated.
    weighted : bool, optional
        Track summed weights as well as counts. Default=False.

    """

    def __init__(self, grid: Grid, weighted: bool = False):
        self.grid = grid
        self.weighted = weighted
        size = grid.rows * grid.columns
        self.counts = np.zeros(size, dtype=np.int64)
        self.weights = np.zeros(size, dtype=float) if weighted else None
        self.sums = np.zeros(size, dtype=float)

    def __repr__(self):
        return f"{self.__class__.__name__}(active={self.active_cell_count}, weighted={self.weighted})"

    @property
    def active_cell_count(self) -> int:
        return int(np.count_nonzero(self.counts))

    def add(self, cell: int, value: float, weight: float = 1.0) -> None:
        """Accumulate one (weighted) value into a 0-based row-major cell."""
        self.counts[cell] += 1
        self.sums[cell] += weight * value
        if self.weights is not None:
            self.weights[cell] += weight

    def reset(self) -> None:
        self.counts[:] = 0
        self.sums[:] = 0.0
        if self.weights is not None:
            self.weights[:] = 0.0

    def finalize(self, minimum_valid_value: float) -> SparseTimestepResult:
        """Compute means, compact the active cells and reset for the next period."""
        active = compute_cell_means(minimum_valid_value, self.counts, self.weights, self.sums)
        result = compact_cells(self.grid, self.counts, self.sums)
        logger.debug("Finalized %i active cells.", active)
        self.reset()
        return result
