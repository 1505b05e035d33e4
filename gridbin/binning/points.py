"""Bin point observations into grid cells.

Each observation falls in exactly one cell: the cell containing its projected
location (and, for layered grids, the layer containing its elevation). The
observations of a cell are reduced with one of the `AggregationMethod`s and
the result is reported at the unprojected cell center.
"""

from __future__ import annotations

import logging

import numpy as np

from ..constants import (
    MISSING_VALUE,
    OUT_OF_BOUNDS,
    RADIUS_SQUARED_TOLERANCE,
    REGRIDDED_NOTE_LENGTH,
    AggregationMethod,
)
from ..data_structures import Observations, SparseTimestepResult
from ..grid import Grid
from ..utils import log_return

logger = logging.getLogger(__name__)


def valid_value_mask(values, minimum_valid_value: float) -> np.ndarray:
    """True for finite values >= the minimum that are not the missing sentinel."""
    values = np.asarray(values, dtype=float)
    with np.errstate(invalid="ignore"):
        return np.isfinite(values) & (values >= minimum_valid_value) & (values != MISSING_VALUE)


def inverse_distance_weights(grid: Grid, x, y) -> np.ndarray:
    """Weights of projected points by inverse squared distance from their cell centers.

    Distances are normalized by the cell size (so a cell corner is at sqrt(2))
    and floored at `RADIUS_SQUARED_TOLERANCE` to keep points at a center finite.
    """
    x_offset, y_offset = grid.center_offsets(x, y)
    return 1.0 / np.maximum(x_offset**2 + y_offset**2, RADIUS_SQUARED_TOLERANCE)


def _join_notes(notes: np.ndarray, inverse: np.ndarray, ncells: int) -> np.ndarray:
    joined = [[] for _ in range(ncells)]
    for cell, note in zip(inverse.tolist(), notes.tolist()):
        if note is not None and note == note and str(note) != "":
            joined[cell].append(str(note))
    return np.array(["; ".join(items)[:REGRIDDED_NOTE_LENGTH] for items in joined], dtype=object)


@log_return(max_rows=5)
def regrid_points(
    grid: Grid,
    observations: Observations,
    method=AggregationMethod.MEAN,
    minimum_valid_value: float = 0.0,
) -> SparseTimestepResult:
    """Project, bin and aggregate point observations onto a grid.

    Parameters
    ----------
    grid : Grid
        Target grid.
    observations : Observations
        Observations of one timestep.
    method : AggregationMethod or str, optional
        MEAN (default) averages the values of a cell. WEIGHTED averages with
        the per-observation weights (1 when not given). NEAREST keeps the value
        of the observation nearest the cell center.
    minimum_valid_value : float, optional
        Values below this, and the missing value sentinel, are ignored.

    Returns
    -------
    SparseTimestepResult
        One entry per cell that received a valid observation, ordered by
        (layer, row, column).

    """
    method = AggregationMethod.parse(method)
    layered = grid.has_levels and observations.elevations is not None
    has_value2 = observations.values2 is not None
    has_notes = observations.notes is not None

    if len(observations) == 0:
        logger.debug("No observations to regrid.")
        return SparseTimestepResult.empty(layered=layered, has_value2=has_value2, has_notes=has_notes)

    x, y = grid.projector.project(observations.longitudes, observations.latitudes)
    x = np.atleast_1d(np.asarray(x, dtype=float))
    y = np.atleast_1d(np.asarray(y, dtype=float))
    columns, rows = grid.column_row_of(x, y)
    keep = columns != OUT_OF_BOUNDS
    n_off_grid = int(np.count_nonzero(~keep))

    if layered:
        layers = grid.layer_of(observations.elevations)
        keep &= layers != OUT_OF_BOUNDS
    else:
        layers = np.ones_like(columns)

    valid = valid_value_mask(observations.values, minimum_valid_value)
    if has_value2:
        valid &= np.isfinite(observations.values2)
    n_invalid = int(np.count_nonzero(keep & ~valid))
    keep &= valid

    weights = None
    if method is AggregationMethod.WEIGHTED:
        weights = np.ones(len(observations)) if observations.weights is None else observations.weights
        with np.errstate(invalid="ignore"):
            keep &= np.isfinite(weights) & (weights >= 0)

    logger.debug(
        "Regridding %i of %i observations (%i off grid, %i invalid) with method: %s",
        np.count_nonzero(keep),
        len(observations),
        n_off_grid,
        n_invalid,
        method.name,
    )
    if not np.any(keep):
        return SparseTimestepResult.empty(layered=layered, has_value2=has_value2, has_notes=has_notes)

    index = np.flatnonzero(keep)
    flat = ((layers[index] - 1) * grid.rows + (rows[index] - 1)) * grid.columns + (columns[index] - 1)
    cells, inverse = np.unique(flat, return_inverse=True)
    inverse = inverse.ravel()
    ncells = cells.size
    values = observations.values[index]
    values2 = observations.values2[index] if has_value2 else None
    counts = np.bincount(inverse, minlength=ncells)

    if method is AggregationMethod.MEAN:
        means = np.bincount(inverse, weights=values, minlength=ncells) / counts
        means2 = None if values2 is None else np.bincount(inverse, weights=values2, minlength=ncells) / counts

    elif method is AggregationMethod.WEIGHTED:
        w = weights[index]
        wsum = np.bincount(inverse, weights=w, minlength=ncells)
        with np.errstate(divide="ignore", invalid="ignore"):
            means = np.bincount(inverse, weights=values * w, minlength=ncells) / wsum
            means2 = None if values2 is None else np.bincount(inverse, weights=values2 * w, minlength=ncells) / wsum

    else:
        x_offset, y_offset = grid.center_offsets(x[index], y[index])
        radius2 = np.maximum(x_offset**2 + y_offset**2, RADIUS_SQUARED_TOLERANCE)
        order = np.lexsort((np.arange(index.size), radius2, inverse))
        first = order[np.r_[True, np.diff(inverse[order]) != 0]]
        means = values[first]
        means2 = None if values2 is None else values2[first]

    # Cells whose weights sum to zero have no usable mean.
    usable = np.isfinite(means)
    if not np.all(usable):
        logger.debug("Dropping %i cells with zero total weight.", np.count_nonzero(~usable))

    out_layers = cells // (grid.rows * grid.columns) + 1
    out_rows = (cells // grid.columns) % grid.rows + 1
    out_columns = cells % grid.columns + 1
    lon, lat = grid.cell_center_lonlat(out_columns, out_rows)

    notes = _join_notes(observations.notes[index], inverse, ncells) if has_notes else None
    elevations = grid.layer_center_elevations()[out_layers - 1] if layered else None

    result = SparseTimestepResult(
        columns=out_columns[usable],
        rows=out_rows[usable],
        longitudes=lon[usable],
        latitudes=lat[usable],
        values=means[usable],
        counts=counts[usable],
        layers=out_layers[usable] if layered else None,
        elevations=elevations[usable] if layered else None,
        values2=means2[usable] if has_value2 else None,
        notes=notes[usable] if has_notes else None,
    )
    logger.debug("Regridded %i observations into %i cells.", index.size, len(result))
    return result
