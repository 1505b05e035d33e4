"""Merge consecutive regridded timesteps into coarser aggregation periods.

For example, 24 hourly results merged with `hours_per_period=24` give one
daily result. Within a period, every entry of a cell (column, row[, layer])
counts once towards that cell's mean, whatever its own count.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

import numpy as np

from .data_structures import AggregatedSeries, SparseTimestepResult

logger = logging.getLogger(__name__)


def _concat(steps: Sequence[SparseTimestepResult], name: str):
    arrays = [getattr(step, name) for step in steps]
    if any(arr is None for arr in arrays):
        return None
    return np.concatenate(arrays)


def merge_timesteps(steps: Sequence[SparseTimestepResult]) -> SparseTimestepResult:
    """Merge the timesteps of one aggregation period into a single result.

    Parameters
    ----------
    steps : sequence of SparseTimestepResult
        Consecutive timesteps. Optional fields (layers, elevations, values2,
        notes) are kept only if every timestep has them.

    Returns
    -------
    SparseTimestepResult
        One entry per distinct cell, in order of first occurrence. The value
        is the mean of the cell's entries, the count is the sum of their
        counts, and the coordinates, elevation and note come from the first
        entry.

    """
    if not steps:
        return SparseTimestepResult.empty()
    layers = _concat(steps, "layers")
    values2 = _concat(steps, "values2")
    notes = _concat(steps, "notes")
    elevations = _concat(steps, "elevations")

    columns = _concat(steps, "columns")
    if columns is None or columns.size == 0:
        return SparseTimestepResult.empty(
            layered=layers is not None and elevations is not None,
            has_value2=values2 is not None,
            has_notes=notes is not None,
        )

    rows = _concat(steps, "rows")
    keys = np.stack([columns, rows] if layers is None else [columns, rows, layers], axis=1)
    _, first, inverse = np.unique(keys, axis=0, return_index=True, return_inverse=True)
    inverse = inverse.ravel()
    entries = np.bincount(inverse)

    values = _concat(steps, "values")
    means = np.bincount(inverse, weights=values) / entries
    counts = np.bincount(inverse, weights=_concat(steps, "counts")).astype(np.int64)
    means2 = None if values2 is None else np.bincount(inverse, weights=values2) / entries

    order = np.argsort(first, kind="stable")
    first = first[order]

    return SparseTimestepResult(
        columns=columns[first],
        rows=rows[first],
        longitudes=_concat(steps, "longitudes")[first],
        latitudes=_concat(steps, "latitudes")[first],
        values=means[order],
        counts=counts[order],
        layers=None if layers is None else layers[first],
        elevations=None if elevations is None else elevations[first],
        values2=None if means2 is None else means2[order],
        notes=None if notes is None else notes[first],
    )


def aggregate(series, hours_per_period: int) -> AggregatedSeries:
    """Group consecutive timesteps into periods and merge each period.

    Parameters
    ----------
    series : AggregatedSeries or sequence of SparseTimestepResult
        Single-hour (or other unit) timesteps, in time order.
    hours_per_period : int
        Number of input timesteps per output timestep. The last period may be
        shorter if the input is not an exact multiple.

    Returns
    -------
    AggregatedSeries
        `ceil(len(series) / hours_per_period)` merged timesteps. Periods with
        no data are kept as empty timesteps.

    """
    if int(hours_per_period) != hours_per_period or hours_per_period < 1:
        raise ValueError(f"Hours per period must be a positive integer, not: {hours_per_period}")
    hours_per_period = int(hours_per_period)
    steps = list(series)

    merged = AggregatedSeries()
    for start in range(0, len(steps), hours_per_period):
        merged.append(merge_timesteps(steps[start : start + hours_per_period]))

    logger.debug(
        "Aggregated %i timesteps (%i points) by %i into %i timesteps (%i points).",
        len(steps),
        sum(len(step) for step in steps),
        hours_per_period,
        len(merged),
        merged.total_points,
    )
    return merged
