"""Write regridded series to files.

Each output format is one writer function; `WRITERS` maps the format to its
writer and `write_series` dispatches on it.
"""

from __future__ import annotations

import logging
from enum import Enum, unique
from pathlib import Path

import numpy as np
import pandas as pd
import xarray as xr

from .data_structures import AggregatedSeries

logger = logging.getLogger(__name__)


@unique
class OutputFormat(Enum):
    CSV = "csv"
    NETCDF = "netcdf"

    @classmethod
    def from_path(cls, path) -> OutputFormat:
        suffix = Path(path).suffix.lower()
        if suffix in (".nc", ".nc4", ".netcdf"):
            return cls.NETCDF
        return cls.CSV


def _as_series(series) -> AggregatedSeries:
    return series if isinstance(series, AggregatedSeries) else AggregatedSeries(list(series))


def write_csv(series, path: Path, start_time: pd.Timestamp = None, hours_per_timestep: int = 1) -> Path:
    """One row per regridded point, with a `timestep` (and optional `time`) column."""
    table = _as_series(series).to_dataframe()
    if start_time is not None:
        table.insert(1, "time", start_time + pd.to_timedelta(table["timestep"] * hours_per_timestep, unit="h"))
    table.to_csv(path, index=False)
    return path


def write_netcdf(series, path: Path, start_time: pd.Timestamp = None, hours_per_timestep: int = 1) -> Path:
    """Points along a `point` dimension, with the point count of each timestep along `period`."""
    series = _as_series(series)
    table = series.to_dataframe().drop(columns=["note"], errors="ignore")
    dataset = xr.Dataset.from_dataframe(table.rename_axis("point"))
    dataset["points"] = xr.DataArray(series.points_per_timestep, dims=["period"])
    if start_time is not None:
        dataset["time"] = xr.DataArray(
            start_time + pd.to_timedelta(np.arange(len(series)) * hours_per_timestep, unit="h"), dims=["period"]
        )
    dataset.attrs["total_points"] = series.total_points
    dataset.to_netcdf(path, engine="scipy")
    return path


WRITERS = {
    OutputFormat.CSV: write_csv,
    OutputFormat.NETCDF: write_netcdf,
}


def write_series(series, path, fmt: OutputFormat = None, **kwargs) -> Path:
    """Write a series of timesteps with the writer of `fmt` (default: from the file suffix)."""
    path = Path(path)
    fmt = OutputFormat.from_path(path) if fmt is None else OutputFormat(fmt)
    WRITERS[fmt](series, path, **kwargs)
    logger.info("Wrote %s output: %s", fmt.name, path)
    return path
