"""Hourly regridding drivers.

Inputs of a run are split into hours by their timestamps. Point observations
are regridded hour by hour and the hourly results are merged into periods of
`hours_per_period` hours. Swath footprints are instead accumulated across all
hours of a period and averaged once at the end of each period.
"""

from __future__ import annotations

import logging

import numpy as np
import pandas as pd

from .aggregate import CellAccumulator
from .binning.points import regrid_points
from .binning.polygons import bin_footprints
from .config import RegridConfig, parse_timestamps
from .constants import AggregationMethod, FootprintFlags
from .data_structures import AggregatedSeries, Footprints, Observations
from .grid import Grid
from .spill import SpillFile
from .temporal import aggregate
from .utils import format_performance, track_performance

logger = logging.getLogger(__name__)


def hour_index(timestamps, start_time: pd.Timestamp) -> np.ndarray:
    """Whole hours from the start of the run to each YYYYMMDDHHMMSS timestamp."""
    timestamps = np.asarray(timestamps, dtype=np.int64)
    if timestamps.size == 0:
        return np.empty(0, dtype=np.int64)
    times = parse_timestamps(timestamps)
    return ((times - start_time) // pd.Timedelta(hours=1)).to_numpy(dtype=np.int64)


class HourlyRegridder:
    """Regrids a run of hourly inputs onto one grid.

    Parameters
    ----------
    grid : Grid
        Target grid.
    config : RegridConfig
        Run options (start, hours, method, minimum valid value, period).

    """

    def __init__(self, grid: Grid, config: RegridConfig):
        self.grid = grid
        self.config = config

    def _hours_of(self, timestamps) -> np.ndarray:
        hours = hour_index(timestamps, self.config.start_time)
        outside = (hours < 0) | (hours >= self.config.hours)
        if np.any(outside):
            logger.info("Ignoring %i inputs outside of the %i hour run.", np.count_nonzero(outside), self.config.hours)
        return hours

    @track_performance
    def regrid_points(self, observations: Observations) -> AggregatedSeries:
        """Regrid observations per hour, then merge the hours into periods.

        Returns
        -------
        AggregatedSeries
            One timestep per period (`config.output_timesteps`).

        """
        config = self.config
        hours = self._hours_of(observations.timestamps)

        hourly = AggregatedSeries()
        for hour in range(config.hours):
            hourly.append(
                regrid_points(
                    self.grid,
                    observations.subset(hours == hour),
                    method=config.method,
                    minimum_valid_value=config.minimum_valid_value,
                )
            )

        series = hourly if config.hours_per_period == 1 else aggregate(hourly, config.hours_per_period)
        logger.info(
            "Regridded %i observations into %i timesteps with %i total points.",
            len(observations),
            len(series),
            series.total_points,
        )
        return series

    @track_performance
    def regrid_footprints(self, footprints: Footprints):
        """Accumulate footprints over each period, then average and compact.

        Returns
        -------
        AggregatedSeries or SpillFile
            One timestep per period. When `config.spill` is set the finished
            timesteps are written to a `SpillFile`, which is returned open;
            the caller closes it.

        """
        config = self.config
        if config.method is AggregationMethod.NEAREST:
            raise ValueError("Footprint regridding supports only the MEAN and WEIGHTED methods.")
        hours = self._hours_of(footprints.timestamps)

        if config.spill:
            output = SpillFile(None if config.spill is True else config.spill)
        else:
            output = AggregatedSeries()

        accumulator = CellAccumulator(self.grid, weighted=config.method is AggregationMethod.WEIGHTED)
        tally = {flag: 0 for flag in FootprintFlags if flag}
        try:
            for hour in range(config.hours):
                _, flags = bin_footprints(
                    self.grid,
                    footprints.subset(hours == hour),
                    method=config.method,
                    minimum_valid_value=config.minimum_valid_value,
                    accumulator=accumulator,
                )
                for flag in tally:
                    tally[flag] += int(np.count_nonzero(flags & flag))

                if (hour + 1) % config.hours_per_period == 0 or hour + 1 == config.hours:
                    output.append(accumulator.finalize(config.minimum_valid_value))
        except BaseException:
            if isinstance(output, SpillFile):
                logger.error("Regridding failed, closing spill file: %s", output.path)
                output.close()
            raise

        skipped = ", ".join(f"{flag.name.lower()}={count}" for flag, count in tally.items())
        logger.info(
            "Regridded %i footprints into %i timesteps with %i total points (skipped: %s).",
            len(footprints),
            len(output),
            output.total_points,
            skipped,
        )
        return output

    def performance_summary(self) -> str:
        return format_performance(self)


def regrid_points_hourly(grid: Grid, observations: Observations, config: RegridConfig) -> AggregatedSeries:
    """Shortcut for `HourlyRegridder(grid, config).regrid_points(observations)`."""
    return HourlyRegridder(grid, config).regrid_points(observations)


def regrid_footprints_hourly(grid: Grid, footprints: Footprints, config: RegridConfig):
    """Shortcut for `HourlyRegridder(grid, config).regrid_footprints(footprints)`."""
    return HourlyRegridder(grid, config).regrid_footprints(footprints)
