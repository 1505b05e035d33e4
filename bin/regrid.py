"""Regrid point or swath observations from a CSV file onto a grid.

Point CSV columns: timestamp, longitude, latitude, value and optionally
elevation, value2, weight, note. Swath CSV columns: timestamp, value and the
corners longitude_sw, latitude_sw, ..., longitude_ne, latitude_ne.

Examples
--------
% python bin/regrid.py points grids/conus12.json obs.csv -o regridded.csv \
    -t 20240701000000 -n 24 --hours_per_period 24

% python bin/regrid.py swath grids/conus12.json pixels.csv -o regridded.nc \
    -t 20240701000000 -n 24 -m weighted --units molecules/cm2

Exit status is 0 on success, 2 if nothing was regridded onto the grid and 1
on errors.
"""

import argparse
import logging

import pandas as pd

from gridbin.config import RegridConfig, load_grid
from gridbin.data_structures import Footprints, Observations
from gridbin.errors import EmptyResultError
from gridbin.output import write_series
from gridbin.pipeline import HourlyRegridder
from gridbin.utils import enable_logging

EXIT_NO_DATA = 2


def run(mode, grid_config, input_file, output_file, first_timestamp, hours, **options):
    """Regrid one input file and write the result."""
    logger = logging.getLogger(__name__)
    grid = load_grid(grid_config)
    config = RegridConfig(first_timestamp=first_timestamp, hours=hours, **options)
    regridder = HourlyRegridder(grid, config)

    table = pd.read_csv(input_file)
    logger.info("Read %i rows from: %s", len(table), input_file)

    if mode == "points":
        series = regridder.regrid_points(Observations.from_dataframe(table))
        write_series(
            series.require_data(), output_file, start_time=config.start_time, hours_per_timestep=config.hours_per_period
        )
    else:
        series = regridder.regrid_footprints(Footprints.from_dataframe(table))
        try:
            if series.total_points == 0:
                raise EmptyResultError(timesteps=len(series))
            write_series(series, output_file, start_time=config.start_time, hours_per_timestep=config.hours_per_period)
        finally:
            if hasattr(series, "close"):
                series.close()

    logger.debug(regridder.performance_summary())
    return output_file


def cmd_line_call():
    """Method to process command line arguments (`python <file>.py --help`)."""
    parser = argparse.ArgumentParser(description="Regrid point or swath observations onto a grid.")
    parser.add_argument("mode", choices=["points", "swath"], help="Type of the input observations.")
    parser.add_argument("grid_config", type=str, help="Grid definition file (json).")
    parser.add_argument("input_file", type=str, help="Input observations (csv).")
    parser.add_argument("-o", "--output_file", type=str, required=True, help="Output file (.csv or .nc).")
    parser.add_argument("-t", "--first_timestamp", type=int, required=True, help="Start of the run (YYYYMMDDHHMMSS).")
    parser.add_argument("-n", "--hours", type=int, required=True, help="Number of hours in the run.")
    parser.add_argument(
        "-m",
        "--method",
        type=str,
        default=argparse.SUPPRESS,
        help='Aggregation method: "mean" (default), "weighted" or "nearest" (points only).',
    )
    parser.add_argument(
        "-p",
        "--hours_per_period",
        type=int,
        default=argparse.SUPPRESS,
        help="Hours merged into each output timestep (default=1).",
    )
    parser.add_argument(
        "--minimum_valid_value",
        type=float,
        default=argparse.SUPPRESS,
        help="Ignore values below this (default depends on --units).",
    )
    parser.add_argument("--units", type=str, default=argparse.SUPPRESS, help="Units of the input values.")
    parser.add_argument(
        "--spill",
        action="store_true",
        default=argparse.SUPPRESS,
        help="Spill finished swath timesteps to a temporary file (default=False).",
    )
    parser.add_argument(
        "-l", "--log_file", type=str, default=argparse.SUPPRESS, help="File or directory to save logging output in."
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_const",
        const="debug",
        dest="log_level",
        default=argparse.SUPPRESS,
        help='Set log reporting level to "debug" (default="info").',
    )
    kwargs = vars(parser.parse_args())
    orig_kwargs = str(kwargs)

    log_level = kwargs.pop("log_level", "info")
    logger = enable_logging(log_level=log_level, log_file=kwargs.pop("log_file", False))

    logger.debug("Supplied arguments: %s", orig_kwargs)
    try:
        return run(**kwargs)
    except EmptyResultError as e:
        logger.warning("%s", e)
        parser.exit(status=EXIT_NO_DATA, message="No data regridded onto the grid.\n")
    except Exception:
        logging.exception("An exception occurred:")
        parser.exit(status=1, message="Script failed with errors! Exiting early...\n")


if __name__ == "__main__":
    cmd_line_call()
