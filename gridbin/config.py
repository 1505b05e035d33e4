"""Grid definition files and regridding run options.

A grid definition is a JSON file with two sections::

    {
        "projection": {"type": "lambert", "major_semiaxis": 6370997.0, ...},
        "grid": {"columns": 268, "rows": 259, "west": -420000.0, ...}
    }

The `projection` section holds the keyword arguments of the projector class
named by `type` (see `gridbin.projection.PROJECTOR_TYPES`). The `grid`
section holds the horizontal geometry and, optionally, the vertical levels.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import pandas as pd

from .constants import AggregationMethod, minimum_valid_value_for_units
from .grid import Grid, GridSpec
from .projection import projector_from_config

logger = logging.getLogger(__name__)

GRID_REQUIRED_KEYS = ("columns", "rows", "west", "south", "cell_width", "cell_height")
GRID_OPTIONAL_KEYS = ("levels", "vertical_type", "top")


def load_config(config_path) -> dict[str, Any]:
    """Read a JSON configuration file.

    Args:
        config_path: Path to configuration file

    Returns:
        Parsed configuration

    Raises:
        FileNotFoundError: If file doesn't exist
        ValueError: If JSON is invalid
    """
    config_path = Path(config_path)
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    try:
        with open(config_path) as f:
            return json.load(f)
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid JSON in {config_path}: {e}") from e


def grid_from_config(config_data: dict[str, Any]) -> Grid:
    """Create a grid from a parsed grid definition.

    Args:
        config_data: Mapping with `projection` and `grid` sections

    Returns:
        Grid

    Raises:
        KeyError: If a section or a required grid key is missing
        ValueError: If a value is invalid
    """
    for section in ("projection", "grid"):
        if section not in config_data:
            raise KeyError(f"Missing required '{section}' section in grid definition")

    grid_config = dict(config_data["grid"])
    missing = [key for key in GRID_REQUIRED_KEYS if key not in grid_config]
    if missing:
        raise KeyError(f"Missing required keys in 'grid' section: {missing}")
    unknown = set(grid_config) - set(GRID_REQUIRED_KEYS) - set(GRID_OPTIONAL_KEYS)
    if unknown:
        raise ValueError(f"Unknown keys in 'grid' section: {sorted(unknown)}")

    projector = projector_from_config(config_data["projection"])
    grid = Grid(GridSpec(projector=projector, **grid_config))
    logger.info("Loaded grid: %r", grid)
    return grid


def load_grid(config_path) -> Grid:
    """Read a grid definition file."""
    return grid_from_config(load_config(config_path))


@dataclass
class RegridConfig:
    """Options of one regridding run.

    Parameters
    ----------
    first_timestamp : int
        Start of the run as YYYYMMDDHHMMSS (minutes and seconds are ignored).
    hours : int
        Number of hours in the run.
    method : AggregationMethod or str, optional
        Aggregation method. Default is MEAN.
    minimum_valid_value : float, optional
        Values below this are ignored. Default is derived from `units`.
    units : str, optional
        Units of the data, used for the default minimum valid value.
    hours_per_period : int, optional
        Hours merged into each output timestep (e.g. 24 for daily output).
        Default=1.
    spill : bool or str, optional
        Spill finished swath timesteps to a temporary file (True) or to the
        given path. Default=False.

    """

    first_timestamp: int
    hours: int
    method: AggregationMethod = AggregationMethod.MEAN
    minimum_valid_value: float = None
    units: str = None
    hours_per_period: int = 1
    spill: bool | str = False

    def __post_init__(self) -> None:
        self.method = AggregationMethod.parse(self.method)
        if int(self.hours) != self.hours or self.hours < 1:
            raise ValueError(f"Run hours must be a positive integer, not: {self.hours}")
        if int(self.hours_per_period) != self.hours_per_period or self.hours_per_period < 1:
            raise ValueError(f"Hours per period must be a positive integer, not: {self.hours_per_period}")
        self.hours = int(self.hours)
        self.hours_per_period = int(self.hours_per_period)
        if self.minimum_valid_value is None:
            self.minimum_valid_value = minimum_valid_value_for_units(self.units)
        self.start_time = parse_timestamps(self.first_timestamp).floor("h")

    @property
    def output_timesteps(self) -> int:
        return -(-self.hours // self.hours_per_period)

    @classmethod
    def from_dict(cls, config_data: dict[str, Any]) -> RegridConfig:
        try:
            return cls(**config_data)
        except TypeError as e:
            raise ValueError(f"Invalid regrid options: {e}") from e


def parse_timestamps(timestamps):
    """Parse YYYYMMDDHHMMSS integers to pandas timestamps."""
    if pd.api.types.is_scalar(timestamps):
        return pd.to_datetime(str(int(timestamps)), format="%Y%m%d%H%M%S")
    return pd.to_datetime(pd.Series(timestamps).astype("int64").astype(str), format="%Y%m%d%H%M%S")
