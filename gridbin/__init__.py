"""Regrid geolocated point and swath observations onto map-projected grids,
and aggregate the results over time.
"""

__version__ = "0.1.0"

from . import aggregate, binning, config, constants, data_structures, errors, grid, output, pipeline, projection
from . import spill, temporal, utils

__all__ = [
    "aggregate",
    "binning",
    "config",
    "constants",
    "data_structures",
    "errors",
    "grid",
    "output",
    "pipeline",
    "projection",
    "spill",
    "temporal",
    "utils",
]
