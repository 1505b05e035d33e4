"""Exceptions raised by the regridding engine.

Expected data problems (points off the grid, invalid values, degenerate
footprints) are excluded and counted, not raised. These exceptions are for
the cases a caller must be able to tell apart.
"""


class GridbinError(Exception):
    """Base class for regridding failures."""


class InvalidGeometryError(GridbinError, ValueError):
    """Footprint corners do not form a usable quadrilateral."""


class EmptyResultError(GridbinError):
    """A regridding run produced no active cells in any timestep."""

    def __init__(self, message="No points were regridded onto the grid.", timesteps=0):
        super().__init__(message)
        self.timesteps = timesteps
