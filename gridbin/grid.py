"""Regular map-projected grid geometry.

Cells are addressed with 1-based (column, row[, layer]) indices. Columns grow
eastward from the west edge and rows northward from the south edge. The
optional vertical axis is given by level boundaries (`layers + 1` values) in
the grid's vertical coordinate, which is converted to meters above mean sea
level before looking up the layer of an elevation.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import numpy as np

from . import constants as c
from .constants import OUT_OF_BOUNDS, VerticalGridType
from .projection import Projector

logger = logging.getLogger(__name__)


# ============================================================================
# Vertical coordinate conversions
# ============================================================================


def pressure_at_sigma_level(sigma, pressure_at_top_mb):
    """Pressure (millibars) at a sigma level (Vis5d formula)."""
    return pressure_at_top_mb + np.asarray(sigma, dtype=float) * (c.SURFACE_PRESSURE_MB - pressure_at_top_mb)


def height_at_pressure(pressure_mb):
    """Height (meters) of a pressure (millibars) in the standard atmosphere."""
    pressure_mb = np.where(np.asarray(pressure_mb, dtype=float) == 0.0, 1e-10, pressure_mb)
    return c.PRESSURE_TO_HEIGHT_SCALE_M * np.log(pressure_mb / c.SURFACE_PRESSURE_MB)


def elevations_at_sigma_pressures(sigma_levels, top_pressure, surface_elevation=0.0):
    """Elevations (meters above MSL) at sigma-pressure levels using the MM5 formula.

    Parameters
    ----------
    sigma_levels : array-like
        Decreasing sigma-pressure values in [0, 1].
    top_pressure : float
        Pressure at the top of the model, in pascals.
    surface_elevation : float, optional
        Terrain height in meters above mean sea level. Default=0.

    Returns
    -------
    np.ndarray
        Increasing elevations, one per level.

    """
    sigma = np.asarray(sigma_levels, dtype=float)
    h0s = c.MM5_GAS_CONSTANT * c.MM5_SURFACE_TEMPERATURE / c.MM5_GRAVITY
    a_over_t0s = c.MM5_LAPSE_RATE / c.MM5_SURFACE_TEMPERATURE
    two_zs = 2.0 * surface_elevation
    sqrt_factor = np.sqrt(1.0 - a_over_t0s / h0s * two_zs)
    q_factor = (top_pressure / c.MM5_SURFACE_PRESSURE) * np.exp(two_zs / h0s / sqrt_factor)
    ln_q0_star = np.log(sigma + (1.0 - sigma) * q_factor)
    return surface_elevation - h0s * ln_q0_star * (0.5 * a_over_t0s * ln_q0_star + sqrt_factor)


# ============================================================================
# Grid
# ============================================================================


@dataclass
class GridSpec:
    """Grid definition: projection, horizontal geometry and vertical levels.

    Parameters
    ----------
    projector : Projector
        Projection of the grid plane.
    west, south : float
        Projected coordinates of the grid's west and south edges.
    cell_width, cell_height : float
        Projected size of each cell, > 0.
    columns, rows : int
        Grid dimensions, >= 1.
    levels : array-like, optional
        Monotonic level boundaries (layers + 1 values) in the vertical
        coordinate given by `vertical_type`.
    vertical_type : VerticalGridType or str, optional
        Vertical coordinate of `levels`. Default is hydrostatic sigma-pressure.
    top : float, optional
        Top-of-atmosphere parameter: pressure in pascals for sigma-pressure
        grids or height in meters for sigma-z grids. Default=10000 Pa.

    """

    projector: Projector
    west: float
    south: float
    cell_width: float
    cell_height: float
    columns: int
    rows: int
    levels: np.ndarray | None = None
    vertical_type: VerticalGridType = VerticalGridType.SIGMA_P_HYDROSTATIC
    top: float = 10000.0

    def __post_init__(self) -> None:
        if not self.cell_width > 0 or not self.cell_height > 0:
            raise ValueError(f"Cell width and height must be positive, not [{self.cell_width}, {self.cell_height}]")
        if int(self.columns) != self.columns or int(self.rows) != self.rows or self.columns < 1 or self.rows < 1:
            raise ValueError(f"Grid columns and rows must be integers >= 1, not [{self.columns}, {self.rows}]")
        self.columns = int(self.columns)
        self.rows = int(self.rows)
        self.vertical_type = VerticalGridType(self.vertical_type)

        if self.levels is not None:
            self.levels = np.asarray(self.levels, dtype=float)
            if self.levels.ndim != 1 or self.levels.size < 2:
                raise ValueError("Grid levels must be a 1D array of at least 2 boundaries.")
            steps = np.diff(self.levels)
            if not (np.all(steps > 0) or np.all(steps < 0)):
                raise ValueError("Grid levels must be strictly monotonic.")
            if not self.top > 0:
                raise ValueError(f"Grid top must be positive, not [{self.top}]")


class Grid:
    """Maps projected coordinates and elevations to grid cells."""

    def __init__(self, spec: GridSpec):
        self.spec = spec
        self._centers = None
        self._sea_level_elevations = None

        if spec.levels is not None:
            z = self.level_elevations()
            if not np.all(np.diff(z) > 0):
                raise ValueError(f"Grid levels do not convert to increasing elevations: {z}")

    def __repr__(self):
        return (
            f"{self.__class__.__name__}({self.columns}x{self.rows}x{self.layers}, west={self.spec.west},"
            f" south={self.spec.south}, cell={self.spec.cell_width}x{self.spec.cell_height},"
            f" projector={self.projector!r})"
        )

    @property
    def projector(self) -> Projector:
        return self.spec.projector

    @property
    def columns(self) -> int:
        return self.spec.columns

    @property
    def rows(self) -> int:
        return self.spec.rows

    @property
    def layers(self) -> int:
        return 1 if self.spec.levels is None else self.spec.levels.size - 1

    @property
    def has_levels(self) -> bool:
        return self.spec.levels is not None

    @property
    def cell_count(self) -> int:
        return self.columns * self.rows * self.layers

    @property
    def bounds(self) -> tuple[float, float, float, float]:
        """Projected (west, east, south, north) edges."""
        spec = self.spec
        return (
            spec.west,
            spec.west + spec.columns * spec.cell_width,
            spec.south,
            spec.south + spec.rows * spec.cell_height,
        )

    # ------------------------------------------------------------------
    # Horizontal
    # ------------------------------------------------------------------

    def column_row_of(self, x, y) -> tuple[np.ndarray, np.ndarray]:
        """1-based column and row of projected points.

        Points outside of the grid get `OUT_OF_BOUNDS` as both column and row.
        The west and south edges belong to the grid, the east and north edges
        do not.
        """
        x = np.asarray(x, dtype=float)
        y = np.asarray(y, dtype=float)
        with np.errstate(invalid="ignore"):
            col0 = np.floor((x - self.spec.west) / self.spec.cell_width)
            row0 = np.floor((y - self.spec.south) / self.spec.cell_height)
            inside = (col0 >= 0) & (col0 < self.columns) & (row0 >= 0) & (row0 < self.rows)
        columns = np.where(inside, col0 + 1, OUT_OF_BOUNDS).astype(np.int64)
        rows = np.where(inside, row0 + 1, OUT_OF_BOUNDS).astype(np.int64)
        return columns, rows

    def center_offsets(self, x, y) -> tuple[np.ndarray, np.ndarray]:
        """Normalized offsets, in [-1, 1], of projected points from their cell centers."""
        fx = (np.asarray(x, dtype=float) - self.spec.west) / self.spec.cell_width
        fy = (np.asarray(y, dtype=float) - self.spec.south) / self.spec.cell_height
        return 2.0 * (fx - np.floor(fx) - 0.5), 2.0 * (fy - np.floor(fy) - 0.5)

    def cell_centers(self) -> tuple[np.ndarray, np.ndarray]:
        """Unprojected lon/lat of every cell center, shape (rows, columns). Cached."""
        if self._centers is None:
            spec = self.spec
            xc = spec.west + (np.arange(spec.columns) + 0.5) * spec.cell_width
            yc = spec.south + (np.arange(spec.rows) + 0.5) * spec.cell_height
            xx, yy = np.meshgrid(xc, yc)
            lon, lat = self.projector.unproject(xx, yy)
            self._centers = np.asarray(lon, dtype=float), np.asarray(lat, dtype=float)
            logger.debug("Computed %i cell centers for: %r", xx.size, self)
        return self._centers

    def cell_center_lonlat(self, columns, rows) -> tuple[np.ndarray, np.ndarray]:
        """Unprojected cell-center lon/lat of 1-based columns/rows."""
        lon, lat = self.cell_centers()
        index = (np.asarray(rows, dtype=np.int64) - 1, np.asarray(columns, dtype=np.int64) - 1)
        return lon[index], lat[index]

    # ------------------------------------------------------------------
    # Vertical
    # ------------------------------------------------------------------

    def level_elevations(self, surface_elevation: float = 0.0) -> np.ndarray:
        """Level boundaries converted to meters above mean sea level.

        Parameters
        ----------
        surface_elevation : float, optional
            Terrain height (m above MSL) under the point(s). Only used by
            terrain following vertical coordinates. Default=0.

        Returns
        -------
        np.ndarray
            Increasing elevations of the `layers + 1` level boundaries.

        """
        if not self.has_levels:
            raise ValueError("Grid has no vertical levels.")
        key = float(surface_elevation)
        # Only the default (sea level) surface is cached.
        if key == 0.0 and self._sea_level_elevations is not None:
            return self._sea_level_elevations

        levels = self.spec.levels
        top = self.spec.top
        vtype = self.spec.vertical_type
        if vtype is VerticalGridType.SIGMA_P_HYDROSTATIC:
            z = height_at_pressure(pressure_at_sigma_level(levels, top / 100.0))
        elif vtype.is_sigma_pressure:
            z = elevations_at_sigma_pressures(levels, top, surface_elevation=key)
        elif vtype is VerticalGridType.SIGMA_Z:
            z = key + levels * (top - key)
        elif vtype is VerticalGridType.PRESSURE:
            z = height_at_pressure(levels / 100.0)
        elif vtype is VerticalGridType.H_ABOVE_GROUND:
            z = levels + key
        else:
            z = levels.copy()

        if key == 0.0:
            self._sea_level_elevations = z
        return z

    def layer_center_elevations(self, surface_elevation: float = 0.0) -> np.ndarray:
        """Elevation (m above MSL) of the middle of each layer."""
        z = self.level_elevations(surface_elevation)
        return 0.5 * (z[:-1] + z[1:])

    def layer_of_level(self, values) -> np.ndarray:
        """1-based layer containing values given in the grid's level coordinate.

        Values outside of the level range get `OUT_OF_BOUNDS`. The top-most
        boundary belongs to the last layer.
        """
        if not self.has_levels:
            return np.ones(np.shape(values), dtype=np.int64)
        levels = self.spec.levels
        if levels[0] > levels[-1]:
            # Decreasing coordinate (e.g. sigma-pressure): scan in reverse.
            layers = self._scan_levels(levels[::-1], values)
            return np.where(layers == OUT_OF_BOUNDS, OUT_OF_BOUNDS, self.layers + 1 - layers)
        return self._scan_levels(levels, values)

    def layer_of(self, elevations, surface_elevation: float = 0.0) -> np.ndarray:
        """1-based layer containing elevations (m above MSL), or `OUT_OF_BOUNDS`."""
        if not self.has_levels:
            return np.ones(np.shape(elevations), dtype=np.int64)
        return self._scan_levels(self.level_elevations(surface_elevation), elevations)

    def _scan_levels(self, boundaries: np.ndarray, values) -> np.ndarray:
        values = np.asarray(values, dtype=float)
        layers = np.searchsorted(boundaries, values, side="right")
        layers = np.where(values == boundaries[-1], self.layers, layers)
        with np.errstate(invalid="ignore"):
            inside = (values >= boundaries[0]) & (values <= boundaries[-1])
        return np.where(inside, layers, OUT_OF_BOUNDS).astype(np.int64)
