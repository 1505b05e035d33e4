"""Map projections between geographic and planar grid coordinates.

Every projector has the same two operations, `project` (lon/lat degrees to
x/y meters) and `unproject` (the inverse), both vectorised over numpy arrays.
The engine only relies on that pair, so pre-projected data can use the
identity `LonLatProjector`.

Projected implementations delegate the math to pyproj. When the ellipsoid is
a sphere (as for CMAQ grids) the input WGS84 latitudes are first converted to
latitudes on the sphere so that points land where the model grid expects.
"""

from __future__ import annotations

import logging
from abc import ABCMeta, abstractmethod

import numpy as np
from pyproj import CRS, Transformer

from .constants import WGS84_AXIS_RATIO_SQUARED

logger = logging.getLogger(__name__)


def latitude_sphere(latitude):
    """Convert WGS84 (geodetic) latitude degrees to latitude on a sphere."""
    rads = np.radians(latitude)
    return np.degrees(np.arctan(np.tan(rads) * WGS84_AXIS_RATIO_SQUARED))


def latitude_wgs84(latitude):
    """Convert latitude degrees on a sphere back to WGS84 latitude."""
    rads = np.radians(latitude)
    return np.degrees(np.arctan(np.tan(rads) / WGS84_AXIS_RATIO_SQUARED))


def _validate_lonlat(lon, lat):
    lon = np.asarray(lon, dtype=float)
    lat = np.asarray(lat, dtype=float)
    if np.any(np.abs(lon) > 180.0):
        raise ValueError(f"Longitudes must be within [-180, 180], got range [{np.nanmin(lon)}, {np.nanmax(lon)}]")
    if np.any(np.abs(lat) > 90.0):
        raise ValueError(f"Latitudes must be within [-90, 90], got range [{np.nanmin(lat)}, {np.nanmax(lat)}]")
    return lon, lat


def _scalar_or_array(value):
    return value.item() if isinstance(value, np.ndarray) and value.ndim == 0 else value


class Projector(metaclass=ABCMeta):
    """Forward and inverse map projection."""

    @abstractmethod
    def project(self, longitude, latitude) -> tuple[np.ndarray, np.ndarray]:
        """Project lon/lat degrees to planar x/y."""

    @abstractmethod
    def unproject(self, x, y) -> tuple[np.ndarray, np.ndarray]:
        """Unproject planar x/y to lon/lat degrees."""


class LonLatProjector(Projector):
    """Identity projection, for grids defined directly in lon/lat degrees."""

    def project(self, longitude, latitude):
        lon, lat = _validate_lonlat(longitude, latitude)
        return _scalar_or_array(lon.copy()), _scalar_or_array(lat.copy())

    def unproject(self, x, y):
        x = np.asarray(x, dtype=float)
        y = np.asarray(y, dtype=float)
        return _scalar_or_array(x.copy()), _scalar_or_array(y.copy())

    def __repr__(self):
        return f"{self.__class__.__name__}()"


class PyprojProjector(Projector):
    """Projection on a (possibly spherical) ellipsoid computed by pyproj.

    Parameters
    ----------
    proj_params : dict
        PROJ parameters of the projected CRS, excluding the ellipsoid.
    major_semiaxis, minor_semiaxis : float
        Ellipsoid semi-axes in meters.
    adjust_latitude : bool, optional
        Convert WGS84 latitudes to sphere latitudes before projecting (and
        back after unprojecting). Default is to adjust only for spheres.

    """

    def __init__(self, proj_params: dict, major_semiaxis: float, minor_semiaxis: float, adjust_latitude=None):
        if not major_semiaxis > 0 or not minor_semiaxis > 0:
            raise ValueError(f"Ellipsoid semi-axes must be positive, not [{major_semiaxis}, {minor_semiaxis}]")
        if minor_semiaxis > major_semiaxis:
            raise ValueError("Minor semi-axis may not exceed the major semi-axis.")

        self.major_semiaxis = float(major_semiaxis)
        self.minor_semiaxis = float(minor_semiaxis)
        self.is_sphere = self.major_semiaxis == self.minor_semiaxis
        self.adjust_latitude = self.is_sphere if adjust_latitude is None else bool(adjust_latitude)

        params = dict(proj_params, a=self.major_semiaxis, b=self.minor_semiaxis, units="m", no_defs=True)
        self.crs = CRS.from_dict(params)
        self._forward = Transformer.from_crs(self.crs.geodetic_crs, self.crs, always_xy=True)
        self._inverse = Transformer.from_crs(self.crs, self.crs.geodetic_crs, always_xy=True)
        logger.debug("Created projector: %s", self.crs.srs)

    def project(self, longitude, latitude):
        lon, lat = _validate_lonlat(longitude, latitude)
        if self.adjust_latitude:
            lat = latitude_sphere(lat)
        x, y = self._forward.transform(lon, lat)
        return _scalar_or_array(np.asarray(x)), _scalar_or_array(np.asarray(y))

    def unproject(self, x, y):
        lon, lat = self._inverse.transform(np.asarray(x, dtype=float), np.asarray(y, dtype=float))
        lat = np.asarray(lat)
        if self.adjust_latitude:
            lat = latitude_wgs84(lat)
        return _scalar_or_array(np.asarray(lon)), _scalar_or_array(lat)

    def __repr__(self):
        return f"{self.__class__.__name__}({self.crs.srs!r})"


class LambertConformalConic(PyprojProjector):
    """Lambert conformal conic projection (e.g. CMAQ/WRF LCC grids)."""

    def __init__(
        self,
        major_semiaxis: float,
        minor_semiaxis: float,
        lower_latitude: float,
        upper_latitude: float,
        central_longitude: float,
        central_latitude: float,
        false_easting: float = 0.0,
        false_northing: float = 0.0,
        adjust_latitude=None,
    ):
        if not (-90.0 < lower_latitude < 90.0 and -90.0 < upper_latitude < 90.0):
            raise ValueError("Lambert standard parallels must be within (-90, 90).")
        if lower_latitude > upper_latitude:
            raise ValueError("Lambert lower latitude must not exceed the upper latitude.")
        if np.sign(lower_latitude) != np.sign(upper_latitude):
            raise ValueError("Lambert standard parallels must be in the same hemisphere.")
        super().__init__(
            {
                "proj": "lcc",
                "lat_1": lower_latitude,
                "lat_2": upper_latitude,
                "lat_0": central_latitude,
                "lon_0": central_longitude,
                "x_0": false_easting,
                "y_0": false_northing,
            },
            major_semiaxis,
            minor_semiaxis,
            adjust_latitude=adjust_latitude,
        )


class AlbersEqualArea(PyprojProjector):
    """Albers equal-area conic projection."""

    def __init__(
        self,
        major_semiaxis: float,
        minor_semiaxis: float,
        lower_latitude: float,
        upper_latitude: float,
        central_longitude: float,
        central_latitude: float,
        false_easting: float = 0.0,
        false_northing: float = 0.0,
        adjust_latitude=None,
    ):
        if lower_latitude > upper_latitude:
            raise ValueError("Albers lower latitude must not exceed the upper latitude.")
        super().__init__(
            {
                "proj": "aea",
                "lat_1": lower_latitude,
                "lat_2": upper_latitude,
                "lat_0": central_latitude,
                "lon_0": central_longitude,
                "x_0": false_easting,
                "y_0": false_northing,
            },
            major_semiaxis,
            minor_semiaxis,
            adjust_latitude=adjust_latitude,
        )


class Mercator(PyprojProjector):
    """Mercator projection."""

    def __init__(
        self,
        major_semiaxis: float,
        minor_semiaxis: float,
        central_longitude: float,
        false_easting: float = 0.0,
        false_northing: float = 0.0,
        adjust_latitude=None,
    ):
        super().__init__(
            {"proj": "merc", "lon_0": central_longitude, "x_0": false_easting, "y_0": false_northing},
            major_semiaxis,
            minor_semiaxis,
            adjust_latitude=adjust_latitude,
        )


class Stereographic(PyprojProjector):
    """Stereographic projection (polar or oblique)."""

    def __init__(
        self,
        major_semiaxis: float,
        minor_semiaxis: float,
        central_longitude: float,
        central_latitude: float,
        secant_latitude: float = None,
        false_easting: float = 0.0,
        false_northing: float = 0.0,
        adjust_latitude=None,
    ):
        params = {
            "proj": "stere",
            "lat_0": central_latitude,
            "lon_0": central_longitude,
            "x_0": false_easting,
            "y_0": false_northing,
        }
        if secant_latitude is not None:
            params["lat_ts"] = secant_latitude
        super().__init__(params, major_semiaxis, minor_semiaxis, adjust_latitude=adjust_latitude)


PROJECTOR_TYPES = {
    "lonlat": LonLatProjector,
    "lambert": LambertConformalConic,
    "albers": AlbersEqualArea,
    "mercator": Mercator,
    "stereographic": Stereographic,
}


def projector_from_config(config: dict) -> Projector:
    """Create a projector from a configuration mapping with a `type` key.

    Parameters
    ----------
    config : dict
        Projection type (one of `PROJECTOR_TYPES`) plus the keyword arguments
        of that projector class.

    Returns
    -------
    Projector

    """
    config = dict(config)
    proj_type = str(config.pop("type", "")).lower()
    if proj_type not in PROJECTOR_TYPES:
        raise ValueError(f"Unknown projection type [{proj_type}], expected one of: {list(PROJECTOR_TYPES)}")
    try:
        return PROJECTOR_TYPES[proj_type](**config)
    except TypeError as e:
        raise ValueError(f"Invalid parameters for projection [{proj_type}]: {e}") from e
