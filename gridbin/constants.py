"""Regridding constants, aggregation methods and quality flags."""

from enum import Enum, IntEnum, IntFlag, unique

# Sentinel for "no valid value". Never written to regridded output.
MISSING_VALUE = -9999.0

# Marker for a column/row/layer that falls outside of the grid.
OUT_OF_BOUNDS = 0

# Minimum valid values by data units. Signed quantities (e.g. temperatures
# or wind components) may be negative, concentrations may not.
#   Units: same as the data
SIGNED_MINIMUM_VALID_VALUE = -900.0
DEFAULT_MINIMUM_VALID_VALUE = 0.0
SIGNED_UNITS = ("m", "m/s", "degC", "degrees")

# Floor for the squared normalized distance of a point from its cell center.
RADIUS_SQUARED_TOLERANCE = 1e-6

# Max characters kept from the joined notes of one regridded cell.
REGRIDDED_NOTE_LENGTH = 255

# Standard atmosphere approximations (Vis5d).
#   Units: millibars, meters
SURFACE_PRESSURE_MB = 1012.5
PRESSURE_TO_HEIGHT_SCALE_M = -7200.0

# MM5 reference atmosphere for sigma-pressure level heights.
#   Units: m/s^2, J/kg/K, K, K, Pa
MM5_GRAVITY = 9.81
MM5_GAS_CONSTANT = 287.04
MM5_LAPSE_RATE = 50.0
MM5_SURFACE_TEMPERATURE = 290.0
MM5_SURFACE_PRESSURE = 100000.0

# Ratio of the WGS84 squared semi-axes, (b / a) ** 2.
WGS84_AXIS_RATIO_SQUARED = 0.9933056199957391


@unique
class AggregationMethod(IntEnum):
    """How multiple inputs falling in one cell are reduced to a value."""

    NEAREST = 1
    MEAN = 2
    WEIGHTED = 3

    @classmethod
    def parse(cls, value):
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls[value.strip().upper()]
            except KeyError:
                raise ValueError(f"Unknown aggregation method [{value}], expected one of: {[m.name for m in cls]}")
        return cls(value)


@unique
class VerticalGridType(Enum):
    """Vertical coordinate of the grid level boundaries (IOAPI naming in comments)."""

    SIGMA_P_HYDROSTATIC = "sigma_p_hydrostatic"  # VGSGPH3
    SIGMA_P_NONHYDROSTATIC = "sigma_p_nonhydrostatic"  # VGSGPN3
    WRF_SIGMA_P = "wrf_sigma_p"  # VGWRFEM
    SIGMA_Z = "sigma_z"  # VGSIGZ3
    PRESSURE = "pressure"  # VGPRES3, pascals
    Z_ABOVE_SEA = "z_above_sea"  # VGZVAL3, meters
    H_ABOVE_GROUND = "h_above_ground"  # VGHVAL3, meters

    @property
    def is_sigma_pressure(self):
        return self in (
            VerticalGridType.SIGMA_P_HYDROSTATIC,
            VerticalGridType.SIGMA_P_NONHYDROSTATIC,
            VerticalGridType.WRF_SIGMA_P,
        )


@unique
class FootprintFlags(IntFlag):
    GOOD = 0x0

    INVALID_GEOMETRY = 0x1  # Degenerate or self-intersecting after reorder.
    OUT_OF_GRID = 0x2
    INVALID_VALUE = 0x4  # Below minimum or missing.
    NO_CELLS = 0x8  # Overlaps the grid but nothing accumulated.


def minimum_valid_value_for_units(units: str) -> float:
    """Default minimum valid value for data with the given units."""
    if units is not None and units.strip() in SIGNED_UNITS:
        return SIGNED_MINIMUM_VALID_VALUE
    return DEFAULT_MINIMUM_VALID_VALUE
