"""Observation, footprint and regridded result containers.

Records (`Observation`, `Footprint`) are immutable single inputs. The engine
works on the batch forms (`Observations`, `Footprints`), which hold one numpy
array per field. Regridded output is sparse: `SparseTimestepResult` holds only
the cells that received data for one timestep, and `AggregatedSeries` is an
ordered run of them.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field, fields

import numpy as np
import pandas as pd
import xarray as xr

from .constants import MISSING_VALUE
from .errors import EmptyResultError

logger = logging.getLogger(__name__)


def _check_lonlat(lon: np.ndarray, lat: np.ndarray) -> None:
    if lon.size and (np.nanmin(lon) < -180.0 or np.nanmax(lon) > 180.0):
        raise ValueError("Longitudes must be within [-180, 180] degrees.")
    if lat.size and (np.nanmin(lat) < -90.0 or np.nanmax(lat) > 90.0):
        raise ValueError("Latitudes must be within [-90, 90] degrees.")


_OBSERVATION_COLUMNS = {
    "timestamps": "timestamp",
    "longitudes": "longitude",
    "latitudes": "latitude",
    "values": "value",
    "elevations": "elevation",
    "values2": "value2",
    "weights": "weight",
    "notes": "note",
}


def _optional(values, dtype=float):
    return None if values is None else np.asarray(values, dtype=dtype)


# ============================================================================
# Inputs
# ============================================================================


@dataclass(frozen=True)
class Observation:
    """One geolocated, timestamped measurement."""

    timestamp: int
    longitude: float
    latitude: float
    value: float
    elevation: float | None = None
    value2: float | None = None
    weight: float | None = None
    note: str | None = None


@dataclass(frozen=True)
class Footprint:
    """One swath pixel ground footprint given by its four corners."""

    timestamp: int
    corner_sw: tuple[float, float]
    corner_se: tuple[float, float]
    corner_nw: tuple[float, float]
    corner_ne: tuple[float, float]
    value: float


@dataclass
class Observations:
    """Batch of point observations stored as parallel arrays."""

    timestamps: np.ndarray
    longitudes: np.ndarray
    latitudes: np.ndarray
    values: np.ndarray
    elevations: np.ndarray | None = None
    values2: np.ndarray | None = None
    weights: np.ndarray | None = None
    notes: np.ndarray | None = None

    def __post_init__(self) -> None:
        self.timestamps = np.asarray(self.timestamps, dtype=np.int64)
        self.longitudes = np.asarray(self.longitudes, dtype=float)
        self.latitudes = np.asarray(self.latitudes, dtype=float)
        self.values = np.asarray(self.values, dtype=float)
        self.elevations = _optional(self.elevations)
        self.values2 = _optional(self.values2)
        self.weights = _optional(self.weights)
        self.notes = _optional(self.notes, dtype=object)

        size = self.values.size
        for fld in fields(self):
            arr = getattr(self, fld.name)
            if arr is not None and (arr.ndim != 1 or arr.size != size):
                raise ValueError(f"Observation field [{fld.name}] must be 1D with {size} entries, not {arr.shape}.")
        _check_lonlat(self.longitudes, self.latitudes)

    def __len__(self) -> int:
        return self.values.size

    def subset(self, mask: np.ndarray) -> Observations:
        """Select observations with a boolean mask or index array."""
        kwargs = {}
        for fld in fields(self):
            arr = getattr(self, fld.name)
            kwargs[fld.name] = None if arr is None else arr[mask]
        return Observations(**kwargs)

    @classmethod
    def from_records(cls, records: Iterable[Observation]) -> Observations:
        records = list(records)

        def column(name):
            items = [getattr(rec, name) for rec in records]
            if all(item is None for item in items):
                return None
            if name == "note":
                return np.array(["" if item is None else item for item in items], dtype=object)
            if name == "weight":
                return np.array([1.0 if item is None else item for item in items], dtype=float)
            if any(item is None for item in items):
                raise ValueError(f"Field [{name}] must be given for all observations or none.")
            return np.array(items)

        return cls(
            timestamps=np.array([rec.timestamp for rec in records], dtype=np.int64),
            longitudes=np.array([rec.longitude for rec in records], dtype=float),
            latitudes=np.array([rec.latitude for rec in records], dtype=float),
            values=np.array([rec.value for rec in records], dtype=float),
            elevations=column("elevation"),
            values2=column("value2"),
            weights=column("weight"),
            notes=column("note"),
        )

    @classmethod
    def from_dataframe(cls, table: pd.DataFrame) -> Observations:
        """Build from a table with one column per field, named in the singular (`value`, `note`)."""
        kwargs = {
            fld_name: table[col_name].to_numpy()
            for fld_name, col_name in _OBSERVATION_COLUMNS.items()
            if col_name in table.columns
        }
        missing = {"timestamps", "longitudes", "latitudes", "values"} - set(kwargs)
        if missing:
            raise KeyError(f"Observation table is missing required columns: {sorted(missing)}")
        return cls(**kwargs)


@dataclass
class Footprints:
    """Batch of quadrilateral footprints.

    Corner arrays have shape (n, 4) with columns ordered SW, SE, NW, NE.
    """

    timestamps: np.ndarray
    corner_longitudes: np.ndarray
    corner_latitudes: np.ndarray
    values: np.ndarray

    def __post_init__(self) -> None:
        self.timestamps = np.asarray(self.timestamps, dtype=np.int64)
        self.corner_longitudes = np.asarray(self.corner_longitudes, dtype=float).reshape(-1, 4)
        self.corner_latitudes = np.asarray(self.corner_latitudes, dtype=float).reshape(-1, 4)
        self.values = np.asarray(self.values, dtype=float)
        size = self.values.size
        if self.timestamps.shape != (size,):
            raise ValueError("Footprint timestamps must match the number of values.")
        if self.corner_longitudes.shape != (size, 4) or self.corner_latitudes.shape != (size, 4):
            raise ValueError("Footprint corners must have shape (n, 4) matching the number of values.")
        _check_lonlat(self.corner_longitudes, self.corner_latitudes)

    def __len__(self) -> int:
        return self.values.size

    def subset(self, mask: np.ndarray) -> Footprints:
        return Footprints(
            timestamps=self.timestamps[mask],
            corner_longitudes=self.corner_longitudes[mask],
            corner_latitudes=self.corner_latitudes[mask],
            values=self.values[mask],
        )

    @classmethod
    def from_records(cls, records: Iterable[Footprint]) -> Footprints:
        records = list(records)
        corners = np.array(
            [[rec.corner_sw, rec.corner_se, rec.corner_nw, rec.corner_ne] for rec in records], dtype=float
        ).reshape(-1, 4, 2)
        return cls(
            timestamps=np.array([rec.timestamp for rec in records], dtype=np.int64),
            corner_longitudes=corners[..., 0],
            corner_latitudes=corners[..., 1],
            values=np.array([rec.value for rec in records], dtype=float),
        )

    @classmethod
    def from_dataframe(cls, table: pd.DataFrame) -> Footprints:
        """Build from a table with `longitude_sw` ... `latitude_ne` corner columns."""
        corners = ("sw", "se", "nw", "ne")
        try:
            return cls(
                timestamps=table["timestamp"].to_numpy(),
                corner_longitudes=table[[f"longitude_{c}" for c in corners]].to_numpy(),
                corner_latitudes=table[[f"latitude_{c}" for c in corners]].to_numpy(),
                values=table["value"].to_numpy(),
            )
        except KeyError as e:
            raise KeyError(f"Footprint table is missing required columns: {e}") from e


# ============================================================================
# Outputs
# ============================================================================


@dataclass
class SparseTimestepResult:
    """Regridded cells of a single timestep, as parallel arrays."""

    columns: np.ndarray
    rows: np.ndarray
    longitudes: np.ndarray
    latitudes: np.ndarray
    values: np.ndarray
    counts: np.ndarray
    layers: np.ndarray | None = None
    elevations: np.ndarray | None = None
    values2: np.ndarray | None = None
    notes: np.ndarray | None = None

    def __post_init__(self) -> None:
        self.columns = np.asarray(self.columns, dtype=np.int64)
        self.rows = np.asarray(self.rows, dtype=np.int64)
        self.longitudes = np.asarray(self.longitudes, dtype=float)
        self.latitudes = np.asarray(self.latitudes, dtype=float)
        self.values = np.asarray(self.values, dtype=float)
        self.counts = np.asarray(self.counts, dtype=np.int64)
        self.layers = _optional(self.layers, dtype=np.int64)
        self.elevations = _optional(self.elevations)
        self.values2 = _optional(self.values2)
        self.notes = _optional(self.notes, dtype=object)

        size = self.values.size
        for fld in fields(self):
            arr = getattr(self, fld.name)
            if arr is not None and arr.shape != (size,):
                raise ValueError(f"Result field [{fld.name}] must have shape ({size},), not {arr.shape}.")
        if size and self.counts.min() < 1:
            raise ValueError("Regridded cells must have a count of at least one.")
        if np.any(self.values == MISSING_VALUE):
            raise ValueError("Regridded values may not contain the missing value sentinel.")

    def __len__(self) -> int:
        return self.values.size

    @property
    def active_cell_count(self) -> int:
        return self.values.size

    @classmethod
    def empty(cls, layered=False, has_value2=False, has_notes=False, has_elevations=None) -> SparseTimestepResult:
        none = np.empty(0)
        has_elevations = layered if has_elevations is None else has_elevations
        return cls(
            columns=none,
            rows=none,
            longitudes=none,
            latitudes=none,
            values=none,
            counts=none,
            layers=none if layered else None,
            elevations=none if has_elevations else None,
            values2=none if has_value2 else None,
            notes=np.empty(0, dtype=object) if has_notes else None,
        )

    def keys(self) -> list[tuple]:
        """Cell keys (column, row[, layer]) of each entry."""
        if self.layers is None:
            return list(zip(self.columns.tolist(), self.rows.tolist()))
        return list(zip(self.columns.tolist(), self.rows.tolist(), self.layers.tolist()))

    def to_dataframe(self) -> pd.DataFrame:
        """Convert to a table with one row per active cell."""
        data = {
            "column": self.columns,
            "row": self.rows,
        }
        if self.layers is not None:
            data["layer"] = self.layers
        data["longitude"] = self.longitudes
        data["latitude"] = self.latitudes
        if self.elevations is not None:
            data["elevation"] = self.elevations
        data["value"] = self.values
        if self.values2 is not None:
            data["value2"] = self.values2
        data["count"] = self.counts
        if self.notes is not None:
            data["note"] = self.notes
        return pd.DataFrame(data)

    def to_xarray(self) -> xr.Dataset:
        """Convert to a dataset indexed by a `point` dimension."""
        return xr.Dataset.from_dataframe(self.to_dataframe().rename_axis("point"))


@dataclass
class AggregatedSeries:
    """Ordered sequence of regridded timesteps."""

    timesteps: list[SparseTimestepResult] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.timesteps)

    def __iter__(self):
        return iter(self.timesteps)

    def __getitem__(self, item) -> SparseTimestepResult:
        return self.timesteps[item]

    def append(self, result: SparseTimestepResult) -> None:
        self.timesteps.append(result)

    @property
    def points_per_timestep(self) -> np.ndarray:
        return np.array([len(step) for step in self.timesteps], dtype=np.int64)

    @property
    def total_points(self) -> int:
        return int(self.points_per_timestep.sum())

    def require_data(self) -> AggregatedSeries:
        """Raise `EmptyResultError` if no timestep has any active cells."""
        if self.total_points == 0:
            raise EmptyResultError(
                f"No points were regridded onto the grid in {len(self)} timestep(s).", timesteps=len(self)
            )
        return self

    def to_dataframe(self) -> pd.DataFrame:
        """Concatenate all timesteps into one table with a `timestep` column."""
        tables = [step.to_dataframe().assign(timestep=ith) for ith, step in enumerate(self.timesteps)]
        if not tables:
            return pd.DataFrame(columns=["timestep"])
        table = pd.concat(tables, ignore_index=True)
        return table[["timestep"] + [name for name in table.columns if name != "timestep"]]

    @classmethod
    def from_results(cls, results: Sequence[SparseTimestepResult]) -> AggregatedSeries:
        return cls(list(results))
