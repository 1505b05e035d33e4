"""Sequential big-endian spill file of compacted timesteps.

Long swath runs can write each finished timestep to disk instead of keeping
every result in memory. Each timestep is stored as one record of `n` points
laid out field by field:

    float64 longitudes[n]
    float64 latitudes[n]
    int64   columns[n]
    int64   rows[n]
    int64   layers[n]      (layered files only)
    int64   counts[n]
    float64 values[n]

All fields are big-endian (MSB first). A timestep is located by seeking
`sum(points of prior timesteps) * fields * 8` bytes from the start.
"""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path

import numpy as np

from .data_structures import AggregatedSeries, SparseTimestepResult

logger = logging.getLogger(__name__)

BYTES_PER_VALUE = 8

_FIELDS = (
    ("longitudes", ">f8"),
    ("latitudes", ">f8"),
    ("columns", ">i8"),
    ("rows", ">i8"),
    ("layers", ">i8"),
    ("counts", ">i8"),
    ("values", ">f8"),
)


def record_fields(layered: bool) -> tuple[tuple[str, str], ...]:
    """(name, dtype) of each field of a record, in file order."""
    return tuple(item for item in _FIELDS if layered or item[0] != "layers")


def encode_timestep(result: SparseTimestepResult, layered: bool = False) -> bytes:
    """Encode one timestep as a big-endian record."""
    if layered and result.layers is None and len(result):
        raise ValueError("Layered spill records require layers.")
    chunks = []
    for name, dtype in record_fields(layered):
        values = getattr(result, name)
        if values is None:
            values = np.empty(0)
        chunks.append(np.asarray(values).astype(dtype).tobytes())
    return b"".join(chunks)


def decode_timestep(buffer: bytes, points: int, layered: bool = False) -> SparseTimestepResult:
    """Decode a big-endian record of `points` points."""
    fields = record_fields(layered)
    if len(buffer) != points * len(fields) * BYTES_PER_VALUE:
        raise ValueError(f"Spill record of {len(buffer)} bytes does not hold {points} points.")
    if points == 0:
        return SparseTimestepResult.empty(layered=layered, has_elevations=False)
    kwargs = {}
    for ith, (name, dtype) in enumerate(fields):
        start = ith * points * BYTES_PER_VALUE
        kwargs[name] = np.frombuffer(buffer, dtype=dtype, count=points, offset=start).astype(dtype[1:])
    return SparseTimestepResult(**kwargs)


class SpillFile:
    """Append-then-read store of compacted timesteps.

    Parameters
    ----------
    path : str or Path, optional
        File to write. If None, a temporary file is used and deleted on close.
    layered : bool, optional
        Store a layer field in each record. Default=False.

    """

    def __init__(self, path=None, layered: bool = False):
        self.layered = layered
        self.points_per_timestep = []
        self._owned = path is None
        if path is None:
            fd, path = tempfile.mkstemp(suffix=".spill")
            os.close(fd)
            logger.debug("Created temporary spill file: %s", path)
        self.path = Path(path)
        self._fobj = open(self.path, mode="w+b")

    def __repr__(self):
        return f"{self.__class__.__name__}({str(self.path)!r}, timesteps={len(self)}, layered={self.layered})"

    def __len__(self) -> int:
        return len(self.points_per_timestep)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    @property
    def fields(self) -> int:
        return len(record_fields(self.layered))

    @property
    def total_points(self) -> int:
        return int(sum(self.points_per_timestep))

    def offset(self, timestep: int) -> int:
        """Byte offset of a timestep's record."""
        if not 0 <= timestep <= len(self):
            raise IndexError(f"Spill timestep {timestep} out of range [0, {len(self)}]")
        return int(sum(self.points_per_timestep[:timestep])) * self.fields * BYTES_PER_VALUE

    def append(self, result: SparseTimestepResult) -> None:
        """Write a timestep at the end of the file."""
        self._fobj.seek(0, os.SEEK_END)
        self._fobj.write(encode_timestep(result, layered=self.layered))
        self.points_per_timestep.append(len(result))

    def read(self, timestep: int) -> SparseTimestepResult:
        """Read back one timestep."""
        if not 0 <= timestep < len(self):
            raise IndexError(f"Spill timestep {timestep} out of range [0, {len(self)})")
        points = self.points_per_timestep[timestep]
        self._fobj.flush()
        self._fobj.seek(self.offset(timestep))
        buffer = self._fobj.read(points * self.fields * BYTES_PER_VALUE)
        return decode_timestep(buffer, points, layered=self.layered)

    def __iter__(self):
        for timestep in range(len(self)):
            yield self.read(timestep)

    def to_series(self) -> AggregatedSeries:
        return AggregatedSeries(list(self))

    def close(self) -> None:
        if not self._fobj.closed:
            self._fobj.close()
        if self._owned and self.path.exists():
            self.path.unlink()
            logger.debug("Deleted temporary spill file: %s", self.path)
