"""Generic utilities (logging setup, timing and output logging helpers)."""

import dataclasses
import datetime
import functools
import logging
import logging.config
import time
import typing
from io import StringIO
from pathlib import Path

import numpy as np
import pandas as pd

logger = logging.getLogger(__name__)

TIMINGS_ATTR = "_timings"

CONSOLE_FORMAT = "%(asctime)s %(levelname)-7s %(message)s"
FILE_FORMAT = "%(asctime)s.%(msecs)03d %(levelname)-7s %(name)s:%(funcName)s:%(lineno)d | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


@dataclasses.dataclass
class Timing:
    """Wall clock statistics of repeated calls."""

    calls: int = 0
    total: float = 0.0
    fastest: float = float("inf")
    slowest: float = 0.0

    def add(self, seconds: float):
        self.calls += 1
        self.total += seconds
        self.fastest = min(self.fastest, seconds)
        self.slowest = max(self.slowest, seconds)

    @property
    def mean(self) -> float:
        return self.total / self.calls if self.calls else float("nan")


def track_performance(func: typing.Callable, storage: dict = None):
    """Record the wall clock time of every call to `func`.

    Timings are keyed by the qualified name of `func` and kept in `storage`,
    or, when no storage is given, in a `_timings` dict created on the
    instance the method is bound to.
    """
    label = func.__qualname__

    @functools.wraps(func)
    def _timed_func(*args, **kwargs):
        timings = storage
        if timings is None:
            timings = args[0].__dict__.setdefault(TIMINGS_ATTR, {})

        start = time.perf_counter()
        try:
            return func(*args, **kwargs)
        finally:
            timings.setdefault(label, Timing()).add(time.perf_counter() - start)

    return _timed_func


def format_performance(obj, precision: int = 3) -> str:
    """Tabulate the timings collected by `track_performance`.

    Parameters
    ----------
    obj : instance or dict
        Mapping of label to `Timing`, or an instance whose methods were tracked.
    precision : int, optional
        Decimal places of the seconds columns. Default is 3 (milliseconds).

    Returns
    -------
    str
        One row per tracked function, the largest total first.

    """
    timings = obj if isinstance(obj, dict) else getattr(obj, TIMINGS_ATTR, None)
    if timings is None:
        raise ValueError(f"No performance metrics recorded for: {obj}")
    if not timings:
        return "Performance Summary: no calls recorded"

    table = pd.DataFrame(
        {
            label: {"calls": t.calls, "total": t.total, "mean": t.mean, "min": t.fastest, "max": t.slowest}
            for label, t in timings.items()
        }
    ).T.sort_values("total", ascending=False)
    table["calls"] = table["calls"].astype(int)
    return "Performance Summary:\n" + table.to_string(float_format=lambda val: f"{val:.{precision}f}")


def _describe_output(output, max_rows: int) -> list[str]:
    """Text blocks summarizing a table-like or array output."""
    name = output.__class__.__name__
    table = output.to_dataframe() if hasattr(output, "to_dataframe") else output

    if isinstance(table, pd.DataFrame):
        details = StringIO()
        table.info(buf=details)
        return [
            f"{name}{table.shape}:\n {table.to_string(max_rows=max_rows)}",
            f"{name} details:\n{details.getvalue()}",
        ]
    if isinstance(table, np.ndarray):
        return [f"{name}{table.shape}:\n {table}"]
    return []


def log_return(max_rows=5):
    """Decorator that logs the table or array a function returns (debug only)."""

    def decorator(func):
        func_logger = logging.getLogger(getattr(func, "__module__", __name__))

        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            output = func(*args, **kwargs)
            if func_logger.isEnabledFor(logging.DEBUG):
                for block in _describe_output(output, max_rows):
                    func_logger.debug("%s", block)
            return output

        return wrapper

    return decorator


def _log_file_path(log_file: typing.Union[bool, str, Path]) -> Path:
    stamp = datetime.datetime.now(datetime.timezone.utc).strftime("%Y%m%dT%H%M%S")
    default_name = f"gridbin.{stamp}.log"
    if log_file is True:
        return Path.cwd() / default_name
    path = Path(log_file)
    return path / default_name if path.is_dir() else path


def enable_logging(
    log_level=logging.DEBUG, log_file: typing.Union[bool, str, Path] = False, extra_loggers: list[str] = None
):
    """Configure console logging, plus a detailed log file when requested.

    Parameters
    ----------
    log_level : int or str
        Console log level.
    log_file : bool or str or Path, optional
        False disables the file. True writes a timestamped file to the
        current directory, a directory gets a timestamped file inside it,
        and any other path is appended to as is. The file always receives
        debug output.
    extra_loggers : list of str, optional
        Additional logger names (e.g. a test module) to set to the same
        level as the package.

    Returns
    -------
    logging.Logger
        The `gridbin` package logger.

    """
    console_level = log_level.upper() if isinstance(log_level, str) else logging.getLevelName(log_level)
    package_level = "DEBUG" if log_file else console_level

    handlers = {
        "console": {
            "class": "logging.StreamHandler",
            "level": console_level,
            "formatter": "console",
            "stream": "ext://sys.stdout",
        }
    }
    path = None
    if log_file:
        path = _log_file_path(log_file)
        handlers["file"] = {
            "class": "logging.FileHandler",
            "level": "DEBUG",
            "formatter": "file",
            "filename": str(path),
            "mode": "a",
        }

    loggers = {"gridbin": {"level": package_level}, "pyproj": {"level": "WARNING"}}
    loggers.update({name: {"level": package_level} for name in extra_loggers or ()})

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": True,
            "formatters": {
                "console": {"format": CONSOLE_FORMAT, "datefmt": DATE_FORMAT},
                "file": {"format": FILE_FORMAT, "datefmt": DATE_FORMAT},
            },
            "handlers": handlers,
            "loggers": loggers,
            "root": {"level": package_level, "handlers": list(handlers)},
        }
    )

    if path is not None:
        logger.debug("Logging to file: %s", path)
    return logging.getLogger("gridbin")
