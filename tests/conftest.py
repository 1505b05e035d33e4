"""Shared pytest hooks: tests marked `extra` (full size grids) only run on request."""

import pytest

RUN_EXTRA = "--run-extra"


def pytest_addoption(parser):
    group = parser.getgroup("gridbin")
    group.addoption(RUN_EXTRA, action="store_true", default=False, help="also run tests marked 'extra' (large grids)")


def pytest_configure(config):
    config.addinivalue_line("markers", "extra: slow test on a full size grid, skipped without --run-extra")


def pytest_collection_modifyitems(config, items):
    if config.getoption(RUN_EXTRA):
        return
    marker = pytest.mark.skip(reason=f"extra test, enable with {RUN_EXTRA}")
    for item in (item for item in items if item.get_closest_marker("extra") is not None):
        item.add_marker(marker)
