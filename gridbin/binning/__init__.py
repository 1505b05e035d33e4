"""Binning of point observations and quadrilateral footprints into grid cells."""

from . import geometry, points, polygons

__all__ = ["geometry", "points", "polygons"]
