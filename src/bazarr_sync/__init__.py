"""Bulk subtitle sync for Bazarr."""

__version__ = "0.1.0"
