"""Bazarr API module."""

from .client import BazarrClient, CatalogError, DecodeError

__all__ = ["BazarrClient", "CatalogError", "DecodeError"]
