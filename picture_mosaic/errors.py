"""Exceptions raised by the matching core and its I/O glue."""

from __future__ import annotations


class MosaicError(Exception):
    """Base class for every fatal mosaic error."""


class ConfigurationError(MosaicError, ValueError):
    """Malformed input: bad cache file, unreadable image, empty catalog or invalid option."""


class ExhaustionError(MosaicError, RuntimeError):
    """No selectable tile is left in the index."""
