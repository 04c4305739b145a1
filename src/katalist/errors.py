"""Exception types raised by katalist."""

from __future__ import annotations


class KatalistError(Exception):
    """Base class for katalist failures."""


class UnsupportedShapeError(KatalistError, ValueError):
    """JSON payload is neither an object nor a non-empty array of objects."""


class IOWriteError(KatalistError, OSError):
    """A schema module or rewritten source file could not be written."""


class SourceNotFoundError(KatalistError, FileNotFoundError):
    """The file handed to the transform engine does not exist."""
