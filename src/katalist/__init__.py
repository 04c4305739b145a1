"""
katalist
========

Development-time helpers that observe HTTP responses, infer a schema for the
JSON they carry, persist it as an importable module and rewrite the calling
source so later runs use the generated type.
"""

from importlib.metadata import PackageNotFoundError, version


def get_version() -> str:
    """Return the installed package version or '0.0.0' when unavailable."""
    try:
        return version("katalist")
    except PackageNotFoundError:
        return "0.0.0"


__all__ = ["get_version"]
