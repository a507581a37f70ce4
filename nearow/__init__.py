"""Nearow rowing stroke-rate engine."""

from importlib.metadata import PackageNotFoundError, version

__all__ = ["__version__"]

try:
    __version__: str = version("nearow")
except PackageNotFoundError:
    __version__ = "0.0.0-dev"
