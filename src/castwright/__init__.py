"""castwright: turn source material into multi-speaker audio podcasts."""

from __future__ import annotations

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("castwright")
except PackageNotFoundError:
    __version__ = "0.1.0"

__all__ = ["__version__"]
