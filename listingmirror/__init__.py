"""
listingmirror package initializer.

This package mirrors a third-party real-estate listings API into a local
SQLite store so that clients are served cached listings instead of hitting the
upstream API on every request.

The package exposes a ``__version__`` attribute indicating the installed
version. The version is read from pyproject.toml via importlib.metadata – this
is the single source of truth.
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("listingmirror")
except PackageNotFoundError:
    # Package is not installed (running from source without pip install -e .)
    __version__ = "0.0.0.dev"

__all__: list[str] = ["__version__"]
