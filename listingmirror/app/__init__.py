"""Application layer: settings and the HTTP API."""

from .config import AppSettings, load_settings

__all__ = ["AppSettings", "load_settings"]
