"""Enfield CLI: offline-first world editing against the sync API."""

__version__ = "0.1.0"
