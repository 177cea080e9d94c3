"""Shared helpers for the techpack review portal."""

from . import config, log, errors, models, views, identity, gating  # noqa: F401

__all__ = [
    "config",
    "log",
    "errors",
    "models",
    "views",
    "identity",
    "gating",
]
