"""Specification review and query gating for the supplier portal."""

__version__ = "0.1.0"
