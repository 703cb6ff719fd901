"""Ordering portal backend: record store, order lifecycle and reporting."""

__version__ = "1.0.0"
