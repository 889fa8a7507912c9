"""Inventory reservation engine: holds stock for in-flight checkouts and expires abandoned holds."""

__version__ = "0.1.0"
