"""avcatalog: affiliate video catalog aggregation."""

__version__ = "1.0.0"
