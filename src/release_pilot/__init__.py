"""release-pilot: automated pull-request-driven package releases."""

__version__ = "0.1.0"
