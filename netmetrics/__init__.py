"""netmetrics: concurrent network measurement service."""

__version__ = "0.1.0"
