"""SafeTrails journey safety core."""

__version__ = "0.1.0"
