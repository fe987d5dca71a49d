"""Package folder creation manager."""

__version__ = "1.4.0"
