"""Parallel directory copying that skips unchanged files using an xxHash64 cache."""

__version__ = "0.1.0"
__all__ = ["__version__"]