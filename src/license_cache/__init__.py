"""On-disk cache of dependency license records."""

__version__ = "1.0.0"
