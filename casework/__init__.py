"""Casework: case management driven by per-app workflow graphs."""

__version__ = "1.0.0"
