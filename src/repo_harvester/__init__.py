"""Segmented, resumable GitHub contributor harvester."""

__version__ = "0.1.0"
