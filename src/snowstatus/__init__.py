"""Cached weather and lift status for ski resorts."""

__version__ = "1.0.0"
