"""Resolve catalog codes to stored records and cover images."""

__version__ = "0.1.0"
