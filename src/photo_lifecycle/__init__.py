"""Lifecycle of photo assets kept on disk, in embedded metadata and in a database."""

__version__ = "0.1.0"
