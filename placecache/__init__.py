"""Tiered cache and pagination engine in front of a place search API."""

__version__ = "1.0.0"
