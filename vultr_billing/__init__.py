"""Vultr billing CLI."""

__version__ = "3.0.0"
