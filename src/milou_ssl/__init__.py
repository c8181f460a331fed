"""Milou SSL - TLS certificate lifecycle management."""

__version__ = "3.2.0"
