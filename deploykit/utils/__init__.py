"""Utility functions for deploykit."""

from deploykit.utils.logging import configure_logging, get_logger

__all__ = [
    "configure_logging",
    "get_logger",
]
