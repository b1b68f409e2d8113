"""Utility helpers: logging, encryption, JSON and time handling."""

from .logger import configure_logging, get_logger

__all__ = ["configure_logging", "get_logger"]
