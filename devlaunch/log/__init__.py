"""
Logging module for the launcher.
This module provides the console logging setup shared by all launcher components.
"""

from .setup import setup_logging

__all__ = ["setup_logging"]
