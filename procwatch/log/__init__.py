"""
Logging module for procwatch.
This module provides the single entry point used to configure logging.
"""

from .setup import setup_logging

__all__ = ["setup_logging"]
