"""
Local package for procwatch.

This package provides the run configuration through the Options class, plus
the console and supervisor subpackages.
"""

from .config import ConfigurationError, Options

__all__ = ["ConfigurationError", "Options"]
