"""
procwatch: runs a command, watches files, and restarts the command on changes.
"""

__version__ = "1.0.0"
