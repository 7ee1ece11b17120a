"""
The Supervisor package.
Manages the lifecycle of the supervised command.

This package contains the central Supervisor class and its helper modules,
which together handle starting and restarting the command, discovering and
signaling its descendants, relaying OS signals and watching files.
"""
from .supervisor import Supervisor, RestartRequested, KillRequested

__all__ = ['Supervisor', 'RestartRequested', 'KillRequested']
