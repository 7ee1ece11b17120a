"""
This module initializes the console package, exposing the terminal raw-mode
manager, the hotkey interpreter and the terminal output helpers.
"""

from .terminal import TerminalState, clear_screen, print_marker
from .stdio import StdinInterpreter

__all__ = ["TerminalState", "StdinInterpreter", "clear_screen", "print_marker"]
