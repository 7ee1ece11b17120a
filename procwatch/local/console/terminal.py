"""
Terminal state management.

By default, a terminal runs in "cooked mode": it buffers lines before sending
them to the foreground process and turns some control codes (^C, ^\\) into OS
signals. Raw mode forwards every byte immediately and leaves control codes
alone, which is what makes the hotkeys possible.

The terminal state is shared by the supervisor and all of its descendants,
and it persists after the supervisor exits. The saved state must be restored
on every exit path.

References:
    https://en.wikibooks.org/wiki/Serial_Programming/termios
    man termios
"""
import os
import sys
import logging
import termios
from typing import List, Optional

from procwatch import settings

log = logging.getLogger(__name__)

# Index of the local-mode flags in a termios attribute list.
LFLAG = 3


class TerminalState:
    """Switches a terminal into raw mode and back."""

    def __init__(self, raw: bool, echo_mode: str = settings.ECHO_SUPERVISOR, fd: Optional[int] = None):
        self.raw = raw
        self.echo_mode = echo_mode
        self.fd = fd
        self._saved: Optional[List] = None

    def is_active(self) -> bool:
        return self._saved is not None

    def init(self) -> None:
        """
        Saves the current attributes and enables raw mode. A no-op if raw mode
        wasn't requested; on failure raw mode is skipped and the error logged.
        """
        if not self.raw:
            return
        self.deinit()

        try:
            if self.fd is None:
                self.fd = sys.stdin.fileno()
            prev = termios.tcgetattr(self.fd)
        except (termios.error, OSError, ValueError) as e:
            log.warning(f"unable to read terminal state: {e}")
            return

        state = [list(val) if isinstance(val, list) else val for val in prev]
        # Don't buffer lines; don't generate signals from control codes.
        state[LFLAG] &= ~(termios.ICANON | termios.ISIG)
        # Don't echo characters or special codes, unless asked to keep echoing.
        if self.echo_mode != settings.ECHO_PRESERVE:
            state[LFLAG] &= ~termios.ECHO

        try:
            termios.tcsetattr(self.fd, termios.TCSADRAIN, state)
        except (termios.error, OSError) as e:
            log.warning(f"unable to switch terminal to raw mode: {e}")
            return

        self._saved = prev

    def deinit(self) -> None:
        """Restores the saved attributes, if any. Safe to call repeatedly."""
        saved, self._saved = self._saved, None
        if saved is None:
            return
        try:
            termios.tcsetattr(self.fd, termios.TCSADRAIN, saved)
        except (termios.error, OSError) as e:
            log.error(f"unable to restore terminal state: {e}")


#* --- Output Helpers ---
def write_stdout(data: str) -> None:
    os.write(sys.stdout.fileno(), data.encode())


def clear_screen(hard: bool, soft: bool) -> None:
    """Clears the terminal; a hard clear also drops the scrollback."""
    if hard:
        write_stdout(settings.TERM_CLEAR_HARD)
    elif soft:
        write_stdout(settings.TERM_CLEAR_SOFT)


def print_marker(marker: str) -> None:
    """Prints a prefix/suffix marker to stderr, next to the supervisor's log."""
    if marker:
        sys.stderr.write(marker)
        sys.stderr.flush()
