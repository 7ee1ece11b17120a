"""
Standard input adapter for terminal raw mode.

Raw mode lets us support our own control codes, but it also makes us
responsible for interpreting the usual ones (^C, ^\\) and for echoing other
input. In non-raw mode the child reads the terminal directly and this adapter
is not used.
"""
import os
import sys
import time
import signal
import logging
from typing import TYPE_CHECKING, Callable, Optional

from procwatch import settings

if TYPE_CHECKING:
    from procwatch.local.supervisor import Supervisor

log = logging.getLogger(__name__)


class StdinInterpreter:
    """Reads stdin byte by byte and turns control codes into supervisor commands."""

    def __init__(
        self,
        supervisor: "Supervisor",
        fd: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.supervisor = supervisor
        self.options = supervisor.options
        self.fd = fd
        self.clock = clock
        self.last_char: Optional[int] = None
        self.last_inst = clock()
        self.handlers = {
            settings.CMD_INTERRUPT: self.on_code_interrupt,
            settings.CMD_QUIT: self.on_code_quit,
            settings.CMD_RESTART: self.on_code_restart,
            settings.CMD_STOP: self.on_code_stop,
            settings.CMD_PRINT_COMMAND: self.on_code_print_command,
            settings.CMD_PRINT_HELP: self.on_code_print_help,
        }

    def run(self) -> None:
        """Reads until EOF or a read error. Runs on its own thread for the whole session."""
        fd = sys.stdin.fileno() if self.fd is None else self.fd
        self.last_inst = self.clock()
        while True:
            try:
                data = os.read(fd, 1)
            except OSError as e:
                log.error(f"error when reading stdin, shutting down stdin handling: {e}")
                return
            if not data:
                return
            self.on_byte(data[0])

    def on_byte(self, char: int) -> None:
        """Interprets one input byte. Errors are logged and never stop the reader."""
        try:
            handler = self.handlers.get(settings.CONTROL_CODES.get(char))
            if handler is None:
                self.on_byte_any(char)
            else:
                handler()
        except Exception as e:
            log.error(f"failed to handle input byte {char}: {e}", exc_info=self.options.TRACE)
        finally:
            self.after_byte(char)

    def after_byte(self, char: int) -> None:
        self.last_char = char
        self.last_inst = self.clock()

    def on_code_interrupt(self) -> None:
        self.on_code_sig(settings.ASCII_END_OF_TEXT, signal.SIGINT, "^C")

    def on_code_quit(self) -> None:
        self.on_code_sig(settings.ASCII_FILE_SEPARATOR, signal.SIGQUIT, "^\\")

    def on_code_stop(self) -> None:
        self.on_code_sig(settings.ASCII_DEVICE_CONTROL_4, signal.SIGTERM, "^T")

    def on_code_restart(self) -> None:
        if self.options.VERBOSE:
            log.info("received ^R, restarting")
        self.supervisor.restart("^R")

    def on_code_print_command(self) -> None:
        log.info(f"current command: {self.options.COMMAND}")

    def on_code_print_help(self) -> None:
        log.info(settings.HOTKEY_HELP)

    def on_byte_any(self, char: int) -> None:
        self.supervisor.write_char(char)
        if self.supervisor.echo_mode() == settings.ECHO_SUPERVISOR:
            os.write(sys.stdout.fileno(), bytes((char,)))

    def on_code_sig(self, code: int, signum: int, desc: str) -> None:
        if self.is_code_repeated(code):
            log.info(f"received {desc}{desc}, shutting down")
            self.supervisor.kill(signum)
            return

        if self.options.VERBOSE:
            log.info(
                f"broadcasting {desc} to subprocesses; repeat within "
                f"{self.options.DOUBLE_PRESS_WINDOW:g}s to kill procwatch"
            )
        self.supervisor.broadcast(signum)

    def is_code_repeated(self, char: int) -> bool:
        return self.last_char == char and self.clock() - self.last_inst < self.options.DOUBLE_PRESS_WINDOW
