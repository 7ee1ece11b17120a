"""
This module contains the default configuration settings for procwatch.
It defines the watch policy, terminal behaviour, supervisor timings and the
fixed control-code tables used by the hotkey interpreter.
Values can be overridden from the environment (or a `.env` file), from a
`procwatch.json` file in the working directory, and from the command line.
"""

import os
import pathlib
import signal
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv(override=False)


def _env_flag(name: str, default: str = "False") -> bool:
    return os.getenv(name, default).lower() in ('true', '1', 't', 'yes', 'y')


def _env_list(name: str, default: str = "") -> list:
    return [val for val in os.getenv(name, default).split(",") if val]


#* --- Core Paths ---
BASE_DIR = pathlib.Path.cwd()
CONFIG_JSON_PATH = BASE_DIR / "procwatch.json"

#* --- Watch Policy ---
EXTENSIONS = _env_list("PROCWATCH_EXTENSIONS", "py")
WATCH_DIRS = _env_list("PROCWATCH_WATCH_DIRS", ".")
IGNORED_DIRS = _env_list("PROCWATCH_IGNORED_DIRS")
WATCHDOG_DEBOUNCE_SECONDS = float(os.getenv("PROCWATCH_DEBOUNCE", "0.1"))
LAZY = _env_flag("PROCWATCH_LAZY")
POSTPONE = _env_flag("PROCWATCH_POSTPONE")

#* --- Terminal Settings ---
RAW_MODE = _env_flag("PROCWATCH_RAW")
ECHO_MODE = os.getenv("PROCWATCH_ECHO", "supervisor")
CLEAR_HARD = _env_flag("PROCWATCH_CLEAR")
CLEAR_SOFT = _env_flag("PROCWATCH_SOFT_CLEAR")
PREFIX = os.getenv("PROCWATCH_PREFIX", "")
SUFFIX = os.getenv("PROCWATCH_SUFFIX", "")

#* --- Logging ---
VERBOSE = _env_flag("PROCWATCH_VERBOSE")
TRACE = _env_flag("PROCWATCH_TRACE")
QUIET_EXIT = _env_flag("PROCWATCH_QUIET_EXIT")

#* --- Supervisor Settings ---
# 'auto' picks the native lister for the current platform.
PROCESS_LISTER = os.getenv("PROCWATCH_LISTER", "auto").lower()
DOUBLE_PRESS_WINDOW = 1.0    # seconds between two identical hotkeys to kill the supervisor
SELF_SIGNAL_GRACE_PERIOD = 0.5  # seconds to wait for the re-raised signal before force-exiting
COMMAND = []

#* --- MODIFIABLE SETTINGS (Changeable via procwatch.json) ---
MODIFIABLE_SETTINGS = {
    # Watch policy
    "EXTENSIONS", "WATCH_DIRS", "IGNORED_DIRS", "WATCHDOG_DEBOUNCE_SECONDS",
    "LAZY", "POSTPONE",
    # Terminal
    "RAW_MODE", "ECHO_MODE", "CLEAR_HARD", "CLEAR_SOFT", "PREFIX", "SUFFIX",
    # Logging
    "VERBOSE", "TRACE", "QUIET_EXIT",
    # Supervisor
    "PROCESS_LISTER", "COMMAND",
}

#* --- Echo Modes (raw mode only) ---
ECHO_NONE = "none"
ECHO_SUPERVISOR = "supervisor"
ECHO_PRESERVE = "preserve"
ECHO_MODES = (ECHO_NONE, ECHO_SUPERVISOR, ECHO_PRESERVE)

#* --- Process Listers ---
PROCESS_LISTERS = ("auto", "procfs", "psutil", "ps")

#* --- Signals ---
KILL_SIGNALS = (signal.SIGHUP, signal.SIGINT, signal.SIGQUIT, signal.SIGTERM)

#* --- Control Codes ---
# ASCII names: https://en.wikipedia.org/wiki/ASCII
ASCII_END_OF_TEXT = 3        # ^C
ASCII_BACKSPACE = 8          # ^H
ASCII_DEVICE_CONTROL_2 = 18  # ^R
ASCII_DEVICE_CONTROL_4 = 20  # ^T
ASCII_FILE_SEPARATOR = 28    # ^\
ASCII_UNIT_SEPARATOR = 31    # ^- or ^?
ASCII_DELETE = 127           # ^H on macOS

CMD_INTERRUPT = "interrupt"
CMD_QUIT = "quit"
CMD_RESTART = "restart"
CMD_STOP = "stop"
CMD_PRINT_COMMAND = "print-command"
CMD_PRINT_HELP = "print-help"

CONTROL_CODES = {
    ASCII_END_OF_TEXT: CMD_INTERRUPT,
    ASCII_FILE_SEPARATOR: CMD_QUIT,
    ASCII_DEVICE_CONTROL_2: CMD_RESTART,
    ASCII_DEVICE_CONTROL_4: CMD_STOP,
    ASCII_UNIT_SEPARATOR: CMD_PRINT_COMMAND,
    ASCII_BACKSPACE: CMD_PRINT_HELP,
    ASCII_DELETE: CMD_PRINT_HELP,
}

HOTKEY_HELP = """Control codes / hotkeys:

    3     ^C          Kill subprocess with SIGINT. Repeat within 1s to kill procwatch.
    18    ^R          Kill subprocess with SIGTERM, restart.
    20    ^T          Kill subprocess with SIGTERM. Repeat within 1s to kill procwatch.
    28    ^\\          Kill subprocess with SIGQUIT. Repeat within 1s to kill procwatch.
    31    ^- or ^?    Print currently running command.
    8     ^H          Print this help.
    127   ^H (macOS)  Print this help."""

#* --- Terminal Escapes ---
ESC = "\x1b"
TERM_CLEAR_SOFT = ESC + "c"
TERM_CLEAR_SCROLLBACK = ESC + "[3J"
TERM_CLEAR_HARD = TERM_CLEAR_SOFT + TERM_CLEAR_SCROLLBACK
