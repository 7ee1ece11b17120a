import argparse
import json
import logging
import re
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import procwatch.settings as default_settings

log = logging.getLogger(__name__)

RE_WORD = re.compile(r"^\w+$")

DESCRIPTION = """Runs a command, watches files, and restarts the command on changes.

Examples:

    procwatch -c -v                        python app.py
    procwatch -e=py -e=html -i=.venv       python -m myapp.server
    procwatch -r -v -w=src -w=templates -- pytest -x

"Multi" flags can be passed multiple times; -e, -w and -i also accept
comma-separated values.

Use -r in an interactive terminal to enable hotkeys. Avoid it in
non-interactive environments, or when running several supervisors in the
same terminal.
"""


class ConfigurationError(ValueError):
    """Raised when the effective configuration cannot be used."""


def _comma_split(values: Optional[List[str]]) -> List[str]:
    out: List[str] = []
    for val in values or []:
        out.extend(part for part in val.split(",") if part)
    return out


def _multiline(value: str) -> str:
    """Unescapes line breaks and makes sure a non-empty marker ends with one."""
    for escaped in ("\\r\\n", "\\r", "\\n"):
        value = value.replace(escaped, "\n")
    if value and not value.endswith("\n"):
        value += "\n"
    return value


def _stdin_is_tty() -> bool:
    try:
        return sys.stdin is not None and sys.stdin.isatty()
    except (ValueError, AttributeError):
        return False


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="procwatch",
        description=DESCRIPTION,
        epilog=default_settings.HOTKEY_HELP,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("-v", dest="verbose", action="store_true", default=None, help="Verbose logging.")
    parser.add_argument("-c", dest="clear_hard", action="store_true", default=None, help="Clear terminal on restart.")
    parser.add_argument("-s", dest="clear_soft", action="store_true", default=None, help="Soft-clear terminal, keeping scrollback.")
    parser.add_argument("-r", dest="raw", action="store_true", default=None, help="Enable hotkeys (via terminal raw mode).")
    parser.add_argument(
        "-re", "--echo", dest="echo", choices=default_settings.ECHO_MODES, default=None,
        help="Stdin echoing in raw mode.",
    )
    parser.add_argument("-l", dest="lazy", action="store_true", default=None, help="Lazy mode: restart only when the command is not running.")
    parser.add_argument("-p", dest="postpone", action="store_true", default=None, help="Postpone first run until a file change or ^R.")
    parser.add_argument("-q", dest="quiet_exit", action="store_true", default=None, help="Don't report non-zero exits of the command.")
    parser.add_argument("-t", dest="trace", action="store_true", default=None, help="Print error traces. Useful for debugging procwatch.")
    parser.add_argument("-e", dest="extensions", action="append", help="Extensions to watch; multi.")
    parser.add_argument("-w", dest="watch_dirs", action="append", help="Directories to watch, relative to CWD; multi.")
    parser.add_argument("-i", dest="ignored_dirs", action="append", help="Ignored directories, relative to CWD; multi.")
    parser.add_argument("-P", dest="prefix", action="append", help="Prefix printed BEFORE each restart; multi; supports \\n.")
    parser.add_argument("-S", dest="suffix", action="append", help="Suffix printed AFTER each run; multi; supports \\n.")
    parser.add_argument("--lister", choices=default_settings.PROCESS_LISTERS, default=None, help="Process listing strategy.")
    parser.add_argument("--config", default=None, help="Path to a JSON file with setting overrides.")
    parser.add_argument("command", nargs=argparse.REMAINDER, help="Command to run, with its arguments.")
    return parser


class Options:
    """
    The effective configuration of one supervisor run.

    It is constructed once at startup and handed to every component. The
    precedence is:
    1. Base values from `settings.py` (including environment and `.env`).
    2. Overrides from the JSON config file for keys in `MODIFIABLE_SETTINGS`.
    3. Flags given on the command line.
    """

    def __init__(self, argv: Optional[List[str]] = None) -> None:
        self._load_defaults()
        args = build_parser().parse_args(argv)

        config_path = Path(args.config) if args.config else self.CONFIG_JSON_PATH
        if args.config and not config_path.exists():
            raise ConfigurationError(f"config file '{config_path}' does not exist")
        self._load_overrides(config_path)

        self._apply_args(args)
        self._finalize()

    def _load_defaults(self) -> None:
        """Loads all uppercase attributes from the settings module as defaults."""
        for key in dir(default_settings):
            if key.isupper():
                value = getattr(default_settings, key)
                # Lists are copied so the settings module stays pristine.
                setattr(self, key, list(value) if isinstance(value, list) else value)

    def _load_overrides(self, path: Path) -> None:
        """
        Loads and applies settings from a JSON overrides file.

        Only keys listed in `MODIFIABLE_SETTINGS` are applied.

        :param path: Location of the overrides file; a missing file is ignored.
        """
        if not path.exists():
            return

        try:
            with path.open('r') as f:
                overrides = json.load(f)
        except (json.JSONDecodeError, IOError) as e:
            raise ConfigurationError(f"failed to load or parse config file '{path}': {e}") from e

        if not isinstance(overrides, dict):
            raise ConfigurationError(f"config file '{path}' must contain a JSON object")

        log.debug(f"Loading configuration overrides from {path}")
        for key, value in overrides.items():
            key = key.upper()
            if key not in self.MODIFIABLE_SETTINGS:
                log.warning(f"Setting '{key}' in '{path}' is not modifiable. Ignoring.")
                continue

            original_value = getattr(self, key)
            if isinstance(original_value, list):
                if isinstance(value, str):
                    value = [val for val in value.split(",") if val]
                elif not isinstance(value, list):
                    raise ConfigurationError(f"setting '{key}' must be a list or a comma-separated string")
                value = [str(val) for val in value]
            elif isinstance(original_value, bool):
                value = str(value).lower() in ('true', '1', 't', 'yes', 'y')
            elif original_value is not None:
                try:
                    value = type(original_value)(value)
                except (ValueError, TypeError) as e:
                    raise ConfigurationError(f"could not convert value {value!r} for setting '{key}': {e}") from e

            setattr(self, key, value)
            log.debug(f"Overridden setting: {key} = {value}")

    def _apply_args(self, args: argparse.Namespace) -> None:
        """Applies command-line flags on top of the defaults and overrides."""
        flags = {
            "VERBOSE": args.verbose,
            "CLEAR_HARD": args.clear_hard,
            "CLEAR_SOFT": args.clear_soft,
            "RAW_MODE": args.raw,
            "ECHO_MODE": args.echo,
            "LAZY": args.lazy,
            "POSTPONE": args.postpone,
            "QUIET_EXIT": args.quiet_exit,
            "TRACE": args.trace,
            "PROCESS_LISTER": args.lister,
        }
        for key, value in flags.items():
            if value is not None:
                setattr(self, key, value)

        # Multi flags replace the defaults as a whole.
        if args.extensions:
            self.EXTENSIONS = _comma_split(args.extensions)
        if args.watch_dirs:
            self.WATCH_DIRS = _comma_split(args.watch_dirs)
        if args.ignored_dirs:
            self.IGNORED_DIRS = _comma_split(args.ignored_dirs)
        if args.prefix:
            self.PREFIX = "".join(_multiline(val) for val in args.prefix)
        if args.suffix:
            self.SUFFIX = "".join(_multiline(val) for val in args.suffix)

        command = list(args.command or [])
        if command and command[0] == "--":
            command = command[1:]
        if command:
            self.COMMAND = command

    def _finalize(self) -> None:
        """Validates the merged configuration and derives dependent values."""
        if not self.COMMAND:
            raise ConfigurationError("no command given; see 'procwatch -h'")

        self.EXTENSIONS = [ext.lower() for ext in self.EXTENSIONS]
        for ext in self.EXTENSIONS:
            if not RE_WORD.match(ext):
                raise ConfigurationError(f"invalid extension {ext!r}")

        if self.ECHO_MODE not in self.ECHO_MODES:
            raise ConfigurationError(f"invalid echo mode {self.ECHO_MODE!r}; expected one of {', '.join(self.ECHO_MODES)}")

        if self.PROCESS_LISTER not in self.PROCESS_LISTERS:
            raise ConfigurationError(f"invalid process lister {self.PROCESS_LISTER!r}")

        self.PREFIX = _multiline(self.PREFIX)
        self.SUFFIX = _multiline(self.SUFFIX)

        if self.RAW_MODE and not _stdin_is_tty():
            self.RAW_MODE = False
            if self.VERBOSE:
                log.info("not in an interactive terminal, disabling raw mode and hotkeys")

    def get(self, item: str, default: Any = None) -> Any:
        """Provides dictionary-like access to settings with a default value."""
        return getattr(self, item, default)

    def as_dict(self) -> Dict[str, Any]:
        """Returns the modifiable settings, e.g. for verbose startup logging."""
        return {key: getattr(self, key) for key in sorted(self.MODIFIABLE_SETTINGS)}
