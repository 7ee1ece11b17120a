import logging
import sys

LOGGER_NAME = "procwatch"
PLAIN_FORMAT = '[procwatch] %(message)s'
VERBOSE_FORMAT = '%(asctime)s - %(levelname)-8s - [%(name)s] - %(message)s'


class MainFormatter(logging.Formatter):
    """
    Formats supervisor messages so they stand apart from the child's output.

    Normal runs get a short `[procwatch]` prefix; verbose runs switch to the
    timestamped layout with the level and logger name.
    """

    def __init__(self, verbose: bool = False):
        super().__init__(VERBOSE_FORMAT if verbose else PLAIN_FORMAT)
        self.verbose = verbose

    def format(self, record):
        # Warnings and errors keep their level visible even in plain mode.
        if not self.verbose and record.levelno >= logging.WARNING:
            original_format = self._style._fmt
            self._style._fmt = '[procwatch] %(levelname)s: %(message)s'
            formatted_message = super().format(record)
            self._style._fmt = original_format
            return formatted_message
        return super().format(record)


def setup_logging(verbose: bool = False) -> None:
    """
    Configures the application logger.
    Messages go to stderr so the child's stdout stays untouched. Any
    previously configured handlers are cleared to prevent duplication.

    :param verbose: If True, DEBUG messages are shown with the detailed layout.
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)
    logger.propagate = False

    # Clear any existing handlers to prevent re-adding them on re-runs
    if logger.hasHandlers():
        logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(MainFormatter(verbose))
    logger.addHandler(console_handler)
