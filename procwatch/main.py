import sys
import logging
from typing import List, Optional

# Basic console logger for messages BEFORE full setup is complete.
# This logger will be replaced by the full setup later.
logging.basicConfig(
    level=logging.INFO,
    format='[procwatch] %(message)s',
    stream=sys.stderr
)
log = logging.getLogger("procwatch.main")

import setproctitle

from procwatch.log import setup_logging
from procwatch.local import ConfigurationError, Options
from procwatch.local.supervisor import Supervisor
from procwatch.local.supervisor.shutdown import terminate_self


def main(argv: Optional[List[str]] = None) -> None:
    """The main entry point for the procwatch command."""
    try:
        options = Options(argv)
    except ConfigurationError as e:
        log.error(str(e))
        sys.exit(1)

    setup_logging(options.VERBOSE)
    setproctitle.setproctitle(f"procwatch: {' '.join(options.COMMAND)}")

    supervisor = Supervisor(options)
    exit_code = 0
    kill_signal = None

    # Teardown must run on every exit path: the terminal and the descendant
    # processes are not cleaned up by the OS.
    try:
        supervisor.init()
        kill_signal = supervisor.run()
    except KeyboardInterrupt:
        log.warning("Interrupted before signal handling was set up.")
        exit_code = 1
    except Exception as e:
        log.critical(f"procwatch failed: {e}", exc_info=options.TRACE)
        exit_code = 1
    finally:
        supervisor.teardown()

    if kill_signal is not None:
        # Does not return.
        terminate_self(kill_signal, options.SELF_SIGNAL_GRACE_PERIOD)
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
