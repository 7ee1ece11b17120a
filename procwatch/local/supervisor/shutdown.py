import os
import time
import signal
import logging
from typing import Callable, Iterable, List, Sequence, Tuple

log = logging.getLogger(__name__)


def signal_name(signum: int) -> str:
    """Returns a readable name such as 'SIGTERM' for a signal number."""
    try:
        return signal.Signals(signum).name
    except ValueError:
        return f"signal {signum}"


def signal_pids(pids: Sequence[int], signum: int) -> Tuple[List[int], List[int]]:
    """
    Sends a signal to each pid, tolerating processes that are already gone.

    :param pids: The pids to signal, usually a descendant tree sorted descending.
    :param signum: The signal to send.
    :return tuple: (signaled pids, failed pids).
    """
    sent: List[int] = []
    failed: List[int] = []
    for pid in pids:
        try:
            os.kill(pid, signum)
            sent.append(pid)
        except (ProcessLookupError, PermissionError) as e:
            log.debug(f"Unable to send {signal_name(signum)} to PID {pid}: {e}")
            failed.append(pid)

    if failed:
        log.warning(f"Sent {signal_name(signum)} to PIDs {sent}; failed for PIDs {failed}.")
    elif sent:
        log.debug(f"Sent {signal_name(signum)} to PIDs {sent}.")
    return sent, failed


def run_teardown(steps: Iterable[Tuple[str, Callable[[], None]]]) -> None:
    """
    Runs cleanup steps in order. A failing step is logged and does not
    prevent the following steps from running.

    :param steps: (description, callable) pairs in the order they must run.
    """
    for description, step in steps:
        try:
            step()
        except Exception as e:
            log.error(f"Failed to {description}: {e}", exc_info=True)


def terminate_self(signum: int, grace_period: float = 0.5) -> None:
    """
    Re-raises a kill signal against the current process. Must be called only
    after teardown, when the OS default disposition is back in place.
    If the process survives the signal, it force-exits with status 1.
    """
    log.debug(f"Re-raising {signal_name(signum)} against PID {os.getpid()}.")
    for handler in logging.getLogger("procwatch").handlers:
        handler.flush()
    try:
        os.kill(os.getpid(), signum)
        time.sleep(grace_period)
    finally:
        os._exit(1)
