import signal
import logging
from typing import Callable, Dict, Iterable

log = logging.getLogger(__name__)


class SignalRelay:
    """
    Replaces the default handling of termination-class signals so the
    supervisor can clean up (restore the terminal, signal descendants) before
    exiting. Each delivered signal is forwarded to `on_kill`, which must be
    safe to call from a signal handler.
    """

    def __init__(self, on_kill: Callable[[int], None], signals: Iterable[int]) -> None:
        self.on_kill = on_kill
        self.signals = tuple(signals)
        self._previous: Dict[int, object] = {}

    def is_active(self) -> bool:
        return bool(self._previous)

    def init(self) -> bool:
        """
        Subscribes to the configured signals.

        :return bool: False if the subscription failed and the supervisor runs without it.
        """
        if self._previous:
            return True
        try:
            for signum in self.signals:
                self._previous[signum] = signal.signal(signum, self._handle)
        except (ValueError, OSError) as e:
            # e.g. not running on the main thread.
            log.warning(f"unable to subscribe to kill signals, running without cleanup on signals: {e}")
            self.deinit()
            return False
        return True

    def deinit(self) -> None:
        """Restores the OS default disposition of every subscribed signal. Idempotent."""
        previous, self._previous = self._previous, {}
        for signum in previous:
            signal.signal(signum, signal.SIG_DFL)

    def _handle(self, signum, frame) -> None:
        # Runs between bytecodes on the main thread: no logging or locking here.
        if signum in self.signals:
            self.on_kill(signum)
