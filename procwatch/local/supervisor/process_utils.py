import os
import time
import signal
import logging
import threading
import subprocess
from collections import namedtuple
from typing import TYPE_CHECKING, Callable, IO, List, Optional

from procwatch.local.supervisor.shutdown import signal_name, signal_pids
from procwatch.local.supervisor.process_tree import DescendantFinder

if TYPE_CHECKING:
    from procwatch.local.config import Options

log = logging.getLogger(__name__)

# Reported by the exit-waiter thread once a child completes.
ChildExited = namedtuple("ChildExited", ["process", "returncode", "duration"])


class ChildProcess:
    """
    Owns the single child process of the supervisor.

    Starting is synchronous; each child gets an exit-waiter thread that reports
    a `ChildExited` event through `on_exit`. The handle and the stdin pipe are
    protected by an internal lock.
    """

    def __init__(
        self,
        options: "Options",
        on_exit: Callable[[ChildExited], None],
        finder: Optional[DescendantFinder] = None,
    ) -> None:
        self.options = options
        self.on_exit = on_exit
        self.finder = finder or DescendantFinder.from_name(options.PROCESS_LISTER, options.VERBOSE)
        self._lock = threading.Lock()
        self._proc: Optional[subprocess.Popen] = None
        self._stdin: Optional[IO[bytes]] = None
        # Set by the supervisor once it knows whether raw mode is really active.
        self.pipe_stdin = options.RAW_MODE

    @property
    def process(self) -> Optional[subprocess.Popen]:
        """The tracked process handle, or None when no child is tracked."""
        with self._lock:
            return self._proc

    def is_running(self) -> bool:
        """
        Reports whether the tracked child has not completed yet.

        The child state changes concurrently, so the answer can be stale as
        soon as it is returned; callers must tolerate that.
        """
        with self._lock:
            return self._proc is not None and self._proc.returncode is None

    def is_current(self, process: subprocess.Popen) -> bool:
        with self._lock:
            return process is self._proc

    def release(self, process: subprocess.Popen) -> bool:
        """
        Forgets a completed child if it is still the tracked one.

        :return bool: False if the process was already replaced.
        """
        with self._lock:
            if process is not self._proc:
                return False
            self._clear_unsync()
            return True

    def restart(self) -> bool:
        """
        Terminates the current child's descendant tree and starts a new child.

        :return bool: True if the new child was started.
        """
        with self._lock:
            self._deinit_unsync()
            return self._start_unsync()

    def broadcast(self, signum: int) -> List[int]:
        """Sends a signal to every descendant of the supervisor; no-op if none."""
        with self._lock:
            return self._broadcast_unsync(signum)

    def write_char(self, char: int) -> None:
        """
        Forwards one byte to the child's stdin. Once the pipe has been closed,
        the byte and all later ones are dropped silently.
        """
        with self._lock:
            stdin = self._stdin
            if stdin is None:
                return
            try:
                stdin.write(bytes((char,)))
            except (BrokenPipeError, ValueError):
                self._stdin = None

    def deinit(self) -> None:
        """Terminates the descendant tree and forgets the child. Idempotent."""
        with self._lock:
            self._deinit_unsync()

    #* --- Internals (caller holds the lock) ---
    def _deinit_unsync(self) -> None:
        self._broadcast_unsync(signal.SIGTERM)
        self._clear_unsync()

    def _clear_unsync(self) -> None:
        stdin, self._stdin = self._stdin, None
        self._proc = None
        if stdin is not None:
            try:
                stdin.close()
            except OSError:
                pass

    def _broadcast_unsync(self, signum: int) -> List[int]:
        try:
            pids = self.finder.descendants(os.getpid())
        except Exception as e:
            log.error(f"unable to list subprocesses, not sending {signal_name(signum)}: {e}", exc_info=self.options.TRACE)
            return []
        if not pids:
            return []
        sent, _ = signal_pids(pids, signum)
        return sent

    def _start_unsync(self) -> bool:
        command = self.options.COMMAND
        # In raw mode our own stdin is consumed by the hotkey interpreter,
        # which forwards ordinary bytes through this pipe.
        stdin = subprocess.PIPE if self.pipe_stdin else None
        try:
            proc = subprocess.Popen(command, stdin=stdin, bufsize=0)
        except (OSError, ValueError) as e:
            log.error(f"unable to start command {command}: {e}")
            return False

        self._proc = proc
        self._stdin = proc.stdin
        log.debug(f"Started {command} with PID {proc.pid}.")

        threading.Thread(
            target=self._wait, args=(proc, time.monotonic()),
            daemon=True, name=f"ChildWaiter-{proc.pid}",
        ).start()
        return True

    def _wait(self, proc: subprocess.Popen, started: float) -> None:
        returncode = proc.wait()
        self.on_exit(ChildExited(proc, returncode, time.monotonic() - started))
