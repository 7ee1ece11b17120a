import queue
import logging
import threading
from collections import namedtuple
from typing import TYPE_CHECKING, Optional

from procwatch import settings
from procwatch.local.console import StdinInterpreter, TerminalState, clear_screen, print_marker
from procwatch.local.supervisor.path_filter import RestartPolicy
from procwatch.local.supervisor.process_utils import ChildExited, ChildProcess
from procwatch.local.supervisor.shutdown import run_teardown, signal_name
from procwatch.local.supervisor.signals import SignalRelay
from procwatch.local.supervisor.watcher import FsEvent, Watcher

if TYPE_CHECKING:
    from procwatch.local.config import Options

log = logging.getLogger(__name__)

RestartRequested = namedtuple("RestartRequested", ["reason"])
KillRequested = namedtuple("KillRequested", ["signum"])


class Supervisor:
    """
    The single authority over the child process and all process-wide state.

    Every other thread (exit waiters, the watchdog observer, the stdin reader)
    and the signal handlers only post events into `self.events`; the loop in
    `run()` consumes them one at a time on the main thread.
    """

    def __init__(
        self,
        options: "Options",
        child: Optional[ChildProcess] = None,
        terminal: Optional[TerminalState] = None,
        signals: Optional[SignalRelay] = None,
        watcher: Optional[Watcher] = None,
        policy: Optional[RestartPolicy] = None,
    ) -> None:
        self.options = options
        # SimpleQueue.put is reentrant, which makes it safe in signal handlers.
        self.events: "queue.SimpleQueue" = queue.SimpleQueue()
        self.terminal = terminal or TerminalState(options.RAW_MODE, options.ECHO_MODE)
        self.child = child or ChildProcess(options, on_exit=self.events.put)
        self.signals = signals or SignalRelay(self.kill, options.KILL_SIGNALS)
        self.watcher = watcher or Watcher(options, on_event=self.on_fs_event)
        self.policy = policy or RestartPolicy(options.EXTENSIONS, options.IGNORED_DIRS)
        self.stdio: Optional[StdinInterpreter] = None
        self._torn_down = False

    #* --- Thread-safe Requests ---
    def restart(self, reason: str = "") -> None:
        self.events.put(RestartRequested(reason))

    def kill(self, signum: int) -> None:
        self.events.put(KillRequested(signum))

    def on_fs_event(self, event: FsEvent) -> None:
        self.events.put(event)

    def broadcast(self, signum: int) -> None:
        self.child.broadcast(signum)

    def write_char(self, char: int) -> None:
        self.child.write_char(char)

    def echo_mode(self) -> str:
        if self.terminal.is_active():
            return self.options.ECHO_MODE
        return settings.ECHO_NONE

    #* --- Lifecycle ---
    def init(self) -> None:
        """
        Acquires terminal, signal and watch resources. `teardown()` must run
        afterwards on every path, including when this raises.
        """
        self._torn_down = False
        self.terminal.init()
        # Raw mode may have been requested but refused by the terminal.
        self.child.pipe_stdin = self.terminal.is_active()
        self.signals.init()
        self.watcher.start()
        if self.terminal.is_active():
            self.stdio = StdinInterpreter(self)
            threading.Thread(target=self.stdio.run, daemon=True, name="StdinReader").start()
        if self.options.VERBOSE:
            log.debug(f"Effective settings: {self.options.as_dict()}")

    def run(self) -> int:
        """
        Runs the control loop until a kill event is processed.

        :return int: The signal that ended the loop; the caller re-raises it.
        """
        if not self.options.POSTPONE:
            self.child.restart()

        while True:
            event = self.events.get()

            if isinstance(event, KillRequested):
                self._kill(event.signum)
                return event.signum
            elif isinstance(event, ChildExited):
                self._on_child_exit(event)
            elif isinstance(event, FsEvent):
                if self.should_restart(event):
                    if self.options.VERBOSE:
                        log.info(f"restarting on FS event: {event.kind} {event.path}")
                    self._restart_child()
            elif isinstance(event, RestartRequested):
                self._restart_child()
            else:
                log.warning(f"Ignoring unknown event: {event!r}")

    def should_restart(self, event: Optional[FsEvent]) -> bool:
        return (
            event is not None
            and not (self.options.LAZY and self.child.is_running())
            and self.policy.accept(event.path)
        )

    def teardown(self) -> None:
        """
        Releases process-wide state in a fixed order: terminal, watcher,
        signal subscription, then the child tree. Idempotent.
        """
        if self._torn_down:
            return
        self._torn_down = True
        run_teardown([
            ("restore terminal state", self.terminal.deinit),
            ("stop file watcher", self.watcher.stop),
            ("unsubscribe from signals", self.signals.deinit),
            ("terminate subprocesses", self.child.deinit),
        ])

    #* --- Event Handling ---
    def _restart_child(self) -> None:
        print_marker(self.options.PREFIX)
        clear_screen(self.options.CLEAR_HARD, self.options.CLEAR_SOFT)
        self.child.restart()

    def _kill(self, signum: int) -> None:
        if self.options.VERBOSE:
            log.info(f"received kill signal: {signal_name(signum)}")
        # Descendants are signaled before any teardown step.
        self.child.broadcast(signum)
        self.teardown()

    def _on_child_exit(self, event: ChildExited) -> None:
        if not self.child.release(event.process):
            log.debug(f"Ignoring exit of replaced process PID {event.process.pid}.")
            return
        self._log_exit(event)
        print_marker(self.options.SUFFIX)

    def _log_exit(self, event: ChildExited) -> None:
        duration = f"{event.duration:.3f}s"
        if event.returncode == 0:
            if self.options.VERBOSE:
                log.info(f"done in {duration}")
            return

        if self.options.VERBOSE or not self.options.QUIET_EXIT:
            if event.returncode < 0:
                reason = f"terminated by {signal_name(-event.returncode)}"
            else:
                reason = f"exit code {event.returncode}"
            log.info(f"error after {duration}: {reason}")
